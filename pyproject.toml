[build-system]
requires = ["hatchling>=1.18"]
build-backend = "hatchling.build"

[project]
name = "svcbase"
version = "0.1.0"
description = "Building blocks for long-running services: env lookups, typed errors, worker pools, retries, single-flight, circuit breakers, PNG captchas and graceful shutdown."
requires-python = ">=3.10"
keywords = [
    "microservice",
    "circuit-breaker",
    "retry",
    "worker-pool",
    "single-flight",
    "captcha",
    "png",
    "graceful-shutdown",
    "errors",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "responses>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["svcbase"]

[tool.hatch.build.targets.sdist]
include = ["svcbase", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
