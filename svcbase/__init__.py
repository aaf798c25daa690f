"""Building blocks for long-running services: env lookups, typed errors,
concurrency helpers, a circuit breaker, PNG captchas and graceful shutdown."""

__version__ = "0.1.0"

__all__ = [
    "apperror",
    "breaker",
    "captcha",
    "concurrency",
    "env",
    "graceful",
    "raster",
]