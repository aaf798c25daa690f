"""Infrastructure endpoints read from delimited environment variables.

Host lists accept both comma- and semicolon-separated values. Every getter
raises :class:`EnvUnsetError` when its variable is missing or blank.
"""

from __future__ import annotations

import os
import re

ZK_HOSTS = "ZK_HOSTS"
KAFKA_HOSTS = "KAFKA_HOSTS"
HDFS_HOSTS = "HDFS_HOSTS"
ES_HOSTS = "ES_HOSTS"
REDIS_HOSTS = "REDIS_HOSTS"
HOST_IP = "HOST_IP"
SERVER_HOST = "SERVER_HOST"

_SEPARATORS = re.compile(r"[,;]")


class EnvUnsetError(LookupError):
    """Raised when an environment variable is missing or empty."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: env var is unset")
        self.name = name


def split_hosts(value: str) -> list[str]:
    """Split on ',' or ';', trim each element and drop empty ones."""
    return [part.strip() for part in _SEPARATORS.split(value) if part.strip()]


def _get_string(name: str) -> str:
    value = os.environ.get(name)
    if value is None or not value.strip():
        raise EnvUnsetError(name)
    return value


def _get_hosts(name: str) -> list[str]:
    hosts = split_hosts(_get_string(name))
    if not hosts:
        raise EnvUnsetError(name)
    return hosts


def server_host() -> str:
    """Read SERVER_HOST."""
    return _get_string(SERVER_HOST)


def host_ip() -> str:
    """Read HOST_IP."""
    return _get_string(HOST_IP)


def zookeeper_hosts() -> list[str]:
    """Read ZK_HOSTS as a list of hosts."""
    return _get_hosts(ZK_HOSTS)


def kafka_hosts() -> list[str]:
    """Read KAFKA_HOSTS as a list of hosts."""
    return _get_hosts(KAFKA_HOSTS)


def hdfs_hosts() -> list[str]:
    """Read HDFS_HOSTS as a list of hosts."""
    return _get_hosts(HDFS_HOSTS)


def elastic_hosts() -> list[str]:
    """Read ES_HOSTS as a list of hosts."""
    return _get_hosts(ES_HOSTS)


def redis_hosts() -> list[str]:
    """Read REDIS_HOSTS as a list of hosts."""
    return _get_hosts(REDIS_HOSTS)