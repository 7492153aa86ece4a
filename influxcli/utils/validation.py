"""Validation utilities for shell and importer inputs."""
from __future__ import annotations
from typing import Tuple
import os
import re

from influxcli.core.errors import ConfigurationError, ImportSourceError

HOST_RE = re.compile(r'^[A-Za-z0-9_.\-]+$')


def validate_port(port) -> int:
    """Return port as int or raise ConfigurationError."""
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ConfigurationError(f"invalid port: {port!r}")
    if not 0 < value < 65536:
        raise ConfigurationError(f"port out of range: {value}")
    return value


def parse_connect_target(target: str, default_port: int) -> Tuple[str, int]:
    """Split a ``host[:port]`` connection target.

    Bracketed IPv6 literals (``[::1]:8086``) are accepted. An empty target is
    rejected rather than silently reconnecting to the current host.
    """
    target = (target or '').strip()
    if not target:
        raise ConfigurationError("connect requires a host[:port] argument")
    if target.startswith('['):
        end = target.find(']')
        if end == -1:
            raise ConfigurationError(f"invalid connection target: {target}")
        host = target[1:end]
        rest = target[end + 1:]
        if rest and not rest.startswith(':'):
            raise ConfigurationError(f"invalid connection target: {target}")
        port = validate_port(rest[1:]) if rest else default_port
        return host, port
    if target.count(':') > 1:
        raise ConfigurationError(f"invalid connection target: {target} (wrap IPv6 hosts in brackets)")
    host, sep, port_text = target.partition(':')
    if not host or not HOST_RE.match(host):
        raise ConfigurationError(f"invalid host: {host!r}")
    port = validate_port(port_text) if sep else default_port
    return host, port


def validate_import_path(filepath: str) -> None:
    """Validate that the import source exists and is readable."""
    if not filepath:
        raise ImportSourceError("import requires a path to an export file")
    if not os.path.exists(filepath):
        raise ImportSourceError(f"Import file not found: {filepath}")
    if not os.path.isfile(filepath):
        raise ImportSourceError(f"Path is not a file: {filepath}")
    if not os.access(filepath, os.R_OK):
        raise ImportSourceError(f"File not readable: {filepath}")
