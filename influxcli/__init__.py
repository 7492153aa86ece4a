"""influxcli: interactive shell and bulk importer for InfluxDB 1.x.

Layout:
  influxcli.cli    argparse entry point and the read-eval command loop
  influxcli.core   session state, wire client, result rendering, import pipeline
  influxcli.utils  configuration, logging setup, constants, input validation
"""
from __future__ import annotations
from importlib import metadata
from typing import Optional
import pathlib
import re

PACKAGE_NAME = "influxcli"
FALLBACK_VERSION = "0.0.0.dev0"

_VERSION_RE = re.compile(r'^version\s*=\s*"([^"]+)"', re.MULTILINE)


def _read_pyproject_version() -> Optional[str]:
    """Version declared in the checkout's pyproject.toml, when running uninstalled."""
    pyproject = pathlib.Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:
        return None
    m = _VERSION_RE.search(text)
    return m.group(1) if m else None


try:
    __version__ = metadata.version(PACKAGE_NAME)
except metadata.PackageNotFoundError:
    __version__ = _read_pyproject_version() or FALLBACK_VERSION

__all__ = ["__version__"]
