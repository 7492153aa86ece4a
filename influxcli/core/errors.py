# Error taxonomy shared by the shell, the wire client and the importer.
from __future__ import annotations
from enum import Enum, auto

class ErrorCategory(Enum):
    CONFIG = auto()
    TRANSIENT = auto()
    PERMANENT = auto()
    PARSE = auto()
    IO = auto()
    INTERNAL = auto()

class InfluxCLIError(Exception):
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, *, category: ErrorCategory | None = None):
        super().__init__(message)
        if category:
            self.category = category

class ConfigurationError(InfluxCLIError):
    category = ErrorCategory.CONFIG

class ServerError(InfluxCLIError):
    """Failure reported by (or while reaching) the database server."""

    def __init__(self, message: str, *, status_code: int | None = None, category: ErrorCategory | None = None):
        super().__init__(message, category=category)
        self.status_code = status_code

class TransientServerError(ServerError):
    category = ErrorCategory.TRANSIENT

class PermanentServerError(ServerError):
    category = ErrorCategory.PERMANENT

class LineParseError(InfluxCLIError):
    category = ErrorCategory.PARSE

class ImportSourceError(InfluxCLIError):
    category = ErrorCategory.IO

__all__ = [
    'ErrorCategory', 'InfluxCLIError', 'ConfigurationError', 'ServerError',
    'TransientServerError', 'PermanentServerError', 'LineParseError', 'ImportSourceError'
]
