"""Session state shared by the shell, the renderer and the importer."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from influxcli.core.errors import ConfigurationError
from influxcli.utils.constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_FORMAT, DEFAULT_PRECISION,
    DEFAULT_CONSISTENCY, DEFAULT_PPS,
)
from influxcli.utils.validation import validate_port

logger = logging.getLogger(__name__)

_LABELS = {"OutputFormat": "format", "Precision": "precision", "Consistency": "consistency"}


class _Choice(str, Enum):
    """String enum with a validated, case-insensitive constructor."""

    @classmethod
    def parse(cls, value: Any):
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower() if value is not None else ''
        for member in cls:
            if member.value == text:
                return member
        allowed = ', '.join(m.value for m in cls)
        raise ConfigurationError(f"Unknown {_LABELS.get(cls.__name__, cls.__name__.lower())}: {value!r} (expected one of {allowed})")

    @classmethod
    def values(cls) -> List[str]:
        return [m.value for m in cls]

    def __str__(self) -> str:
        return self.value


class OutputFormat(_Choice):
    JSON = 'json'
    CSV = 'csv'
    COLUMN = 'column'


class Precision(_Choice):
    RFC3339 = 'rfc3339'
    H = 'h'
    M = 'm'
    S = 's'
    MS = 'ms'
    U = 'u'
    NS = 'ns'


class Consistency(_Choice):
    ANY = 'any'
    ONE = 'one'
    QUORUM = 'quorum'
    ALL = 'all'


@dataclass(frozen=True)
class ConnectionConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str = ''
    password: str = field(default='', repr=False)
    ssl: bool = False
    unsafe_ssl: bool = False

    @property
    def url(self) -> str:
        scheme = 'https' if self.ssl else 'http'
        host = f"[{self.host}]" if ':' in self.host else self.host
        return f"{scheme}://{host}:{self.port}"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the fields an operation needs."""
    connection: ConnectionConfig
    database: str
    retention_policy: str
    output_format: OutputFormat
    precision: Precision
    consistency: Consistency
    pretty: bool
    pps: int


class Session:
    """Mutable shell session; enumerated fields always hold a valid member."""

    ENUM_FIELDS = {
        'format': ('output_format', OutputFormat),
        'precision': ('precision', Precision),
        'consistency': ('consistency', Consistency),
    }

    def __init__(self,
                 host: str = DEFAULT_HOST,
                 port: int = DEFAULT_PORT,
                 username: str = '',
                 password: str = '',
                 database: str = '',
                 ssl: bool = False,
                 unsafe_ssl: bool = False,
                 output_format: Any = DEFAULT_FORMAT,
                 precision: Any = DEFAULT_PRECISION,
                 consistency: Any = DEFAULT_CONSISTENCY,
                 pretty: bool = False,
                 pps: int = DEFAULT_PPS):
        self.host = host
        self.port = validate_port(port)
        self.username = username or ''
        self.password = password or ''
        self.database = database or ''
        self.retention_policy = ''
        self.ssl = bool(ssl)
        self.unsafe_ssl = bool(unsafe_ssl)
        self.output_format = OutputFormat.parse(output_format)
        self.precision = Precision.parse(precision)
        self.consistency = Consistency.parse(consistency)
        self.pretty = bool(pretty)
        self.pps = self._validate_pps(pps)
        self.server_version = ''

    @classmethod
    def from_config(cls, settings: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> "Session":
        """Build the startup session from config settings plus non-None overrides."""
        merged = dict(settings)
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        return cls(
            host=merged.get('host') or DEFAULT_HOST,
            port=merged.get('port') or DEFAULT_PORT,
            username=merged.get('username', ''),
            password=merged.get('password', ''),
            database=merged.get('database', ''),
            ssl=merged.get('ssl', False),
            unsafe_ssl=merged.get('unsafe_ssl', False),
            output_format=merged.get('format', DEFAULT_FORMAT),
            precision=merged.get('precision', DEFAULT_PRECISION),
            consistency=merged.get('consistency', DEFAULT_CONSISTENCY),
            pretty=merged.get('pretty', False),
            pps=merged.get('pps', DEFAULT_PPS),
        )

    @staticmethod
    def _validate_pps(value: Any) -> int:
        try:
            pps = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"points per second must be an integer: {value!r}")
        if pps < 0:
            raise ConfigurationError(f"points per second must be >= 0: {pps}")
        return pps

    def set_field(self, name: str, value: Any) -> None:
        """Validate then assign; on error the previous value is kept."""
        key = name.strip().lower()
        if key in self.ENUM_FIELDS:
            attr, enum_cls = self.ENUM_FIELDS[key]
            setattr(self, attr, enum_cls.parse(value))
        elif key == 'database':
            self.database = str(value or '').strip()
        elif key in ('retention_policy', 'rp'):
            self.retention_policy = str(value or '').strip()
        elif key == 'pretty':
            self.pretty = bool(value)
        elif key == 'pps':
            self.pps = self._validate_pps(value)
        elif key == 'host':
            host = str(value or '').strip()
            if not host:
                raise ConfigurationError("host must not be empty")
            self.host = host
        elif key == 'port':
            self.port = validate_port(value)
        elif key == 'username':
            self.username = str(value or '')
        elif key == 'password':
            self.password = str(value or '')
        elif key == 'ssl':
            self.ssl = bool(value)
        elif key == 'unsafe_ssl':
            self.unsafe_ssl = bool(value)
        else:
            raise ConfigurationError(f"Unknown session setting: {name}")
        logger.debug("session %s updated", key)

    def use(self, target: str) -> None:
        """Select ``db`` or ``db.rp``; quoted names keep embedded dots."""
        target = (target or '').strip()
        if not target:
            raise ConfigurationError("use requires a database name")
        db, rp = split_db_rp(target)
        if not db:
            raise ConfigurationError(f"invalid database name: {target}")
        self.database = db
        self.retention_policy = rp

    def connection(self) -> ConnectionConfig:
        return ConnectionConfig(
            host=self.host, port=self.port, username=self.username,
            password=self.password, ssl=self.ssl, unsafe_ssl=self.unsafe_ssl,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            connection=self.connection(),
            database=self.database,
            retention_policy=self.retention_policy,
            output_format=self.output_format,
            precision=self.precision,
            consistency=self.consistency,
            pretty=self.pretty,
            pps=self.pps,
        )

    def settings_rows(self) -> List[Tuple[str, str]]:
        return [
            ('Host', f"{self.host}:{self.port}"),
            ('Username', self.username),
            ('Database', self.database),
            ('RetentionPolicy', self.retention_policy),
            ('Pretty', str(self.pretty).lower()),
            ('Format', str(self.output_format)),
            ('Precision', str(self.precision)),
            ('Write Consistency', str(self.consistency)),
            ('SSL', str(self.ssl).lower()),
            ('Unsafe SSL', str(self.unsafe_ssl).lower()),
        ]


def split_db_rp(target: str) -> Tuple[str, str]:
    """Split ``db.rp`` honouring double-quoted identifiers."""
    parts: List[str] = []
    current: List[str] = []
    in_quotes = False
    for ch in target:
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if ch == '.' and not in_quotes:
            parts.append(''.join(current))
            current = []
            continue
        current.append(ch)
    parts.append(''.join(current))
    if len(parts) > 2:
        raise ConfigurationError(f"invalid database target: {target}")
    db = parts[0].strip()
    rp = parts[1].strip() if len(parts) == 2 else ''
    return db, rp
