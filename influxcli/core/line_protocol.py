"""Client-side validation of write-protocol lines.

Only the structure is checked (measurement, tag set, field set, optional
integer timestamp) so obviously broken lines can be skipped before a batch is
sent; the server remains the authority on everything else.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import re

from influxcli.core.errors import LineParseError

INT_RE = re.compile(r'^[-+]?\d+i$')
UINT_RE = re.compile(r'^\d+u$')
FLOAT_RE = re.compile(r'^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$')
TIMESTAMP_RE = re.compile(r'^-?\d+$')
TRUE_VALUES = {'t', 'T', 'true', 'True', 'TRUE'}
FALSE_VALUES = {'f', 'F', 'false', 'False', 'FALSE'}


@dataclass
class Point:
    measurement: str
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[int] = None


def _scan(text: str, start: int, stops: str, quotes: bool) -> int:
    """Index of the first unescaped char in ``stops`` (outside quotes if enabled)."""
    i = start
    n = len(text)
    in_quotes = False
    while i < n:
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if quotes and ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes and ch in stops:
            return i
        i += 1
    if in_quotes:
        raise LineParseError("unterminated string field value")
    return n


def _split(text: str, sep: str, quotes: bool = False) -> List[str]:
    parts = []
    start = 0
    while True:
        idx = _scan(text, start, sep, quotes)
        parts.append(text[start:idx])
        if idx >= len(text):
            return parts
        start = idx + 1


def _unescape(text: str) -> str:
    return re.sub(r'\\([,= "\\])', r'\1', text)


def _parse_field_value(raw: str) -> Any:
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        return raw[1:-1].replace('\\"', '"').replace('\\\\', '\\')
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    if INT_RE.match(raw) or UINT_RE.match(raw):
        return int(raw[:-1])
    if FLOAT_RE.match(raw):
        return float(raw)
    raise LineParseError(f"invalid field value: {raw!r}")


def _parse_key(key: str) -> Tuple[str, Dict[str, str]]:
    parts = _split(key, ',')
    measurement = _unescape(parts[0])
    if not measurement:
        raise LineParseError("missing measurement")
    tags: Dict[str, str] = {}
    for part in parts[1:]:
        eq = _scan(part, 0, '=', False)
        if eq >= len(part):
            raise LineParseError(f"missing tag value: {part!r}")
        k, v = _unescape(part[:eq]), _unescape(part[eq + 1:])
        if not k or not v:
            raise LineParseError(f"empty tag key or value: {part!r}")
        tags[k] = v
    return measurement, tags


def _parse_fields(text: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for part in _split(text, ',', quotes=True):
        eq = _scan(part, 0, '=', True)
        if eq >= len(part):
            raise LineParseError(f"missing field value: {part!r}")
        k = _unescape(part[:eq])
        if not k:
            raise LineParseError(f"empty field key: {part!r}")
        fields[k] = _parse_field_value(part[eq + 1:])
    if not fields:
        raise LineParseError("missing fields")
    return fields


def parse_line(line: str) -> Point:
    """Parse one write-protocol line or raise LineParseError."""
    text = line.strip()
    if not text:
        raise LineParseError("empty line")
    key_end = _scan(text, 0, ' ', False)
    if key_end >= len(text):
        raise LineParseError("missing fields")
    measurement, tags = _parse_key(text[:key_end])
    rest = text[key_end:].lstrip(' ')
    fields_end = _scan(rest, 0, ' ', True)
    fields = _parse_fields(rest[:fields_end])
    tail = rest[fields_end:].strip()
    timestamp = None
    if tail:
        if not TIMESTAMP_RE.match(tail):
            raise LineParseError(f"invalid timestamp: {tail!r}")
        timestamp = int(tail)
    return Point(measurement=measurement, tags=tags, fields=fields, timestamp=timestamp)


def is_valid_line(line: str) -> bool:
    try:
        parse_line(line)
    except LineParseError:
        return False
    return True
