"""Query response model decoded from the server's JSON payload."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from influxcli.core.errors import PermanentServerError


@dataclass(frozen=True)
class Series:
    name: str
    tags: Dict[str, str] = field(default_factory=dict)
    columns: Tuple[str, ...] = ()
    values: Tuple[Tuple[Any, ...], ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Series":
        return cls(
            name=data.get('name', ''),
            tags=dict(data.get('tags') or {}),
            columns=tuple(data.get('columns') or ()),
            values=tuple(tuple(row) for row in (data.get('values') or ())),
        )

    def time_index(self) -> Optional[int]:
        try:
            return self.columns.index('time')
        except ValueError:
            return None


@dataclass(frozen=True)
class StatementResult:
    statement_id: int
    series: Tuple[Series, ...] = ()
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_id: int = 0) -> "StatementResult":
        return cls(
            statement_id=int(data.get('statement_id', default_id)),
            series=tuple(Series.from_dict(s) for s in (data.get('series') or ())),
            error=data.get('error'),
        )


@dataclass(frozen=True)
class QueryResult:
    results: Tuple[StatementResult, ...] = ()

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "QueryResult":
        """Decode ``{"results": [...]}``; a top-level ``error`` is a permanent failure."""
        if not isinstance(payload, dict):
            raise PermanentServerError("unexpected response body from server")
        if payload.get('error'):
            raise PermanentServerError(str(payload['error']))
        return cls(results=tuple(
            StatementResult.from_dict(r, default_id=i) for i, r in enumerate(payload.get('results') or ())
        ))

    def errors(self) -> List[str]:
        return [r.error for r in self.results if r.error]
