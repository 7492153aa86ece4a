"""Render query results as column tables, CSV or JSON text."""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Union
import pandas as pd

from influxcli.core.result import QueryResult, Series
from influxcli.core.session import OutputFormat, Precision
from influxcli.core.timestamps import convert_timestamp

logger = logging.getLogger(__name__)

COLUMN_GAP = '  '
JSON_INDENT = 4


def render(result: QueryResult,
           fmt: Union[OutputFormat, str],
           precision: Union[Precision, str] = Precision.NS,
           pretty: bool = False) -> str:
    """Render a QueryResult in the session's output format.

    Statement-level errors are not rendered by the column/csv formats; callers
    report them separately (see QueryResult.errors).
    """
    if isinstance(fmt, str) and not isinstance(fmt, OutputFormat):
        try:
            fmt = OutputFormat(fmt)
        except ValueError:
            raise ValueError(f"Unsupported output format: {fmt}")
    precision = Precision.parse(precision)
    if fmt is OutputFormat.COLUMN:
        return _render_column(result, precision)
    if fmt is OutputFormat.CSV:
        return _render_csv(result, precision)
    if fmt is OutputFormat.JSON:
        return _render_json(result, precision, pretty)
    raise ValueError(f"Unsupported output format: {fmt}")


def _rows(series: Series, precision: Precision) -> List[List[Any]]:
    """Copy of the series rows with the time column converted."""
    idx = series.time_index()
    rows = []
    for row in series.values:
        out = list(row)
        if idx is not None and idx < len(out):
            out[idx] = convert_timestamp(out[idx], precision)
        rows.append(out)
    return rows


def _cell(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _tag_line(tags: Dict[str, str]) -> str:
    return ', '.join(f"{k}={v}" for k, v in sorted(tags.items()))


# --- column ---

def _table_lines(columns: Sequence[str], rows: List[List[Any]]) -> List[str]:
    header = [str(c) for c in columns]
    cells = [[_cell(v) for v in row] for row in rows]
    widths = [len(h) for h in header]
    for row in cells:
        for i, sval in enumerate(row[:len(widths)]):
            widths[i] = max(widths[i], len(sval))

    def line(parts: Sequence[str]) -> str:
        return COLUMN_GAP.join(p.ljust(widths[i]) for i, p in enumerate(parts[:len(widths)])).rstrip()

    out = [line(header), line(['-' * len(h) for h in header])]
    out.extend(line(row) for row in cells)
    return out


def _render_column(result: QueryResult, precision: Precision) -> str:
    blocks: List[str] = []
    for stmt in result.results:
        for series in stmt.series:
            lines = [f"name: {series.name}"]
            if series.tags:
                lines.append(f"tags: {_tag_line(series.tags)}")
            if series.values:
                lines.extend(_table_lines(series.columns, _rows(series, precision)))
            blocks.append('\n'.join(lines))
    return '\n\n'.join(blocks)


# --- csv ---

def _render_csv(result: QueryResult, precision: Precision) -> str:
    chunks: List[str] = []
    previous_header: Optional[List[str]] = None
    for stmt in result.results:
        for series in stmt.series:
            tag_keys = sorted(series.tags)
            header = tag_keys + [str(c) for c in series.columns]
            tag_values = [_cell(series.tags[k]) for k in tag_keys]
            data = [tag_values + [_cell(v) for v in row] for row in _rows(series, precision)]
            frame = pd.DataFrame(data, columns=header, dtype=object)
            emit_header = header != previous_header
            if not emit_header and frame.empty:
                continue
            chunks.append(frame.to_csv(index=False, header=emit_header, lineterminator='\n'))
            previous_header = header
    return ''.join(chunks).rstrip('\n')


# --- json ---

def _series_dict(series: Series, precision: Precision) -> Dict[str, Any]:
    doc: Dict[str, Any] = {'name': series.name}
    if series.tags:
        doc['tags'] = dict(series.tags)
    doc['columns'] = list(series.columns)
    doc['values'] = _rows(series, precision)
    return doc


def _render_json(result: QueryResult, precision: Precision, pretty: bool) -> str:
    docs = []
    for stmt in result.results:
        doc: Dict[str, Any] = {
            'statement_id': stmt.statement_id,
            'series': [_series_dict(s, precision) for s in stmt.series],
        }
        if stmt.error:
            doc['error'] = stmt.error
        if pretty:
            docs.append(json.dumps(doc, indent=JSON_INDENT, ensure_ascii=False))
        else:
            docs.append(json.dumps(doc, separators=(',', ':'), ensure_ascii=False))
    return '\n'.join(docs)
