"""Rendering of query results for the terminal."""

from __future__ import annotations

import json
from typing import Any, Union

import pyarrow as pa

from .errors import ShapeMismatchError
from .models import (
    ColumnarResult,
    EmptyResult,
    OutputMode,
    ProtocolResponse,
    TextualResult,
    TypedResult,
)

SUCCESS_NOTICE = "Query finished successfully"
MAX_COLUMN_WIDTH = 50
NULL_TEXT = "NULL"

Renderable = Union[TypedResult, ProtocolResponse]


def _cell(value: Any) -> str:
    if value is None:
        return NULL_TEXT
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def format_batches_table(batches: list[pa.RecordBatch]) -> str:
    """Format Arrow record batches as an ASCII table."""
    table = pa.Table.from_batches(batches)
    columns = table.column_names
    values = [column.to_pylist() for column in table.columns]
    rows = [[_cell(value) for value in row] for row in zip(*values)]

    # Calculate column widths, capped
    widths = [len(col) for col in columns]
    for row in rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))
    widths = [min(w, MAX_COLUMN_WIDTH) for w in widths]

    lines = []
    header = " | ".join(
        col.ljust(widths[i])[: widths[i]] for i, col in enumerate(columns)
    )
    separator = "-+-".join("-" * w for w in widths)
    lines.append(header)
    lines.append(separator)

    for row in rows:
        formatted_row = []
        for i, val in enumerate(row):
            if len(val) > widths[i]:
                val = val[: widths[i] - 3] + "..."
            formatted_row.append(val.ljust(widths[i]))
        lines.append(" | ".join(formatted_row).rstrip())

    lines.append(f"\n({len(rows)} row{'s' if len(rows) != 1 else ''})")

    return "\n".join(lines)


def format_protocol_dump(response: ProtocolResponse) -> str:
    """Debug dump of a response record as received from the warehouse."""
    summary = (
        f"ProtocolResponse(success={response.success!r}, code={response.code!r}, "
        f"message={response.message!r}, query_id={response.query_id!r})"
    )
    body = json.dumps(response.raw, indent=2, sort_keys=True, default=str)
    return f"{summary}\n{body}"


class OutputRouter:
    """Maps (output mode, result) to the text printed on stdout."""

    def render(self, mode: OutputMode, result: Renderable) -> str:
        if mode is OutputMode.COLUMNAR:
            return self._render_columnar(result)
        if mode is OutputMode.TEXTUAL:
            if isinstance(result, TextualResult):
                return result.document
            raise ShapeMismatchError(
                f"JSON output needs a textual result, got {type(result).__name__}"
            )
        if mode is OutputMode.RAW_PROTOCOL:
            if isinstance(result, ProtocolResponse):
                return format_protocol_dump(result)
            raise ShapeMismatchError(
                f"Query output needs the raw response record, got {type(result).__name__}"
            )
        raise ShapeMismatchError(f"Unknown output mode: {mode!r}")

    def _render_columnar(self, result: Renderable) -> str:
        # Arrow output degrades to whatever shape the warehouse returned
        if isinstance(result, ColumnarResult):
            return format_batches_table(result.batches)
        if isinstance(result, TextualResult):
            return result.document
        if isinstance(result, EmptyResult):
            return SUCCESS_NOTICE
        raise ShapeMismatchError(
            f"Arrow output needs a decoded result, got {type(result).__name__}"
        )
