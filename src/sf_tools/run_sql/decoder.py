"""Decoding of protocol response records into typed results.

The warehouse returns either a JSON rowset inline, or Arrow IPC streams:
the first part base64-encoded inline and any further parts as chunks that
have to be downloaded separately.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import pyarrow as pa

from .errors import DecodeError, QueryError
from .models import (
    ColumnarResult,
    EmptyResult,
    ProtocolResponse,
    TextualResult,
    TypedResult,
)

logger = logging.getLogger(__name__)

# (url, chunk headers, qrmk) -> chunk bytes
ChunkFetcher = Callable[[str, dict[str, str], Optional[str]], Awaitable[bytes]]


class ResultDecoder:
    """Turns a ProtocolResponse into a ColumnarResult, TextualResult or EmptyResult."""

    def __init__(self, fetcher: ChunkFetcher | None = None):
        self.fetcher = fetcher

    async def decode(self, response: ProtocolResponse) -> TypedResult:
        if not response.success:
            raise QueryError(response.message or "Statement failed", code=response.code)

        self._check_shape(response)

        if response.returned == 0:
            return EmptyResult()

        fmt = response.result_format
        if fmt == "json" or (fmt is None and response.rowset is not None):
            return self._decode_textual(response)
        if fmt == "arrow" or response.rowset_base64 is not None or response.chunks:
            parts = await self._collect_arrow_parts(response)
            return ColumnarResult(batches=self.decode_batches(parts))

        raise DecodeError(
            f"Response for query {response.query_id or '<unknown>'} carries no result data"
        )

    def _check_shape(self, response: ProtocolResponse) -> None:
        """Reject result metadata whose types do not match the protocol."""
        data = response.data

        returned = data.get("returned")
        if returned is not None:
            try:
                int(returned)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Row count {returned!r} is not an integer") from e

        for key in ("rowtype", "chunks"):
            entries = data.get(key)
            if entries is None:
                continue
            if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
                raise DecodeError(f"Result field '{key}' must be a list of objects")

        headers = data.get("chunkHeaders")
        if headers is not None and not isinstance(headers, dict):
            raise DecodeError("Result field 'chunkHeaders' must be an object")

    def _decode_textual(self, response: ProtocolResponse) -> TextualResult:
        rowset = response.rowset
        if not isinstance(rowset, list):
            raise DecodeError("JSON result has no rowset array")
        schema = tuple(column.get("name", "") for column in response.rowtype)
        return TextualResult(
            document=json.dumps(rowset, separators=(",", ":"), ensure_ascii=False),
            schema=schema,
        )

    async def _collect_arrow_parts(self, response: ProtocolResponse) -> list[bytes]:
        parts: list[bytes] = []

        inline = response.rowset_base64
        if inline:
            try:
                parts.append(base64.b64decode(inline, validate=True))
            except (binascii.Error, TypeError, ValueError) as e:
                raise DecodeError(f"Inline rowset is not valid base64: {e}") from e

        if response.chunks:
            if self.fetcher is None:
                raise DecodeError(
                    f"Result references {len(response.chunks)} chunk(s) but no chunk fetcher is configured"
                )
            for index, chunk in enumerate(response.chunks):
                url = chunk.get("url")
                if not url:
                    raise DecodeError(f"Result chunk {index} has no url")
                logger.debug("Fetching result chunk %d/%d", index + 1, len(response.chunks))
                parts.append(await self.fetcher(url, response.chunk_headers, response.qrmk))

        return parts

    def decode_batches(self, parts: list[bytes]) -> list[pa.RecordBatch]:
        """Read each part as an Arrow IPC stream, keeping batch order."""
        batches: list[pa.RecordBatch] = []
        schema: pa.Schema | None = None

        for index, part in enumerate(parts):
            try:
                reader = pa.ipc.open_stream(pa.py_buffer(part))
                part_batches = list(reader)
            except (pa.ArrowInvalid, pa.ArrowException, OSError) as e:
                raise DecodeError(f"Result part {index} is not a valid Arrow stream: {e}") from e

            if schema is None:
                schema = reader.schema
            elif not reader.schema.equals(schema):
                raise DecodeError(
                    f"Result part {index} schema does not match the first part"
                )
            batches.extend(part_batches)

        if not batches:
            raise DecodeError("Arrow result contains no record batches")
        return batches


def describe_rowtype(rowtype: list[dict[str, Any]]) -> list[str]:
    """Column descriptions like ``ID NUMBER(38,0)`` for verbose output."""
    descriptions = []
    for column in rowtype:
        kind = str(column.get("type", "")).upper()
        if column.get("precision") is not None:
            kind += f"({column['precision']},{column.get('scale') or 0})"
        descriptions.append(f"{column.get('name', '')} {kind}".strip())
    return descriptions
