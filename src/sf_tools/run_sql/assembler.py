"""Reassembly of a streamed response body into one protocol record."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx

from .errors import PayloadParseError, RunSqlError, StreamError
from .models import ProtocolResponse, RawChunkStream

logger = logging.getLogger(__name__)


class ResponseAssembler:
    """Drains a chunk stream in arrival order and parses the result.

    Usage:
        assembler = ResponseAssembler()
        response = await assembler.assemble(session.execute_streaming(sql))
    """

    async def assemble(self, stream: RawChunkStream) -> ProtocolResponse:
        """Drain ``stream`` completely, then parse the concatenated bytes."""
        payload = await self.assemble_bytes(stream)
        return self.parse(payload)

    async def assemble_bytes(self, stream: RawChunkStream) -> bytes:
        """Concatenate every chunk of ``stream`` in the order it arrives.

        Any failure while waiting for the next chunk aborts assembly; the
        partial buffer is discarded.
        """
        buffer = bytearray()
        count = 0
        try:
            async for chunk in stream:
                if not isinstance(chunk, (bytes, bytearray, memoryview)):
                    raise StreamError(
                        f"Chunk {count} is {type(chunk).__name__}, expected bytes"
                    )
                buffer.extend(chunk)
                count += 1
        except RunSqlError:
            raise
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise StreamError(
                f"Response stream timed out after {count} chunk(s)", timed_out=True
            ) from e
        except Exception as e:
            raise StreamError(
                f"Response stream failed after {count} chunk(s): {e}"
            ) from e

        logger.debug("Assembled %d chunk(s), %d bytes", count, len(buffer))
        return bytes(buffer)

    def parse(self, payload: bytes) -> ProtocolResponse:
        """Parse a complete payload as a query-request response record."""
        if not payload:
            raise PayloadParseError("Response body is empty")

        try:
            document = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PayloadParseError(f"Response body is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise PayloadParseError(
                f"Response body is a JSON {type(document).__name__}, expected an object"
            )
        if "success" not in document:
            raise PayloadParseError("Response record has no 'success' field")
        if not isinstance(document["success"], bool):
            raise PayloadParseError(
                f"Response field 'success' is {document['success']!r}, expected a boolean"
            )

        return ProtocolResponse.from_dict(document)
