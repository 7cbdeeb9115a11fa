"""Data model for a single run-sql invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Union

import pyarrow as pa

from .errors import StreamError

# Warehouse codes reported while a statement is still executing
QUERY_IN_PROGRESS_CODES = {"333333", "333334"}


@dataclass(frozen=True)
class CertificateCredential:
    """Key-pair credential holding PEM private key material."""

    private_key_pem: bytes
    passphrase: bytes | None = field(default=None, repr=False)

    def __repr__(self) -> str:
        return "CertificateCredential(private_key_pem=<redacted>)"


@dataclass(frozen=True)
class PasswordCredential:
    """Password credential."""

    password: str

    def __repr__(self) -> str:
        return "PasswordCredential(password=<redacted>)"


Credential = Union[CertificateCredential, PasswordCredential]


@dataclass(frozen=True)
class SessionConfig:
    """Connection settings for one session. Immutable once built."""

    account_identifier: str
    username: str
    warehouse: str | None = None
    database: str | None = None
    schema: str | None = None
    role: str | None = None
    host: str | None = None


class OutputMode(str, Enum):
    """How a result is rendered. Values match the ``--output`` choices."""

    COLUMNAR = "arrow"
    TEXTUAL = "json"
    RAW_PROTOCOL = "query"


class ResultFormat(str, Enum):
    """Result encoding requested from the warehouse."""

    ARROW = "arrow"
    JSON = "json"

    @property
    def accept_header(self) -> str:
        if self is ResultFormat.ARROW:
            return "application/snowflake"
        return "application/json"


@dataclass
class ProtocolResponse:
    """A parsed query-request response record.

    ``raw`` keeps the full document as received; the properties read the
    fields the pipeline cares about out of ``data``.
    """

    success: bool
    code: str | None = None
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, document: dict[str, Any]) -> "ProtocolResponse":
        data = document.get("data") or {}
        code = document.get("code")
        return cls(
            success=bool(document["success"]),
            code=str(code) if code is not None else None,
            message=document.get("message"),
            data=data if isinstance(data, dict) else {},
            raw=document,
        )

    @property
    def in_progress(self) -> bool:
        return self.code in QUERY_IN_PROGRESS_CODES

    @property
    def query_id(self) -> str | None:
        return self.data.get("queryId")

    @property
    def get_result_url(self) -> str | None:
        return self.data.get("getResultUrl")

    @property
    def result_format(self) -> str | None:
        value = self.data.get("queryResultFormat")
        return value.lower() if isinstance(value, str) else None

    @property
    def returned(self) -> int | None:
        value = self.data.get("returned")
        return int(value) if value is not None else None

    @property
    def rowtype(self) -> list[dict[str, Any]]:
        return self.data.get("rowtype") or []

    @property
    def rowset(self) -> list[Any] | None:
        return self.data.get("rowset")

    @property
    def rowset_base64(self) -> str | None:
        return self.data.get("rowsetBase64")

    @property
    def chunks(self) -> list[dict[str, Any]]:
        return self.data.get("chunks") or []

    @property
    def chunk_headers(self) -> dict[str, str]:
        return self.data.get("chunkHeaders") or {}

    @property
    def qrmk(self) -> str | None:
        return self.data.get("qrmk")


@dataclass
class ColumnarResult:
    """One or more Arrow record batches."""

    batches: list[pa.RecordBatch]

    @property
    def num_rows(self) -> int:
        return sum(batch.num_rows for batch in self.batches)


@dataclass(frozen=True)
class TextualResult:
    """A JSON-encoded result document."""

    document: str
    schema: tuple[str, ...] = ()


@dataclass(frozen=True)
class EmptyResult:
    """Statement succeeded without returning rows."""


TypedResult = Union[ColumnarResult, TextualResult, EmptyResult]

RawChunkStream = AsyncIterable[bytes]


class ChunkStream:
    """Single-pass wrapper around an async iterator of byte chunks.

    Iterating a second time raises StreamError instead of silently
    yielding nothing.
    """

    def __init__(self, chunks: AsyncIterator[bytes]):
        self._chunks = chunks
        self._started = False

    @property
    def consumed(self) -> bool:
        return self._started

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._started:
            raise StreamError("Response stream has already been consumed")
        self._started = True
        return self._chunks.__aiter__()
