import base64
import json
from typing import Any, Callable

import httpx
import pyarrow as pa
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sf_tools.run_sql.models import SessionConfig

ACCOUNT = "XY12345"
USER = "ANALYST"
BASE_URL = "https://xy12345.snowflakecomputing.com"


def arrow_ipc(*batches: pa.RecordBatch) -> bytes:
    """Serialize record batches as one Arrow IPC stream."""
    sink = pa.BufferOutputStream()
    with pa.ipc.new_stream(sink, batches[0].schema) as writer:
        for batch in batches:
            writer.write_batch(batch)
    return sink.getvalue().to_pybytes()


def select_one_batch() -> pa.RecordBatch:
    return pa.RecordBatch.from_pydict({"1": pa.array([1], type=pa.int8())})


def arrow_record(*batches: pa.RecordBatch, **data: Any) -> dict[str, Any]:
    """A successful Arrow-format query response document."""
    rows = sum(batch.num_rows for batch in batches)
    body = {
        "queryId": "01b2-0000",
        "queryResultFormat": "arrow",
        "returned": rows,
        "total": rows,
        "rowtype": [{"name": name, "type": "fixed"} for name in batches[0].schema.names],
        "rowsetBase64": base64.b64encode(arrow_ipc(*batches)).decode(),
    }
    body.update(data)
    return {"success": True, "code": None, "message": None, "data": body}


def json_record(rowset: list[Any], names: list[str], **data: Any) -> dict[str, Any]:
    """A successful JSON-format query response document."""
    body = {
        "queryId": "01b2-0001",
        "queryResultFormat": "json",
        "returned": len(rowset),
        "rowtype": [{"name": name, "type": "text"} for name in names],
        "rowset": rowset,
    }
    body.update(data)
    return {"success": True, "code": None, "message": None, "data": body}


def empty_record() -> dict[str, Any]:
    return {
        "success": True,
        "code": None,
        "message": None,
        "data": {"queryId": "01b2-0002", "queryResultFormat": "arrow", "returned": 0, "rowsetBase64": ""},
    }


def login_ok(token: str = "session-token") -> httpx.Response:
    return httpx.Response(
        200,
        json={"success": True, "data": {"token": token, "masterToken": "m", "sessionId": 42}},
    )


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def iter_chunks(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(
        account_identifier=ACCOUNT,
        username=USER,
        warehouse="COMPUTE_WH",
        database="ANALYTICS",
        schema="PUBLIC",
        role="REPORTER",
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_pem(rsa_key) -> bytes:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def warehouse() -> "FakeWarehouse":
    return FakeWarehouse()


class FakeWarehouse:
    """Request handler standing in for the login and query endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.query_document: dict[str, Any] = arrow_record(select_one_batch())
        self.stream_chunk_size: int | None = None
        self.login_response: httpx.Response | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/session/v1/login-request":
            return self.login_response or login_ok()
        if request.url.path == "/queries/v1/query-request":
            payload = json.dumps(self.query_document).encode()
            if self.stream_chunk_size:
                size = self.stream_chunk_size
                parts = [payload[i : i + size] for i in range(0, len(payload), size)]
                return httpx.Response(200, content=iter_chunks(parts))
            return httpx.Response(200, content=payload)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return mock_client(self)

    def bodies(self, path: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]
