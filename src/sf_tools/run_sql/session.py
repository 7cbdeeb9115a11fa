"""HTTP session against the Snowflake warehouse endpoints.

Handles login (password or key-pair JWT), statement execution with
in-progress polling, streamed execution and result chunk downloads.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import platform
import time
import uuid
from typing import Any, AsyncIterator

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from .assembler import ResponseAssembler
from .config import (
    CLIENT_APP_ID,
    CLIENT_APP_VERSION,
    JWT_LIFETIME,
    POLL_INTERVAL,
    REQUEST_TIMEOUT,
)
from .decoder import ResultDecoder
from .errors import AuthenticationError, ConfigurationError, StreamError
from .models import (
    ChunkStream,
    ProtocolResponse,
    ResultFormat,
    SessionConfig,
    TypedResult,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/session/v1/login-request"
QUERY_PATH = "/queries/v1/query-request"

# Server-side encryption headers for chunk downloads when no chunk headers are sent
SSE_C_ALGORITHM = "x-amz-server-side-encryption-customer-algorithm"
SSE_C_KEY = "x-amz-server-side-encryption-customer-key"
SSE_C_AES = "AES256"


def account_name(account_identifier: str) -> str:
    """Account locator part of an identifier, upper-cased (``xy123.eu-west-1`` -> ``XY123``)."""
    return account_identifier.split(".")[0].upper()


def default_host(account_identifier: str) -> str:
    return f"https://{account_identifier.lower()}.snowflakecomputing.com"


def normalize_host(host: str) -> str:
    """Accept a bare hostname or a URL; return a base URL without trailing slash."""
    host = host.strip().rstrip("/")
    if "://" not in host:
        host = f"https://{host}"
    return host


def public_key_fingerprint(private_key: PrivateKeyTypes) -> str:
    """SHA256 fingerprint of the public key, as registered on the warehouse user."""
    public_der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return "SHA256:" + base64.b64encode(hashlib.sha256(public_der).digest()).decode()


def build_login_jwt(
    account_identifier: str,
    username: str,
    private_key: PrivateKeyTypes,
    issued_at: int | None = None,
) -> str:
    """Sign the key-pair authentication token."""
    qualified_user = f"{account_name(account_identifier)}.{username.upper()}"
    now = int(time.time()) if issued_at is None else issued_at
    payload = {
        "iss": f"{qualified_user}.{public_key_fingerprint(private_key)}",
        "sub": qualified_user,
        "iat": now,
        "exp": now + JWT_LIFETIME,
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class WarehouseSession:
    """
    Authenticated handle for executing one statement.

    Usage:
        session = WarehouseSession(config, password="...")
        await session.login()
        result = await session.execute_buffered("SELECT 1")
        await session.close()
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        password: str | None = None,
        private_key: PrivateKeyTypes | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = REQUEST_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ):
        if (password is None) == (private_key is None):
            raise ConfigurationError("A session needs exactly one of password or private key")

        self.config = config
        self.poll_interval = poll_interval
        self._password = password
        self._private_key = private_key
        self._base_url = default_host(config.account_identifier)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._token: str | None = None
        self._session_id: Any = None
        self._sequence_id = 0
        self._executed = False

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def with_host(self, host: str | None) -> "WarehouseSession":
        """Point the session at another host. Keeps any token already obtained."""
        if host:
            self._base_url = normalize_host(host)
            logger.debug("Using host override %s", self._base_url)
        return self

    async def __aenter__(self) -> "WarehouseSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ============ Login ============

    def _login_body(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "CLIENT_APP_ID": CLIENT_APP_ID,
            "CLIENT_APP_VERSION": CLIENT_APP_VERSION,
            "ACCOUNT_NAME": account_name(self.config.account_identifier),
            "LOGIN_NAME": self.config.username,
            "SESSION_PARAMETERS": {"CLIENT_VALIDATE_DEFAULT_PARAMETERS": True},
            "CLIENT_ENVIRONMENT": {
                "APPLICATION": CLIENT_APP_ID,
                "OS": platform.system(),
                "OS_VERSION": platform.release(),
                "PYTHON_VERSION": platform.python_version(),
            },
        }
        if self._private_key is not None:
            data["AUTHENTICATOR"] = "SNOWFLAKE_JWT"
            data["TOKEN"] = build_login_jwt(
                self.config.account_identifier, self.config.username, self._private_key
            )
        else:
            data["PASSWORD"] = self._password
        return {"data": data}

    def _login_params(self) -> dict[str, str]:
        params = {
            "warehouse": self.config.warehouse,
            "databaseName": self.config.database,
            "schemaName": self.config.schema,
            "roleName": self.config.role,
        }
        params = {key: value for key, value in params.items() if value}
        params["request_id"] = str(uuid.uuid4())
        return params

    async def login(self) -> None:
        """Establish the session. Failures raise AuthenticationError, no retry."""
        method = "key-pair" if self._private_key is not None else "password"
        logger.info(
            "Logging in to %s as %s (%s)", self._base_url, self.config.username, method
        )
        try:
            response = await self._client.post(
                self._base_url + LOGIN_PATH,
                params=self._login_params(),
                json=self._login_body(),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Login request failed: {e}") from e

        if response.status_code >= 400:
            raise AuthenticationError(f"Login rejected with HTTP {response.status_code}")

        try:
            document = response.json()
        except ValueError as e:
            raise AuthenticationError("Login response is not valid JSON") from e

        if not isinstance(document, dict) or not document.get("success"):
            message = document.get("message") if isinstance(document, dict) else None
            code = document.get("code") if isinstance(document, dict) else None
            detail = f"{code}: {message}" if code else (message or "unknown reason")
            raise AuthenticationError(f"Login rejected: {detail}")

        data = document.get("data") or {}
        token = data.get("token")
        if not token:
            raise AuthenticationError("Login response carries no session token")

        self._token = token
        self._session_id = data.get("sessionId")
        logger.debug("Session %s established", self._session_id)

    # ============ Query execution ============

    def _claim(self) -> None:
        if self._token is None:
            raise AuthenticationError("Session is not logged in")
        if self._executed:
            raise RuntimeError("A session executes exactly one statement")
        self._executed = True

    def _headers(self, fmt: ResultFormat) -> dict[str, str]:
        return {
            "Accept": fmt.accept_header,
            "Authorization": f'Snowflake Token="{self._token}"',
            "User-Agent": f"{CLIENT_APP_ID}/{CLIENT_APP_VERSION}",
        }

    def _query_request(self, statement: str) -> tuple[str, dict[str, str], dict[str, Any]]:
        self._sequence_id += 1
        body = {
            "sqlText": statement,
            "asyncExec": False,
            "sequenceId": self._sequence_id,
            "isInternal": False,
        }
        params = {"requestId": str(uuid.uuid4())}
        return self._base_url + QUERY_PATH, params, body

    def _check_status(self, response: httpx.Response, what: str) -> None:
        if response.status_code in (401, 403):
            raise AuthenticationError(f"{what} rejected with HTTP {response.status_code}")
        if response.status_code >= 400:
            raise StreamError(f"{what} failed with HTTP {response.status_code}")

    async def execute_response(
        self, statement: str, fmt: ResultFormat = ResultFormat.ARROW
    ) -> ProtocolResponse:
        """Execute and return the response record, waiting for completion."""
        self._claim()
        url, params, body = self._query_request(statement)
        logger.info("Executing statement (%s result format)", fmt.value)
        try:
            response = await self._client.post(
                url, params=params, json=body, headers=self._headers(fmt)
            )
        except httpx.TimeoutException as e:
            raise StreamError(f"Query request timed out: {e}", timed_out=True) from e
        except httpx.HTTPError as e:
            raise StreamError(f"Query request failed: {e}") from e

        self._check_status(response, "Query request")
        record = ResponseAssembler().parse(response.content)
        return await self.wait_for_result(record, fmt)

    async def wait_for_result(
        self, record: ProtocolResponse, fmt: ResultFormat = ResultFormat.ARROW
    ) -> ProtocolResponse:
        """Poll the result URL while the warehouse reports the query as running."""
        while record.in_progress:
            if not record.get_result_url:
                return record
            logger.debug("Query %s still running, polling", record.query_id)
            await asyncio.sleep(self.poll_interval)
            try:
                response = await self._client.get(
                    self._base_url + record.get_result_url, headers=self._headers(fmt)
                )
            except httpx.TimeoutException as e:
                raise StreamError(f"Result poll timed out: {e}", timed_out=True) from e
            except httpx.HTTPError as e:
                raise StreamError(f"Result poll failed: {e}") from e
            self._check_status(response, "Result poll")
            record = ResponseAssembler().parse(response.content)
        return record

    async def execute_buffered(
        self, statement: str, fmt: ResultFormat = ResultFormat.ARROW
    ) -> TypedResult:
        """Execute, wait for the full record and decode it."""
        record = await self.execute_response(statement, fmt)
        return await ResultDecoder(fetcher=self.fetch_chunk).decode(record)

    def execute_streaming(
        self, statement: str, fmt: ResultFormat = ResultFormat.ARROW
    ) -> ChunkStream:
        """Execute and hand back the response body as a single-pass chunk stream.

        The request is only sent once the stream is iterated.
        """
        self._claim()
        url, params, body = self._query_request(statement)
        logger.info("Executing statement, streaming (%s result format)", fmt.value)
        return ChunkStream(self._stream_body(url, params, body, fmt))

    async def _stream_body(
        self,
        url: str,
        params: dict[str, str],
        body: dict[str, Any],
        fmt: ResultFormat,
    ) -> AsyncIterator[bytes]:
        request = self._client.build_request(
            "POST", url, params=params, json=body, headers=self._headers(fmt)
        )
        response = await self._client.send(request, stream=True)
        try:
            self._check_status(response, "Query request")
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()

    async def fetch_chunk(
        self, url: str, headers: dict[str, str] | None = None, qrmk: str | None = None
    ) -> bytes:
        """Download one result chunk referenced by a response record."""
        if headers:
            request_headers = dict(headers)
        elif qrmk:
            request_headers = {SSE_C_ALGORITHM: SSE_C_AES, SSE_C_KEY: qrmk}
        else:
            request_headers = {}

        try:
            response = await self._client.get(url, headers=request_headers)
        except httpx.TimeoutException as e:
            raise StreamError(f"Chunk download timed out: {e}", timed_out=True) from e
        except httpx.HTTPError as e:
            raise StreamError(f"Chunk download failed: {e}") from e

        if response.status_code >= 400:
            raise StreamError(f"Chunk download failed with HTTP {response.status_code}")
        return response.content
