"""Run a single SQL statement against a Snowflake warehouse."""

from .assembler import ResponseAssembler
from .auth import build_session, parse_private_key, select_session
from .cli import main
from .config import build_session_config, credential_from_inputs
from .decoder import ResultDecoder
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    PayloadParseError,
    QueryError,
    RunSqlError,
    ShapeMismatchError,
    StreamError,
)
from .executor import ExecutionOrchestrator, ExecutionState, run_statement
from .models import (
    CertificateCredential,
    ColumnarResult,
    EmptyResult,
    OutputMode,
    PasswordCredential,
    ProtocolResponse,
    ResultFormat,
    SessionConfig,
    TextualResult,
)
from .output import OutputRouter
from .session import WarehouseSession

__all__ = [
    "AuthenticationError",
    "CertificateCredential",
    "ColumnarResult",
    "ConfigurationError",
    "DecodeError",
    "EmptyResult",
    "ExecutionOrchestrator",
    "ExecutionState",
    "OutputMode",
    "OutputRouter",
    "PasswordCredential",
    "PayloadParseError",
    "ProtocolResponse",
    "QueryError",
    "ResponseAssembler",
    "ResultDecoder",
    "ResultFormat",
    "RunSqlError",
    "SessionConfig",
    "ShapeMismatchError",
    "StreamError",
    "TextualResult",
    "WarehouseSession",
    "build_session",
    "build_session_config",
    "credential_from_inputs",
    "main",
    "parse_private_key",
    "run_statement",
    "select_session",
]
