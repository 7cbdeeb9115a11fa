"""Top-level execution of one statement, from credentials to rendered text."""

from __future__ import annotations

import logging
from enum import Enum

import httpx

from .assembler import ResponseAssembler
from .auth import select_session
from .decoder import ResultDecoder, describe_rowtype
from .models import (
    ColumnarResult,
    Credential,
    OutputMode,
    ProtocolResponse,
    ResultFormat,
    SessionConfig,
)
from .output import OutputRouter, Renderable
from .session import WarehouseSession

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    IDLE = "idle"
    AUTHENTICATED = "authenticated"
    EXECUTING = "executing"
    ASSEMBLING = "assembling"
    DECODED = "decoded"
    RENDERED = "rendered"
    FAILED = "failed"


# Allowed forward transitions; FAILED is reachable from any non-terminal state
TRANSITIONS: dict[ExecutionState, set[ExecutionState]] = {
    ExecutionState.IDLE: {ExecutionState.AUTHENTICATED},
    ExecutionState.AUTHENTICATED: {ExecutionState.EXECUTING},
    ExecutionState.EXECUTING: {ExecutionState.ASSEMBLING, ExecutionState.DECODED},
    ExecutionState.ASSEMBLING: {ExecutionState.DECODED},
    ExecutionState.DECODED: {ExecutionState.RENDERED},
    ExecutionState.RENDERED: set(),
    ExecutionState.FAILED: set(),
}


def result_format_for(mode: OutputMode) -> ResultFormat:
    """JSON output asks the warehouse for a JSON rowset, everything else for Arrow."""
    if mode is OutputMode.TEXTUAL:
        return ResultFormat.JSON
    return ResultFormat.ARROW


class ExecutionOrchestrator:
    """
    Runs a single statement through the pipeline.

    Streaming: chunk stream -> ResponseAssembler -> ResultDecoder -> OutputRouter.
    Buffered: the session returns a decoded result (or the raw record for
    query output) and only the OutputRouter runs here.

    An orchestrator is single-shot: once it reaches RENDERED or FAILED it
    cannot run again.

    Usage:
        orchestrator = ExecutionOrchestrator()
        await orchestrator.authenticate(credential, config)
        text = await orchestrator.run("SELECT 1", OutputMode.COLUMNAR, stream=True)
    """

    def __init__(
        self,
        session: WarehouseSession | None = None,
        *,
        assembler: ResponseAssembler | None = None,
        decoder: ResultDecoder | None = None,
        router: OutputRouter | None = None,
    ):
        self.state = ExecutionState.IDLE
        self.failure: BaseException | None = None
        self.session: WarehouseSession | None = None
        self.assembler = assembler or ResponseAssembler()
        self.router = router or OutputRouter()
        self._decoder = decoder
        if session is not None:
            self.session = session
            self._advance(ExecutionState.AUTHENTICATED)

    def _advance(self, state: ExecutionState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Cannot move from {self.state.value} to {state.value}")
        logger.debug("Execution state %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(self, error: BaseException) -> None:
        if self.state not in (ExecutionState.RENDERED, ExecutionState.FAILED):
            logger.debug("Execution failed in state %s: %s", self.state.value, error)
            self.state = ExecutionState.FAILED
            self.failure = error

    @property
    def decoder(self) -> ResultDecoder:
        if self._decoder is None:
            fetcher = self.session.fetch_chunk if self.session is not None else None
            self._decoder = ResultDecoder(fetcher=fetcher)
        return self._decoder

    async def authenticate(
        self,
        credential: Credential,
        config: SessionConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> WarehouseSession:
        if self.state is not ExecutionState.IDLE:
            raise RuntimeError(f"Cannot authenticate in state {self.state.value}")
        try:
            self.session = await select_session(credential, config, client=client)
        except Exception as e:
            self._fail(e)
            raise
        self._advance(ExecutionState.AUTHENTICATED)
        return self.session

    async def run(self, statement: str, mode: OutputMode, stream: bool = False) -> str:
        """Execute ``statement`` and return the rendered output."""
        if self.state is not ExecutionState.AUTHENTICATED:
            raise RuntimeError(f"Cannot run a statement in state {self.state.value}")

        try:
            self._advance(ExecutionState.EXECUTING)
            if stream:
                result = await self._run_streaming(statement, mode)
            else:
                result = await self._run_buffered(statement, mode)
            self._advance(ExecutionState.DECODED)

            output = self.router.render(mode, result)
            self._advance(ExecutionState.RENDERED)
        except Exception as e:
            self._fail(e)
            raise
        return output

    def _require_session(self) -> WarehouseSession:
        if self.session is None:
            raise RuntimeError("No session; authenticate first")
        return self.session

    async def _run_buffered(self, statement: str, mode: OutputMode) -> Renderable:
        session = self._require_session()
        if mode is OutputMode.RAW_PROTOCOL:
            return await session.execute_response(statement)
        result = await session.execute_buffered(statement, result_format_for(mode))
        self._log_result(result)
        return result

    async def _run_streaming(self, statement: str, mode: OutputMode) -> Renderable:
        session = self._require_session()
        fmt = result_format_for(mode)
        chunks = session.execute_streaming(statement, fmt)

        self._advance(ExecutionState.ASSEMBLING)
        record = await self.assembler.assemble(chunks)
        record = await session.wait_for_result(record, fmt)
        if mode is OutputMode.RAW_PROTOCOL:
            return record

        result = await self.decoder.decode(record)
        if logger.isEnabledFor(logging.DEBUG) and record.rowtype:
            logger.debug("Result columns: %s", ", ".join(describe_rowtype(record.rowtype)))
        self._log_result(result)
        return result

    def _log_result(self, result: Renderable) -> None:
        if isinstance(result, ColumnarResult):
            logger.info(
                "Decoded %d batch(es), %d row(s)", len(result.batches), result.num_rows
            )
        elif not isinstance(result, ProtocolResponse):
            logger.info("Decoded %s", type(result).__name__)


async def run_statement(
    credential: Credential,
    config: SessionConfig,
    statement: str,
    mode: OutputMode = OutputMode.COLUMNAR,
    stream: bool = False,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Authenticate, execute one statement, render it and close the session."""
    orchestrator = ExecutionOrchestrator()
    try:
        await orchestrator.authenticate(credential, config, client=client)
        return await orchestrator.run(statement, mode, stream=stream)
    finally:
        if orchestrator.session is not None:
            await orchestrator.session.close()
