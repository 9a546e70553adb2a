"""
Block runner: executes a named workflow block against the engine.

The core only depends on the BlockRunner protocol. HttpBlockRunner is the
concrete transport: one POST per block run, retried only on transient
failures (connection errors, timeouts, 5xx). 4xx responses are permanent.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llmbridge.config import BlockRunnerConfig, get_settings
from llmbridge.errors import BlockExecutionError
from llmbridge.models import BlockContext, BlockResponse

logger = structlog.get_logger()


class BlockRunner(Protocol):
    async def run_block(self, ctx: BlockContext, block_name: str, args: dict[str, Any]) -> BlockResponse: ...


class _TransientBlockError(Exception):
    """Network failure or 5xx, safe to retry."""

    pass


class HttpBlockRunner:
    """BlockRunner that posts block runs to the workflow engine over HTTP."""

    def __init__(
        self,
        config: Optional[BlockRunnerConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._cfg = config or get_settings().block_runner
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._cfg.api_key:
            headers["Authorization"] = f"Bearer {self._cfg.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._cfg.url.rstrip('/')}/blocks/run"
        try:
            resp = await client.post(url, json=body, headers=self._headers(), timeout=self._cfg.timeout)
        except httpx.TransportError as e:
            raise _TransientBlockError(str(e)) from e
        if resp.status_code >= 500:
            raise _TransientBlockError(f"{resp.status_code} from block runner: {resp.text[:200]}")
        if resp.status_code >= 400:
            raise BlockExecutionError(
                f"{resp.status_code} from block runner: {resp.text[:200]}",
                block_name=body["block"],
            )
        data = resp.json()
        if not isinstance(data, dict):
            raise BlockExecutionError(f"Block runner returned non-object payload: {type(data).__name__}", block_name=body["block"])
        return data

    async def run_block(self, ctx: BlockContext, block_name: str, args: dict[str, Any]) -> BlockResponse:
        body: dict[str, Any] = {"block": block_name, "args": args, "user": ctx.user_id}
        if ctx.job_id:
            body["job_id"] = ctx.job_id

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(0, self._cfg.max_retries) + 1),
            wait=wait_exponential(multiplier=1, min=1, max=20),
            retry=retry_if_exception_type(_TransientBlockError),
            before_sleep=lambda rs: logger.warning(
                "block_run_retry",
                block=block_name,
                attempt=rs.attempt_number,
                error=str(rs.outcome.exception()) if rs.outcome else "unknown",
            ),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if self._client is not None:
                        data = await self._post(self._client, body)
                    else:
                        async with httpx.AsyncClient() as client:
                            data = await self._post(client, body)
        except _TransientBlockError as e:
            raise BlockExecutionError(str(e), block_name=block_name) from e

        return BlockResponse.model_validate(data)
