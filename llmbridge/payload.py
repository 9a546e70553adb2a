"""
Entry point of the per-provider ``llm_query`` block.

The workflow engine hands each provider's block a raw payload
(instruction, prompt, temperature, model_id, args). extract_payload checks
it and run_llm_query executes it against the provider that owns the block.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from llmbridge.errors import InvalidInput, ProviderMismatch
from llmbridge.model_id import parse_model_id
from llmbridge.models import BlockContext, QueryResult
from llmbridge.registry import ProviderRegistry


class LlmQueryPayload(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    instruction: str = ""
    prompt: str
    temperature: float = 0
    model_name: str
    args: Optional[dict[str, Any]] = Field(default=None)


def extract_payload(payload: Optional[dict[str, Any]], model_provider: str) -> LlmQueryPayload:
    """
    Validate an llm_query payload for the block owned by ``model_provider``.

    Raises:
        InvalidInput: no payload or no prompt.
        InvalidIdentifier: model_id is malformed.
        ProviderMismatch: model_id names a different provider.
    """
    if not payload:
        raise InvalidInput("No payload provided.")

    prompt = payload.get("prompt")
    if not prompt:
        raise InvalidInput("No prompt provided.")

    identity = parse_model_id(payload.get("model_id"))
    if identity.provider != model_provider:
        raise ProviderMismatch(f"model_provider ({identity.provider}) != {model_provider}")

    return LlmQueryPayload(
        instruction=payload.get("instruction") or "",
        prompt=prompt,
        temperature=payload.get("temperature") or 0,
        model_name=identity.name,
        args=payload.get("args"),
    )


async def run_llm_query(
    registry: ProviderRegistry,
    ctx: BlockContext,
    payload: Optional[dict[str, Any]],
    model_provider: str,
) -> QueryResult:
    provider = registry.get(model_provider)
    request = extract_payload(payload, model_provider)
    return await provider.query(
        ctx,
        request.prompt,
        request.instruction,
        request.model_name,
        request.temperature,
        request.args,
    )
