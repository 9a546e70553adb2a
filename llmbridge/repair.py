"""
Self-healing JSON parsing.

Backend responses that should be JSON are often malformed: truncated,
commented, or full of escaped newlines. fix_json_string parses what it can
and otherwise asks the model itself to rewrite the text, bounded by an
attempt budget and a cooldown between attempts.

State per attempt is a RepairAttempt (attempt count + current candidate).
Correction calls are issued strictly one at a time.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import structlog

from llmbridge.config import get_settings
from llmbridge.errors import BlockExecutionError, InvalidInput, JsonRepairExhausted
from llmbridge.models import BlockContext
from llmbridge.observability import metrics as obs_metrics

if TYPE_CHECKING:
    from llmbridge.providers.base import LLMProvider

logger = structlog.get_logger()

FIX_JSON_INSTRUCTION = (
    "Fix the JSON string below. Do not output anything else but the carefully fixed JSON string."
)


@dataclass(frozen=True)
class RepairAttempt:
    attempt_count: int
    candidate: str


async def fix_json_with_llm(
    llm: LLMProvider,
    json_string_to_fix: str,
    ctx: Optional[BlockContext] = None,
) -> Optional[str]:
    """Ask the model to rewrite text as strict JSON. Returns None when the call fails or yields nothing."""
    ctx = ctx or BlockContext()
    args: dict[str, Any] = {
        "user": ctx.user_id,
        "prompt": json_string_to_fix,
        "instruction": FIX_JSON_INSTRUCTION,
        "temperature": 0,
        "model": llm.default_model,
    }
    try:
        response = await llm.run_llm_block(ctx, args)
    except BlockExecutionError as e:
        logger.warning("json_repair_llm_failed", provider=llm.get_provider(), error=str(e)[:200])
        return None

    if response.error:
        logger.warning("json_repair_llm_failed", provider=llm.get_provider(), error=response.error[:200])
        return None

    text = response.answer_text.strip()
    logger.debug("json_repair_llm_answer", provider=llm.get_provider(), text=text[:120])
    return text or None


def _try_parse(attempt: RepairAttempt) -> Any:
    # strict=False: raw newlines produced by unescaping are accepted inside strings
    try:
        return json.loads(attempt.candidate, strict=False)
    except json.JSONDecodeError as e:
        logger.debug(
            "json_repair_parse_failed",
            attempt=attempt.attempt_count,
            error=str(e),
            candidate=attempt.candidate[:120],
        )
        return None


async def fix_json_string(
    llm: LLMProvider,
    passed_string: str,
    ctx: Optional[BlockContext] = None,
    *,
    max_attempts: Optional[int] = None,
    cooldown_seconds: Optional[float] = None,
) -> Any:
    """
    Parse ``passed_string`` as JSON, repairing it with ``llm`` when needed.

    Each attempt parses the current candidate; on failure the *original* text
    is sent for correction (temperature 0) and usable output becomes the next
    candidate. A JSON ``null`` counts as a failed parse.

    Raises:
        InvalidInput: passed_string is not a non-empty str.
        JsonRepairExhausted: no candidate parsed within max_attempts.
    """
    if not isinstance(passed_string, str):
        raise InvalidInput(f"fix_json_string: passed value is not a string: {type(passed_string).__name__}")
    if not passed_string:
        raise InvalidInput("fix_json_string: passed string is empty")

    repair_cfg = get_settings().repair
    if max_attempts is None:
        max_attempts = repair_cfg.max_attempts
    if cooldown_seconds is None:
        cooldown_seconds = repair_cfg.cooldown_seconds
    provider = llm.get_provider()

    attempt = RepairAttempt(attempt_count=0, candidate=passed_string.replace("\\n", "\n"))
    while attempt.attempt_count < max_attempts:
        attempt = RepairAttempt(attempt_count=attempt.attempt_count + 1, candidate=attempt.candidate)
        logger.debug("json_repair_attempt", provider=provider, attempt=attempt.attempt_count)
        obs_metrics.record_repair_attempt(provider=provider)

        parsed = _try_parse(attempt)
        if parsed is not None:
            if attempt.attempt_count > 1:
                logger.info("json_repair_fixed", provider=provider, attempts=attempt.attempt_count)
                obs_metrics.record_repair_outcome(provider=provider, outcome="fixed")
            return parsed

        fixed_text = await fix_json_with_llm(llm, passed_string, ctx)
        if fixed_text is not None:
            attempt = RepairAttempt(attempt_count=attempt.attempt_count, candidate=fixed_text)
        await asyncio.sleep(cooldown_seconds)

    logger.error(
        "json_repair_exhausted",
        provider=provider,
        attempts=attempt.attempt_count,
        last_candidate=attempt.candidate[:200],
    )
    obs_metrics.record_repair_outcome(provider=provider, outcome="exhausted")
    raise JsonRepairExhausted(attempt.attempt_count, attempt.candidate)
