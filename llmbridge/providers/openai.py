"""
Hosted OpenAI provider.

Fixed catalog of two model families (gpt-3.5 and gpt-4), each with a small
and a large context variant. Requests for a large variant are downgraded
when the prompt fits the small variant's window minus a safety margin.
"""

from __future__ import annotations

from typing import Any, Optional

from llmbridge.config import ModelConfig, get_settings
from llmbridge.models import BlockContext, BlockResponse, ModelChoice, ModelDescriptor
from llmbridge.providers.base import LLMProvider
from llmbridge.providers.tiers import TierFamily, select_tier
from llmbridge.tokenizer import OpenAITokenizer, Tokenizer

LLM_PROVIDER_OPENAI_SERVER = "openai"
LLM_MODEL_TYPE_OPENAI = "openai"
BLOCK_OPENAI_ADVANCED_CHATGPT = "openai.advancedChatGPT"
ICON_OPENAI = "💰"

GPT3_MODEL_SMALL = "gpt-3.5-turbo"
GPT3_MODEL_LARGE = "gpt-3.5-turbo-16k"
GPT4_MODEL_SMALL = "gpt-4"
GPT4_MODEL_LARGE = "gpt-4-32k"

OPENAI_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(name=GPT3_MODEL_SMALL, type=LLM_MODEL_TYPE_OPENAI, context_size=4096, provider=LLM_PROVIDER_OPENAI_SERVER),
    ModelDescriptor(name=GPT3_MODEL_LARGE, type=LLM_MODEL_TYPE_OPENAI, context_size=16384, provider=LLM_PROVIDER_OPENAI_SERVER),
    ModelDescriptor(name=GPT4_MODEL_SMALL, type=LLM_MODEL_TYPE_OPENAI, context_size=8192, provider=LLM_PROVIDER_OPENAI_SERVER),
    ModelDescriptor(name=GPT4_MODEL_LARGE, type=LLM_MODEL_TYPE_OPENAI, context_size=32768, provider=LLM_PROVIDER_OPENAI_SERVER),
)


def openai_tier_families(margin: int = 500, strict_family_downgrade: bool = False) -> tuple[TierFamily, ...]:
    """Tier families for the OpenAI catalog.

    gpt-4-32k downgrades to gpt-3.5-turbo, not gpt-4, unless
    ``strict_family_downgrade`` is set.
    """
    sizes = {m.name: m.context_size for m in OPENAI_MODELS}
    return (
        TierFamily(
            small=GPT3_MODEL_SMALL,
            large=GPT3_MODEL_LARGE,
            cutoff=sizes[GPT3_MODEL_SMALL] - margin,
            downgrade_to=GPT3_MODEL_SMALL,
        ),
        TierFamily(
            small=GPT4_MODEL_SMALL,
            large=GPT4_MODEL_LARGE,
            cutoff=sizes[GPT4_MODEL_SMALL] - margin,
            downgrade_to=GPT4_MODEL_SMALL if strict_family_downgrade else GPT3_MODEL_SMALL,
        ),
    )


class OpenAIProvider(LLMProvider):
    """Hosted provider running requests through the openai.advancedChatGPT block."""

    icon = ICON_OPENAI

    def __init__(
        self,
        runner: Any,
        tokenizer: Optional[Tokenizer] = None,
        config: Optional[ModelConfig] = None,
        default_model: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        config = config or settings.models
        super().__init__(
            tokenizer=tokenizer or OpenAITokenizer(),
            runner=runner,
            default_model=default_model or settings.repair.model,
        )
        self.families = openai_tier_families(config.context_size_margin, config.strict_family_downgrade)
        self._catalog = {m.name: m for m in OPENAI_MODELS}

    def get_provider(self) -> str:
        return LLM_PROVIDER_OPENAI_SERVER

    def get_model_type(self) -> str:
        return LLM_MODEL_TYPE_OPENAI

    async def get_model_choices(
        self,
        choices: list[ModelChoice],
        model_types: dict[str, str],
        context_sizes: dict[str, int],
    ) -> None:
        self._add_catalog_choices(OPENAI_MODELS, choices, model_types, context_sizes)

    def adjust_model(self, cost: int, model_name: str) -> str:
        effective = select_tier(self.families, cost, model_name)
        self._record_adjustment(model_name, effective, cost)
        return effective

    async def run_llm_block(self, ctx: BlockContext, args: dict[str, Any]) -> BlockResponse:
        cost = self.estimate_cost(args.get("prompt"), args.get("instruction"))
        block_args = dict(args)
        block_args["model"] = self.adjust_model(cost, args.get("model"))
        return await self._execute_block(ctx, BLOCK_OPENAI_ADVANCED_CHATGPT, block_args, block_args["model"])
