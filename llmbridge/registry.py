"""
Process-wide provider registry.

Setup is explicit and two-phase:
  1. register() every provider (startup)
  2. get_llm_choices() enumerates catalogs and fills the aggregated
     model -> type and model -> context size maps

Catalog writes are idempotent per model name, so concurrent enumeration
needs no locking: at worst the same value is written twice.
"""

from __future__ import annotations

import math
from typing import Any, Optional

import structlog

from llmbridge.block_runner import HttpBlockRunner
from llmbridge.config import DEFAULT_LLM_MODEL_ID, Settings, get_settings
from llmbridge.errors import UnknownModel, UnknownProvider
from llmbridge.model_id import parse_model_id
from llmbridge.models import BlockContext, ModelChoice, QueryResult
from llmbridge.providers.base import LLMProvider
from llmbridge.providers.local import LocalProvider, load_models_dir_json
from llmbridge.providers.openai import LLM_PROVIDER_OPENAI_SERVER, OpenAIProvider

logger = structlog.get_logger()


class ProviderRegistry:
    """Provider name -> LLMProvider, plus aggregated model metadata."""

    def __init__(
        self,
        default_unknown_context_size: int = 2048,
        max_size_ratio: float = 0.9,
        default_model_id: str = DEFAULT_LLM_MODEL_ID,
    ) -> None:
        self._providers: dict[str, LLMProvider] = {}
        self.model_types: dict[str, str] = {}
        self.context_sizes: dict[str, int] = {}
        self.default_unknown_context_size = default_unknown_context_size
        self.max_size_ratio = max_size_ratio
        self.default_model_id = default_model_id

    def register(self, provider: LLMProvider) -> None:
        name = provider.get_provider()
        if name in self._providers:
            logger.warning("provider_replaced", provider=name)
        self._providers[name] = provider

    def get(self, provider_name: str) -> LLMProvider:
        try:
            return self._providers[provider_name]
        except KeyError:
            raise UnknownProvider(f"Unknown provider: {provider_name}") from None

    @property
    def providers(self) -> list[LLMProvider]:
        return list(self._providers.values())

    async def get_llm_choices(self) -> list[ModelChoice]:
        """Enumerate every provider's catalog into a fresh choice list and the shared maps."""
        choices: list[ModelChoice] = []
        for provider in self._providers.values():
            await provider.get_model_choices(choices, self.model_types, self.context_sizes)
        logger.info("llm_choices_enumerated", providers=len(self._providers), choices=len(choices))
        return choices

    def model_type(self, model_name: str) -> str:
        try:
            return self.model_types[model_name]
        except KeyError:
            raise UnknownModel(f"Unknown model: {model_name}") from None

    def get_model_context_size(self, model_name: str) -> int:
        return self.context_sizes.get(model_name, self.default_unknown_context_size)

    def get_model_max_size(self, model_name: str, apply_margin: bool = True) -> int:
        """Context size for ``model_name``; with margin, the share left for the prompt."""
        context_size = self.get_model_context_size(model_name)
        if not apply_margin:
            return context_size
        return math.floor(context_size * self.max_size_ratio)

    async def query_llm_by_model_id(
        self,
        ctx: BlockContext,
        prompt: str,
        instruction: str,
        model_id: Optional[str],
        temperature: float = 0,
        args: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        """Route a query by composite id; a missing id falls back to ``default_model_id``."""
        identity = parse_model_id(model_id or self.default_model_id)
        provider = self.get(identity.provider)
        return await provider.query(ctx, prompt, instruction, identity.name, temperature, args)


def build_default_registry(settings: Optional[Settings] = None, runner: Any = None) -> ProviderRegistry:
    """Register the built-in providers: OpenAI plus one LocalProvider per configured models directory."""
    settings = settings or get_settings()
    if runner is None:
        runner = HttpBlockRunner(settings.block_runner)

    registry = ProviderRegistry(
        default_unknown_context_size=settings.models.default_unknown_context_size,
        max_size_ratio=settings.models.max_size_ratio,
        default_model_id=settings.models.default_model_id,
    )
    registry.register(OpenAIProvider(runner, config=settings.models, default_model=settings.repair.model))

    local_dirs = load_models_dir_json(settings.models.local_llms_directories_json) or {}
    for provider_name in local_dirs:
        if provider_name == LLM_PROVIDER_OPENAI_SERVER:
            continue
        registry.register(LocalProvider(provider_name, runner, config=settings.models))
    return registry
