"""
LLM provider interface.

Every backend variant (hosted API, locally hosted files, ...) implements the
same capability set. Callers look providers up in the registry and never
branch on the concrete type. A variant that misses an abstract method cannot
be instantiated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

import structlog

from llmbridge.errors import BlockExecutionError
from llmbridge.model_id import deduce_description, deduce_title, generate_model_id
from llmbridge.models import BlockContext, BlockResponse, ModelChoice, ModelDescriptor, QueryResult
from llmbridge.observability import metrics as obs_metrics
from llmbridge.repair import fix_json_string
from llmbridge.tokenizer import Tokenizer

logger = structlog.get_logger()


class LLMProvider(ABC):
    """A backend that can run LLM blocks and declares a model catalog."""

    icon: str = "?"

    def __init__(self, tokenizer: Tokenizer, runner: Any, default_model: str) -> None:
        self.tokenizer = tokenizer
        self.runner = runner
        self._default_model = default_model
        self._catalog: dict[str, ModelDescriptor] = {}

    # ── Capability set ──

    @abstractmethod
    def get_provider(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_model_type(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def get_model_choices(
        self,
        choices: list[ModelChoice],
        model_types: dict[str, str],
        context_sizes: dict[str, int],
    ) -> None:
        """Append this provider's choices and write its descriptors into the shared maps."""
        raise NotImplementedError

    @abstractmethod
    def adjust_model(self, cost: int, model_name: str) -> str:
        """Pick the cheapest model able to hold ``cost`` tokens (see providers.tiers)."""
        raise NotImplementedError

    @abstractmethod
    async def run_llm_block(self, ctx: BlockContext, args: dict[str, Any]) -> BlockResponse:
        """Shape ``args`` for this backend and run its block."""
        raise NotImplementedError

    # ── Shared behaviour ──

    @property
    def default_model(self) -> str:
        """Model used when the provider issues its own calls (JSON repair)."""
        return self._default_model

    def count_text_tokens(self, text: Optional[str]) -> int:
        return self.tokenizer.count_text_tokens(text)

    def estimate_cost(self, prompt: Optional[str], instruction: Optional[str]) -> int:
        return self.count_text_tokens(prompt) + self.count_text_tokens(instruction)

    def get_model_context_size(self, model_name: str) -> Optional[int]:
        descriptor = self._catalog.get(model_name)
        return descriptor.context_size if descriptor else None

    async def query(
        self,
        ctx: BlockContext,
        prompt: str,
        instruction: str,
        model_name: str,
        temperature: float = 0,
        args: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        """
        Run one request and normalize the output.

        Raises:
            BlockExecutionError: the backend reported an error.
            JsonRepairExhausted: function arguments could not be parsed.
        """
        block_args: dict[str, Any] = dict(args or {})
        block_args["user"] = ctx.user_id
        if prompt:
            block_args["prompt"] = prompt
        if instruction:
            block_args["instruction"] = instruction
        block_args["temperature"] = temperature
        block_args["model"] = model_name

        response = await self.run_llm_block(ctx, block_args)
        if response.error:
            logger.error("llm_query_error", provider=self.get_provider(), model=model_name, error=response.error[:200])
            raise BlockExecutionError(response.error)

        total_tokens = response.usage.total_tokens
        answer_text = response.answer_text.strip()
        function_arguments_string = response.function_arguments_string
        function_arguments = None
        if function_arguments_string:
            function_arguments = await fix_json_string(self, function_arguments_string, ctx)

        answer_json = {
            "function_arguments_string": function_arguments_string,
            "function_arguments": function_arguments,
            "total_tokens": total_tokens,
            "answer_text": answer_text,
        }
        return QueryResult(answer_text=answer_text, answer_json=answer_json)

    async def _execute_block(
        self,
        ctx: BlockContext,
        block_name: str,
        args: dict[str, Any],
        model_name: str,
    ) -> BlockResponse:
        """Run a block through the runner; failures are logged and raised as BlockExecutionError."""
        provider = self.get_provider()
        async with obs_metrics.track_block_call(provider=provider, model=model_name, block=block_name):
            try:
                response = await self.runner.run_block(ctx, block_name, args)
            except BlockExecutionError as e:
                logger.error("block_run_failed", provider=provider, block=block_name, model=model_name, error=str(e)[:200])
                raise
            except Exception as e:
                logger.error("block_run_failed", provider=provider, block=block_name, model=model_name, error=str(e)[:200])
                raise BlockExecutionError(f"Error running {block_name}: {e}", block_name=block_name) from e

        obs_metrics.record_block_tokens(provider=provider, model=model_name, total_tokens=response.usage.total_tokens)
        return response

    def _record_adjustment(self, requested: str, effective: str, cost: int) -> None:
        if requested != effective:
            logger.info(
                "model_tier_adjusted",
                provider=self.get_provider(),
                requested_model=requested,
                effective_model=effective,
                cost=cost,
            )
            obs_metrics.record_tier_adjustment(self.get_provider(), requested, effective)

    def _add_catalog_choices(
        self,
        models: Iterable[ModelDescriptor],
        choices: list[ModelChoice],
        model_types: dict[str, str],
        context_sizes: dict[str, int],
    ) -> None:
        for model in models:
            self._catalog[model.name] = model
            model_types[model.name] = model.type
            context_sizes[model.name] = model.context_size
            choices.append(
                ModelChoice(
                    value=generate_model_id(model.name, model.provider),
                    title=model.title or deduce_title(model.name, model.provider, self.icon),
                    description=model.description or deduce_description(model.name, model.context_size),
                )
            )
