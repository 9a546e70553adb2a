"""
Locally hosted models.

The catalog is discovered on disk: a JSON descriptor maps provider name to a
models directory, which is scanned recursively for ``.bin`` files. Local
models have no known context window, so every one gets the default size.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import structlog

from llmbridge.config import ModelConfig, get_settings
from llmbridge.errors import UnknownModel
from llmbridge.model_id import MODEL_ID_DELIMITER, generate_model_id
from llmbridge.models import BlockContext, BlockResponse, ModelChoice, ModelDescriptor
from llmbridge.providers.base import LLMProvider
from llmbridge.providers.tiers import validate_cost
from llmbridge.tokenizer import OpenAITokenizer, Tokenizer

logger = structlog.get_logger()

LLM_MODEL_TYPE_LOCAL = "local"
LOCAL_MODEL_EXTENSION = ".bin"
ICON_LOCAL = "🖥"


def load_models_dir_json(json_path: str | Path) -> Optional[dict[str, str]]:
    """Read the provider -> models directory descriptor. None if missing, malformed or not a JSON object."""
    path = Path(json_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.is_file():
        logger.debug("local_models_dir_json_missing", path=str(path))
        return None
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("local_models_dir_json_malformed", path=str(path), error=str(e))
            return None
    if not isinstance(data, dict):
        logger.warning("local_models_dir_json_invalid", path=str(path), type=type(data).__name__)
        return None
    return {str(k): str(v) for k, v in data.items()}


def walk_dir_for_extension(directory: str | Path, extension: str = LOCAL_MODEL_EXTENSION) -> list[Path]:
    """All files under ``directory`` (recursive) ending with ``extension``, sorted."""
    return sorted(p for p in Path(directory).rglob(f"*{extension}") if p.is_file())


class LocalProvider(LLMProvider):
    """Provider for model files found in a local directory.

    Each discovered model is its own single-member tier family: adjust_model
    returns it unchanged.
    """

    icon = ICON_LOCAL

    def __init__(
        self,
        provider_name: str,
        runner: Any,
        tokenizer: Optional[Tokenizer] = None,
        config: Optional[ModelConfig] = None,
        default_model: str = "",
    ) -> None:
        self._config = config or get_settings().models
        # no per-model tokenizer is known; cl100k is a close enough estimate
        super().__init__(tokenizer=tokenizer or OpenAITokenizer(), runner=runner, default_model=default_model)
        self.provider_name = provider_name

    @property
    def default_model(self) -> str:
        if self._default_model:
            return self._default_model
        self._ensure_catalog()
        return next(iter(self._catalog), "")

    @property
    def block_name(self) -> str:
        return f"{self.provider_name}.llm_query"

    def get_provider(self) -> str:
        return self.provider_name

    def get_model_type(self) -> str:
        return LLM_MODEL_TYPE_LOCAL

    def models_dir(self) -> Optional[Path]:
        dirs = load_models_dir_json(self._config.local_llms_directories_json)
        if not dirs or self.provider_name not in dirs:
            return None
        return Path(dirs[self.provider_name])

    def is_available(self) -> bool:
        models_dir = self.models_dir()
        return models_dir is not None and models_dir.is_dir()

    def discover_models(self) -> list[ModelDescriptor]:
        models_dir = self.models_dir()
        if models_dir is None or not models_dir.is_dir():
            logger.warning("local_models_dir_missing", provider=self.provider_name, path=str(models_dir))
            return []
        models: list[ModelDescriptor] = []
        for path in walk_dir_for_extension(models_dir):
            # the name must survive a round trip through the composite id
            if MODEL_ID_DELIMITER in path.name:
                logger.warning("local_model_name_invalid", provider=self.provider_name, path=str(path))
                continue
            models.append(
                ModelDescriptor(
                    name=path.name,
                    type=LLM_MODEL_TYPE_LOCAL,
                    context_size=self._config.default_unknown_context_size,
                    provider=self.provider_name,
                )
            )
        return models

    def _ensure_catalog(self) -> None:
        if not self._catalog:
            self._catalog = {m.name: m for m in self.discover_models()}

    async def get_model_choices(
        self,
        choices: list[ModelChoice],
        model_types: dict[str, str],
        context_sizes: dict[str, int],
    ) -> None:
        self._add_catalog_choices(self.discover_models(), choices, model_types, context_sizes)

    def adjust_model(self, cost: int, model_name: str) -> str:
        validate_cost(cost)
        self._ensure_catalog()
        if model_name not in self._catalog:
            raise UnknownModel(f"adjust_model: Unknown model: {model_name} (provider {self.provider_name})")
        return model_name

    async def run_llm_block(self, ctx: BlockContext, args: dict[str, Any]) -> BlockResponse:
        prompt = args.get("prompt", "")
        instruction = args.get("instruction", "")
        model_name = self.adjust_model(self.estimate_cost(prompt, instruction), args.get("model"))
        extra = {k: v for k, v in args.items() if k not in ("user", "prompt", "instruction", "temperature", "model")}
        block_args: dict[str, Any] = {
            "prompt": prompt,
            "instruction": instruction,
            "model_id": generate_model_id(model_name, self.provider_name),
            "temperature": args.get("temperature", 0),
            "args": extra or None,
        }
        return await self._execute_block(ctx, self.block_name, block_args, model_name)
