"""Provider tests with a mocked block runner: request shaping, tiering, normalization, errors."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from llmbridge.config import ModelConfig
from llmbridge.errors import BlockExecutionError, UnknownModel
from llmbridge.model_id import parse_model_id
from llmbridge.models import BlockContext, BlockResponse, ModelChoice
from llmbridge.providers.base import LLMProvider
from llmbridge.providers.local import LocalProvider, load_models_dir_json, walk_dir_for_extension
from llmbridge.providers.openai import BLOCK_OPENAI_ADVANCED_CHATGPT, OpenAIProvider


class TestProviderInterface:
    def test_incomplete_variant_cannot_be_built(self, runner, tokenizer) -> None:
        class HalfProvider(LLMProvider):
            def get_provider(self) -> str:
                return "half"

        with pytest.raises(TypeError):
            HalfProvider(tokenizer, runner, "m")  # type: ignore[abstract]


class TestOpenAIProvider:
    def test_identity(self, openai_provider: OpenAIProvider) -> None:
        assert openai_provider.get_provider() == "openai"
        assert openai_provider.get_model_type() == "openai"
        assert openai_provider.get_model_context_size("gpt-4-32k") == 32768

    @pytest.mark.asyncio
    async def test_run_llm_block_downgrades_small_request(self, openai_provider, runner, ctx) -> None:
        await openai_provider.run_llm_block(
            ctx,
            {"prompt": "short prompt", "instruction": "be brief", "model": "gpt-3.5-turbo-16k"},
        )
        call_ctx, block_name, args = runner.run_block.await_args.args
        assert call_ctx is ctx
        assert block_name == BLOCK_OPENAI_ADVANCED_CHATGPT
        assert args["model"] == "gpt-3.5-turbo"

    @pytest.mark.asyncio
    async def test_run_llm_block_keeps_large_model_for_big_request(self, openai_provider, runner, ctx) -> None:
        prompt = " ".join(["word"] * 4000)
        await openai_provider.run_llm_block(ctx, {"prompt": prompt, "instruction": "", "model": "gpt-3.5-turbo-16k"})
        assert runner.run_block.await_args.args[2]["model"] == "gpt-3.5-turbo-16k"

    @pytest.mark.asyncio
    async def test_run_llm_block_unknown_model(self, openai_provider, runner, ctx) -> None:
        with pytest.raises(UnknownModel):
            await openai_provider.run_llm_block(ctx, {"prompt": "x", "model": "davinci"})
        runner.run_block.assert_not_called()

    @pytest.mark.asyncio
    async def test_runner_failure_becomes_block_execution_error(self, openai_provider, runner, ctx) -> None:
        runner.run_block.side_effect = ConnectionError("engine unreachable")
        with pytest.raises(BlockExecutionError, match="engine unreachable"):
            await openai_provider.run_llm_block(ctx, {"prompt": "x", "model": "gpt-4"})

    @pytest.mark.asyncio
    async def test_query_shapes_args_and_normalizes(self, openai_provider, runner, ctx) -> None:
        result = await openai_provider.query(ctx, "What is 2+2?", "", "gpt-4", 0.3, {"top_p": 1})
        args = runner.run_block.await_args.args[2]
        assert args["user"] == "user-1"
        assert args["prompt"] == "What is 2+2?"
        assert "instruction" not in args
        assert args["temperature"] == 0.3
        assert args["top_p"] == 1
        assert result.answer_text == "hello"
        assert result.answer_json["total_tokens"] == 12
        assert result.answer_json["function_arguments"] is None

    @pytest.mark.asyncio
    async def test_query_parses_function_arguments(self, openai_provider, runner, ctx) -> None:
        runner.run_block.return_value = BlockResponse(
            answer_text="",
            function_arguments_string='{"city": "Paris",\\n "days": 3}',
        )
        result = await openai_provider.query(ctx, "plan a trip", "", "gpt-4")
        assert result.answer_json["function_arguments"] == {"city": "Paris", "days": 3}
        assert runner.run_block.await_count == 1

    @pytest.mark.asyncio
    async def test_query_raises_backend_error(self, openai_provider, runner, ctx) -> None:
        runner.run_block.return_value = BlockResponse(error="model overloaded")
        with pytest.raises(BlockExecutionError, match="model overloaded"):
            await openai_provider.query(ctx, "hi", "", "gpt-4")

    @pytest.mark.asyncio
    async def test_get_model_choices(self, openai_provider) -> None:
        choices: list[ModelChoice] = []
        model_types: dict[str, str] = {}
        context_sizes: dict[str, int] = {}
        await openai_provider.get_model_choices(choices, model_types, context_sizes)
        assert [c.value for c in choices] == [
            "gpt-3.5-turbo|openai",
            "gpt-3.5-turbo-16k|openai",
            "gpt-4|openai",
            "gpt-4-32k|openai",
        ]
        assert choices[0].title == "💰Gpt 3.5 Turbo (openai)"
        assert choices[2].description == "gpt-4 (8k)"
        assert model_types["gpt-4"] == "openai"
        assert context_sizes["gpt-4-32k"] == 32768


@pytest.fixture
def local_dirs(tmp_path: Path) -> Path:
    """Descriptor JSON pointing 'oobabooga' at a directory with two model files."""
    models_dir = tmp_path / "models"
    (models_dir / "nested").mkdir(parents=True)
    (models_dir / "vicuna-7b.bin").write_bytes(b"\0")
    (models_dir / "nested" / "alpaca-13b.bin").write_bytes(b"\0")
    (models_dir / "readme.txt").write_text("not a model")
    descriptor = tmp_path / "local_llms_directories.json"
    descriptor.write_text(json.dumps({"oobabooga": str(models_dir), "missing": str(tmp_path / "nope")}))
    return descriptor


@pytest.fixture
def local_provider(local_dirs: Path, runner: AsyncMock, tokenizer) -> LocalProvider:
    config = ModelConfig(LOCAL_LLMS_DIRECTORIES_JSON=str(local_dirs))
    return LocalProvider("oobabooga", runner, tokenizer=tokenizer, config=config)


class TestLocalDiscovery:
    def test_load_models_dir_json(self, local_dirs: Path) -> None:
        dirs = load_models_dir_json(local_dirs)
        assert dirs is not None
        assert set(dirs) == {"oobabooga", "missing"}

    def test_missing_descriptor(self, tmp_path: Path) -> None:
        assert load_models_dir_json(tmp_path / "absent.json") is None

    def test_malformed_descriptor(self, tmp_path: Path, runner, tokenizer) -> None:
        descriptor = tmp_path / "broken.json"
        descriptor.write_text('{"oobabooga": ')
        assert load_models_dir_json(descriptor) is None
        config = ModelConfig(LOCAL_LLMS_DIRECTORIES_JSON=str(descriptor))
        assert not LocalProvider("oobabooga", runner, tokenizer=tokenizer, config=config).is_available()

    def test_walk_finds_bin_files_recursively(self, local_dirs: Path) -> None:
        models_dir = Path(load_models_dir_json(local_dirs)["oobabooga"])
        assert [p.name for p in walk_dir_for_extension(models_dir)] == ["alpaca-13b.bin", "vicuna-7b.bin"]


class TestLocalProvider:
    def test_availability(self, local_dirs: Path, runner, tokenizer) -> None:
        config = ModelConfig(LOCAL_LLMS_DIRECTORIES_JSON=str(local_dirs))
        assert LocalProvider("oobabooga", runner, tokenizer=tokenizer, config=config).is_available()
        assert not LocalProvider("missing", runner, tokenizer=tokenizer, config=config).is_available()
        assert not LocalProvider("unlisted", runner, tokenizer=tokenizer, config=config).is_available()

    @pytest.mark.asyncio
    async def test_choices_use_default_context_size(self, local_provider: LocalProvider) -> None:
        choices: list[ModelChoice] = []
        model_types: dict[str, str] = {}
        context_sizes: dict[str, int] = {}
        await local_provider.get_model_choices(choices, model_types, context_sizes)
        assert [c.value for c in choices] == ["alpaca-13b.bin|oobabooga", "vicuna-7b.bin|oobabooga"]
        assert context_sizes == {"alpaca-13b.bin": 2048, "vicuna-7b.bin": 2048}
        assert model_types["vicuna-7b.bin"] == "local"
        assert choices[1].description == "vicuna-7b (2k)"

    @pytest.mark.asyncio
    async def test_names_with_delimiter_are_skipped(self, local_dirs: Path, local_provider: LocalProvider) -> None:
        models_dir = Path(load_models_dir_json(local_dirs)["oobabooga"])
        (models_dir / "bad|name.bin").write_bytes(b"\0")
        choices: list[ModelChoice] = []
        await local_provider.get_model_choices(choices, {}, {})
        assert [c.value for c in choices] == ["alpaca-13b.bin|oobabooga", "vicuna-7b.bin|oobabooga"]
        for choice in choices:
            parse_model_id(choice.value)

    def test_adjust_model(self, local_provider: LocalProvider) -> None:
        assert local_provider.adjust_model(50_000, "vicuna-7b.bin") == "vicuna-7b.bin"
        with pytest.raises(UnknownModel):
            local_provider.adjust_model(10, "gpt-4")

    def test_default_model_is_first_discovered(self, local_provider: LocalProvider) -> None:
        assert local_provider.default_model == "alpaca-13b.bin"

    @pytest.mark.asyncio
    async def test_run_llm_block_shapes_query_payload(self, local_provider: LocalProvider, runner) -> None:
        ctx = BlockContext(user_id="u")
        await local_provider.run_llm_block(
            ctx,
            {"user": "u", "prompt": "hi", "instruction": "", "temperature": 0.2, "model": "vicuna-7b.bin", "stop": ["\n"]},
        )
        _, block_name, args = runner.run_block.await_args.args
        assert block_name == "oobabooga.llm_query"
        assert args == {
            "prompt": "hi",
            "instruction": "",
            "model_id": "vicuna-7b.bin|oobabooga",
            "temperature": 0.2,
            "args": {"stop": ["\n"]},
        }
