"""Shared pytest fixtures for llmbridge tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from llmbridge.config import ModelConfig
from llmbridge.models import BlockContext, BlockResponse
from llmbridge.providers.openai import OpenAIProvider
from llmbridge.tokenizer import OpenAITokenizer


class WordEncoding:
    """Stand-in for a tiktoken encoding: one token per whitespace-separated word."""

    def encode(self, text: str, disallowed_special: tuple = ()) -> list[int]:
        return [len(word) for word in text.split()]


@pytest.fixture
def tokenizer() -> OpenAITokenizer:
    return OpenAITokenizer(encoding=WordEncoding())


@pytest.fixture
def runner() -> AsyncMock:
    """Block runner returning a plain text answer."""
    mock = AsyncMock()
    mock.run_block.return_value = BlockResponse(answer_text="  hello  ", usage={"total_tokens": 12})
    return mock


@pytest.fixture
def ctx() -> BlockContext:
    return BlockContext(user_id="user-1", job_id="job-1")


@pytest.fixture
def openai_provider(runner: AsyncMock, tokenizer: OpenAITokenizer) -> OpenAIProvider:
    return OpenAIProvider(runner, tokenizer=tokenizer, config=ModelConfig(), default_model="gpt-3.5-turbo")


@pytest.fixture
def word_encoding(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make every OpenAITokenizer built by library code use WordEncoding."""
    monkeypatch.setattr("llmbridge.tokenizer._get_encoding", lambda name: WordEncoding())
