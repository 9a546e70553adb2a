"""
Token counting used to estimate the cost of a request.

The encoding itself is opaque: providers only need a count, an encode and a
limit check that all agree with one scheme per provider family.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Optional

import structlog
import tiktoken

logger = structlog.get_logger()

# gpt-3.5-turbo and gpt-4 both use cl100k_base
OPENAI_ENCODING = "cl100k_base"


class Tokenizer(ABC):
    """Text -> token capability."""

    @abstractmethod
    def encode_text(self, text: str) -> list[int]:
        raise NotImplementedError

    def count_text_tokens(self, text: Optional[str]) -> int:
        """Token count; 0 for empty input or a failed/empty encoding. Never raises."""
        if not text:
            return 0
        try:
            tokens = self.encode_text(text)
        except Exception as e:
            logger.warning("token_count_failed", error=str(e)[:120], text_len=len(text))
            return 0
        return len(tokens) if tokens else 0

    def text_is_within_token_limit(self, text: Optional[str], token_limit: int) -> bool:
        return self.count_text_tokens(text) <= token_limit


@lru_cache(maxsize=8)
def _get_encoding(name: str) -> Any:
    return tiktoken.get_encoding(name)


class OpenAITokenizer(Tokenizer):
    """tiktoken-backed tokenizer for the OpenAI model family.

    The encoding is resolved on first use so constructing a provider never
    touches the tiktoken cache. Pass ``encoding`` to inject one (tests).
    """

    def __init__(self, encoding_name: str = OPENAI_ENCODING, encoding: Any | None = None) -> None:
        self._encoding_name = encoding_name
        self._encoding = encoding

    @property
    def encoding(self) -> Any:
        if self._encoding is None:
            self._encoding = _get_encoding(self._encoding_name)
        return self._encoding

    def encode_text(self, text: str) -> list[int]:
        # special tokens in user text are counted as plain text
        return self.encoding.encode(text, disallowed_special=())
