"""Tests for the tokenizer capability (no real encoding is downloaded)."""

from llmbridge.tokenizer import OpenAITokenizer


class _BrokenEncoding:
    def encode(self, text: str, disallowed_special: tuple = ()) -> list[int]:
        raise ValueError("boom")


class _EmptyEncoding:
    def encode(self, text: str, disallowed_special: tuple = ()) -> list[int]:
        return []


def test_count_matches_encode(tokenizer: OpenAITokenizer) -> None:
    text = "fix this json please"
    assert tokenizer.count_text_tokens(text) == len(tokenizer.encode_text(text)) == 4


def test_count_empty_and_none_is_zero(tokenizer: OpenAITokenizer) -> None:
    assert tokenizer.count_text_tokens("") == 0
    assert tokenizer.count_text_tokens(None) == 0


def test_count_never_raises() -> None:
    assert OpenAITokenizer(encoding=_BrokenEncoding()).count_text_tokens("anything") == 0
    assert OpenAITokenizer(encoding=_EmptyEncoding()).count_text_tokens("anything") == 0


def test_within_token_limit(tokenizer: OpenAITokenizer) -> None:
    assert tokenizer.text_is_within_token_limit("one two three", 3)
    assert not tokenizer.text_is_within_token_limit("one two three", 2)
