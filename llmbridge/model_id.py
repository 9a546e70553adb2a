"""
Composite model identifiers: "<model_name>|<provider_name>".

The composite id is the only handle callers pass around. Decoding is strict:
a malformed id fails fast instead of silently picking a default provider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from llmbridge.errors import InvalidIdentifier

MODEL_ID_DELIMITER = "|"


@dataclass(frozen=True)
class ModelIdentity:
    name: str
    provider: str

    def encode(self) -> str:
        return generate_model_id(self.name, self.provider)

    @classmethod
    def decode(cls, model_id: str) -> "ModelIdentity":
        return parse_model_id(model_id)


def generate_model_id(model_name: str, model_provider: str) -> str:
    """Join model name and provider into a composite id."""
    if model_name is None or model_provider is None:
        raise InvalidIdentifier(f"generate_model_id: name and provider are required: {model_name!r}, {model_provider!r}")
    return f"{model_name}{MODEL_ID_DELIMITER}{model_provider}"


def parse_model_id(model_id: str) -> ModelIdentity:
    """Split a composite id. Raises InvalidIdentifier unless there are exactly two non-empty parts."""
    if not model_id or not isinstance(model_id, str):
        raise InvalidIdentifier(f"model_id is not valid: {model_id!r}")
    splits = model_id.split(MODEL_ID_DELIMITER)
    if len(splits) != 2 or not splits[0] or not splits[1]:
        raise InvalidIdentifier(f"model_id is not valid: {model_id!r}")
    return ModelIdentity(name=splits[0], provider=splits[1])


def deduce_title(model_name: str, model_provider: str, provider_icon: str = "?") -> str:
    """Human label, e.g. 'gpt-3.5-turbo' -> '💰Gpt 3.5 Turbo (openai)'."""
    words = model_name.replace("-", " ")
    words = re.sub(r"\b\w", lambda m: m.group(0).upper(), words)
    return f"{provider_icon}{words} ({model_provider})"


def deduce_description(model_name: str, context_size: int = 0) -> str:
    description = model_name.removesuffix(".bin")
    if context_size > 0:
        description += f" ({context_size // 1024}k)"
    return description
