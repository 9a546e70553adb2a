"""LLM provider variants. Look providers up through llmbridge.registry, not by concrete type."""

from llmbridge.providers.base import LLMProvider
from llmbridge.providers.local import LocalProvider
from llmbridge.providers.openai import OpenAIProvider
from llmbridge.providers.tiers import TierFamily, select_tier

__all__ = ["LLMProvider", "LocalProvider", "OpenAIProvider", "TierFamily", "select_tier"]
