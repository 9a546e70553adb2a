"""
Error taxonomy for llmbridge.

Validation errors at the boundary are never retried: they mean the caller
misused the API. Only "response is not valid JSON" is recovered locally,
through the bounded repair loop in llmbridge.repair.
"""

from __future__ import annotations


class LLMBridgeError(Exception):
    """Base for all llmbridge errors."""

    pass


class InvalidIdentifier(LLMBridgeError):
    """Composite model id is empty or not exactly '<model>|<provider>'."""

    pass


class UnknownModel(LLMBridgeError):
    """Model name is not declared by the provider or the registry."""

    pass


class UnknownProvider(LLMBridgeError):
    """No provider registered under that name."""

    pass


class ProviderMismatch(LLMBridgeError):
    """Caller-supplied provider differs from the provider handling the call."""

    pass


class InvalidCost(LLMBridgeError, TypeError):
    """Token cost passed to tier selection is not a non-negative int."""

    pass


class InvalidInput(LLMBridgeError, ValueError):
    """A required value is missing, empty or of the wrong type."""

    pass


class BlockExecutionError(LLMBridgeError):
    """The backend block failed or reported an error."""

    def __init__(self, message: str, block_name: str = "") -> None:
        super().__init__(message)
        self.block_name = block_name


class JsonRepairExhausted(LLMBridgeError):
    """Repair loop used its whole attempt budget without producing valid JSON."""

    def __init__(self, attempts: int, last_candidate: str) -> None:
        preview = last_candidate if len(last_candidate) <= 200 else last_candidate[:197] + "..."
        super().__init__(f"Could not fix JSON string after {attempts} attempts. Last candidate: {preview}")
        self.attempts = attempts
        self.last_candidate = last_candidate
