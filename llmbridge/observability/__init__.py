"""Observability: Prometheus metrics for block runs, tier selection and JSON repair."""

from llmbridge.observability.metrics import metrics

__all__ = ["metrics"]
