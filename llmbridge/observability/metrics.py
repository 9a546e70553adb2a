"""
Prometheus metrics for llmbridge.

All metrics are no-op when observability.metrics_enabled is False.
Exposes track_block_call, record_block_tokens, record_tier_adjustment,
record_repair_attempt, record_repair_outcome, start_server.
"""

from __future__ import annotations

import contextlib
import threading
import time
from typing import Any

import structlog
from prometheus_client import (
    Counter,
    Histogram,
    start_http_server as prometheus_start_http_server,
)

logger = structlog.get_logger()


def _enabled() -> bool:
    from llmbridge.config import get_settings

    return bool(get_settings().observability.metrics_enabled)


# Lazy registry: only create metrics when enabled and first used
_metrics_created = False


def _ensure_metrics() -> bool:
    global _metrics_created
    if _metrics_created or not _enabled():
        return _metrics_created
    _create_metrics()
    _metrics_created = True
    return True


def _create_metrics() -> None:
    """Create all Prometheus metrics (called once when enabled)."""
    # Block runs
    _block_duration = Histogram(
        "llm_block_duration_seconds",
        "LLM block run latency",
        ["provider", "model", "block"],
        buckets=[0.5, 1, 2, 5, 10, 30, 60],
    )
    _block_errors = Counter(
        "llm_block_errors_total",
        "LLM block run errors",
        ["provider", "model", "error_type"],
    )
    _block_tokens = Counter(
        "llm_block_tokens_total",
        "Tokens reported by block runs",
        ["provider", "model"],
    )

    # Tier selection
    _tier_adjustments = Counter(
        "llm_tier_adjustments_total",
        "Requested model replaced by a cheaper tier",
        ["provider", "requested_model", "effective_model"],
    )

    # JSON repair
    _repair_attempts = Counter(
        "json_repair_attempts_total",
        "Parse attempts made by the JSON repair loop",
        ["provider"],
    )
    _repair_outcomes = Counter(
        "json_repair_outcomes_total",
        "JSON repair loop outcomes",
        ["provider", "outcome"],
    )

    _registry = {
        "block_duration": _block_duration,
        "block_errors": _block_errors,
        "block_tokens": _block_tokens,
        "tier_adjustments": _tier_adjustments,
        "repair_attempts": _repair_attempts,
        "repair_outcomes": _repair_outcomes,
    }
    setattr(_MetricsCollector, "_registry", _registry)


class _MetricsCollector:
    """Collector that delegates to Prometheus when enabled, no-op otherwise."""

    _registry: dict[str, Any] = {}

    def _get(self, name: str) -> Any:
        _ensure_metrics()
        return self._registry.get(name)

    # --- Block runs ---
    @contextlib.asynccontextmanager
    async def track_block_call(self, provider: str = "", model: str = "", block: str = ""):
        h = self._get("block_duration")
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            err = self._get("block_errors")
            if err:
                err.labels(
                    provider=provider or "unknown",
                    model=model or "unknown",
                    error_type=type(e).__name__,
                ).inc()
            raise
        finally:
            if h:
                h.labels(
                    provider=provider or "unknown",
                    model=model or "unknown",
                    block=block or "unknown",
                ).observe(time.perf_counter() - start)

    def record_block_tokens(self, provider: str = "", model: str = "", total_tokens: int = 0) -> None:
        c = self._get("block_tokens")
        if c and total_tokens > 0:
            c.labels(provider=provider or "unknown", model=model or "unknown").inc(total_tokens)

    # --- Tier selection ---
    def record_tier_adjustment(self, provider: str, requested_model: str, effective_model: str) -> None:
        c = self._get("tier_adjustments")
        if c:
            c.labels(
                provider=provider or "unknown",
                requested_model=requested_model or "unknown",
                effective_model=effective_model or "unknown",
            ).inc()

    # --- JSON repair ---
    def record_repair_attempt(self, provider: str = "") -> None:
        c = self._get("repair_attempts")
        if c:
            c.labels(provider=provider or "unknown").inc()

    def record_repair_outcome(self, provider: str = "", outcome: str = "fixed") -> None:
        c = self._get("repair_outcomes")
        if c:
            c.labels(provider=provider or "unknown", outcome=outcome).inc()

    def start_server(self, port: int = 8000) -> None:
        if not _enabled():
            return
        _ensure_metrics()

        def run() -> None:
            try:
                prometheus_start_http_server(port, addr="0.0.0.0")
            except OSError as e:
                logger.error("metrics_server_failed", port=port, error=str(e))

        t = threading.Thread(target=run, daemon=True)
        t.start()


metrics = _MetricsCollector()
