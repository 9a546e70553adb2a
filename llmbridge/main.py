"""
llmbridge command line entry point.

Usage:
    python -m llmbridge.main choices
    python -m llmbridge.main max-size gpt-4 --no-margin
    python -m llmbridge.main tokens "How many tokens is this?"
    python -m llmbridge.main query "gpt-3.5-turbo-16k|openai" --prompt "Summarize ..." --user alice
    python -m llmbridge.main fix-json broken.json --model-id "gpt-3.5-turbo|openai"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from llmbridge.config import get_settings
from llmbridge.errors import LLMBridgeError
from llmbridge.model_id import parse_model_id
from llmbridge.models import BlockContext
from llmbridge.observability import metrics as obs_metrics
from llmbridge.registry import build_default_registry
from llmbridge.repair import fix_json_string
from llmbridge.tokenizer import OpenAITokenizer

_CUSTOM_THEME = Theme({
    "log.warning": "bold #f59e0b",
    "log.error":   "bold #dc2626",
    "log.debug":   "dim #64748b",
    "primary":     "#ea580c",
})

console = Console(theme=_CUSTOM_THEME, highlight=False, stderr=True)
out = Console(highlight=False)


class _RichStructlogRenderer:
    """Structlog processor that renders log lines via Rich."""

    _SKIP_KEYS = frozenset({"event", "level", "_record"})

    def __call__(self, logger_: object, method: str, event_dict: dict) -> str:  # noqa: ARG002
        event = event_dict.get("event", "")
        level = event_dict.get("level", "info").lower()

        # Tier downgrade highlight
        if event == "model_tier_adjusted":
            console.print(
                f"  [bold #f59e0b]TIER[/bold #f59e0b]  "
                f"[#64748b]{event_dict.get('requested_model', '?')}[/#64748b] "
                f"[bold #ea580c]→[/bold #ea580c] [bold #0ea5e9]{event_dict.get('effective_model', '?')}[/bold #0ea5e9]  "
                f"[#64748b]cost={event_dict.get('cost', '?')}[/#64748b]"
            )
            raise structlog.DropEvent()

        kv_parts = []
        for k, v in event_dict.items():
            if k in self._SKIP_KEYS:
                continue
            vs = str(v)
            if len(vs) > 120:
                vs = vs[:117] + "…"
            kv_parts.append(f"[#64748b]{k}[/#64748b]=[#94a3b8]{vs}[/#94a3b8]")
        kv_str = "  ".join(kv_parts)

        if level == "warning":
            prefix = "[bold #f59e0b]⚠[/bold #f59e0b]"
            ev_fmt = f"[bold #f59e0b]{event}[/bold #f59e0b]"
        elif level in ("error", "critical"):
            prefix = "[bold #dc2626]✗[/bold #dc2626]"
            ev_fmt = f"[bold #dc2626]{event}[/bold #dc2626]"
        elif level == "debug":
            prefix = "[#64748b]·[/#64748b]"
            ev_fmt = f"[#64748b]{event}[/#64748b]"
        else:
            prefix = "[#ea580c]▪[/#ea580c]"
            if "json_repair" in event:
                ev_fmt = f"[bold #0ea5e9]{event}[/bold #0ea5e9]"
            else:
                ev_fmt = f"[bold #e2e8f0]{event}[/bold #e2e8f0]"

        console.print(f"  {prefix} {ev_fmt}  {kv_str}")
        raise structlog.DropEvent()


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            _RichStructlogRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


logger = structlog.get_logger()


async def show_choices() -> None:
    registry = build_default_registry()
    choices = await registry.get_llm_choices()
    table = Table(title="LLM model choices", border_style="#ea580c")
    table.add_column("Model id", style="bold")
    table.add_column("Title")
    table.add_column("Description", style="#94a3b8")
    table.add_column("Max size", justify="right")
    for choice in choices:
        name = parse_model_id(choice.value).name
        table.add_row(choice.value, choice.title, choice.description, str(registry.get_model_max_size(name)))
    out.print(table)


async def show_max_size(model_name: str, apply_margin: bool) -> None:
    registry = build_default_registry()
    await registry.get_llm_choices()
    out.print(registry.get_model_max_size(model_name, apply_margin))


async def run_query(
    model_id: str | None,
    prompt: str,
    instruction: str,
    temperature: float,
    user: str,
) -> None:
    registry = build_default_registry()
    await registry.get_llm_choices()
    result = await registry.query_llm_by_model_id(
        BlockContext(user_id=user),
        prompt,
        instruction,
        model_id,
        temperature,
    )
    title = model_id or registry.default_model_id
    out.print(Panel(result.answer_text or "(empty)", title=f"[#ea580c]{title}[/#ea580c]", border_style="#ea580c"))
    out.print_json(data=result.answer_json)


async def run_fix_json(path: str, model_id: str | None, user: str) -> None:
    registry = build_default_registry()
    identity = parse_model_id(model_id or registry.default_model_id)
    provider = registry.get(identity.provider)
    text = Path(path).read_text(encoding="utf-8")
    parsed = await fix_json_string(provider, text, BlockContext(user_id=user))
    out.print_json(data=parsed)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="llmbridge", description="LLM provider registry, tier selection and JSON repair")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("choices", help="List selectable models of every registered provider")

    p_size = sub.add_parser("max-size", help="Usable context size of a model")
    p_size.add_argument("model", help="Model name, e.g. gpt-4")
    p_size.add_argument("--no-margin", action="store_true", help="Return the raw context size")

    p_tok = sub.add_parser("tokens", help="Count tokens with the OpenAI tokenizer")
    p_tok.add_argument("text")

    p_query = sub.add_parser("query", help="Run one query through the block runner")
    p_query.add_argument("model_id", nargs="?", default=None, help="'<model>|<provider>' (default: DEFAULT_LLM_MODEL_ID)")
    p_query.add_argument("--prompt", required=True)
    p_query.add_argument("--instruction", default="")
    p_query.add_argument("--temperature", type=float, default=0.0)
    p_query.add_argument("--user", default="cli")

    p_fix = sub.add_parser("fix-json", help="Parse a file as JSON, repairing it with the LLM if needed")
    p_fix.add_argument("file")
    p_fix.add_argument("--model-id", default=None, help="Repairer model id (default: DEFAULT_LLM_MODEL_ID)")
    p_fix.add_argument("--user", default="cli")

    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.observability.log_level)
    if settings.observability.metrics_enabled:
        obs_metrics.start_server(port=settings.observability.metrics_port)

    try:
        if args.command == "choices":
            asyncio.run(show_choices())
        elif args.command == "max-size":
            asyncio.run(show_max_size(args.model, not args.no_margin))
        elif args.command == "tokens":
            out.print(OpenAITokenizer().count_text_tokens(args.text))
        elif args.command == "query":
            asyncio.run(run_query(args.model_id, args.prompt, args.instruction, args.temperature, args.user))
        elif args.command == "fix-json":
            asyncio.run(run_fix_json(args.file, args.model_id, args.user))
    except LLMBridgeError as e:
        logger.error("command_failed", command=args.command, error_type=type(e).__name__, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
