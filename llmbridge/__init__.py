"""llmbridge: model selection, token-budget tiering and JSON self-repair for LLM workflow blocks."""
