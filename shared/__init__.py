"""Puzzle Arena - Shared infrastructure for both games.

This module contains common utilities and infrastructure shared across
the games and the run engine:
- adapters: OpenRouter API adapter for LLM calls
- prompt_manager: Markdown prompt templates with variable hydration
- errors: Exceptions shared by the game engines and the runner
- utils: Common utilities (retry, timing, tokens, logging)
"""

__version__ = "0.1.0"
