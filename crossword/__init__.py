"""Crossword: fill a grid of across and down entries from their clues."""

from .actions import CROSSWORD_ACTION_NO_CHECK_SCHEMA, CROSSWORD_ACTION_SCHEMA, CrosswordAction, parse_action
from .game_engine import (
    CrosswordClue,
    CrosswordEngine,
    CrosswordFeedback,
    CrosswordPuzzle,
    CrosswordRules,
    CrosswordState,
)

__all__ = [
    "CROSSWORD_ACTION_NO_CHECK_SCHEMA",
    "CROSSWORD_ACTION_SCHEMA",
    "CrosswordAction",
    "parse_action",
    "CrosswordClue",
    "CrosswordEngine",
    "CrosswordFeedback",
    "CrosswordPuzzle",
    "CrosswordRules",
    "CrosswordState",
]
