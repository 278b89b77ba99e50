"""Puzzle loading and selection for suite runs.

Puzzle files are YAML or JSON. A file may hold a single puzzle, a list of
puzzles, or a mapping with a ``puzzles`` list. A path may also be a directory,
in which case every ``.yml``/``.yaml``/``.json`` file in it is read.

Usage:
    loader = PuzzleLoader("connections", "inputs/connections_puzzles.yml")
    puzzles = loader.select(ids=["connections-test"])
"""

import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from connections.game_engine import ConnectionsPuzzle
from crossword.game_engine import CrosswordPuzzle

from .config import PuzzleSelection

logger = logging.getLogger(__name__)

PUZZLE_TYPES = {
    "connections": ConnectionsPuzzle,
    "crossword": CrosswordPuzzle,
}

DEFAULT_PATHS = {
    "connections": "inputs/connections_puzzles.yml",
    "crossword": "inputs/crossword_puzzles.yml",
}

_SUFFIXES = (".yml", ".yaml", ".json")


class PuzzleLoader:
    """Load and filter puzzles of one type."""

    def __init__(self, puzzle_type: str, path: Optional[Union[str, Path]] = None):
        """Initialize the puzzle loader.

        Args:
            puzzle_type: "connections" or "crossword"
            path: Puzzle file or directory (defaults to the bundled inputs file)
        """
        if puzzle_type not in PUZZLE_TYPES:
            raise ValueError(f"Unknown puzzle type: {puzzle_type!r}")
        self.puzzle_type = puzzle_type
        self.path = Path(path) if path else Path(DEFAULT_PATHS[puzzle_type])
        self._puzzles: Optional[List[Any]] = None

    def _files(self) -> List[Path]:
        if self.path.is_dir():
            return sorted(p for p in self.path.iterdir() if p.suffix in _SUFFIXES)
        if not self.path.exists():
            raise FileNotFoundError(f"Puzzle path not found: {self.path}")
        return [self.path]

    @staticmethod
    def _read(path: Path) -> List[Dict[str, Any]]:
        with open(path, "r") as f:
            data = json.load(f) if path.suffix == ".json" else yaml.safe_load(f)

        if data is None:
            return []
        if isinstance(data, dict) and "puzzles" in data:
            data = data["puzzles"]
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a puzzle, a list of puzzles, or a 'puzzles' list")
        return data

    def load_all(self) -> List[Any]:
        """All puzzles under the path, validated, in file order.

        Raises:
            ValueError: On a malformed puzzle or a duplicate id
        """
        if self._puzzles is not None:
            return self._puzzles

        puzzle_cls = PUZZLE_TYPES[self.puzzle_type]
        puzzles: List[Any] = []
        seen = set()
        for file in self._files():
            for raw in self._read(file):
                try:
                    puzzle = puzzle_cls.from_dict(raw)
                except (KeyError, TypeError, ValueError) as e:
                    raise ValueError(f"{file}: invalid {self.puzzle_type} puzzle: {e}") from e
                if puzzle.id in seen:
                    raise ValueError(f"{file}: duplicate puzzle id {puzzle.id}")
                seen.add(puzzle.id)
                puzzles.append(puzzle)

        logger.info(f"Loaded {len(puzzles)} {self.puzzle_type} puzzles from {self.path}")
        self._puzzles = puzzles
        return puzzles

    def select(
        self,
        ids: Optional[Sequence[str]] = None,
        date_start: Optional[str] = None,
        date_end: Optional[str] = None,
        limit: Optional[int] = None,
        shuffle: bool = False,
        seed: Optional[int] = None,
    ) -> List[Any]:
        """Filter puzzles.

        Args:
            ids: Keep only these ids, in the given order
            date_start: Inclusive ISO date lower bound (undated puzzles are dropped)
            date_end: Inclusive ISO date upper bound (undated puzzles are dropped)
            limit: Maximum number of puzzles
            shuffle: Shuffle before applying the limit
            seed: Seed for a reproducible shuffle

        Raises:
            ValueError: If a requested id does not exist
        """
        puzzles = self.load_all()

        if ids:
            by_id = {p.id: p for p in puzzles}
            missing = [i for i in ids if i not in by_id]
            if missing:
                raise ValueError(f"Unknown puzzle id(s): {', '.join(missing)}")
            puzzles = [by_id[i] for i in ids]

        if date_start or date_end:
            puzzles = [
                p for p in puzzles
                if p.date
                and (not date_start or p.date >= date_start)
                and (not date_end or p.date <= date_end)
            ]

        if shuffle:
            puzzles = list(puzzles)
            random.Random(seed).shuffle(puzzles)

        if limit is not None:
            puzzles = puzzles[:limit]

        return list(puzzles)


def load_puzzles(selection: PuzzleSelection) -> List[Any]:
    """Load the puzzles a suite's ``puzzles`` section selects."""
    loader = PuzzleLoader(selection.type, selection.path)
    return loader.select(
        ids=selection.ids,
        date_start=selection.date_start,
        date_end=selection.date_end,
        limit=selection.limit,
        shuffle=selection.shuffle,
        seed=selection.seed,
    )
