"""Game engine for Crossword.

The grid is a flat list of ``width * height`` cells, each ``"#"`` (block),
``"."`` (empty) or an upper-case letter. Entries are addressed by
``(direction, number)`` and own a list of linear cell indices.

Like the Connections engine, all rules live in pure classmethods over an
immutable ``CrosswordState``.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from shared.errors import GameStateError

from .actions import allowed_action_names

BLOCK = "#"
EMPTY = "."

_LETTERS = re.compile(r"^[A-Z]+$")


@dataclass(frozen=True)
class CrosswordClue:
    number: int
    clue: str
    length: int
    cells: Tuple[int, ...]  # linear indices into the grid

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrosswordClue":
        cells = tuple(int(c) for c in data["cells"])
        length = int(data.get("length", len(cells)))
        if length != len(cells):
            raise ValueError(f"Clue {data['number']} has length {length} but {len(cells)} cells")
        return cls(number=int(data["number"]), clue=str(data["clue"]), length=length, cells=cells)


@dataclass(frozen=True)
class CrosswordPuzzle:
    """Immutable crossword: block layout, clues and solution."""
    id: str
    width: int
    height: int
    grid: Tuple[str, ...]
    across: Tuple[CrosswordClue, ...]
    down: Tuple[CrosswordClue, ...]
    solution: Tuple[str, ...]
    date: Optional[str] = None
    source: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrosswordPuzzle":
        """Create a puzzle from loader output, validating its shape.

        ``grid`` and ``solution`` may each be a flat list of cells or a list
        of row strings. ``solution`` may also be nested as ``{"grid": [...]}``.

        Raises:
            ValueError: On inconsistent dimensions, clue cells or solution
        """
        puzzle_id = str(data.get("id", ""))
        if not puzzle_id:
            raise ValueError("Crossword puzzle is missing 'id'")
        width, height = int(data["width"]), int(data["height"])

        solution_data = data["solution"]
        if isinstance(solution_data, dict):
            solution_data = solution_data["grid"]
        solution = _flatten_grid(solution_data)
        grid = _flatten_grid(data.get("grid") or [BLOCK if c == BLOCK else EMPTY for c in solution])

        size = width * height
        if len(grid) != size or len(solution) != size:
            raise ValueError(
                f"Puzzle {puzzle_id}: grid and solution must have {size} cells "
                f"(got {len(grid)} and {len(solution)})"
            )
        for i, (cell, answer) in enumerate(zip(grid, solution)):
            if (cell == BLOCK) != (answer == BLOCK):
                raise ValueError(f"Puzzle {puzzle_id}: block mismatch at cell {i}")
            if answer != BLOCK and not _LETTERS.match(answer):
                raise ValueError(f"Puzzle {puzzle_id}: solution cell {i} must be a letter, got {answer!r}")

        clues = data.get("clues", {})
        across = tuple(CrosswordClue.from_dict(c) for c in clues.get("across", []))
        down = tuple(CrosswordClue.from_dict(c) for c in clues.get("down", []))
        for clue in across + down:
            for cell in clue.cells:
                if not 0 <= cell < size or solution[cell] == BLOCK:
                    raise ValueError(f"Puzzle {puzzle_id}: clue {clue.number} uses invalid cell {cell}")

        date = data.get("date")
        return cls(
            id=puzzle_id,
            width=width,
            height=height,
            grid=grid,
            across=across,
            down=down,
            solution=solution,
            date=str(date) if date is not None else None,
            source=str(data.get("source", "")),
            metadata=dict(data.get("metadata") or {}),
        )


def _flatten_grid(rows: List[str]) -> Tuple[str, ...]:
    """Accept either one entry per cell or one string per row."""
    cells: List[str] = []
    for row in rows:
        row = str(row).upper()
        cells.extend(row if len(row) > 1 else [row])
    return tuple(cells)


@dataclass(frozen=True)
class CrosswordRules:
    allow_checks: bool = True
    allow_reveals: bool = False


@dataclass(frozen=True)
class CrosswordFeedback:
    """Result of applying one action."""
    result: str  # "filled", "cleared", "checked", "submitted", "invalid_action", "gave_up"
    message: str
    done: bool = False
    status: Optional[str] = None
    wrong_cells: Optional[Tuple[int, ...]] = None
    newly_wrong_cells: Optional[Tuple[int, ...]] = None
    success: Optional[bool] = None
    incorrect_cells: Optional[Tuple[int, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"result": self.result, "message": self.message, "done": self.done}
        if self.status is not None:
            data["status"] = self.status
        if self.wrong_cells is not None:
            data["wrong_cells"] = list(self.wrong_cells)
        if self.newly_wrong_cells is not None:
            data["newly_wrong_cells"] = list(self.newly_wrong_cells)
        if self.success is not None:
            data["success"] = self.success
        if self.incorrect_cells is not None:
            data["incorrect_cells"] = list(self.incorrect_cells)
        return data


@dataclass(frozen=True)
class HistoryEntry:
    step_index: int
    action: Dict[str, Any]
    feedback: CrosswordFeedback

    def to_dict(self) -> Dict[str, Any]:
        return {"step_index": self.step_index, "action": dict(self.action), "feedback": self.feedback.to_dict()}


@dataclass(frozen=True)
class CrosswordState:
    """Play state of one game. Replaced, never mutated, by each step."""
    puzzle: CrosswordPuzzle
    rules: CrosswordRules
    fill: Tuple[str, ...]
    clue_map: Dict[Tuple[str, int], CrosswordClue] = field(compare=False, hash=False, repr=False)
    checked_wrong_cells: FrozenSet[int] = frozenset()
    # Nothing populates this yet; kept so submit can classify reveals
    revealed_cells: FrozenSet[int] = frozenset()
    checks_performed: int = 0
    history: Tuple[HistoryEntry, ...] = ()
    state_version: int = 0
    status: str = "in_progress"  # "in_progress", "success_clean", "success_with_reveals", "fail", "gave_up"

    @property
    def done(self) -> bool:
        return self.status != "in_progress"


def _invalid(message: str) -> CrosswordFeedback:
    return CrosswordFeedback(result="invalid_action", message=message)


class CrosswordEngine:
    """Core game engine for Crossword."""

    TASK = "crossword"

    @classmethod
    def reset(cls, puzzle: CrosswordPuzzle, rules: Optional[CrosswordRules] = None) -> CrosswordState:
        """Start a new game with blocks copied and every other cell empty."""
        clue_map: Dict[Tuple[str, int], CrosswordClue] = {}
        for clue in puzzle.across:
            clue_map[("across", clue.number)] = clue
        for clue in puzzle.down:
            clue_map[("down", clue.number)] = clue

        return CrosswordState(
            puzzle=puzzle,
            rules=rules or CrosswordRules(),
            fill=tuple(BLOCK if cell == BLOCK else EMPTY for cell in puzzle.grid),
            clue_map=clue_map,
        )

    @classmethod
    def step(cls, state: Optional[CrosswordState], action: Any) -> Tuple[CrosswordState, CrosswordFeedback]:
        """Apply one action and return the new state with its feedback.

        Raises:
            GameStateError: If there is no state or the game is already over
        """
        if state is None:
            raise GameStateError("Game not initialized. Call reset() first.")
        if state.done:
            raise GameStateError("Game is already finished.")

        kind = getattr(action, "action", None)
        if kind == "fill_entry":
            feedback, updates = cls._fill_entry(state, action.direction, action.number, action.answer)
        elif kind == "clear_entry":
            feedback, updates = cls._clear_entry(state, action.direction, action.number)
        elif kind == "check_entry":
            feedback, updates = cls._check_entry(state, action.direction, action.number)
        elif kind == "submit_puzzle":
            feedback, updates = cls._submit_puzzle(state)
        elif kind == "give_up":
            feedback = CrosswordFeedback(result="gave_up", message="You gave up. Game over.", done=True, status="gave_up")
            updates = {"status": "gave_up"}
        else:
            feedback, updates = _invalid("Unknown action type."), {}

        action_dict = action.model_dump() if hasattr(action, "model_dump") else dict(action)
        entry = HistoryEntry(step_index=len(state.history), action=action_dict, feedback=feedback)
        new_state = replace(
            state,
            history=state.history + (entry,),
            state_version=state.state_version + 1,
            **updates,
        )
        return new_state, feedback

    @classmethod
    def _fill_entry(cls, state: CrosswordState, direction: str, number: int, answer: str):
        clue = state.clue_map.get((direction, number))
        if clue is None:
            return _invalid(f"No {direction} clue with number {number} exists."), {}

        normalized = answer.strip().upper()
        if len(normalized) != clue.length:
            return _invalid(
                f"Answer length ({len(normalized)}) does not match entry length ({clue.length})."
            ), {}
        if not _LETTERS.match(normalized):
            return _invalid("Answer must contain only letters A-Z."), {}

        fill = list(state.fill)
        wrong = set(state.checked_wrong_cells)
        for cell, letter in zip(clue.cells, normalized):
            if cell in state.revealed_cells:
                continue
            fill[cell] = letter
            # Editing a cell invalidates an earlier check
            wrong.discard(cell)

        feedback = CrosswordFeedback(result="filled", message=f'Filled {direction} {number} with "{normalized}".')
        return feedback, {"fill": tuple(fill), "checked_wrong_cells": frozenset(wrong)}

    @classmethod
    def _clear_entry(cls, state: CrosswordState, direction: str, number: int):
        clue = state.clue_map.get((direction, number))
        if clue is None:
            return _invalid(f"No {direction} clue with number {number} exists."), {}

        fill = list(state.fill)
        wrong = set(state.checked_wrong_cells)
        for cell in clue.cells:
            if cell not in state.revealed_cells:
                fill[cell] = EMPTY
                wrong.discard(cell)

        feedback = CrosswordFeedback(result="cleared", message=f"Cleared {direction} {number}.")
        return feedback, {"fill": tuple(fill), "checked_wrong_cells": frozenset(wrong)}

    @classmethod
    def _check_entry(cls, state: CrosswordState, direction: str, number: int):
        if not state.rules.allow_checks:
            return _invalid("Check actions are not allowed in this suite."), {}

        clue = state.clue_map.get((direction, number))
        if clue is None:
            return _invalid(f"No {direction} clue with number {number} exists."), {}
        if any(state.fill[cell] == EMPTY for cell in clue.cells):
            return _invalid(f"Cannot check {direction} {number}: entry is not fully filled."), {}

        wrong_cells = [cell for cell in clue.cells if state.fill[cell] != state.puzzle.solution[cell]]
        newly_wrong = [cell for cell in wrong_cells if cell not in state.checked_wrong_cells]

        if wrong_cells:
            message = f"{direction} {number} has {len(wrong_cells)} incorrect cell(s)."
        else:
            message = f"{direction} {number} is correct!"

        feedback = CrosswordFeedback(
            result="checked",
            message=message,
            wrong_cells=tuple(wrong_cells),
            newly_wrong_cells=tuple(newly_wrong),
        )
        return feedback, {
            "checked_wrong_cells": state.checked_wrong_cells | frozenset(newly_wrong),
            "checks_performed": state.checks_performed + 1,
        }

    @classmethod
    def _submit_puzzle(cls, state: CrosswordState):
        solution = state.puzzle.solution
        incorrect = [
            i for i, (filled, correct) in enumerate(zip(state.fill, solution))
            if correct != BLOCK and filled != correct
        ]

        if not incorrect:
            status = "success_with_reveals" if state.revealed_cells else "success_clean"
            message = (
                "Puzzle complete! (with reveals)"
                if state.revealed_cells
                else "Puzzle complete! All answers are correct."
            )
            feedback = CrosswordFeedback(result="submitted", message=message, success=True, done=True, status=status)
            return feedback, {"status": status}

        feedback = CrosswordFeedback(
            result="submitted",
            message=f"Puzzle incomplete or incorrect. {len(incorrect)} cell(s) are wrong or empty.",
            success=False,
            incorrect_cells=tuple(incorrect),
            done=True,
            status="fail",
        )
        return feedback, {"status": "fail"}

    @classmethod
    def observe(cls, state: CrosswordState) -> Dict[str, Any]:
        """What the agent sees: the current fill, never the solution."""
        def _clues(clues: Tuple[CrosswordClue, ...]) -> List[Dict[str, Any]]:
            return [
                {
                    "number": c.number,
                    "clue": c.clue,
                    "length": c.length,
                    "current_fill": "".join(state.fill[i] for i in c.cells),
                }
                for c in clues
            ]

        return {
            "task": cls.TASK,
            "puzzle_id": state.puzzle.id,
            "state_version": state.state_version,
            "width": state.puzzle.width,
            "height": state.puzzle.height,
            "fill_grid": list(state.fill),
            "checked_wrong_cells": sorted(state.checked_wrong_cells),
            "revealed_cells": sorted(state.revealed_cells),
            "clues": {"across": _clues(state.puzzle.across), "down": _clues(state.puzzle.down)},
            "history": [h.to_dict() for h in state.history],
            "allowed_actions": allowed_action_names(state.rules.allow_checks),
        }

    @classmethod
    def metrics(cls, state: Optional[CrosswordState]) -> Dict[str, Any]:
        """Checks used, accuracy of filled cells, and reveals."""
        if state is None:
            return {"checked_count": 0, "percent_correct_filled": 0.0, "revealed_count": 0}

        filled = correct = 0
        for cell, answer in zip(state.fill, state.puzzle.solution):
            if answer == BLOCK or cell == EMPTY:
                continue
            filled += 1
            if cell == answer:
                correct += 1

        percent = round(correct / filled * 100, 2) if filled else 0.0
        return {
            "checked_count": state.checks_performed,
            "percent_correct_filled": percent,
            "revealed_count": len(state.revealed_cells),
        }
