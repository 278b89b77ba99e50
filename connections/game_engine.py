"""Game engine for Connections.

Connections gives the player 16 words hiding four groups of four. The player
submits four words at a time; a submission matching a group reveals it, any
other valid submission costs one of four mistakes.

The engine is a set of pure classmethods over an immutable ``ConnectionsState``:
``step`` never mutates its input and always returns a new state. This is the
single source of truth for the game rules.
"""

import random
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from shared.errors import GameStateError

from .actions import ACTION_NAMES

LEVELS = ("yellow", "green", "blue", "purple")


def _normalize(word: str) -> str:
    return word.strip().upper()


@dataclass(frozen=True)
class ConnectionsGroup:
    """One hidden group of four words."""
    level: str  # yellow (easiest) .. purple (hardest)
    category: str
    words: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionsGroup":
        level = data.get("level")
        if isinstance(level, int) and 0 <= level < len(LEVELS):
            level = LEVELS[level]
        if level not in LEVELS:
            raise ValueError(f"Group level must be one of {LEVELS}, got {level!r}")
        words = tuple(str(w) for w in data.get("words", []))
        if len(words) != 4:
            raise ValueError(f"Group {data.get('category')!r} must have exactly 4 words, got {len(words)}")
        return cls(level=level, category=str(data.get("category", "")), words=words)

    @property
    def normalized_words(self) -> frozenset:
        return frozenset(_normalize(w) for w in self.words)

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "category": self.category, "words": list(self.words)}


@dataclass(frozen=True)
class ConnectionsPuzzle:
    """Immutable Connections puzzle: 16 words in 4 groups."""
    id: str
    words: Tuple[str, ...]
    groups: Tuple[ConnectionsGroup, ...]
    date: Optional[str] = None
    source: str = ""
    puzzle_number: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionsPuzzle":
        """Create a puzzle from loader output, validating its shape.

        ``words`` may be omitted, in which case it is taken from the groups.

        Raises:
            ValueError: If the puzzle is not 4 distinct groups of 4 distinct words
        """
        if "id" not in data:
            raise ValueError("Connections puzzle is missing 'id'")
        groups = tuple(ConnectionsGroup.from_dict(g) for g in data.get("groups", []))
        if len(groups) != 4:
            raise ValueError(f"Puzzle {data['id']} must have exactly 4 groups, got {len(groups)}")

        group_words = [_normalize(w) for g in groups for w in g.words]
        if len(set(group_words)) != 16:
            raise ValueError(f"Puzzle {data['id']} groups must contain 16 distinct words")

        words = tuple(str(w) for w in data.get("words") or [w for g in groups for w in g.words])
        if sorted(_normalize(w) for w in words) != sorted(group_words):
            raise ValueError(f"Puzzle {data['id']} words do not match its groups")

        date = data.get("date")
        return cls(
            id=str(data["id"]),
            words=words,
            groups=groups,
            date=str(date) if date is not None else None,
            source=str(data.get("source", "")),
            puzzle_number=data.get("puzzle_number"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class ConnectionsFeedback:
    """Result of applying one action."""
    result: str  # "correct", "incorrect", "invalid_action", "gave_up"
    message: str
    done: bool = False
    status: Optional[str] = None
    one_away: Optional[bool] = None
    found_group: Optional[ConnectionsGroup] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"result": self.result, "message": self.message, "done": self.done}
        if self.status is not None:
            data["status"] = self.status
        if self.one_away is not None:
            data["one_away"] = self.one_away
        if self.found_group is not None:
            data["found_group"] = self.found_group.to_dict()
        return data


@dataclass(frozen=True)
class HistoryEntry:
    step_index: int
    action: Dict[str, Any]
    feedback: ConnectionsFeedback

    def to_dict(self) -> Dict[str, Any]:
        return {"step_index": self.step_index, "action": dict(self.action), "feedback": self.feedback.to_dict()}


@dataclass(frozen=True)
class ConnectionsState:
    """Play state of one game. Replaced, never mutated, by each step."""
    puzzle: ConnectionsPuzzle
    remaining_words: Tuple[str, ...]
    found_groups: Tuple[ConnectionsGroup, ...] = ()
    mistakes_left: int = 4
    history: Tuple[HistoryEntry, ...] = ()
    state_version: int = 0
    status: str = "in_progress"  # "in_progress", "success", "fail", "gave_up"

    @property
    def done(self) -> bool:
        return self.status != "in_progress"


class ConnectionsEngine:
    """Core game engine for Connections."""

    TASK = "connections"
    MAX_MISTAKES = 4
    GROUP_SIZE = 4

    @classmethod
    def reset(cls, puzzle: ConnectionsPuzzle, rng: Optional[random.Random] = None) -> ConnectionsState:
        """Start a new game.

        The words are shuffled for presentation only; order has no effect on
        correctness.

        Args:
            puzzle: The puzzle to play
            rng: Optional random generator for a reproducible word order

        Returns:
            The initial state with 4 mistakes allowed
        """
        words = list(puzzle.words)
        (rng or random).shuffle(words)
        return ConnectionsState(
            puzzle=puzzle,
            remaining_words=tuple(words),
            mistakes_left=cls.MAX_MISTAKES,
        )

    @classmethod
    def step(cls, state: Optional[ConnectionsState], action: Any) -> Tuple[ConnectionsState, ConnectionsFeedback]:
        """Apply one action and return the new state with its feedback.

        Every action, including rejected ones, is appended to the history.
        Rejected actions leave the board and the mistake counter unchanged.

        Args:
            state: Current state from ``reset`` or a previous ``step``
            action: A ``SubmitGroupAction`` or ``GiveUpAction``

        Raises:
            GameStateError: If there is no state or the game is already over
        """
        if state is None:
            raise GameStateError("Game not initialized. Call reset() first.")
        if state.done:
            raise GameStateError("Game is already finished.")

        updates: Dict[str, Any] = {}
        kind = getattr(action, "action", None)
        if kind == "give_up":
            feedback = ConnectionsFeedback(
                result="gave_up", message="You gave up. Game over.", done=True, status="gave_up"
            )
            updates["status"] = "gave_up"
        elif kind == "submit_group":
            feedback, updates = cls._submit_group(state, list(action.words))
        else:
            feedback = ConnectionsFeedback(result="invalid_action", message="Unknown action type.")

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
    def _submit_group(
        cls, state: ConnectionsState, submitted_words: List[str]
    ) -> Tuple[ConnectionsFeedback, Dict[str, Any]]:
        submitted = [_normalize(w) for w in submitted_words]
        remaining = {_normalize(w) for w in state.remaining_words}

        if len(submitted) != cls.GROUP_SIZE:
            return ConnectionsFeedback(result="invalid_action", message="You must submit exactly 4 words."), {}
        if len(set(submitted)) != cls.GROUP_SIZE:
            return ConnectionsFeedback(result="invalid_action", message="All 4 words must be different."), {}
        for word in submitted:
            if word not in remaining:
                return ConnectionsFeedback(
                    result="invalid_action", message=f'Word "{word}" is not in the remaining words.'
                ), {}

        guess = set(submitted)

        for group in state.puzzle.groups:
            if group.normalized_words == guess:
                found_groups = state.found_groups + (group,)
                updates: Dict[str, Any] = {
                    "found_groups": found_groups,
                    "remaining_words": tuple(
                        w for w in state.remaining_words if _normalize(w) not in group.normalized_words
                    ),
                }
                if len(found_groups) == len(state.puzzle.groups):
                    updates["status"] = "success"
                    return ConnectionsFeedback(
                        result="correct",
                        message=f'Correct! Category: "{group.category}". You found all 4 groups!',
                        found_group=group,
                        done=True,
                        status="success",
                    ), updates
                return ConnectionsFeedback(
                    result="correct", message=f'Correct! Category: "{group.category}".', found_group=group
                ), updates

        # Only undiscovered groups can produce a "one away" hint
        one_away = any(
            len(group.normalized_words & guess) == cls.GROUP_SIZE - 1
            for group in state.puzzle.groups
            if group not in state.found_groups
        )
        mistakes_left = state.mistakes_left - 1

        if mistakes_left <= 0:
            message = (
                "One away! But no mistakes remaining. Game over."
                if one_away
                else "Incorrect. No mistakes remaining. Game over."
            )
            return ConnectionsFeedback(
                result="incorrect", message=message, one_away=one_away, done=True, status="fail"
            ), {"mistakes_left": 0, "status": "fail"}

        message = (
            f"One away! {mistakes_left} mistakes remaining."
            if one_away
            else f"Incorrect. {mistakes_left} mistakes remaining."
        )
        return ConnectionsFeedback(result="incorrect", message=message, one_away=one_away), {
            "mistakes_left": mistakes_left
        }

    @classmethod
    def observe(cls, state: ConnectionsState) -> Dict[str, Any]:
        """What the agent sees: everything except the unsolved groups."""
        return {
            "task": cls.TASK,
            "puzzle_id": state.puzzle.id,
            "state_version": state.state_version,
            "remaining_words": list(state.remaining_words),
            "found_groups": [g.to_dict() for g in state.found_groups],
            "mistakes_left": state.mistakes_left,
            "history": [h.to_dict() for h in state.history],
            "allowed_actions": list(ACTION_NAMES),
        }

    @classmethod
    def metrics(cls, state: Optional[ConnectionsState]) -> Dict[str, int]:
        if state is None:
            return {"mistakes_made": 0, "groups_found": 0}
        return {
            "mistakes_made": cls.MAX_MISTAKES - state.mistakes_left,
            "groups_found": len(state.found_groups),
        }
