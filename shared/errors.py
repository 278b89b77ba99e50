"""Exceptions shared by the game engines and the run engine."""


class GameStateError(RuntimeError):
    """Raised when an engine is stepped without a live game.

    This covers stepping before ``reset()`` and stepping a game that has
    already reached a terminal status.
    """


class ActionParseError(ValueError):
    """Raised when an agent response cannot be parsed into a game action."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
