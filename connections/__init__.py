"""Connections: find four groups of four related words among sixteen."""

from .actions import CONNECTIONS_ACTION_SCHEMA, ConnectionsAction, GiveUpAction, SubmitGroupAction, parse_action
from .game_engine import (
    ConnectionsEngine,
    ConnectionsFeedback,
    ConnectionsGroup,
    ConnectionsPuzzle,
    ConnectionsState,
)

__all__ = [
    "CONNECTIONS_ACTION_SCHEMA",
    "ConnectionsAction",
    "GiveUpAction",
    "SubmitGroupAction",
    "parse_action",
    "ConnectionsEngine",
    "ConnectionsFeedback",
    "ConnectionsGroup",
    "ConnectionsPuzzle",
    "ConnectionsState",
]
