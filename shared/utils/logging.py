"""Logging utilities: JSON-lines file logs plus an optional rich console."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(log_dir: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure root logging for a CLI invocation.

    Args:
        log_dir: Directory for the ``arena.log`` JSON-lines file (skipped if None)
        verbose: Also log DEBUG and above to the terminal through rich

    Returns:
        The configured root logger
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Re-running setup (e.g. several CLI commands in one process) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_arena_handler", False):
            root.removeHandler(handler)
            handler.close()

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "arena.log", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler._arena_handler = True
        root.addHandler(file_handler)

    if verbose:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setLevel(logging.DEBUG)
        console_handler._arena_handler = True
        root.addHandler(console_handler)

    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root
