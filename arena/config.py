"""Suite configuration loaded from YAML.

A suite names the models to evaluate, which puzzles to play, and the budgets
each run is held to. See ``suites/connections_smoke.yml`` for an example.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

TASKS = ("connections", "crossword")
COMPRESSION_POLICIES = ("never", "auto", "always")


class ConfigError(ValueError):
    """Raised for a missing or invalid suite configuration value."""


@dataclass(frozen=True)
class PuzzleSelection:
    type: str
    path: Optional[str] = None
    ids: Optional[Tuple[str, ...]] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    limit: Optional[int] = None
    shuffle: bool = False
    seed: Optional[int] = None


@dataclass(frozen=True)
class OpenRouterSettings:
    temperature: float = 0.0
    max_tokens: int = 1024
    top_p: Optional[float] = None
    include_usage: bool = True


@dataclass(frozen=True)
class CrosswordRuleSettings:
    allow_checks: bool = True
    allow_reveals: bool = False


@dataclass(frozen=True)
class SuiteConfig:
    """Budgets and policy for one suite run. Immutable once loaded."""
    name: str
    models: Tuple[str, ...]
    puzzles: PuzzleSelection
    description: str = ""
    repeats: int = 1
    max_steps: int = 50
    run_timeout_ms: int = 300_000
    step_timeout_ms: int = 60_000
    max_invalid_actions: int = 5
    max_attempts: int = 3
    openrouter: OpenRouterSettings = field(default_factory=OpenRouterSettings)
    crossword_rules: CrosswordRuleSettings = field(default_factory=CrosswordRuleSettings)
    steps_compression: str = "auto"
    steps_compression_threshold_bytes: int = 5_000_000

    @property
    def task(self) -> str:
        return self.puzzles.type

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "SuiteConfig":
        """Build and validate a config from parsed YAML.

        Args:
            data: Parsed YAML mapping
            base_dir: Directory relative puzzle paths are resolved against

        Raises:
            ConfigError: Naming the first invalid field
        """
        if not isinstance(data, dict):
            raise ConfigError("Suite config must be a mapping")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigError("name: required non-empty string")

        models = data.get("models")
        if not isinstance(models, list) or not models or not all(isinstance(m, str) and m for m in models):
            raise ConfigError("models: required non-empty list of model ids")
        if len(set(models)) != len(models):
            raise ConfigError("models: duplicate model ids")

        puzzles = _puzzle_selection(data.get("puzzles"), base_dir)
        openrouter = _openrouter_settings(data.get("openrouter") or {})
        rules = data.get("crossword_rules") or {}
        crossword_rules = CrosswordRuleSettings(
            allow_checks=_bool(rules, "allow_checks", True, "crossword_rules."),
            allow_reveals=_bool(rules, "allow_reveals", False, "crossword_rules."),
        )

        compression = data.get("steps_compression", "auto")
        if compression not in COMPRESSION_POLICIES:
            raise ConfigError(f"steps_compression: must be one of {COMPRESSION_POLICIES}, got {compression!r}")

        return cls(
            name=name,
            models=tuple(models),
            puzzles=puzzles,
            description=str(data.get("description") or ""),
            repeats=_positive_int(data, "repeats", 1),
            max_steps=_positive_int(data, "max_steps", 50),
            run_timeout_ms=_positive_int(data, "run_timeout_ms", 300_000),
            step_timeout_ms=_positive_int(data, "step_timeout_ms", 60_000),
            max_invalid_actions=_positive_int(data, "max_invalid_actions", 5),
            max_attempts=_positive_int(data, "max_attempts", 3),
            openrouter=openrouter,
            crossword_rules=crossword_rules,
            steps_compression=compression,
            steps_compression_threshold_bytes=_positive_int(data, "steps_compression_threshold_bytes", 5_000_000),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SuiteConfig":
        """Load a suite file. Relative puzzle paths resolve against the current directory."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Suite file not found: {path}")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        config = cls.from_dict(data)
        logger.info(f"Loaded suite '{config.name}' from {path}: {len(config.models)} model(s), task={config.task}")
        return config


def _positive_int(data: Dict[str, Any], key: str, default: int, prefix: str = "") -> int:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{prefix}{key}: must be a positive integer, got {value!r}")
    return value


def _bool(data: Dict[str, Any], key: str, default: bool, prefix: str = "") -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{prefix}{key}: must be true or false, got {value!r}")
    return value


def _puzzle_selection(data: Any, base_dir: Optional[Path]) -> PuzzleSelection:
    if not isinstance(data, dict):
        raise ConfigError("puzzles: required mapping with at least 'type'")

    task = data.get("type")
    if task not in TASKS:
        raise ConfigError(f"puzzles.type: must be one of {TASKS}, got {task!r}")

    path = data.get("path")
    if path is not None:
        path = str(Path(base_dir) / path) if base_dir and not Path(path).is_absolute() else str(path)

    ids = data.get("ids")
    if ids is not None and (not isinstance(ids, list) or not all(isinstance(i, (str, int)) for i in ids)):
        raise ConfigError("puzzles.ids: must be a list of puzzle ids")

    limit = data.get("limit")
    if limit is not None:
        limit = _positive_int(data, "limit", 1, "puzzles.")

    seed = data.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigError(f"puzzles.seed: must be an integer, got {seed!r}")

    # YAML turns unquoted 2023-01-01 into a date; keep everything as ISO strings
    date_start = data.get("date_start")
    date_end = data.get("date_end")

    return PuzzleSelection(
        type=task,
        path=path,
        ids=tuple(str(i) for i in ids) if ids is not None else None,
        date_start=str(date_start) if date_start is not None else None,
        date_end=str(date_end) if date_end is not None else None,
        limit=limit,
        shuffle=_bool(data, "shuffle", False, "puzzles."),
        seed=seed,
    )


def _openrouter_settings(data: Dict[str, Any]) -> OpenRouterSettings:
    if not isinstance(data, dict):
        raise ConfigError("openrouter: must be a mapping")

    temperature = data.get("temperature", 0.0)
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or temperature < 0:
        raise ConfigError(f"openrouter.temperature: must be a non-negative number, got {temperature!r}")

    top_p = data.get("top_p")
    if top_p is not None and (isinstance(top_p, bool) or not isinstance(top_p, (int, float)) or not 0 < top_p <= 1):
        raise ConfigError(f"openrouter.top_p: must be in (0, 1], got {top_p!r}")

    return OpenRouterSettings(
        temperature=float(temperature),
        max_tokens=_positive_int(data, "max_tokens", 1024, "openrouter."),
        top_p=float(top_p) if top_p is not None else None,
        include_usage=_bool(data, "include_usage", True, "openrouter."),
    )
