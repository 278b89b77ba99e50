"""Prompt template loading and variable hydration.

Templates are markdown files with ``{{VARIABLE}}`` placeholders. Context keys
are matched case-insensitively against the upper-case placeholder names.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{([A-Z0-9_]+)\}\}")


class PromptManager:
    """Load prompt templates from disk and fill in their variables."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        # Default to the project root so paths like "connections/prompts/system.md" resolve
        self.base_dir = Path(base_dir) if base_dir else Path(__file__).parent.parent
        self._cache: Dict[Path, str] = {}

    def _resolve(self, prompt_file: Union[str, Path]) -> Path:
        path = Path(prompt_file)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def load_template(self, prompt_file: Union[str, Path]) -> str:
        """Read a template file (cached after the first read)."""
        path = self._resolve(prompt_file)
        if path not in self._cache:
            if not path.exists():
                raise FileNotFoundError(f"Prompt template not found: {path}")
            self._cache[path] = path.read_text(encoding="utf-8")
            logger.debug(f"Loaded prompt template {path}")
        return self._cache[path]

    def load_prompt(self, prompt_file: Union[str, Path], context: Optional[Dict[str, Any]] = None) -> str:
        """
        Load a template and replace its placeholders.

        Args:
            prompt_file: Template path (relative to ``base_dir`` unless absolute)
            context: Mapping of variable name to value; values are str()-ed

        Returns:
            The hydrated prompt. Placeholders without a context value are
            replaced with an empty string and logged as a warning.
        """
        template = self.load_template(prompt_file)
        values = {str(k).upper(): v for k, v in (context or {}).items()}

        def _substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in values:
                logger.warning(f"Prompt variable {name} missing from context for {prompt_file}")
                return ""
            return str(values[name])

        return _PLACEHOLDER.sub(_substitute, template).strip()
