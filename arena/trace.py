"""Per-run trace persistence.

Each run directory holds:
- ``steps.jsonl`` (or ``steps.jsonl.gz``): one JSON object per step, appended
  and flushed as soon as the step completes
- ``summary.json``: the run outcome, written once via a temporary file and an
  atomic rename so readers never see a partial summary
"""

import gzip
import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

STEPS_FILE = "steps.jsonl"
STEPS_GZ_FILE = "steps.jsonl.gz"
SUMMARY_FILE = "summary.json"


def _from_known_fields(cls, data: Dict[str, Any]):
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class StepRecord:
    """One step of a run. Written once, never modified."""
    step_index: int
    observation: Dict[str, Any]
    request: Dict[str, Any]
    response: Dict[str, Any]  # {"raw": str, "parsed": dict | None}
    parsed_action: Optional[Dict[str, Any]] = None
    feedback: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, Any]] = None
    latency_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRecord":
        return _from_known_fields(cls, data)


@dataclass
class RunSummary:
    """Aggregate outcome of one run."""
    run_id: str
    suite_name: str
    started_at: str
    ended_at: str
    model_id: str
    puzzle_id: str
    task: str
    status: str
    steps_taken: int
    invalid_actions: int
    usage: Dict[str, int] = field(
        default_factory=lambda: {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    )
    latency_ms_total: float = 0.0
    cost_total: Optional[float] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    repeat_index: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunSummary":
        return _from_known_fields(cls, data)


class TraceWriter:
    """Write one run's steps and summary into its run directory."""

    def __init__(
        self,
        run_dir: Union[str, Path],
        compression: str = "auto",
        threshold_bytes: int = 5_000_000,
    ):
        """
        Args:
            run_dir: Directory for this run (created if needed)
            compression: "never", "auto" (gzip above threshold) or "always"
            threshold_bytes: Size above which "auto" compresses the steps file
        """
        self.run_dir = Path(run_dir)
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.compression = compression
        self.threshold_bytes = threshold_bytes
        self.steps_path = self.run_dir / STEPS_FILE
        self._steps_file = open(self.steps_path, "a", encoding="utf-8")
        self.steps_written = 0

    def append(self, step: StepRecord) -> None:
        """Append one step and flush it to disk."""
        self._steps_file.write(json.dumps(step.to_dict()) + "\n")
        self._steps_file.flush()
        self.steps_written += 1

    def close(self) -> None:
        if not self._steps_file.closed:
            self._steps_file.close()

    def _should_compress(self) -> bool:
        if self.compression == "always":
            return True
        if self.compression == "auto":
            return self.steps_path.stat().st_size > self.threshold_bytes
        return False

    def _compress_steps(self) -> Path:
        gz_path = self.run_dir / STEPS_GZ_FILE
        tmp_path = self.run_dir / (STEPS_GZ_FILE + ".tmp")
        with open(self.steps_path, "rb") as src, gzip.open(tmp_path, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.replace(tmp_path, gz_path)
        self.steps_path.unlink()
        logger.debug(f"Compressed steps to {gz_path}")
        return gz_path

    def write_summary(self, summary: RunSummary) -> Path:
        """Atomically write ``summary.json``."""
        path = self.run_dir / SUMMARY_FILE
        tmp_path = self.run_dir / (SUMMARY_FILE + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(summary.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        return path

    def finalize(self, summary: RunSummary) -> Path:
        """Close the steps file, compress it per policy, then write the summary.

        Returns:
            Path of the final steps file (plain or gzip)
        """
        self.close()
        steps_path = self._compress_steps() if self._should_compress() else self.steps_path
        self.write_summary(summary)
        return steps_path


def read_steps(run_dir: Union[str, Path]) -> List[StepRecord]:
    """Read a run's steps, from the gzip file if present."""
    run_dir = Path(run_dir)
    gz_path = run_dir / STEPS_GZ_FILE
    if gz_path.exists():
        f = gzip.open(gz_path, "rt", encoding="utf-8")
    else:
        f = open(run_dir / STEPS_FILE, "r", encoding="utf-8")
    with f:
        return [StepRecord.from_dict(json.loads(line)) for line in f if line.strip()]


def read_summary(run_dir: Union[str, Path]) -> RunSummary:
    with open(Path(run_dir) / SUMMARY_FILE, "r", encoding="utf-8") as f:
        return RunSummary.from_dict(json.load(f))
