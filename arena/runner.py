"""Run engine: the per-run step loop, model workers and the suite orchestrator.

One ``ModelWorker`` per model plays every (puzzle, repeat) pair strictly in
sequence. The ``SuiteOrchestrator`` runs all workers concurrently on one
asyncio event loop. The only suspension points are the agent call and its
retry backoff, so workers share nothing but the event sink.

A run always ends with a ``summary.json`` whose status is one of
``RUN_STATUSES``; failures inside a run never escape it.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from shared.adapters.openrouter_adapter import OpenRouterError
from shared.errors import ActionParseError
from shared.utils.timing import Timer

from .config import SuiteConfig
from .events import EventLog, EventSink, RunEvent, fan_out, null_sink
from .tasks import GameTask, get_task
from .trace import RunSummary, StepRecord, TraceWriter

logger = logging.getLogger(__name__)

RUN_STATUSES = ("success", "success_clean", "success_with_reveals", "fail", "gave_up", "timeout", "error")
SUCCESS_STATUSES = ("success", "success_clean", "success_with_reveals")

Clock = Callable[[], float]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def model_dir_name(model_id: str) -> str:
    """Directory-safe form of a model id ("openai/gpt-4o" -> "openai_gpt-4o")."""
    return model_id.replace("/", "_")


@dataclass
class RunResult:
    summary: RunSummary
    run_dir: Path
    steps_path: Path


@dataclass
class _RunTotals:
    """Running usage totals for one run."""
    steps_taken: int = 0
    invalid_actions: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0
    cost: Optional[float] = 0.0

    def add(self, usage: Any, latency_ms: float) -> None:
        self.latency_ms += latency_ms
        if usage is None:
            return
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        # One unpriced call makes the total unknown
        if usage.cost is None or self.cost is None:
            self.cost = None
        else:
            self.cost += usage.cost

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ModelWorker:
    """Plays every assigned run for one model, one run at a time."""

    def __init__(
        self,
        model_id: str,
        config: SuiteConfig,
        client: Any,
        task: GameTask,
        suite_dir: Union[str, Path],
        emit: Optional[EventSink] = None,
        clock: Clock = time.monotonic,
    ):
        """
        Args:
            model_id: Model alias or OpenRouter id
            config: Suite budgets and policy
            client: Agent client exposing ``async complete(...)``
            task: Game binding for the suite's puzzle type
            suite_dir: Directory that run directories are created under
            emit: Event sink
            clock: Monotonic clock in seconds, used for the run time budget
        """
        self.model_id = model_id
        self.config = config
        self.client = client
        self.task = task
        self.suite_dir = Path(suite_dir)
        self.emit = emit or null_sink
        self.clock = clock

    def _emit(self, event: RunEvent) -> None:
        # Observers must not be able to break a run
        try:
            self.emit(event)
        except Exception:
            logger.exception(f"[{self.model_id}] Event sink failed on {event.type} event")

    async def run_all(self, puzzles: List[Any]) -> List[RunResult]:
        """Play every (puzzle, repeat) pair in order, then emit ``worker_idle``.

        A run that cannot even be set up (for example an unwritable output
        directory) emits an ``error`` event and the worker moves on.
        """
        results: List[RunResult] = []
        for puzzle in puzzles:
            for repeat_index in range(self.config.repeats):
                try:
                    results.append(await self.run_once(puzzle, repeat_index))
                except Exception as e:
                    logger.exception(f"[{self.model_id}] Run on {puzzle.id} (repeat {repeat_index}) failed: {e}")
                    self._emit(RunEvent(type="error", model_id=self.model_id, puzzle_id=puzzle.id, error=str(e)))

        self._emit(RunEvent(type="worker_idle", model_id=self.model_id))
        logger.info(f"[{self.model_id}] Worker finished {len(results)} run(s)")
        return results

    async def run_once(self, puzzle: Any, repeat_index: int = 0) -> RunResult:
        """Play one puzzle to a terminal status and persist its trace."""
        run_id = uuid.uuid4().hex
        run_dir = self.suite_dir / model_dir_name(self.model_id) / puzzle.id / run_id
        writer = TraceWriter(
            run_dir,
            compression=self.config.steps_compression,
            threshold_bytes=self.config.steps_compression_threshold_bytes,
        )

        logger.info(f"[{self.model_id}] Starting run {run_id} on {puzzle.id} (repeat {repeat_index})")
        self._emit(RunEvent(type="run_start", model_id=self.model_id, puzzle_id=puzzle.id, run_id=run_id))

        started_at = _now_iso()
        start = self.clock()
        totals = _RunTotals()
        status: Optional[str] = None
        error: Optional[str] = None
        state = None

        def elapsed_ms() -> float:
            return (self.clock() - start) * 1000

        try:
            state = self.task.reset(puzzle)
            for step_index in range(self.config.max_steps):
                if elapsed_ms() > self.config.run_timeout_ms:
                    status = "timeout"
                    break

                state, feedback = await self._play_step(step_index, state, run_id, puzzle.id, writer, totals)

                if totals.invalid_actions >= self.config.max_invalid_actions:
                    logger.warning(
                        f"[{self.model_id}] Run {run_id} hit {totals.invalid_actions} invalid actions, stopping"
                    )
                    status = "fail"
                    break
                if feedback is not None and feedback.done:
                    status = feedback.status
                    break

            if status is None:
                status = "timeout" if elapsed_ms() > self.config.run_timeout_ms else "fail"
        except Exception as e:
            logger.exception(f"[{self.model_id}] Run {run_id} on {puzzle.id} crashed: {e}")
            status = "error"
            error = f"{type(e).__name__}: {e}"

        summary = RunSummary(
            run_id=run_id,
            suite_name=self.config.name,
            started_at=started_at,
            ended_at=_now_iso(),
            model_id=self.model_id,
            puzzle_id=puzzle.id,
            task=self.task.name,
            status=status,
            steps_taken=totals.steps_taken,
            invalid_actions=totals.invalid_actions,
            usage={
                "prompt_tokens": totals.prompt_tokens,
                "completion_tokens": totals.completion_tokens,
                "total_tokens": totals.total_tokens,
            },
            latency_ms_total=totals.latency_ms,
            cost_total=totals.cost,
            metrics=self.task.engine.metrics(state),
            repeat_index=repeat_index,
            error=error,
        )
        steps_path = writer.finalize(summary)

        logger.info(
            f"[{self.model_id}] Run {run_id} on {puzzle.id} complete: {status} "
            f"after {totals.steps_taken} steps ({totals.latency_ms:.0f}ms)"
        )
        self._emit(RunEvent(
            type="run_complete",
            model_id=self.model_id,
            puzzle_id=puzzle.id,
            run_id=run_id,
            total_steps=totals.steps_taken,
            status=status,
            tokens=totals.total_tokens,
            prompt_tokens=totals.prompt_tokens,
            completion_tokens=totals.completion_tokens,
            cost=totals.cost,
            latency_ms=totals.latency_ms,
            error=error,
        ))
        return RunResult(summary=summary, run_dir=run_dir, steps_path=steps_path)

    async def _play_step(
        self,
        step_index: int,
        state: Any,
        run_id: str,
        puzzle_id: str,
        writer: TraceWriter,
        totals: _RunTotals,
    ):
        """One agent call, parse and apply. Returns the new state and feedback (None if not applied)."""
        engine = self.task.engine
        observation = engine.observe(state)
        messages = self.task.build_messages(observation)
        settings = self.config.openrouter
        request = {
            "model": self.model_id,
            "messages": messages,
            "params": {
                "temperature": settings.temperature,
                "max_tokens": settings.max_tokens,
                "top_p": settings.top_p,
            },
            "response_format": self.task.response_format,
        }

        self._emit(RunEvent(
            type="step_start", model_id=self.model_id, puzzle_id=puzzle_id, run_id=run_id, step_index=step_index
        ))

        raw = ""
        parsed_action: Optional[Dict[str, Any]] = None
        feedback = None
        usage = None
        error: Optional[str] = None

        with Timer() as timer:
            try:
                response = await self.client.complete(
                    self.model_id,
                    messages,
                    temperature=settings.temperature,
                    max_tokens=settings.max_tokens,
                    top_p=settings.top_p,
                    response_format=self.task.response_format,
                    timeout_ms=self.config.step_timeout_ms,
                    max_attempts=self.config.max_attempts,
                )
            except OpenRouterError as e:
                response = None
                error = f"API error: {e}"
                logger.warning(f"[{self.model_id}] Step {step_index} of run {run_id}: {error}")

        if response is not None:
            raw = response.content
            usage = response.usage
            latency_ms = response.latency_ms
            try:
                action = self.task.parse_action(raw)
            except ActionParseError as e:
                error = f"Failed to parse action: {e}"
                totals.invalid_actions += 1
                logger.warning(f"[{self.model_id}] Step {step_index} of run {run_id}: {error}")
                logger.debug(f"Raw response: {raw}")
            else:
                parsed_action = action.model_dump()
                state, feedback = engine.step(state, action)
                if feedback.result == "invalid_action":
                    totals.invalid_actions += 1
                    logger.info(f"[{self.model_id}] Step {step_index}: invalid action: {feedback.message}")
        else:
            latency_ms = timer.elapsed_ms

        totals.add(usage, latency_ms)
        totals.steps_taken += 1

        writer.append(StepRecord(
            step_index=step_index,
            observation=observation,
            request=request,
            response={"raw": raw, "parsed": parsed_action},
            parsed_action=parsed_action,
            feedback=feedback.to_dict() if feedback is not None else None,
            usage={
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "cost": usage.cost,
            } if usage is not None else None,
            latency_ms=latency_ms,
            error=error,
        ))

        self._emit(RunEvent(
            type="step_complete",
            model_id=self.model_id,
            puzzle_id=puzzle_id,
            run_id=run_id,
            step_index=step_index,
            tokens=usage.total_tokens if usage is not None else None,
            prompt_tokens=usage.prompt_tokens if usage is not None else None,
            completion_tokens=usage.completion_tokens if usage is not None else None,
            cost=usage.cost if usage is not None else None,
            latency_ms=latency_ms,
            error=error,
        ))
        return state, feedback


class SuiteOrchestrator:
    """Runs one worker per model concurrently and relays their events."""

    def __init__(
        self,
        config: SuiteConfig,
        puzzles: List[Any],
        client: Any,
        output_dir: Union[str, Path] = "runs",
        emit: Optional[EventSink] = None,
        task: Optional[GameTask] = None,
        write_event_log: bool = True,
        clock: Clock = time.monotonic,
        started_at: Optional[datetime] = None,
    ):
        self.config = config
        self.puzzles = list(puzzles)
        self.client = client
        self.emit = emit
        self.task = task or get_task(config.task, config.crossword_rules)
        self.write_event_log = write_event_log
        self.clock = clock

        started_at = started_at or datetime.now(timezone.utc)
        self.timestamp = started_at.strftime("%Y-%m-%dT%H-%M-%S")
        self.suite_dir = Path(output_dir) / config.name / self.timestamp

    @property
    def total_runs(self) -> int:
        return len(self.config.models) * len(self.puzzles) * self.config.repeats

    async def run(self) -> Dict[str, List[RunResult]]:
        """Run every worker to completion.

        Returns:
            Run results keyed by model id, in configured model order
        """
        logger.info(
            f"Starting suite '{self.config.name}': {len(self.config.models)} model(s), "
            f"{len(self.puzzles)} puzzle(s), {self.config.repeats} repeat(s), {self.total_runs} run(s)"
        )
        self.suite_dir.mkdir(parents=True, exist_ok=True)

        event_log = EventLog(self.suite_dir / "events.jsonl") if self.write_event_log else None
        emit = fan_out(self.emit, event_log)
        try:
            workers = [
                ModelWorker(model_id, self.config, self.client, self.task, self.suite_dir, emit, self.clock)
                for model_id in self.config.models
            ]
            results = await asyncio.gather(*(worker.run_all(self.puzzles) for worker in workers))
        finally:
            if event_log is not None:
                event_log.close()

        by_model = dict(zip(self.config.models, results))
        completed = sum(len(r) for r in results)
        logger.info(f"Suite '{self.config.name}' complete: {completed}/{self.total_runs} run(s) in {self.suite_dir}")
        return by_model


def run_suite(
    config: SuiteConfig,
    puzzles: List[Any],
    client: Any,
    output_dir: Union[str, Path] = "runs",
    emit: Optional[EventSink] = None,
) -> Dict[str, List[RunResult]]:
    """Blocking entry point: run a whole suite on a fresh event loop."""
    orchestrator = SuiteOrchestrator(config, puzzles, client, output_dir=output_dir, emit=emit)
    return asyncio.run(orchestrator.run())
