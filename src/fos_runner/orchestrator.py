from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .dedup import dedupe_index
from .persistence.store import RunStateStore
from .retry import RetryingInvoker
from .schemas import RunState, Window, WindowStatus
from .stages import PipelineStages
from .windows import DateLike, describe_plan, parse_date, plan_windows


LOGGER = logging.getLogger("fos_runner.orchestrator")


@dataclass
class RunRequest:
    """Inputs supplied via the CLI for a given invocation."""

    start_date: DateLike
    end_date: DateLike
    window_days: Optional[int] = None
    force: bool = False
    stop_on_error: bool = False


@dataclass
class RunSummary:
    """Outcome of one pass over the window list."""

    state_path: Path
    windows_total: int
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    resumed: List[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)


class WindowRunner:
    """Drive every window through discover -> parse -> dedup, persisting each transition."""

    def __init__(
        self,
        store: RunStateStore,
        invoker: RetryingInvoker,
        stages: PipelineStages,
        deduplicator: Callable[[Path], Optional[int]] = dedupe_index,
    ) -> None:
        self._store = store
        self._invoker = invoker
        self._stages = stages
        self._dedupe = deduplicator
        self._logger = LOGGER

    def execute(self, request: RunRequest) -> RunSummary:
        """Process pending and failed windows in chronological order."""
        start_date = parse_date(request.start_date)
        end_date = parse_date(request.end_date)
        windows = plan_windows(start_date, end_date, request.window_days)
        self._stages.index_path.parent.mkdir(parents=True, exist_ok=True)

        state = self._store.load(
            windows,
            config={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "window_days": request.window_days,
                "index_path": str(self._stages.index_path),
                "pdf_dir": str(self._stages.pdf_dir),
            },
        )
        resumed = self._store.reset_interrupted(state)

        self._logger.info(
            "Running %s windows from %s to %s (%d windows)",
            describe_plan(request.window_days),
            start_date.isoformat(),
            end_date.isoformat(),
            len(state.windows),
        )

        summary = RunSummary(
            state_path=self._store.path,
            windows_total=len(state.windows),
            resumed=[window.key for window in resumed],
        )

        for window in state.windows:
            if window.status is WindowStatus.DONE and not request.force:
                summary.skipped.append(window.key)
                continue

            if self._run_window(state, window):
                summary.succeeded.append(window.key)
                continue

            summary.failed.append(window.key)
            if request.stop_on_error:
                self._logger.error("Stopping after failed window %s", window.label)
                summary.aborted = True
                break

        self._logger.info(
            "Finished: %d succeeded, %d failed, %d skipped",
            len(summary.succeeded),
            len(summary.failed),
            len(summary.skipped),
        )
        return summary

    def _run_window(self, state: RunState, window: Window) -> bool:
        self._store.mark_running(state, window)
        self._logger.info("-> window %s (attempt %d)", window.label, window.attempts)

        discovery = self._invoker.invoke(self._stages.discover(window), f"Discover {window.label}")
        if not discovery.ok:
            self._store.mark_failed(state, window, discovery.error or "discover failed")
            self._logger.error("window %s failed during discover: %s", window.label, window.last_error)
            return False

        parsed = self._invoker.invoke(self._stages.parse(window), f"Parse {window.label}")
        if not parsed.ok:
            self._store.mark_failed(state, window, parsed.error or "parse failed")
            self._logger.error("window %s failed during parse: %s", window.label, window.last_error)
            return False

        self._store.mark_done(state, window)
        self._logger.info("completed window %s", window.label)

        total = self._dedupe(self._stages.index_path)
        if total is not None:
            self._logger.info("Deduped index -> %s (%d rows)", self._stages.index_path, total)
        return True
