"""JSON file persistence for the runner state."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..schemas import RunState, Window, WindowStatus
from ..windows import DateWindow


LOGGER = logging.getLogger("fos_runner.persistence")


class StateFileError(RuntimeError):
    """Raised when the state file exists but cannot be read back."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStateStore:
    """
    Load, reconcile, and rewrite the run state document.

    Every mutation rewrites the whole file synchronously, so the copy on disk
    is never more than one transition behind. There is no locking: two
    runners pointed at the same state file will overwrite each other.
    """

    def __init__(self, path: Path, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._path = Path(path)
        self._clock = clock or _utcnow

    @property
    def path(self) -> Path:
        return self._path

    def load(self, windows: Sequence[DateWindow], config: Dict[str, Any]) -> RunState:
        """Return the persisted state, rebuilding it when the window set has changed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        if not self._path.exists():
            LOGGER.info("Initialising state file %s (%d windows)", self._path, len(windows))
            state = self._build(windows, config)
            self._write(state)
            return state

        state = self.read(self._path)
        incoming = [window.key for window in windows]
        existing = state.window_keys()
        if len(existing) != len(incoming) or any(key not in existing for key in incoming):
            LOGGER.warning(
                "Window set in %s no longer matches the requested plan; discarding previous progress.",
                self._path,
            )
            state = self._build(windows, config)
            self._write(state)
            return state

        if [window.key for window in state.windows] != incoming:
            by_key = {window.key: window for window in state.windows}
            state.windows = [by_key[key] for key in incoming]
            self.save(state)
        return state

    def save(self, state: RunState) -> None:
        state.updated_at = self._timestamp()
        self._write(state)

    def reset_interrupted(self, state: RunState) -> List[Window]:
        """Put windows left ``running`` by a crashed process back to ``pending``."""
        interrupted = [window for window in state.windows if window.status is WindowStatus.RUNNING]
        for window in interrupted:
            LOGGER.info("Resuming interrupted window %s", window.label)
            window.status = WindowStatus.PENDING
            window.updated_at = self._timestamp()
        if interrupted:
            self.save(state)
        return interrupted

    def mark_running(self, state: RunState, window: Window) -> None:
        window.status = WindowStatus.RUNNING
        window.attempts += 1
        self._touch(state, window)

    def mark_done(self, state: RunState, window: Window) -> None:
        window.status = WindowStatus.DONE
        window.last_error = None
        self._touch(state, window)

    def mark_failed(self, state: RunState, window: Window, error: str) -> None:
        window.status = WindowStatus.FAILED
        window.last_error = error
        self._touch(state, window)

    @staticmethod
    def read(path: Path) -> RunState:
        """Parse a state file as-is, without reconciling it against a plan."""
        path = Path(path)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise StateFileError(f"State file {path} does not exist") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise StateFileError(f"State file {path} could not be read: {exc}") from exc
        try:
            return RunState.model_validate(payload)
        except ValidationError as exc:
            raise StateFileError(f"State file {path} is not a valid run state: {exc}") from exc

    def _build(self, windows: Sequence[DateWindow], config: Dict[str, Any]) -> RunState:
        now = self._timestamp()
        return RunState(
            created_at=now,
            updated_at=now,
            config=dict(config),
            windows=[Window.from_date_window(window) for window in windows],
        )

    def _touch(self, state: RunState, window: Window) -> None:
        now = self._timestamp()
        window.updated_at = now
        state.updated_at = now
        self._write(state)

    def _write(self, state: RunState) -> None:
        payload = state.model_dump(mode="json")
        self._path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def _timestamp(self) -> str:
        return self._clock().isoformat()
