"""Shared data models for the persisted run state."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .windows import DateWindow


class WindowStatus(str, Enum):
    """Lifecycle states tracked for a window."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class Window(BaseModel):
    """Progress record for a single date window."""

    start: str = Field(..., description="Inclusive first day, YYYY-MM-DD.")
    end: str = Field(..., description="Inclusive last day, YYYY-MM-DD.")
    status: WindowStatus = Field(default=WindowStatus.PENDING)
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = Field(default=None)
    updated_at: Optional[str] = Field(default=None)

    @property
    def key(self) -> str:
        return f"{self.start}:{self.end}"

    @property
    def label(self) -> str:
        return f"{self.start} -> {self.end}"

    @classmethod
    def from_date_window(cls, window: DateWindow) -> "Window":
        return cls(start=window.start_str, end=window.end_str)


class RunState(BaseModel):
    """The whole state document written to disk after every transition."""

    created_at: str
    updated_at: str
    config: Dict[str, Any] = Field(default_factory=dict)
    windows: List[Window] = Field(default_factory=list)

    def window_keys(self) -> Set[str]:
        return {window.key for window in self.windows}

    def counts(self) -> Dict[str, int]:
        totals = {status.value: 0 for status in WindowStatus}
        for window in self.windows:
            totals[window.status.value] += 1
        return totals
