"""Command lines for the two pipeline stages run against each window."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .config import DEFAULT_PIPELINE_COMMAND
from .schemas import Window


@dataclass
class PipelineStages:
    """Build the discover and parse invocations for a window."""

    index_path: Path
    pdf_dir: Path
    download_delay_ms: int = 800
    pipeline_command: List[str] = field(default_factory=lambda: list(DEFAULT_PIPELINE_COMMAND))

    def discover(self, window: Window) -> List[str]:
        return [
            *self.pipeline_command,
            "--stage",
            "discover",
            "--start-date",
            window.start,
            "--end-date",
            window.end,
            "--append",
            "--index",
            str(self.index_path),
        ]

    def parse(self, window: Window) -> List[str]:
        return [
            *self.pipeline_command,
            "--stage",
            "parse",
            "--start-date",
            window.start,
            "--end-date",
            window.end,
            "--index",
            str(self.index_path),
            "--pdf-dir",
            str(self.pdf_dir),
            "--download-delay",
            str(self.download_delay_ms),
        ]
