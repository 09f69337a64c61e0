from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from shutil import which
from typing import Iterable, List, Optional


LOGGER = logging.getLogger("fos_runner.sandbox")


@dataclass
class CommandResult:
    command: List[str]
    return_code: int
    stdout: str = ""
    stderr: str = ""
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    def describe_failure(self) -> str:
        executable = self.command[0] if self.command else "<empty>"
        if self.reason == "missing-executable":
            return f"{executable} could not be found"
        if self.reason == "os-error":
            return f"{executable} could not be started: {self.stderr.strip()}"
        if self.reason == "empty-command":
            return "empty command"
        return f"{executable} failed with exit code {self.return_code}"


class CommandRunner:
    """
    Blocking command runner with dry-run support used for the pipeline stages.

    By default the child inherits stdout/stderr so scraper progress shows up
    on the console as it happens; pass ``capture_output=True`` to collect it
    on the result instead.
    """

    def __init__(self, dry_run: bool = False, cwd: Optional[Path] = None, capture_output: bool = False) -> None:
        self._dry_run = dry_run
        self._cwd = Path(cwd) if cwd else None
        self._capture_output = capture_output

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def run(self, command: Iterable[str]) -> CommandResult:
        command_list = [str(part) for part in command]

        if not command_list:
            return CommandResult(command=command_list, return_code=1, reason="empty-command")

        if self._dry_run:
            LOGGER.info("[dry-run] command skipped: %s", " ".join(command_list))
            return CommandResult(command=command_list, return_code=0, skipped=True, reason="dry-run")

        if not self._executable_exists(command_list[0]):
            LOGGER.error("[missing-executable] %s", command_list[0])
            return CommandResult(command=command_list, return_code=127, reason="missing-executable")

        LOGGER.debug("$ %s", " ".join(command_list))
        try:
            completed = subprocess.run(
                command_list,
                cwd=self._cwd,
                capture_output=self._capture_output,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            LOGGER.error("[missing-executable] %s: %s", command_list[0], exc)
            return CommandResult(command=command_list, return_code=127, stderr=str(exc), reason="missing-executable")
        except OSError as exc:
            LOGGER.error("[os-error] %s: %s", " ".join(command_list), exc)
            return CommandResult(
                command=command_list,
                return_code=getattr(exc, "errno", 1) or 1,
                stderr=str(exc),
                reason="os-error",
            )
        return CommandResult(
            command=command_list,
            return_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def _executable_exists(self, executable: str) -> bool:
        if which(executable) is not None:
            return True
        candidate = Path(executable)
        if not candidate.is_absolute() and self._cwd is not None:
            candidate = self._cwd / candidate
        return candidate.exists()
