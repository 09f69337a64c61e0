"""Run an external command with a fixed retry budget and a constant delay."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import RetryPolicy
from .sandbox import CommandRunner


LOGGER = logging.getLogger("fos_runner.retry")


class StageFailed(Exception):
    """One attempt of an external command exited unsuccessfully."""


@dataclass
class InvocationResult:
    ok: bool
    attempts: int
    error: Optional[str] = None


class RetryingInvoker:
    """
    Invoke commands through a :class:`CommandRunner`, retrying failed attempts.

    ``sleep`` is called with the delay in seconds between attempts. It blocks
    the whole process by default; tests inject a recorder instead.
    """

    def __init__(
        self,
        runner: CommandRunner,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runner = runner
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def invoke(self, command: Sequence[str], label: str) -> InvocationResult:
        retrying = Retrying(
            stop=stop_after_attempt(self._policy.max_attempts),
            wait=wait_fixed(self._policy.delay_seconds),
            retry=retry_if_exception_type(StageFailed),
            sleep=self._sleep,
            before_sleep=self._before_sleep(label),
            reraise=True,
        )
        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts += 1
                    self._run_once(command)
        except StageFailed as exc:
            LOGGER.error("%s failed after %d attempt(s): %s", label, attempts, exc)
            return InvocationResult(ok=False, attempts=attempts, error=str(exc))
        return InvocationResult(ok=True, attempts=attempts)

    def _run_once(self, command: Sequence[str]) -> None:
        result = self._runner.run(command)
        if not result.ok:
            raise StageFailed(result.describe_failure())

    def _before_sleep(self, label: str) -> Callable[[RetryCallState], None]:
        def _log(retry_state: RetryCallState) -> None:
            LOGGER.warning(
                "%s failed (attempt %d/%d); retrying in %dms.",
                label,
                retry_state.attempt_number,
                self._policy.max_attempts,
                self._policy.delay_ms,
            )

        return _log
