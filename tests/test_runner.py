import json
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from fos_runner.config import RetryPolicy
from fos_runner.orchestrator import RunRequest, WindowRunner
from fos_runner.persistence import RunStateStore
from fos_runner.retry import RetryingInvoker
from fos_runner.sandbox import CommandResult
from fos_runner.schemas import Window
from fos_runner.stages import PipelineStages
from fos_runner.windows import InvalidRangeError


class ScriptedPipeline:
    """
    Stand-in for the decisions pipeline.

    Discover appends two copies of a record plus a malformed line to the index
    so the dedup pass has something to collapse.
    """

    def __init__(self, index_path: Path, failures: Dict[Tuple[str, str], int] = None) -> None:
        self.index_path = index_path
        self.failures = failures or {}
        self.calls: List[Tuple[str, str]] = []

    def run(self, command):
        command = list(command)
        stage = command[command.index("--stage") + 1]
        start = command[command.index("--start-date") + 1]
        self.calls.append((stage, start))
        code = self.failures.get((stage, start), 0)
        if code == 0 and stage == "discover":
            record = json.dumps({"pdf_url": f"https://fos.example/{start}.pdf"})
            with self.index_path.open("a", encoding="utf-8") as handle:
                handle.write(f"{record}\n{record}\nnot-json\n")
        return CommandResult(command=command, return_code=code)


def _build(tmp_path: Path, failures=None, retries=2):
    index_path = tmp_path / "decisions-index.jsonl"
    pipeline = ScriptedPipeline(index_path, failures)
    sleeps: List[float] = []
    invoker = RetryingInvoker(pipeline, RetryPolicy(retries=retries, delay_ms=10), sleep=sleeps.append)
    stages = PipelineStages(index_path=index_path, pdf_dir=tmp_path / "pdfs", download_delay_ms=800)
    store = RunStateStore(tmp_path / "state" / "runner.json")
    return WindowRunner(store=store, invoker=invoker, stages=stages), pipeline, store, sleeps


def _windows(store: RunStateStore):
    return RunStateStore.read(store.path).windows


REQUEST = RunRequest(start_date="2020-01-01", end_date="2020-01-10", window_days=3)


def test_all_windows_complete(tmp_path: Path):
    runner, pipeline, store, sleeps = _build(tmp_path)
    summary = runner.execute(REQUEST)

    assert summary.windows_total == 4
    assert summary.succeeded == [
        "2020-01-01:2020-01-03",
        "2020-01-04:2020-01-06",
        "2020-01-07:2020-01-09",
        "2020-01-10:2020-01-10",
    ]
    assert summary.failed == []
    assert sleeps == []
    assert pipeline.calls[:2] == [("discover", "2020-01-01"), ("parse", "2020-01-01")]
    windows = _windows(store)
    assert all(w.status.value == "done" and w.attempts == 1 for w in windows)

    lines = pipeline.index_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert json.loads(lines[0]) == {"pdf_url": "https://fos.example/2020-01-01.pdf"}


def test_failed_discover_marks_window_and_continues(tmp_path: Path):
    runner, pipeline, store, sleeps = _build(tmp_path, failures={("discover", "2020-01-04"): 2})
    summary = runner.execute(REQUEST)

    assert summary.failed == ["2020-01-04:2020-01-06"]
    assert len(summary.succeeded) == 3
    assert pipeline.calls.count(("discover", "2020-01-04")) == 3
    assert ("parse", "2020-01-04") not in pipeline.calls
    assert sleeps == [0.01, 0.01]

    failed = _windows(store)[1]
    assert failed.status.value == "failed"
    assert failed.last_error == "node failed with exit code 2"
    assert failed.attempts == 1


def test_failed_parse_marks_window_failed(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path, failures={("parse", "2020-01-07"): 1}, retries=0)
    summary = runner.execute(REQUEST)

    assert summary.failed == ["2020-01-07:2020-01-09"]
    assert _windows(store)[2].last_error == "node failed with exit code 1"


def test_stop_on_error_aborts_remaining_windows(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path, failures={("discover", "2020-01-04"): 1}, retries=0)
    request = RunRequest(start_date="2020-01-01", end_date="2020-01-10", window_days=3, stop_on_error=True)
    summary = runner.execute(request)

    assert summary.aborted is True
    assert summary.failed == ["2020-01-04:2020-01-06"]
    statuses = [w.status.value for w in _windows(store)]
    assert statuses == ["done", "failed", "pending", "pending"]
    assert ("discover", "2020-01-07") not in pipeline.calls


def test_second_invocation_retries_failed_and_skips_done(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path, failures={("discover", "2020-01-04"): 1}, retries=0)
    runner.execute(REQUEST)

    pipeline.failures.clear()
    pipeline.calls.clear()
    summary = runner.execute(REQUEST)

    assert summary.succeeded == ["2020-01-04:2020-01-06"]
    assert len(summary.skipped) == 3
    assert pipeline.calls == [("discover", "2020-01-04"), ("parse", "2020-01-04")]
    window = _windows(store)[1]
    assert window.status.value == "done"
    assert window.attempts == 2
    assert window.last_error is None


def test_force_reruns_completed_windows(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path)
    runner.execute(REQUEST)
    forced = RunRequest(start_date="2020-01-01", end_date="2020-01-10", window_days=3, force=True)
    summary = runner.execute(forced)

    assert len(summary.succeeded) == 4
    assert summary.skipped == []
    assert all(w.attempts == 2 for w in _windows(store))


def test_interrupted_window_is_resumed(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path)
    runner.execute(REQUEST)

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    payload["windows"][2]["status"] = "running"
    store.path.write_text(json.dumps(payload), encoding="utf-8")
    pipeline.calls.clear()

    summary = runner.execute(REQUEST)

    assert summary.resumed == ["2020-01-07:2020-01-09"]
    assert summary.succeeded == ["2020-01-07:2020-01-09"]
    assert pipeline.calls == [("discover", "2020-01-07"), ("parse", "2020-01-07")]
    windows = _windows(store)
    assert windows[2].attempts == 2
    assert [w.attempts for w in windows[:2]] == [1, 1]


def test_changing_window_days_rebuilds_state(tmp_path: Path):
    runner, _, store, _ = _build(tmp_path)
    runner.execute(REQUEST)
    summary = runner.execute(RunRequest(start_date="2020-01-01", end_date="2020-01-10", window_days=5))

    assert summary.windows_total == 2
    assert summary.skipped == []
    assert all(w.attempts == 1 for w in _windows(store))


def test_monthly_plan_is_default(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path)
    summary = runner.execute(RunRequest(start_date="2020-01-15", end_date="2020-03-02"))

    assert summary.succeeded == ["2020-01-15:2020-01-31", "2020-02-01:2020-02-29", "2020-03-01:2020-03-02"]
    state = RunStateStore.read(store.path)
    assert state.config["window_days"] is None
    assert state.config["index_path"] == str(pipeline.index_path)


def test_invalid_range_fails_before_state_is_written(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path)
    with pytest.raises(InvalidRangeError):
        runner.execute(RunRequest(start_date="2020-02-01", end_date="2020-01-01"))
    with pytest.raises(InvalidRangeError):
        runner.execute(RunRequest(start_date="2020-01-01", end_date="2020-02-01", window_days=0))
    assert not store.path.exists()
    assert pipeline.calls == []


def test_stage_commands(tmp_path: Path):
    stages = PipelineStages(index_path=tmp_path / "i.jsonl", pdf_dir=tmp_path / "pdfs", download_delay_ms=250)
    window = Window(start="2020-01-01", end="2020-01-31")
    assert stages.discover(window) == [
        "node",
        "scripts/fos/fos-decisions-pipeline.mjs",
        "--stage",
        "discover",
        "--start-date",
        "2020-01-01",
        "--end-date",
        "2020-01-31",
        "--append",
        "--index",
        str(tmp_path / "i.jsonl"),
    ]
    assert stages.parse(window)[-6:] == [
        "--index",
        str(tmp_path / "i.jsonl"),
        "--pdf-dir",
        str(tmp_path / "pdfs"),
        "--download-delay",
        "250",
    ]


def test_reordered_state_file_runs_in_plan_order(tmp_path: Path):
    runner, pipeline, store, _ = _build(tmp_path, failures={("discover", "2020-01-01"): 1}, retries=0)
    runner.execute(REQUEST)
    pipeline.failures.clear()

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    for window in payload["windows"]:
        window["status"] = "pending"
    payload["windows"].reverse()
    store.path.write_text(json.dumps(payload), encoding="utf-8")
    pipeline.calls.clear()

    runner.execute(REQUEST)

    discovered = [start for stage, start in pipeline.calls if stage == "discover"]
    assert discovered == ["2020-01-01", "2020-01-04", "2020-01-07", "2020-01-10"]
