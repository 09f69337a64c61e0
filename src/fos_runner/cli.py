from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .config import AppConfig, RetryPolicy, load_config
from .logging_config import configure_logging
from .orchestrator import RunRequest, RunSummary, WindowRunner
from .persistence import RunStateStore
from .retry import RetryingInvoker
from .sandbox import CommandRunner
from .schemas import WindowStatus
from .stages import PipelineStages
from .windows import InvalidRangeError, describe_plan, plan_windows

DEFAULT_START_DATE = "2013-04-01"

console = Console()

STATUS_STYLES = {
    WindowStatus.PENDING: "white",
    WindowStatus.RUNNING: "cyan",
    WindowStatus.DONE: "green",
    WindowStatus.FAILED: "red",
}


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="fos-runner", message="FOS runner %(version)s")
def main() -> None:
    """Windowed, resumable runner for the FOS decisions pipeline."""


@main.command()
@click.option("--start-date", type=str, default=DEFAULT_START_DATE, show_default=True)
@click.option("--end-date", type=str, default=None, help="Defaults to today (UTC).")
@click.option("--window-days", type=int, default=None, help="Fixed window width; monthly windows when omitted.")
@click.option("--pdf-dir", type=click.Path(path_type=Path), default=None, help="Passed through to the parse stage.")
@click.option("--index", "index_path", type=click.Path(path_type=Path), default=None, help="JSONL decisions index.")
@click.option("--download-delay", type=int, default=None, help="Parse stage download delay in milliseconds.")
@click.option("--retries", type=int, default=None, help="Retries per stage after the first attempt.")
@click.option("--retry-delay", type=int, default=None, help="Delay between attempts in milliseconds.")
@click.option("--state", "state_path", type=click.Path(path_type=Path), default=None, help="Runner state file.")
@click.option("--force", is_flag=True, default=False, help="Re-run every window, including completed ones.")
@click.option("--stop-on-error", is_flag=True, default=False, help="Abort the batch on the first failed window.")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None)
@click.option("--dry-run", is_flag=True, default=False, help="Log stage commands without executing them.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None, help="Also append log records to this file.")
@click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")
def run(
    start_date: str,
    end_date: Optional[str],
    window_days: Optional[int],
    pdf_dir: Optional[Path],
    index_path: Optional[Path],
    download_delay: Optional[int],
    retries: Optional[int],
    retry_delay: Optional[int],
    state_path: Optional[Path],
    force: bool,
    stop_on_error: bool,
    config_path: Optional[Path],
    dry_run: bool,
    verbose: bool,
    log_file: Optional[Path],
) -> None:
    """Discover and parse decisions window by window, resuming from the state file."""

    configure_logging(verbose=verbose, logger_name="fos_runner.cli", log_file=log_file)

    app_config = _prepare_config(
        config_path=config_path,
        dry_run=dry_run,
        pdf_dir=pdf_dir,
        index_path=index_path,
        state_path=state_path,
        download_delay=download_delay,
        retries=retries,
        retry_delay=retry_delay,
    )
    request = RunRequest(
        start_date=start_date,
        end_date=end_date or _today(),
        window_days=window_days,
        force=force,
        stop_on_error=stop_on_error,
    )

    runner = _build_runner(app_config)
    summary = runner.execute(request)
    _print_summary(summary)


@main.command()
@click.option("--start-date", type=str, default=DEFAULT_START_DATE, show_default=True)
@click.option("--end-date", type=str, default=None, help="Defaults to today (UTC).")
@click.option("--window-days", type=int, default=None)
def plan(start_date: str, end_date: Optional[str], window_days: Optional[int]) -> None:
    """Print the windows a run would process, without touching any state."""

    end = end_date or _today()
    try:
        windows = plan_windows(start_date, end, window_days)
    except InvalidRangeError as exc:
        raise click.UsageError(str(exc)) from exc

    click.echo(f"{describe_plan(window_days)} windows from {start_date} to {end} ({len(windows)} windows)")
    for window in windows:
        click.echo(f"{window.start_str} .. {window.end_str}")


@main.command()
@click.option("--state", "state_path", type=click.Path(path_type=Path), default=None, help="Runner state file.")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None)
def status(state_path: Optional[Path], config_path: Optional[Path]) -> None:
    """Show per-window progress recorded in the state file."""

    path = state_path or load_config(config_path).paths.state_path
    state = RunStateStore.read(path)

    table = Table(title=f"Runner state: {path}", show_lines=False)
    table.add_column("Window")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error")

    for window in state.windows:
        style = STATUS_STYLES[window.status]
        table.add_row(
            window.label,
            f"[{style}]{window.status.value}[/{style}]",
            str(window.attempts),
            window.last_error or "",
        )

    console.print(table)
    counts = state.counts()
    console.print(" ".join(f"{name}={total}" for name, total in counts.items()))
    console.print(f"Updated: {state.updated_at}")


def _prepare_config(
    config_path: Optional[Path],
    dry_run: bool,
    pdf_dir: Optional[Path],
    index_path: Optional[Path],
    state_path: Optional[Path],
    download_delay: Optional[int],
    retries: Optional[int],
    retry_delay: Optional[int],
) -> AppConfig:
    config = load_config(config_path, dry_run=dry_run)
    if pdf_dir is not None:
        config.paths.pdf_dir = pdf_dir
    if index_path is not None:
        config.paths.index_path = index_path
    if state_path is not None:
        config.paths.state_path = state_path
    if download_delay is not None:
        config.pipeline.download_delay_ms = download_delay
    if retries is not None or retry_delay is not None:
        config.retry = RetryPolicy(
            retries=config.retry.retries if retries is None else retries,
            delay_ms=config.retry.delay_ms if retry_delay is None else retry_delay,
        )
    _resolve_paths(config)
    return config


def _resolve_paths(config: AppConfig) -> None:
    """Anchor every path to the working directory; the stages run from `paths.root`."""
    paths = config.paths
    paths.root = paths.root.resolve()
    paths.state_path = paths.state_path.resolve()
    paths.index_path = paths.index_path.resolve()
    paths.pdf_dir = paths.pdf_dir.resolve()


def _build_runner(config: AppConfig) -> WindowRunner:
    command_runner = CommandRunner(dry_run=config.dry_run, cwd=config.paths.root)
    stages = PipelineStages(
        index_path=config.paths.index_path,
        pdf_dir=config.paths.pdf_dir,
        download_delay_ms=config.pipeline.download_delay_ms,
        pipeline_command=config.pipeline.command,
    )
    return WindowRunner(
        store=RunStateStore(config.paths.state_path),
        invoker=RetryingInvoker(command_runner, config.retry),
        stages=stages,
    )


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _print_summary(summary: RunSummary) -> None:
    click.echo("")
    colour = "green" if not summary.failed else "yellow"
    click.echo(
        click.style(
            f"Processed {summary.processed} of {summary.windows_total} windows: "
            f"{len(summary.succeeded)} done, {len(summary.failed)} failed, {len(summary.skipped)} skipped",
            fg=colour,
        )
    )
    for key in summary.failed:
        click.echo(f" - failed: {key}")
    if summary.aborted:
        click.echo("Stopped early (--stop-on-error).")
    click.echo(f"State: {summary.state_path}")
