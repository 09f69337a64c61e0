from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


DEFAULT_PIPELINE_COMMAND = ["node", "scripts/fos/fos-decisions-pipeline.mjs"]


@dataclass
class RetryPolicy:
    """Constant-delay retry budget shared by the discover and parse stages."""

    retries: int = 2
    delay_ms: int = 5000

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be zero or greater")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be zero or greater")

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass
class PipelineConfig:
    """How the external decisions pipeline is invoked."""

    command: List[str] = field(default_factory=lambda: list(DEFAULT_PIPELINE_COMMAND))
    download_delay_ms: int = 800


@dataclass
class PathsConfig:
    """Filesystem layout for the runner state and pipeline outputs."""

    root: Path
    state_path: Path
    index_path: Path
    pdf_dir: Path


@dataclass
class AppConfig:
    """Top level configuration consumed by the CLI and the window runner."""

    environment: str = "local"
    dry_run: bool = False
    paths: PathsConfig = field(default_factory=lambda: build_paths(Path.cwd()))
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON serialisable copy of the config."""
        payload = asdict(self)
        payload["paths"] = {
            "root": str(self.paths.root),
            "state_path": str(self.paths.state_path),
            "index_path": str(self.paths.index_path),
            "pdf_dir": str(self.paths.pdf_dir),
        }
        return payload


def build_paths(root: Path) -> PathsConfig:
    """Construct the default filesystem layout under *root*."""
    data_dir = Path(root) / "data" / "fos"
    return PathsConfig(
        root=Path(root),
        state_path=data_dir / "state" / "fos-runner.json",
        index_path=data_dir / "decisions-index.jsonl",
        pdf_dir=data_dir / "pdfs",
    )


def load_config(path: Optional[Path], dry_run: bool = False) -> AppConfig:
    """
    Load configuration from *path* if provided, otherwise use repository defaults.

    The configuration file is expected to be JSON. Unspecified fields fall back
    to the defaults baked into the dataclasses above.
    """
    config = AppConfig()
    config.paths = build_paths(Path.cwd())
    config.dry_run = dry_run

    if path is None:
        return config

    with Path(path).expanduser().open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    _apply_config_updates(config, data)
    config.dry_run = dry_run or bool(data.get("dry_run", config.dry_run))
    return config


def _apply_config_updates(config: AppConfig, payload: Dict[str, Any]) -> None:
    """Update *config* in-place using keys from the *payload* dict."""
    if "environment" in payload:
        config.environment = payload["environment"]

    if "pipeline" in payload:
        override = payload["pipeline"]
        if "command" in override:
            command = override["command"]
            config.pipeline.command = command.split() if isinstance(command, str) else list(command)
        if "download_delay_ms" in override:
            config.pipeline.download_delay_ms = int(override["download_delay_ms"])

    if "retry" in payload:
        override = payload["retry"]
        config.retry = RetryPolicy(
            retries=int(override.get("retries", config.retry.retries)),
            delay_ms=int(override.get("delay_ms", config.retry.delay_ms)),
        )

    if "paths" in payload:
        override = payload["paths"]
        root = Path(override.get("root", config.paths.root))
        paths = build_paths(root)
        if "state_path" in override:
            paths.state_path = Path(override["state_path"])
        if "index_path" in override:
            paths.index_path = Path(override["index_path"])
        if "pdf_dir" in override:
            paths.pdf_dir = Path(override["pdf_dir"])
        config.paths = paths
