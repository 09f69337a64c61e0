"""
FOS runner - windowed, resumable driver for the decisions scraping pipeline.

This package exposes the CLI entrypoint together with the window planning,
state persistence, and retrying command execution it is built from.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fos-runner")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
