"""
ncc-zip - package the output of the ncc bundler into a single zip archive.

This package exposes the CLI entrypoint together with the config resolver,
archive assembler, build orchestrator and run supervisor it is built from.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ncc-zip")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
