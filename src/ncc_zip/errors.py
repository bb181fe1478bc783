"""Error taxonomy shared by every command."""

from __future__ import annotations

import sys
from typing import IO, Any, Optional

import click


class NccZipError(click.ClickException):
    """Base error carrying the exit code the CLI should terminate with.

    Messages are printed verbatim. ``silent`` errors have already been
    reported to the user (for example by a child process) and are not
    printed again by the top-level handler.
    """

    def __init__(self, message: str = "", exit_code: int = 1, silent: bool = False) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.silent = silent

    def show(self, file: Optional[IO[Any]] = None) -> None:
        if self.silent:
            return
        click.echo(self.format_message(), file=file or sys.stderr)


class UsageError(NccZipError):
    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=2)


class ConfigError(NccZipError):
    pass


class ConfigNotFound(ConfigError):
    pass


class ConfigParseError(ConfigError):
    pass


class BuildError(NccZipError):
    """The bundler reported a failure."""


class ArchiveIOError(NccZipError):
    """Writing, finalizing or staging an archive failed."""


class RunExitError(NccZipError):
    """The packaged program exited with a non-zero status."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Process exited with code {exit_code}", exit_code=exit_code, silent=True)
