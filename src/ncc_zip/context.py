from __future__ import annotations

import os
import shlex
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, TextIO

from .bundler import Bundler, NccBundler


def default_node_command() -> List[str]:
    return shlex.split(os.environ.get("NCC_ZIP_NODE", "node"))


@dataclass
class InvocationContext:
    """
    Process-level state for one command invocation.

    Everything a component would otherwise read from the process (working
    directory, streams, temp root) is carried here so commands can run
    embedded in another program as well as from the shell. Streams left as
    ``None`` resolve to ``sys.stdout``/``sys.stderr`` at write time.
    """

    cwd: Path = field(default_factory=Path.cwd)
    stdout: Optional[TextIO] = None
    stderr: Optional[TextIO] = None
    api: bool = False
    bundler: Optional[Bundler] = None
    node_command: List[str] = field(default_factory=default_node_command)
    temp_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    @property
    def out(self) -> TextIO:
        return self.stdout or sys.stdout

    @property
    def err(self) -> TextIO:
        return self.stderr or sys.stderr

    def get_bundler(self) -> Bundler:
        if self.bundler is None:
            self.bundler = NccBundler()
        return self.bundler

    def write(self, text: str) -> None:
        self.out.write(text + "\n")
        self.out.flush()

    def write_error(self, text: str) -> None:
        self.err.write(text + "\n")
        self.err.flush()
