from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, Any, Optional, TextIO, Tuple

from .assembler import stage_archive
from .context import InvocationContext
from .errors import NccZipError, RunExitError


LOGGER = logging.getLogger("ncc_zip.supervisor")


class SettleOnce:
    """Single-shot latch: the first exit code recorded wins."""

    def __init__(self) -> None:
        self.code: Optional[int] = None

    @property
    def settled(self) -> bool:
        return self.code is not None

    def settle(self, code: int) -> bool:
        if self.code is not None:
            return False
        self.code = code
        return True


def find_node_modules(build_file: Path) -> Optional[Path]:
    """
    Nearest ``node_modules`` directory above *build_file*.

    Walks one parent at a time and never returns the one at the filesystem
    root.
    """
    directory = Path(build_file).resolve().parent
    root_modules = Path(directory.anchor) / "node_modules"
    for parent in (directory, *directory.parents):
        candidate = parent / "node_modules"
        if candidate == root_modules:
            return None
        if candidate.is_dir():
            return candidate
    return None


class RunSupervisor:
    """Stage a built archive, execute it with node and clean up afterwards."""

    def __init__(self, context: InvocationContext) -> None:
        self._context = context
        self._process: Optional[subprocess.Popen] = None

    @property
    def process(self) -> Optional[subprocess.Popen]:
        return self._process

    def kill(self) -> None:
        """Stop a still-running child, if any."""
        if self._process is not None and self._process.poll() is None:
            LOGGER.info("Killing previous run (pid %s)", self._process.pid)
            self._process.kill()

    def run(
        self,
        workspace: Path,
        build_file: Path,
        ext: str,
        filename: str = "index",
        archive_path: Optional[Path] = None,
    ) -> None:
        workspace = Path(workspace)
        latch = SettleOnce()
        previous_handlers: Optional[Tuple[Any, Any]] = None

        def on_signal(signum: int, _frame: object) -> None:
            if not latch.settle(128 + signum):
                return
            LOGGER.info("Received signal %s, stopping child", signum)
            _restore_signal_handlers(previous_handlers)
            if self._process is not None and self._process.poll() is None:
                self._process.terminate()

        try:
            if archive_path is not None:
                stage_archive(archive_path, workspace)
            self._link_node_modules(workspace, build_file)
            if threading.current_thread() is threading.main_thread():
                previous_handlers = _install_signal_handlers(on_signal)
            self._process = self._spawn(workspace / f"{filename}{ext}")
            if latch.settled:
                self._process.terminate()
            returncode = self._wait(self._process)
            latch.settle(128 - returncode if returncode < 0 else returncode)
        finally:
            _restore_signal_handlers(previous_handlers)
            LOGGER.debug("Removing workspace %s", workspace)
            shutil.rmtree(workspace, ignore_errors=True)

        if latch.code:
            raise RunExitError(latch.code)

    def _link_node_modules(self, workspace: Path, build_file: Path) -> None:
        node_modules = find_node_modules(build_file)
        if node_modules is None:
            return
        link = workspace / "node_modules"
        if link.exists() or link.is_symlink():
            LOGGER.debug("%s already present, not linking %s", link, node_modules)
            return
        workspace.mkdir(parents=True, exist_ok=True)
        os.symlink(node_modules, link, target_is_directory=True)
        LOGGER.debug("Linked %s -> %s", link, node_modules)

    def _spawn(self, entry: Path) -> subprocess.Popen:
        command = [*self._context.node_command, str(entry)]
        piped = subprocess.PIPE if self._context.api else None
        LOGGER.info("$ %s", " ".join(command))
        try:
            return subprocess.Popen(command, stdout=piped, stderr=piped, text=True)
        except OSError as exc:
            raise NccZipError(f"Could not start {command[0]}: {exc}") from exc

    def _wait(self, process: subprocess.Popen) -> int:
        if not self._context.api:
            return process.wait()
        pumps = [
            threading.Thread(target=_pump, args=(process.stdout, self._context.out), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, self._context.err), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        returncode = process.wait()
        for pump in pumps:
            pump.join()
        return returncode


def _pump(source: IO[str], sink: TextIO) -> None:
    """Copy child output line by line as it is produced."""
    with source:
        for line in iter(source.readline, ""):
            sink.write(line)
            sink.flush()


def _install_signal_handlers(handler: Any) -> Tuple[Any, Any]:
    return (
        signal.signal(signal.SIGTERM, handler),
        signal.signal(signal.SIGINT, handler),
    )


def _restore_signal_handlers(previous: Optional[Tuple[Any, Any]]) -> None:
    if previous is None:
        return
    previous_sigterm, previous_sigint = previous
    signal.signal(signal.SIGTERM, signal.SIG_DFL if previous_sigterm is None else previous_sigterm)
    signal.signal(signal.SIGINT, signal.SIG_DFL if previous_sigint is None else previous_sigint)
