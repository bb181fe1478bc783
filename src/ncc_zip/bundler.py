from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from shutil import which
from typing import Any, Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import BuildConfig
from .errors import BuildError


LOGGER = logging.getLogger("ncc_zip.bundler")

WATCH_SKIP_DIRS = {"node_modules", ".git"}


@dataclass
class Asset:
    """A named output file other than the main code and its map."""

    source: bytes
    permissions: int = 0o644


@dataclass
class BuildResult:
    """Everything one bundler pass produced."""

    code: str = ""
    map: Optional[str] = None
    assets: Dict[str, Asset] = field(default_factory=dict)
    symlinks: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    err: Optional[BaseException] = None


ResultHandler = Callable[[BuildResult], None]
RebuildHandler = Callable[[], None]


class Bundler:
    """Collaborator interface for the JavaScript bundler."""

    version: str = "unknown"

    def build(self, entry: Path, config: BuildConfig) -> BuildResult:  # pragma: no cover - documentation method
        raise NotImplementedError

    def watch(
        self,
        entry: Path,
        config: BuildConfig,
        on_result: ResultHandler,
        on_rebuild: RebuildHandler,
        stop_event: Optional[threading.Event] = None,
        ignore_paths: Iterable[Path] = (),
    ) -> None:  # pragma: no cover - documentation method
        raise NotImplementedError


class NccBundler(Bundler):
    """
    Drive the ``ncc`` command line and read its output directory back.

    ``ncc build`` writes the bundled module, the optional source map, every
    emitted asset (with its file mode) and any symlinks into the directory
    given with ``-o``; this adapter turns that directory into a BuildResult.
    """

    def __init__(
        self,
        command: Optional[List[str]] = None,
        poll_interval: float = 0.5,
        debounce: float = 0.2,
    ) -> None:
        self._command = command or default_command()
        self._poll_interval = poll_interval
        self._debounce = debounce
        self._version: Optional[str] = None

    @property
    def command(self) -> List[str]:
        return list(self._command)

    @property
    def version(self) -> str:  # type: ignore[override]
        if self._version is None:
            try:
                completed = self._invoke(["version"])
            except BuildError as exc:
                LOGGER.debug("Could not determine ncc version: %s", exc)
                self._version = "unknown"
            else:
                self._version = completed.stdout.strip() or "unknown"
        return self._version

    def build(self, entry: Path, config: BuildConfig) -> BuildResult:
        with tempfile.TemporaryDirectory(prefix="ncc-zip-") as tmpdir:
            out_dir = Path(tmpdir) / "out"
            stats_path = Path(tmpdir) / "stats.json"
            args = ["build", str(entry), "-o", str(out_dir), "-q", "--stats-out", str(stats_path)]
            args.extend(config.to_cli_args())
            LOGGER.info("Bundling %s", entry)
            self._invoke(args)
            ext = ".cjs" if str(entry).endswith(".cjs") else ".js"
            return collect_output(out_dir, ext, stats_path)

    def watch(
        self,
        entry: Path,
        config: BuildConfig,
        on_result: ResultHandler,
        on_rebuild: RebuildHandler,
        stop_event: Optional[threading.Event] = None,
        ignore_paths: Iterable[Path] = (),
    ) -> None:
        """
        Build once, then rebuild on every change below the entry's directory.

        Returns only when *stop_event* is set; without one it runs until the
        process is interrupted.
        """
        stop_event = stop_event or threading.Event()
        changed = threading.Event()
        root = Path(entry).resolve().parent
        handler = _ChangeHandler(changed, [Path(path).resolve() for path in ignore_paths])
        observer = Observer()
        observer.schedule(handler, str(root), recursive=True)
        observer.start()
        LOGGER.info("Watching %s", root)
        try:
            on_result(self._guarded_build(entry, config))
            while not stop_event.is_set():
                if not changed.wait(timeout=self._poll_interval):
                    continue
                time.sleep(self._debounce)
                changed.clear()
                on_rebuild()
                on_result(self._guarded_build(entry, config))
        finally:
            observer.stop()
            observer.join()

    def _guarded_build(self, entry: Path, config: BuildConfig) -> BuildResult:
        try:
            return self.build(entry, config)
        except BuildError as exc:
            return BuildResult(err=exc)

    def _invoke(self, args: List[str]) -> subprocess.CompletedProcess:
        command = self._command + args
        LOGGER.debug("$ %s", " ".join(command))
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise BuildError(f"Bundler executable not found: {self._command[0]} ({exc})") from exc
        except OSError as exc:
            raise BuildError(f"Could not start bundler: {exc}") from exc
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout).strip()
            raise BuildError(detail or f"ncc exited with code {completed.returncode}")
        return completed


class _ChangeHandler(FileSystemEventHandler):
    """Flag source edits; reads (opened/closed events) are not changes."""

    def __init__(self, changed: threading.Event, ignore_paths: List[Path]) -> None:
        self._changed = changed
        self._ignore_paths = ignore_paths

    def on_created(self, event: FileSystemEvent) -> None:
        self._record(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._record(event, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._record(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._record(event, event.src_path)
        self._record(event, event.dest_path)

    def _record(self, event: FileSystemEvent, raw_path: Any) -> None:
        if event.is_directory or not raw_path:
            return
        path = Path(os.fsdecode(raw_path))
        if WATCH_SKIP_DIRS.intersection(path.parts):
            return
        if any(path == ignored or ignored in path.parents for ignored in self._ignore_paths):
            return
        self._changed.set()


def default_command() -> List[str]:
    override = os.environ.get("NCC_ZIP_NCC")
    if override:
        return shlex.split(override)
    if which("ncc"):
        return ["ncc"]
    return ["npx", "--yes", "@vercel/ncc"]


def collect_output(out_dir: Path, ext: str, stats_path: Optional[Path] = None) -> BuildResult:
    """Read an ncc output directory into a BuildResult."""
    code_path = out_dir / f"index{ext}"
    if not code_path.is_file():
        raise BuildError(f"Bundler produced no index{ext} in {out_dir}")
    map_path = out_dir / f"index{ext}.map"

    result = BuildResult(code=code_path.read_text(encoding="utf-8"))
    if map_path.is_file():
        result.map = map_path.read_text(encoding="utf-8")

    for root, dirs, files in os.walk(out_dir):
        for name in sorted(dirs + files):
            path = Path(root) / name
            rel = path.relative_to(out_dir).as_posix()
            if path.is_symlink():
                result.symlinks[rel] = os.readlink(path)
                continue
            if path.is_dir() or path in (code_path, map_path):
                continue
            result.assets[rel] = Asset(source=path.read_bytes(), permissions=path.stat().st_mode & 0o777)

    if stats_path is not None and stats_path.is_file():
        try:
            result.stats = json.loads(stats_path.read_text(encoding="utf-8"))
        except ValueError:
            LOGGER.warning("Ignoring unreadable stats file %s", stats_path)
    return result
