from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .assembler import DEFAULT_ARCHIVE_NAME, DEFAULT_COMPRESSION, ArchiveAssembler, AssembleOptions, AssemblyResult
from .bundler import BuildResult
from .config import BuildConfig
from .context import InvocationContext
from .errors import BuildError
from .summary import render_summary
from .supervisor import RunSupervisor


LOGGER = logging.getLogger("ncc_zip.orchestrator")

SIDE_DIR_NAME = "dist"
WATCHING_MESSAGE = "Watching for changes..."
REBUILDING_MESSAGE = "File change, rebuilding..."


@dataclass
class BuildRequest:
    """Inputs of one build, as resolved by the command dispatcher."""

    entry: Path
    config: BuildConfig
    ext: str = ".js"
    out_path: Optional[Path] = None
    filename: str = "index"
    ignore: Sequence[str] = ()
    compression: int = DEFAULT_COMPRESSION
    stats_out: Optional[Path] = None
    run_after_build: bool = False
    workspace: Optional[Path] = None
    watch: bool = False


class BuildOrchestrator:
    """Coordinate bundling, archive assembly, reporting and run mode."""

    def __init__(
        self,
        context: InvocationContext,
        assembler: Optional[ArchiveAssembler] = None,
        supervisor: Optional[RunSupervisor] = None,
    ) -> None:
        self._context = context
        self._assembler = assembler or ArchiveAssembler()
        self._supervisor = supervisor or RunSupervisor(context)
        self._started = time.monotonic()

    def execute(self, request: BuildRequest) -> bool:
        """Run *request*; returns True when it was served in watch mode."""
        if request.run_after_build and request.workspace is None:
            raise ValueError("run_after_build requires a workspace")
        if request.watch:
            self.watch(request)
            return True
        self.build(request)
        return False

    def build(self, request: BuildRequest) -> Optional[AssemblyResult]:
        self._started = time.monotonic()
        result = self._context.get_bundler().build(request.entry, request.config)
        if result.err is not None:
            raise BuildError(str(result.err)) from result.err
        return self.handle_result(request, result)

    def watch(self, request: BuildRequest, stop_event: Optional[threading.Event] = None) -> None:
        """Rebuild on every change until *stop_event* is set or the process is interrupted."""
        self._started = time.monotonic()
        options = self.assemble_options(request)
        ignore_paths: List[Path] = [options.archive_path, options.side_dir]
        if request.stats_out:
            ignore_paths.append(self._context.cwd / request.stats_out)
        self._context.get_bundler().watch(
            request.entry,
            request.config,
            on_result=lambda result: self.handle_result(request, result),
            on_rebuild=self._on_rebuild,
            stop_event=stop_event,
            ignore_paths=ignore_paths,
        )

    def handle_result(self, request: BuildRequest, result: BuildResult) -> Optional[AssemblyResult]:
        if result.err is not None:
            self._context.write_error(str(result.err))
            self._context.write(WATCHING_MESSAGE)
            return None

        options = self.assemble_options(request)
        assembly = self._assembler.assemble(result, options)

        if not request.config.quiet:
            self._context.write(
                render_summary(
                    result.code,
                    result.map,
                    result.assets,
                    request.ext,
                    self._out_dir_label(request, options),
                    self._elapsed_ms(),
                    filename=request.filename,
                    bundler_version=self._context.get_bundler().version,
                )
            )
            if request.watch:
                self._context.write(WATCHING_MESSAGE)

        if request.stats_out:
            stats_path = self._context.cwd / request.stats_out
            stats_path.write_text(json.dumps(result.stats), encoding="utf-8")
            LOGGER.debug("Wrote stats to %s", stats_path)

        if request.run_after_build:
            self._supervisor.run(
                request.workspace,
                request.entry,
                request.ext,
                filename=request.filename,
                archive_path=assembly.archive_path,
            )
        return assembly

    def assemble_options(self, request: BuildRequest) -> AssembleOptions:
        cwd = self._context.cwd
        if request.run_after_build:
            side_dir = Path(request.workspace)
            archive_path = side_dir / DEFAULT_ARCHIVE_NAME
        else:
            side_dir = cwd / SIDE_DIR_NAME
            archive_path = cwd / (request.out_path or DEFAULT_ARCHIVE_NAME)
        return AssembleOptions(
            archive_path=archive_path,
            side_dir=side_dir,
            ext=request.ext,
            compression=request.compression,
            filename=request.filename,
            license=request.config.license,
            ignore=tuple(request.ignore),
        )

    def _on_rebuild(self) -> None:
        self._supervisor.kill()
        self._started = time.monotonic()
        self._context.write(REBUILDING_MESSAGE)

    def _out_dir_label(self, request: BuildRequest, options: AssembleOptions) -> str:
        if request.run_after_build:
            return ""
        return os.path.relpath(options.side_dir, self._context.cwd)

    def _elapsed_ms(self) -> int:
        return int(round((time.monotonic() - self._started) * 1000))
