from __future__ import annotations

import fnmatch
import logging
import os
import re
import stat
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence

from .bundler import BuildResult
from .errors import ArchiveIOError


LOGGER = logging.getLogger("ncc_zip.assembler")

SHEBANG = re.compile(r"^#![^\n]*")
DEFAULT_ARCHIVE_NAME = "dist.zip"
DEFAULT_COMPRESSION = 5
EXECUTABLE_MODE = 0o777
REGULAR_MODE = 0o666


@dataclass
class AssembleOptions:
    """How a BuildResult is laid out in the archive and beside it."""

    archive_path: Path = Path(DEFAULT_ARCHIVE_NAME)
    side_dir: Path = Path("dist")
    ext: str = ".js"
    compression: int = DEFAULT_COMPRESSION
    filename: str = "index"
    license: Optional[str] = None
    ignore: Sequence[str] = ()


@dataclass
class AssemblyResult:
    archive_path: Path
    side_files: List[Path] = field(default_factory=list)
    entries: List[str] = field(default_factory=list)


def code_mode(code: str) -> int:
    """Permission bits for the main module: executable when it has a shebang."""
    return EXECUTABLE_MODE if SHEBANG.match(code) else REGULAR_MODE


def is_ignored(name: str, patterns: Optional[Sequence[str]]) -> bool:
    """Return True when *name* matches any ignore glob (full path or basename)."""
    if not patterns:
        return False
    basename = PurePosixPath(name).name
    return any(
        fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(basename, pattern)
        for pattern in patterns
    )


class ArchiveAssembler:
    """Turn one BuildResult into a zip archive plus side files."""

    def assemble(self, result: BuildResult, options: AssembleOptions) -> AssemblyResult:
        archive_path = Path(options.archive_path)
        side_dir = Path(options.side_dir)
        assembly = AssemblyResult(archive_path=archive_path)

        try:
            side_dir.mkdir(parents=True, exist_ok=True)
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(
                archive_path,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=options.compression,
            ) as archive:
                main_name = f"{options.filename}{options.ext}"
                _write_entry(archive, main_name, result.code.encode("utf-8"), code_mode(result.code), options.compression)
                assembly.entries.append(main_name)

                if result.map:
                    map_path = side_dir / f"{main_name}.map"
                    map_path.write_text(result.map, encoding="utf-8")
                    assembly.side_files.append(map_path)

                for name, asset in result.assets.items():
                    if options.license and name == options.license:
                        license_path = side_dir / name
                        license_path.parent.mkdir(parents=True, exist_ok=True)
                        license_path.write_bytes(asset.source)
                        assembly.side_files.append(license_path)
                        continue
                    if is_ignored(name, options.ignore):
                        LOGGER.debug("Ignoring asset %s", name)
                        continue
                    _write_entry(archive, name, asset.source, asset.permissions, options.compression)
                    assembly.entries.append(name)

                for link, target in result.symlinks.items():
                    _write_symlink(archive, link, target)
                    assembly.entries.append(link)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            if archive_path.is_file():
                archive_path.unlink()
            raise ArchiveIOError(f"Could not write archive {archive_path}: {exc}") from exc

        LOGGER.info("Wrote %s (%d entries)", archive_path, len(assembly.entries))
        return assembly


def stage_archive(archive_path: Path, dest: Path) -> List[Path]:
    """
    Extract *archive_path* into *dest*, restoring permission bits and symlinks.

    ``ZipFile.extractall`` drops both, and a staged program needs its
    executable bits and linked files exactly as the bundler emitted them.
    """
    dest = Path(dest)
    root = dest.resolve()
    written: List[Path] = []
    try:
        dest.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                target = dest / info.filename
                resolved = target.resolve()
                if resolved != root and root not in resolved.parents:
                    raise ArchiveIOError(f"Archive entry {info.filename} escapes {dest}")
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                mode = info.external_attr >> 16
                if stat.S_ISLNK(mode):
                    os.symlink(archive.read(info).decode("utf-8"), target)
                else:
                    target.write_bytes(archive.read(info))
                    if mode & 0o777:
                        os.chmod(target, mode & 0o777)
                written.append(target)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveIOError(f"Could not stage {archive_path} into {dest}: {exc}") from exc
    return written


def _write_entry(archive: zipfile.ZipFile, name: str, payload: bytes, mode: int, level: int) -> None:
    info = zipfile.ZipInfo(name)
    info.create_system = 3  # Unix
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = (stat.S_IFREG | (mode & 0o7777)) << 16
    archive.writestr(info, payload, compresslevel=level)


def _write_symlink(archive: zipfile.ZipFile, link: str, target: str) -> None:
    info = zipfile.ZipInfo(link)
    info.create_system = 3  # Unix
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    archive.writestr(info, target)
