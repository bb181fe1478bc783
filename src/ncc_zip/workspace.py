from __future__ import annotations

import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from .errors import UsageError


LOGGER = logging.getLogger("ncc_zip.workspace")

RESOLVE_EXTENSIONS = (".js", ".cjs", ".mjs", ".json")


def resolve_entry(path: Path) -> Path:
    """
    Resolve *path* the way ``require.resolve`` would for an absolute path.

    Tries the exact file, the file with a known extension appended, then a
    directory's ``package.json`` ``main`` field and finally its ``index``.
    """
    path = Path(path).resolve()
    resolved = _resolve_file(path) or _resolve_directory(path)
    if resolved is None:
        raise UsageError(f"Error: Cannot find module '{path}'")
    LOGGER.debug("Resolved entry %s", resolved)
    return resolved


def entry_extension(entry: Path) -> str:
    return ".cjs" if str(entry).endswith(".cjs") else ".js"


def run_workspace_path(input_path: Path, temp_root: Path) -> Path:
    """Staging directory for ``run``; stable across runs of the same entry."""
    digest = hashlib.md5(str(Path(input_path).resolve()).encode("utf-8")).hexdigest()
    return Path(temp_root) / digest


def clear_workspace(workspace: Path) -> None:
    if workspace.is_symlink() or workspace.is_file():
        workspace.unlink()
    elif workspace.exists():
        LOGGER.info("Removing stale workspace %s", workspace)
        shutil.rmtree(workspace)


def _resolve_file(path: Path) -> Optional[Path]:
    if path.is_file():
        return path
    for suffix in RESOLVE_EXTENSIONS:
        candidate = path.with_name(path.name + suffix)
        if candidate.is_file():
            return candidate
    return None


def _resolve_directory(path: Path) -> Optional[Path]:
    if not path.is_dir():
        return None
    manifest = path / "package.json"
    if manifest.is_file():
        try:
            main = json.loads(manifest.read_text(encoding="utf-8")).get("main")
        except (ValueError, AttributeError):
            LOGGER.warning("Ignoring unreadable %s", manifest)
            main = None
        if isinstance(main, str) and main:
            target = path / main
            resolved = _resolve_file(target) or _resolve_index(target)
            if resolved is not None:
                return resolved
    return _resolve_index(path)


def _resolve_index(path: Path) -> Optional[Path]:
    if not path.is_dir():
        return None
    return _resolve_file(path / "index")
