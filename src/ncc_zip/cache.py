"""Maintenance of the bundler's on-disk cache."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional


LOGGER = logging.getLogger("ncc_zip.cache")


def cache_dir(temp_root: Optional[Path] = None) -> Path:
    """Location ncc keeps its build cache in."""
    return Path(temp_root or tempfile.gettempdir()) / "ncc-cache"


def clean(directory: Path) -> None:
    if directory.exists():
        LOGGER.info("Removing cache %s", directory)
        shutil.rmtree(directory)


def size_bytes(directory: Path) -> int:
    """Recursive size of *directory*; zero when it does not exist."""
    if not directory.exists():
        return 0
    total = 0
    for root, _, files in os.walk(directory):
        for name in files:
            path = os.path.join(root, name)
            if not os.path.islink(path):
                total += os.path.getsize(path)
    return total


def format_size(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"
