"""Human-readable size report for a finished build."""

from __future__ import annotations

import math
import os
from typing import List, Mapping, Optional, Union


def size_kb(payload: Union[str, bytes, None]) -> int:
    """Size of *payload* in kilobytes, rounded half up."""
    if not payload:
        return 0
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return int(math.floor(len(payload) / 1024 + 0.5))


def render_summary(
    code: str,
    map: Optional[str],
    assets: Mapping[str, object],
    ext: str,
    out_dir: str,
    build_time_ms: int,
    *,
    filename: str = "index",
    bundler_version: str = "unknown",
) -> str:
    """
    Render one row per output file, smallest first, followed by a total line.

    *assets* maps names to either raw bytes or objects with a ``source``
    attribute. The code and map rows are slotted in just before the first
    asset that is strictly larger than them.
    """
    if out_dir and not out_dir.endswith(os.sep):
        out_dir += os.sep

    code_size = size_kb(code)
    map_size = size_kb(map)
    asset_sizes = {name: size_kb(getattr(asset, "source", asset)) for name, asset in assets.items()}
    total_size = code_size + map_size + sum(asset_sizes.values())
    padding = len(str(total_size))

    def row(size: int, name: str) -> str:
        return f"{str(size).rjust(padding)}kB  {out_dir}{name}"

    code_row: Optional[str] = row(code_size, f"{filename}{ext}")
    map_row: Optional[str] = row(map_size, f"{filename}{ext}.map") if map else None

    lines: List[str] = []
    for name in sorted(asset_sizes, key=asset_sizes.__getitem__):
        size = asset_sizes[name]
        if code_row and code_size < size:
            lines.append(code_row)
            code_row = None
        if map_row and map_size and map_size < size:
            lines.append(map_row)
            map_row = None
        lines.append(row(size, name))

    if code_row:
        lines.append(code_row)
    if map_row:
        lines.append(map_row)

    lines.append(f"{total_size}kB  [{build_time_ms}ms] - ncc {bundler_version}")
    return "\n".join(lines)
