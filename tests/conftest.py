from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Iterable, List, Union

import pytest

from ncc_zip.bundler import Bundler, BuildResult
from ncc_zip.context import InvocationContext


class FakeBundler(Bundler):
    """In-process stand-in for ncc returning canned results."""

    version = "0.0.0-test"

    def __init__(self, results: Iterable[Union[BuildResult, Exception]]) -> None:
        self.results: List[Union[BuildResult, Exception]] = list(results)
        self.calls: List[tuple] = []
        self.ignore_paths: List[Path] = []

    def build(self, entry, config):
        self.calls.append((entry, config))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def watch(self, entry, config, on_result, on_rebuild, stop_event=None, ignore_paths=()):
        self.calls.append((entry, config))
        self.ignore_paths = list(ignore_paths)
        for index, result in enumerate(self.results):
            if index:
                on_rebuild()
            on_result(result)


def simple_result(code: str = "console.log('hello');\n", **kwargs) -> BuildResult:
    return BuildResult(code=code, **kwargs)


@pytest.fixture()
def make_context(tmp_path: Path):
    def _make(*results: Union[BuildResult, Exception], **overrides) -> InvocationContext:
        values = dict(
            cwd=tmp_path,
            stdout=io.StringIO(),
            stderr=io.StringIO(),
            api=True,
            bundler=FakeBundler(results or [simple_result()]),
            node_command=[sys.executable],
            temp_root=tmp_path / "tmp",
        )
        values.update(overrides)
        context = InvocationContext(**values)
        context.temp_root.mkdir(parents=True, exist_ok=True)
        return context

    return _make


@pytest.fixture()
def entry_file(tmp_path: Path) -> Path:
    entry = tmp_path / "entry.js"
    entry.write_text("console.log('hello');\n", encoding="utf-8")
    return entry
