import os

from ncc_zip.bundler import Asset
from ncc_zip.summary import render_summary, size_kb


def kb(count: int) -> bytes:
    return b"x" * (1024 * count)


def test_size_rounds_half_up():
    assert size_kb(b"x" * 511) == 0
    assert size_kb(b"x" * 512) == 1
    assert size_kb(b"x" * 1535) == 1
    assert size_kb(b"x" * 1536) == 2
    assert size_kb(None) == 0


def test_code_row_is_slotted_before_first_larger_asset():
    assets = {"big.node": Asset(kb(3)), "small.txt": Asset(kb(1))}
    output = render_summary("c" * 2048, None, assets, ".js", "dist", 12, bundler_version="0.38.1")
    assert output.splitlines() == [
        f"1kB  dist{os.sep}small.txt",
        f"2kB  dist{os.sep}index.js",
        f"3kB  dist{os.sep}big.node",
        "6kB  [12ms] - ncc 0.38.1",
    ]


def test_rows_are_padded_to_total_width():
    assets = {"a.bin": Asset(kb(7)), "b.bin": Asset(kb(4))}
    output = render_summary("c" * 1024, None, assets, ".cjs", "", 3)
    lines = output.splitlines()
    assert lines[0] == " 1kB  index.cjs"
    assert lines[1] == " 4kB  b.bin"
    assert lines[2] == " 7kB  a.bin"
    assert lines[3].startswith("12kB  [3ms] - ncc ")


def test_largest_code_and_map_follow_all_assets():
    assets = {"one.txt": Asset(kb(1))}
    output = render_summary("c" * 5120, "m" * 4096, assets, ".js", "", 1, filename="main")
    assert output.splitlines()[:3] == [
        " 1kB  one.txt",
        " 5kB  main.js",
        " 4kB  main.js.map",
    ]


def test_map_row_interleaves_by_its_own_size():
    assets = {"a": Asset(kb(1)), "b": Asset(kb(3)), "c": Asset(kb(6))}
    output = render_summary("c" * 4096, "m" * 2048, assets, ".js", "", 1)
    names = [line.split()[-1] for line in output.splitlines()[:-1]]
    assert names == ["a", "index.js.map", "b", "index.js", "c"]


def test_zero_sized_map_is_listed_last():
    assets = {"a": Asset(kb(2))}
    output = render_summary("c" * 1024, "{}", assets, ".js", "", 1)
    names = [line.split()[-1] for line in output.splitlines()[:-1]]
    assert names == ["index.js", "a", "index.js.map"]


def test_total_is_sum_of_rendered_rows_and_sizes_are_sorted():
    assets = {
        "w": Asset(b"x" * 9000),
        "x": Asset(b"x" * 100),
        "y": Asset(b"x" * 40000),
        "z": Asset(b"x" * 3000),
    }
    output = render_summary("c" * 20000, "m" * 6000, assets, ".js", "dist", 5)
    lines = output.splitlines()
    sizes = [int(line.split("kB")[0]) for line in lines[:-1]]
    total = int(lines[-1].split("kB")[0])
    assert total == sum(sizes)
    asset_sizes = [int(line.split("kB")[0]) for line in lines[:-1] if "index.js" not in line]
    assert asset_sizes == sorted(asset_sizes)


def test_raw_bytes_are_accepted_as_assets():
    output = render_summary("", None, {"raw.bin": kb(2)}, ".js", "", 0)
    assert "2kB  raw.bin" in output
