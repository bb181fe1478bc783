import zipfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import simple_result
from ncc_zip import __version__
from ncc_zip.bundler import Asset, BuildResult
from ncc_zip.cli import main, run_cmd
from ncc_zip.errors import RunExitError, UsageError
from ncc_zip.workspace import run_workspace_path


def _usage_error(argv, context) -> UsageError:
    with pytest.raises(UsageError) as excinfo:
        run_cmd(argv, context=context)
    assert excinfo.value.exit_code == 2
    return excinfo.value


def test_no_command(make_context):
    error = _usage_error([], make_context())
    assert "No command specified" in error.message


def test_invalid_command(make_context):
    error = _usage_error(["bogus"], make_context())
    assert 'Invalid command "bogus"' in error.message


def test_help_exits_with_usage(make_context):
    error = _usage_error(["help"], make_context())
    assert error.message.startswith("Usage: ncc-zip <cmd> <opts>")


def test_unknown_option_is_a_usage_error(make_context):
    error = _usage_error(["build", "entry.js", "--bogus"], make_context())
    assert "--bogus" in error.message


def test_version(make_context):
    context = make_context()
    assert run_cmd(["version"], context=context) is False
    assert context.stdout.getvalue() == f"{__version__}\n"


def test_cache_dir_and_size(make_context):
    context = make_context()
    run_cmd(["cache", "dir"], context=context)
    run_cmd(["cache", "size"], context=context)
    run_cmd(["cache", "clean"], context=context)
    assert context.stdout.getvalue().splitlines() == [str(context.temp_root / "ncc-cache"), "0.00MB"]


def test_cache_rejects_flags_and_extra_arguments(make_context):
    assert "--quiet flag is not compatible" in _usage_error(["cache", "size", "-q"], make_context()).message
    assert "Too many cache arguments" in _usage_error(["cache", "size", "dir"], make_context()).message
    assert 'Invalid command "cache purge"' in _usage_error(["cache", "purge"], make_context()).message


def test_run_rejects_out_and_watch(make_context, entry_file: Path):
    assert "--out flag is not compatible" in _usage_error(["run", str(entry_file), "-o", "x.zip"], make_context()).message
    assert "--watch flag is not compatible" in _usage_error(["run", str(entry_file), "--watch"], make_context()).message


def test_build_rejects_too_many_arguments(make_context):
    assert "Too many build arguments" in _usage_error(["build", "a.js", "b.js"], make_context()).message


def test_unresolvable_entry(make_context):
    assert "Cannot find module" in _usage_error(["build", "missing.js"], make_context()).message


def test_build_end_to_end(make_context, entry_file: Path, tmp_path: Path):
    context = make_context()
    assert run_cmd(["build", "entry.js", "-o", "out.zip", "-f", "main"], context=context) is False
    with zipfile.ZipFile(tmp_path / "out.zip") as archive:
        assert archive.namelist() == ["main.js"]
        assert archive.read("main.js") == b"console.log('hello');\n"
    assert not (tmp_path / "dist" / "main.js.map").exists()
    entry, config = context.bundler.calls[0]
    assert entry == entry_file.resolve()


def test_build_license_is_written_beside_archive(make_context, entry_file: Path, tmp_path: Path):
    result = BuildResult(code="x", assets={"LICENSE.txt": Asset(b"MIT License")})
    context = make_context(result)
    run_cmd(["build", "entry.js", "--license", "LICENSE.txt", "-q"], context=context)
    assert (tmp_path / "dist" / "LICENSE.txt").read_bytes() == b"MIT License"
    with zipfile.ZipFile(tmp_path / "dist.zip") as archive:
        assert archive.namelist() == ["index.js"]
    _, config = context.bundler.calls[0]
    assert config.license == "LICENSE.txt"
    assert config.quiet is True


def test_build_resolves_directory_entry_and_cjs(make_context, tmp_path: Path):
    package = tmp_path / "pkg"
    package.mkdir()
    (package / "package.json").write_text('{"main": "lib/main.cjs"}', encoding="utf-8")
    (package / "lib").mkdir()
    (package / "lib" / "main.cjs").write_text("", encoding="utf-8")
    context = make_context()
    run_cmd(["build", "pkg", "-q"], context=context)
    with zipfile.ZipFile(tmp_path / "dist.zip") as archive:
        assert archive.namelist() == ["index.cjs"]


def test_cli_flags_reach_bundler_config(make_context, entry_file: Path, tmp_path: Path):
    (tmp_path / "ncc.config.json").write_text('{"target": "es2019", "minify": false}', encoding="utf-8")
    context = make_context()
    run_cmd(["build", "entry.js", "-q", "-m", "-e", "aws-sdk", "-C"], context=context)
    _, config = context.bundler.calls[0]
    assert config.target == "es2019"
    assert config.minify is True
    assert config.externals == ("aws-sdk",)
    assert config.cache is False


def test_run_twice_reuses_workspace(make_context, entry_file: Path, tmp_path: Path):
    context = make_context(simple_result("print('ran')\n"))
    workspace = run_workspace_path(entry_file, context.temp_root)
    workspace.mkdir(parents=True)
    (workspace / "stale.txt").write_text("old", encoding="utf-8")

    run_cmd(["run", "entry.js", "-q"], context=context)
    assert not workspace.exists()
    run_cmd(["run", "entry.js", "-q"], context=context)

    assert run_workspace_path(entry_file, context.temp_root) == workspace
    assert context.stdout.getvalue() == "ran\nran\n"
    assert not (tmp_path / "dist.zip").exists()


def test_run_exit_code_is_propagated(make_context, entry_file: Path):
    context = make_context(simple_result("import sys\nsys.exit(4)\n"))
    with pytest.raises(RunExitError) as excinfo:
        run_cmd(["run", "entry.js", "-q"], context=context)
    assert excinfo.value.exit_code == 4
    assert excinfo.value.silent


def test_cli_runner_build(make_context, entry_file: Path, tmp_path: Path):
    context = make_context(stdout=None, stderr=None)
    runner = CliRunner()
    result = runner.invoke(main, ["build", "entry.js"], obj=context)
    assert result.exit_code == 0, result.output
    assert "index.js" in result.output
    assert (tmp_path / "dist.zip").exists()


def test_cli_runner_usage_error_exit_code(make_context):
    runner = CliRunner()
    result = runner.invoke(main, ["bogus"], obj=make_context(stdout=None, stderr=None))
    assert result.exit_code == 2
    assert 'Invalid command "bogus"' in result.output


def test_cli_runner_silent_run_failure(make_context, entry_file: Path):
    context = make_context(simple_result("import sys\nsys.exit(5)\n"), stdout=None, stderr=None)
    result = CliRunner().invoke(main, ["run", "entry.js", "-q"], obj=context)
    assert result.exit_code == 5
    assert "Process exited" not in result.output
