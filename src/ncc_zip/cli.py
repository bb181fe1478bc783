from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO, Tuple

import click
from click.core import ParameterSource

from . import __version__
from . import cache as cache_ops
from .config import resolve_config
from .context import InvocationContext
from .errors import NccZipError, UsageError
from .logging_config import configure_logging
from .orchestrator import BuildOrchestrator, BuildRequest
from .workspace import clear_workspace, entry_extension, resolve_entry, run_workspace_path


USAGE = """Usage: ncc-zip <cmd> <opts>

Commands:
  build <input-file> [opts]
  run <input-file> [opts]
  cache clean|dir|size
  help
  version

Options:
  -o, --out [file]         Output filename for build (defaults to dist.zip)
  -f, --filename [file]    Name of the main file in the zip (defaults to index)
  -c, --config [file]      Path to the ncc.config.json file
  -i, --ignore [asset]     Ignore asset(s) with name or glob pattern to be included in zip
  --license [file]         Adds a file containing licensing information to the output
  --compression            Level of compression to use (default 5)
  -q, --quiet              Disable build summaries / non-error outputs
  --stats-out [file]       Emit webpack stats as json to the specified output file
  -w, --watch              Start a watched build
  -e, --external [mod]     Skip bundling 'mod'. Can be used many times
  -m, --minify             Minify output
  -s, --source-map         Generate source map
  -t, --transpile-only     Use transpileOnly option with the ts-loader
  --target [es]            ECMAScript target to use for output (default: es2015)
  -C, --no-cache           Skip build cache population
"""


class NccZipGroup(click.Group):
    """Command group reporting unknown commands with the tool's own usage text."""

    def resolve_command(self, ctx: click.Context, args: List[str]) -> Tuple[Optional[str], Optional[click.Command], List[str]]:
        name = args[0]
        if not name.startswith("-") and self.get_command(ctx, name) is None:
            _invalid_command(name)
        return super().resolve_command(ctx, args)


def build_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Flags shared by build, run and (for rejection) cache."""
    options = [
        click.option("-o", "--out", type=click.Path(path_type=Path), default=None, help="Output filename for build."),
        click.option("-f", "--filename", default="index", show_default=True, help="Name of the main file in the zip."),
        click.option("-c", "--config", "config_path", type=click.Path(path_type=Path), default=None, help="Path to the ncc.config.json file."),
        click.option("-i", "--ignore", multiple=True, help="Asset name or glob pattern to leave out of the zip."),
        click.option("--license", "license_file", default=None, help="Licensing file written beside the archive."),
        click.option("--compression", type=click.IntRange(0, 9), default=5, show_default=True, help="Zip compression level."),
        click.option("-q", "--quiet", is_flag=True, default=False, help="Disable build summaries."),
        click.option("--stats-out", type=click.Path(path_type=Path), default=None, help="Write build stats as JSON."),
        click.option("-w", "--watch", is_flag=True, default=False, help="Rebuild on file changes."),
        click.option("-e", "--external", "externals", multiple=True, help="Skip bundling a module."),
        click.option("-m", "--minify", is_flag=True, default=False, help="Minify output."),
        click.option("-s", "--source-map", is_flag=True, default=False, help="Generate a source map."),
        click.option("-t", "--transpile-only", is_flag=True, default=False, help="Skip TypeScript type checking."),
        click.option("--target", default=None, help="ECMAScript target for the output."),
        click.option("-C", "--no-cache", is_flag=True, default=False, help="Skip build cache population."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(cls=NccZipGroup, invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Package ncc builds into a single zip archive."""
    context = ctx.ensure_object(InvocationContext)
    configure_logging(verbose=verbose, logger_name="ncc_zip.cli", stream=context.err)
    if ctx.invoked_subcommand is None:
        raise UsageError(f"Error: No command specified\n{USAGE}")


@main.command("build")
@click.argument("inputs", nargs=-1)
@build_options
@click.pass_context
def build_command(ctx: click.Context, inputs: Tuple[str, ...], **options: Any) -> bool:
    """Bundle <input-file> and pack the result into a zip archive."""
    if len(inputs) > 1:
        _too_many_arguments("build")
    return _build(ctx.obj, inputs, options)


@main.command("run")
@click.argument("inputs", nargs=-1)
@build_options
@click.pass_context
def run_command(ctx: click.Context, inputs: Tuple[str, ...], **options: Any) -> bool:
    """Build <input-file> into a temporary directory and execute it with node."""
    if len(inputs) > 1:
        _too_many_arguments("run")
    for flag in ("--out", "--watch"):
        if flag in _given_flags(ctx):
            _flag_not_compatible(flag, "run")

    context: InvocationContext = ctx.obj
    workspace = run_workspace_path(context.cwd / (inputs[0] if inputs else "."), context.temp_root)
    clear_workspace(workspace)
    return _build(context, inputs, options, run_after_build=True, workspace=workspace)


@main.command("cache")
@click.argument("actions", nargs=-1)
@build_options
@click.pass_context
def cache_command(ctx: click.Context, actions: Tuple[str, ...], **_options: Any) -> None:
    """Inspect or clear the bundler cache: clean | dir | size."""
    if len(actions) > 1:
        _too_many_arguments("cache")
    flags = _given_flags(ctx)
    if flags:
        _flag_not_compatible(flags[0], "cache")

    context: InvocationContext = ctx.obj
    directory = cache_ops.cache_dir(context.temp_root)
    action = actions[0] if actions else ""
    if action == "clean":
        cache_ops.clean(directory)
    elif action == "dir":
        context.write(str(directory))
    elif action == "size":
        context.write(cache_ops.format_size(cache_ops.size_bytes(directory)))
    else:
        _invalid_command(f"cache {action}".strip())


@main.command("help")
def help_command() -> None:
    """Show usage."""
    raise UsageError(USAGE)


@main.command("version")
@click.pass_obj
def version_command(context: InvocationContext) -> None:
    """Print the ncc-zip version."""
    context.write(__version__)


def _build(
    context: InvocationContext,
    inputs: Sequence[str],
    options: Dict[str, Any],
    run_after_build: bool = False,
    workspace: Optional[Path] = None,
) -> bool:
    entry = resolve_entry(context.cwd / (inputs[0] if inputs else "."))
    config = resolve_config(context.cwd, options["config_path"]).with_overrides(
        quiet=True if options["quiet"] else None,
        license=options["license_file"],
        externals=options["externals"] or None,
        minify=True if options["minify"] else None,
        source_map=True if options["source_map"] else None,
        transpile_only=True if options["transpile_only"] else None,
        target=options["target"],
        cache=False if options["no_cache"] else None,
    )
    request = BuildRequest(
        entry=entry,
        config=config,
        ext=entry_extension(entry),
        out_path=options["out"],
        filename=options["filename"],
        ignore=tuple(options["ignore"]),
        compression=options["compression"],
        stats_out=options["stats_out"],
        run_after_build=run_after_build,
        workspace=workspace,
        watch=options["watch"],
    )
    return BuildOrchestrator(context).execute(request)


def _given_flags(ctx: click.Context) -> List[str]:
    """Long names of the options that were typed on the command line."""
    return [
        max(param.opts, key=len)
        for param in ctx.command.params
        if isinstance(param, click.Option)
        and param.name is not None
        and ctx.get_parameter_source(param.name) is ParameterSource.COMMANDLINE
    ]


def _too_many_arguments(cmd: str) -> None:
    raise UsageError(f"Error: Too many {cmd} arguments provided\n{USAGE}")


def _flag_not_compatible(flag: str, cmd: str) -> None:
    raise UsageError(f"Error: {flag} flag is not compatible with ncc-zip {cmd}\n{USAGE}")


def _invalid_command(cmd: str) -> None:
    raise UsageError(f'Error: Invalid command "{cmd}"\n{USAGE}')


def run_cmd(
    argv: Sequence[str],
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    *,
    api: bool = True,
    context: Optional[InvocationContext] = None,
) -> bool:
    """
    Run one ncc-zip command line without exiting the interpreter.

    Returns True when the command ended in watch mode. Failures raise
    :class:`NccZipError` carrying the exit code the shell would see.
    """
    context = context or InvocationContext(stdout=stdout, stderr=stderr, api=api)
    try:
        result = main.main(args=list(argv), prog_name="ncc-zip", standalone_mode=False, obj=context)
    except NccZipError:
        raise
    except click.UsageError as exc:
        raise UsageError(f"Error: {exc.format_message()}\n{USAGE}") from exc
    except click.ClickException as exc:
        raise NccZipError(exc.format_message(), exit_code=exc.exit_code) from exc
    except click.exceptions.Abort as exc:
        raise NccZipError("", exit_code=130, silent=True) from exc
    return bool(result)


def entrypoint() -> None:
    """Console script: run the command and turn its outcome into an exit status."""
    try:
        run_cmd(sys.argv[1:], sys.stdout, sys.stderr, api=False)
    except NccZipError as exc:
        exc.show()
        sys.exit(exc.exit_code)
    sys.exit(0)
