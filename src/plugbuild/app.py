"""Typer application and CLI entry point for plugbuild.

The root callback installs the global :class:`~plugbuild.output.OutputManager`
from the output flags, which therefore precede the sub-command::

    plugbuild -v build -w path/to/plugin

Sub-commands:

* ``build`` -- build one or more plugins, once or in watch mode.
* ``init`` -- scaffold new plugin projects.
* ``version`` -- print the version (and, with ``-v``, the known host API
  versions).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. Unhandled exceptions are written to a crash log under
the data directory.
"""

from __future__ import annotations

import asyncio
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from plugbuild import __version__
from plugbuild.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="plugbuild",
    help="Build plugins written in TypeScript into deployable bundles.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"plugbuild {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Report each plugin build."
    ),
    trace: bool = typer.Option(
        False, "--trace", help="Report module, library and cache detail."
    ),
) -> None:
    """Install the output manager the sub-command reports through."""
    from plugbuild.output import OutputManager, set_output

    set_output(OutputManager(no_color=no_color, quiet=quiet, verbose=verbose, trace=trace))


@app.command("build")
def build_command(
    paths: Optional[list[str]] = typer.Argument(
        None, help="Plugin directories or manifest files. Defaults to '.'."
    ),
    watch: bool = typer.Option(
        False, "--watch", "-w", help="Rebuild as source files change."
    ),
    debug_build: bool = typer.Option(
        False, "--debug", "-g", help="Keep DEBUG code and assertions."
    ),
    optimize: bool = typer.Option(
        False, "--optimize", "-O", help="Optimize and minify the output."
    ),
    clean: bool = typer.Option(
        False, "--clean", help="Ignore the compiler's build cache."
    ),
    nomin: bool = typer.Option(
        False, "--nomin", help="With -O: optimize but do not minify."
    ),
    outdir: Optional[str] = typer.Option(
        None, "--outdir", "-o", help="Output directory. Defaults to <srcdir>/build."
    ),
    libs: Optional[list[str]] = typer.Option(
        None, "--lib", help="Library file to link into the plugin (repeatable)."
    ),
    uilibs: Optional[list[str]] = typer.Option(
        None, "--uilib", help="Library file to link into the UI (repeatable)."
    ),
    no_manifest: bool = typer.Option(
        False, "--no-manifest", help="Do not write manifest.json to the output directory."
    ),
    external_source_map: bool = typer.Option(
        False, "--external-source-map", help="Reference the .map file instead of inlining it."
    ),
    no_source_map: bool = typer.Option(
        False, "--no-source-map", help="Do not emit source maps."
    ),
) -> None:
    """Build plugins.

    Each path is a plugin directory (containing ``manifest.json``) or a
    manifest file. Plugins are built concurrently.

    Raises:
        typer.Exit: With the failing error's exit code.

    Example::

        plugbuild build -O examples/hello
        plugbuild -v build -w .
    """
    from plugbuild.exceptions import InvalidUsageError, PlugbuildError
    from plugbuild.models import BuildContext
    from plugbuild.output import error, get_output
    from plugbuild.target import build_plugins

    output = get_output()
    if external_source_map and no_source_map:
        error("--external-source-map and --no-source-map are mutually exclusive")
        raise typer.Exit(code=InvalidUsageError.exit_code)

    ctx = BuildContext(
        watch=watch,
        debug=debug_build,
        optimize=optimize,
        clean=clean,
        nomin=nomin,
        verbose=output.is_verbose,
        trace=output.is_trace,
        outdir=outdir or "",
        libs=libs or [],
        uilibs=uilibs or [],
        no_gen_manifest=no_manifest,
        external_source_map=external_source_map,
        no_source_map=no_source_map,
    )
    try:
        asyncio.run(build_plugins(paths or ["."], ctx))
    except PlugbuildError as exc:
        if not exc.reported:
            error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


@app.command("init")
def init_command(
    dirs: Optional[list[str]] = typer.Argument(
        None, help="Directories to initialize. Defaults to '.'."
    ),
    ui: bool = typer.Option(False, "--ui", help="Generate a UI written in TypeScript and HTML."),
    html: bool = typer.Option(False, "--html", help="Generate a UI written purely in HTML."),
    react: bool = typer.Option(False, "--react", help="Generate a UI written in React."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite or replace existing files."
    ),
    api: Optional[str] = typer.Option(
        None, "--api", help="Host API version. Defaults to the newest known one."
    ),
    name: Optional[str] = typer.Option(
        None, "--name", help="Name of the plugin. Defaults to the directory name."
    ),
    srcdir: Optional[str] = typer.Option(
        None, "--srcdir", help="Where to put source files, relative to the directory."
    ),
) -> None:
    """Initialize plugin projects.

    Writes ``manifest.json``, ``plugin.ts``, ``tsconfig.json`` and the host
    API declarations into each directory, plus UI files when a UI kind is
    chosen. ``--react`` wins over ``--html``, which wins over ``--ui``.

    Example::

        plugbuild init --ui my-plugin
        plugbuild init --react --name "Color Picker" --srcdir src picker
    """
    from plugbuild.exceptions import PlugbuildError
    from plugbuild.init import InitOptions, UIKind, init_plugins
    from plugbuild.output import error, get_output

    kind = UIKind.REACT if react else UIKind.HTML if html else UIKind.TS_HTML if ui else None
    options = InitOptions(
        dir=".",
        srcdir=srcdir,
        name=name,
        ui=kind,
        api_version=api,
        overwrite=force,
        verbose=get_output().is_verbose,
    )
    try:
        ok = asyncio.run(init_plugins(dirs or ["."], options))
    except PlugbuildError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    if not ok:
        error("Remove files you'd like to be re-created, or run with --force to overwrite all files.")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)


@app.command("version")
def version_command() -> None:
    """Print the plugbuild version."""
    from plugbuild.libraries import HOST_API_VERSIONS
    from plugbuild.output import get_output, print_data

    print_data(f"plugbuild {__version__}")
    if get_output().is_verbose:
        print_data("host API versions: " + ", ".join(HOST_API_VERSIONS))


def _on_sigint(signum: int, frame: Any) -> None:
    sys.stderr.write("\nbuild cancelled\n")
    sys.exit(EXIT_CANCELLED)


def _write_crash_log(exc: Exception) -> str:
    """Save the traceback of *exc* under the data directory; return the file path."""
    from plugbuild.config import atomic_write, get_data_dir

    log_path = get_data_dir() / "logs" / datetime.now().strftime("crash-%Y%m%d-%H%M%S.log")
    header = f"plugbuild {__version__}\nargv: {' '.join(sys.argv)}\n\n"
    atomic_write(log_path, header + "".join(traceback.format_exception(exc)))
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``plugbuild`` console script.

    :class:`~plugbuild.exceptions.PlugbuildError` instances cause a clean
    exit with the error's ``exit_code``; the message is printed unless the
    component that raised it already did. All other exceptions produce a
    crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    signal.signal(signal.SIGINT, _on_sigint)
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nbuild cancelled\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from plugbuild.exceptions import PlugbuildError
        from plugbuild.output import error

        if isinstance(exc, PlugbuildError):
            if not exc.reported:
                error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"internal error; traceback saved to {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
