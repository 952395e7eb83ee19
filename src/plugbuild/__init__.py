"""plugbuild -- build plugin programs and UI scripts into deployable bundles.

A plugin consists of a *main* program and an optional *UI* program. This
package drives an external bundler and minifier to turn their sources into a
single bundled program file, an HTML shell with the UI script inlined, and
the accompanying source maps. Builds run once or continuously (watch mode).

Typical workflow::

    plugbuild build ./my-plugin        # one-shot build into ./my-plugin/build
    plugbuild build -w ./my-plugin     # rebuild on every change
    plugbuild build -O ./my-plugin     # optimized, minified output

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    libraries: Injected library code and its compile cache.
    configurator: Bundler input/output configuration.
    builder: One-shot product builds and the post-processing pipeline.
    session: Incremental (watch-mode) product builds.
    target: Plugin targets (main + UI + HTML shell + manifest).
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.3.0"
