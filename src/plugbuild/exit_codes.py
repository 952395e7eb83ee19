"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~plugbuild.exceptions.PlugbuildError` subclass.
CI scripts can inspect the exit code to tell a broken configuration from a
compile error without parsing stderr.

Example::

    $ plugbuild build ./my-plugin
    $ echo $?
    4   # EXIT_BUILD_FAILURE -- the bundler rejected the sources
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CONFIG_ERROR = 3
"""A target, library or manifest is misconfigured."""

EXIT_BUILD_FAILURE = 4
"""Compiling, bundling or optimizing a product failed."""

EXIT_ASSET_ERROR = 5
"""An asset file could not be decoded."""

EXIT_TOOLCHAIN_ERROR = 6
"""An external tool (node, terser, svgo) is missing or crashed."""

EXIT_CANCELLED = 130
"""The build was interrupted with Ctrl-C."""
