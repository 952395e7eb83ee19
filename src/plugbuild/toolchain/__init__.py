"""External tool contracts and their Node.js-backed implementations."""

from plugbuild.toolchain.base import (
    BundleResult,
    BundleWarning,
    Bundler,
    BundlerPlugin,
    CompilerHost,
    InputConfig,
    JsxModule,
    Minifier,
    MinifyResult,
    OutputChunk,
    OutputConfig,
    SvgOptimizer,
    SvgResult,
    WatchEvent,
    WatchEventCode,
    Watcher,
)
from plugbuild.toolchain.process import require_tool

__all__ = [
    "BundleResult",
    "BundleWarning",
    "Bundler",
    "BundlerPlugin",
    "CompilerHost",
    "InputConfig",
    "JsxModule",
    "Minifier",
    "MinifyResult",
    "OutputChunk",
    "OutputConfig",
    "SvgOptimizer",
    "SvgResult",
    "WatchEvent",
    "WatchEventCode",
    "Watcher",
    "require_tool",
]
