"""Bundling through rollup and rollup-plugin-typescript2.

:class:`RollupBundler` spawns ``node js/driver.js`` and talks to it over
newline-delimited JSON on stdin/stdout. The driver loads rollup and the
TypeScript plugin from the project's ``node_modules`` and calls back into
Python for:

* the hooks of every :class:`~plugbuild.toolchain.base.BundlerPlugin` in
  the input configuration (``resolveId``, ``load``, ``buildEnd``);
* the :class:`~plugbuild.toolchain.base.CompilerHost` lookups for virtual
  asset declaration files (``fileExists``, ``readFile``).

A ``load`` hook that returns a :class:`~plugbuild.toolchain.base.JsxModule`
is transpiled in the driver with the compiler settings the TypeScript
plugin resolved for the program, so JSX assets follow the project's
``jsx`` mode and factory.

Each call blocks the driver until Python replies, so at most one call is
outstanding at any time.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from plugbuild.exceptions import BuildError, PlugbuildError, ToolchainError
from plugbuild.output import debug
from plugbuild.toolchain.base import (
    BundleResult,
    BundleWarning,
    InputConfig,
    JsxModule,
    OutputChunk,
    OutputConfig,
    WatchEvent,
    WatchEventCode,
)
from plugbuild.toolchain.process import JS_DIR, NODE_HINT, require_tool

DRIVER_SCRIPT = JS_DIR / "driver.js"

# Bundle results carry whole programs and source maps on one line.
_STREAM_LIMIT = 1 << 28


def build_error(payload: Optional[dict[str, Any]]) -> Optional[BuildError]:
    """Convert the driver's serialized rollup error into a :class:`BuildError`."""
    if not payload:
        return None
    return BuildError(
        str(payload.get("message") or "unknown error"),
        file=payload.get("file"),
        line=payload.get("line"),
        column=payload.get("column"),
        frame=payload.get("frame"),
        plugin=payload.get("plugin"),
        code=payload.get("code"),
    )


def _warning(payload: dict[str, Any]) -> BundleWarning:
    return BundleWarning(
        message=str(payload.get("message", "")),
        code=payload.get("code"),
        file=payload.get("file"),
        line=payload.get("line"),
        column=payload.get("column"),
        frame=payload.get("frame"),
    )


class _DriverSession:
    """One driver process and the Python side of its protocol."""

    def __init__(self, node: str, mode: str, input: InputConfig, output: OutputConfig) -> None:
        self._node = node
        self._mode = mode
        self._input = input
        self._output = output
        self._plugins = {plugin.name: plugin for plugin in input.plugins}
        self._proc: Optional[asyncio.subprocess.Process] = None

    def _job(self) -> dict[str, Any]:
        input = self._input
        return {
            "mode": self._mode,
            "input": {
                "entry": input.entry,
                "basedir": input.basedir,
                "typescript": input.typescript,
                "plugins": [
                    {"name": p.name, "idPattern": p.id_pattern} for p in input.plugins
                ],
                "compilerHost": input.compiler_host is not None,
                "virtualExtensions": input.virtual_extensions,
                "external": input.external,
            },
            "output": self._output.to_json(),
        }

    async def start(self) -> None:
        debug(f"start bundler ({self._mode}) for {self._input.entry}")
        try:
            self._proc = await asyncio.create_subprocess_exec(
                self._node,
                str(DRIVER_SCRIPT),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                cwd=self._input.basedir,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise ToolchainError(f"cannot run {self._node}: {exc}")
        await self._send(self._job())

    async def _send(self, message: dict[str, Any]) -> None:
        assert self._proc is not None and self._proc.stdin is not None
        self._proc.stdin.write(json.dumps(message).encode("utf-8") + b"\n")
        try:
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ToolchainError(f"bundler process went away: {exc}")

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield result, event and error messages; answer calls and warnings inline."""
        assert self._proc is not None and self._proc.stdout is not None
        while True:
            line = await self._proc.stdout.readline()
            if not line:
                return
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                debug(f"bundler: {line.decode('utf-8', 'replace').rstrip()}")
                continue
            kind = message.get("type")
            if kind == "call":
                await self._answer(message)
            elif kind == "warning":
                if self._input.on_warn is not None:
                    self._input.on_warn(_warning(message.get("warning") or {}))
            else:
                yield message

    async def _answer(self, message: dict[str, Any]) -> None:
        reply: dict[str, Any] = {"type": "reply", "id": message.get("id")}
        try:
            reply["result"] = await self._dispatch(message["method"], message.get("args") or [])
        except (PlugbuildError, OSError, ValueError) as exc:
            reply["error"] = str(exc)
        await self._send(reply)

    async def _dispatch(self, method: str, args: list[Any]) -> Any:
        host = self._input.compiler_host
        if method == "fileExists":
            return host.file_exists(args[0]) if host is not None else False
        if method == "readFile":
            return host.read_file(args[0]) if host is not None else None

        plugin = self._plugins.get(args[0]) if args else None
        if plugin is None:
            raise ToolchainError(f"bundler called unknown plugin {args[:1]!r}")
        if method == "resolveId":
            return plugin.resolve_id(args[1], args[2])
        if method == "load":
            code = await plugin.load(args[1])
            if isinstance(code, JsxModule):
                return {"jsx": code.source, "fileName": code.file_name}
            return code
        if method == "buildEnd":
            plugin.build_end()
            return None
        raise ToolchainError(f"bundler made unknown call {method!r}")

    async def close(self) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        await proc.wait()


class RollupWatcher:
    """A running ``rollup.watch`` process as an async stream of watch events."""

    def __init__(self, session: _DriverSession) -> None:
        self._session = session
        self._closed = False

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[WatchEvent]:
        await self._session.start()
        async for message in self._session.messages():
            kind = message.get("type")
            if kind == "event":
                try:
                    code = WatchEventCode(message.get("code"))
                except ValueError:
                    debug(f"unhandled bundler event {message.get('code')!r}")
                    continue
                yield WatchEvent(code, build_error(message.get("error")))
            elif kind == "error":
                yield WatchEvent(WatchEventCode.FATAL, build_error(message.get("error")))
                return
        if not self._closed:
            yield WatchEvent(
                WatchEventCode.FATAL, BuildError("bundler process exited unexpectedly")
            )

    async def close(self) -> None:
        self._closed = True
        await self._session.close()


class RollupBundler:
    """Bundler backed by rollup running under Node.js.

    Args:
        node: Path to the ``node`` executable; looked up on ``PATH`` when
            omitted.
    """

    def __init__(self, node: Optional[str] = None) -> None:
        self._node = node

    def _node_path(self) -> str:
        return self._node or require_tool("node", NODE_HINT)

    async def bundle(self, input: InputConfig, output: OutputConfig) -> BundleResult:
        """Compile and bundle once, returning the emitted chunks.

        Raises:
            BuildError: If rollup or one of its plugins reports an error.
            ToolchainError: If the driver cannot run or exits early.
        """
        session = _DriverSession(self._node_path(), "bundle", input, output)
        await session.start()
        try:
            async for message in session.messages():
                kind = message.get("type")
                if kind == "result":
                    return BundleResult(
                        [
                            OutputChunk(
                                code=chunk.get("code", ""),
                                map=chunk.get("map") or {},
                                is_entry=bool(chunk.get("isEntry")),
                                file_name=chunk.get("fileName", ""),
                            )
                            for chunk in message.get("output", [])
                        ]
                    )
                if kind == "error":
                    raise build_error(message.get("error")) or BuildError("unknown error")
        finally:
            await session.close()
        raise ToolchainError("bundler exited without producing output")

    def watch(self, input: InputConfig, output: OutputConfig) -> RollupWatcher:
        """Start ``rollup.watch``; the process launches on first iteration."""
        return RollupWatcher(_DriverSession(self._node_path(), "watch", input, output))
