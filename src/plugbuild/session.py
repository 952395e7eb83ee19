"""Incremental (watch mode) product builds.

An :class:`IncrementalSession` wraps a running bundler watcher for one
product. The watcher rebuilds and writes the program and map files itself
whenever a source in the module graph changes; after each rebuild the
session reads those files back and runs the post-processing stages of
:mod:`plugbuild.builder` over them.

States::

    CONFIGURING -> WATCHING <-> BUILDING
         |             |
         v             v
       FAILED        ENDED / FAILED

* A recoverable rebuild error is printed and the session keeps watching.
* A fatal watcher error ends the session with that error.
* :meth:`IncrementalSession.restart` closes the watcher and configures a
  new one, for changes outside the module graph (library files, manifest
  entry points). A restart requested while another one is waiting returns
  the waiting one; one requested after the pending restart began
  configuring runs again after it.
* :meth:`IncrementalSession.end` is idempotent. :meth:`IncrementalSession.wait`
  returns once the session has ended and raises the error it ended with,
  if any.
"""

from __future__ import annotations

import asyncio
import enum
import json
import time
from pathlib import Path
from typing import Callable, Optional

from plugbuild.builder import (
    bundler_config,
    ProductBuilder,
    log_build_error,
    patch_source_map,
    post_process_js,
    report_build_completed,
    write_output,
)
from plugbuild.exceptions import BuildError, PlugbuildError
from plugbuild.models import BuildContext
from plugbuild.output import debug
from plugbuild.product import Product
from plugbuild.strings import sub
from plugbuild.toolchain.base import Watcher, WatchEvent, WatchEventCode

BuildStartCallback = Callable[[Product, bool], None]
BuildEndCallback = Callable[[Product, Optional[BaseException]], None]


class SessionState(str, enum.Enum):
    CONFIGURING = "configuring"
    WATCHING = "watching"
    BUILDING = "building"
    ENDED = "ended"
    FAILED = "failed"


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


class IncrementalSession:
    """A restartable, cancelable watch-mode build of one product.

    Args:
        product: The product to build. Its constant tables are computed on
            start and on every restart.
        ctx: Build flags.
        builder: Supplies the bundler (``watch``) and the minifier.
        on_build_start: Called with ``(product, is_initial)`` when a
            rebuild starts.
        on_build_end: Called with ``(product, error)`` when a rebuild
            finished (``error`` is None) or failed recoverably.
    """

    def __init__(
        self,
        product: Product,
        ctx: BuildContext,
        builder: ProductBuilder,
        on_build_start: Optional[BuildStartCallback] = None,
        on_build_end: Optional[BuildEndCallback] = None,
    ) -> None:
        self.product = product
        self.ctx = ctx
        self.builder = builder
        self.on_build_start = on_build_start
        self.on_build_end = on_build_end
        self.state = SessionState.CONFIGURING

        self._watcher: Optional[Watcher] = None
        self._pump: Optional[asyncio.Task[None]] = None
        self._starting: Optional[asyncio.Task[None]] = None
        self._restarting: Optional[asyncio.Task[None]] = None
        # the pending restart has begun reading its configuration
        self._restart_begun = False
        self._closing: Optional[asyncio.Task[None]] = None
        self._done: Optional[asyncio.Future[None]] = None
        self._is_first_run = True
        self._start_time = 0.0

    @property
    def ended(self) -> bool:
        return self.state in (SessionState.ENDED, SessionState.FAILED)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> IncrementalSession:
        """Configure and start watching in the background.

        Raises:
            ConfigError: If the product's paths are invalid. Nothing is
                started in that case.
        """
        self.product.check_paths()
        self.product.pre_build(self.ctx)
        self._done = asyncio.get_running_loop().create_future()
        self._starting = asyncio.create_task(self._start_watcher())
        return self

    def restart(self) -> asyncio.Task[None]:
        """Close the current watcher and start a freshly configured one.

        Returns the task performing the restart. While a restart is
        waiting to begin, further calls return that same task; once it has
        begun configuring, a call queues another restart after it, so a
        change made during configuration is not missed.
        """
        pending = self._restarting
        if pending is not None and not pending.done() and not self._restart_begun:
            return pending
        self._restart_begun = False
        self._restarting = asyncio.create_task(self._restart(self._starting))
        self._starting = self._restarting
        return self._restarting

    def end(self, error: Optional[BaseException] = None) -> None:
        """End the session; later calls have no effect."""
        if self.ended:
            return
        self.state = SessionState.FAILED if error is not None else SessionState.ENDED
        debug(f"end incremental build of {self.product.name!r}")
        self._closing = asyncio.create_task(self._close_watcher())
        if self._done is not None and not self._done.done():
            if error is None:
                self._done.set_result(None)
            else:
                self._done.set_exception(error)

    async def wait(self) -> None:
        """Wait until the session ends; re-raise the error it ended with."""
        assert self._done is not None, "session not started"
        await self._done

    async def ready(self) -> None:
        """Wait for the pending start or restart to finish configuring."""
        task = self._starting
        if task is not None:
            await asyncio.wait([task])

    async def closed(self) -> None:
        """Wait for the watcher to be closed after :meth:`end`."""
        if self._closing is not None:
            await asyncio.wait([self._closing])

    async def _restart(self, previous: Optional[asyncio.Task[None]]) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        if self.ended:
            return
        self._restart_begun = True
        debug(f"restart incremental build of {self.product.name!r}")
        await self._close_watcher()
        self.state = SessionState.CONFIGURING
        self.product.pre_build(self.ctx)
        await self._start_watcher()

    async def _start_watcher(self) -> None:
        try:
            incfg, outcfg = await bundler_config(self.product, self.ctx)
        except PlugbuildError as exc:
            if not exc.reported:
                log_build_error(exc)
                exc.reported = True
            self.end(exc)
            return
        if self.ended:
            return
        self._watcher = self.builder.bundler.watch(incfg, outcfg)
        self.state = SessionState.WATCHING
        self._pump = asyncio.create_task(self._consume(self._watcher))

    async def _close_watcher(self) -> None:
        watcher, pump = self._watcher, self._pump
        self._watcher = self._pump = None
        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            await asyncio.wait([pump])
        if watcher is not None:
            try:
                await watcher.close()
            except PlugbuildError as exc:
                debug(f"error closing watcher of {self.product.name!r}: {exc}")

    # ------------------------------------------------------------------ #
    # Watch events
    # ------------------------------------------------------------------ #

    async def _consume(self, watcher: Watcher) -> None:
        async for event in watcher:
            await self._handle(event)
            if self.ended:
                return
        if not self.ended and self._watcher is watcher:
            error = BuildError(f"watcher for {self.product.name!r} stopped unexpectedly")
            log_build_error(error)
            error.reported = True
            self.end(error)

    async def _handle(self, event: WatchEvent) -> None:
        code = event.code
        if code is WatchEventCode.BUNDLE_START:
            self.state = SessionState.BUILDING
            self._start_time = time.monotonic()
            is_initial, self._is_first_run = self._is_first_run, False
            if self.ctx.trace:
                debug(f"build module {self.product.name!r}")
            if self.on_build_start is not None:
                self.on_build_start(self.product, is_initial)

        elif code is WatchEventCode.BUNDLE_END:
            try:
                await self._on_end_build()
            except PlugbuildError as exc:
                self._rebuild_failed(exc)
            else:
                self.state = SessionState.WATCHING
                if self.on_build_end is not None:
                    self.on_build_end(self.product, None)

        elif code is WatchEventCode.ERROR:
            self._rebuild_failed(event.error or BuildError("unknown build error"))

        elif code is WatchEventCode.FATAL:
            error = event.error or BuildError("unknown error")
            if not error.reported:
                log_build_error(error)
                error.reported = True
            self.end(error)

    def _rebuild_failed(self, error: PlugbuildError) -> None:
        if not error.reported:
            log_build_error(error)
            error.reported = True
        self.state = SessionState.WATCHING
        if self.on_build_end is not None:
            self.on_build_end(self.product, error)

    async def _on_end_build(self) -> None:
        """Post-process the files the watcher just wrote."""
        product, ctx = self.product, self.ctx
        try:
            js, map_text = await asyncio.gather(
                asyncio.to_thread(_read_text, product.outfile),
                asyncio.to_thread(_read_text, product.mapfile),
            )
        except OSError as exc:
            raise BuildError(f"cannot read bundler output: {exc}")
        try:
            source_map = json.loads(map_text)
        except json.JSONDecodeError as exc:
            raise BuildError(f"invalid source map {product.mapfile}: {exc}")
        patch_source_map(product, source_map)
        js = sub(js, product.subs)

        if ctx.optimize:
            optimized = self.builder.optimize(product, ctx, js, source_map)
            js, map_json = optimized.code, optimized.map
        else:
            map_json = json.dumps(source_map)

        js = post_process_js(product, ctx, js, map_json)
        await write_output(product, ctx, js, map_json)
        report_build_completed(product, ctx, self._start_time)
