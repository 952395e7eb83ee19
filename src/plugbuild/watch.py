"""Polling file watcher for files outside the bundler's module graph.

The bundler watches the modules it compiles. A plugin target also depends
on files the bundler never sees (the manifest, the HTML and CSS of the UI
shell, library code), which :class:`FileWatcher` polls by modification
time.
"""

from __future__ import annotations

import asyncio
import os
from typing import Callable, Iterable, Optional

from plugbuild.output import debug

DEFAULT_INTERVAL = 0.5

ChangeCallback = Callable[[str], None]


def _mtime(path: str) -> Optional[float]:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return None


class FileWatcher:
    """Calls *on_change* with a file's path whenever its mtime changes.

    A file that is created, modified or removed counts as changed. Files
    that do not exist yet may be watched.

    Args:
        on_change: Receives the (absolute) path of each changed file.
        interval: Seconds between polls.
    """

    def __init__(self, on_change: ChangeCallback, interval: float = DEFAULT_INTERVAL) -> None:
        self.on_change = on_change
        self.interval = interval
        self._mtimes: dict[str, Optional[float]] = {}
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def files(self) -> list[str]:
        return list(self._mtimes)

    def add(self, paths: Iterable[str]) -> None:
        for path in paths:
            path = os.path.abspath(path)
            if path not in self._mtimes:
                self._mtimes[path] = _mtime(path)

    def remove(self, paths: Iterable[str]) -> None:
        for path in paths:
            self._mtimes.pop(os.path.abspath(path), None)

    def set_files(self, paths: Iterable[str]) -> None:
        """Watch exactly *paths*, keeping the state of files already watched."""
        wanted = {os.path.abspath(p) for p in paths}
        self.remove([p for p in self._mtimes if p not in wanted])
        self.add(wanted)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.wait([task])

    async def poll(self) -> list[str]:
        """Check every file once and report the ones that changed."""
        changed = []
        for path, previous in list(self._mtimes.items()):
            current = await asyncio.to_thread(_mtime, path)
            if path not in self._mtimes:
                continue  # removed while polling
            if current != previous:
                self._mtimes[path] = current
                changed.append(path)
        for path in changed:
            debug(f"changed: {path}")
            self.on_change(path)
        return changed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll()
