"""Plugin project scaffolding for ``plugbuild init``.

A new project gets a manifest, a plugin program, a ``tsconfig.json`` and a
copy of the host API declarations (``host.d.ts``, for editors; builds link
their own copy). A UI is optional and comes in three kinds:

============  ==============================================================
kind          files
============  ==============================================================
``ts+html``   ``ui.html`` plus a TypeScript UI script ``ui.ts``
``html``      ``ui.html`` with the script written inline
``react``     ``ui.html``, a React UI ``ui.tsx`` and a ``package.json``;
              ``npm install`` runs afterwards
============  ==============================================================

Existing files are kept unless ``overwrite`` is set; each one that would
have been replaced is reported and makes the run fail. An existing manifest
that is overwritten keeps its other properties.
"""

from __future__ import annotations

import asyncio
import enum
import json
import os
import shutil
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from plugbuild.config import atomic_write, get_lib_dir
from plugbuild.exceptions import ConfigError, ToolchainError
from plugbuild.libraries import HOST_API_VERSIONS
from plugbuild.manifest import MANIFEST_FILENAME
from plugbuild.output import error, info, progress, warning
from plugbuild.toolchain.process import NODE_HINT, require_tool
from plugbuild.util import jsonfmt, rpath

HOST_DTS_FILENAME = "host.d.ts"


class UIKind(str, enum.Enum):
    TS_HTML = "ts+html"
    HTML = "html"
    REACT = "react"


class InitOptions(BaseModel):
    """Settings for scaffolding one plugin directory."""

    dir: str = Field(description="Project directory; created when missing")
    srcdir: Optional[str] = Field(
        default=None, description="Where source files go, relative to dir; defaults to dir"
    )
    name: Optional[str] = Field(default=None, description="Plugin name; defaults to the directory name")
    ui: Optional[UIKind] = None
    api_version: Optional[str] = Field(default=None, description="Host API version; defaults to the newest")
    overwrite: bool = False
    verbose: bool = False


def _read_template(name: str) -> str:
    return (get_lib_dir() / name).read_text(encoding="utf-8")


class PluginInitializer:
    """Writes the files of one new plugin project."""

    def __init__(self, options: InitOptions) -> None:
        self.options = options
        self.dir = Path(options.dir).resolve()
        self.srcdir = self.dir / options.srcdir if options.srcdir else self.dir
        self.name = options.name or self.dir.name
        self.ui = options.ui
        self.api_version = options.api_version or HOST_API_VERSIONS[0]
        if self.api_version not in HOST_API_VERSIONS:
            raise ConfigError(
                f"unknown host API version {self.api_version!r} "
                f"(known: {', '.join(HOST_API_VERSIONS)})"
            )

        self.manifest_file = self.dir / MANIFEST_FILENAME
        self.tsconfig_file = self.dir / "tsconfig.json"
        self.package_file = self.dir / "package.json"
        self.host_dts_file = self.dir / HOST_DTS_FILENAME
        self.plugin_file = self.srcdir / "plugin.ts"
        self.html_file = self.srcdir / "ui.html"
        self.ui_file = self.srcdir / ("ui.tsx" if self.ui is UIKind.REACT else "ui.ts")
        self.wrote_package = False

    def _relpath(self, path: Path) -> str:
        return Path(os.path.relpath(path, self.dir)).as_posix()

    def _may_write(self, path: Path) -> bool:
        if self.options.overwrite or not path.exists():
            return True
        error(f"{rpath(path)} already exists")
        return False

    async def _copy_template(self, template: str, dest: Path) -> bool:
        if not await asyncio.to_thread(self._may_write, dest):
            return False
        text = await asyncio.to_thread(_read_template, template)
        await asyncio.to_thread(atomic_write, dest, text)
        return True

    async def init_plugin(self) -> bool:
        """Write all files; return False when any file was left in place.

        Raises:
            ConfigError: If an existing manifest being merged is not a JSON object.
            ToolchainError: If ``npm`` is needed and cannot be run.
        """
        tasks = [
            self.write_manifest(),
            self.write_plugin(),
            self.write_host_declarations(),
            self.write_tsconfig(),
        ]
        if self.ui is UIKind.HTML:
            tasks.append(self._copy_template("template-ui-html.html", self.html_file))
        elif self.ui is UIKind.TS_HTML:
            tasks.append(self._copy_template("template-ui.html", self.html_file))
            tasks.append(self._copy_template("template-ui.ts", self.ui_file))
        elif self.ui is UIKind.REACT:
            tasks.append(self._copy_template("template-ui-react.html", self.html_file))
            tasks.append(self._copy_template("template-ui-react.tsx", self.ui_file))
            tasks.append(self.write_package_json())
        results = await asyncio.gather(*tasks)
        if not all(results):
            return False
        if self.wrote_package:
            return await self.npm_install()
        return True

    async def write_manifest(self) -> bool:
        manifest: dict[str, Any] = {
            "name": self.name,
            "api": self.api_version,
            "main": self._relpath(self.plugin_file),
        }
        if self.ui is UIKind.HTML:
            manifest["ui"] = self._relpath(self.html_file)
        elif self.ui is not None:
            manifest["ui"] = self._relpath(self.ui_file)

        try:
            existing = await asyncio.to_thread(self.manifest_file.read_text, encoding="utf-8")
        except FileNotFoundError:
            existing = None
        if existing is not None:
            if not self.options.overwrite:
                error(f"{rpath(self.manifest_file)} already exists")
                return False
            try:
                previous = json.loads(existing)
            except json.JSONDecodeError as exc:
                raise ConfigError(
                    f"{self.manifest_file}:{exc.lineno}:{exc.colno}: invalid JSON ({exc.msg})"
                )
            if not isinstance(previous, dict):
                raise ConfigError(f"{self.manifest_file}: manifest must be a JSON object")
            manifest = {**previous, **manifest}

        await asyncio.to_thread(atomic_write, self.manifest_file, jsonfmt(manifest) + "\n")
        return True

    async def write_plugin(self) -> bool:
        template = "template-plugin-ui.ts" if self.ui is not None else "template-plugin.ts"
        return await self._copy_template(template, self.plugin_file)

    async def write_host_declarations(self) -> bool:
        """Copy the host API declarations; an existing copy is kept with a warning."""
        if not self.options.overwrite and self.host_dts_file.exists():
            warning(f"{rpath(self.host_dts_file)} already exists")
            return True
        source = get_lib_dir() / f"host-api-{self.api_version}.d.ts"
        self.host_dts_file.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, self.host_dts_file)
        return True

    async def write_tsconfig(self) -> bool:
        if not await asyncio.to_thread(self._may_write, self.tsconfig_file):
            return False
        tsconfig = json.loads(await asyncio.to_thread(_read_template, "template-tsconfig.json"))
        tsconfig["include"] = [self._relpath(self.host_dts_file)]
        if self.ui is UIKind.REACT:
            tsconfig["compilerOptions"]["jsx"] = "react"
        await asyncio.to_thread(atomic_write, self.tsconfig_file, jsonfmt(tsconfig) + "\n")
        return True

    async def write_package_json(self) -> bool:
        written = await self._copy_template("template-package-react.json", self.package_file)
        self.wrote_package = written
        return written

    async def npm_install(self) -> bool:
        """Run ``npm install`` in the project directory; False when npm fails."""
        npm = require_tool("npm", NODE_HINT)
        args = ["install"] if self.options.verbose else ["install", "--silent"]
        progress(f"npm {' '.join(args)} in {rpath(self.dir)}")
        pipe = None if self.options.verbose else asyncio.subprocess.PIPE
        try:
            proc = await asyncio.create_subprocess_exec(
                npm, *args, cwd=str(self.dir), stdout=pipe, stderr=pipe
            )
        except OSError as exc:
            raise ToolchainError(f"cannot run {npm}: {exc}")
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            tail = stderr.decode("utf-8", "replace").strip() if stderr else ""
            error(f"npm install failed with status {proc.returncode}" + (f":\n{tail}" if tail else ""))
            return False
        return True


async def init_plugins(dirs: list[str], options: InitOptions) -> bool:
    """Scaffold every directory in *dirs* concurrently; True when all succeeded."""
    initializers = [PluginInitializer(options.model_copy(update={"dir": d})) for d in dirs]
    results = await asyncio.gather(*(i.init_plugin() for i in initializers))
    for initializer, ok in zip(initializers, results):
        if ok:
            info(f"initialized plugin {initializer.name!r} in {rpath(initializer.dir)}")
    return all(results)
