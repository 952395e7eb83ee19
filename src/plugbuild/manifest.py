"""Plugin manifest loading.

A plugin is described by a ``manifest.json`` file next to its sources::

    {
      "name": "Hello",
      "api": "1.0.0",
      "main": "plugin.ts",
      "ui": "ui.tsx"
    }

``name`` and ``main`` are required. ``main`` and ``ui`` are paths relative
to the manifest's directory. Unknown keys are preserved and written back
to the generated manifest after the well-known ones.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plugbuild.exceptions import ConfigError

MANIFEST_FILENAME = "manifest.json"

# Well-known properties, in the order they are written back.
STANDARD_PROPS = ("name", "api", "main", "id", "ui", "menu", "build")


class ManifestProps(BaseModel):
    """Properties declared in a manifest file.

    Extra keys are preserved in ``model_extra`` so that host-specific
    settings survive the rewrite into the build directory.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(description="Human-readable plugin name")
    main: str = Field(description="Plugin program entry, relative to the manifest")
    api: Optional[str] = Field(default=None, description="Host API version")
    id: Optional[str] = None
    ui: Optional[str] = Field(
        default=None, description="UI entry (.ts, .tsx, .js, .jsx or .html)"
    )
    menu: Optional[list[Any]] = None
    build: Optional[str] = None


class Manifest:
    """A loaded manifest: the file it came from and its properties."""

    def __init__(self, file: Path, props: ManifestProps) -> None:
        self.file = file
        self.props = props

    @property
    def basedir(self) -> Path:
        return self.file.parent

    def prop_map(self) -> dict[str, Any]:
        """Return the manifest's properties, well-known keys first."""
        props: dict[str, Any] = {}
        declared = self.props.model_fields_set
        for name in STANDARD_PROPS:
            value = getattr(self.props, name)
            if name in declared and value is not None:
                props[name] = value
        props.update(self.props.model_extra or {})
        return props

    @classmethod
    async def load(cls, path: str | Path) -> Manifest:
        """Load a manifest from *path*, which may name a file or a directory.

        A directory is resolved to the ``manifest.json`` inside it.

        Raises:
            ConfigError: If the file is missing, is not valid JSON, or
                lacks a required property.
        """
        path = Path(path).resolve()
        is_dir = await asyncio.to_thread(path.is_dir)
        if is_dir:
            return await cls.load_file(path / MANIFEST_FILENAME)
        return await cls.load_file(path)

    @classmethod
    async def load_file(cls, file: str | Path) -> Manifest:
        """Load and validate the manifest file at *file*."""
        file = Path(file).resolve()
        try:
            text = await asyncio.to_thread(file.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise ConfigError(f"manifest not found: {file}")
        except OSError as exc:
            raise ConfigError(f"cannot read manifest {file}: {exc}")
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(
                f"{file}:{exc.lineno}:{exc.colno}: invalid JSON ({exc.msg})"
            )
        if not isinstance(raw, dict):
            raise ConfigError(f"{file}: manifest must be a JSON object")
        for required in ("name", "main"):
            if raw.get(required) is None:
                raise ConfigError(f"missing {required!r} property in {file}")
        try:
            props = ManifestProps.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"invalid manifest {file}: {exc}")
        return cls(file, props)

    def __repr__(self) -> str:
        return f"Manifest({self.props.name!r} at {str(self.file)!r})"
