"""Where plugbuild keeps things, and how it writes files.

Compiled library fragments are cached under the user cache directory and
crash logs go to the user data directory:

==========  ==================================  ========================
directory   Linux/BSD (XDG)                     macOS/Windows
==========  ==================================  ========================
cache       ``$XDG_CACHE_HOME/plugbuild``       ``~/.plugbuild/cache``
data        ``$XDG_DATA_HOME/plugbuild``        ``~/.plugbuild/logs``
==========  ==================================  ========================

``PLUGBUILD_CACHE_DIR`` overrides the cache directory on every platform.

Build outputs and cache files are written whole with :func:`atomic_write`;
a reader (or a crashed build) never sees half a bundle.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path

_APP_NAME = "plugbuild"

CACHE_DIR_ENV = "PLUGBUILD_CACHE_DIR"

# kind -> (XDG variable, XDG default under $HOME, fallback under ~/.plugbuild)
_USER_DIRS = {
    "cache": ("XDG_CACHE_HOME", ".cache", "cache"),
    "data": ("XDG_DATA_HOME", os.path.join(".local", "share"), "logs"),
}


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _user_dir(kind: str) -> Path:
    env_var, xdg_default, fallback = _USER_DIRS[kind]
    if _is_xdg_platform():
        base = os.environ.get(env_var) or str(Path.home() / xdg_default)
        path = Path(base) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Everything in it can be deleted at any time; libraries are recompiled
    on the next build.
    """
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        path = Path(override).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return _user_dir("cache")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary."""
    return _user_dir("data")


def get_lib_cache_dir() -> Path:
    """Default directory for compiled library fragments: ``<cache>/libs``."""
    path = get_cache_dir() / "libs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_lib_dir() -> Path:
    """Directory of the bundled runtime library, host API declarations and project templates."""
    return Path(__file__).parent / "lib"


def atomic_write(path: Path | str, data: str) -> None:
    """Replace *path* with *data* (UTF-8) in one rename.

    Missing parent directories are created. The temporary file lives next
    to *path*, so the rename never crosses a file system. If anything
    fails, *path* keeps its previous content and the temporary file is
    removed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
