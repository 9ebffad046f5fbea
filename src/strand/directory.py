"""Plugin directory management.

The plugin root is wiped and recreated on every run: a full reinstall
replaces separate clean and update steps.
"""

import logging
import shutil
from pathlib import Path

from .exceptions import DirectoryError

logger = logging.getLogger(__name__)


def _is_protected(path: Path) -> bool:
    resolved = path.expanduser().resolve()
    return resolved == Path(resolved.anchor) or resolved == Path.home().resolve()


def reset_root(path: Path) -> None:
    """
    Delete everything under the plugin root and leave it empty.

    Creates the directory (and parents) if absent. Safe to call repeatedly.

    Args:
        path: Plugin root directory

    Raises:
        DirectoryError: If the path is a filesystem root or the home
            directory, or if removal or creation fails
    """
    if _is_protected(path):
        raise DirectoryError(
            f"Refusing to use {path} as the plugin directory: its contents would be deleted",
            context={"path": str(path)},
        )

    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            logger.debug(f"Removing existing plugin directory {path}")
            shutil.rmtree(path)

        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DirectoryError(f"Failed to reset plugin directory {path}: {e}", context={"path": str(path)}) from e

    logger.info(f"Plugin directory ready: {path}")


def ensure_subdir(root: Path, name: str) -> Path:
    """
    Create the directory a single plugin installs into.

    Args:
        root: Plugin root directory
        name: Plugin directory name (a single path component)

    Returns:
        Path to the plugin directory

    Raises:
        DirectoryError: If the name is not a plain directory name or creation fails
    """
    if not name or name in (".", "..") or Path(name).name != name or "\\" in name:
        raise DirectoryError(f"Invalid plugin directory name '{name}'", context={"name": name})

    target = root / name
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DirectoryError(f"Failed to create {target}: {e}", context={"path": str(target)}) from e

    return target
