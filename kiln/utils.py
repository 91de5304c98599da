"""Utility functions for Kiln.

Key functions:
    ensure_clean_dir: Ensure a directory exists and is empty.
    find_executable: Locate an executable in PATH or a local node_modules.
    is_relative_to: Check whether a path lies inside a directory.
    write_bytes_atomic: Replace a file's contents without exposing a half-written file.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file() or item.is_symlink():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def find_executable(name: str, search_roots: Iterable[Path] = ()) -> str | None:
    """Find an executable in PATH or in a local node_modules.

    Args:
        name: Name of the executable (e.g. 'esbuild').
        search_roots: Directories whose ``node_modules/.bin`` is searched, in order,
            after PATH. Parents of each root are searched too, so a site nested
            inside a JavaScript project finds the project's tools.

    Returns:
        Full path to the executable if found, None otherwise.
    """
    found = shutil.which(name)
    if found:
        return found

    seen: set[Path] = set()
    for root in search_roots:
        for directory in (root, *root.parents):
            if directory in seen:
                continue
            seen.add(directory)
            local = directory / "node_modules" / ".bin" / name
            if local.exists():
                return str(local)
    return None


def is_relative_to(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write a file through a temporary sibling and rename it into place.

    Readers see either the previous contents or the new ones, never a truncated file.

    Args:
        path: Destination file; its parent directory is created when missing.
        data: New file contents.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        # mkstemp creates 0600 files; built sites are world-readable.
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
