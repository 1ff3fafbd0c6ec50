"""Utility functions for MediaScribe."""

import os
import re
import stat
import logging
import tempfile
from typing import Container

from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

_CDATA_MARKERS = ("<![CDATA[", "]]>")
_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9\s_]")
_SEPARATOR_RUN = re.compile(r"[\s_]+")


def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e


def sanitize_name(raw_name: str) -> str:
    """
    Turns an arbitrary title into a filesystem-safe directory name.

    CDATA markers are removed, everything except ASCII letters, digits and
    whitespace is dropped, whitespace runs become a single underscore and
    trailing underscores are stripped. The result may be empty (e.g. for
    an all-punctuation title); callers supply their own fallback.

    >>> sanitize_name("Episode #1: A/B <![CDATA[Test]]>")
    'Episode_1_AB_Test'
    """
    name = raw_name
    for marker in _CDATA_MARKERS:
        name = name.replace(marker, "")
    name = _DISALLOWED_CHARS.sub("", name)
    # Underscores count as separators so a second pass is a no-op
    name = _SEPARATOR_RUN.sub("_", name)
    return name.rstrip("_")


def unique_name(name: str, taken: Container[str], fallback: str) -> str:
    """
    Picks a directory name that is not already in ``taken``.

    An empty ``name`` is replaced by ``fallback``; a clash gets a numeric
    suffix starting at ``_2``.
    """
    base = name or fallback
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}_{suffix}"
        suffix += 1
    return candidate


def _file_mode(path: str) -> int:
    """Mode for a committed file: the existing target's, else what open() would give."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        pass
    # os.umask can only be read by setting it
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_text_atomic(path: str, text: str) -> None:
    """
    Writes ``text`` to ``path`` in one commit.

    The content goes to a staging file in the same directory which then
    replaces the target, so readers never see a partial file and a failed
    write leaves any previous file untouched. The committed file gets the
    permissions a plain write would have given it.

    Raises:
        FileSystemError: If the staging file cannot be written or moved.
    """
    directory = os.path.dirname(os.path.abspath(path))
    ensure_dir_exists(directory)
    staging_path = None
    try:
        fd, staging_path = tempfile.mkstemp(prefix=".staging_", suffix=".txt", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(staging_path, _file_mode(path))
        os.replace(staging_path, path)
        staging_path = None
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise FileSystemError(f"Could not write file {path}: {e}") from e
    finally:
        if staging_path and os.path.exists(staging_path):
            try:
                os.remove(staging_path)
            except OSError:
                logger.warning(f"Could not remove staging file: {staging_path}")


def is_url(location: str) -> bool:
    """True for http(s) locations, False for anything that looks like a path."""
    return location.startswith(("http://", "https://"))


def format_duration(seconds: float) -> str:
    """Formats seconds as H:MM:SS for human-readable info files."""
    total = int(round(seconds))
    hrs, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    return f"{hrs}:{mins:02d}:{secs:02d}"
