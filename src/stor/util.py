# Stor - mirror module trees into a target directory
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Utility functions for stor.

This module contains general-purpose utilities used throughout stor:
message reporting, path mapping, and the filesystem primitives the merge
engine is built on.
"""

from __future__ import annotations

import os
import pwd
import re
import shutil
import sys

from stor.types import NodeKind, StowError, InvalidPathError

VERSION = "0.3.0"
PROGRAM_NAME = "stor"

# Debug level is module-level state
_debug_level = 0

_RESET = "\033[0m"
_COLORS = {
    "INFO": "\033[36m",  # cyan
    "WARN": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
}
_LEVEL_COLOR = "\033[35m"  # magenta


# =============================================================================
# Reporting
# =============================================================================


def set_debug_level(level: int) -> None:
    """Set verbosity level for debug()."""
    global _debug_level
    _debug_level = level


def get_debug_level() -> int:
    """Get current debug level."""
    return _debug_level


def use_color() -> bool:
    """Colorize only when talking to a terminal and NO_COLOR is not set."""
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


def _report(level: str, msg: str) -> None:
    if use_color():
        line = f"[{_LEVEL_COLOR}{level}{_RESET}] {_COLORS[level]}{msg}{_RESET}"
    else:
        line = f"[{level}] {msg}"
    print(line, file=sys.stderr)


def info(msg: str) -> None:
    """Report an action that was taken (or would be taken)."""
    _report("INFO", msg)


def warn(msg: str) -> None:
    """Report a skipped or conflicting entry."""
    _report("WARN", msg)


def error(msg: str) -> None:
    """Report an unrecovered failure."""
    _report("ERROR", msg)


def debug(level: int, *args) -> None:
    """
    Log trace detail to STDERR based on debug_level setting.

    Verbosity rules:
        >= 1: module-level progress (which module, which roots)
        >= 2: per-directory traversal
        >= 3: per-entry evaluation detail
        >= 4: filesystem helper routines

    Supports two calling conventions:
        debug(level, msg)
        debug(level, indent_level, msg)
    """
    if len(args) >= 2 and isinstance(args[0], int):
        indent_level = args[0]
        msg = args[1]
    elif len(args) >= 1:
        indent_level = 0
        msg = args[0]
    else:
        return

    if _debug_level >= level:
        indent = "    " * indent_level
        print(f"{indent}{msg}", file=sys.stderr)


# =============================================================================
# Paths
# =============================================================================


def _components(path: str) -> list[str]:
    """Split a path on runs of slashes, dropping empty and '.' parts."""
    return [p for p in re.split(r"/+", path) if p and p != "."]


def is_within(path: str, root: str) -> bool:
    """Is path equal to root or below it, comparing whole components?"""
    if path.startswith("/") != root.startswith("/"):
        return False
    root_parts = _components(root)
    return _components(path)[: len(root_parts)] == root_parts


def map_target_path(path: str, module_root: str, target_root: str) -> str:
    """
    Compute the target path mirroring ``path`` inside ``target_root``.

    ``path`` must lie within ``module_root`` (component-wise, so
    ``/a/bc`` is not inside ``/a/b``). The component suffix of ``path``
    after ``module_root`` is joined onto ``target_root``.
    """
    if not is_within(path, module_root):
        raise InvalidPathError(f"{path} is not inside module {module_root}")

    suffix = _components(path)[len(_components(module_root)):]
    if not suffix:
        return target_root
    return os.path.join(target_root, *suffix)


def parent(*path_parts: str) -> str:
    """
    Find the parent of the given path.

    Trailing slashes are ignored: parent("a/b/") == "a".
    """
    path = "/".join(path_parts)

    elts = re.split(r"/+", path)
    while elts and elts[-1] == "":
        elts.pop()

    if elts:
        elts.pop()

    if elts == [""]:
        return "/"
    return "/".join(elts)


def canon_path(path: str) -> str:
    """Find absolute canonical path of given path, resolving symlinks."""
    return os.path.realpath(path)


def get_homedir_from_passwd(username: str | None = None) -> str | None:
    try:
        if username is not None:
            return pwd.getpwnam(username).pw_dir
        return pwd.getpwuid(os.getuid()).pw_dir
    except KeyError:
        return None


def home_dir() -> str | None:
    """The invoking user's home directory."""
    return (
        os.environ.get("HOME")
        or os.environ.get("LOGDIR")
        or get_homedir_from_passwd()
    )


# =============================================================================
# Filesystem layer
# =============================================================================


def node_kind(path: str) -> NodeKind:
    """Classify path without following a final symlink."""
    if os.path.islink(path):
        return NodeKind.LINK
    if os.path.isdir(path):
        return NodeKind.DIR
    if os.path.exists(path):
        return NodeKind.FILE
    return NodeKind.ABSENT


def list_dir(dir_path: str) -> list[str]:
    """Return the sorted entry names of dir_path."""
    try:
        return sorted(os.listdir(dir_path))
    except OSError as e:
        raise StowError(
            f"cannot read directory: {dir_path} ({e.strerror})", errno=e.errno or 1
        ) from e


def read_link(link: str) -> str:
    try:
        return os.readlink(link)
    except OSError as e:
        raise StowError(f"Could not read link: {link} ({e})") from e


def make_link(source: str, link: str) -> None:
    debug(4, 1, f"symlink({source}, {link})")
    try:
        os.symlink(source, link)
    except OSError as e:
        raise StowError(f"Could not create symlink: {link} => {source} ({e})") from e


def make_dir(dir_path: str) -> None:
    debug(4, 1, f"mkdir({dir_path})")
    try:
        os.mkdir(dir_path, 0o777)
    except OSError as e:
        raise StowError(f"Could not create directory: {dir_path} ({e})") from e


def copy_file(src: str, dst: str) -> None:
    """Copy a single file (or a symlink as a symlink) including metadata."""
    debug(4, 1, f"copy_file({src}, {dst})")
    try:
        shutil.copy2(src, dst, follow_symlinks=os.path.exists(src))
    except OSError as e:
        raise StowError(f"Could not copy {src} -> {dst} ({e})") from e


def copy_tree(src: str, dst: str) -> None:
    """Recursively copy a directory; symlinks inside it are copied as symlinks."""
    debug(4, 1, f"copy_tree({src}, {dst})")
    try:
        shutil.copytree(src, dst, symlinks=True)
    except (OSError, shutil.Error) as e:
        raise StowError(f"Could not copy {src} -> {dst} ({e})") from e


def remove_items(path: str) -> None:
    """Remove path: symlinks and files are unlinked, directories removed recursively."""
    debug(4, 1, f"remove({path})")
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.unlink(path)
    except OSError as e:
        raise StowError(f"Could not remove: {path} ({e})") from e


def remove_dir(dir_path: str) -> None:
    """Remove an empty directory."""
    debug(4, 1, f"rmdir({dir_path})")
    try:
        os.rmdir(dir_path)
    except OSError as e:
        raise StowError(f"Could not remove directory: {dir_path} ({e})") from e
