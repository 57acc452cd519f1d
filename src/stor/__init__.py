# Stor - mirror module trees into a target directory
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
stor - mirror module directories into a target tree

A module is a directory whose files should appear inside a target
directory (usually your home directory). stor creates one symlink (or
copy) per file, creating the directories in between as needed and merging
into directories that already exist.

Basic usage::

    from stor import stow, unstow, restow

    # Stow modules
    result = stow("dotfiles/vim", "dotfiles/zsh", target="/home/user")
    for task in result.conflicts:
        print("Not overwritten:", task.path)

    # Unstow a module
    result = unstow("dotfiles/vim", target="/home/user")

    # Restow (unstow + stow) after updating a module
    result = restow("dotfiles/zsh", target="/home/user")

With configuration reuse::

    from stor import stow, StowConfig

    config = StowConfig(target="/home/user", copy=True, overwrite=True)
    stow("pkg1", config=config)
    stow("pkg2", config=config)

Simulation mode::

    result = stow("pkg", target="/home/user", simulate=True)
    print("Would perform:", [t.describe() for t in result.tasks])
"""

from stor.stow import stow, unstow, restow
from stor.types import (
    NodeKind,
    StowConfig,
    StowResult,
    Task,
    TaskAction,
    StowError,
    StowProgrammingError,
    InvalidPathError,
    StowCLIError,
)
from stor.util import VERSION as __version__, map_target_path

# CLI entry point
from stor.cli import main

__all__ = [
    "stow",
    "unstow",
    "restow",
    "map_target_path",
    "NodeKind",
    "StowConfig",
    "StowResult",
    "Task",
    "TaskAction",
    "StowError",
    "StowProgrammingError",
    "InvalidPathError",
    "StowCLIError",
    "__version__",
    "main",
]
