# Stor - mirror module trees into a target directory
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Type definitions for stor.

This module contains enums, dataclasses and exceptions that define the
core data structures used throughout stor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class NodeKind(Enum):
    """State of a path in the target tree."""

    ABSENT = "absent"
    LINK = "link"
    FILE = "file"
    DIR = "dir"


class TaskAction(Enum):
    """Actions the merge engine can decide on for a target path."""

    LINK = "link"
    COPY = "copy"
    MKDIR = "mkdir"
    UNLINK = "unlink"
    DELETE = "delete"
    RMDIR = "rmdir"
    SKIP = "skip"


class Operation(Enum):
    """High-level stor operations."""

    STOW = "stow"
    UNSTOW = "unstow"
    RESTOW = "restow"


SKIP_ALREADY_STOWED = "already exists"
SKIP_NOT_OVERWRITTEN = "is not overwritten"
SKIP_IS_A_DIRECTORY = "is a directory"


@dataclass(slots=True)
class Task:
    """
    A decision taken (or, when simulating, that would be taken) for one
    target path.
    """

    action: TaskAction
    path: str
    source: Optional[str] = None  # Module entry the target mirrors
    reason: Optional[str] = None  # For skips

    def describe(self) -> str:
        match self.action:
            case TaskAction.LINK | TaskAction.COPY:
                return f"{self.action.value.capitalize()}: {self.source} -> {self.path}"
            case TaskAction.SKIP:
                return f"Skip: {self.path} {self.reason}"
            case _:
                return f"{self.action.value.capitalize()}: {self.path}"


@dataclass(frozen=True)
class StowConfig:
    """
    Policy for one stor invocation.

    Attributes:
        target: The target directory (None means the user's home directory)
        copy: Copy module entries instead of symlinking them
        overwrite: Allow deleting existing content that is in the way
        simulate: If True, don't make filesystem changes
        fold: Link whole directories that are missing from the target
              instead of creating them and linking their contents
        verbose: Trace verbosity level
    """

    target: Optional[str] = None
    copy: bool = False
    overwrite: bool = False
    simulate: bool = False
    fold: bool = False
    verbose: int = 0


@dataclass
class StowResult:
    """Outcome of stowing, unstowing or restowing a set of modules."""

    tasks: list[Task] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Return True if no module was aborted by a filesystem error."""
        return not self.errors

    @property
    def conflicts(self) -> list[Task]:
        """Return the entries that were left alone because overwriting was not allowed."""
        return [
            t
            for t in self.tasks
            if t.action == TaskAction.SKIP and t.reason == SKIP_NOT_OVERWRITTEN
        ]

    def __bool__(self) -> bool:
        return self.success


class StowError(Exception):
    """Operational failure that aborts the current module."""

    def __init__(self, message: str, errno: int = 1):
        super().__init__(message)
        self.message = message
        self.errno = errno


class StowProgrammingError(StowError):
    """Internal error - this is a bug."""

    def __init__(self, message: str):
        super().__init__(message, errno=255)


class InvalidPathError(StowProgrammingError):
    """A path was mapped against a module root it does not belong to."""


class StowCLIError(StowError):
    """Command line or configuration file problem."""
