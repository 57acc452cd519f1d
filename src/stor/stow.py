# Stor - mirror module trees into a target directory
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Core stor operations - mirror module trees into a target tree.

This module provides the public API for stowing, unstowing and restowing
modules, as well as the internal _Stower class that walks a module tree
and decides, entry by entry, what to do with the corresponding target path.
"""

from __future__ import annotations

import dataclasses
import os
from typing import Optional, Sequence

from stor.types import (
    NodeKind,
    Operation,
    Task,
    TaskAction,
    StowConfig,
    StowResult,
    StowError,
    StowProgrammingError,
    SKIP_ALREADY_STOWED,
    SKIP_NOT_OVERWRITTEN,
    SKIP_IS_A_DIRECTORY,
)
from stor.util import (
    debug,
    info,
    warn,
    error,
    set_debug_level,
    canon_path,
    home_dir,
    is_within,
    map_target_path,
    parent,
    node_kind,
    list_dir,
    read_link,
    make_link,
    make_dir,
    copy_file,
    copy_tree,
    remove_items,
    remove_dir,
)

_REMOVALS = (TaskAction.UNLINK, TaskAction.DELETE, TaskAction.RMDIR)


# =============================================================================
# Public API
# =============================================================================


def stow(
    *modules: str,
    config: StowConfig | None = None,
    **kwargs,
) -> StowResult:
    """Stow modules into the target directory.

    Args:
        *modules: Paths of the module directories to stow
        config: Optional StowConfig for configuration
        **kwargs: Override config fields (target, copy, overwrite, etc.)

    Returns:
        StowResult with the decisions taken, skipped modules and errors
    """
    return _run(Operation.STOW, modules, config, **kwargs)


def unstow(
    *modules: str,
    config: StowConfig | None = None,
    **kwargs,
) -> StowResult:
    """Unstow modules from the target directory.

    Args:
        *modules: Paths of the module directories to unstow
        config: Optional StowConfig for configuration
        **kwargs: Override config fields (target, simulate, etc.)

    Returns:
        StowResult with the decisions taken, skipped modules and errors
    """
    return _run(Operation.UNSTOW, modules, config, **kwargs)


def restow(
    *modules: str,
    config: StowConfig | None = None,
    **kwargs,
) -> StowResult:
    """Restow modules (unstow then stow).

    Useful after updating module contents.

    Args:
        *modules: Paths of the module directories to restow
        config: Optional StowConfig for configuration
        **kwargs: Override config fields (target, copy, overwrite, etc.)

    Returns:
        StowResult with the decisions taken, skipped modules and errors
    """
    return _run(Operation.RESTOW, modules, config, **kwargs)


def _run(
    operation: Operation,
    modules: Sequence[str],
    config: StowConfig | None,
    **kwargs,
) -> StowResult:
    return run_modules(
        _make_config(config, **kwargs), [(operation, module) for module in modules]
    )


def run_modules(
    config: StowConfig, modules: Sequence[tuple[Operation, str]]
) -> StowResult:
    """Stow, unstow or restow each (operation, module) pair in order on one engine."""
    stower = _Stower(_resolve_target(config))
    for operation, module in modules:
        stower.process(operation, module)
    return stower.result()


def _make_config(config: StowConfig | None, **kwargs) -> StowConfig:
    """Create a StowConfig from optional base config and overrides."""
    if config is None:
        return StowConfig(**kwargs)
    elif kwargs:
        return dataclasses.replace(config, **kwargs)
    else:
        return config


def _resolve_target(config: StowConfig) -> StowConfig:
    """Resolve target directory if not specified (defaults to the home directory)."""
    if config.target is not None:
        return config

    home = home_dir()
    if not home:
        raise StowError("Cannot determine home directory; please give a target")
    return dataclasses.replace(config, target=home)


# =============================================================================
# Internal Stower class
# =============================================================================


class _Stower:
    """
    Internal class that walks module trees and applies the merge decisions.

    Every decision is recorded as a Task. Unless simulating, the task is
    carried out immediately. The last task per target path is remembered
    so that later decisions see the planned state of the target tree even
    when nothing was written to disk.
    """

    def __init__(self, config: StowConfig):
        if config.target is None:
            raise StowProgrammingError("_Stower needs a resolved target")
        self.c = config
        set_debug_level(config.verbose)

        self.tasks: list[Task] = []
        self.task_for: dict[str, Task] = {}
        self.skipped: dict[str, str] = {}
        self.errors: dict[str, str] = {}

    def process(self, operation: Operation, module: str) -> None:
        """Validate one module and stow, unstow or restow it.

        Validation problems skip the module; filesystem errors abort it.
        Either way the next module can be processed afterwards.
        """
        target = self.c.target
        if not os.path.isdir(module):
            self._skip_module(module, f"module {module} doesn't exist or is a file")
            return
        if not os.path.isdir(target):
            self._skip_module(module, f"target {target} doesn't exist or is a file")
            return

        module_root = canon_path(module)
        target_root = canon_path(target)
        if is_within(target_root, module_root):
            self._skip_module(module, f"target {target} lies inside module {module}")
            return

        debug(1, 0, f"Planning {operation.value} of {module_root} into {target_root}")
        try:
            match operation:
                case Operation.STOW:
                    self.stow_contents(module_root, target_root, module_root)
                case Operation.UNSTOW:
                    self.unstow_contents(module_root, target_root, module_root)
                case Operation.RESTOW:
                    self.restow_contents(module_root, target_root, module_root)
        except StowProgrammingError:
            raise
        except StowError as e:
            error(e.message)
            self.errors[module] = e.message
        debug(1, 0, f"Planning {operation.value} of {module_root}... done")

    def result(self) -> StowResult:
        return StowResult(
            tasks=list(self.tasks),
            skipped=dict(self.skipped),
            errors=dict(self.errors),
        )

    def _skip_module(self, module: str, reason: str) -> None:
        warn(f"Skip: {reason}")
        self.skipped[module] = reason

    # -------------------------------------------------------------------------
    # Stow
    # -------------------------------------------------------------------------

    def stow_contents(self, module_root: str, target_root: str, current_dir: str) -> None:
        """Stow the entries of current_dir, a directory inside module_root.

        Note: stow_contents() and _stow_node() are mutually recursive."""
        debug(2, 0, f"Stowing contents of {current_dir}")
        for node in list_dir(current_dir):
            path = os.path.join(current_dir, node)
            target = map_target_path(path, module_root, target_root)
            self._stow_node(module_root, target_root, path, target)

    def _stow_node(
        self, module_root: str, target_root: str, path: str, target: str
    ) -> None:
        kind = self._node_kind(target)
        debug(3, 1, f"Evaluate {path}: target {target} is {kind.value}")

        if kind == NodeKind.LINK:
            # Copy mode cannot tell whether a link is equivalent to a copy,
            # so only link mode recognizes an already stowed entry.
            if not self.c.copy and self._points_to(target, path):
                self._skip(target, path, SKIP_ALREADY_STOWED)
                return
            if not self.c.overwrite:
                self._skip(target, path, SKIP_NOT_OVERWRITTEN)
                return
            self._do(TaskAction.UNLINK, target, path)
            kind = NodeKind.ABSENT

        is_dir = os.path.isdir(path)
        if kind == NodeKind.FILE or (kind == NodeKind.DIR and not is_dir):
            if not self.c.overwrite:
                self._skip(target, path, SKIP_NOT_OVERWRITTEN)
                return
            self._do(TaskAction.DELETE, target, path)
            kind = NodeKind.ABSENT

        match kind:
            case NodeKind.ABSENT:
                self._create(module_root, target_root, path, target, is_dir)
            case NodeKind.DIR:
                # Existing directories are merged into, never replaced
                self.stow_contents(module_root, target_root, path)
            case _:
                raise StowProgrammingError(f"unexpected target state {kind.value}: {target}")

    def _create(
        self, module_root: str, target_root: str, path: str, target: str, is_dir: bool
    ) -> None:
        if self.c.copy:
            self._do(TaskAction.COPY, target, path)
        # Empty module directories fall through and are linked as a whole
        elif is_dir and not self.c.fold and not os.path.islink(path) and list_dir(path):
            self._do(TaskAction.MKDIR, target, path)
            self.stow_contents(module_root, target_root, path)
        else:
            self._do(TaskAction.LINK, target, path)

    def _points_to(self, link: str, path: str) -> bool:
        """Does the (current or planned) link resolve to exactly path?"""
        dest = self._read_a_link(link)
        if not os.path.isabs(dest):
            dest = os.path.normpath(os.path.join(os.path.dirname(link), dest))
        debug(3, 2, f"{link} points to {dest}")
        return dest == path

    # -------------------------------------------------------------------------
    # Unstow
    # -------------------------------------------------------------------------

    def unstow_contents(self, module_root: str, target_root: str, current_dir: str) -> bool:
        """Unstow the entries of current_dir, a directory inside module_root.

        We traverse the module tree rather than the target tree, so nothing
        without a counterpart in the module is ever looked at. A target
        directory emptied by the removals is pruned, except the target root.

        Returns True if anything was removed from the target tree.
        """
        debug(2, 0, f"Unstowing contents of {current_dir}")
        removed = False
        for node in list_dir(current_dir):
            path = os.path.join(current_dir, node)
            target = map_target_path(path, module_root, target_root)
            if self._unstow_node(module_root, target_root, path, target):
                removed = True

        target_dir = map_target_path(current_dir, module_root, target_root)
        if removed and target_dir != target_root and self._is_empty_dir(target_dir):
            self._do(TaskAction.RMDIR, target_dir, current_dir)
        return removed

    def _unstow_node(
        self, module_root: str, target_root: str, path: str, target: str
    ) -> bool:
        match self._node_kind(target):
            case NodeKind.LINK:
                self._do(TaskAction.UNLINK, target, path)
                return True
            case NodeKind.FILE:
                self._do(TaskAction.DELETE, target, path)
                return True
            case NodeKind.DIR if os.path.isdir(path) and not list_dir(path):
                # An empty module directory maps onto its (copied) empty directory
                if not self._is_empty_dir(target):
                    return False
                self._do(TaskAction.RMDIR, target, path)
                return True
            case NodeKind.DIR if os.path.isdir(path):
                return self.unstow_contents(module_root, target_root, path)
            case NodeKind.DIR:
                self._skip(target, path, SKIP_IS_A_DIRECTORY)
                return False
            case NodeKind.ABSENT:
                debug(3, 1, f"{target} did not exist to be unstowed")
                return False

    # -------------------------------------------------------------------------
    # Restow
    # -------------------------------------------------------------------------

    def restow_contents(self, module_root: str, target_root: str, current_dir: str) -> None:
        self.unstow_contents(module_root, target_root, current_dir)
        self.stow_contents(module_root, target_root, current_dir)

    # -------------------------------------------------------------------------
    # Planned state of the target tree
    # -------------------------------------------------------------------------

    def _node_kind(self, path: str) -> NodeKind:
        """Determine the current or planned kind of a target path."""
        task = self.task_for.get(path)
        if task is not None:
            return _planned_kind(task)

        # The closest ancestor with a task decides what lies below it
        child = path
        ancestor = parent(path)
        while ancestor and ancestor != child:
            task = self.task_for.get(ancestor)
            if task is not None:
                debug(4, 2, f"{path} is below planned {task.action.value} of {ancestor}")
                match task.action:
                    case TaskAction.LINK | TaskAction.COPY:
                        rel = os.path.relpath(path, ancestor)
                        return node_kind(os.path.join(task.source, rel))
                    case _:
                        # Removed, or freshly created and still empty
                        return NodeKind.ABSENT
            child, ancestor = ancestor, parent(ancestor)

        return node_kind(path)

    def _read_a_link(self, link: str) -> str:
        """Return the destination of a current or planned link."""
        task = self.task_for.get(link)
        if task is not None and task.action == TaskAction.LINK:
            return task.source
        return read_link(link)

    def _is_empty_dir(self, dir_path: str) -> bool:
        """Would dir_path be empty once all planned tasks are carried out?"""
        names = set(list_dir(dir_path)) if node_kind(dir_path) == NodeKind.DIR else set()
        prefix = dir_path.rstrip("/") + "/"
        for planned_path in self.task_for:
            if planned_path.startswith(prefix) and "/" not in planned_path[len(prefix):]:
                names.add(planned_path[len(prefix):])

        return all(
            self._node_kind(os.path.join(dir_path, name)) == NodeKind.ABSENT
            for name in names
        )

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def _skip(self, target: str, path: str, reason: str) -> None:
        task = Task(action=TaskAction.SKIP, path=target, source=path, reason=reason)
        self.tasks.append(task)
        if reason == SKIP_ALREADY_STOWED:
            info(task.describe())
        else:
            warn(task.describe())

    def _do(self, action: TaskAction, target: str, source: Optional[str] = None) -> None:
        """Record a task and, unless simulating, carry it out."""
        task = Task(action=action, path=target, source=source)
        self.tasks.append(task)

        if action in _REMOVALS:
            # Anything planned below a removed path is gone with it
            prefix = target.rstrip("/") + "/"
            for planned_path in [p for p in self.task_for if p.startswith(prefix)]:
                del self.task_for[planned_path]
        self.task_for[target] = task

        info(task.describe())
        if not self.c.simulate:
            self._process_task(task)

    def _process_task(self, task: Task) -> None:
        """Process a single task using pattern matching."""
        match task.action:
            case TaskAction.LINK:
                make_link(task.source, task.path)
            case TaskAction.COPY:
                if os.path.isdir(task.source):
                    copy_tree(task.source, task.path)
                else:
                    copy_file(task.source, task.path)
            case TaskAction.MKDIR:
                make_dir(task.path)
            case TaskAction.UNLINK | TaskAction.DELETE:
                remove_items(task.path)
            case TaskAction.RMDIR:
                remove_dir(task.path)
            case _:
                raise StowProgrammingError(f"bad task action: {task.action.value}")


def _planned_kind(task: Task) -> NodeKind:
    match task.action:
        case TaskAction.LINK:
            return NodeKind.LINK
        case TaskAction.MKDIR:
            return NodeKind.DIR
        case TaskAction.COPY if os.path.isdir(task.source):
            return NodeKind.DIR
        case TaskAction.COPY if os.path.exists(task.source):
            return NodeKind.FILE
        case TaskAction.COPY:
            # A dangling symlink is copied as a symlink
            return NodeKind.LINK
        case TaskAction.UNLINK | TaskAction.DELETE | TaskAction.RMDIR:
            return NodeKind.ABSENT
        case _:
            raise StowProgrammingError(f"bad task action: {task.action.value}")
