"""
Pytest configuration for stor tests.

Provides an isolated environment with a modules directory and a target
directory, helpers to populate both, and assertion helpers for checking
the resulting target tree.
"""

import os

import pytest


def makedirs_exist_ok(path):
    os.makedirs(path, exist_ok=True)


class StorTestEnv:
    """Test environment for running stor operations."""

    def __init__(self, tmpdir):
        # Links are created against canonical module paths
        self.tmpdir = os.path.realpath(str(tmpdir))
        self.modules_dir = os.path.join(self.tmpdir, "modules")
        self.target_dir = os.path.join(self.tmpdir, "target")
        os.makedirs(self.modules_dir)
        os.makedirs(self.target_dir)

    def module(self, name):
        return os.path.join(self.modules_dir, name)

    def target(self, path=""):
        return os.path.join(self.target_dir, path) if path else self.target_dir

    def create_module(self, name, files):
        """
        Create a module in the modules directory and return its path.

        files: dict mapping relative paths to content (or None for directories)
        """
        mod_dir = self.module(name)
        makedirs_exist_ok(mod_dir)

        for path, content in files.items():
            full_path = os.path.join(mod_dir, path)
            parent = os.path.dirname(full_path)
            if parent:
                makedirs_exist_ok(parent)

            if content is None:
                makedirs_exist_ok(full_path)
            else:
                with open(full_path, "w") as f:
                    f.write(content)
        return mod_dir

    def create_target_file(self, path, content):
        """Create a file in the target directory."""
        full_path = self.target(path)
        parent = os.path.dirname(full_path)
        if parent:
            makedirs_exist_ok(parent)
        with open(full_path, "w") as f:
            f.write(content)

    def create_target_dir(self, path):
        """Create a directory in the target directory."""
        makedirs_exist_ok(self.target(path))

    def create_target_link(self, path, dest):
        """Create a symlink in the target directory."""
        full_path = self.target(path)
        parent = os.path.dirname(full_path)
        if parent:
            makedirs_exist_ok(parent)
        os.symlink(dest, full_path)

    def get_filesystem_state(self):
        """
        Get a snapshot of the target directory state.

        Returns a dict mapping relative paths to tuples:
        - ('dir',) for directories
        - ('file', content) for files
        - ('link', destination) for symlinks
        """
        state = {}
        for root, dirs, files in os.walk(self.target_dir, followlinks=False):
            rel_root = os.path.relpath(root, self.target_dir)
            if rel_root == ".":
                rel_root = ""

            for name in sorted(dirs + files):
                path = os.path.join(rel_root, name) if rel_root else name
                full_path = os.path.join(root, name)
                if os.path.islink(full_path):
                    state[path] = ("link", os.readlink(full_path))
                elif os.path.isdir(full_path):
                    state[path] = ("dir",)
                else:
                    with open(full_path, "r") as fh:
                        state[path] = ("file", fh.read())

        return state


@pytest.fixture
def stor_env(tmp_path, monkeypatch):
    """Isolated environment; HOME and cwd point at the temp dir so no real .storrc is read."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.chdir(tmp_path)
    return StorTestEnv(tmp_path)


# ============================================================================
# Shared assertion helpers
# ============================================================================


def check_link(env, path, expected_target):
    """Check that path is a symlink pointing to expected_target."""
    full_path = env.target(path)
    assert os.path.islink(full_path), f"{path} should be a symlink"
    actual = os.readlink(full_path)
    assert actual == expected_target, f"{path}: expected {expected_target}, got {actual}"


def check_dir(env, path):
    """Check that path is a real directory (not a symlink)."""
    full_path = env.target(path)
    assert os.path.isdir(full_path), f"{path} should be a directory"
    assert not os.path.islink(full_path), f"{path} should not be a symlink"


def check_not_exists(env, path):
    """Check that path does not exist (including broken symlinks)."""
    full_path = env.target(path)
    assert not os.path.exists(full_path) and not os.path.islink(full_path), (
        f"{path} should not exist"
    )


def check_file(env, path, content=None):
    """Check that path is a regular file (not a symlink), optionally with given content."""
    full_path = env.target(path)
    assert os.path.isfile(full_path), f"{path} should be a file"
    assert not os.path.islink(full_path), f"{path} should not be a symlink"
    if content is not None:
        with open(full_path) as f:
            assert f.read() == content, f"{path} has unexpected content"


def actions(result):
    """(action, path, reason) triples of a StowResult's tasks."""
    return [(t.action.value, t.path, t.reason) for t in result.tasks]
