"""
Tests for unstowing modules from a target directory.
"""

import os

from stor import stow, unstow

from conftest import actions, check_dir, check_file, check_link, check_not_exists


class TestUnstow:
    """Unstow removes what the module maps to, and nothing else."""

    def test_unstow_restores_empty_target(self, stor_env):
        pkg = stor_env.create_module("pkg", {"a.txt": "A", "sub/b.txt": "B"})
        stow(pkg, target=stor_env.target_dir)

        result = unstow(pkg, target=stor_env.target_dir)

        assert result.success
        check_not_exists(stor_env, "a.txt")
        check_not_exists(stor_env, "sub")
        assert os.listdir(stor_env.target_dir) == []
        assert actions(result) == [
            ("unlink", stor_env.target("a.txt"), None),
            ("unlink", stor_env.target("sub/b.txt"), None),
            ("rmdir", stor_env.target("sub"), None),
        ]

    def test_pruning_cascades_through_created_directories(self, stor_env):
        pkg = stor_env.create_module("pkg", {"x/y/z/deep.txt": "D"})
        stow(pkg, target=stor_env.target_dir)

        unstow(pkg, target=stor_env.target_dir)

        check_not_exists(stor_env, "x")
        check_dir(stor_env, "")

    def test_shared_directory_with_other_content_survives(self, stor_env):
        pkg = stor_env.create_module("pkg", {"config/y.conf": "Y"})
        stor_env.create_target_file("config/x.conf", "X")
        stow(pkg, target=stor_env.target_dir)

        unstow(pkg, target=stor_env.target_dir)

        check_dir(stor_env, "config")
        check_file(stor_env, "config/x.conf", "X")
        check_not_exists(stor_env, "config/y.conf")

    def test_other_modules_links_survive(self, stor_env):
        pkg1 = stor_env.create_module("pkg1", {"bin/one": "1"})
        pkg2 = stor_env.create_module("pkg2", {"bin/two": "2"})
        stow(pkg1, pkg2, target=stor_env.target_dir)

        unstow(pkg1, target=stor_env.target_dir)

        check_dir(stor_env, "bin")
        check_not_exists(stor_env, "bin/one")
        check_link(stor_env, "bin/two", os.path.join(pkg2, "bin", "two"))

    def test_unstow_never_removes_target_root(self, stor_env):
        pkg = stor_env.create_module("pkg", {"only": "1"})
        stow(pkg, target=stor_env.target_dir)

        unstow(pkg, target=stor_env.target_dir)

        check_dir(stor_env, "")
        assert os.listdir(stor_env.target_dir) == []

    def test_absent_entries_are_skipped_silently(self, stor_env, capsys):
        pkg = stor_env.create_module("pkg", {"a.txt": "A", "sub/b.txt": "B"})

        result = unstow(pkg, target=stor_env.target_dir)

        assert result.success
        assert result.tasks == []
        assert "[WARN]" not in capsys.readouterr().err

    def test_empty_directory_is_not_pruned_when_nothing_was_removed(self, stor_env):
        pkg = stor_env.create_module("pkg", {"sub/b.txt": "B"})
        stor_env.create_target_dir("sub")

        result = unstow(pkg, target=stor_env.target_dir)

        check_dir(stor_env, "sub")
        assert result.tasks == []

    def test_unstow_removes_copies(self, stor_env):
        pkg = stor_env.create_module("pkg", {"a.txt": "A", "sub/b.txt": "B"})
        stow(pkg, target=stor_env.target_dir, copy=True)

        unstow(pkg, target=stor_env.target_dir)

        assert os.listdir(stor_env.target_dir) == []

    def test_stow_then_unstow_with_empty_directories(self, stor_env):
        pkg = stor_env.create_module("pkg", {"a.txt": "A", "empty": None, "sub/inner": None})

        for copy in (False, True):
            stow(pkg, target=stor_env.target_dir, copy=copy)
            result = unstow(pkg, target=stor_env.target_dir)

            assert result.success
            assert stor_env.get_filesystem_state() == {}

    def test_empty_directory_with_foreign_content_is_kept(self, stor_env):
        pkg = stor_env.create_module("pkg", {"empty": None})
        stor_env.create_target_file("empty/mine", "M")

        result = unstow(pkg, target=stor_env.target_dir)

        check_file(stor_env, "empty/mine", "M")
        assert result.tasks == []

    def test_unstow_removes_folded_directory_link(self, stor_env):
        pkg = stor_env.create_module("pkg", {"sub/b.txt": "B"})
        stow(pkg, target=stor_env.target_dir, fold=True)

        result = unstow(pkg, target=stor_env.target_dir)

        check_not_exists(stor_env, "sub")
        assert actions(result) == [("unlink", stor_env.target("sub"), None)]
        assert os.path.exists(os.path.join(pkg, "sub", "b.txt"))

    def test_unstow_leaves_module_untouched(self, stor_env):
        pkg = stor_env.create_module("pkg", {"a.txt": "A", "sub/b.txt": "B"})
        stow(pkg, target=stor_env.target_dir)

        unstow(pkg, target=stor_env.target_dir)

        with open(os.path.join(pkg, "sub", "b.txt")) as f:
            assert f.read() == "B"

    def test_unrelated_target_content_is_never_inspected(self, stor_env):
        pkg = stor_env.create_module("pkg", {"a.txt": "A"})
        stor_env.create_target_link("other", "/nonexistent")
        stor_env.create_target_file("notes/todo", "keep")
        stow(pkg, target=stor_env.target_dir)

        unstow(pkg, target=stor_env.target_dir)

        check_link(stor_env, "other", "/nonexistent")
        check_file(stor_env, "notes/todo", "keep")

    def test_directory_where_module_has_a_file_is_reported(self, stor_env, capsys):
        pkg = stor_env.create_module("pkg", {"conf": "file"})
        stor_env.create_target_file("conf/inner", "x")

        result = unstow(pkg, target=stor_env.target_dir)

        check_file(stor_env, "conf/inner", "x")
        assert [t.action.value for t in result.tasks] == ["skip"]
        assert "is a directory" in capsys.readouterr().err

    def test_missing_module_is_skipped(self, stor_env):
        missing = stor_env.module("missing")

        result = unstow(missing, target=stor_env.target_dir)

        assert result.success
        assert missing in result.skipped
