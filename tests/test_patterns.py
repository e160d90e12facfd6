"""Tests for packback.patterns module."""

import pytest

from packback.patterns import collect_backup_files, is_excluded


@pytest.fixture
def source_tree(tmp_path):
    """A small source tree with files worth excluding."""
    source = tmp_path / "Documents"
    (source / "notes").mkdir(parents=True)
    (source / "node_modules" / "lib").mkdir(parents=True)
    (source / "report.docx").write_text("report")
    (source / "draft.tmp").write_text("draft")
    (source / "notes" / "todo.md").write_text("todo")
    (source / "notes" / "scratch.tmp").write_text("scratch")
    (source / "node_modules" / "lib" / "index.js").write_text("js")
    return source


class TestIsExcluded:
    def test_leaf_name_match(self):
        assert is_excluded("notes/scratch.tmp", ["*.tmp"]) is True

    def test_full_path_match(self):
        assert is_excluded("notes/todo.md", ["notes/*.md"]) is True

    def test_intermediate_segment_match(self):
        """A directory name anywhere in the path excludes everything below it."""
        assert is_excluded("node_modules/lib/index.js", ["node_modules"]) is True

    def test_no_match(self):
        assert is_excluded("notes/todo.md", ["*.tmp", "cache"]) is False

    def test_backslash_separators_normalized(self):
        assert is_excluded("node_modules\\lib\\index.js", ["lib"]) is True

    def test_question_mark_matches_single_character(self):
        assert is_excluded("a1.log", ["a?.log"]) is True
        assert is_excluded("a12.log", ["a?.log"]) is False

    def test_character_class(self):
        assert is_excluded("~$budget.xlsx", ["~[$]*"]) is True

    def test_blank_patterns_skipped(self):
        assert is_excluded("report.docx", ["", "   "]) is False

    def test_empty_path_not_excluded(self):
        assert is_excluded("", ["*"]) is False

    def test_patterns_are_or_combined(self):
        assert is_excluded("cache/x.bin", ["*.tmp", "cache"]) is True

    def test_trailing_slash_on_directory_pattern(self):
        assert is_excluded("build/out.o", ["build/"]) is True


class TestCollectBackupFiles:
    def test_collects_everything_without_patterns(self, source_tree):
        files = collect_backup_files(source_tree)
        assert len(files) == 5

    def test_excludes_matching_files(self, source_tree):
        files = collect_backup_files(source_tree, ["*.tmp", "node_modules"])
        names = {f.name for f in files}
        assert names == {"report.docx", "todo.md"}

    def test_returns_sorted(self, source_tree):
        files = collect_backup_files(source_tree)
        assert files == sorted(files)

    def test_everything_excluded(self, source_tree):
        assert collect_backup_files(source_tree, ["*"]) == []

    def test_empty_directory(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        assert collect_backup_files(empty) == []
