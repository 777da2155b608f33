"""
Unit tests for change units, heuristic grouping and repository context.
"""

import json
import tempfile
from pathlib import Path

import pytest

from ai_diff_reviewer.diff.parser import parse_unified_diff
from ai_diff_reviewer.models.review import ChangeUnit
from ai_diff_reviewer.review.context import RepoContextLoader
from ai_diff_reviewer.review.grouping import HeuristicGrouper, summarize_locations
from ai_diff_reviewer.review.units import ChangeUnitBuilder

from conftest import APP_HUNK_1, APP_HUNK_2, README_HUNK, TEST_HUNK


class TestChangeUnitBuilder:
    """Unit tests for ChangeUnitBuilder."""

    def setup_method(self):
        """Set up test fixtures."""
        self.builder = ChangeUnitBuilder()

    @pytest.mark.parametrize("path, expected", [
        ("src/app.py", ["feature"]),
        ("tests/test_app.py", ["tests"]),
        ("src/components/Button.test.tsx", ["tests", "ui"]),
        ("web/ui/Header.tsx", ["ui"]),
        ("server/api/users.py", ["api"]),
        ("app/controllers/UserController.rb", ["api"]),
        ("db/migrations/0001_init.sql", ["data"]),
        ("README.md", ["docs"]),
        ("docs/guide.rst", ["docs"]),
        ("pyproject.toml", ["config"]),
        ("src/config/settings.py", ["config"]),
        (".env.example", ["config"]),
        ("src/refactor_helpers.py", ["refactor"]),
        ("SRC/API/Handler.PY", ["api"]),
    ])
    def test_derive_tags(self, path, expected):
        """Test path-based tag derivation."""
        assert self.builder.derive_tags(path) == expected

    def test_build_units(self, sample_diff):
        """Test one unit per file with hunk ids in diff order."""
        units = self.builder.build(parse_unified_diff(sample_diff))

        assert [unit.id for unit in units] == ["src/app.py", "tests/test_app.py", "README.md"]
        assert units[0].hunk_ids == [APP_HUNK_1, APP_HUNK_2]
        assert units[1].tags == ["tests"]
        assert units[2].tags == ["docs"]

    def test_repeated_file_gets_unique_id(self):
        """Test a file listed twice in one diff."""
        diff = (
            "--- a/x.py\n+++ b/x.py\n@@ -1 +1 @@\n-a\n+b\n"
            "--- a/x.py\n+++ b/x.py\n@@ -5 +5 @@\n-c\n+d\n"
        )

        units = self.builder.build(parse_unified_diff(diff))

        assert [unit.id for unit in units] == ["x.py", "x.py#2"]

    def test_file_without_hunks(self):
        """Test binary/rename-only files yield units with no hunks."""
        diff = "diff --git a/logo.png b/logo.png\nBinary files a/logo.png and b/logo.png differ\n"

        units = self.builder.build(parse_unified_diff(diff))

        assert units[0].hunk_ids == []


class TestHeuristicGrouper:
    """Unit tests for HeuristicGrouper."""

    def setup_method(self):
        """Set up test fixtures."""
        self.grouper = HeuristicGrouper()

    def test_group_sample_diff(self, sample_diff):
        """Test bucket order, titles and risk."""
        units = ChangeUnitBuilder().build(parse_unified_diff(sample_diff))

        groups = self.grouper.group(units)

        assert [group.id for group in groups] == ["heuristic-feature", "heuristic-tests", "heuristic-docs"]
        assert groups[0].title == "Feature work"
        assert groups[0].risk == "medium"
        assert groups[0].hunk_ids == [APP_HUNK_1, APP_HUNK_2]
        assert groups[1].risk == "low"
        assert groups[1].hunk_ids == [TEST_HUNK]
        assert groups[1].suggested_tests == ["Run updated tests"]
        assert groups[2].hunk_ids == [README_HUNK]
        assert groups[2].suggested_tests is None

    def test_primary_tag_follows_priority(self):
        """Test a unit with several tags lands in its highest-priority bucket."""
        unit = ChangeUnit(id="u", file_path="web/ui/Button.test.tsx", hunk_ids=["h1"], tags=["tests", "ui"])

        groups = self.grouper.group([unit])

        assert [group.id for group in groups] == ["heuristic-ui"]

    def test_rationale_summarizes_locations(self):
        """Test rationale text."""
        units = [
            ChangeUnit(id="a", file_path="src/core/a.py", hunk_ids=["a"], tags=["feature"]),
            ChangeUnit(id="b", file_path="src/core/b.py", hunk_ids=["b"], tags=["feature"]),
            ChangeUnit(id="c", file_path="lib/c.py", hunk_ids=["c"], tags=["feature"]),
        ]

        groups = self.grouper.group(units)

        assert groups[0].rationale == "Product changes in src/core and lib/c.py across 3 file(s)."

    def test_summarize_locations_limits_to_three(self):
        """Test location summary caps at three entries."""
        units = [
            ChangeUnit(id=path, file_path=path, hunk_ids=[], tags=["feature"])
            for path in ["a/x.py", "b/x.py", "c/x.py", "d/x.py"]
        ]

        assert summarize_locations(units) == "a/x.py, b/x.py and c/x.py"

    def test_misc_bucket_for_unprioritized_tags(self):
        """Test units without a priority tag go to the trailing misc group."""
        grouper = HeuristicGrouper(priority_order=["tests"])
        units = [
            ChangeUnit(id="t", file_path="tests/t.py", hunk_ids=["t1"], tags=["tests"]),
            ChangeUnit(id="d", file_path="README.md", hunk_ids=["d1"], tags=["docs"]),
        ]

        groups = grouper.group(units)

        assert [group.id for group in groups] == ["heuristic-tests", "heuristic-misc"]
        assert groups[1].title == "Miscellaneous updates"

    def test_duplicate_hunk_ids_not_repeated(self):
        """Test a hunk id shared by two units appears in one group only."""
        units = [
            ChangeUnit(id="a", file_path="src/a.py", hunk_ids=["h1"], tags=["feature"]),
            ChangeUnit(id="b", file_path="tests/a.py", hunk_ids=["h1", "h2"], tags=["tests"]),
        ]

        groups = self.grouper.group(units)

        assert groups[0].hunk_ids == ["h1"]
        assert groups[1].hunk_ids == ["h2"]

    def test_empty_input(self):
        """Test no units produce no groups."""
        assert self.grouper.group([]) == []

    def test_deterministic(self, sample_diff):
        """Test identical input gives identical output."""
        units = ChangeUnitBuilder().build(parse_unified_diff(sample_diff))

        assert self.grouper.group(units) == self.grouper.group(units)


class TestRepoContextLoader:
    """Unit tests for RepoContextLoader."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def teardown_method(self):
        """Clean up test fixtures."""
        self.temp_dir.cleanup()

    def test_explicit_path_wins(self):
        """Test an explicit context file is used first."""
        explicit = self.root / "notes.md"
        explicit.write_text("Explicit context", encoding="utf-8")
        (self.root / "package.json").write_text(json.dumps({"name": "pkg"}), encoding="utf-8")

        assert RepoContextLoader(str(self.root)).load(str(explicit)) == "Explicit context"

    def test_tool_directory_context(self):
        """Test context.md in the tool directory."""
        tool_dir = self.root / ".ai-diff-reviewer"
        tool_dir.mkdir()
        (tool_dir / "context.md").write_text("  Repo conventions  \n", encoding="utf-8")

        assert RepoContextLoader(str(self.root)).load() == "Repo conventions"

    def test_package_json_summary(self):
        """Test package metadata fallback."""
        (self.root / "package.json").write_text(
            json.dumps({"name": "web-app", "description": "Storefront"}), encoding="utf-8"
        )

        assert RepoContextLoader(str(self.root)).load() == "Project: web-app\nStorefront"

    def test_pyproject_summary(self):
        """Test pyproject metadata fallback."""
        (self.root / "pyproject.toml").write_text(
            '[project]\nname = "svc"\ndescription = "Billing service"\n', encoding="utf-8"
        )

        assert RepoContextLoader(str(self.root)).load() == "Project: svc\nBilling service"

    def test_undecodable_context_skipped(self):
        """Test a context file that is not UTF-8 falls through to the next source."""
        explicit = self.root / "notes.md"
        explicit.write_bytes(b"caf\xe9 context")
        tool_dir = self.root / ".ai-diff-reviewer"
        tool_dir.mkdir()
        (tool_dir / "context.md").write_text("Repo conventions", encoding="utf-8")

        assert RepoContextLoader(str(self.root)).load(str(explicit)) == "Repo conventions"

    def test_undecodable_package_json(self):
        """Test unreadable package metadata yields no context."""
        (self.root / "package.json").write_bytes(b'{"name": "caf\xe9"}')

        assert RepoContextLoader(str(self.root)).load() is None

    def test_no_context(self):
        """Test None when nothing is available."""
        assert RepoContextLoader(str(self.root)).load() is None

    def test_truncation(self):
        """Test long context is truncated with a marker."""
        explicit = self.root / "long.md"
        explicit.write_text("x" * 50, encoding="utf-8")

        context = RepoContextLoader(str(self.root), max_chars=10).load(str(explicit))

        assert context == "x" * 10 + "\n\n[Truncated repo context]"
