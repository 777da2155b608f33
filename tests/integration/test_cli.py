"""
Integration tests for the command line interface.

The engine command points at a missing binary, so review runs exercise
the heuristic fallback path end to end.
"""

import json

import pytest

from ai_diff_reviewer.cli import EXIT_ERROR, EXIT_OK, load_config, main, parse_args

from conftest import SAMPLE_DIFF


class TestCommandLine:
    """Integration tests for ai-diff-reviewer commands."""

    @pytest.fixture(autouse=True)
    def environment(self, tmp_path, monkeypatch):
        self.root = tmp_path / "repo"
        self.root.mkdir()
        self.diff_path = tmp_path / "change.patch"
        self.diff_path.write_text(SAMPLE_DIFF, encoding="utf-8")

        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("REPO_ROOT", str(self.root))
        monkeypatch.setenv("ENGINE_COMMAND", str(tmp_path / "missing-engine"))
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

    def _review(self, capsys) -> str:
        assert main(["review", "--diff-file", str(self.diff_path)]) == EXIT_OK
        output = capsys.readouterr().out
        return output.split("Run ", 1)[1].split(" ", 1)[0]

    def test_review_with_heuristic_fallback(self, capsys):
        """Test a review run without an engine."""
        assert main(["review", "--diff-file", str(self.diff_path)]) == EXIT_OK

        output = capsys.readouterr().out
        assert "ready." in output
        assert "3 files (+6/-3), 3 groups, 0 notes, 0 bugs, 0 flags" in output
        assert "Fallback: Engine is not available" in output

        runs_root = self.root / ".ai-diff-reviewer" / "runs"
        run_dirs = list(runs_root.iterdir())
        assert len(run_dirs) == 1
        review = json.loads((run_dirs[0] / "review.json").read_text(encoding="utf-8"))
        assert review["diffSource"] == {"kind": "diff-file", "spec": str(self.diff_path)}
        assert review["ai"]["heuristicOnly"] is True

    def test_list_json(self, capsys):
        """Test listing runs as JSON."""
        run_id = self._review(capsys)

        assert main(["list", "--json"]) == EXIT_OK

        runs = json.loads(capsys.readouterr().out)["runs"]
        assert [run["runId"] for run in runs] == [run_id]

    def test_list_empty(self, capsys):
        """Test listing with no runs."""
        assert main(["list"]) == EXIT_OK
        assert "No runs found." in capsys.readouterr().out

    def test_export_markdown(self, capsys, tmp_path):
        """Test exporting a stored run."""
        run_id = self._review(capsys)
        out_dir = tmp_path / "exports"

        assert main(["export", run_id, "--format", "md", "--out", str(out_dir)]) == EXIT_OK

        markdown = (out_dir / f"{run_id}.md").read_text(encoding="utf-8")
        assert "## Feature work" in markdown

    def test_export_unknown_run(self, capsys, tmp_path):
        """Test exporting a run that does not exist."""
        assert main(["export", "missing", "--out", str(tmp_path / "x")]) == EXIT_ERROR
        assert "Run not found: missing" in capsys.readouterr().err

    def test_open_unknown_run(self, capsys):
        """Test opening a run that does not exist fails before serving."""
        assert main(["open", "missing"]) == EXIT_ERROR

    def test_open_without_runs(self, capsys):
        """Test --latest with an empty store."""
        assert main(["open", "--latest"]) == EXIT_ERROR
        assert "Run id required." in capsys.readouterr().err

    def test_cache_clear(self, capsys):
        """Test clearing stored runs."""
        self._review(capsys)

        assert main(["cache", "clear"]) == EXIT_OK
        assert "1 runs removed" in capsys.readouterr().out

    def test_config_output(self, capsys):
        """Test printing the effective configuration."""
        assert main(["config"]) == EXIT_OK

        output = json.loads(capsys.readouterr().out)
        assert output["repoRoot"] == str(self.root)
        assert output["config"]["engine"]["command"].endswith("missing-engine")

    def test_missing_config_file(self, capsys, tmp_path):
        """Test a missing YAML file is a configuration error."""
        assert main(["--config", str(tmp_path / "nope.yaml"), "list"]) == EXIT_ERROR
        assert "Configuration error" in capsys.readouterr().err

    def test_yaml_config_file(self, capsys, tmp_path):
        """Test YAML configuration drives the store location."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(f"store:\n  repo_root: {tmp_path / 'other'}\n", encoding="utf-8")

        assert main(["--config", str(config_path), "config"]) == EXIT_OK

        output = json.loads(capsys.readouterr().out)
        assert output["repoRoot"] == str(tmp_path / "other")

    def test_review_overrides(self):
        """Test engine and review flags override configuration."""
        args = parse_args([
            "review", "--staged", "--model", "m", "--reasoning-effort", "low",
            "--timeout", "10", "--second-pass", "never", "--no-annotations",
        ])

        config = load_config(args)

        assert config.engine.model == "m"
        assert config.engine.reasoning_effort == "low"
        assert config.engine.timeout_seconds == 10.0
        assert config.review.second_pass == "never"
        assert config.review.annotations_enabled is False

    def test_selectors_are_exclusive(self):
        """Test only one diff selector can be given."""
        with pytest.raises(SystemExit):
            parse_args(["review", "--staged", "--commit", "abc"])

    def test_doctor_reports_missing_engine(self, capsys):
        """Test doctor fails when the engine binary is missing."""
        assert main(["doctor"]) == EXIT_ERROR
        assert "✗" in capsys.readouterr().out
