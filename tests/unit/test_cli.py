"""Tests for the plyra-rollback command-line interface."""

import json

import pytest

from plyra_rollback import __version__
from plyra_rollback.cli import main
from plyra_rollback.config.loader import CONFIG_ENV_VAR


@pytest.fixture(autouse=True)
def _no_env_config(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestCli:
    """Tests for CLI commands."""

    def test_version_command(self, capsys):
        main(["version"])
        assert f"plyra-rollback {__version__}" in capsys.readouterr().out

    def test_version_flag(self, capsys):
        main(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_plan_text(self, capsys):
        main(["plan", "--kind", "deployment", "--environment", "production"])
        out = capsys.readouterr().out
        assert "Approval required:  yes (environment is production)" in out
        assert "stop-services-dry-run" in out
        assert "rollback-files-dry-run" in out
        assert "non-critical" in out
        assert "[high] downtime (80%)" in out

    def test_plan_json(self, capsys):
        main(["plan", "--kind", "database", "--environment", "staging", "--json"])
        plan = json.loads(capsys.readouterr().out)
        assert plan["approval_required"] is True
        assert [s["id"] for s in plan["steps"]] == [
            "validate-pre-dry-run",
            "rollback-database-dry-run",
            "validate-post-dry-run",
        ]
        assert plan["steps"][1]["automated"] is False

    def test_plan_rejects_unknown_kind(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["plan", "--kind", "kernel", "--environment", "staging"])
        assert exc_info.value.code == 2

    def test_plan_uses_config(self, tmp_path, capsys):
        path = tmp_path / "rollback_config.yaml"
        path.write_text("validation:\n  include_smoke_test: false\n")
        main(
            [
                "plan",
                "--config",
                str(path),
                "--kind",
                "config",
                "--environment",
                "staging",
            ]
        )
        out = capsys.readouterr().out
        assert "Approval required:  no" in out
        assert "functional-test-post" not in out

    def test_inspect(self, capsys):
        main(["inspect"])
        out = capsys.readouterr().out
        assert "max_rollback_points: 10" in out
        assert "- production" in out

    def test_inspect_missing_config(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["inspect", "--config", str(tmp_path / "missing.yaml")])
        assert exc_info.value.code == 2
        assert "Configuration file not found" in capsys.readouterr().err
