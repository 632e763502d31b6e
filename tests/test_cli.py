import json
import sys

import pytest
from click.testing import CliRunner

from devcycle.cli import cli
from devcycle.lock import RunLock

PY = sys.executable


def _echo(marker: str) -> dict:
    return {"run": [PY, "-c", f"print('{marker}')"], "name": marker}


def _exit(code: int, marker: str) -> dict:
    return {"run": [PY, "-c", f"import sys; print('{marker}'); sys.exit({code})"], "name": marker}


def _write_manifest(tmp_path, tests_payload=None, app_payload=None, extra=None) -> str:
    scripts = {
        "start": {"steps": [_echo("MARK-UP"), _echo("MARK-MIGRATE")], "cleanup": "shutdown"},
        "shutdown": [_echo("MARK-REVERT"), _echo("MARK-DOWN")],
        "tests": [{"script": "start"}, tests_payload or _echo("MARK-TESTS"), {"script": "shutdown"}],
        "app": [{"script": "start"}, app_payload or _echo("MARK-APP"), {"script": "shutdown"}],
    }
    scripts.update(extra or {})
    path = tmp_path / "devcycle.json"
    path.write_text(json.dumps({"scripts": scripts}))
    return str(path)


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def test_app_success(runner, tmp_path):
    _write_manifest(tmp_path)

    result = runner.invoke(cli, ["app"])

    assert result.exit_code == 0, result.output
    out = result.output
    positions = [out.index(m) for m in ("MARK-UP", "MARK-MIGRATE", "MARK-APP", "MARK-REVERT", "MARK-DOWN")]
    assert positions == sorted(positions)
    assert "RESULTS" in out
    assert out.count("SUCCESS") == 5
    assert "Total: 5 step(s)" in out
    assert not (tmp_path / ".devcycle" / "run.lock").exists()


def test_tests_failure_propagates_exit_code_and_skips_shutdown(runner, tmp_path):
    _write_manifest(tmp_path, tests_payload=_exit(1, "MARK-TESTS"))

    result = runner.invoke(cli, ["tests"])

    assert result.exit_code == 1
    out = result.output
    assert "STEP FAILED: MARK-TESTS" in out
    assert "MARK-REVERT" not in out
    assert "MARK-DOWN" not in out
    assert "devcycle shutdown" in out


def test_step_exit_code_is_passed_through(runner, tmp_path):
    _write_manifest(tmp_path, app_payload=_exit(42, "MARK-APP"))

    result = runner.invoke(cli, ["app"])

    assert result.exit_code == 42


def test_launch_failure_exits_127_with_hint(runner, tmp_path):
    _write_manifest(tmp_path, extra={"start": [{"run": ["cargo-not-installed-xyz", "build"]}]})

    result = runner.invoke(cli, ["start"])

    assert result.exit_code == 127
    assert "Hint: Install cargo-not-installed-xyz or fix PATH." in result.output


def test_run_any_script_by_name(runner, tmp_path):
    _write_manifest(tmp_path, extra={"seed": [_echo("MARK-SEED")]})

    result = runner.invoke(cli, ["run", "seed"])

    assert result.exit_code == 0, result.output
    assert "MARK-SEED" in result.output


def test_unknown_script(runner, tmp_path):
    _write_manifest(tmp_path)

    result = runner.invoke(cli, ["run", "deploy"])

    assert result.exit_code == 1
    assert "Unknown script" in result.output
    assert "devcycle list" in result.output


def test_cycle_is_reported_without_running_anything(runner, tmp_path):
    _write_manifest(tmp_path, extra={"loop": [_echo("MARK-LOOP"), {"script": "loop"}]})

    result = runner.invoke(cli, ["run", "loop"])

    assert result.exit_code == 1
    assert "Cyclic script reference" in result.output
    assert "MARK-LOOP" not in result.output


def test_check(runner, tmp_path):
    _write_manifest(tmp_path)
    assert runner.invoke(cli, ["check"]).exit_code == 0

    _write_manifest(tmp_path, extra={"loop": [{"script": "loop"}], "broken": [{"script": "nope"}]})
    result = runner.invoke(cli, ["check"])
    assert result.exit_code == 1
    assert "2 problem(s) found" in result.output


def test_plan_prints_flattened_steps(runner, tmp_path):
    _write_manifest(tmp_path)

    result = runner.invoke(cli, ["plan", "tests"])

    assert result.exit_code == 0, result.output
    assert "PLAN: tests" in result.output
    assert "  5. " in result.output
    assert "  6. " not in result.output
    assert "MARK-TESTS" in result.output


def test_builtin_scripts_are_used_without_a_manifest(runner):
    result = runner.invoke(cli, ["plan", "app"])

    assert result.exit_code == 0, result.output
    out = result.output
    assert "1. docker compose up -d  [app > start]" in out
    assert "2. sqlx migrate run  [app > start]" in out
    assert "3. cargo run  [app]" in out
    assert "4. sqlx migrate revert  [app > shutdown]" in out
    assert "5. docker compose down  [app > shutdown]" in out


def test_list(runner):
    result = runner.invoke(cli, ["list"])

    assert result.exit_code == 0, result.output
    for name in ("start", "shutdown", "tests", "app"):
        assert name in result.output
    assert "cleanup: shutdown" in result.output


def test_held_lock_refuses_to_run(runner, tmp_path):
    _write_manifest(tmp_path)
    with RunLock(tmp_path / ".devcycle", script="tests"):
        result = runner.invoke(cli, ["app"])
        assert result.exit_code == 1
        assert "Run lock held" in result.output
        assert "--no-lock" in result.output
        assert "MARK-UP" not in result.output

        result = runner.invoke(cli, ["--no-lock", "app"])
        assert result.exit_code == 0, result.output


def test_explicit_manifest_and_state_dir(runner, tmp_path):
    other = tmp_path / "elsewhere"
    other.mkdir()
    path = _write_manifest(other)

    result = runner.invoke(cli, ["--manifest", path, "--state-dir", str(tmp_path / "state"), "start"])

    assert result.exit_code == 0, result.output
    assert "Manifest: devcycle.json" in result.output


def test_broken_python_manifest(runner, tmp_path):
    (tmp_path / "devcycle_scripts.py").write_text("raise RuntimeError('boom')\n")

    result = runner.invoke(cli, ["list"])

    assert result.exit_code == 1
    assert "Failed to load manifest" in result.output
    assert "boom" in result.output


def test_ambiguous_manifest(runner, tmp_path):
    _write_manifest(tmp_path)
    (tmp_path / "devcycle_scripts.py").write_text("SCRIPTS = []\n")

    result = runner.invoke(cli, ["start"])

    assert result.exit_code == 1
    assert "Multiple manifest files" in result.output
