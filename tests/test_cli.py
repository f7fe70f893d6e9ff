"""CLI behavior tests."""
from __future__ import annotations

import json

from click.testing import CliRunner

from factories import write_dump

from solc_audit import __version__
from solc_audit.cli import main


def test_cli_reports_package_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_contracts_lists_functions(tmp_path):
    dump = write_dump(tmp_path)

    result = CliRunner().invoke(main, ["contracts", str(dump)])

    assert result.exit_code == 0
    assert "Vault" in result.output
    assert "withdraw" in result.output


def test_invalid_dump_exits_with_error(tmp_path):
    dump = tmp_path / "bad.json"
    dump.write_text("[]")

    result = CliRunner().invoke(main, ["contracts", str(dump)])

    assert result.exit_code == 1
    assert "Dump root must be an object" in result.output


def test_unknown_function_exits_with_error(tmp_path):
    result = CliRunner().invoke(main, ["paths", str(write_dump(tmp_path)), "-f", "Vault.nope"])

    assert result.exit_code == 1
    assert "Unknown function" in result.output


def test_paths_filters(tmp_path):
    dump = str(write_dump(tmp_path))
    runner = CliRunner()

    feasible = runner.invoke(main, ["paths", dump, "-f", "deposit"])
    reverts = runner.invoke(main, ["paths", dump, "-f", "deposit", "--filter", "revert"])
    everything = runner.invoke(main, ["paths", dump, "-f", "deposit", "--include-infeasible"])

    assert feasible.exit_code == 0
    assert "2 of 3 paths shown" in feasible.output
    assert "1 of 3 paths shown" in reverts.output
    assert "3 of 3 paths shown" in everything.output


def test_annotate_prints_risks_and_domains(tmp_path):
    result = CliRunner().invoke(main, ["annotate", str(write_dump(tmp_path)), "-f", "Vault.deposit", "--path", "0"])

    assert result.exit_code == 0
    assert "require(amount > 0);" in result.output
    assert "amount = [1..MAX_UINT256]" in result.output
    assert "EXTERNAL CALL" in result.output
    assert "4 risk-annotated line(s)" in result.output


def test_annotate_can_hide_static_badges(tmp_path):
    result = CliRunner().invoke(main, ["annotate", str(write_dump(tmp_path)), "-f", "10", "--no-annotations"])

    assert result.exit_code == 0
    assert "EXTERNAL CALL" not in result.output


def test_annotate_rejects_out_of_range_path(tmp_path):
    result = CliRunner().invoke(main, ["annotate", str(write_dump(tmp_path)), "-f", "deposit", "--path", "7"])

    assert result.exit_code == 1
    assert "out of range" in result.output


def test_inspect_shows_watch(tmp_path):
    result = CliRunner().invoke(main, ["inspect", str(write_dump(tmp_path)), "-f", "deposit", "--path", "0", "--step", "1"])

    assert result.exit_code == 0
    assert "Watch @ step 1" in result.output
    assert "fee" in result.output


def test_report_json_written_to_file(tmp_path):
    report_path = tmp_path / "report.json"

    result = CliRunner().invoke(
        main,
        ["report", str(write_dump(tmp_path)), "-f", "deposit", "--path", "0", "--format", "json", "--output", str(report_path)],
    )

    assert result.exit_code == 0
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["gate_evaluation"]["passed"] is True
    assert report["selected_path"]["index"] == 0


def test_report_fails_level_gate(tmp_path):
    report_path = tmp_path / "report.md"

    result = CliRunner().invoke(
        main,
        ["report", str(write_dump(tmp_path)), "-f", "deposit", "--fail-on-level", "red", "-o", str(report_path)],
    )

    assert result.exit_code == 3
    assert "Max level gate failed" in result.output
    assert "## Gate Evaluation" in report_path.read_text(encoding="utf-8")


def test_report_fails_level_count_gate(tmp_path):
    result = CliRunner().invoke(
        main,
        ["report", str(write_dump(tmp_path)), "-f", "deposit", "--fail-on-level-count", "orange=1", "-o", str(tmp_path / "r.md")],
    )

    assert result.exit_code == 3
    assert "Level count gate failed for 'orange'" in result.output


def test_report_rejects_bad_gate_spec(tmp_path):
    result = CliRunner().invoke(
        main, ["report", str(write_dump(tmp_path)), "-f", "deposit", "--fail-on-level-count", "purple=1"]
    )

    assert result.exit_code != 0
    assert "Invalid level" in result.output


def test_config_file_and_env_options(tmp_path):
    config = tmp_path / "audit.json"
    config.write_text(json.dumps({"include_infeasible_paths": True}))

    result = CliRunner().invoke(
        main,
        ["--config", str(config), "paths", str(write_dump(tmp_path)), "-f", "deposit"],
        env={"SOLC_AUDIT_LOG_LEVEL": "ERROR"},
    )

    assert result.exit_code == 0
    assert "3 of 3 paths shown" in result.output


def test_invalid_config_file_exits(tmp_path):
    config = tmp_path / "audit.json"
    config.write_text(json.dumps({"nope": 1}))

    result = CliRunner().invoke(main, ["--config", str(config), "contracts", str(write_dump(tmp_path))])

    assert result.exit_code == 1
    assert "Unknown config key" in result.output
