"""Tests for the run_checks.py CLI."""

import json

import pytest

import run_checks


class TestRunChecksCli:

    def test_json_output(self, sample_negative, capsys):
        run_checks.run_checks(sample_negative, [], output_json=True)
        out = json.loads(capsys.readouterr().out)
        assert len(out["pint_ae_exceptions"]) == 8
        assert out["summary"]["total_exceptions"] == 11
        assert out["gaps"]["total_drs"] == 50

    def test_pretty_output_with_matrix(self, sample_positive, capsys):
        run_checks.run_checks(sample_positive, [], show_matrix=True)
        out = capsys.readouterr().out
        assert "BUILT-IN CHECKS (10 checks)" in out
        assert "DR COVERAGE" in out

    def test_export_csv(self, sample_positive, tmp_path, capsys):
        target = tmp_path / "report.csv"
        run_checks.run_checks(sample_positive, [], export_csv=str(target))
        assert target.read_text(encoding="utf-8").startswith("dr_id,")
        assert "Traceability report written" in capsys.readouterr().out

    def test_invalid_custom_check_exits(self, sample_positive):
        with pytest.raises(SystemExit):
            run_checks.run_checks(sample_positive, [{"name": "bad", "rule_type": "sql", "dataset_scope": "header"}])

    def test_missing_file_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            run_checks.load_json(str(tmp_path / "nope.json"))
