"""Unit tests for the scripts/run_pipeline.py command line entry point."""

import importlib.util
import json
from pathlib import Path

import pytest


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "run_pipeline.py"


@pytest.fixture()
def cli():
    spec = importlib.util.spec_from_file_location("run_pipeline_script", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_main_auto_detects_registry_export(cli, tmp_path, capsys):
    raw_dir = tmp_path / "raw"
    raw_dir.mkdir()
    (raw_dir / "climate_action_reserve_retirements.json").write_text(
        json.dumps(
            {
                "retirements": [
                    {"account_holder": "Hooli", "quantity_tonnes": 1200, "status_effective": "2025-05-01"},
                    {"account_holder": "Anonymous", "quantity_tonnes": 10, "status_effective": "2025-05-01"},
                ]
            }
        ),
        encoding="utf-8",
    )
    output_dir = tmp_path / "output"

    exit_code = cli.main(
        [
            "--registry", "car",
            "--raw-dir", str(raw_dir),
            "--output-dir", str(output_dir),
            "--view", "all",
            "--reference-date", "2026-10-18",
        ]
    )

    assert exit_code == 0
    assert (output_dir / "buyers-car-all.parquet").exists()
    assert (output_dir / "buyer-intelligence-car-all-2026-10-18.csv").exists()
    assert "Hooli" in capsys.readouterr().out


def test_main_reports_missing_export(cli, tmp_path, capsys):
    exit_code = cli.main(["--registry", "verra", "--raw-dir", str(tmp_path)])

    assert exit_code == 1
    assert "ERROR: No verra export found" in capsys.readouterr().out


def test_main_reports_bad_date_range(cli, tmp_path, capsys):
    records = tmp_path / "verra_retirements.json"
    records.write_text("[]", encoding="utf-8")

    exit_code = cli.main(
        ["--records", str(records), "--date-range", "6m", "--output-dir", str(tmp_path / "out")]
    )

    assert exit_code == 1
    assert "ERROR: Pipeline failed" in capsys.readouterr().out
