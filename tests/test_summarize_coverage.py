import importlib.util

import pytest
from typer.testing import CliRunner

from skinmap.schemas.detection import DetectionRecord
from skinmap.stages.detect import analyze_skin_mask

from conftest import ROOT, make_mask

_spec = importlib.util.spec_from_file_location("summarize_coverage", ROOT / "scripts" / "summarize_coverage.py")
summarize_coverage = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(summarize_coverage)


def _write(results_dir, name, result=None, errors=()):
    record = DetectionRecord(
        image_id=name,
        rel_image_path=f"{name}.png",
        width=100,
        height=100,
        status={"ok": result is not None, "errors": list(errors)},
        result=result,
    )
    path = results_dir / f"{name}.json"
    path.write_text(record.model_dump_json())
    return path


@pytest.fixture
def run_dir(tmp_path):
    results = tmp_path / "run_a" / "results"
    results.mkdir(parents=True)
    square = analyze_skin_mask(make_mask(100, 100, [(0, 0, 20, 20)]))
    _write(results, "a", square)
    _write(results, "b", analyze_skin_mask(make_mask(100, 100)))
    _write(results, "c", errors=["decode failed"])
    return tmp_path / "run_a", square


def test_percentile_interpolates():
    assert summarize_coverage._percentile([], 0.5) is None
    assert summarize_coverage._percentile([3.0], 0.9) == 3.0
    assert summarize_coverage._percentile([0.0, 10.0], 0.5) == 5.0
    assert summarize_coverage._percentile([1.0, 2.0, 3.0], 2.0) == 3.0


def test_load_record_ok_and_failed(run_dir):
    run, square = run_dir
    ok = summarize_coverage._load_record(run / "results" / "a.json")
    assert ok["ok"]
    assert ok["coverage"] == pytest.approx(4.0)
    assert ok["region_count"] == 1
    assert ok["body_parts"] == [square.regions[0].body_part]
    assert ok["error"] is None

    failed = summarize_coverage._load_record(run / "results" / "c.json")
    assert not failed["ok"]
    assert failed["coverage"] is None and failed["region_count"] is None
    assert failed["body_parts"] == []
    assert failed["error"] == "decode failed"


def test_aggregate_runs_buckets_by_run_name(run_dir, tmp_path):
    run, square = run_dir
    (tmp_path / "empty_run" / "results").mkdir(parents=True)
    runs = summarize_coverage._aggregate_runs([run, tmp_path / "empty_run"])

    assert list(runs) == ["run_a"]
    stats = runs["run_a"]
    assert stats["coverage"] == pytest.approx([4.0, 0.0])
    assert stats["region_count"] == [1.0, 0.0]
    assert stats["body_parts"] == [square.regions[0].body_part]
    assert stats["errors"] == ["decode failed"]


def test_summarize_command_writes_report(run_dir, tmp_path):
    run, _ = run_dir
    report = tmp_path / "reports" / "coverage.txt"
    result = CliRunner().invoke(summarize_coverage.app, [str(run), "--report", str(report)])

    assert result.exit_code == 0
    text = report.read_text()
    assert "=== Run: run_a ===" in text
    assert "images: 2 ok, 1 failed" in text
    assert "error x1: decode failed" in text


def test_summarize_command_without_results(tmp_path):
    result = CliRunner().invoke(summarize_coverage.app, [str(tmp_path)])
    assert result.exit_code == 1
