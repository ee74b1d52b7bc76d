"""
End-to-end run of the retention pipeline on a small population.
"""
import sys
import os
import json

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from pipeline import run_pipeline
from retention.segments.classifier import SEGMENTS


@pytest.fixture(scope="module")
def run(tmp_path_factory):
    out = tmp_path_factory.mktemp("outputs")
    return str(out), run_pipeline(n_customers=80, output_dir=str(out), random_state=5)


class TestPipeline:
    def test_metrics(self, run):
        _, metrics = run
        assert metrics["kpis"]["n_customers"] == 80
        assert list(metrics["segments"]["segment_id"]) == list(SEGMENTS)
        assert all(e["status"] == "Completed" for e in metrics["experiments"])
        assert metrics["activity"][0]["type"] == "play_triggered"

    def test_timeline(self, run):
        _, metrics = run
        timeline = metrics["riskiest_customer_timeline"]
        assert metrics["timeline_events"] >= 80 * 10
        assert 0 < len(timeline) <= 10
        stamps = [
            e.get("purchased_at") or e.get("occurred_at") or e.get("created_at")
            for e in timeline
        ]
        assert stamps == sorted(stamps, reverse=True)

    def test_artifacts(self, run):
        out, _ = run
        for name in (
            "retention_results.json",
            "retention_report.txt",
            "segment_summary.csv",
            "next_best_actions.csv",
            "risk_distribution.png",
            "segment_overview.png",
        ):
            assert os.path.exists(os.path.join(out, name)), name

    def test_results_json(self, run):
        out, _ = run
        with open(os.path.join(out, "retention_results.json")) as fh:
            payload = json.load(fh)
        assert len(payload["segments"]) == len(SEGMENTS)
        assert "_saved_at" in payload

    def test_report(self, run):
        out, _ = run
        with open(os.path.join(out, "retention_report.txt")) as fh:
            report = fh.read()
        assert "RETENTION SUMMARY" in report
        assert "exp-001" in report
