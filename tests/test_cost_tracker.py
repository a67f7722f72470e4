"""Tests for knowledge_router.cost_tracker: no mocking needed."""

import json

import pytest

from knowledge_router.cost_tracker import CostRecord, QueryTelemetry, estimate_tokens


class TestEstimateTokens:
    @pytest.mark.parametrize(
        "text, expected",
        [(None, 0), ("", 0), ("abcd", 1), ("abcde", 2), ("What is S3?", 3)],
    )
    def test_four_chars_per_token(self, text, expected):
        assert estimate_tokens(text) == expected


class TestCostRecord:
    def test_known_model_cost(self):
        record = CostRecord(model="gpt-4o-mini", input_tokens=1_000_000, output_tokens=1_000_000)
        assert record.total_tokens == 2_000_000
        assert record.cost_usd == pytest.approx(0.75)

    def test_unknown_model_has_no_cost(self):
        record = CostRecord(model="local-llm", input_tokens=10)
        assert record.cost_usd is None
        assert "cost=N/A" in str(record)

    def test_to_dict(self):
        record = CostRecord(
            model="gpt-4o", operation="knowledge_query", query="q",
            input_tokens=100, output_tokens=50, latency_ms=120,
        )
        data = record.to_dict()
        assert data["total_tokens"] == 150
        assert data["latency_ms"] == 120
        assert data["cost_usd"] == pytest.approx(0.00075)
        assert data["created_at"].endswith("+00:00")


class TestQueryTelemetry:
    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "outputs" / "metrics.jsonl"
        telemetry = QueryTelemetry(path)

        telemetry.record(CostRecord(model="gpt-4o-mini", query="first"))
        telemetry.record(CostRecord(model="gpt-4o-mini", query="second"))

        lines = path.read_text().splitlines()
        assert [json.loads(line)["query"] for line in lines] == ["first", "second"]

    def test_write_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        telemetry = QueryTelemetry(blocker / "metrics.jsonl")

        telemetry.record(CostRecord(model="gpt-4o-mini"))
