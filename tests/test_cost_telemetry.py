"""Tests for request-scoped cost telemetry and model pricing."""

import pytest

from graph_ask.config.pricing import estimate_llm_cost_usd, price_for
from graph_ask.types.results import CostUsageRecord
from graph_ask.utils.cost_telemetry import (
    CostCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
)


def usage(stage: str, model: str = "gpt-4o-mini", **kwargs) -> CostUsageRecord:
    return CostUsageRecord(provider="openai", model=model, operation="generate", stage=stage, **kwargs)


class TestCollector:
    def test_aggregates_totals_and_stages(self):
        collector = CostCollector()
        collector.add(usage("synthesis", input_tokens=50, total_tokens=50, estimated_cost_usd=0.0001))
        collector.add(
            usage(
                "generation",
                input_tokens=100,
                output_tokens=20,
                total_tokens=120,
                estimated_cost_usd=0.001,
                latency_ms=15,
            )
        )
        collector.add(usage("generation", input_tokens=80, output_tokens=10, total_tokens=90))

        report = collector.summary()

        assert report.enabled is True
        assert report.breakdown.total_calls == 3
        assert report.breakdown.total_tokens == 260
        assert report.breakdown.total_input_tokens == 230
        assert report.breakdown.total_output_tokens == 30
        assert [s.stage for s in report.breakdown.by_stage] == ["generation", "synthesis"]
        assert report.breakdown.by_stage[0].calls == 2
        assert report.warnings == []

    def test_unknown_stages_sort_after_pipeline_stages(self):
        collector = CostCollector()
        for stage in ("unknown", "synthesis", "custom", "generation"):
            collector.add(usage(stage))

        stages = [s.stage for s in collector.summary().breakdown.by_stage]
        assert stages == ["generation", "synthesis", "custom", "unknown"]

    def test_threshold_warning(self):
        collector = CostCollector(warn_threshold_usd=0.0005)
        collector.add(usage("synthesis", estimated_cost_usd=0.001))

        warnings = collector.summary().warnings
        assert len(warnings) == 1
        assert "exceeded threshold" in warnings[0]

    def test_unpriced_model_warns_once(self):
        collector = CostCollector()
        for stage in ("generation", "generation", "synthesis"):
            collector.add(usage(stage, model="local-model", metadata={"pricing_found": False}))

        assert collector.summary().warnings == [
            "Missing pricing for model 'local-model'; its calls are counted as $0.0"
        ]


def test_record_usage_only_with_active_collector():
    record = usage("generation")
    record_usage(record)

    with telemetry_collector(CostCollector()) as collector:
        record_usage(record)
    record_usage(record)

    assert len(collector.records) == 1


def test_stage_is_scoped():
    assert current_stage() == "unknown"
    with telemetry_stage("generation"):
        assert current_stage() == "generation"
        with telemetry_stage("synthesis"):
            assert current_stage() == "synthesis"
        assert current_stage() == "generation"
    assert current_stage() == "unknown"


class TestPricing:
    @pytest.mark.parametrize("model", ["gpt-4o-mini", "gpt-4o-mini-2024-07-18", "openai/GPT-4o-mini"])
    def test_name_variants(self, model):
        assert price_for(model) == price_for("gpt-4o-mini")

    def test_estimate(self):
        cost, priced = estimate_llm_cost_usd("gpt-4o-mini", input_tokens=1_000_000, output_tokens=0)
        assert priced is True
        assert cost == pytest.approx(0.15)

    def test_unknown_model(self):
        assert estimate_llm_cost_usd("unknown", input_tokens=10, output_tokens=10) == (0.0, False)
