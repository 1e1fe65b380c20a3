"""
Request-scoped cost telemetry.

A CostCollector is made active with telemetry_collector(); the pipeline
labels its completion calls with telemetry_stage("generation") or
telemetry_stage("synthesis"), and providers call record_usage() with the
active stage. Nothing is recorded outside an active collector.

Stages in reports follow pipeline order (generation, then synthesis, then
anything else by name).
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar

from graph_ask.config.pricing import PRICING_VERSION
from graph_ask.types.results import (
    CostBreakdown,
    CostDebugReport,
    CostUsageRecord,
    StageCostBreakdown,
)

_COLLECTOR: ContextVar[CostCollector | None] = ContextVar("graph_ask_collector", default=None)
_STAGE: ContextVar[str] = ContextVar("graph_ask_stage", default="unknown")

_STAGE_ORDER = {"generation": 0, "synthesis": 1}


def _stage_sort_key(stage: StageCostBreakdown) -> tuple[int, str]:
    return _STAGE_ORDER.get(stage.stage, len(_STAGE_ORDER)), stage.stage


class CostCollector:
    """
    Usage records of one request.

    Args:
        warn_threshold_usd: Add a warning when the request's estimated
            cost reaches this amount
    """

    def __init__(self, *, warn_threshold_usd: float | None = None) -> None:
        self._records: list[CostUsageRecord] = []
        self._warn_threshold_usd = warn_threshold_usd

    def add(self, record: CostUsageRecord) -> None:
        self._records.append(record)

    @property
    def records(self) -> list[CostUsageRecord]:
        return list(self._records)

    def summary(self) -> CostDebugReport:
        """Totals, per-stage breakdown and warnings."""
        grouped: dict[str, list[CostUsageRecord]] = {}
        for record in self._records:
            grouped.setdefault(record.stage, []).append(record)
        stages = sorted(
            (_stage_breakdown(stage, records) for stage, records in grouped.items()),
            key=_stage_sort_key,
        )

        totals = CostBreakdown(
            total_calls=len(self._records),
            total_input_tokens=sum(s.input_tokens for s in stages),
            total_output_tokens=sum(s.output_tokens for s in stages),
            total_tokens=sum(s.total_tokens for s in stages),
            total_estimated_cost_usd=sum(s.estimated_cost_usd for s in stages),
            total_latency_ms=sum(s.total_latency_ms for s in stages),
            by_stage=stages,
        )

        unpriced = dict.fromkeys(
            r.model for r in self._records if r.metadata.get("pricing_found") is False
        )
        warnings = [
            f"Missing pricing for model '{model}'; its calls are counted as $0.0"
            for model in unpriced
        ]
        cost = totals.total_estimated_cost_usd
        if self._warn_threshold_usd is not None and cost >= self._warn_threshold_usd:
            warnings.append(
                f"Estimated request cost ${cost:.6f} exceeded threshold "
                f"${self._warn_threshold_usd:.6f}"
            )

        return CostDebugReport(
            enabled=True,
            pricing_version=PRICING_VERSION,
            breakdown=totals,
            warnings=warnings,
        )


def _stage_breakdown(stage: str, records: list[CostUsageRecord]) -> StageCostBreakdown:
    return StageCostBreakdown(
        stage=stage,
        calls=len(records),
        input_tokens=sum(r.input_tokens for r in records),
        output_tokens=sum(r.output_tokens for r in records),
        total_tokens=sum(r.total_tokens for r in records),
        estimated_cost_usd=sum(r.estimated_cost_usd for r in records),
        total_latency_ms=sum(r.latency_ms for r in records),
    )


@contextmanager
def telemetry_collector(collector: CostCollector | None):
    """Make `collector` the active collector (None disables recording)."""
    token = _COLLECTOR.set(collector)
    try:
        yield collector
    finally:
        _COLLECTOR.reset(token)


@contextmanager
def telemetry_stage(stage: str):
    """Label provider calls made inside the block."""
    token = _STAGE.set(stage)
    try:
        yield
    finally:
        _STAGE.reset(token)


def current_stage() -> str:
    return _STAGE.get()


def record_usage(record: CostUsageRecord) -> None:
    """Add a record to the active collector, if any."""
    collector = _COLLECTOR.get()
    if collector is not None:
        collector.add(record)


def collector_active() -> bool:
    """True inside telemetry_collector() with a collector."""
    return _COLLECTOR.get() is not None
