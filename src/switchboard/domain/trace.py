"""Request Trace - Stage-by-Stage Record of One Routed Turn.

Every request walks RECEIVED → CLASSIFYING → DISPATCHING → TOOL_RESOLVING*
→ COMMITTING → COMPLETE. The orchestrator appends one StageRecord per step,
so a finished (or failed) turn carries its own timing and failure point.

Key Concepts:
    - Immutable accumulation: append() returns a new RequestTrace
    - Computed durations from timestamps (single source of truth)
    - Logfire export via to_logfire_attributes() for span enrichment

Example Usage:
    >>> trace = RequestTrace()
    >>> start = datetime.now(UTC)
    >>> trace = trace.record(RequestStage.CLASSIFYING, start, detail="tech")
    >>> trace.latest_stage
    <RequestStage.CLASSIFYING: 'classifying'>
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, computed_field

from .domain_type import RequestStage, StageStatus


class LogfireAttributes(RootModel[dict[str, Any]]):
    """Trace state exported as Logfire span attributes.

    Structure (keys always present):
        - trace.total_stages: int
        - trace.succeeded: bool
        - trace.failed_stage: str | None
        - trace.total_duration_ms: float
        - trace.stage_flow: list[str]
        - trace.tool_cycles: int

    Example:
        >>> attrs = trace.to_logfire_attributes()
        >>> span.set_attributes(attrs.root)
    """

    root: dict[str, Any]
    model_config = ConfigDict(frozen=True)


class StageRecord(BaseModel):
    """One executed state-machine step.

    Attributes:
        stage: Which lifecycle step ran
        status: SUCCESS or FAILED
        start_time: When the step began
        end_time: When the step finished (or failed)
        detail: Short free text (selected agent, tool names, ...)
        error: Failure description, only on FAILED records
    """

    stage: RequestStage
    status: StageStatus = StageStatus.SUCCESS
    start_time: datetime
    end_time: datetime
    detail: str | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def duration_ms(self) -> float:
        delta = self.end_time - self.start_time
        return delta.total_seconds() * 1000


class RequestTrace(BaseModel):
    """Immutable ordered log of StageRecords for one request."""

    records: tuple[StageRecord, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    def append(self, record: StageRecord) -> RequestTrace:
        return self.model_copy(update={"records": (*self.records, record)})

    def record(
        self,
        stage: RequestStage,
        start_time: datetime,
        *,
        detail: str | None = None,
        error: str | None = None,
    ) -> RequestTrace:
        """Append a record that ends now; ``error`` marks it FAILED."""
        return self.append(
            StageRecord(
                stage=stage,
                status=StageStatus.FAILED if error else StageStatus.SUCCESS,
                start_time=start_time,
                end_time=datetime.now(UTC),
                detail=detail,
                error=error,
            )
        )

    @computed_field
    @property
    def succeeded(self) -> bool:
        """True once COMPLETE was recorded and nothing failed."""
        if not self.records:
            return False
        no_failures = all(r.status == StageStatus.SUCCESS for r in self.records)
        return no_failures and self.records[-1].stage == RequestStage.COMPLETE

    @computed_field
    @property
    def failed_stage(self) -> RequestStage | None:
        for r in self.records:
            if r.status == StageStatus.FAILED:
                return r.stage
        return None

    @computed_field
    @property
    def total_duration_ms(self) -> float:
        return sum(r.duration_ms for r in self.records)

    @computed_field
    @property
    def tool_cycles(self) -> int:
        return sum(1 for r in self.records if r.stage == RequestStage.TOOL_RESOLVING and r.status == StageStatus.SUCCESS)

    @property
    def stage_flow(self) -> tuple[RequestStage, ...]:
        return tuple(r.stage for r in self.records)

    @property
    def latest_stage(self) -> RequestStage | None:
        return self.records[-1].stage if self.records else None

    def to_logfire_attributes(self) -> LogfireAttributes:
        """Export as JSON-friendly span attributes under the ``trace.`` prefix."""
        failed = self.failed_stage
        return LogfireAttributes(
            {
                "trace.total_stages": len(self.records),
                "trace.succeeded": self.succeeded,
                "trace.failed_stage": failed.value if failed else None,
                "trace.total_duration_ms": self.total_duration_ms,
                "trace.stage_flow": [s.value for s in self.stage_flow],
                "trace.tool_cycles": self.tool_cycles,
            }
        )


__all__ = ["LogfireAttributes", "RequestTrace", "StageRecord"]
