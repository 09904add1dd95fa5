"""Trace context for request correlation.

A trace covers one outer request (trigger or resume). Suspended runs carry
their run_id so a resume can be correlated with the request that suspended it.
"""

import uuid
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TraceContext:
    """Immutable correlation ids for one request.

    Attributes:
        trace_id: Unique identifier for the request (UUID string).
        run_id: Durable run id once a RunState exists for this request.
        parent_span_id: Optional parent span ID for nested operations.
    """

    trace_id: str
    run_id: str | None = None
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls, run_id: str | None = None) -> "TraceContext":
        """Start a new trace, optionally already bound to a run."""
        return cls(trace_id=str(uuid.uuid4()), run_id=run_id)

    def with_run(self, run_id: str) -> "TraceContext":
        """Return a copy bound to a run id."""
        return TraceContext(
            trace_id=self.trace_id, run_id=run_id, parent_span_id=self.parent_span_id
        )

    def new_span(self) -> tuple["TraceContext", str]:
        """Create a child span within this trace.

        Returns:
            (context with the new span as parent, new span_id).
        """
        span_id = uuid.uuid4().hex[:16]
        return (
            TraceContext(trace_id=self.trace_id, run_id=self.run_id, parent_span_id=span_id),
            span_id,
        )

    def log_fields(self) -> dict[str, Any]:
        """Keyword arguments to attach to log events."""
        fields: dict[str, Any] = {"trace_id": self.trace_id}
        if self.run_id:
            fields["run_id"] = self.run_id
        return fields
