"""
Observability Tracer
====================

Traces liability sessions for debugging and analysis.

Every session keeps an in-memory record of its events. Runs are also
wrapped with LangSmith's `traceable`, which ships them to LangSmith when
tracing is enabled in the environment and is a no-op otherwise.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from langsmith import Client, traceable

logger = logging.getLogger(__name__)

__all__ = [
    "TraceRecord",
    "LiabilityTrace",
    "LiabilityTracer",
    "get_tracer",
    "trace_liability",
    "traceable",
]


@dataclass
class TraceRecord:
    """A single trace record."""
    timestamp: datetime
    event_type: str
    data: Dict[str, Any]


@dataclass
class LiabilityTrace:
    """Complete trace of one liability session."""
    session_id: str
    started_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    records: List[TraceRecord] = field(default_factory=list)

    def add_event(self, event_type: str, **data) -> None:
        self.records.append(TraceRecord(
            timestamp=datetime.utcnow(),
            event_type=event_type,
            data=data,
        ))

    def events_of(self, event_type: str) -> List[TraceRecord]:
        return [r for r in self.records if r.event_type == event_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "records": [
                {
                    "timestamp": r.timestamp.isoformat(),
                    "event_type": r.event_type,
                    "data": r.data,
                }
                for r in self.records
            ],
        }


class LiabilityTracer:
    """
    Tracer for liability observability.

    Creates a LangSmith client when an API key is configured.
    """

    def __init__(self, project_name: str = "turtlesim-liability"):
        self.project_name = project_name
        self.traces: Dict[str, LiabilityTrace] = {}

        self._langsmith_client = None
        if os.getenv("LANGSMITH_API_KEY") or os.getenv("LANGCHAIN_API_KEY"):
            try:
                self._langsmith_client = Client()
            except Exception as e:
                logger.warning("LangSmith client unavailable, tracing locally only: %s", e)

    @property
    def remote_enabled(self) -> bool:
        return self._langsmith_client is not None

    def start_trace(self, session_id: str) -> LiabilityTrace:
        trace = LiabilityTrace(session_id=session_id)
        trace.add_event("session_start")
        self.traces[session_id] = trace
        return trace

    def end_trace(self, session_id: str) -> Optional[LiabilityTrace]:
        trace = self.traces.get(session_id)
        if trace:
            trace.ended_at = datetime.utcnow()
            trace.add_event("session_end")
        return trace

    def log_turn(
        self,
        session_id: str,
        turn: int,
        agent: str,
        message_type: str,
        cost: Optional[int] = None,
        **extra,
    ) -> None:
        """Log a negotiation turn."""
        trace = self.traces.get(session_id)
        if trace:
            trace.add_event(
                "turn",
                turn=turn,
                agent=agent,
                message_type=message_type,
                cost=cost,
                **extra,
            )

    def log_liability(self, session_id: str, index: int, cost: int) -> None:
        trace = self.traces.get(session_id)
        if trace:
            trace.add_event("liability", index=index, cost=cost)

    def log_outcome(
        self,
        session_id: str,
        finalized: bool,
        cost: Optional[int] = None,
        turns: int = 0,
        reason: Optional[str] = None,
    ) -> None:
        """Log the final outcome."""
        trace = self.traces.get(session_id)
        if trace:
            trace.add_event(
                "outcome",
                finalized=finalized,
                cost=cost,
                turns=turns,
                reason=reason,
            )

    def get_trace(self, session_id: str) -> Optional[LiabilityTrace]:
        return self.traces.get(session_id)


_global_tracer: Optional[LiabilityTracer] = None


def get_tracer() -> LiabilityTracer:
    """Get the global tracer instance."""
    global _global_tracer
    if _global_tracer is None:
        _global_tracer = LiabilityTracer()
    return _global_tracer


@contextmanager
def trace_liability(session_id: str, tracer: Optional[LiabilityTracer] = None):
    """
    Context manager for tracing a liability session.

    Usage:
        with trace_liability("session-123") as trace:
            run_liability(...)
    """
    tracer = tracer or get_tracer()
    trace = tracer.start_trace(session_id)

    try:
        yield trace
    finally:
        tracer.end_trace(session_id)
