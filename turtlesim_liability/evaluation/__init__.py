"""
evaluation - Observability Layer
================================

Question this layer answers:
"What happened, and can we see it?"

```python
with trace_liability(session_id) as trace:
    result = run_liability(..., tracer=tracer, session_id=session_id)
```
"""

from .tracer import (
    LiabilityTrace,
    LiabilityTracer,
    TraceRecord,
    get_tracer,
    trace_liability,
    traceable,
)

__all__ = [
    "LiabilityTrace",
    "LiabilityTracer",
    "TraceRecord",
    "get_tracer",
    "trace_liability",
    "traceable",
]
