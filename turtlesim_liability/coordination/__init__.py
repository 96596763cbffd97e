"""
coordination - Market Governance Layer
======================================

Question this layer answers:
"Is this allowed?"

```python
result = policy.validate_match(demand, offer, now=tick)
if result.allowed:
    ledger.create(...)
```

Policy never raises. It returns a PolicyResult and the caller decides.

Coordination does NOT:
- Decide what runs next (that's orchestration)
- Store liabilities (that's the ledger)
"""

from .policy import MatchingPolicy, PolicyViolation, PolicyResult

__all__ = ["MatchingPolicy", "PolicyViolation", "PolicyResult"]
