"""
fsm - State Machine Safety Layer
================================

Question this layer answers:
"Is this liability allowed to continue?"

FSM enforces:
- Max negotiation turns
- Valid transitions (no finalize before contract)
- Termination reasons

```python
if turns >= max_turns:
    state = FAILED
```

This is what GUARANTEES the system stops.
"""

from .state_machine import LiabilityFSM, LiabilityState, FailureReason, FSMContext

__all__ = ["LiabilityFSM", "LiabilityState", "FailureReason", "FSMContext"]
