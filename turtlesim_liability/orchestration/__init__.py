"""
orchestration - Workflow Layer (via LangGraph)
==============================================

Question this layer answers:
"What runs next?"

LangGraph controls:
- Trader → Worker → Trader
- Contract → Execute → Finalize
- Termination
- State propagation

```
trader → worker → (continue, contract, or END)
contract → execute → finalize → END
```

LangGraph does NOT:
- Start the program (that's runtime)
- Move messages between processes (that's transport)
- Enforce market rules (that's coordination)
"""

from .graph import (
    LiabilityGraphState,
    LiabilityMarket,
    create_liability_graph,
    run_liability,
)

__all__ = [
    "LiabilityGraphState",
    "LiabilityMarket",
    "create_liability_graph",
    "run_liability",
]
