"""
agents - Decision Layer
=======================

Question this layer answers:
"What does this node decide?"

Trader (promisee):
- Demands a task at a cost
- Raises its bid deterministically, up to budget

Worker (promisor):
- Offers to do the task
- Matches a good enough bid, otherwise asks and concedes

```python
from turtlesim_liability.agents import trader_strategy, worker_strategy
```

Agents do NOT:
- Manage loops (that's orchestration)
- Talk to transport directly
- Touch the ledger
"""

from .trader import trader_strategy, TraderStrategy
from .worker import worker_strategy, WorkerStrategy

__all__ = ["trader_strategy", "worker_strategy", "TraderStrategy", "WorkerStrategy"]
