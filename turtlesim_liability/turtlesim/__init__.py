"""
turtlesim - Execution Layer
===========================

Question this layer answers:
"What does the turtle actually do?"

```python
sim = TurtleSim()
sim.spawn("turtle1")
trajectory = execute_task(sim, "turtle1", Task.square(2.0))
```

turtlesim does NOT:
- Know about costs or liabilities
- Sign or publish anything
"""

from .simulator import (
    WORLD_CENTER,
    WORLD_SIZE,
    Pose,
    Turtle,
    TurtleSim,
    Twist,
    normalize_angle,
)
from .tasks import ControllerConfig, Task, Trajectory, execute_task

__all__ = [
    "WORLD_CENTER",
    "WORLD_SIZE",
    "Pose",
    "Turtle",
    "TurtleSim",
    "Twist",
    "normalize_angle",
    "ControllerConfig",
    "Task",
    "Trajectory",
    "execute_task",
]
