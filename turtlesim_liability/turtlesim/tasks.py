"""
Turtle Tasks
============

What a liability objective points at: a named route of waypoints.

    Task.square(size=2.0)    4 corners, back to the start
    Task.triangle(size=2.0)  3 corners, back to the start
    Task.goto([(x, y), ...]) explicit waypoints

A task is stored in the content store as JSON; its hash is the
liability objective. Executing it yields a Trajectory whose hash is the
liability report.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .simulator import WORLD_CENTER, TurtleSim, Twist, in_world, normalize_angle


SHAPES = ("square", "triangle", "goto")


@dataclass
class Task:
    """A route for the worker's turtle."""
    shape: str
    waypoints: List[Tuple[float, float]]
    start: Tuple[float, float] = (WORLD_CENTER, WORLD_CENTER)

    def __post_init__(self):
        if self.shape not in SHAPES:
            raise ValueError(f"Unknown shape: {self.shape}")
        if not self.waypoints:
            raise ValueError("Task needs at least one waypoint")
        for x, y in [self.start, *self.waypoints]:
            if not in_world(x, y):
                raise ValueError(f"Waypoint ({x}, {y}) is outside the world")

    @classmethod
    def square(cls, size: float = 2.0, start: Tuple[float, float] = (WORLD_CENTER, WORLD_CENTER)) -> "Task":
        x, y = start
        return cls(
            shape="square",
            start=start,
            waypoints=[(x + size, y), (x + size, y + size), (x, y + size), (x, y)],
        )

    @classmethod
    def triangle(cls, size: float = 2.0, start: Tuple[float, float] = (WORLD_CENTER, WORLD_CENTER)) -> "Task":
        x, y = start
        height = size * math.sqrt(3) / 2
        return cls(
            shape="triangle",
            start=start,
            waypoints=[(x + size, y), (x + size / 2, y + height), (x, y)],
        )

    @classmethod
    def goto(cls, waypoints: List[Tuple[float, float]], start: Tuple[float, float] = (WORLD_CENTER, WORLD_CENTER)) -> "Task":
        return cls(shape="goto", start=start, waypoints=[tuple(w) for w in waypoints])

    @classmethod
    def from_spec(cls, spec: Dict[str, Any]) -> "Task":
        """Build a task from config / launch parameters."""
        shape = spec.get("shape", "square")
        start = tuple(spec.get("start", (WORLD_CENTER, WORLD_CENTER)))
        if shape == "square":
            return cls.square(float(spec.get("size", 2.0)), start)
        if shape == "triangle":
            return cls.triangle(float(spec.get("size", 2.0)), start)
        if shape == "goto":
            return cls.goto(spec.get("waypoints", []), start)
        raise ValueError(f"Unknown shape: {shape}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shape": self.shape,
            "start": [round(self.start[0], 6), round(self.start[1], 6)],
            "waypoints": [[round(x, 6), round(y, 6)] for x, y in self.waypoints],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        try:
            return cls(
                shape=data["shape"],
                start=tuple(data["start"]),
                waypoints=[tuple(w) for w in data["waypoints"]],
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid task description: {e}") from e


@dataclass
class ControllerConfig:
    """Go-to-goal controller gains and limits."""
    dt: float = 0.1
    max_steps: int = 2000
    linear_gain: float = 1.5
    angular_gain: float = 4.0
    max_linear: float = 2.0
    max_angular: float = 2.0
    distance_tolerance: float = 0.05
    angle_tolerance: float = 0.1


@dataclass
class Trajectory:
    """Recorded result of executing a task."""
    turtle: str
    shape: str
    poses: List[Tuple[float, float, float]] = field(default_factory=list)
    reached: int = 0
    total: int = 0
    steps: int = 0
    success: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turtle": self.turtle,
            "shape": self.shape,
            "poses": [list(p) for p in self.poses],
            "reached": self.reached,
            "total": self.total,
            "steps": self.steps,
            "success": self.success,
        }


def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def execute_task(
    sim: TurtleSim,
    turtle: str,
    task: Task,
    config: ControllerConfig = None,
) -> Trajectory:
    """
    Drive a turtle through all waypoints of a task.

    The turtle is teleported to the task start first. Rotation happens in
    place until the heading error is within tolerance, then the turtle
    drives forward while correcting heading.

    Never raises on a failed route: an exhausted step budget returns a
    trajectory with success=False.
    """
    config = config or ControllerConfig()
    sim.teleport(turtle, task.start[0], task.start[1], 0.0)

    trajectory = Trajectory(turtle=turtle, shape=task.shape, total=len(task.waypoints))
    trajectory.poses.append(sim.get_pose(turtle).as_tuple())

    for goal_x, goal_y in task.waypoints:
        while True:
            pose = sim.get_pose(turtle)
            distance = pose.distance_to(goal_x, goal_y)
            if distance <= config.distance_tolerance:
                trajectory.reached += 1
                break
            if trajectory.steps >= config.max_steps:
                return trajectory

            heading = math.atan2(goal_y - pose.y, goal_x - pose.x)
            error = normalize_angle(heading - pose.theta)
            angular = _clamp(config.angular_gain * error, config.max_angular)
            if abs(error) > config.angle_tolerance:
                twist = Twist(linear=0.0, angular=angular)
            else:
                linear = min(config.linear_gain * distance, config.max_linear)
                twist = Twist(linear=linear, angular=angular)

            pose = sim.step(turtle, twist, config.dt)
            trajectory.steps += 1
            trajectory.poses.append(pose.as_tuple())

    trajectory.success = trajectory.reached == trajectory.total
    return trajectory
