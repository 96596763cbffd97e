"""
Turtle Simulator
================

A kinematic stand-in for the turtlesim node.

World:

    (0, 11.088889) ┌──────────────────────┐ (11.088889, 11.088889)
                   │                      │
                   │      🐢  (5.54, 5.54) │
                   │                      │
           (0, 0)  └──────────────────────┘ (11.088889, 0)

Each step integrates a Twist command over dt:

    theta += angular * dt           (normalised to [-pi, pi))
    x     += cos(theta) * linear * dt
    y     += sin(theta) * linear * dt

Positions are clamped to the walls, as the real simulator does.
"""

import logging
import math
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

WORLD_SIZE = 11.088889
WORLD_CENTER = WORLD_SIZE / 2


@dataclass
class Pose:
    x: float
    y: float
    theta: float = 0.0
    linear_velocity: float = 0.0
    angular_velocity: float = 0.0

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(x - self.x, y - self.y)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (round(self.x, 4), round(self.y, 4), round(self.theta, 4))


@dataclass
class Twist:
    """Velocity command: forward speed and yaw rate."""
    linear: float = 0.0
    angular: float = 0.0


@dataclass
class Turtle:
    name: str
    pose: Pose
    pen_down: bool = True
    trail: List[Tuple[float, float]] = field(default_factory=list)
    wall_hits: int = 0


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [-pi, pi)."""
    return (angle + math.pi) % (2 * math.pi) - math.pi


def in_world(x: float, y: float) -> bool:
    return 0.0 <= x <= WORLD_SIZE and 0.0 <= y <= WORLD_SIZE


class TurtleSim:
    """
    Multi-turtle world.

    Example:
        sim = TurtleSim()
        sim.spawn("turtle1")
        sim.step("turtle1", Twist(linear=1.0), dt=0.1)
    """

    def __init__(self):
        self._turtles: Dict[str, Turtle] = {}
        self._lock = Lock()

    def spawn(
        self,
        name: str,
        x: float = WORLD_CENTER,
        y: float = WORLD_CENTER,
        theta: float = 0.0,
    ) -> Turtle:
        """
        Add a turtle to the world.

        Raises:
            ValueError: If the name is taken or the pose is outside the world
        """
        if not in_world(x, y):
            raise ValueError(f"Spawn position ({x}, {y}) is outside the world")
        with self._lock:
            if name in self._turtles:
                raise ValueError(f"Turtle already exists: {name}")
            turtle = Turtle(name=name, pose=Pose(x=x, y=y, theta=normalize_angle(theta)))
            turtle.trail.append((round(x, 4), round(y, 4)))
            self._turtles[name] = turtle
        logger.debug("Spawned %s at (%.3f, %.3f)", name, x, y)
        return turtle

    def kill(self, name: str) -> None:
        with self._lock:
            if self._turtles.pop(name, None) is None:
                raise KeyError(f"Unknown turtle: {name}")

    def get_pose(self, name: str) -> Pose:
        with self._lock:
            return self._get(name).pose

    def get_turtle(self, name: str) -> Turtle:
        with self._lock:
            return self._get(name)

    def list_turtles(self) -> List[str]:
        with self._lock:
            return sorted(self._turtles)

    def teleport(self, name: str, x: float, y: float, theta: float = 0.0) -> None:
        """Move a turtle instantly. Teleports never draw."""
        if not in_world(x, y):
            raise ValueError(f"Teleport target ({x}, {y}) is outside the world")
        with self._lock:
            turtle = self._get(name)
            turtle.pose = Pose(x=x, y=y, theta=normalize_angle(theta))

    def set_pen(self, name: str, down: bool) -> None:
        with self._lock:
            self._get(name).pen_down = down

    def step(self, name: str, twist: Twist, dt: float) -> Pose:
        """Integrate one velocity command for `dt` seconds."""
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        with self._lock:
            turtle = self._get(name)
            pose = turtle.pose

            theta = normalize_angle(pose.theta + twist.angular * dt)
            x = pose.x + math.cos(theta) * twist.linear * dt
            y = pose.y + math.sin(theta) * twist.linear * dt

            clamped_x = min(max(x, 0.0), WORLD_SIZE)
            clamped_y = min(max(y, 0.0), WORLD_SIZE)
            if (clamped_x, clamped_y) != (x, y):
                turtle.wall_hits += 1
                logger.warning("%s hit the wall at (%.3f, %.3f)", name, clamped_x, clamped_y)

            turtle.pose = Pose(
                x=clamped_x,
                y=clamped_y,
                theta=theta,
                linear_velocity=twist.linear,
                angular_velocity=twist.angular,
            )
            if turtle.pen_down and twist.linear != 0.0:
                turtle.trail.append((round(clamped_x, 4), round(clamped_y, 4)))
            return turtle.pose

    def _get(self, name: str) -> Turtle:
        if name not in self._turtles:
            raise KeyError(f"Unknown turtle: {name}")
        return self._turtles[name]
