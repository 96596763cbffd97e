"""
Configuration Loader
====================

Loads configuration for the liability market.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class MarketConfig:
    """What is traded and at what cost."""
    model: str = "turtlesim"
    budget: int = 30
    min_cost: int = 15
    asking_cost: int = 40
    task: Dict[str, Any] = field(default_factory=lambda: {"shape": "square", "size": 2.0})


@dataclass
class LimitsConfig:
    """Negotiation limits."""
    max_turns: int = 10
    timeout_seconds: int = 300


@dataclass
class LedgerConfig:
    """Economics model and initial balances (by node name)."""
    economics: str = "communism"
    balances: Dict[str, int] = field(default_factory=dict)


@dataclass
class TurtlesimConfig:
    """Simulator and controller settings."""
    turtle: str = "turtle1"
    dt: float = 0.1
    max_steps: int = 2000
    linear_gain: float = 1.5
    angular_gain: float = 4.0


@dataclass
class Config:
    """Complete system configuration."""
    market: MarketConfig
    limits: LimitsConfig
    ledger: LedgerConfig
    turtlesim: TurtlesimConfig

    @classmethod
    def default(cls) -> "Config":
        return cls(
            market=MarketConfig(),
            limits=LimitsConfig(),
            ledger=LedgerConfig(),
            turtlesim=TurtlesimConfig(),
        )


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file or return defaults.

    Args:
        config_path: Path to YAML config file (optional)

    Returns:
        Config object with all settings
    """
    if config_path is None:
        return Config.default()

    path = Path(config_path)
    if not path.exists():
        print(f"[Config] Warning: {config_path} not found, using defaults")
        return Config.default()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    defaults = Config.default()
    market_data = data.get("market", {})
    limits_data = data.get("limits", {})
    ledger_data = data.get("ledger", {})
    sim_data = data.get("turtlesim", {})

    return Config(
        market=MarketConfig(
            model=market_data.get("model", defaults.market.model),
            budget=int(market_data.get("budget", defaults.market.budget)),
            min_cost=int(market_data.get("min_cost", defaults.market.min_cost)),
            asking_cost=int(market_data.get("asking_cost", defaults.market.asking_cost)),
            task=market_data.get("task", defaults.market.task),
        ),
        limits=LimitsConfig(
            max_turns=int(limits_data.get("max_turns", defaults.limits.max_turns)),
            timeout_seconds=int(limits_data.get("timeout_seconds", defaults.limits.timeout_seconds)),
        ),
        ledger=LedgerConfig(
            economics=ledger_data.get("economics", defaults.ledger.economics),
            balances={str(k): int(v) for k, v in (ledger_data.get("balances") or {}).items()},
        ),
        turtlesim=TurtlesimConfig(
            turtle=sim_data.get("turtle", defaults.turtlesim.turtle),
            dt=float(sim_data.get("dt", defaults.turtlesim.dt)),
            max_steps=int(sim_data.get("max_steps", defaults.turtlesim.max_steps)),
            linear_gain=float(sim_data.get("linear_gain", defaults.turtlesim.linear_gain)),
            angular_gain=float(sim_data.get("angular_gain", defaults.turtlesim.angular_gain)),
        ),
    )
