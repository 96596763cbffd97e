"""
transport - Node Communication
==============================

Question this layer answers:
"How do nodes find and talk to each other?"

- Agent Cards: capability advertisement (AgentCard)
- Discovery: finding nodes by capability (AgentRegistry)
- Topics: named publish/subscribe channels (TopicBus)

Transport is intentionally separate from business logic.

Transport does NOT:
- Know liability state
- Know turns
- Enforce policy
- Terminate negotiations
"""

from .channel import (
    AgentCard,
    AgentRegistry,
    TopicBus,
    TRADER_CARD,
    WORKER_CARD,
    LIGHTHOUSE_CARD,
    DEMAND_TOPIC,
    OFFER_TOPIC,
    REJECT_TOPIC,
    LIABILITY_TOPIC,
    RESULT_TOPIC,
    FINALIZED_TOPIC,
    TOPICS,
)

__all__ = [
    "AgentCard",
    "AgentRegistry",
    "TopicBus",
    "TRADER_CARD",
    "WORKER_CARD",
    "LIGHTHOUSE_CARD",
    "DEMAND_TOPIC",
    "OFFER_TOPIC",
    "REJECT_TOPIC",
    "LIABILITY_TOPIC",
    "RESULT_TOPIC",
    "FINALIZED_TOPIC",
    "TOPICS",
]
