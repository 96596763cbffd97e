"""
Topic Bus
=========

In-process publish/subscribe for market nodes.

Mirrors how the robotics framework wires nodes together:
- Agent Cards: what each node can do (AgentCard)
- Discovery: finding nodes by capability
- Topics: named channels carrying MessageEnvelopes
- History: every message per topic, for replay and inspection

Delivery is queued: a callback that publishes does not recurse into
other callbacks. The outermost publish() drains the queue in FIFO order,
so a whole negotiation runs to completion inside the first publish.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from threading import Lock
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from ..protocol.envelope import Header, MessageEnvelope

logger = logging.getLogger(__name__)


# =============================================================================
# Standard topics
# =============================================================================

DEMAND_TOPIC = "/liability/infochan/incoming/demand"
OFFER_TOPIC = "/liability/infochan/incoming/offer"
REJECT_TOPIC = "/liability/infochan/incoming/reject"
LIABILITY_TOPIC = "/liability/incoming"
RESULT_TOPIC = "/liability/result"
FINALIZED_TOPIC = "/liability/finalized"

TOPICS = (
    DEMAND_TOPIC,
    OFFER_TOPIC,
    REJECT_TOPIC,
    LIABILITY_TOPIC,
    RESULT_TOPIC,
    FINALIZED_TOPIC,
)


# =============================================================================
# Agent Cards - Capability Advertisement
# =============================================================================

@dataclass
class AgentCard:
    """Describes a node's capabilities."""
    agent_id: str
    name: str
    description: str
    capabilities: List[str]
    publishes: List[str] = field(default_factory=list)
    subscribes: List[str] = field(default_factory=list)
    version: str = "1.0"


TRADER_CARD = AgentCard(
    agent_id="trader",
    name="Trader Node",
    description="Demands turtle tasks and pays for them",
    capabilities=["demand", "reject"],
    publishes=[DEMAND_TOPIC, REJECT_TOPIC],
    subscribes=[OFFER_TOPIC, REJECT_TOPIC, LIABILITY_TOPIC, FINALIZED_TOPIC],
)

WORKER_CARD = AgentCard(
    agent_id="worker",
    name="Worker Node",
    description="Offers turtle tasks and executes them",
    capabilities=["offer", "reject", "report", "execute"],
    publishes=[OFFER_TOPIC, REJECT_TOPIC, RESULT_TOPIC],
    subscribes=[DEMAND_TOPIC, REJECT_TOPIC, LIABILITY_TOPIC, FINALIZED_TOPIC],
)

LIGHTHOUSE_CARD = AgentCard(
    agent_id="lighthouse",
    name="Lighthouse Node",
    description="Matches demands with offers and submits liabilities",
    capabilities=["match", "create", "finalize"],
    publishes=[LIABILITY_TOPIC, FINALIZED_TOPIC],
    subscribes=[DEMAND_TOPIC, OFFER_TOPIC, RESULT_TOPIC],
)


# =============================================================================
# Registry - Node Discovery
# =============================================================================

class AgentRegistry:
    """Lets nodes find each other by capability."""

    def __init__(self):
        self._agents: Dict[str, AgentCard] = {}

    def register(self, card: AgentCard) -> None:
        self._agents[card.agent_id] = card

    def discover(self, capability: str) -> List[AgentCard]:
        return [
            card for card in self._agents.values()
            if capability in card.capabilities
        ]

    def get_agent(self, agent_id: str) -> Optional[AgentCard]:
        return self._agents.get(agent_id)

    def list_all(self) -> List[AgentCard]:
        return list(self._agents.values())


# =============================================================================
# Topic Bus
# =============================================================================

Callback = Callable[[MessageEnvelope], None]


class TopicBus:
    """
    Publish/subscribe bus shared by all nodes of one process.

    Example:
        bus = TopicBus()
        bus.register_agent(TRADER_CARD)
        bus.subscribe(OFFER_TOPIC, on_offer)
        bus.publish(envelope)
    """

    def __init__(self):
        self.registry = AgentRegistry()
        self._history: Dict[str, List[MessageEnvelope]] = {}
        self._log: List[MessageEnvelope] = []
        self._subscribers: Dict[str, List[Callback]] = {}
        self._pending: Deque[Tuple[Callback, MessageEnvelope]] = deque()
        self._dispatching = False
        self._lock = Lock()
        self._seq = 0
        self.delivery_errors = 0

    def register_agent(self, card: AgentCard) -> None:
        with self._lock:
            self.registry.register(card)

    def discover_agents(self, capability: str) -> List[AgentCard]:
        with self._lock:
            return self.registry.discover(capability)

    def advertise(self, topic: str) -> None:
        """Declare a topic so its history exists before the first message."""
        with self._lock:
            self._history.setdefault(topic, [])

    def topics(self) -> Set[str]:
        with self._lock:
            return set(self._history) | set(self._subscribers)

    def subscribe(self, topic: str, callback: Callback) -> None:
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

    def publish(self, envelope: MessageEnvelope) -> MessageEnvelope:
        """
        Publish a message on its topic.

        Subscribers and history get a copy stamped with the next bus seq;
        publishing the same envelope twice yields two distinct messages.

        Returns:
            The stamped copy

        Raises:
            ValueError: If the sender is not a registered node
        """
        with self._lock:
            if self.registry.get_agent(envelope.sender) is None:
                raise ValueError(f"Unknown node: {envelope.sender}")

            self._seq += 1
            envelope = replace(envelope, header=Header(seq=self._seq, stamp=envelope.header.stamp))
            self._history.setdefault(envelope.topic, []).append(envelope)
            self._log.append(envelope)
            for callback in self._subscribers.get(envelope.topic, []):
                self._pending.append((callback, envelope))

            if self._dispatching:
                return envelope
            self._dispatching = True

        try:
            self._drain()
        finally:
            with self._lock:
                self._dispatching = False
        return envelope

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    return
                callback, envelope = self._pending.popleft()
            try:
                callback(envelope)
            except Exception:
                self.delivery_errors += 1
                logger.exception(
                    "Subscriber failed on %s (seq %d)", envelope.topic, envelope.seq
                )

    def history(self, topic: str, session_id: Optional[str] = None) -> List[MessageEnvelope]:
        """All messages published on a topic, optionally for one session."""
        with self._lock:
            messages = list(self._history.get(topic, []))
        if session_id is not None:
            messages = [m for m in messages if m.session_id == session_id]
        return messages

    def session_log(self, session_id: str) -> List[MessageEnvelope]:
        """Every message of a session across all topics, oldest first."""
        with self._lock:
            return [m for m in self._log if m.session_id == session_id]

    def clear(self) -> None:
        """Clear history and pending deliveries (for testing)."""
        with self._lock:
            for messages in self._history.values():
                messages.clear()
            self._log.clear()
            self._pending.clear()
