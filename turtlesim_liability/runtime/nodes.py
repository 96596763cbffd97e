"""
Market Nodes
============

The trader, worker and lighthouse as bus-driven nodes.

    trader ──Demand──►  /liability/infochan/incoming/demand ──► worker, lighthouse
    worker ──Offer───►  /liability/infochan/incoming/offer  ──► trader, lighthouse
    lighthouse ──Liability──► /liability/incoming           ──► trader, worker
    worker ──Report──►  /liability/result                   ──► lighthouse
    lighthouse ──Report──► /liability/finalized             ──► trader, worker

Nodes only react to messages. Each one keeps a LiabilityFSM per session,
so a late or duplicated message can never move a finished session.
"""

import itertools
import logging
from typing import Dict, Optional, Set, Tuple
from uuid import uuid4

from ..agents import TraderStrategy, WorkerStrategy
from ..context import ContentStore, ModelCatalog
from ..coordination import MatchingPolicy
from ..fsm import FailureReason, LiabilityFSM, LiabilityState
from ..ledger import Keypair, LiabilityError, LiabilityLedger
from ..protocol import (
    Demand,
    Liability,
    Offer,
    Reject,
    Report,
    create_envelope,
    is_match,
    sign_message,
)
from ..protocol.envelope import MessageEnvelope
from ..transport import (
    DEMAND_TOPIC,
    FINALIZED_TOPIC,
    LIABILITY_TOPIC,
    LIGHTHOUSE_CARD,
    OFFER_TOPIC,
    REJECT_TOPIC,
    RESULT_TOPIC,
    TRADER_CARD,
    WORKER_CARD,
    AgentCard,
    TopicBus,
)
from ..turtlesim import ControllerConfig, Task, TurtleSim, execute_task

logger = logging.getLogger(__name__)


class Node:
    """Base class: a named participant on the bus."""

    card: AgentCard = None

    def __init__(self, bus: TopicBus, name: Optional[str] = None):
        self.bus = bus
        self.name = name or self.card.agent_id
        if self.name != self.card.agent_id:
            self.card = AgentCard(
                agent_id=self.name,
                name=self.card.name,
                description=self.card.description,
                capabilities=list(self.card.capabilities),
                publishes=list(self.card.publishes),
                subscribes=list(self.card.subscribes),
            )
        self._nonces = itertools.count(1)
        bus.register_agent(self.card)
        for topic in self.card.publishes:
            bus.advertise(topic)

    def next_nonce(self) -> int:
        """Order nonces never repeat for a node, so no two orders share a signature."""
        return next(self._nonces)

    def publish(self, topic: str, session_id: str, payload) -> MessageEnvelope:
        envelope = create_envelope(
            sender=self.name,
            topic=topic,
            session_id=session_id,
            payload=payload,
        )
        return self.bus.publish(envelope)


# ============================================================================
# Trader
# ============================================================================

class TraderNode(Node):
    """
    Promisee: demands a task and follows it until finalized.

    One trader node drives one session at a time.
    """

    card = TRADER_CARD

    def __init__(
        self,
        bus: TopicBus,
        store: ContentStore,
        task: Task,
        budget: int,
        model: str = "turtlesim",
        max_turns: int = 10,
        keypair: Optional[Keypair] = None,
        name: Optional[str] = None,
    ):
        super().__init__(bus, name)
        self.store = store
        self.task = task
        self.model = model
        self.max_turns = max_turns
        self.keypair = keypair or Keypair.from_name(self.name)
        self.strategy = TraderStrategy(budget)
        self.fsm = LiabilityFSM(max_turns=max_turns)
        self.session_id: Optional[str] = None
        self.objective: Optional[str] = None

        bus.subscribe(OFFER_TOPIC, self.on_offer)
        bus.subscribe(REJECT_TOPIC, self.on_reject)
        bus.subscribe(LIABILITY_TOPIC, self.on_liability)
        bus.subscribe(FINALIZED_TOPIC, self.on_finalized)

    @property
    def done(self) -> bool:
        return self.fsm.is_terminal()

    def start(self, session_id: Optional[str] = None) -> str:
        """Store the objective and publish the opening demand."""
        if not self.fsm.start():
            raise RuntimeError(f"{self.name} already started")
        self.session_id = session_id or str(uuid4())
        self.objective = self.store.put_json(self.task.to_dict())
        logger.info("[%s] Session %s, objective %s...", self.name, self.session_id, self.objective[:16])
        self._decide(ask_cost=None)
        return self.session_id

    def _decide(self, ask_cost: Optional[int]) -> None:
        decision = self.strategy.decide(ask_cost, max_turns=self.max_turns)
        if decision["type"] == "reject":
            self.publish(REJECT_TOPIC, self.session_id, Reject(
                reason=decision["reason"],
                final_cost=decision.get("final_cost"),
                sender=self.keypair.account_id,
            ))
            self.fsm.reject(by_trader=True, detail=decision["reason"])
            return

        self.fsm.record_bid(decision["cost"])
        demand = sign_message(
            Demand(
                model=self.model,
                objective=self.objective,
                cost=decision["cost"],
                nonce=self.next_nonce(),
                message=decision.get("message", ""),
            ),
            self.keypair,
        )
        self.publish(DEMAND_TOPIC, self.session_id, demand)

    def on_offer(self, envelope: MessageEnvelope) -> None:
        offer = envelope.payload
        if envelope.session_id != self.session_id or not self.fsm.is_negotiating:
            return
        if offer.objective != self.objective:
            return

        self.fsm.record_ask(offer.cost)
        if offer.cost == self.fsm.context.last_bid:
            # Worker matched our demand; the lighthouse takes it from here
            return
        if not self.fsm.process_turn():
            self.publish(REJECT_TOPIC, self.session_id, Reject(
                reason="Max turns exceeded",
                final_cost=self.fsm.context.last_bid,
                sender=self.keypair.account_id,
            ))
            return
        self._decide(ask_cost=offer.cost)

    def on_reject(self, envelope: MessageEnvelope) -> None:
        if envelope.session_id != self.session_id or envelope.sender == self.name:
            return
        self.fsm.reject(by_trader=False, detail=envelope.payload.reason)

    def on_liability(self, envelope: MessageEnvelope) -> None:
        notice = envelope.payload
        if envelope.session_id != self.session_id:
            return
        if notice.promisee != self.keypair.account_id:
            return
        self.fsm.contract(notice.index, notice.cost)

    def on_finalized(self, envelope: MessageEnvelope) -> None:
        report = envelope.payload
        if envelope.liability_index != self.fsm.context.liability_index:
            return
        self.fsm.begin_execution()
        self.fsm.report(report.result)
        self.fsm.finalize()
        logger.info("[%s] Liability #%d finalized", self.name, report.index)


# ============================================================================
# Worker
# ============================================================================

class WorkerNode(Node):
    """
    Promisor: answers demands, executes contracted tasks, reports.

    A worker serves any number of sessions, one FSM per session.
    """

    card = WORKER_CARD

    def __init__(
        self,
        bus: TopicBus,
        store: ContentStore,
        sim: TurtleSim,
        min_cost: int,
        asking_cost: Optional[int] = None,
        model: str = "turtlesim",
        max_turns: int = 10,
        catalog: Optional[ModelCatalog] = None,
        controller: Optional[ControllerConfig] = None,
        turtle: str = "turtle1",
        keypair: Optional[Keypair] = None,
        name: Optional[str] = None,
    ):
        super().__init__(bus, name)
        self.store = store
        self.sim = sim
        self.min_cost = min_cost
        self.asking_cost = asking_cost
        self.model = model
        self.max_turns = max_turns
        self.catalog = catalog
        self.controller = controller or ControllerConfig()
        self.turtle = turtle
        self.keypair = keypair or Keypair.from_name(self.name)
        self._sessions: Dict[str, Tuple[WorkerStrategy, LiabilityFSM]] = {}

        bus.subscribe(DEMAND_TOPIC, self.on_demand)
        bus.subscribe(REJECT_TOPIC, self.on_reject)
        bus.subscribe(LIABILITY_TOPIC, self.on_liability)
        bus.subscribe(FINALIZED_TOPIC, self.on_finalized)

    @property
    def served(self) -> int:
        """Number of sessions this worker has answered."""
        return len(self._sessions)

    def session_state(self, session_id: str) -> Optional[LiabilityState]:
        entry = self._sessions.get(session_id)
        return entry[1].get_state() if entry else None

    def _session(self, session_id: str) -> Tuple[WorkerStrategy, LiabilityFSM]:
        if session_id not in self._sessions:
            strategy = WorkerStrategy(
                self.min_cost,
                self.asking_cost,
                catalog=self.catalog,
                model=self.model,
            )
            fsm = LiabilityFSM(max_turns=self.max_turns)
            fsm.start()
            self._sessions[session_id] = (strategy, fsm)
        return self._sessions[session_id]

    def on_demand(self, envelope: MessageEnvelope) -> None:
        demand = envelope.payload
        if demand.model != self.model:
            return
        strategy, fsm = self._session(envelope.session_id)
        if not fsm.is_negotiating:
            return

        fsm.record_bid(demand.cost)
        if demand.cost == fsm.context.last_ask:
            # Trader matched our offer
            return

        decision = strategy.decide(demand.cost, max_turns=self.max_turns)
        if decision["type"] == "reject":
            self.publish(REJECT_TOPIC, envelope.session_id, Reject(
                reason=decision["reason"],
                final_cost=decision.get("final_cost"),
                sender=self.keypair.account_id,
            ))
            fsm.reject(by_trader=False, detail=decision["reason"])
            return

        fsm.record_ask(decision["cost"])
        offer = sign_message(
            Offer(
                model=self.model,
                objective=demand.objective,
                cost=decision["cost"],
                nonce=self.next_nonce(),
                message=decision.get("message", ""),
            ),
            self.keypair,
        )
        self.publish(OFFER_TOPIC, envelope.session_id, offer)

    def on_reject(self, envelope: MessageEnvelope) -> None:
        if envelope.sender == self.name or envelope.session_id not in self._sessions:
            return
        self._sessions[envelope.session_id][1].reject(by_trader=True, detail=envelope.payload.reason)

    def on_liability(self, envelope: MessageEnvelope) -> None:
        notice: Liability = envelope.payload
        if notice.promisor != self.keypair.account_id:
            return
        _, fsm = self._session(envelope.session_id)
        if not fsm.contract(notice.index, notice.cost):
            logger.warning("[%s] Ignoring liability #%d in state %s", self.name, notice.index, fsm.state.name)
            return

        fsm.begin_execution()
        result, success = self._execute(notice)
        fsm.report(result)
        report = sign_message(Report(index=notice.index, result=result, success=success), self.keypair)
        self.publish(RESULT_TOPIC, envelope.session_id, report)

    def _execute(self, notice: Liability) -> Tuple[str, bool]:
        """Run the objective; a failed run is still reported, with success=False."""
        try:
            task = Task.from_dict(self.store.get_json(notice.objective))
        except (KeyError, ValueError) as e:
            logger.error("[%s] Cannot load objective for liability #%d: %s", self.name, notice.index, e)
            return self.store.put_json({"liability": notice.index, "error": str(e)}), False

        if self.turtle not in self.sim.list_turtles():
            self.sim.spawn(self.turtle)
        trajectory = execute_task(self.sim, self.turtle, task, self.controller)
        logger.info(
            "[%s] Liability #%d: %d/%d waypoints in %d steps",
            self.name, notice.index, trajectory.reached, trajectory.total, trajectory.steps,
        )
        return self.store.put_json(trajectory.to_dict()), trajectory.success

    def on_finalized(self, envelope: MessageEnvelope) -> None:
        entry = self._sessions.get(envelope.session_id)
        if entry is None:
            return
        fsm = entry[1]
        if fsm.context.liability_index == envelope.liability_index:
            fsm.finalize()


# ============================================================================
# Lighthouse
# ============================================================================

class Lighthouse(Node):
    """
    Watches the market, turns matched pairs into liabilities and submits
    reports to the ledger.
    """

    card = LIGHTHOUSE_CARD

    def __init__(
        self,
        bus: TopicBus,
        ledger: LiabilityLedger,
        policy: Optional[MatchingPolicy] = None,
        name: Optional[str] = None,
    ):
        super().__init__(bus, name)
        self.ledger = ledger
        self.policy = policy or MatchingPolicy()
        self.tick = 0
        self._demands: Dict[str, Demand] = {}
        self._offers: Dict[str, Offer] = {}
        self._consumed: Set[str] = set()
        self._sessions: Dict[int, str] = {}

        bus.subscribe(DEMAND_TOPIC, self.on_demand)
        bus.subscribe(OFFER_TOPIC, self.on_offer)
        bus.subscribe(RESULT_TOPIC, self.on_result)

    def session_of(self, index: int) -> Optional[str]:
        return self._sessions.get(index)

    def on_demand(self, envelope: MessageEnvelope) -> None:
        self.tick += 1
        self._demands[envelope.session_id] = envelope.payload
        self._try_match(envelope.session_id)

    def on_offer(self, envelope: MessageEnvelope) -> None:
        self.tick += 1
        self._offers[envelope.session_id] = envelope.payload
        self._try_match(envelope.session_id)

    def _try_match(self, session_id: str) -> None:
        demand = self._demands.get(session_id)
        offer = self._offers.get(session_id)
        if demand is None or offer is None or not is_match(demand, offer):
            return
        if demand.signature in self._consumed or offer.signature in self._consumed:
            return

        check = self.policy.validate_match(demand, offer, now=self.tick)
        if not check.allowed:
            logger.warning("[%s] Match refused: %s", self.name, check.reason)
            return

        try:
            index = self.ledger.create(
                technics=demand.objective,
                economics=demand.cost,
                promisee=demand.sender,
                promisee_proof=demand.proof,
                promisor=offer.sender,
                promisor_proof=offer.proof,
            )
        except LiabilityError as e:
            logger.error("[%s] Ledger refused liability: %s", self.name, e)
            return

        self._consumed.update((demand.signature, offer.signature))
        self._sessions[index] = session_id
        self.publish(LIABILITY_TOPIC, session_id, Liability(
            index=index,
            model=demand.model,
            objective=demand.objective,
            cost=demand.cost,
            promisee=demand.sender,
            promisor=offer.sender,
        ))

    def on_result(self, envelope: MessageEnvelope) -> None:
        report: Report = envelope.payload
        try:
            self.ledger.finalize(report.index, report.result, report.signature, report.success)
        except LiabilityError as e:
            logger.error("[%s] Ledger refused report for #%d: %s", self.name, report.index, e)
            return
        self.publish(FINALIZED_TOPIC, envelope.session_id, report)


def failure_of(fsm: LiabilityFSM) -> Optional[str]:
    """Human-readable failure of a finished FSM, None if it did not fail."""
    reason: Optional[FailureReason] = fsm.context.failure_reason
    if reason is None:
        return None
    detail = fsm.context.failure_detail
    return f"{reason.name.lower()}: {detail}" if detail else reason.name.lower()
