"""
Message Schemas for the Liability Market
========================================

Structured messages exchanged by trader and worker nodes.

    Demand  - trader asks for a task at a cost      (promisee side)
    Offer   - worker offers a task at a cost        (promisor side)
    Liability - lighthouse announces a created liability
    Report  - worker reports the result of a task
    Reject  - either side walks away

A Demand and an Offer MATCH when model, objective and cost are equal.
Each order carries two signatures from its sender:

    signature - over the whole order (type, model, objective, cost,
                deadline, nonce), checked by the lighthouse
    proof     - over the agreement (objective, cost), handed to the ledger

The nonce makes every order signature unique, so a lighthouse can refuse
a replayed order while the same worker keeps serving the same task.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from ..context.store import canonical_json
from ..ledger.keys import Keypair, verify_signature
from ..ledger.signed import agreement_payload, report_payload


# ============================================================
# PAYLOAD TYPES - The actual content of messages
# ============================================================

@dataclass
class Demand:
    """
    Trader demands a task to be done.

    Example:
        demand = Demand(model="turtlesim", objective=task_hash, cost=12)
    """
    type: Literal["demand"] = field(default="demand", init=False)
    model: str
    objective: str
    cost: int
    sender: str = ""
    deadline: int = 0
    nonce: int = 0
    signature: str = ""
    proof: str = ""
    message: str = ""

    def __post_init__(self):
        _validate_order(self)


@dataclass
class Offer:
    """
    Worker offers to do a task.

    Example:
        offer = Offer(model="turtlesim", objective=task_hash, cost=18)
    """
    type: Literal["offer"] = field(default="offer", init=False)
    model: str
    objective: str
    cost: int
    sender: str = ""
    deadline: int = 0
    nonce: int = 0
    signature: str = ""
    proof: str = ""
    message: str = ""

    def __post_init__(self):
        _validate_order(self)


@dataclass
class Report:
    """
    Worker reports the result of liability `index`.

    Example:
        report = Report(index=1, result=trajectory_hash)
    """
    type: Literal["report"] = field(default="report", init=False)
    index: int
    result: str
    success: bool = True
    sender: str = ""
    signature: str = ""

    def __post_init__(self):
        if self.index <= 0:
            raise ValueError(f"Liability index must be positive, got {self.index}")
        if not self.result:
            raise ValueError("Report result must not be empty")


@dataclass
class Liability:
    """
    Lighthouse announces that liability `index` was created.

    Example:
        notice = Liability(index=1, model="turtlesim", objective=task_hash,
                           cost=18, promisee=trader_id, promisor=worker_id)
    """
    type: Literal["liability"] = field(default="liability", init=False)
    index: int
    model: str
    objective: str
    cost: int
    promisee: str
    promisor: str

    def __post_init__(self):
        if self.index <= 0:
            raise ValueError(f"Liability index must be positive, got {self.index}")


@dataclass
class Reject:
    """
    Reject and end negotiation without a liability.

    Example:
        reject = Reject(reason="Cost too high")
    """
    type: Literal["reject"] = field(default="reject", init=False)
    reason: str
    final_cost: Optional[int] = None
    sender: str = ""


def _validate_order(msg) -> None:
    if not msg.model:
        raise ValueError("Model must not be empty")
    if not msg.objective:
        raise ValueError("Objective must not be empty")
    if isinstance(msg.cost, bool) or not isinstance(msg.cost, int):
        raise ValueError(f"Cost must be an integer, got {msg.cost!r}")
    if msg.cost < 0:
        raise ValueError(f"Cost must be non-negative, got {msg.cost}")
    if msg.deadline < 0:
        raise ValueError(f"Deadline must be non-negative, got {msg.deadline}")


# Union type for all market messages
MarketMessage = Union[Demand, Offer, Liability, Report, Reject]


# ============================================================
# MESSAGE PARSING - Convert dicts to typed messages
# ============================================================

def parse_message(data: dict) -> MarketMessage:
    """
    Parse a dictionary into a typed message.

    Raises:
        ValueError: If message type is unknown or validation fails

    Example:
        msg = parse_message({"type": "demand", "model": "turtlesim",
                             "objective": task_hash, "cost": 12})
        assert isinstance(msg, Demand)
    """
    msg_type = data.get("type")

    if msg_type in ("demand", "offer"):
        cls = Demand if msg_type == "demand" else Offer
        try:
            return cls(
                model=data["model"],
                objective=data["objective"],
                cost=data["cost"],
                sender=data.get("sender", ""),
                deadline=data.get("deadline", 0),
                nonce=data.get("nonce", 0),
                signature=data.get("signature", ""),
                proof=data.get("proof", ""),
                message=data.get("message", ""),
            )
        except KeyError as e:
            raise ValueError(f"Missing field for {msg_type}: {e}") from e
    elif msg_type == "report":
        try:
            return Report(
                index=data["index"],
                result=data["result"],
                success=data.get("success", True),
                sender=data.get("sender", ""),
                signature=data.get("signature", ""),
            )
        except KeyError as e:
            raise ValueError(f"Missing field for report: {e}") from e
    elif msg_type == "liability":
        try:
            return Liability(
                index=data["index"],
                model=data["model"],
                objective=data["objective"],
                cost=data["cost"],
                promisee=data["promisee"],
                promisor=data["promisor"],
            )
        except KeyError as e:
            raise ValueError(f"Missing field for liability: {e}") from e
    elif msg_type == "reject":
        return Reject(
            reason=data.get("reason", "No reason given"),
            final_cost=data.get("final_cost"),
            sender=data.get("sender", ""),
        )
    else:
        raise ValueError(f"Unknown message type: {msg_type}")


def to_dict(msg: MarketMessage) -> dict:
    """Convert a typed message to a dictionary."""
    if isinstance(msg, (Demand, Offer)):
        return {
            "type": msg.type,
            "model": msg.model,
            "objective": msg.objective,
            "cost": msg.cost,
            "sender": msg.sender,
            "deadline": msg.deadline,
            "nonce": msg.nonce,
            "signature": msg.signature,
            "proof": msg.proof,
            "message": msg.message,
        }
    elif isinstance(msg, Report):
        return {
            "type": "report",
            "index": msg.index,
            "result": msg.result,
            "success": msg.success,
            "sender": msg.sender,
            "signature": msg.signature,
        }
    elif isinstance(msg, Liability):
        return {
            "type": "liability",
            "index": msg.index,
            "model": msg.model,
            "objective": msg.objective,
            "cost": msg.cost,
            "promisee": msg.promisee,
            "promisor": msg.promisor,
        }
    elif isinstance(msg, Reject):
        return {
            "type": "reject",
            "reason": msg.reason,
            "final_cost": msg.final_cost,
            "sender": msg.sender,
        }
    else:
        raise ValueError(f"Unknown message type: {type(msg)}")


# ============================================================
# SIGNING
# ============================================================

def order_payload(msg: Union[Demand, Offer]) -> bytes:
    """Every field of an order that the sender commits to."""
    return canonical_json({
        "type": msg.type,
        "model": msg.model,
        "objective": msg.objective,
        "cost": msg.cost,
        "deadline": msg.deadline,
        "nonce": msg.nonce,
    })


def signing_payload(msg: MarketMessage) -> bytes:
    """Bytes covered by the message signature."""
    if isinstance(msg, (Demand, Offer)):
        return order_payload(msg)
    if isinstance(msg, Report):
        return report_payload(msg.index, msg.result)
    raise ValueError(f"{type(msg).__name__} messages are not signed")


def sign_message(msg: MarketMessage, keypair: Keypair) -> MarketMessage:
    """
    Set sender and signature in place; returns the same message.

    Orders also get the agreement proof the ledger checks on create.
    """
    payload = signing_payload(msg)
    msg.sender = keypair.account_id
    msg.signature = keypair.sign(payload)
    if isinstance(msg, (Demand, Offer)):
        msg.proof = keypair.sign(agreement_payload(msg.objective, msg.cost))
    return msg


def verify_message(msg: MarketMessage) -> bool:
    """Check the signature (and an order's agreement proof) against the declared sender."""
    if not msg.sender or not getattr(msg, "signature", ""):
        return False
    if not verify_signature(msg.sender, signing_payload(msg), msg.signature):
        return False
    if isinstance(msg, (Demand, Offer)):
        return verify_signature(msg.sender, agreement_payload(msg.objective, msg.cost), msg.proof)
    return True


# ============================================================
# VALIDATION HELPERS
# ============================================================

def is_terminal_message(msg: MarketMessage) -> bool:
    """Check if this message ends the liability lifecycle."""
    return isinstance(msg, (Report, Reject))


def get_cost(msg: MarketMessage) -> Optional[int]:
    """Extract cost from any message type."""
    if isinstance(msg, (Demand, Offer)):
        return msg.cost
    elif isinstance(msg, Reject):
        return msg.final_cost
    return None


def is_match(demand: Demand, offer: Offer) -> bool:
    """Demand and offer agree on model, objective and cost."""
    return (
        demand.model == offer.model
        and demand.objective == offer.objective
        and demand.cost == offer.cost
    )
