"""
Envelope - What the Bus Carries
===============================

A market message plus the header every ROS topic message carries
(std_msgs/Header): a sequence number and a stamp.

    header   seq (assigned by the bus on publish), stamp (seconds)
    route    sender node name, topic, session id
    payload  the market message, which keeps its own signature

The envelope is routing only. Who is bound by a message is decided by the
payload's signing account, never by the node name on the envelope.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from .messages import Demand, MarketMessage, Offer, Report, parse_message, to_dict, verify_message


@dataclass
class Header:
    """Sequence number and stamp, as in std_msgs/Header."""
    seq: int = 0
    stamp: float = field(default_factory=time.time)


@dataclass
class MessageEnvelope:
    """
    One message on one topic.

    Attributes:
        sender: Node name that published this message
        topic: Topic the message was published on
        session_id: Which trader's liability this belongs to
        payload: The market message
        header: seq and stamp; seq is 0 until the bus publishes it

    Example:
        envelope = MessageEnvelope(
            sender="trader",
            topic=DEMAND_TOPIC,
            session_id="session_123",
            payload=demand,
        )
    """
    sender: str
    topic: str
    session_id: str
    payload: MarketMessage
    header: Header = field(default_factory=Header)

    @property
    def seq(self) -> int:
        return self.header.seq

    @property
    def liability_index(self) -> Optional[int]:
        """Ledger index the message is about; None before a liability exists."""
        return getattr(self.payload, "index", None)

    @property
    def account(self) -> str:
        """Account that signed the payload, empty for unsigned messages."""
        return getattr(self.payload, "sender", "")

    def is_signed(self) -> bool:
        """Payload is a Demand, Offer or Report whose signature verifies."""
        if not isinstance(self.payload, (Demand, Offer, Report)):
            return False
        return verify_message(self.payload)

    def to_dict(self) -> dict:
        return {
            "header": {"seq": self.header.seq, "stamp": self.header.stamp},
            "sender": self.sender,
            "topic": self.topic,
            "session_id": self.session_id,
            "payload": to_dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageEnvelope":
        header = data.get("header", {})
        return cls(
            sender=data["sender"],
            topic=data["topic"],
            session_id=data["session_id"],
            payload=parse_message(data["payload"]),
            header=Header(seq=header.get("seq", 0), stamp=header.get("stamp", 0.0)),
        )


def create_envelope(
    sender: str,
    topic: str,
    session_id: str,
    payload: MarketMessage,
) -> MessageEnvelope:
    """Unpublished envelope; the bus fills in the header seq."""
    return MessageEnvelope(
        sender=sender,
        topic=topic,
        session_id=session_id,
        payload=payload,
    )
