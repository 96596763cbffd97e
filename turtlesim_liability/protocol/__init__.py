# protocol - Structured Communication
# Message schemas and validation for the liability market
from .messages import (
    Demand,
    Offer,
    Liability,
    Report,
    Reject,
    MarketMessage,
    parse_message,
    to_dict,
    sign_message,
    verify_message,
    signing_payload,
    order_payload,
    is_terminal_message,
    is_match,
    get_cost,
)

from .envelope import Header, MessageEnvelope, create_envelope

__all__ = [
    "Demand",
    "Offer",
    "Liability",
    "Report",
    "Reject",
    "MarketMessage",
    "parse_message",
    "to_dict",
    "sign_message",
    "verify_message",
    "signing_payload",
    "order_payload",
    "is_terminal_message",
    "is_match",
    "get_cost",
    "Header",
    "MessageEnvelope",
    "create_envelope",
]
