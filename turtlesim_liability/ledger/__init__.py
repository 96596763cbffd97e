"""
ledger - Liability Layer
========================

Question this layer answers:
"What has been agreed, and has it been delivered?"

```python
index = ledger.create(objective, cost, trader, demand_sig, worker, offer_sig)
ledger.finalize(index, result, report_sig)
```

The ledger:
- Verifies both parties' proofs before storing anything
- Runs economics (escrow) on create and finalize
- Emits NewLiability / NewReport events

The ledger does NOT:
- Match demands with offers (that's coordination)
- Execute tasks (that's turtlesim)
- Move messages (that's transport)
"""

from .economics import Communism, Economical, TokenEscrow, create_economics
from .errors import (
    AlreadyFinalized,
    BadProof,
    DecodeError,
    EconomicsError,
    InvalidParameter,
    LiabilityError,
)
from .keys import Keypair, verify_signature
from .liability import EventKind, LiabilityEvent, LiabilityLedger
from .signed import ProofTarget, SignedLiability, agreement_payload, report_payload
from .technics import PureIPFS, Technical

__all__ = [
    "LiabilityLedger",
    "LiabilityEvent",
    "EventKind",
    "SignedLiability",
    "ProofTarget",
    "agreement_payload",
    "report_payload",
    "Keypair",
    "verify_signature",
    "Technical",
    "PureIPFS",
    "Economical",
    "Communism",
    "TokenEscrow",
    "create_economics",
    "LiabilityError",
    "InvalidParameter",
    "BadProof",
    "AlreadyFinalized",
    "DecodeError",
    "EconomicsError",
]
