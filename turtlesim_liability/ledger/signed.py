"""
Signed Liability
================

An agreement between two parties, proven by their signatures.

    promisee (trader) signs  {technics, economics}
    promisor (worker) signs  {technics, economics}
    promisor          signs  {index, report}        when reporting

Trader and worker attach this agreement proof to every Demand and Offer,
so a matched pair carries both proofs already.
"""

import json
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..context.store import canonical_json
from .errors import BadProof
from .keys import verify_signature


class ProofTarget(Enum):
    """Whose proof is being checked."""
    PROMISEE = auto()
    PROMISOR = auto()
    REPORT = auto()


def agreement_payload(technics: str, economics: int) -> bytes:
    """Bytes signed by both parties to agree on a liability."""
    return canonical_json({"technics": technics, "economics": economics})


def report_payload(index: int, report: str) -> bytes:
    """Bytes signed by the promisor when reporting on liability `index`."""
    return canonical_json({"index": index, "report": report})


@dataclass(frozen=True)
class SignedLiability:
    """
    Liability parameters as stored in the ledger.

    Attributes:
        technics: Objective content hash
        economics: Cost in tokens
        promisee: Trader account id
        promisor: Worker account id
    """
    technics: str
    economics: int
    promisee: str
    promisor: str

    def encode(self) -> bytes:
        return canonical_json({
            "technics": self.technics,
            "economics": self.economics,
            "promisee": self.promisee,
            "promisor": self.promisor,
        })

    @classmethod
    def decode(cls, data: bytes) -> "SignedLiability":
        """
        Decode stored parameters.

        Raises:
            ValueError: If the bytes are not a valid encoding
        """
        try:
            fields = json.loads(data.decode("utf-8"))
            return cls(
                technics=fields["technics"],
                economics=fields["economics"],
                promisee=fields["promisee"],
                promisor=fields["promisor"],
            )
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise ValueError(f"Invalid liability encoding: {e}") from e

    def verify(self, target: ProofTarget, proof: str, report: Optional[str] = None, index: int = 0) -> None:
        """
        Check a proof against this liability.

        Raises:
            BadProof: If the signature does not match
        """
        if target == ProofTarget.PROMISEE:
            ok = verify_signature(self.promisee, agreement_payload(self.technics, self.economics), proof)
            if not ok:
                raise BadProof("bad promisee proof")
        elif target == ProofTarget.PROMISOR:
            ok = verify_signature(self.promisor, agreement_payload(self.technics, self.economics), proof)
            if not ok:
                raise BadProof("bad promisor proof")
        elif target == ProofTarget.REPORT:
            if report is None:
                raise BadProof("report proof without report")
            ok = verify_signature(self.promisor, report_payload(index, report), proof)
            if not ok:
                raise BadProof("bad report proof")
        else:
            raise BadProof(f"unknown proof target: {target}")
