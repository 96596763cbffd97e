"""
Node Identities
===============

Ed25519 key pairs for traders and workers.

- An account id is the hex-encoded verify key
- Signatures are hex-encoded detached signatures
- Private keys stay in memory, never persisted

Usage:
    trader = Keypair.from_name("trader")
    proof = trader.sign(payload)
    assert verify_signature(trader.account_id, payload, proof)
"""

import hashlib
import logging

from nacl.encoding import HexEncoder
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

logger = logging.getLogger(__name__)


class Keypair:
    """Signing identity of a single node."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key
        self._account_id = signing_key.verify_key.encode(encoder=HexEncoder).decode("utf-8")

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(SigningKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        """Build a key pair from a 32 byte seed."""
        if len(seed) != 32:
            raise ValueError(f"Seed must be 32 bytes, got {len(seed)}")
        return cls(SigningKey(seed))

    @classmethod
    def from_name(cls, name: str) -> "Keypair":
        """
        Deterministic key pair derived from a node name.

        Launch files identify nodes by name, so the same name always maps
        to the same account across runs.
        """
        return cls.from_seed(hashlib.sha256(name.encode("utf-8")).digest())

    @property
    def account_id(self) -> str:
        return self._account_id

    def sign(self, message: bytes) -> str:
        """Sign a message, returning the detached signature as hex."""
        return self._signing_key.sign(message).signature.hex()

    def __repr__(self) -> str:
        return f"Keypair(account_id={self._account_id[:16]}...)"


def verify_signature(account_id: str, message: bytes, signature: str) -> bool:
    """
    Check a detached hex signature against an account id.

    Malformed keys or signatures count as a failed verification.
    """
    try:
        verify_key = VerifyKey(account_id.encode("utf-8"), encoder=HexEncoder)
        verify_key.verify(message, bytes.fromhex(signature))
        return True
    except (CryptoError, ValueError, TypeError, AttributeError) as e:
        logger.debug("Signature check failed for %s...: %s", str(account_id)[:16], e)
        return False
