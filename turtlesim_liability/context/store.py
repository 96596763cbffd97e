"""
Content Store - Grounded Context
================================

Content-addressed storage for liability objectives and results.

Nodes do NOT send tasks or trajectories to each other directly.
They publish a content hash and the other side QUERIES the store.

Example:
    store = ContentStore()
    objective = store.put_json({"shape": "square", "size": 2.0})
    task = store.get_json(objective)

Hashes use the multihash layout: 0x12 (sha2-256), 0x20 (32 bytes), digest.
"""

import hashlib
import json
from threading import Lock
from typing import Any, Dict, List, Optional


SHA256_PREFIX = "1220"
HASH_LENGTH = len(SHA256_PREFIX) + 64


def content_hash(data: bytes) -> str:
    """Multihash (sha2-256) of raw bytes as lowercase hex."""
    return SHA256_PREFIX + hashlib.sha256(data).hexdigest()


def canonical_json(value: Any) -> bytes:
    """Deterministic JSON encoding used for hashing and signing."""
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def is_content_hash(value: str) -> bool:
    """Check that a string looks like a hash produced by content_hash()."""
    if not isinstance(value, str) or len(value) != HASH_LENGTH:
        return False
    if not value.startswith(SHA256_PREFIX):
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return value == value.lower()


class ContentStore:
    """
    In-memory content-addressed store.

    Stands in for IPFS: objectives (task descriptions) and results
    (recorded trajectories) are stored once and referenced by hash.
    """

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = Lock()

    def put(self, data: bytes) -> str:
        """Store bytes and return their content hash."""
        key = content_hash(data)
        with self._lock:
            self._blobs[key] = bytes(data)
        return key

    def put_json(self, value: Any) -> str:
        """Store a JSON-serializable value canonically."""
        return self.put(canonical_json(value))

    def get(self, key: str) -> bytes:
        """
        Fetch bytes by hash.

        Raises:
            KeyError: If nothing is stored under this hash
        """
        with self._lock:
            if key not in self._blobs:
                raise KeyError(f"Unknown content: {key}")
            return self._blobs[key]

    def get_json(self, key: str) -> Any:
        return json.loads(self.get(key).decode("utf-8"))

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._blobs)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class ModelCatalog:
    """
    Known robot models and their market defaults.

    Authoritative source for the cost floor a worker should accept.
    Strategies query this instead of hardcoding numbers.
    """

    def __init__(self):
        self._models: Dict[str, Dict[str, Any]] = {
            "turtlesim": {
                "model": "turtlesim",
                "description": "Simulated turtle drawing routes in a 2D world",
                "min_cost": 10,
                "asking_cost": 20,
            }
        }

    def register(self, model: str, min_cost: int, asking_cost: int, description: str = "") -> None:
        if min_cost < 0 or asking_cost < min_cost:
            raise ValueError(
                f"Invalid costs for {model}: min={min_cost}, asking={asking_cost}"
            )
        self._models[model] = {
            "model": model,
            "description": description,
            "min_cost": min_cost,
            "asking_cost": asking_cost,
        }

    def get_model(self, model: str) -> Dict[str, Any]:
        """
        Get market defaults for a model.

        Raises:
            ValueError: If the model is unknown
        """
        if model not in self._models:
            raise ValueError(f"Unknown model: {model}")
        return self._models[model].copy()

    def find(self, model: str) -> Optional[Dict[str, Any]]:
        entry = self._models.get(model)
        return entry.copy() if entry else None

    def list_models(self) -> List[str]:
        return sorted(self._models)
