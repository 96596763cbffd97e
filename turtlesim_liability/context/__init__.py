"""
context - Grounded Context Layer
================================

Question this layer answers:
"What is objectively true?"

Workers fetch objectives from the store:
```python
task = store.get_json(demand.objective)
```

Context:
- Holds objectives and results by content hash
- Knows the cost floor of each robot model
- Is query-based, not conversational

Context does NOT:
- Control flow
- Move messages
- Run agents
"""

from .store import (
    ContentStore,
    ModelCatalog,
    canonical_json,
    content_hash,
    is_content_hash,
)

__all__ = [
    "ContentStore",
    "ModelCatalog",
    "canonical_json",
    "content_hash",
    "is_content_hash",
]
