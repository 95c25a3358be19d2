from __future__ import annotations

from typing import TypedDict


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A todo record as stored in the key-value cache (one JSON object per key).

    Fields:
    - id: Opaque string id, timestamp-derived at creation
    - title: Short title (trimmed on input via schemas)
    - completed: Boolean completion flag
    """

    id: str
    title: str
    completed: bool
