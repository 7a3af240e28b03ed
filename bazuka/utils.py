"""Small helpers shared across the node."""

from __future__ import annotations

import time
from typing import Sequence, TypeVar

T = TypeVar("T")


def local_timestamp() -> int:
    """Seconds since the Unix epoch according to the local clock."""
    return int(time.time())


def median(values: Sequence[T]) -> T:
    """The middle element after sorting; the upper one for even lengths."""
    if not values:
        raise ValueError("median of an empty sequence")
    ordered = sorted(values)
    return ordered[len(ordered) // 2]