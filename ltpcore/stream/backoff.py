from __future__ import annotations

import random
from typing import Optional


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 30.0, rng: Optional[random.Random] = None) -> float:
    """Seconds to wait before reconnect attempt ``attempt`` (0-based).

    ``base * 2**attempt`` plus up to 25% jitter, never above ``max_delay``.
    """
    r = rng or random
    exp = base * (2 ** attempt)
    return min(exp + exp * r.random() * 0.25, max_delay)
