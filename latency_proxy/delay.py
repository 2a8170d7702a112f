import random
from typing import Optional


def random_delay(base: int, jitter: int, rng: Optional[random.Random] = None) -> int:
    """Sample a one-way delay uniformly from [base, base + jitter], inclusive."""
    if base < 0 or jitter < 0:
        raise ValueError(f"base and jitter must be >= 0 (got {base}, {jitter})")
    if rng is None:
        rng = random.Random()
    return base + rng.randint(0, jitter)
