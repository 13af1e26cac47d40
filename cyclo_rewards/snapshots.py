from __future__ import annotations

import random

from .config import DEFAULT_SNAPSHOT_COUNT


def generate_snapshot_blocks(seed: str, start: int, end: int, count: int = DEFAULT_SNAPSHOT_COUNT) -> list[int]:
    """Pick `count` distinct blocks in [start, end], ascending.

    The same seed always yields the same blocks, so anyone can re-derive the
    snapshot set of a published epoch.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    if end < start:
        raise ValueError(f"end block {end} is before start block {start}")
    if end - start + 1 < count:
        raise ValueError(f"range {start}..{end} holds fewer than {count} blocks")

    rng = random.Random(seed)
    return sorted(rng.sample(range(start, end + 1), count))
