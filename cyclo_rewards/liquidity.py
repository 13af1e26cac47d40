"""
LP deposit/withdraw accounting and concentrated-liquidity range correction.

Liquidity changes carry a signed `deposited_balance_change` that is added to
the owner's balance as-is (no floor at zero, unlike transfers). V3 position
changes are also accumulated per snapshot so that, once all events are in,
`apply_range_corrections` can drop positions whose pool tick sat outside the
position's range at that snapshot block.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Sequence

from .config import ORACLE_MAX_TRIES, ORACLE_RETRY_DELAY_S
from .ledger import BalanceLedger
from .models import Address, LiquidityChange, LiquidityPositionTrack
from .rpc import RpcClient, RpcError, abi_words, block_tag, decode_int256, keccak_selector


logger = logging.getLogger(__name__)

SLOT0_SELECTOR = "0x" + keccak_selector("slot0()")

# (token, owner, pool, position id)
PositionKey = tuple[Address, Address, Address, int]


def decode_slot0_tick(result: str) -> int:
    # slot0() -> (uint160 sqrtPriceX96, int24 tick, ...)
    words = abi_words(result)
    if len(words) < 2:
        raise ValueError(f"slot0 result too short: {result[:80]!r}")
    return decode_int256(words[1])


class PoolTickOracle:
    def __init__(
        self,
        client: RpcClient,
        *,
        max_tries: int = ORACLE_MAX_TRIES,
        retry_delay_s: float = ORACLE_RETRY_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.max_tries = max_tries
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep
        self._memo: dict[tuple[int, tuple[Address, ...]], dict[Address, int]] = {}

    def fetch_ticks(self, pools: Sequence[Address], block_number: int) -> dict[Address, int]:
        """One batched slot0() read; pools whose call fails are left out."""
        calls = [("eth_call", [{"to": str(pool), "data": SLOT0_SELECTOR}, block_tag(block_number)]) for pool in pools]
        ticks: dict[Address, int] = {}
        for pool, (result, err) in zip(pools, self._client.batch(calls)):
            if err is not None or not result:
                logger.debug("no tick for pool %s at block %d: %s", pool, block_number, err)
                continue
            try:
                ticks[pool] = decode_slot0_tick(result)
            except ValueError as e:
                logger.debug("no tick for pool %s at block %d: %s", pool, block_number, e)
        return ticks

    def get_ticks(self, pools: Sequence[Address], block_number: int) -> dict[Address, int]:
        key = (block_number, tuple(pools))
        if key in self._memo:
            return self._memo[key]

        for attempt in range(1, self.max_tries + 1):
            try:
                ticks = self.fetch_ticks(pools, block_number)
            except RpcError as e:
                if attempt >= self.max_tries:
                    raise
                logger.warning("tick lookup at block %d failed (attempt %d/%d): %s", block_number, attempt, self.max_tries, e)
                self._sleep(self.retry_delay_s)
                continue
            self._memo[key] = ticks
            return ticks
        raise RpcError(f"failed to get pool ticks at block {block_number}")


class LiquidityTracker:
    def __init__(self, ledger: BalanceLedger, oracle: PoolTickOracle, pools: Iterable[Address] | None = None) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.pools: list[Address] | None = list(pools) if pools is not None else None
        self.tracks: list[dict[PositionKey, LiquidityPositionTrack]] = [{} for _ in ledger.snapshots]
        self._corrected = False

    def apply_liquidity_change(self, change: LiquidityChange) -> bool:
        token = change.token_address
        if not self.ledger.is_eligible_token(token):
            return False
        if self._corrected:
            raise RuntimeError("range corrections already applied; no further liquidity changes accepted")
        self.ledger.advance_to(change.block_number)

        balance = self.ledger.account(token, change.owner)
        balance.apply_liquidity_delta(change.deposited_balance_change)
        self.ledger.fill_snapshots(balance, change.block_number)

        pool = change.pool_address
        if pool is not None and change.token_id is not None:
            key: PositionKey = (token, change.owner, pool, change.token_id)
            lower, upper = int(change.lower_tick or 0), int(change.upper_tick or 0)
            for i, boundary in enumerate(self.ledger.snapshots):
                if change.block_number > boundary:
                    continue
                track = self.tracks[i].get(key)
                if track is None:
                    track = self.tracks[i][key] = LiquidityPositionTrack(value=0, pool=pool, lower_tick=lower, upper_tick=upper)
                track.value += change.deposited_balance_change
                # Latest event wins for the tick range.
                track.lower_tick, track.upper_tick = lower, upper

        logger.debug(
            "liquidity %s owner=%s delta=%d block=%d",
            change.change_type.value,
            change.owner,
            change.deposited_balance_change,
            change.block_number,
        )
        return True

    def apply_range_corrections(self) -> int:
        """Subtract out-of-range V3 positions from each snapshot slot.

        Runs once, after every event has been applied. Oracle failures
        propagate. Returns the number of (position, snapshot) corrections.
        """
        if self._corrected:
            raise RuntimeError("range corrections already applied")
        self._corrected = True

        corrections = 0
        for i, boundary in enumerate(self.ledger.snapshots):
            tracks = self.tracks[i]
            if not tracks:
                continue
            pools = self.pools if self.pools is not None else sorted({t.pool for t in tracks.values()})
            if not pools:
                continue
            ticks = self.oracle.get_ticks(pools, boundary)

            for (token, owner, _pool, _position_id), track in tracks.items():
                if track.value <= 0:
                    continue
                tick = ticks.get(track.pool)
                if tick is None or track.in_range(tick):
                    continue
                balance = self.ledger.get(token, owner)
                if balance is None:
                    continue
                balance.net_balance_at_snapshots[i] -= track.value
                corrections += 1

            logger.info("snapshot %d (block %d): %d tracked positions, %d pools with tick", i + 1, boundary, len(tracks), len(ticks))

        logger.info("applied %d out-of-range position corrections", corrections)
        return corrections
