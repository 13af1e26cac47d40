"""
Tests for cyclo_rewards.liquidity - LP balance deltas, V3 tracking and range corrections.
"""

import dataclasses
from unittest.mock import Mock

import pytest

from cyclo_rewards.liquidity import SLOT0_SELECTOR, LiquidityTracker, PoolTickOracle, decode_slot0_tick
from cyclo_rewards.models import LiquidityChangeType
from cyclo_rewards.rpc import RpcError

from helpers import (
    APPROVED_SOURCE,
    OTHER_POOL,
    POOL,
    TOKEN_A,
    USER_1,
    USER_2,
    StaticOracle,
    slot0_result,
    transfer,
    v2_change,
    v3_change,
)


def snapshots_of(ledger, account, token=TOKEN_A):
    return ledger.get(token.address, account).net_balance_at_snapshots


# ============================================================================
# BALANCE DELTAS
# ============================================================================

class TestLiquidityDeltas:
    """Tests for applying LP changes to balances."""

    def test_deposit_adds_to_balance(self, ledger, tracker):
        assert tracker.apply_liquidity_change(v2_change(USER_1, 10, 50))
        assert snapshots_of(ledger, USER_1) == [10, 10]

    def test_withdraw_can_go_negative(self, ledger, tracker):
        """LP deltas are applied as-is, without the transfer floor."""
        tracker.apply_liquidity_change(v2_change(USER_1, -5, 50, change_type=LiquidityChangeType.WITHDRAW))
        assert ledger.get(TOKEN_A.address, USER_1).current_net_balance == -5
        assert snapshots_of(ledger, USER_1) == [-5, -5]

    def test_later_transfer_resets_to_transfer_net(self, ledger, tracker):
        """A transfer recomputes from transfer totals alone; the earlier LP credit is dropped."""
        ledger.apply_transfer(transfer(APPROVED_SOURCE, USER_1, 10, 10))
        tracker.apply_liquidity_change(v2_change(USER_1, 7, 20))
        ledger.apply_transfer(transfer(APPROVED_SOURCE, USER_1, 5, 150))
        assert snapshots_of(ledger, USER_1) == [17, 15]

    def test_transfer_after_negative_lp_balance_is_clamped(self, ledger, tracker):
        """Only the liquidity path can leave a negative slot; a later transfer writes a clamped value."""
        tracker.apply_liquidity_change(v2_change(USER_1, -5, 10, change_type=LiquidityChangeType.WITHDRAW))
        ledger.apply_transfer(transfer(APPROVED_SOURCE, USER_1, 3, 150))
        assert snapshots_of(ledger, USER_1) == [-5, 3]
        assert ledger.get(TOKEN_A.address, USER_1).current_net_balance == 3

    def test_sender_after_lp_deposit_is_clamped(self, ledger, tracker):
        tracker.apply_liquidity_change(v2_change(USER_1, 10, 10))
        ledger.apply_transfer(transfer(USER_1, USER_2, 4, 150))
        assert snapshots_of(ledger, USER_1) == [10, 0]

    def test_unlisted_token_skipped(self, ledger, tracker):
        change = v2_change(USER_1, 10, 50)
        change = dataclasses.replace(change, token_address=APPROVED_SOURCE)
        assert not tracker.apply_liquidity_change(change)
        assert list(ledger.addresses()) == []

    def test_v2_changes_are_not_tracked(self, tracker):
        tracker.apply_liquidity_change(v2_change(USER_1, 10, 50))
        assert tracker.tracks == [{}, {}]

    def test_out_of_order_rejected(self, ledger, tracker):
        ledger.apply_transfer(transfer(APPROVED_SOURCE, USER_1, 10, 120))
        with pytest.raises(ValueError):
            tracker.apply_liquidity_change(v2_change(USER_1, 10, 110))


# ============================================================================
# V3 TRACKING
# ============================================================================

class TestPositionTracking:
    """Tests for per-snapshot V3 position accumulation."""

    def test_tracked_only_in_later_snapshots(self, tracker):
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 150, -100, 100))
        key = (TOKEN_A.address, USER_1, POOL, 1)
        assert key not in tracker.tracks[0]
        assert tracker.tracks[1][key].value == 10

    def test_values_accumulate_and_latest_range_wins(self, tracker):
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        tracker.apply_liquidity_change(v3_change(USER_1, 5, 60, 400, 600))
        track = tracker.tracks[0][(TOKEN_A.address, USER_1, POOL, 1)]
        assert track.value == 15
        assert (track.lower_tick, track.upper_tick) == (400, 600)

    def test_positions_keyed_by_token_id(self, tracker):
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100, token_id=1))
        tracker.apply_liquidity_change(v3_change(USER_1, 4, 50, -100, 100, token_id=2))
        assert len(tracker.tracks[0]) == 2


# ============================================================================
# RANGE CORRECTIONS
# ============================================================================

class TestRangeCorrections:
    """Tests for dropping out-of-range positions per snapshot."""

    def test_out_of_range_only_at_that_snapshot(self, ledger):
        oracle = StaticOracle({100: {POOL: 500}, 200: {POOL: 0}})
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))

        assert tracker.apply_range_corrections() == 1
        assert snapshots_of(ledger, USER_1) == [0, 10]
        # Current balance is not a snapshot and is left alone.
        assert ledger.get(TOKEN_A.address, USER_1).current_net_balance == 10

    def test_range_bounds_inclusive(self, ledger):
        oracle = StaticOracle({100: {POOL: 100}, 200: {POOL: -100}})
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        assert tracker.apply_range_corrections() == 0
        assert snapshots_of(ledger, USER_1) == [10, 10]

    def test_withdrawn_position_not_corrected(self, ledger):
        """Positions with no remaining value are skipped."""
        oracle = StaticOracle({100: {POOL: 500}, 200: {POOL: 500}})
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        tracker.apply_liquidity_change(
            v3_change(USER_1, -10, 60, -100, 100, change_type=LiquidityChangeType.WITHDRAW)
        )
        assert tracker.apply_range_corrections() == 0
        assert snapshots_of(ledger, USER_1) == [0, 0]

    def test_pool_without_tick_skipped(self, ledger):
        oracle = StaticOracle({100: {OTHER_POOL: 500}})
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        assert tracker.apply_range_corrections() == 0
        assert snapshots_of(ledger, USER_1) == [10, 10]

    def test_oracle_queried_per_snapshot_block(self, ledger):
        oracle = StaticOracle()
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        tracker.apply_range_corrections()
        assert oracle.calls == [((POOL,), 100), ((POOL,), 200)]

    def test_configured_pool_list_is_used(self, ledger):
        oracle = StaticOracle()
        tracker = LiquidityTracker(ledger, oracle, pools=[OTHER_POOL, POOL])
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 150, -100, 100))
        tracker.apply_range_corrections()
        # Snapshot 1 has no tracked positions, so only snapshot 2 is queried.
        assert oracle.calls == [((OTHER_POOL, POOL), 200)]

    def test_oracle_failure_propagates(self, ledger):
        oracle = Mock()
        oracle.get_ticks.side_effect = RpcError("RPC transport error: timed out")
        tracker = LiquidityTracker(ledger, oracle)
        tracker.apply_liquidity_change(v3_change(USER_1, 10, 50, -100, 100))
        with pytest.raises(RpcError):
            tracker.apply_range_corrections()

    def test_runs_once(self, tracker):
        tracker.apply_range_corrections()
        with pytest.raises(RuntimeError):
            tracker.apply_range_corrections()
        with pytest.raises(RuntimeError):
            tracker.apply_liquidity_change(v2_change(USER_1, 1, 300))


# ============================================================================
# TICK ORACLE
# ============================================================================

class TestPoolTickOracle:
    """Tests for batched slot0 reads."""

    @pytest.fixture
    def client(self):
        return Mock()

    @pytest.fixture
    def sleep(self):
        return Mock()

    @pytest.fixture
    def oracle(self, client, sleep):
        return PoolTickOracle(client, max_tries=3, retry_delay_s=10.0, sleep=sleep)

    def test_decodes_signed_ticks(self, oracle, client):
        client.batch.return_value = [(slot0_result(-1200), None), (slot0_result(345), None)]
        assert oracle.get_ticks([POOL, OTHER_POOL], 200) == {POOL: -1200, OTHER_POOL: 345}
        calls = client.batch.call_args.args[0]
        assert calls[0] == ("eth_call", [{"to": str(POOL), "data": SLOT0_SELECTOR}, "0xc8"])

    def test_failed_items_left_out(self, oracle, client):
        client.batch.return_value = [(None, RpcError("execution reverted")), ("0x", None)]
        assert oracle.get_ticks([POOL, OTHER_POOL], 200) == {}

    def test_retries_with_fixed_delay(self, oracle, client, sleep):
        client.batch.side_effect = [RpcError("boom"), RpcError("boom"), [(slot0_result(7), None)]]
        assert oracle.get_ticks([POOL], 100) == {POOL: 7}
        assert [c.args[0] for c in sleep.call_args_list] == [10.0, 10.0]

    def test_raises_after_max_tries(self, oracle, client):
        client.batch.side_effect = RpcError("boom")
        with pytest.raises(RpcError):
            oracle.get_ticks([POOL], 100)
        assert client.batch.call_count == 3

    def test_memoized_per_block_and_pools(self, oracle, client):
        client.batch.return_value = [(slot0_result(1), None)]
        oracle.get_ticks([POOL], 100)
        oracle.get_ticks([POOL], 100)
        assert client.batch.call_count == 1
        oracle.get_ticks([POOL], 101)
        assert client.batch.call_count == 2

    def test_decode_slot0_short_result(self):
        with pytest.raises(ValueError):
            decode_slot0_tick("0x" + "00" * 32)
