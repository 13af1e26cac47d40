"""Shared constants, builders and fakes for the cyclo_rewards tests."""

from __future__ import annotations

from cyclo_rewards.models import Address, LiquidityChange, LiquidityChangeType, Token, Transfer


ONE = 10**18

TOKEN_A = Token(name="cyA", address=Address.parse("0x" + "a1" * 20), underlying="A")
TOKEN_B = Token(name="cyB", address=Address.parse("0x" + "b2" * 20), underlying="B")
UNLISTED_TOKEN = Address.parse("0x" + "cc" * 20)

APPROVED_SOURCE = Address.parse("0x1000000000000000000000000000000000000000")
FACTORY_SOURCE = Address.parse("0x2000000000000000000000000000000000000000")
USER_1 = Address.parse("0x3000000000000000000000000000000000000000")
USER_2 = Address.parse("0x4000000000000000000000000000000000000000")
USER_3 = Address.parse("0x5000000000000000000000000000000000000000")
POOL = Address.parse("0x" + "9f" * 20)
OTHER_POOL = Address.parse("0x" + "8e" * 20)
LP_TOKEN = Address.parse("0x" + "77" * 20)


class StaticResolver:
    """Approves a fixed set of senders and records every lookup."""

    def __init__(self, approved=(APPROVED_SOURCE, FACTORY_SOURCE)):
        self.approved = set(approved)
        self.calls = []

    def is_approved_source(self, source):
        self.calls.append(source)
        return source in self.approved


class StaticOracle:
    """Serves ticks from {block: {pool: tick}} and records every query."""

    def __init__(self, ticks_by_block=None):
        self.ticks_by_block = ticks_by_block or {}
        self.calls = []

    def get_ticks(self, pools, block_number):
        self.calls.append((tuple(pools), block_number))
        ticks = self.ticks_by_block.get(block_number, {})
        return {p: t for p, t in ticks.items() if p in pools}


def transfer(frm, to, value, block, token=TOKEN_A):
    return Transfer(
        from_address=frm,
        to_address=to,
        value=value,
        block_number=block,
        timestamp=1_700_000_000 + block,
        token_address=token.address,
    )


def v2_change(owner, delta, block, token=TOKEN_A, change_type=LiquidityChangeType.DEPOSIT):
    return LiquidityChange(
        token_address=token.address,
        lp_address=LP_TOKEN,
        owner=owner,
        change_type=change_type,
        liquidity_change=abs(delta),
        deposited_balance_change=delta,
        block_number=block,
        timestamp=1_700_000_000 + block,
    )


def v3_change(
    owner,
    delta,
    block,
    lower,
    upper,
    token=TOKEN_A,
    pool=POOL,
    token_id=1,
    change_type=LiquidityChangeType.DEPOSIT,
):
    return LiquidityChange(
        token_address=token.address,
        lp_address=LP_TOKEN,
        owner=owner,
        change_type=change_type,
        liquidity_change=abs(delta),
        deposited_balance_change=delta,
        block_number=block,
        timestamp=1_700_000_000 + block,
        token_id=token_id,
        pool_address=pool,
        fee=3000,
        lower_tick=lower,
        upper_tick=upper,
    )


def address_word(address):
    return "0x" + "0" * 24 + address.hex()


def slot0_result(tick, sqrt_price_x96=79228162514264337593543950336):
    words = [sqrt_price_x96, tick % 2**256, 1, 1, 1, 0, 1]
    return "0x" + "".join(format(w, "064x") for w in words)
