from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_UINT_RE = re.compile(r"[0-9]+")
_INT_RE = re.compile(r"-?[0-9]+")


class Address(bytes):
    """20-byte EVM address.

    Case is normalised once, when the address is parsed; after that the value
    is compared and hashed as raw bytes, so it can key a dict directly.
    """

    __slots__ = ()

    def __new__(cls, raw: bytes) -> Address:
        if len(raw) != 20:
            raise ValueError(f"address must be 20 bytes, got {len(raw)}")
        return super().__new__(cls, raw)

    @classmethod
    def parse(cls, value: Any) -> Address:
        if isinstance(value, Address):
            return value
        text = str(value)
        if not _ADDRESS_RE.fullmatch(text):
            raise ValueError(f"invalid address: {value!r}")
        return cls(bytes.fromhex(text[2:]))

    def __str__(self) -> str:
        return "0x" + self.hex()

    def __repr__(self) -> str:
        return f"Address('{self}')"


def parse_uint(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid unsigned integer: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"invalid unsigned integer: {value!r}")
        return value
    if not isinstance(value, str) or not _UINT_RE.fullmatch(value):
        raise ValueError(f"invalid unsigned integer: {value!r}")
    return int(value)


def parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid integer: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not _INT_RE.fullmatch(value):
        raise ValueError(f"invalid integer: {value!r}")
    return int(value)


def div_trunc(a: int, b: int) -> int:
    # Big-integer division semantics: rounds toward zero, so a negative
    # numerator is never pushed further away from zero.
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


@dataclass(frozen=True)
class Token:
    name: str
    address: Address
    underlying: str


@dataclass(frozen=True)
class Transfer:
    from_address: Address
    to_address: Address
    value: int
    block_number: int
    timestamp: int
    token_address: Address

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Transfer:
        return cls(
            from_address=Address.parse(record["from"]),
            to_address=Address.parse(record["to"]),
            value=parse_uint(record["value"]),
            block_number=parse_uint(record["blockNumber"]),
            timestamp=parse_uint(record.get("timestamp", 0)),
            token_address=Address.parse(record["tokenAddress"]),
        )


class LiquidityChangeType(str, Enum):
    DEPOSIT = "DEPOSIT"
    TRANSFER = "TRANSFER"
    WITHDRAW = "WITHDRAW"


@dataclass(frozen=True)
class LiquidityChange:
    token_address: Address
    lp_address: Address
    owner: Address
    change_type: LiquidityChangeType
    liquidity_change: int
    # Signed: positive for deposits, negative for withdrawals and transfers out.
    deposited_balance_change: int
    block_number: int
    timestamp: int
    # Concentrated-liquidity (V3) positions only.
    token_id: int | None = None
    pool_address: Address | None = None
    fee: int | None = None
    lower_tick: int | None = None
    upper_tick: int | None = None

    @property
    def is_v3(self) -> bool:
        return self.pool_address is not None and self.token_id is not None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> LiquidityChange:
        v3 = record.get("__typename") == "LiquidityV3Change" or (
            record.get("poolAddress") is not None and record.get("tokenId") is not None
        )
        extra: dict[str, Any] = {}
        if v3:
            extra = {
                "token_id": parse_uint(record["tokenId"]),
                "pool_address": Address.parse(record["poolAddress"]),
                "fee": parse_uint(record["fee"]),
                "lower_tick": parse_int(record["lowerTick"]),
                "upper_tick": parse_int(record["upperTick"]),
            }
        return cls(
            token_address=Address.parse(record["tokenAddress"]),
            lp_address=Address.parse(record["lpAddress"]),
            owner=Address.parse(record["owner"]),
            change_type=LiquidityChangeType(record["changeType"]),
            liquidity_change=parse_int(record["liquidityChange"]),
            deposited_balance_change=parse_int(record["depositedBalanceChange"]),
            block_number=parse_uint(record["blockNumber"]),
            timestamp=parse_uint(record.get("timestamp", 0)),
            **extra,
        )


@dataclass(frozen=True)
class Report:
    reporter: Address
    cheater: Address


@dataclass
class AccountBalance:
    transfers_in_from_approved: int = 0
    transfers_out: int = 0
    current_net_balance: int = 0
    net_balance_at_snapshots: list[int] = field(default_factory=list)

    @classmethod
    def zeroed(cls, snapshot_count: int) -> AccountBalance:
        return cls(net_balance_at_snapshots=[0] * snapshot_count)

    def recompute_current_balance(self) -> int:
        # Transfer path only: resets to the clamped transfer net, dropping any
        # earlier liquidity adjustment.
        self.current_net_balance = max(0, self.transfers_in_from_approved - self.transfers_out)
        return self.current_net_balance

    def apply_liquidity_delta(self, delta: int) -> int:
        # Liquidity path: signed delta applied as-is, no floor at zero.
        self.current_net_balance += delta
        return self.current_net_balance


@dataclass(frozen=True)
class TransferDetail:
    value: int
    from_is_approved_source: bool


@dataclass
class AccountTransfers:
    transfers_in: list[TransferDetail] = field(default_factory=list)
    transfers_out: list[int] = field(default_factory=list)


@dataclass
class LiquidityPositionTrack:
    value: int
    pool: Address
    lower_tick: int
    upper_tick: int

    def in_range(self, tick: int) -> bool:
        return self.lower_tick <= tick <= self.upper_tick


@dataclass(frozen=True)
class ReportOutcome:
    reporter: Address
    cheater: Address
    penalized_amount: int
    bounty_awarded: int


@dataclass
class TokenBalanceSummary:
    snapshots: list[int]
    average: int
    penalty: int = 0
    bounty: int = 0
    final: int = 0
    as_reporter: list[ReportOutcome] = field(default_factory=list)
    as_cheater: list[ReportOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class RewardPoolPlan:
    total_eligible: int
    inverse_fraction: int
    token_reward_share: int
