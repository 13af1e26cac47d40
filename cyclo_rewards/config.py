from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .models import Address, Token, parse_uint


ONE = 10**18
DEFAULT_REWARD_POOL = 1_000_000 * ONE  # 1M rFLR

RPC_URL_DEFAULT = "https://flare-api.flare.network/ext/C/rpc"

REWARDS_SOURCES: tuple[Address, ...] = tuple(
    Address.parse(a)
    for a in (
        "0xCEe8Cd002F151A536394E564b84076c41bBBcD4d",  # orderbook
        "0x0f3D8a38D4c74afBebc2c42695642f0e3acb15D3",  # Sparkdex Universal Router
    )
)

FACTORIES: tuple[Address, ...] = tuple(
    Address.parse(a)
    for a in (
        "0x16b619B04c961E8f4F06C10B42FDAbb328980A89",  # Sparkdex V2
        "0x8A2578d23d4C532cC9A98FaD91C0523f5efDE652",  # Sparkdex V3
        "0x440602f459D7Dd500a74528003e6A20A46d6e2A6",  # Blazeswap
    )
)

CYTOKENS: tuple[Token, ...] = (
    Token(name="cysFLR", address=Address.parse("0x19831cfB53A0dbeAD9866C43557C1D48DfF76567"), underlying="sFLR"),
    Token(name="cyWETH", address=Address.parse("0xd8BF1d2720E9fFD01a2F9A2eFc3E101a05B852b4"), underlying="WETH"),
)

# Share of a cheater's average balance credited to the reporter.
BOUNTY_PERCENT = 10

APPROVAL_MAX_RETRIES = 8
APPROVAL_BACKOFF_BASE_S = 0.5

ORACLE_MAX_TRIES = 3
ORACLE_RETRY_DELAY_S = 10.0

DEFAULT_SNAPSHOT_COUNT = 30

# Must match the header expected by the rNat distribution tool.
REWARDS_CSV_COLUMN_HEADER_ADDRESS = "recipient address"
REWARDS_CSV_COLUMN_HEADER_REWARD = "reward amount"


def env(name: str, default: str, environ: Mapping[str, str] | None = None) -> str:
    val = (os.environ if environ is None else environ).get(name)
    return val if val else default


@dataclass(frozen=True)
class Settings:
    rpc_url: str = RPC_URL_DEFAULT
    seed: str = ""
    start_snapshot: int = 0
    end_snapshot: int = 0
    snapshot_count: int = DEFAULT_SNAPSHOT_COUNT
    reward_pool: int = DEFAULT_REWARD_POOL
    data_dir: Path = Path("data")
    output_dir: Path = Path("output")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        def _int(name: str, default: int) -> int:
            raw = env(name, str(default), environ)
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        settings = cls(
            rpc_url=env("RPC_URL", RPC_URL_DEFAULT, environ),
            seed=env("SEED", "", environ),
            start_snapshot=_int("START_SNAPSHOT", 0),
            end_snapshot=_int("END_SNAPSHOT", 0),
            snapshot_count=_int("SNAPSHOT_COUNT", DEFAULT_SNAPSHOT_COUNT),
            reward_pool=parse_uint(env("REWARD_POOL", str(DEFAULT_REWARD_POOL), environ)),
            data_dir=Path(env("DATA_DIR", "data", environ)),
            output_dir=Path(env("OUTPUT_DIR", "output", environ)),
        )
        settings.validate()
        return settings

    def replace(self, **overrides: Any) -> Settings:
        settings = dataclasses.replace(self, **{k: v for k, v in overrides.items() if v is not None})
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.start_snapshot < 0 or self.end_snapshot < 0:
            raise ValueError("snapshot blocks must be non-negative")
        if self.start_snapshot > self.end_snapshot:
            raise ValueError(f"START_SNAPSHOT {self.start_snapshot} > END_SNAPSHOT {self.end_snapshot}")
        if self.snapshot_count < 1:
            raise ValueError("SNAPSHOT_COUNT must be at least 1")
        if self.reward_pool < 0:
            raise ValueError("REWARD_POOL must be non-negative")
