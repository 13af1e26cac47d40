from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from .allocator import Rewards, allocate_rewards, rewards_by_address
from .approval import ApprovalResolver
from .config import CYTOKENS, RPC_URL_DEFAULT
from .eligibility import EligibleBalances, compute_eligibility
from .ledger import BalanceLedger, SourceResolver
from .liquidity import LiquidityTracker, PoolTickOracle
from .models import Address, LiquidityChange, Report, Token, Transfer
from .rpc import RpcClient


Event = Union[Transfer, LiquidityChange]


@dataclass(frozen=True)
class TotalsCheck:
    average: int
    penalty: int
    bounty: int
    final: int

    @property
    def consistent(self) -> bool:
        return self.average - self.penalty + self.bounty == self.final


class Processor:
    """Wires ledger -> liquidity tracker -> eligibility -> allocator for one run."""

    def __init__(
        self,
        snapshots: Sequence[int],
        reports: Iterable[Report] = (),
        client: RpcClient | None = None,
        *,
        tokens: Iterable[Token] = CYTOKENS,
        pools: Iterable[Address] | None = None,
        resolver: SourceResolver | None = None,
        oracle: PoolTickOracle | None = None,
        rpc_url: str = RPC_URL_DEFAULT,
    ) -> None:
        if client is None and (resolver is None or oracle is None):
            client = RpcClient(rpc_url)
        if resolver is None:
            # The resolver runs its own backoff; one transport attempt per try.
            resolver = ApprovalResolver(client.with_max_attempts(1))
        self.resolver = resolver
        self.oracle = oracle if oracle is not None else PoolTickOracle(client)
        self.ledger = BalanceLedger(tokens, snapshots, self.resolver)
        self.liquidity = LiquidityTracker(self.ledger, self.oracle, pools=pools)
        self.reports = list(reports)

    @property
    def snapshots(self) -> list[int]:
        return self.ledger.snapshots

    def process_transfer(self, transfer: Transfer) -> bool:
        return self.ledger.apply_transfer(transfer)

    def process_liquidity_change(self, change: LiquidityChange) -> bool:
        return self.liquidity.apply_liquidity_change(change)

    def process_event(self, event: Event) -> bool:
        if isinstance(event, Transfer):
            return self.process_transfer(event)
        return self.process_liquidity_change(event)

    def process_lp_range(self) -> int:
        return self.liquidity.apply_range_corrections()

    def get_eligible_balances(self) -> EligibleBalances:
        return compute_eligibility(self.ledger, self.reports)

    def calculate_rewards(self, reward_pool: int, eligible: EligibleBalances | None = None) -> Rewards:
        if eligible is None:
            eligible = self.get_eligible_balances()
        return allocate_rewards(eligible, reward_pool)

    def rewards_by_address(self, rewards: Rewards) -> dict[Address, int]:
        return rewards_by_address(rewards)

    def verify_totals(self, eligible: EligibleBalances) -> dict[Address, TotalsCheck]:
        out: dict[Address, TotalsCheck] = {}
        for token, per_account in eligible.items():
            summaries = per_account.values()
            out[token] = TotalsCheck(
                average=sum(s.average for s in summaries),
                penalty=sum(s.penalty for s in summaries),
                bounty=sum(s.bounty for s in summaries),
                final=sum(s.final for s in summaries),
            )
        return out
