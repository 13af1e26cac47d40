"""
cyclo_rewards - balance accounting and reward allocation for cy* token holders.

Usage:
    from cyclo_rewards import Processor

    processor = Processor(snapshot_blocks, reports)
    for event in events:
        processor.process_event(event)
    processor.process_lp_range()

    eligible = processor.get_eligible_balances()
    rewards = processor.calculate_rewards(reward_pool, eligible)
"""

from .allocator import allocate_rewards, plan_reward_pools, rewards_by_address
from .approval import ApprovalResolver
from .eligibility import compute_eligibility
from .ledger import BalanceLedger
from .liquidity import LiquidityTracker, PoolTickOracle
from .models import (
    AccountBalance,
    Address,
    LiquidityChange,
    LiquidityChangeType,
    Report,
    RewardPoolPlan,
    Token,
    TokenBalanceSummary,
    Transfer,
)
from .processor import Processor
from .snapshots import generate_snapshot_blocks

__version__ = "0.1.0"

__all__ = [
    "AccountBalance",
    "Address",
    "ApprovalResolver",
    "BalanceLedger",
    "LiquidityChange",
    "LiquidityChangeType",
    "LiquidityTracker",
    "PoolTickOracle",
    "Processor",
    "Report",
    "RewardPoolPlan",
    "Token",
    "TokenBalanceSummary",
    "Transfer",
    "allocate_rewards",
    "compute_eligibility",
    "generate_snapshot_blocks",
    "plan_reward_pools",
    "rewards_by_address",
]
