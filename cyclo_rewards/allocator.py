"""
Split a fixed reward pool across tokens, then across accounts within a token.

Token shares are weighted by the inverse of each token's total eligible
balance (fixed point, ONE = 1e18). Inside a token, accounts are paid pro rata
to their final balance. All divisions floor (toward zero), so the sum of
rewards can fall short of the pool by at most one unit per reward entry.
"""

from __future__ import annotations

import logging

from .config import ONE
from .eligibility import EligibleBalances
from .models import Address, RewardPoolPlan, div_trunc


logger = logging.getLogger(__name__)

# token -> account -> reward
Rewards = dict[Address, dict[Address, int]]


def total_eligible_balances(eligible: EligibleBalances) -> dict[Address, int]:
    return {token: sum(s.final for s in per_account.values()) for token, per_account in eligible.items()}


def tokens_with_balance(totals: dict[Address, int]) -> list[Address]:
    return [token for token, total in totals.items() if total > 0]


def plan_reward_pools(eligible: EligibleBalances, reward_pool: int, *, scale: int = ONE) -> dict[Address, RewardPoolPlan]:
    totals = total_eligible_balances(eligible)
    sum_of_all_balances = sum(totals.values())

    inverse_fractions = {
        token: div_trunc(sum_of_all_balances * scale, totals[token]) for token in tokens_with_balance(totals)
    }
    sum_of_inverse_fractions = sum(inverse_fractions.values())
    if sum_of_inverse_fractions <= 0:
        if inverse_fractions:
            logger.warning("inverse fractions sum to %d; nothing to distribute", sum_of_inverse_fractions)
        return {}

    plans: dict[Address, RewardPoolPlan] = {}
    for token, inverse_fraction in inverse_fractions.items():
        share = div_trunc(inverse_fraction * reward_pool, sum_of_inverse_fractions)
        logger.info("token %s: total eligible %d, reward share %d", token, totals[token], share)
        plans[token] = RewardPoolPlan(
            total_eligible=totals[token],
            inverse_fraction=inverse_fraction,
            token_reward_share=share,
        )
    return plans


def allocate_rewards(eligible: EligibleBalances, reward_pool: int) -> Rewards:
    rewards: Rewards = {}
    for token, plan in plan_reward_pools(eligible, reward_pool).items():
        rewards[token] = {
            address: div_trunc(summary.final * plan.token_reward_share, plan.total_eligible)
            for address, summary in eligible[token].items()
        }
    return rewards


def rewards_by_address(rewards: Rewards) -> dict[Address, int]:
    totals: dict[Address, int] = {}
    for per_account in rewards.values():
        for address, amount in per_account.items():
            totals[address] = totals.get(address, 0) + amount
    return totals
