from __future__ import annotations

import logging
from typing import Iterable

from .config import BOUNTY_PERCENT
from .ledger import BalanceLedger
from .models import Address, Report, ReportOutcome, TokenBalanceSummary, div_trunc


logger = logging.getLogger(__name__)

# token -> account -> summary
EligibleBalances = dict[Address, dict[Address, TokenBalanceSummary]]


def unique_addresses(ledger: BalanceLedger, reports: Iterable[Report]) -> list[Address]:
    # Reporters are included even without any balance: they can still earn a bounty.
    seen: dict[Address, None] = {}
    for report in reports:
        seen.setdefault(report.reporter)
    for address in ledger.addresses():
        seen.setdefault(address)
    return list(seen)


def compute_eligibility(
    ledger: BalanceLedger,
    reports: Iterable[Report],
    *,
    bounty_percent: int = BOUNTY_PERCENT,
) -> EligibleBalances:
    reports = list(reports)
    addresses = unique_addresses(ledger, reports)
    n = ledger.snapshot_count

    eligible: EligibleBalances = {}
    for token, accounts in ledger.balances.items():
        per_account: dict[Address, TokenBalanceSummary] = {}
        for address in addresses:
            balance = accounts.get(address)
            snapshots = list(balance.net_balance_at_snapshots) if balance is not None else [0] * n
            per_account[address] = TokenBalanceSummary(snapshots=snapshots, average=div_trunc(sum(snapshots), n))
        eligible[token] = per_account

    # Each report costs the cheater its full average again; penalties stack.
    for report in reports:
        for per_account in eligible.values():
            cheater = per_account.get(report.cheater)
            reporter = per_account.get(report.reporter)
            if cheater is None or reporter is None:
                continue
            penalty = cheater.average
            bounty = div_trunc(penalty * bounty_percent, 100)
            cheater.penalty += penalty
            reporter.bounty += bounty
            outcome = ReportOutcome(
                reporter=report.reporter,
                cheater=report.cheater,
                penalized_amount=penalty,
                bounty_awarded=bounty,
            )
            reporter.as_reporter.append(outcome)
            cheater.as_cheater.append(outcome)

    for token, per_account in eligible.items():
        for address, summary in per_account.items():
            summary.final = summary.average - summary.penalty + summary.bounty
            if summary.final < 0:
                logger.warning(
                    "negative final balance for %s in token %s: average=%d penalty=%d bounty=%d",
                    address,
                    token,
                    summary.average,
                    summary.penalty,
                    summary.bounty,
                )
    return eligible
