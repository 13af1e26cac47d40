"""
Per-token account ledger with multi-snapshot sampling in one forward pass.

Events must arrive in non-decreasing block order. Every event rewrites the
snapshot slots whose boundary is still at or after the event's block, so once
the stream is exhausted slot i holds the balance as of snapshot block i.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Protocol, Sequence

from .models import AccountBalance, AccountTransfers, Address, Token, Transfer, TransferDetail


logger = logging.getLogger(__name__)


class SourceResolver(Protocol):
    def is_approved_source(self, source: Address) -> bool: ...


class BalanceLedger:
    def __init__(self, tokens: Iterable[Token], snapshots: Sequence[int], resolver: SourceResolver) -> None:
        self.snapshots: list[int] = [int(s) for s in snapshots]
        if not self.snapshots:
            raise ValueError("at least one snapshot block is required")
        self.tokens: list[Token] = list(tokens)
        self.balances: dict[Address, dict[Address, AccountBalance]] = {t.address: {} for t in self.tokens}
        self.transfers: dict[Address, AccountTransfers] = {}
        self._resolver = resolver
        self._last_block = -1

    @property
    def snapshot_count(self) -> int:
        return len(self.snapshots)

    def is_eligible_token(self, token: Address) -> bool:
        return token in self.balances

    def get(self, token: Address, account: Address) -> AccountBalance | None:
        return self.balances.get(token, {}).get(account)

    def account(self, token: Address, account: Address) -> AccountBalance:
        accounts = self.balances[token]
        balance = accounts.get(account)
        if balance is None:
            balance = accounts[account] = AccountBalance.zeroed(self.snapshot_count)
        return balance

    def addresses(self) -> Iterator[Address]:
        seen: set[Address] = set()
        for accounts in self.balances.values():
            for address in accounts:
                if address not in seen:
                    seen.add(address)
                    yield address

    def advance_to(self, block_number: int) -> None:
        if block_number < self._last_block:
            raise ValueError(f"event at block {block_number} arrived after block {self._last_block}; events must be sorted by block")
        self._last_block = block_number

    def fill_snapshots(self, balance: AccountBalance, block_number: int) -> None:
        for i, boundary in enumerate(self.snapshots):
            if block_number <= boundary:
                balance.net_balance_at_snapshots[i] = balance.current_net_balance

    def _log_transfer(self, transfer: Transfer, approved: bool) -> None:
        incoming = self.transfers.setdefault(transfer.to_address, AccountTransfers())
        incoming.transfers_in.append(TransferDetail(value=transfer.value, from_is_approved_source=approved))
        outgoing = self.transfers.setdefault(transfer.from_address, AccountTransfers())
        outgoing.transfers_out.append(transfer.value)

    def apply_transfer(self, transfer: Transfer) -> bool:
        """Apply one transfer; returns False when the token is not tracked."""
        token = transfer.token_address
        if not self.is_eligible_token(token):
            return False
        self.advance_to(transfer.block_number)

        approved = self._resolver.is_approved_source(transfer.from_address)
        self._log_transfer(transfer, approved)

        receiver = self.account(token, transfer.to_address)
        sender = self.account(token, transfer.from_address)

        if approved:
            receiver.transfers_in_from_approved += transfer.value
            receiver.recompute_current_balance()
            self.fill_snapshots(receiver, transfer.block_number)

        # Outgoing value always counts, whoever the recipient is.
        sender.transfers_out += transfer.value
        sender.recompute_current_balance()
        self.fill_snapshots(sender, transfer.block_number)

        logger.debug(
            "transfer %s -> %s value=%d block=%d approved=%s",
            transfer.from_address,
            transfer.to_address,
            transfer.value,
            transfer.block_number,
            approved,
        )
        return True
