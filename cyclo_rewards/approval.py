"""
Approved-source resolution for incoming transfers.

A sender is approved when it is listed directly in REWARDS_SOURCES, or when it
is a contract whose `factory()` is one of FACTORIES (i.e. a DEX pair/pool
deployed by a whitelisted factory). Lookups are cached for the whole run.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from .config import APPROVAL_BACKOFF_BASE_S, APPROVAL_MAX_RETRIES, FACTORIES, REWARDS_SOURCES
from .models import Address
from .rpc import RpcClient, RpcError, abi_words, decode_address_word, keccak_selector


logger = logging.getLogger(__name__)

FACTORY_SELECTOR = "0x" + keccak_selector("factory()")

# Error text meaning "this contract has no factory()"; retrying won't help.
NO_FACTORY_MARKERS = (
    'returned no data ("0x")',
    "revert",
    "invalid parameters",
    "invalid params",
)
INVALID_PARAMS_CODE = -32602


def read_factory(client: RpcClient, contract: Address) -> Address:
    res = client.eth_call(contract, FACTORY_SELECTOR)
    words = abi_words(res or "0x")
    if not words:
        raise RpcError('returned no data ("0x")')
    return decode_address_word(words[0])


def is_missing_factory_error(err: Exception) -> bool:
    if getattr(err, "code", None) == INVALID_PARAMS_CODE:
        return True
    msg = str(err).lower()
    return any(marker.lower() in msg for marker in NO_FACTORY_MARKERS)


class ApprovalResolver:
    def __init__(
        self,
        client: RpcClient,
        *,
        sources: Iterable[Address] = REWARDS_SOURCES,
        factories: Iterable[Address] = FACTORIES,
        retries: int = APPROVAL_MAX_RETRIES,
        backoff_base_s: float = APPROVAL_BACKOFF_BASE_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._sources = frozenset(sources)
        self._factories = frozenset(factories)
        self.retries = retries
        self.backoff_base_s = backoff_base_s
        self._sleep = sleep
        self._cache: dict[Address, bool] = {}

    def is_approved_source(self, source: Address) -> bool:
        cached = self._cache.get(source)
        if cached is not None:
            return cached

        if source in self._sources:
            self._cache[source] = True
            return True

        approved = self._lookup_factory(source)
        self._cache[source] = approved
        return approved

    def _lookup_factory(self, source: Address) -> bool:
        for attempt in range(self.retries):
            try:
                factory = read_factory(self._client, source)
            except (RpcError, ValueError) as e:
                if is_missing_factory_error(e):
                    return False
                if attempt < self.retries - 1:
                    # 0.5s, 1s, 2s, ...
                    self._sleep(self.backoff_base_s * (2**attempt))
                    continue
                logger.warning("Failed to check factory of %s after %d attempts: %s", source, self.retries, e)
                return False
            return factory in self._factories
        return False
