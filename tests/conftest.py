import pytest

from cyclo_rewards.ledger import BalanceLedger
from cyclo_rewards.liquidity import LiquidityTracker

from helpers import TOKEN_A, TOKEN_B, StaticOracle, StaticResolver


@pytest.fixture
def resolver():
    return StaticResolver()


@pytest.fixture
def oracle():
    return StaticOracle()


@pytest.fixture
def ledger(resolver):
    """Two tokens, two snapshots at blocks 100 and 200."""
    return BalanceLedger([TOKEN_A, TOKEN_B], [100, 200], resolver)


@pytest.fixture
def tracker(ledger, oracle):
    return LiquidityTracker(ledger, oracle)
