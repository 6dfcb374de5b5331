import pytest

from stablesim.allocation import AllocationLedger
from stablesim.core import Authorization, Clock, EventLog, PriceFeed, Token
from stablesim.pool import Asset, PoolCoordinator
from stablesim.rewards import RewardAccumulator

START = 1_000_000
OWNER = "owner"
SETTLEMENT = "settlement"


@pytest.fixture
def clock():
    return Clock(START)


@pytest.fixture
def log():
    return EventLog()


@pytest.fixture
def auth():
    return Authorization(OWNER)


@pytest.fixture
def usdc():
    return Token("USDC", 6)


@pytest.fixture
def dai():
    return Token("DAI", 18)


@pytest.fixture
def pool(clock, log, auth, usdc, dai):
    assets = [Asset(usdc, PriceFeed(10 ** 8)), Asset(dai, PriceFeed(10 ** 8))]
    return PoolCoordinator("p1", assets, 100, 4, 5000, clock, auth, SETTLEMENT, log)


@pytest.fixture
def seeded_pool(pool, usdc, dai):
    usdc.mint("alice", 2_000_000 * 10 ** 6)
    dai.mint("alice", 2_000_000 * 10 ** 18)
    pool.add_liquidity("alice", [1_000_000 * 10 ** 6, 1_000_000 * 10 ** 18])
    usdc.mint(SETTLEMENT, 100_000 * 10 ** 6)
    dai.mint(SETTLEMENT, 100_000 * 10 ** 18)
    return pool


@pytest.fixture
def lp_token():
    return Token("LP", 18)


@pytest.fixture
def gauge(lp_token, clock, log):
    return RewardAccumulator("g1", lp_token, clock, log)


@pytest.fixture
def gov():
    return Token("GOV", 18)


@pytest.fixture
def ledger(gov, clock, auth, log):
    led = AllocationLedger(gov, clock, auth, log)
    for k in range(3):
        g = RewardAccumulator(f"g{k}", Token(f"LP{k}", 18), clock, log)
        led.add_target(OWNER, f"target_{k}", g)
    return led
