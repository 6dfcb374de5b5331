from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Literal
import numpy as np

from .config import ScenarioConfig
from .core import Authorization, Clock, EventLog, PriceFeed, Token
from .pool import Asset, PoolCoordinator
from .rewards import RewardAccumulator

AgentRole = Literal["lp", "trader", "voter", "briber"]

SETTLEMENT_ID = "settlement"
OWNER_ID = "treasury"

@dataclass
class Agent:
    agent_id: str
    role: AgentRole

def to_units(amount: float, decimals: int) -> int:
    return int(round(amount * 10 ** decimals))

def from_units(amount: int, decimals: int) -> float:
    return amount / 10 ** decimals

class PoolFactory:
    def __init__(self, cfg: ScenarioConfig, clock: Clock, log: EventLog, auth: Authorization) -> None:
        self.cfg = cfg
        self.clock = clock
        self.log = log
        self.auth = auth
        self.tokens: Dict[str, Token] = {}
        self.feeds: Dict[str, PriceFeed] = {}
        self.asset_universe: Dict[str, Asset] = {}

        for spec in cfg.assets:
            token = Token(spec.symbol, spec.decimals)
            feed = PriceFeed(to_units(spec.price, cfg.feed_decimals), decimals=cfg.feed_decimals)
            self.tokens[spec.symbol] = token
            self.feeds[spec.symbol] = feed
            self.asset_universe[spec.symbol] = Asset(token=token, feed=feed)
        if cfg.governance_symbol not in self.tokens:
            self.tokens[cfg.governance_symbol] = Token(cfg.governance_symbol, 18)

        self.agent_counter = 0
        self.pool_counter = 0

    def _new_agent_id(self, role: AgentRole) -> str:
        self.agent_counter += 1
        return f"{role}_{self.agent_counter:04d}"

    def _new_pool_id(self) -> str:
        self.pool_counter += 1
        return f"pool_{self.pool_counter:04d}"

    def governance_token(self) -> Token:
        return self.tokens[self.cfg.governance_symbol]

    def pool_asset_symbols(self, k: int) -> List[str]:
        """First pool lists every asset; later pools pair neighbouring assets."""
        symbols = [a.symbol for a in self.cfg.assets]
        if k == 0 or len(symbols) == 2:
            return symbols
        a = symbols[(k - 1) % len(symbols)]
        b = symbols[k % len(symbols)]
        return [a, b]

    def create_pool(self, k: int) -> PoolCoordinator:
        cfg = self.cfg
        pool_id = self._new_pool_id()
        assets = [self.asset_universe[s] for s in self.pool_asset_symbols(k)]
        pool = PoolCoordinator(
            pool_id=pool_id,
            assets=assets,
            amplification=cfg.amplification,
            fee_bps=cfg.fee_bps,
            admin_fee_bps=cfg.admin_fee_bps,
            clock=self.clock,
            auth=self.auth,
            settlement=SETTLEMENT_ID,
            log=self.log,
            ma_half_time=cfg.ma_half_time,
        )
        pool.debug_ledger = cfg.debug_ledger
        return pool

    def create_gauge(self, pool: PoolCoordinator) -> RewardAccumulator:
        gauge = RewardAccumulator(
            gauge_id=f"{pool.pool_id}-gauge",
            stake_token=pool.lp_token,
            clock=self.clock,
            log=self.log,
            min_duration=self.cfg.min_reward_duration,
        )
        gauge.debug_ledger = self.cfg.debug_ledger
        return gauge

    def seed_pool(self, pool: PoolCoordinator) -> int:
        """Owner provides balanced initial liquidity."""
        amounts = []
        for asset in pool.assets:
            amount = to_units(self.cfg.initial_liquidity_per_asset, asset.decimals)
            asset.token.mint(OWNER_ID, amount)
            amounts.append(amount)
        return pool.add_liquidity(OWNER_ID, amounts)

    def create_agent(self, role: AgentRole) -> Agent:
        cfg = self.cfg
        agent = Agent(agent_id=self._new_agent_id(role), role=role)
        if role in ("lp", "trader"):
            mean = cfg.lp_wallet_mean if role == "lp" else cfg.trader_wallet_mean
            for spec in cfg.assets:
                amount = float(max(0.0, np.random.exponential(mean)))
                self.tokens[spec.symbol].mint(agent.agent_id, to_units(amount, spec.decimals))
        elif role == "voter":
            amount = float(max(1.0, np.random.exponential(cfg.voter_governance_mean)))
            self.governance_token().mint(agent.agent_id, to_units(amount, 18))
        elif role == "briber":
            token = self.tokens[cfg.bribe_symbol]
            token.mint(agent.agent_id, to_units(cfg.briber_wallet, token.decimals))
        return agent

