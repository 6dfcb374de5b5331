from __future__ import annotations
from typing import Callable, Dict, List, Optional, Tuple
import logging
import numpy as np
import random

from .allocation import AllocationLedger
from .config import ScenarioConfig
from .core import (
    PRECISION, Authorization, Clock, Event, EventLog, PoolError, SwapReceipt, Token,
)
from .factory import Agent, PoolFactory, OWNER_ID, SETTLEMENT_ID, from_units, to_units
from .metrics import MetricsStore
from .pool import FEE_DENOMINATOR, PoolCoordinator
from .rewards import RewardAccumulator

logger = logging.getLogger(__name__)

TREASURY_GOV_SUPPLY = 10 ** 9

class SimulationEngine:
    def __init__(self, cfg: ScenarioConfig, seed: int = 1) -> None:
        self.cfg = cfg
        self.rng = random.Random(seed)
        np.random.seed(seed)

        self.tick: int = 0
        self.clock = Clock(cfg.start_time)
        self.log = EventLog(maxlen=cfg.event_log_maxlen)
        self.metrics = MetricsStore()
        self.auth = Authorization(OWNER_ID)

        self.factory = PoolFactory(cfg, self.clock, self.log, self.auth)
        self.governance: Token = self.factory.governance_token()
        self.ledger = AllocationLedger(
            self.governance, self.clock, self.auth, log=self.log, lock_duration=cfg.lock_duration,
        )
        self.ledger.debug_ledger = cfg.debug_ledger

        self.agents: Dict[str, Agent] = {}
        self.pools: Dict[str, PoolCoordinator] = {}
        self.gauges: Dict[str, RewardAccumulator] = {}

        self._failures_tick: Dict[str, int] = {}
        self._failures_total: Dict[str, int] = {}
        self._swap_count_tick: int = 0
        self._swap_volume_tick: float = 0.0
        self._fees_tick: float = 0.0
        self._rewards_paid_tick: Dict[str, float] = {}
        self._bribes_tick: float = 0.0
        self._emissions_tick: float = 0.0

        self._bootstrap()

    def _bootstrap(self) -> None:
        cfg = self.cfg
        self.governance.mint(OWNER_ID, to_units(TREASURY_GOV_SUPPLY, self.governance.decimals))
        for k in range(cfg.num_pools):
            pool = self.factory.create_pool(k)
            self.factory.seed_pool(pool)
            gauge = self.factory.create_gauge(pool)
            self.pools[pool.pool_id] = pool
            self.gauges[pool.pool_id] = gauge
            self.ledger.add_target(OWNER_ID, pool.pool_id, gauge)
        # treasury stakes its seed liquidity so early emissions have a recipient
        for pool_id, pool in self.pools.items():
            seeded = pool.lp_token.balance_of(OWNER_ID)
            if seeded > 0:
                self.gauges[pool_id].stake(OWNER_ID, seeded)

        roles = (
            ("lp", cfg.num_lps),
            ("trader", cfg.num_traders),
            ("voter", cfg.num_voters),
            ("briber", cfg.num_bribers),
        )
        for role, count in roles:
            for _ in range(max(0, int(count))):
                agent = self.factory.create_agent(role)
                self.agents[agent.agent_id] = agent
        logger.info("bootstrapped %d pools and %d agents", len(self.pools), len(self.agents))

    # -----------------------------
    # operation seam
    # -----------------------------
    def _attempt(self, op: str, actor: str, fn: Callable, *args,
                 pool_id: Optional[str] = None, **kwargs) -> Tuple[bool, object]:
        """Run one core operation; failures become OP_FAILED events tagged with the error."""
        try:
            return True, fn(*args, **kwargs)
        except PoolError as exc:
            self._failures_tick[exc.tag] = self._failures_tick.get(exc.tag, 0) + 1
            self._failures_total[exc.tag] = self._failures_total.get(exc.tag, 0) + 1
            logger.info("%s by %s failed (%s): %s", op, actor, exc.tag, exc)
            self.log.add(Event(self.clock.now, "OP_FAILED", actor_id=actor, pool_id=pool_id,
                               meta={"op": op, "reason": exc.tag}))
            return False, exc

    def _agents_with_role(self, role: str) -> List[Agent]:
        return [a for a in self.agents.values() if a.role == role]

    # -----------------------------
    # exogenous prices
    # -----------------------------
    def _apply_price_noise(self) -> None:
        cfg = self.cfg
        sigma = float(cfg.price_noise_bps) / 10_000.0
        for spec in cfg.assets:
            price = spec.price
            if cfg.depeg_tick is not None and self.tick >= cfg.depeg_tick and spec.symbol == cfg.depeg_asset:
                price = cfg.depeg_price
            if sigma > 0.0:
                price = price * (1.0 + float(np.random.normal(0.0, sigma)))
            self.factory.feeds[spec.symbol].set_price(max(1, to_units(price, cfg.feed_decimals)))

    # -----------------------------
    # behaviour
    # -----------------------------
    def _lp_activity(self) -> None:
        cfg = self.cfg
        pools = list(self.pools.values())
        for agent in self._agents_with_role("lp"):
            aid = agent.agent_id
            if self.rng.random() < cfg.p_lp_deposit:
                pool = self.rng.choice(pools)
                frac = self.rng.uniform(0.05, 0.3)
                amounts = [int(a.token.balance_of(aid) * frac) for a in pool.assets]
                if sum(amounts) > 0:
                    ok, quote = self._attempt("calc_token_amount", aid, pool.calc_token_amount,
                                              amounts, True, pool_id=pool.pool_id)
                    min_mint = int(quote * (FEE_DENOMINATOR - cfg.slippage_tolerance_bps) // FEE_DENOMINATOR) if ok else 0
                    ok, minted = self._attempt("add_liquidity", aid, pool.add_liquidity, aid, amounts,
                                               min_mint, pool_id=pool.pool_id)
                    if ok:
                        self._attempt("stake", aid, self.gauges[pool.pool_id].stake, aid, minted,
                                      pool_id=pool.pool_id)

            if self.rng.random() < cfg.p_lp_withdraw:
                staked = [(pid, g) for pid, g in self.gauges.items() if g.balance_of(aid) > 0]
                if staked:
                    pid, gauge = self.rng.choice(staked)
                    pool = self.pools[pid]
                    amount = gauge.balance_of(aid) // 2 or gauge.balance_of(aid)
                    ok, _ = self._attempt("unstake", aid, gauge.unstake, aid, amount, pool_id=pid)
                    if ok:
                        if self.rng.random() < 0.5:
                            self._attempt("remove_liquidity", aid, pool.remove_liquidity, aid, amount,
                                          pool_id=pid)
                        else:
                            i = self.rng.randrange(pool.n)
                            self._attempt("remove_liquidity_one_coin", aid, pool.remove_liquidity_one_coin,
                                          aid, amount, i, pool_id=pid)

            if self.rng.random() < cfg.p_lp_claim:
                for pid, gauge in self.gauges.items():
                    if gauge.balance_of(aid) <= 0:
                        continue
                    ok, paid = self._attempt("claim", aid, gauge.claim, aid, pool_id=pid)
                    if ok:
                        self._record_rewards(paid)

    def _record_rewards(self, paid: Dict[str, int]) -> None:
        for symbol, amount in paid.items():
            decimals = self.factory.tokens[symbol].decimals
            self._rewards_paid_tick[symbol] = self._rewards_paid_tick.get(symbol, 0.0) + from_units(amount, decimals)

    def _relay_swap(self, trader: str, pool: PoolCoordinator, i: int, j: int, dx: int) -> int:
        """Settlement relay: take the trader's input, swap, refund on failure."""
        token_in = pool.assets[i].token
        quote = pool.get_dy(i, j, dx)
        min_dy = quote * (FEE_DENOMINATOR - self.cfg.slippage_tolerance_bps) // FEE_DENOMINATOR
        token_in.transfer(trader, SETTLEMENT_ID, dx)
        try:
            return pool.exchange(SETTLEMENT_ID, i, j, dx, min_dy, receiver=trader)
        except PoolError:
            token_in.transfer(SETTLEMENT_ID, trader, dx)
            raise

    def _trade_activity(self) -> None:
        cfg = self.cfg
        traders = self._agents_with_role("trader")
        if not traders:
            return
        pools = list(self.pools.values())
        for _ in range(max(0, int(cfg.trades_per_tick))):
            agent = self.rng.choice(traders)
            pool = self.rng.choice(pools)
            i, j = self.rng.sample(range(pool.n), 2)
            asset_in = pool.assets[i]
            size = float(max(1.0, np.random.exponential(cfg.trade_size_mean)))
            dx = min(to_units(size, asset_in.decimals), asset_in.token.balance_of(agent.agent_id))
            if dx <= 0:
                continue
            ok, result = self._attempt("exchange", agent.agent_id, self._relay_swap,
                                       agent.agent_id, pool, i, j, dx, pool_id=pool.pool_id)
            if ok:
                self._swap_count_tick += 1
                self._swap_volume_tick += from_units(dx, asset_in.decimals)
                last = pool.receipts.receipts[-1]
                self._fees_tick += from_units(last.fee, pool.assets[j].decimals)
            else:
                pool.receipts.add(SwapReceipt(
                    time=self.clock.now, pool_id=pool.pool_id, actor=agent.agent_id,
                    asset_in=asset_in.symbol, amount_in=dx, asset_out=pool.assets[j].symbol,
                    amount_out=0, fee=0, status="failed", fail_reason=result.tag,
                ))

    def _choose_target(self) -> int:
        """Voters lean toward targets carrying more bribes."""
        targets = self.ledger.targets
        weights = np.array([
            1.0 + sum(self.ledger.bribes.get(t.index, {}).values()) / 10 ** 6 for t in targets
        ], dtype=float)
        probs = weights / float(np.sum(weights))
        return int(np.random.choice(len(targets), p=probs))

    def _vote_activity(self) -> None:
        cfg = self.cfg
        if not self.ledger.targets:
            return
        gov_decimals = self.governance.decimals
        for agent in self._agents_with_role("voter"):
            aid = agent.agent_id
            r = self.rng.random()
            if r < cfg.p_vote:
                free = self.governance.balance_of(aid)
                weight = int(free * self.rng.uniform(0.2, 1.0))
                if weight > 0:
                    self._attempt("vote", aid, self.ledger.vote, aid, self._choose_target(), weight)
            elif r < cfg.p_vote + cfg.p_reallocate:
                held = [(t, w) for t, w in self.ledger.votes.get(aid, {}).items() if w > 0]
                if held and len(self.ledger.targets) > 1:
                    src, weight = self.rng.choice(held)
                    dst = self._choose_target()
                    if dst == src:
                        dst = (src + 1) % len(self.ledger.targets)
                    self._attempt("reallocate", aid, self.ledger.reallocate, aid, src, dst, weight)
            elif r < cfg.p_vote + cfg.p_reallocate + cfg.p_vote_withdraw:
                if self.ledger.total_votes_of(aid) > 0:
                    self._attempt("withdraw_votes", aid, self.ledger.withdraw, aid)
        logger.debug("tick=%d total weight=%s", self.tick, from_units(self.ledger.total_weight(), gov_decimals))

    def _bribe_activity(self) -> None:
        cfg = self.cfg
        token = self.factory.tokens[cfg.bribe_symbol]
        for agent in self._agents_with_role("briber"):
            target = self.rng.randrange(len(self.ledger.targets))
            amount = to_units(float(max(1.0, np.random.exponential(cfg.bribe_amount_mean))), token.decimals)
            ok, _ = self._attempt("add_bribe", agent.agent_id, self.ledger.add_bribe, agent.agent_id,
                                  target, token, amount, cfg.reward_duration,
                                  pool_id=self.ledger.targets[target].name)
            if ok:
                self._bribes_tick += from_units(amount, token.decimals)

    def _emit_rewards(self) -> None:
        cfg = self.cfg
        if self.ledger.total_weight() == 0:
            return
        token = self.factory.tokens[cfg.reward_symbol]
        budget = to_units(cfg.emission_per_epoch, token.decimals)
        ok, shares = self._attempt("allocate_emissions", OWNER_ID, self.ledger.allocate_emissions,
                                   OWNER_ID, token, budget, cfg.reward_duration)
        if ok:
            self._emissions_tick += from_units(sum(shares.values()), token.decimals)

    def _withdraw_admin_fees(self) -> None:
        for pid, pool in self.pools.items():
            self._attempt("withdraw_admin_fees", OWNER_ID, pool.withdraw_admin_fees, OWNER_ID, pool_id=pid)

    # -----------------------------
    # main loop
    # -----------------------------
    def step(self, n_ticks: int = 1) -> None:
        for _ in range(n_ticks):
            self.tick += 1
            self.clock.advance(self.cfg.tick_seconds)
            self._failures_tick = {}
            self._swap_count_tick = 0
            self._swap_volume_tick = 0.0
            self._fees_tick = 0.0
            self._rewards_paid_tick = {}
            self._bribes_tick = 0.0
            self._emissions_tick = 0.0

            self._apply_price_noise()
            self._lp_activity()
            self._trade_activity()
            self._vote_activity()

            bribe_epoch = max(1, int(self.cfg.bribe_epoch_ticks or 1))
            if self.tick % bribe_epoch == 0:
                self._bribe_activity()
            emission_epoch = max(1, int(self.cfg.emission_epoch_ticks or 1))
            if self.tick % emission_epoch == 0:
                self._emit_rewards()
                self._withdraw_admin_fees()

            self.snapshot_metrics()

    def snapshot_metrics(self, force_network: bool = False, force_pool: bool = False) -> None:
        cfg = self.cfg
        metrics_stride = int(cfg.metrics_stride or 0)
        pool_stride = int(cfg.pool_metrics_stride or 0)
        do_network = force_network or (metrics_stride > 0 and self.tick % metrics_stride == 0)
        do_pool = force_pool or (pool_stride > 0 and self.tick % pool_stride == 0)
        if not do_network and not do_pool:
            return

        total_value = 0.0
        pool_rows = []
        for pid, pool in self.pools.items():
            supply = pool.total_supply()
            ok, D = self._attempt("invariant", "metrics", pool.invariant, pool_id=pid)
            D = int(D) if ok else 0
            value = D / PRECISION
            total_value += value
            if not do_pool:
                continue
            gauge = self.gauges[pid]
            row = {
                "tick": self.tick,
                "time": self.clock.now,
                "pool_id": pid,
                "invariant": value,
                "lp_supply": supply / PRECISION,
                "virtual_price": (D * PRECISION // supply) / PRECISION if supply > 0 else 0.0,
                "A": pool.A(),
                "fee_bps": pool.fee_bps,
                "last_price": pool.last_price() / PRECISION,
                "price_oracle": pool.price_oracle() / PRECISION,
                "staked_share": gauge.total_staked / supply if supply > 0 else 0.0,
                "swaps_total": sum(1 for r in pool.receipts.receipts if r.status == "executed"),
            }
            for i, asset in enumerate(pool.assets):
                row[f"balance_{asset.symbol}"] = from_units(pool.balances[i], asset.decimals)
            pool_rows.append(row)

        if do_pool:
            self.metrics.add_pool_rows(pool_rows)
            gov_decimals = self.governance.decimals
            shares = self.ledger.weight_shares()
            target_rows = []
            for t in self.ledger.targets:
                gauge = t.gauge
                target_rows.append({
                    "tick": self.tick,
                    "target": t.name,
                    "weight": from_units(self.ledger.aggregate_weight(t.index), gov_decimals),
                    "share": shares.get(t.index, 0.0),
                    "total_staked": gauge.total_staked / PRECISION,
                    "reward_tokens": len(gauge.reward_tokens()),
                    "reward_left": sum(
                        from_units(gauge.left(s), gauge.reward_token_map[s].decimals)
                        for s in gauge.reward_tokens()
                    ),
                })
            self.metrics.add_target_rows(target_rows)

        if do_network:
            locked = sum(1 for a in self._agents_with_role("voter") if self.ledger.lock_state(a.agent_id) == "locked")
            unlockable = sum(
                1 for a in self._agents_with_role("voter") if self.ledger.lock_state(a.agent_id) == "unlockable"
            )
            self.metrics.add_network({
                "tick": self.tick,
                "time": self.clock.now,
                "num_pools": len(self.pools),
                "total_value": total_value,
                "swaps_tick": self._swap_count_tick,
                "swap_volume_tick": self._swap_volume_tick,
                "fees_tick": self._fees_tick,
                "failures_tick": sum(self._failures_tick.values()),
                "lock_failures_tick": self._failures_tick.get("lock_active", 0),
                "slippage_failures_tick": self._failures_tick.get("slippage", 0),
                "total_votes": from_units(self.ledger.total_weight(), self.governance.decimals),
                "voters_locked": locked,
                "voters_unlockable": unlockable,
                "bribes_tick": self._bribes_tick,
                "emissions_tick": self._emissions_tick,
                "rewards_paid_tick": sum(self._rewards_paid_tick.values()),
            })

    def failure_counts(self) -> Dict[str, int]:
        return dict(self._failures_total)
