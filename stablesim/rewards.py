from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from .core import (
    PRECISION, DAY, Clock, Event, EventLog, Token, Transactional, atomic, nonreentrant,
    ValidationError,
)

logger = logging.getLogger(__name__)

SCALE = PRECISION
MIN_REWARD_DURATION = DAY


@dataclass
class RewardStream:
    # rate is reward units per second, multiplied by SCALE
    rate: int = 0
    period_end: int = 0
    last_update: int = 0
    reward_per_unit: int = 0
    duration: int = 0

@dataclass
class StakeAccount:
    balance: int = 0
    snapshots: Dict[str, int] = field(default_factory=dict)
    pending: Dict[str, int] = field(default_factory=dict)


class RewardAccumulator(Transactional):
    """
    Stake ledger with streamed rewards (a gauge).

    Stakers deposit `stake_token`; each funded reward token is paid out
    linearly over its period in proportion to stake. State is settled lazily:
    `settle` must run before any stake balance, total stake or reward rate
    changes, and every public mutator here does so first.
    """
    _state_fields = ("streams", "accounts", "total_staked")
    _shallow_fields = ("reward_token_map",)

    def __init__(self, gauge_id: str, stake_token: Token, clock: Clock,
                 log: Optional[EventLog] = None, min_duration: int = MIN_REWARD_DURATION) -> None:
        self.gauge_id = gauge_id
        self.address = f"gauge:{gauge_id}"
        self.stake_token = stake_token
        self.clock = clock
        self.log = log if log is not None else EventLog()
        self.min_duration = int(min_duration)
        self.debug_ledger: bool = False
        self._entered = False

        self.streams: Dict[str, RewardStream] = {}
        self.reward_token_map: Dict[str, Token] = {}
        self.accounts: Dict[str, StakeAccount] = {}
        self.total_staked: int = 0

    def _emit(self, event_type: str, actor: Optional[str], amount: Optional[int] = None,
              asset_id: Optional[str] = None, **meta) -> None:
        self.log.add(Event(self.clock.now, event_type, actor_id=actor, pool_id=self.gauge_id,
                           asset_id=asset_id, amount=amount, meta=meta))

    def _account(self, account: str) -> StakeAccount:
        acct = self.accounts.get(account)
        if acct is None:
            acct = StakeAccount()
            self.accounts[account] = acct
        return acct

    def _parts(self) -> list:
        return [self, self.stake_token, *self.reward_token_map.values()]

    # -----------------------------
    # views
    # -----------------------------
    def reward_tokens(self) -> List[str]:
        return list(self.streams.keys())

    def balance_of(self, account: str) -> int:
        acct = self.accounts.get(account)
        return acct.balance if acct else 0

    def last_time_reward_applicable(self, token: str) -> int:
        return min(self.clock.now, self.streams[token].period_end)

    def reward_per_unit(self, token: str) -> int:
        stream = self.streams.get(token)
        if stream is None:
            raise ValidationError(f"unknown reward token {token}", tag="unknown_token")
        if self.total_staked == 0:
            return stream.reward_per_unit
        elapsed = max(0, self.last_time_reward_applicable(token) - stream.last_update)
        return stream.reward_per_unit + elapsed * stream.rate // self.total_staked

    def earned(self, account: str, token: str) -> int:
        acct = self.accounts.get(account)
        if acct is None:
            return 0
        rpu = self.reward_per_unit(token)
        return acct.balance * (rpu - acct.snapshots.get(token, 0)) // SCALE + acct.pending.get(token, 0)

    def left(self, token: str) -> int:
        """Unpaid remainder of the running period."""
        stream = self.streams.get(token)
        if stream is None or self.clock.now >= stream.period_end:
            return 0
        return (stream.period_end - self.clock.now) * stream.rate // SCALE

    # -----------------------------
    # settlement
    # -----------------------------
    def _settle_stream(self, token: str) -> int:
        stream = self.streams[token]
        stream.reward_per_unit = self.reward_per_unit(token)
        stream.last_update = self.last_time_reward_applicable(token)
        return stream.reward_per_unit

    def settle(self, account: Optional[str] = None) -> None:
        """
        Advance every stream to now and, if `account` is given, move its newly
        accrued rewards into its pending bucket.

        Time with nothing staked still advances `last_update`; rewards streamed
        over that window stay in the gauge unpaid and are not counted by `left`.
        """
        for token in self.streams:
            rpu = self._settle_stream(token)
            if account is None:
                continue
            acct = self._account(account)
            acct.pending[token] = self.earned(account, token)
            acct.snapshots[token] = rpu

    # -----------------------------
    # mutators
    # -----------------------------
    @nonreentrant
    def fund(self, funder: str, token: Token, amount: int, duration: int) -> int:
        """
        Stream `amount` of `token` to stakers over `duration` seconds.

        Any unpaid remainder of a running period for the same token is folded
        into the new rate. Returns the new rate (scaled).
        """
        if amount <= 0:
            raise ValidationError("funding amount must be positive", tag="zero_amount")
        if duration < self.min_duration:
            raise ValidationError(f"duration {duration}s shorter than {self.min_duration}s", tag="bad_duration")
        known = self.reward_token_map.get(token.symbol)
        if known is not None and known is not token:
            raise ValidationError(f"token symbol {token.symbol} already bound", tag="duplicate_asset")
        if token is self.stake_token:
            raise ValidationError("stake token cannot be a reward", tag="bad_token")
        if token.balance_of(funder) < amount:
            raise ValidationError(f"{funder} cannot cover {amount} {token.symbol}", tag="insufficient_balance")

        with atomic(*self._parts(), token):
            now = self.clock.now
            symbol = token.symbol
            if symbol not in self.streams:
                self.streams[symbol] = RewardStream(last_update=now, period_end=now, duration=int(duration))
                self.reward_token_map[symbol] = token
            self._settle_stream(symbol)
            stream = self.streams[symbol]

            if now >= stream.period_end:
                stream.rate = amount * SCALE // duration
            else:
                remaining = stream.period_end - now
                leftover = remaining * stream.rate
                stream.rate = (amount * SCALE + leftover) // duration
            stream.duration = int(duration)
            stream.last_update = now
            stream.period_end = now + int(duration)

            token.transfer_in(self.address, funder, amount)

        if self.debug_ledger and logger.isEnabledFor(logging.DEBUG):
            logger.debug("[GAUGE] gauge=%s fund token=%s amount=%d rate=%d end=%d",
                         self.gauge_id, symbol, amount, stream.rate, stream.period_end)
        self._emit("FUNDING_ADDED", funder, amount=amount, asset_id=symbol,
                   duration=int(duration), rate=stream.rate, period_end=stream.period_end)
        return stream.rate

    @nonreentrant
    def stake(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise ValidationError("stake amount must be positive", tag="zero_amount")
        if self.stake_token.balance_of(account) < amount:
            raise ValidationError(f"{account} cannot cover {amount} {self.stake_token.symbol}",
                                  tag="insufficient_balance")
        with atomic(*self._parts()):
            self.settle(account)
            acct = self._account(account)
            acct.balance += amount
            self.total_staked += amount
            self.stake_token.transfer_in(self.address, account, amount)
        self._emit("STAKED", account, amount=amount, asset_id=self.stake_token.symbol,
                   total_staked=self.total_staked)

    @nonreentrant
    def unstake(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise ValidationError("unstake amount must be positive", tag="zero_amount")
        if self.balance_of(account) < amount:
            raise ValidationError(f"{account} has fewer than {amount} staked", tag="insufficient_balance")
        with atomic(*self._parts()):
            self.settle(account)
            acct = self._account(account)
            acct.balance -= amount
            self.total_staked -= amount
            self.stake_token.transfer_out(self.address, account, amount)
        self._emit("UNSTAKED", account, amount=amount, asset_id=self.stake_token.symbol,
                   total_staked=self.total_staked)

    @nonreentrant
    def claim(self, account: str) -> Dict[str, int]:
        paid: Dict[str, int] = {}
        with atomic(*self._parts()):
            self.settle(account)
            acct = self._account(account)
            for symbol, token in self.reward_token_map.items():
                reward = acct.pending.get(symbol, 0)
                if reward <= 0:
                    continue
                acct.pending[symbol] = 0
                token.transfer_out(self.address, account, reward)
                paid[symbol] = reward
        for symbol, reward in paid.items():
            self._emit("REWARD_PAID", account, amount=reward, asset_id=symbol)
        return paid
