from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional
import logging

from .core import (
    WEEK, Authorization, Clock, Event, EventLog, Token, Transactional, atomic, nonreentrant,
    LockError, ValidationError,
)
from .rewards import RewardAccumulator

logger = logging.getLogger(__name__)

LockStatus = Literal["unlocked", "locked", "unlockable"]


@dataclass
class Target:
    index: int
    name: str
    gauge: RewardAccumulator


class AllocationLedger(Transactional):
    """
    Vote-weight ledger over gauges.

    Voters lock governance tokens on targets; the per-target aggregate drives
    how emissions are split. Every weight-changing action restarts the
    account's lock window; withdrawal releases all of an account's weight at
    once and only after the window has elapsed.
    """
    _state_fields = ("votes", "aggregate", "unlock_at", "bribes")

    def __init__(self, governance_token: Token, clock: Clock, auth: Authorization,
                 log: Optional[EventLog] = None, lock_duration: int = WEEK) -> None:
        if lock_duration <= 0:
            raise ValidationError("lock duration must be positive", tag="bad_duration")
        self.governance_token = governance_token
        self.clock = clock
        self.auth = auth
        self.log = log if log is not None else EventLog()
        self.lock_duration = int(lock_duration)
        self.address = "allocation"
        self.debug_ledger: bool = False
        self._entered = False

        self.targets: List[Target] = []
        self.votes: Dict[str, Dict[int, int]] = {}
        self.aggregate: Dict[int, int] = {}
        self.unlock_at: Dict[str, int] = {}
        self.bribes: Dict[int, Dict[str, int]] = {}

    def _emit(self, event_type: str, actor: Optional[str], amount: Optional[int] = None,
              target: Optional[int] = None, asset_id: Optional[str] = None, **meta) -> None:
        pool_id = self.targets[target].name if target is not None else None
        self.log.add(Event(self.clock.now, event_type, actor_id=actor, pool_id=pool_id,
                           asset_id=asset_id, amount=amount, meta=meta))

    def _check_target(self, target: int) -> Target:
        if not isinstance(target, int) or target < 0 or target >= len(self.targets):
            raise ValidationError(f"target {target} out of range", tag="bad_target")
        return self.targets[target]

    def _require_unlocked(self, account: str) -> None:
        unlock = self.unlock_at.get(account, 0)
        if self.clock.now < unlock:
            raise LockError(f"{account} locked until {unlock}")

    def _restart_lock(self, account: str) -> None:
        self.unlock_at[account] = self.clock.now + self.lock_duration

    def _trace(self, action: str, account: str) -> None:
        if not self.debug_ledger or not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug("[VOTES] action=%s account=%s votes=%s aggregate=%s unlock_at=%s",
                     action, account, self.votes.get(account, {}), self.aggregate,
                     self.unlock_at.get(account))

    # -----------------------------
    # views
    # -----------------------------
    def votes_of(self, account: str, target: int) -> int:
        return self.votes.get(account, {}).get(target, 0)

    def total_votes_of(self, account: str) -> int:
        return sum(self.votes.get(account, {}).values())

    def aggregate_weight(self, target: int) -> int:
        return self.aggregate.get(target, 0)

    def total_weight(self) -> int:
        return sum(self.aggregate.values())

    def weight_shares(self) -> Dict[int, float]:
        total = self.total_weight()
        if total == 0:
            return {t.index: 0.0 for t in self.targets}
        return {t.index: self.aggregate_weight(t.index) / total for t in self.targets}

    def unlock_time(self, account: str) -> int:
        return self.unlock_at.get(account, 0)

    def lock_state(self, account: str) -> LockStatus:
        if account not in self.unlock_at:
            return "unlocked"
        if self.clock.now < self.unlock_at[account]:
            return "locked"
        if self.total_votes_of(account) > 0:
            return "unlockable"
        return "unlocked"

    def bribe_total(self, target: int, token: str) -> int:
        return self.bribes.get(target, {}).get(token, 0)

    # -----------------------------
    # configuration
    # -----------------------------
    def add_target(self, caller: str, name: str, gauge: RewardAccumulator) -> int:
        self.auth.require(caller)
        if not name:
            raise ValidationError("target needs a name", tag="bad_target")
        if any(t.name == name for t in self.targets):
            raise ValidationError(f"target {name} already added", tag="duplicate_target")
        index = len(self.targets)
        self.targets.append(Target(index=index, name=name, gauge=gauge))
        self.aggregate.setdefault(index, 0)
        self._emit("TARGET_ADDED", caller, target=index, gauge=gauge.gauge_id)
        return index

    # -----------------------------
    # voting
    # -----------------------------
    @nonreentrant
    def vote(self, account: str, target: int, weight: int) -> None:
        self._check_target(target)
        if weight <= 0:
            raise ValidationError("vote weight must be positive", tag="zero_amount")
        if self.governance_token.balance_of(account) < weight:
            raise ValidationError(f"{account} cannot lock {weight}", tag="insufficient_balance")

        with atomic(self, self.governance_token):
            account_votes = self.votes.setdefault(account, {})
            account_votes[target] = account_votes.get(target, 0) + weight
            self.aggregate[target] = self.aggregate.get(target, 0) + weight
            self._restart_lock(account)
            self.governance_token.transfer_in(self.address, account, weight)

        self._trace("vote", account)
        self._emit("VOTE_CAST", account, amount=weight, target=target,
                   unlock_at=self.unlock_at[account])

    @nonreentrant
    def withdraw(self, account: str) -> int:
        """Release every target's weight for `account`; returns the total released."""
        self._require_unlocked(account)
        if self.total_votes_of(account) == 0:
            raise ValidationError(f"{account} has no votes", tag="nothing_to_withdraw")

        with atomic(self, self.governance_token):
            released = 0
            per_target: Dict[int, int] = {}
            account_votes = self.votes[account]
            for target, weight in account_votes.items():
                if weight == 0:
                    continue
                self.aggregate[target] -= weight
                per_target[target] = weight
                released += weight
                account_votes[target] = 0
            self.governance_token.transfer_out(self.address, account, released)

        self._trace("withdraw", account)
        self._emit("VOTE_WITHDRAWN", account, amount=released, per_target=per_target)
        return released

    @nonreentrant
    def reallocate(self, account: str, from_target: int, to_target: int, weight: int) -> None:
        self._check_target(from_target)
        self._check_target(to_target)
        if weight <= 0:
            raise ValidationError("weight must be positive", tag="zero_amount")
        if from_target == to_target:
            raise ValidationError("cannot reallocate to the same target", tag="same_target")
        if self.votes_of(account, from_target) < weight:
            raise ValidationError(
                f"{account} holds {self.votes_of(account, from_target)} on target {from_target}, needs {weight}",
                tag="insufficient_votes",
            )
        self._require_unlocked(account)

        with atomic(self):
            account_votes = self.votes[account]
            account_votes[from_target] -= weight
            account_votes[to_target] = account_votes.get(to_target, 0) + weight
            self.aggregate[from_target] -= weight
            self.aggregate[to_target] = self.aggregate.get(to_target, 0) + weight
            self._restart_lock(account)

        self._trace("reallocate", account)
        self._emit("VOTE_REALLOCATED", account, amount=weight, target=to_target,
                   from_target=from_target, unlock_at=self.unlock_at[account])

    # -----------------------------
    # funding
    # -----------------------------
    @nonreentrant
    def add_bribe(self, funder: str, target: int, token: Token, amount: int, duration: int) -> int:
        """
        Record a bribe on `target` and stream it through the target's gauge.

        The ledger update and the gauge funding share one transaction: if the
        gauge rejects the funding, the recorded bribe is rolled back.
        """
        tgt = self._check_target(target)
        if amount <= 0:
            raise ValidationError("bribe must be positive", tag="zero_amount")
        gauge = tgt.gauge
        with atomic(self, gauge, token):
            per_token = self.bribes.setdefault(target, {})
            per_token[token.symbol] = per_token.get(token.symbol, 0) + amount
            rate = gauge.fund(funder, token, amount, duration)
        self._emit("BRIBE_ADDED", funder, amount=amount, target=target, asset_id=token.symbol,
                   duration=int(duration), rate=rate)
        return rate

    @nonreentrant
    def allocate_emissions(self, caller: str, token: Token, budget: int, duration: int) -> Dict[int, int]:
        """
        Split `budget` of `token` across targets pro-rata to aggregate weight
        and fund each gauge. Integer remainders stay with the caller.
        """
        self.auth.require(caller)
        if budget <= 0:
            raise ValidationError("emission budget must be positive", tag="zero_amount")
        total = self.total_weight()
        if total == 0:
            raise ValidationError("no votes to allocate against", tag="no_votes")

        shares: Dict[int, int] = {}
        for t in self.targets:
            amount = budget * self.aggregate_weight(t.index) // total
            if amount > 0:
                shares[t.index] = amount
        gauges = [self.targets[i].gauge for i in shares]
        with atomic(self, token, *gauges):
            for index, amount in shares.items():
                self.targets[index].gauge.fund(caller, token, amount, duration)
        logger.info("emissions allocated: token=%s budget=%d shares=%s", token.symbol, budget, shares)
        return shares
