from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Literal, Optional, Tuple
from collections import deque
import copy
import functools
import logging

logger = logging.getLogger(__name__)

PRECISION = 10 ** 18
DAY = 86400
WEEK = 7 * DAY


# -----------------------------
# Errors
# -----------------------------
class PoolError(Exception):
    """Base for every failure that aborts a call. `tag` is the short reason recorded on receipts."""
    tag = "pool_error"

    def __init__(self, message: str = "", tag: Optional[str] = None) -> None:
        super().__init__(message or self.tag)
        if tag is not None:
            self.tag = tag

class ValidationError(PoolError):
    tag = "invalid"

class PriceFeedError(ValidationError):
    tag = "bad_price"

class AuthorizationError(PoolError):
    tag = "unauthorized"

class LockError(PoolError):
    tag = "lock_active"

class SlippageError(PoolError):
    tag = "slippage"

class ConvergenceError(PoolError):
    tag = "no_convergence"

class TransferError(PoolError):
    tag = "transfer_failed"

class ReentrancyError(PoolError):
    tag = "reentrant_call"


# -----------------------------
# Clock
# -----------------------------
@dataclass
class Clock:
    now: int = 0

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValidationError("clock cannot go backwards")
        self.now += int(seconds)
        return self.now


# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    time: int
    event_type: str
    actor_id: Optional[str] = None
    pool_id: Optional[str] = None
    asset_id: Optional[str] = None
    amount: Optional[int] = None
    meta: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]


# -----------------------------
# All-or-nothing calls
# -----------------------------
class Transactional:
    """
    Mixin for components that own mutable ledger state.

    `_state_fields` lists the attributes that make up the component's state;
    collaborators (clock, log, other components) are never part of it.
    """
    _state_fields: Tuple[str, ...] = ()
    # containers holding collaborators; copied one level deep only
    _shallow_fields: Tuple[str, ...] = ()

    def snapshot(self) -> dict:
        state = {name: copy.deepcopy(getattr(self, name)) for name in self._state_fields}
        for name in self._shallow_fields:
            state[name] = copy.copy(getattr(self, name))
        return state

    def restore(self, state: dict) -> None:
        for name, value in state.items():
            setattr(self, name, value)

@contextmanager
def atomic(*parts: Transactional) -> Iterator[None]:
    """
    Stage a call over `parts`; if anything raises, every part is put back
    exactly as it was before the call started.
    """
    seen = set()
    saved = []
    for p in parts:
        if p is None or id(p) in seen:
            continue
        seen.add(id(p))
        saved.append((p, p.snapshot()))
    try:
        yield
    except BaseException:
        for p, state in reversed(saved):
            p.restore(state)
        raise

def nonreentrant(method: Callable) -> Callable:
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if getattr(self, "_entered", False):
            raise ReentrancyError(f"{type(self).__name__}.{method.__name__} re-entered")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper


# -----------------------------
# Collaborators
# -----------------------------
class Token(Transactional):
    """
    In-memory fungible token. Amounts are integers in the token's smallest unit.

    `on_transfer(token, sender, receiver, amount)` is called after every
    balance move and can be used to model tokens that call back into the
    holder.
    """
    _state_fields = ("balances", "total_supply")

    def __init__(self, symbol: str, decimals: int = 18) -> None:
        if decimals < 0 or decimals > 18:
            raise ValidationError(f"unsupported decimals {decimals}", tag="bad_decimals")
        self.symbol = symbol
        self.decimals = int(decimals)
        self.balances: Dict[str, int] = {}
        self.total_supply: int = 0
        self.on_transfer: Optional[Callable[["Token", str, str, int], None]] = None

    def __repr__(self) -> str:
        return f"Token({self.symbol!r}, decimals={self.decimals})"

    def balance_of(self, account: str) -> int:
        return int(self.balances.get(account, 0))

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise TransferError(f"negative mint of {self.symbol}")
        self.balances[account] = self.balance_of(account) + int(amount)
        self.total_supply += int(amount)

    def burn(self, account: str, amount: int) -> None:
        if amount < 0 or self.balance_of(account) < amount:
            raise TransferError(f"burn of {amount} {self.symbol} exceeds balance of {account}")
        self.balances[account] = self.balance_of(account) - int(amount)
        self.total_supply -= int(amount)

    def transfer(self, sender: str, receiver: str, amount: int) -> None:
        amount = int(amount)
        if amount < 0:
            raise TransferError(f"negative transfer of {self.symbol}")
        if self.balance_of(sender) < amount:
            raise TransferError(
                f"{sender} holds {self.balance_of(sender)} {self.symbol}, needs {amount}",
                tag="insufficient_balance",
            )
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[receiver] = self.balance_of(receiver) + amount
        if self.on_transfer is not None:
            self.on_transfer(self, sender, receiver, amount)

    def transfer_in(self, holder: str, sender: str, amount: int) -> None:
        self.transfer(sender, holder, amount)

    def transfer_out(self, holder: str, receiver: str, amount: int) -> None:
        self.transfer(holder, receiver, amount)

class PriceFeed:
    """Latest price for one asset, `decimals` fixed-point digits."""
    def __init__(self, price: int, decimals: int = 8) -> None:
        self.decimals = int(decimals)
        self.price = int(price)
        self.valid = True
        self.version = 1

    def set_price(self, price: int, valid: bool = True) -> None:
        self.price = int(price)
        self.valid = bool(valid)
        self.version += 1

    def latest_price(self) -> Tuple[int, bool]:
        return self.price, self.valid

    def price_18(self) -> int:
        value, ok = self.latest_price()
        if not ok or value <= 0:
            raise PriceFeedError(f"feed reported {value} (valid={ok})")
        return value * 10 ** (18 - self.decimals)

class Authorization:
    def __init__(self, owner: str) -> None:
        self.owner = owner

    def require(self, caller: str) -> None:
        if caller != self.owner:
            raise AuthorizationError(f"{caller} is not the owner")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require(caller)
        if not new_owner:
            raise ValidationError("empty owner")
        self.owner = new_owner


# -----------------------------
# Receipts
# -----------------------------
@dataclass
class SwapReceipt:
    time: int
    pool_id: str
    actor: str
    asset_in: str
    amount_in: int
    asset_out: str
    amount_out: int
    fee: int
    status: Literal["executed", "failed"]
    fail_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "pool_id": self.pool_id,
            "actor": self.actor,
            "asset_in": self.asset_in,
            "amount_in": int(self.amount_in),
            "asset_out": self.asset_out,
            "amount_out": int(self.amount_out),
            "fee": int(self.fee),
            "status": self.status,
            "fail_reason": self.fail_reason,
        }

class ReceiptStore:
    def __init__(self) -> None:
        self.receipts: List[SwapReceipt] = []

    def add(self, r: SwapReceipt) -> None:
        self.receipts.append(r)

    def tail(self, n: int = 200) -> List[SwapReceipt]:
        return self.receipts[-n:]
