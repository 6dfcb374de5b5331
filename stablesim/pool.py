from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import math

from .core import (
    PRECISION, DAY, Authorization, Clock, Event, EventLog, ReceiptStore, SwapReceipt,
    Token, PriceFeed, Transactional, atomic, nonreentrant,
    AuthorizationError, SlippageError, ValidationError,
)
from .solver import (
    compute_invariant, compute_implied_balance, compute_balance_for_invariant, spot_price,
)

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = 10_000  # basis points
MAX_FEE_BPS = 5_000
MAX_A = 10 ** 6
MAX_A_CHANGE = 10
MIN_RAMP_TIME = DAY


@dataclass(frozen=True)
class Asset:
    token: Token
    feed: PriceFeed

    @property
    def symbol(self) -> str:
        return self.token.symbol

    @property
    def decimals(self) -> int:
        return self.token.decimals


class PoolCoordinator(Transactional):
    """
    StableSwap pool over N price-fed stable assets.

    Balances are kept in each token's own units; the solver sees them
    normalised by decimals and feed price (`xp`). Every mutating call runs
    inside `atomic()` and finishes its bookkeeping before any token moves.
    """
    _state_fields = (
        "balances", "initial_a", "future_a", "initial_a_time", "future_a_time",
        "fee_bps", "admin_fee_bps", "last_price_value", "ma_price_value", "ma_last_time",
    )

    def __init__(
        self,
        pool_id: str,
        assets: Sequence[Asset],
        amplification: int,
        fee_bps: int,
        admin_fee_bps: int,
        clock: Clock,
        auth: Authorization,
        settlement: str,
        log: Optional[EventLog] = None,
        ma_half_time: int = 600,
    ) -> None:
        if len(assets) < 2:
            raise ValidationError("a pool needs at least two assets", tag="bad_length")
        symbols = [a.symbol for a in assets]
        if len(set(symbols)) != len(symbols):
            raise ValidationError("duplicate asset", tag="duplicate_asset")
        if not 0 < amplification <= MAX_A:
            raise ValidationError(f"amplification {amplification} out of range", tag="bad_amp")
        self._check_fees(fee_bps, admin_fee_bps)
        if not settlement:
            raise ValidationError("settlement identity required", tag="bad_settlement")

        self.pool_id = pool_id
        self.address = f"pool:{pool_id}"
        self.assets: Tuple[Asset, ...] = tuple(assets)
        self.n = len(self.assets)
        self.clock = clock
        self.auth = auth
        self.settlement = settlement
        self.log = log if log is not None else EventLog()
        self.lp_token = Token(f"{pool_id}-LP", 18)
        self.receipts = ReceiptStore()
        self.debug_ledger: bool = False
        self._entered = False

        self.balances: List[int] = [0] * self.n
        self.initial_a = int(amplification)
        self.future_a = int(amplification)
        self.initial_a_time = 0
        self.future_a_time = 0
        self.fee_bps = int(fee_bps)
        self.admin_fee_bps = int(admin_fee_bps)

        self.ma_exp_time = max(1, int(ma_half_time / math.log(2)))
        self.last_price_value = PRECISION
        self.ma_price_value = PRECISION
        self.ma_last_time = clock.now

    # -----------------------------
    # helpers
    # -----------------------------
    @staticmethod
    def _check_fees(fee_bps: int, admin_fee_bps: int) -> None:
        if not 0 <= fee_bps <= MAX_FEE_BPS:
            raise ValidationError(f"fee {fee_bps} bps out of range", tag="bad_fee")
        if not 0 <= admin_fee_bps <= FEE_DENOMINATOR:
            raise ValidationError(f"admin fee {admin_fee_bps} bps out of range", tag="bad_fee")

    def _check_index(self, i: int) -> None:
        if not isinstance(i, int) or i < 0 or i >= self.n:
            raise ValidationError(f"asset index {i} out of range", tag="bad_index")

    def _check_amounts(self, amounts: Sequence[int]) -> List[int]:
        if len(amounts) != self.n:
            raise ValidationError(f"expected {self.n} amounts, got {len(amounts)}", tag="bad_length")
        out = [int(a) for a in amounts]
        if any(a < 0 for a in out):
            raise ValidationError("negative amount", tag="negative_amount")
        return out

    def _tokens(self) -> List[Token]:
        return [a.token for a in self.assets]

    def _parts(self) -> list:
        return [self, self.lp_token, *self._tokens()]

    def _debug_ledger_change(self, action: str, account: str, before: List[int], after: List[int]) -> None:
        if not self.debug_ledger or not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "[POOL] pool=%s action=%s account=%s before=%s after=%s supply=%d",
            self.pool_id, action, account, before, after, self.lp_token.total_supply,
        )

    def _emit(self, event_type: str, actor: str, amount: Optional[int] = None,
              asset_id: Optional[str] = None, **meta) -> None:
        self.log.add(Event(self.clock.now, event_type, actor_id=actor, pool_id=self.pool_id,
                           asset_id=asset_id, amount=amount, meta=meta))

    def _A(self) -> int:
        """
        Handle ramping A up or down
        """
        now = self.clock.now
        t1 = self.future_a_time
        A1 = self.future_a

        if now < t1:
            A0 = self.initial_a
            t0 = self.initial_a_time
            if A1 > A0:
                return A0 + (A1 - A0) * (now - t0) // (t1 - t0)
            else:
                return A0 - (A0 - A1) * (now - t0) // (t1 - t0)
        else:  # when t1 == 0 or now >= t1
            return A1

    def rates(self) -> List[int]:
        """Multipliers that take a raw balance to the 18-decimal, price-adjusted domain."""
        return [10 ** (18 - a.decimals) * a.feed.price_18() for a in self.assets]

    @staticmethod
    def _xp_mem(rates: Sequence[int], balances: Sequence[int]) -> List[int]:
        return [r * b // PRECISION for r, b in zip(rates, balances)]

    def _invariant_of(self, balances: Sequence[int], rates: Sequence[int], amp: int) -> int:
        return compute_invariant(self._xp_mem(rates, balances), amp)

    def _base_fee_share(self, difference: int) -> int:
        # imbalance fee: fee * n / (4 * (n - 1))
        return difference * self.fee_bps * self.n // (4 * (self.n - 1) * FEE_DENOMINATOR)

    def _ma_price(self) -> int:
        now = self.clock.now
        if self.ma_last_time < now:
            alpha = int(math.exp(-(now - self.ma_last_time) / self.ma_exp_time) * PRECISION)
            return (self.last_price_value * (PRECISION - alpha) + self.ma_price_value * alpha) // PRECISION
        return self.ma_price_value

    def _save_p_from_price(self, last_price: int) -> None:
        if last_price != 0:
            self.ma_price_value = self._ma_price()
            self.last_price_value = last_price
            if self.ma_last_time < self.clock.now:
                self.ma_last_time = self.clock.now

    def _save_p(self, xp: Sequence[int], amp: int, D: int) -> None:
        if any(x == 0 for x in xp):
            return
        self._save_p_from_price(spot_price(xp, amp, D, 1, 0))

    # -----------------------------
    # views
    # -----------------------------
    def A(self) -> int:
        return self._A()

    def invariant(self) -> int:
        return self._invariant_of(self.balances, self.rates(), self._A())

    def total_supply(self) -> int:
        return self.lp_token.total_supply

    def last_price(self) -> int:
        return self.last_price_value

    def price_oracle(self) -> int:
        return self._ma_price()

    def admin_balances(self, i: int) -> int:
        self._check_index(i)
        return self.assets[i].token.balance_of(self.address) - self.balances[i]

    def get_virtual_price(self) -> int:
        """LP token virtual price normalized to 1e18"""
        supply = self.lp_token.total_supply
        if supply == 0:
            raise ValidationError("pool is empty", tag="empty_pool")
        return self.invariant() * PRECISION // supply

    def get_dy(self, i: int, j: int, dx: int) -> int:
        """Output of `j` for `dx` of `i`, after fees."""
        self._check_index(i)
        self._check_index(j)
        rates = self.rates()
        xp = self._xp_mem(rates, self.balances)
        x = xp[i] + (dx * rates[i] // PRECISION)
        y = compute_implied_balance(j, i, x, xp, self._A())
        dy = xp[j] - y - 1
        fee = self.fee_bps * dy // FEE_DENOMINATOR
        return (dy - fee) * PRECISION // rates[j]

    def get_dx(self, i: int, j: int, dy: int) -> int:
        """Input of `i` needed to receive `dy` of `j`, after fees."""
        self._check_index(i)
        self._check_index(j)
        rates = self.rates()
        xp = self._xp_mem(rates, self.balances)
        y = xp[j] - (dy * rates[j] // PRECISION + 1) * FEE_DENOMINATOR // (FEE_DENOMINATOR - self.fee_bps)
        if y <= 0:
            raise ValidationError("requested output exceeds pool balance", tag="insufficient_liquidity")
        x = compute_implied_balance(i, j, y, xp, self._A())
        return (x - xp[i]) * PRECISION // rates[i]

    def calc_token_amount(self, amounts: Sequence[int], is_deposit: bool) -> int:
        """
        Calculate addition or reduction in token supply from a deposit or withdrawal
        """
        amounts = self._check_amounts(amounts)
        amp = self._A()
        rates = self.rates()
        old_balances = list(self.balances)
        D0 = self._invariant_of(old_balances, rates, amp)

        total_supply = self.lp_token.total_supply
        new_balances = list(old_balances)
        for i in range(self.n):
            if is_deposit:
                new_balances[i] += amounts[i]
            else:
                if amounts[i] > new_balances[i]:
                    raise ValidationError("withdrawal exceeds balance", tag="insufficient_liquidity")
                new_balances[i] -= amounts[i]

        D1 = self._invariant_of(new_balances, rates, amp)
        if total_supply == 0:
            return D1  # Take the dust if there was any

        # recalculate the invariant accounting for fees to calculate fair user's share
        for i in range(self.n):
            ideal_balance = D1 * old_balances[i] // D0
            new_balances[i] -= self._base_fee_share(abs(ideal_balance - new_balances[i]))
        D2 = self._invariant_of(new_balances, rates, amp)

        diff = D2 - D0 if is_deposit else D0 - D2
        return diff * total_supply // D0

    def calc_withdraw_one_coin(self, burn_amount: int, i: int) -> int:
        return self._calc_withdraw_one_coin(burn_amount, i)[0]

    def _calc_withdraw_one_coin(self, burn_amount: int, i: int) -> Tuple[int, int, int]:
        # * Get current D
        # * Solve Eqn against y_i for D - _token_amount
        self._check_index(i)
        total_supply = self.lp_token.total_supply
        if burn_amount <= 0 or burn_amount > total_supply:
            raise ValidationError(f"burn amount {burn_amount} out of range", tag="bad_amount")
        amp = self._A()
        rates = self.rates()
        xp = self._xp_mem(rates, self.balances)
        D0 = compute_invariant(xp, amp)

        D1 = D0 - burn_amount * D0 // total_supply
        if D1 == 0 and any(xp[k] > 0 for k in range(self.n) if k != i):
            raise ValidationError("burning the whole supply for one coin strands the other assets; "
                                  "use remove_liquidity", tag="insufficient_liquidity")
        new_y = compute_balance_for_invariant(i, xp, D1, amp)

        xp_reduced = [0] * self.n
        for j in range(self.n):
            xp_j = xp[j]
            if j == i:
                dx_expected = xp_j * D1 // D0 - new_y
            else:
                dx_expected = xp_j - xp_j * D1 // D0
            xp_reduced[j] = xp_j - self._base_fee_share(abs(dx_expected))

        dy = xp_reduced[i] - compute_balance_for_invariant(i, xp_reduced, D1, amp)
        dy_0 = (xp[i] - new_y) * PRECISION // rates[i]  # w/o fees
        dy = (dy - 1) * PRECISION // rates[i]  # Withdraw less to account for rounding errors

        xp[i] = new_y
        last_p = 0
        if new_y > 0:
            last_p = spot_price(xp, amp, D1, 1, 0)
        return max(dy, 0), max(dy_0 - dy, 0), last_p

    # -----------------------------
    # liquidity
    # -----------------------------
    @nonreentrant
    def add_liquidity(self, account: str, amounts: Sequence[int], min_mint: int = 0) -> int:
        """
        Deposit coins into the pool and mint LP tokens to `account`.

        The first deposit needs every asset; later deposits may be one-sided
        and pay the imbalance fee.
        """
        amounts = self._check_amounts(amounts)
        if sum(amounts) == 0:
            raise ValidationError("nothing to deposit", tag="zero_amount")
        for i, amount in enumerate(amounts):
            if self.assets[i].token.balance_of(account) < amount:
                raise ValidationError(f"{account} cannot cover {amount} {self.assets[i].symbol}",
                                      tag="insufficient_balance")

        with atomic(*self._parts()):
            amp = self._A()
            rates = self.rates()
            old_balances = list(self.balances)
            D0 = self._invariant_of(old_balances, rates, amp)

            total_supply = self.lp_token.total_supply
            new_balances = list(old_balances)
            for i in range(self.n):
                if amounts[i] > 0:
                    new_balances[i] += amounts[i]
                elif total_supply == 0:
                    raise ValidationError("initial deposit requires all coins", tag="initial_deposit")

            D1 = self._invariant_of(new_balances, rates, amp)
            if D1 <= D0:
                raise SlippageError("deposit did not increase the invariant", tag="invariant_not_increased")

            if total_supply > 0:
                # Only account for fees if we are not the first to deposit
                for i in range(self.n):
                    ideal_balance = D1 * old_balances[i] // D0
                    new_balance = new_balances[i]
                    fee = self._base_fee_share(abs(ideal_balance - new_balance))
                    self.balances[i] = new_balance - (fee * self.admin_fee_bps // FEE_DENOMINATOR)
                    new_balances[i] -= fee
                xp = self._xp_mem(rates, new_balances)
                D2 = compute_invariant(xp, amp)
                mint_amount = total_supply * (D2 - D0) // D0
                self._save_p(xp, amp, D2)
            else:
                self.balances = new_balances
                mint_amount = D1  # Take the dust if there was any

            if mint_amount <= 0 or mint_amount < min_mint:
                raise SlippageError(f"mint {mint_amount} below minimum {min_mint}", tag="slippage")

            for i, token in enumerate(self._tokens()):
                if amounts[i] > 0:
                    token.transfer_in(self.address, account, amounts[i])
            self.lp_token.mint(account, mint_amount)

        self._debug_ledger_change("add_liquidity", account, old_balances, self.balances)
        self._emit("LIQUIDITY_ADDED", account, amount=mint_amount, amounts=amounts,
                   invariant=D1, supply=self.lp_token.total_supply)
        return mint_amount

    def _check_burn(self, account: str, burn_amount: int) -> None:
        if burn_amount <= 0:
            raise ValidationError("burn amount must be positive", tag="zero_amount")
        if self.lp_token.balance_of(account) < burn_amount:
            raise ValidationError(f"{account} holds fewer than {burn_amount} LP", tag="insufficient_balance")

    @nonreentrant
    def remove_liquidity(self, account: str, burn_amount: int,
                         min_amounts: Optional[Sequence[int]] = None) -> List[int]:
        """
        Withdraw coins from the pool in proportion to current balances.
        """
        self._check_burn(account, burn_amount)
        min_amounts = self._check_amounts(min_amounts) if min_amounts is not None else [0] * self.n

        with atomic(*self._parts()):
            old_balances = list(self.balances)
            total_supply = self.lp_token.total_supply
            amounts = [0] * self.n
            for i in range(self.n):
                value = old_balances[i] * burn_amount // total_supply
                if value < min_amounts[i]:
                    raise SlippageError(
                        f"withdrawal of {value} {self.assets[i].symbol} below minimum {min_amounts[i]}",
                        tag="slippage",
                    )
                self.balances[i] = old_balances[i] - value
                amounts[i] = value

            self.lp_token.burn(account, burn_amount)
            for i, token in enumerate(self._tokens()):
                if amounts[i] > 0:
                    token.transfer_out(self.address, account, amounts[i])

        self._debug_ledger_change("remove_liquidity", account, old_balances, self.balances)
        self._emit("LIQUIDITY_REMOVED", account, amount=burn_amount, amounts=amounts,
                   supply=self.lp_token.total_supply)
        return amounts

    @nonreentrant
    def remove_liquidity_imbalance(self, account: str, amounts: Sequence[int], max_burn_amount: int) -> int:
        """
        Withdraw coins from the pool in an imbalanced amount; returns LP burned.
        """
        amounts = self._check_amounts(amounts)
        if sum(amounts) == 0:
            raise ValidationError("nothing to withdraw", tag="zero_amount")

        with atomic(*self._parts()):
            amp = self._A()
            rates = self.rates()
            old_balances = list(self.balances)
            D0 = self._invariant_of(old_balances, rates, amp)

            new_balances = list(old_balances)
            for i in range(self.n):
                if amounts[i] >= new_balances[i]:
                    raise ValidationError("withdrawal would drain an asset", tag="insufficient_liquidity")
                new_balances[i] -= amounts[i]

            D1 = self._invariant_of(new_balances, rates, amp)

            for i in range(self.n):
                ideal_balance = D1 * old_balances[i] // D0
                new_balance = new_balances[i]
                fee = self._base_fee_share(abs(ideal_balance - new_balance))
                self.balances[i] = new_balance - (fee * self.admin_fee_bps // FEE_DENOMINATOR)
                new_balances[i] -= fee
            xp = self._xp_mem(rates, new_balances)
            D2 = compute_invariant(xp, amp)
            self._save_p(xp, amp, D2)

            total_supply = self.lp_token.total_supply
            burn_amount = ((D0 - D2) * total_supply // D0) + 1
            if burn_amount <= 1:
                raise ValidationError("zero tokens burned", tag="zero_amount")
            if burn_amount > max_burn_amount:
                raise SlippageError(f"burn {burn_amount} above maximum {max_burn_amount}", tag="slippage")
            self._check_burn(account, burn_amount)

            self.lp_token.burn(account, burn_amount)
            for i, token in enumerate(self._tokens()):
                if amounts[i] > 0:
                    token.transfer_out(self.address, account, amounts[i])

        self._debug_ledger_change("remove_liquidity_imbalance", account, old_balances, self.balances)
        self._emit("LIQUIDITY_REMOVED", account, amount=burn_amount, amounts=amounts,
                   supply=self.lp_token.total_supply)
        return burn_amount

    @nonreentrant
    def remove_liquidity_one_coin(self, account: str, burn_amount: int, i: int, min_received: int = 0) -> int:
        """
        Withdraw a single coin from the pool; returns the amount received.
        """
        self._check_burn(account, burn_amount)
        self._check_index(i)

        with atomic(*self._parts()):
            old_balances = list(self.balances)
            dy, dy_fee, last_p = self._calc_withdraw_one_coin(burn_amount, i)
            if dy <= 0 or dy < min_received:
                raise SlippageError(f"received {dy} below minimum {min_received}", tag="slippage")

            self.balances[i] -= dy + dy_fee * self.admin_fee_bps // FEE_DENOMINATOR
            if self.balances[i] < 0:
                raise ValidationError("withdrawal would drain an asset", tag="insufficient_liquidity")
            self._save_p_from_price(last_p)

            self.lp_token.burn(account, burn_amount)
            self.assets[i].token.transfer_out(self.address, account, dy)

        self._debug_ledger_change("remove_liquidity_one_coin", account, old_balances, self.balances)
        amounts = [0] * self.n
        amounts[i] = dy
        self._emit("LIQUIDITY_REMOVED", account, amount=burn_amount, amounts=amounts,
                   asset_id=self.assets[i].symbol, supply=self.lp_token.total_supply)
        return dy

    # -----------------------------
    # swaps
    # -----------------------------
    @nonreentrant
    def exchange(self, caller: str, i: int, j: int, dx: int, min_dy: int = 0,
                 receiver: Optional[str] = None) -> int:
        """
        Perform an exchange between two coins. Only the settlement identity may call.

        `caller` pays `dx` of asset `i`; `receiver` (default `caller`) gets the
        output of asset `j`.
        """
        if caller != self.settlement:
            raise AuthorizationError(f"{caller} is not the settlement relay")
        self._check_index(i)
        self._check_index(j)
        if i == j:
            raise ValidationError("same coin", tag="same_asset")
        if dx <= 0:
            raise ValidationError("dx must be positive", tag="zero_amount")
        if self.assets[i].token.balance_of(caller) < dx:
            raise ValidationError(f"{caller} cannot cover {dx} {self.assets[i].symbol}",
                                  tag="insufficient_balance")
        receiver = receiver or caller

        with atomic(*self._parts()):
            rates = self.rates()
            old_balances = list(self.balances)
            xp = self._xp_mem(rates, old_balances)

            x = xp[i] + dx * rates[i] // PRECISION
            amp = self._A()
            D = compute_invariant(xp, amp)
            y = compute_implied_balance(j, i, x, xp, amp)

            dy = xp[j] - y - 1  # -1 just in case there were some rounding errors
            dy_fee = dy * self.fee_bps // FEE_DENOMINATOR

            # Convert all to real units
            dy = (dy - dy_fee) * PRECISION // rates[j]
            if dy <= 0 or dy < min_dy:
                raise SlippageError(f"output {dy} below minimum {min_dy}", tag="slippage")

            # xp is not used anymore, so we reuse it for price calc
            xp[i] = x
            xp[j] = y
            # D is not changed because we did not apply a fee
            self._save_p(xp, amp, D)

            dy_admin_fee = dy_fee * self.admin_fee_bps // FEE_DENOMINATOR
            dy_admin_fee = dy_admin_fee * PRECISION // rates[j]

            self.balances[i] = old_balances[i] + dx
            # When rounding errors happen, we undercharge admin fee in favor of LP
            self.balances[j] = old_balances[j] - dy - dy_admin_fee
            if self.balances[j] < 0:
                raise ValidationError("swap would drain an asset", tag="insufficient_liquidity")

            self.assets[i].token.transfer_in(self.address, caller, dx)
            self.assets[j].token.transfer_out(self.address, receiver, dy)

        fee_real = dy_fee * PRECISION // rates[j]
        self._debug_ledger_change("exchange", caller, old_balances, self.balances)
        self.receipts.add(SwapReceipt(
            time=self.clock.now, pool_id=self.pool_id, actor=receiver,
            asset_in=self.assets[i].symbol, amount_in=dx,
            asset_out=self.assets[j].symbol, amount_out=dy,
            fee=fee_real, status="executed",
        ))
        self._emit("SWAP_EXECUTED", receiver, amount=dy, asset_id=self.assets[j].symbol,
                   asset_in=self.assets[i].symbol, amount_in=dx, fee=fee_real, relay=caller)
        return dy

    # -----------------------------
    # admin
    # -----------------------------
    def ramp_a(self, caller: str, future_a: int, future_time: int) -> None:
        self.auth.require(caller)
        now = self.clock.now
        if now < self.initial_a_time + MIN_RAMP_TIME:
            raise ValidationError("ramp started too recently", tag="ramp_too_soon")
        if future_time < now + MIN_RAMP_TIME:
            raise ValidationError("insufficient ramp time", tag="ramp_too_short")
        if not 0 < future_a < MAX_A:
            raise ValidationError(f"future A {future_a} out of range", tag="bad_amp")

        initial_a = self._A()
        if future_a < initial_a:
            if future_a * MAX_A_CHANGE < initial_a:
                raise ValidationError("A change too large", tag="bad_amp")
        else:
            if future_a > initial_a * MAX_A_CHANGE:
                raise ValidationError("A change too large", tag="bad_amp")

        self.initial_a = initial_a
        self.future_a = int(future_a)
        self.initial_a_time = now
        self.future_a_time = int(future_time)
        self._emit("RAMP_A", caller, amount=future_a, initial_a=initial_a, future_time=future_time)

    def stop_ramp_a(self, caller: str) -> None:
        self.auth.require(caller)
        current_a = self._A()
        self.initial_a = current_a
        self.future_a = current_a
        self.initial_a_time = self.clock.now
        self.future_a_time = self.clock.now
        self._emit("STOP_RAMP_A", caller, amount=current_a)

    def set_fee(self, caller: str, fee_bps: int, admin_fee_bps: int) -> None:
        self.auth.require(caller)
        self._check_fees(fee_bps, admin_fee_bps)
        self.fee_bps = int(fee_bps)
        self.admin_fee_bps = int(admin_fee_bps)
        self._emit("FEE_CHANGED", caller, amount=fee_bps, admin_fee_bps=admin_fee_bps)

    @nonreentrant
    def withdraw_admin_fees(self, caller: str, receiver: Optional[str] = None) -> List[int]:
        self.auth.require(caller)
        receiver = receiver or caller
        with atomic(*self._parts()):
            amounts = [self.admin_balances(i) for i in range(self.n)]
            for i, token in enumerate(self._tokens()):
                if amounts[i] > 0:
                    token.transfer_out(self.address, receiver, amounts[i])
        self._emit("ADMIN_FEES_WITHDRAWN", receiver, amount=sum(amounts), amounts=amounts)
        return amounts
