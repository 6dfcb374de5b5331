from __future__ import annotations
from typing import List, Sequence

from .core import ConvergenceError, ValidationError, PRECISION

MAX_ITERATIONS = 255


def _check_balances(xp: Sequence[int], amp: int) -> int:
    n = len(xp)
    if n < 2:
        raise ValidationError("solver needs at least two balances", tag="bad_length")
    if amp < 1:
        raise ValidationError(f"amplification must be positive, got {amp}", tag="bad_amp")
    for x in xp:
        if x < 0:
            raise ValidationError("negative balance", tag="negative_balance")
    return n


def _check_index(i: int, n: int) -> None:
    if i < 0 or i >= n:
        raise ValidationError(f"index {i} out of range for {n} assets", tag="bad_index")


def compute_invariant(xp: Sequence[int], amp: int) -> int:
    """
    D invariant calculation in non-overflowing integer operations
    iteratively

    A * sum(x_i) * n**n + D = A * D * n**n + D**(n+1) / (n**n * prod(x_i))

    Converging solution:
    D[j+1] = (A * n**n * sum(x_i) - D[j]**(n+1) / (n**n prod(x_i))) / (A * n**n - 1)

    `amp` is A * n**(n-1), the value stored on the pool.
    """
    n = _check_balances(xp, amp)
    S = 0
    for x in xp:
        S += x
    if S == 0:
        return 0
    if any(x == 0 for x in xp):
        raise ValidationError("zero balance in a non-empty pool", tag="zero_balance")

    D = S
    Ann = amp * n
    for _ in range(MAX_ITERATIONS):
        D_P = D
        for x in xp:
            D_P = D_P * D // (x * n)
        Dprev = D
        D = (Ann * S + D_P * n) * D // ((Ann - 1) * D + (n + 1) * D_P)
        # Equality with the precision of 1
        if D > Dprev:
            if D - Dprev <= 1:
                return D
        else:
            if Dprev - D <= 1:
                return D
    raise ConvergenceError(f"invariant did not converge in {MAX_ITERATIONS} rounds (xp={list(xp)}, amp={amp})")


def _solve_y(n: int, skip: int, others: List[int], amp: int, D: int) -> int:
    """
    x_1**2 + x_1 * (sum' - (A*n**n - 1) * D / (A * n**n)) = D ** (n + 1) / (n ** (2 * n) * prod' * A)
    x_1**2 + b*x_1 = c

    x_1 = (x_1**2 + c) / (2*x_1 + b)
    """
    S_ = 0
    c = D
    Ann = amp * n
    for _x in others:
        if _x <= 0:
            raise ValidationError("zero balance in implied-balance solve", tag="zero_balance")
        S_ += _x
        c = c * D // (_x * n)
    c = c * D // (Ann * n)
    b = S_ + D // Ann  # - D
    y = D

    for _ in range(MAX_ITERATIONS):
        y_prev = y
        y = (y * y + c) // (2 * y + b - D)
        # Equality with the precision of 1
        if y > y_prev:
            if y - y_prev <= 1:
                return y
        else:
            if y_prev - y <= 1:
                return y
    raise ConvergenceError(f"balance {skip} did not converge in {MAX_ITERATIONS} rounds")


def compute_implied_balance(i: int, j: int, target_j: int, xp: Sequence[int], amp: int) -> int:
    """
    Calculate the balance of `i` once the balance of `j` is set to `target_j`.

    The invariant is computed from the current `xp` and held fixed across the
    hypothesis, so a swap that moves `j` to `target_j` must leave `i` at the
    returned value. All values are in the normalised domain.
    """
    n = _check_balances(xp, amp)
    _check_index(i, n)
    _check_index(j, n)
    if i == j:
        raise ValidationError("same asset", tag="same_asset")

    D = compute_invariant(xp, amp)
    others = []
    for k in range(n):
        if k == i:
            continue
        others.append(target_j if k == j else xp[k])
    return _solve_y(n, i, others, amp, D)


def compute_balance_for_invariant(i: int, xp: Sequence[int], D: int, amp: int) -> int:
    """Calculate x[i] if one reduces D from being calculated for xp to D."""
    n = _check_balances(xp, amp)
    _check_index(i, n)
    others = [xp[k] for k in range(n) if k != i]
    return _solve_y(n, i, others, amp, D)


def spot_price(xp: Sequence[int], amp: int, D: int, i: int = 0, j: int = 1) -> int:
    """dx_j / dx_i at PRECISION, i.e. the marginal price of asset i in units of asset j."""
    n = _check_balances(xp, amp)
    _check_index(i, n)
    _check_index(j, n)
    if D == 0:
        return PRECISION
    ANN = amp * n
    Dr = D // (n ** n)
    for x in xp:
        Dr = Dr * D // x
    return PRECISION * (ANN * xp[j] + Dr * xp[j] // xp[i]) // (ANN * xp[j] + Dr)
