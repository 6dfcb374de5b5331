import pytest

from stablesim import solver
from stablesim.core import ConvergenceError, ValidationError, PRECISION
from stablesim.solver import (
    compute_invariant, compute_implied_balance, compute_balance_for_invariant, spot_price,
)


def test_balanced_pool_invariant_equals_sum():
    assert compute_invariant([1000, 1000], 100) == 2000


def test_balanced_three_asset_pool():
    xp = [10 ** 24] * 3
    assert compute_invariant(xp, 200) == 3 * 10 ** 24


def test_empty_pool_has_zero_invariant():
    assert compute_invariant([0, 0], 100) == 0


def test_imbalanced_invariant_below_sum():
    xp = [10 ** 24, 3 * 10 ** 23]
    D = compute_invariant(xp, 100)
    assert D < sum(xp)
    assert D > 2 * 3 * 10 ** 23


def test_invariant_is_deterministic_and_self_consistent():
    xp = [123_456 * 10 ** 18, 98_765 * 10 ** 18, 150_000 * 10 ** 18]
    D = compute_invariant(xp, 50)
    assert compute_invariant(xp, 50) == D
    balanced = [D // 3] * 3
    assert abs(compute_invariant(balanced, 50) - 3 * (D // 3)) <= 1


@pytest.mark.parametrize("amp", [1, 10, 100, 1000, 100_000])
def test_invariant_converges_across_amplification(amp):
    xp = [5 * 10 ** 23, 2 * 10 ** 24]
    D = compute_invariant(xp, amp)
    assert 0 < D <= sum(xp)


def test_rejects_bad_inputs():
    with pytest.raises(ValidationError):
        compute_invariant([1000, 1000], 0)
    with pytest.raises(ValidationError):
        compute_invariant([1000], 100)
    with pytest.raises(ValidationError):
        compute_invariant([1000, 0], 100)
    with pytest.raises(ValidationError):
        compute_invariant([1000, -1], 100)


def test_iteration_budget_exhaustion_is_fatal(monkeypatch):
    monkeypatch.setattr(solver, "MAX_ITERATIONS", 0)
    with pytest.raises(ConvergenceError):
        compute_invariant([1000, 2000], 100)
    with pytest.raises(ConvergenceError):
        compute_balance_for_invariant(0, [1000, 2000], 3000, 100)


def test_implied_balance_preserves_invariant():
    xp = [10 ** 21, 10 ** 21]
    amp = 100
    D = compute_invariant(xp, amp)
    new_x0 = xp[0] + 10 ** 18
    y = compute_implied_balance(1, 0, new_x0, xp, amp)
    out = xp[1] - y
    assert 99 * 10 ** 16 < out < 10 ** 18
    assert abs(compute_invariant([new_x0, y], amp) - D) <= 10


def test_implied_balance_at_current_balance_is_unchanged():
    xp = [7 * 10 ** 20, 13 * 10 ** 20, 10 ** 21]
    y = compute_implied_balance(2, 0, xp[0], xp, 80)
    assert abs(y - xp[2]) <= 5


def test_implied_balance_index_checks():
    xp = [10 ** 21, 10 ** 21]
    with pytest.raises(ValidationError):
        compute_implied_balance(0, 0, 10 ** 21, xp, 100)
    with pytest.raises(ValidationError):
        compute_implied_balance(2, 0, 10 ** 21, xp, 100)
    with pytest.raises(ValidationError):
        compute_implied_balance(1, -1, 10 ** 21, xp, 100)


def test_balance_for_reduced_invariant():
    xp = [10 ** 21, 2 * 10 ** 21]
    D = compute_invariant(xp, 100)
    assert abs(compute_balance_for_invariant(0, xp, D, 100) - xp[0]) <= 5
    smaller = compute_balance_for_invariant(0, xp, D - 10 ** 20, 100)
    assert smaller < xp[0]


def test_spot_price_balanced_is_one():
    xp = [10 ** 21, 10 ** 21]
    D = compute_invariant(xp, 100)
    assert spot_price(xp, 100, D, 1, 0) == PRECISION


def test_spot_price_scarce_asset_is_dearer():
    xp = [10 ** 21, 2 * 10 ** 20]
    D = compute_invariant(xp, 10)
    assert spot_price(xp, 10, D, 1, 0) > PRECISION
    assert spot_price(xp, 10, D, 0, 1) < PRECISION
