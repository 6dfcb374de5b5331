import pytest

from stablesim.core import DAY, WEEK, ReentrancyError, Token, TransferError, ValidationError


@pytest.fixture
def reward():
    token = Token("RWD", 18)
    token.mint("funder", 10 ** 30)
    return token


def _stake(gauge, lp_token, account, amount):
    lp_token.mint(account, amount)
    gauge.stake(account, amount)


def test_linear_accrual_one_day_of_seven(gauge, lp_token, clock):
    x = Token("X", 18)
    x.mint("funder", 700)
    _stake(gauge, lp_token, "alice", 100)
    gauge.fund("funder", x, 700, 604800)
    assert gauge.streams["X"].rate == 700 * 10 ** 18 // 604800

    clock.advance(86400)
    assert abs(gauge.earned("alice", "X") - 100) <= 1


def test_full_period_round_trip(gauge, lp_token, clock, reward):
    amount = 10 ** 21
    _stake(gauge, lp_token, "alice", 100)
    gauge.fund("funder", reward, amount, WEEK)
    clock.advance(WEEK)
    paid = gauge.claim("alice")
    assert amount - 1 <= paid["RWD"] <= amount
    assert reward.balance_of("alice") == paid["RWD"]


def test_accrual_stops_at_period_end(gauge, lp_token, clock, reward):
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, 10 ** 20, WEEK)
    clock.advance(WEEK)
    at_end = gauge.earned("alice", "RWD")
    clock.advance(3 * WEEK)
    assert gauge.earned("alice", "RWD") == at_end
    assert gauge.left("RWD") == 0


def test_mid_period_refund_conserves_value(gauge, lp_token, clock, reward):
    a1, a2 = 7 * 10 ** 20, 3 * 10 ** 20
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, a1, WEEK)
    clock.advance(WEEK // 2)
    left_before = gauge.left("RWD")
    gauge.fund("funder", reward, a2, WEEK)
    assert gauge.streams["RWD"].period_end == clock.now + WEEK
    assert gauge.streams["RWD"].last_update == clock.now
    assert gauge.left("RWD") >= left_before + a2 - 1

    clock.advance(2 * WEEK)
    paid = gauge.claim("alice")["RWD"]
    assert a1 + a2 - 3 <= paid <= a1 + a2


def test_rewards_split_by_stake(gauge, lp_token, clock, reward):
    _stake(gauge, lp_token, "alice", 100 * 10 ** 18)
    _stake(gauge, lp_token, "bob", 300 * 10 ** 18)
    gauge.fund("funder", reward, 4 * 10 ** 20, WEEK)
    clock.advance(WEEK)
    alice = gauge.earned("alice", "RWD")
    bob = gauge.earned("bob", "RWD")
    assert abs(bob - 3 * alice) <= 3
    assert alice + bob <= 4 * 10 ** 20


def test_late_staker_only_earns_after_joining(gauge, lp_token, clock, reward):
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, 10 ** 20, 2 * DAY)
    clock.advance(DAY)
    _stake(gauge, lp_token, "bob", 10 ** 18)
    clock.advance(DAY)
    alice = gauge.earned("alice", "RWD")
    bob = gauge.earned("bob", "RWD")
    assert abs(alice - 75 * 10 ** 18) <= 2
    assert abs(bob - 25 * 10 ** 18) <= 2


def test_no_accrual_while_nothing_is_staked(gauge, lp_token, clock, reward):
    gauge.fund("funder", reward, 10 ** 20, 2 * DAY)
    rpu = gauge.reward_per_unit("RWD")
    clock.advance(DAY)
    assert gauge.reward_per_unit("RWD") == rpu
    _stake(gauge, lp_token, "alice", 10 ** 18)
    clock.advance(DAY)
    assert abs(gauge.earned("alice", "RWD") - 5 * 10 ** 19) <= 1


def test_unstake_keeps_accrued_rewards(gauge, lp_token, clock, reward):
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, 10 ** 20, 2 * DAY)
    clock.advance(DAY)
    gauge.unstake("alice", 10 ** 18)
    assert lp_token.balance_of("alice") == 10 ** 18
    assert gauge.total_staked == 0
    clock.advance(DAY)
    assert abs(gauge.earned("alice", "RWD") - 5 * 10 ** 19) <= 1
    gauge.claim("alice")
    assert gauge.earned("alice", "RWD") == 0


def test_fund_validation(gauge, reward):
    with pytest.raises(ValidationError):
        gauge.fund("funder", reward, 0, WEEK)
    with pytest.raises(ValidationError):
        gauge.fund("funder", reward, 10, DAY - 1)
    with pytest.raises(ValidationError):
        gauge.fund("nobody", reward, 10, WEEK)
    assert gauge.reward_tokens() == []


def test_stake_validation(gauge, lp_token):
    with pytest.raises(ValidationError):
        gauge.stake("alice", 0)
    with pytest.raises(ValidationError):
        gauge.stake("alice", 10)
    _stake(gauge, lp_token, "alice", 10)
    with pytest.raises(ValidationError):
        gauge.unstake("alice", 11)


def test_failed_transfer_rolls_back_new_stream(gauge, reward):
    def refuse(token, sender, receiver, amount):
        raise TransferError("token refused transfer")

    reward.on_transfer = refuse
    with pytest.raises(TransferError):
        gauge.fund("funder", reward, 10 ** 18, WEEK)
    assert gauge.streams == {}
    assert gauge.reward_token_map == {}
    assert reward.balance_of("funder") == 10 ** 30
    assert reward.balance_of(gauge.address) == 0


def test_reentrant_claim_is_rejected(gauge, lp_token, clock, reward):
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, 10 ** 20, WEEK)
    clock.advance(DAY)
    owed = gauge.earned("alice", "RWD")

    def call_back(token, sender, receiver, amount):
        gauge.claim(receiver)

    reward.on_transfer = call_back
    with pytest.raises(ReentrancyError):
        gauge.claim("alice")
    assert reward.balance_of("alice") == 0
    assert gauge.earned("alice", "RWD") == owed

    reward.on_transfer = None
    assert gauge.claim("alice")["RWD"] == owed


def test_events_are_emitted(gauge, lp_token, clock, log, reward):
    _stake(gauge, lp_token, "alice", 10 ** 18)
    gauge.fund("funder", reward, 10 ** 20, WEEK)
    clock.advance(DAY)
    gauge.claim("alice")
    gauge.unstake("alice", 10 ** 18)
    kinds = [e.event_type for e in log.events]
    assert kinds == ["STAKED", "FUNDING_ADDED", "REWARD_PAID", "UNSTAKED"]
