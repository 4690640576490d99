import random

import pytest

from betsim.backtest_engine import (
    BacktestEngine,
    backtest,
    is_bet_winner,
    prepare_market_snapshot,
    run_backtests,
    settle_bet,
    split_markets,
)
from betsim.models import Bet
from betsim.strategy_base import BACKTEST
from conftest import T0, BrokenStrategy, BuyFirstOutcome, hourly_prices, hours, make_market


def _bet(outcome="Yes", side="buy", amount=100.0, price=0.4, market_id="m1"):
    return Bet(market_id=market_id, outcome=outcome, side=side, amount=amount,
               price_limit=price, reason="t", timestamp=T0)


def _dated_markets(n, resolved="Yes"):
    return [make_market(market_id=f"m{i:03d}", end_date=hours(24 * i), resolved=resolved) for i in range(n)]


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------

def test_split_is_chronological_80_20():
    markets = _dated_markets(100)
    shuffled = list(markets)
    random.Random(3).shuffle(shuffled)

    training, test = split_markets(shuffled, 0.8)

    assert len(training) == 80
    assert len(test) == 20
    assert [m.market_id for m in training] == [m.market_id for m in markets[:80]]
    assert [m.market_id for m in test] == [m.market_id for m in markets[80:]]


def test_split_drops_unresolved_and_puts_undated_last():
    undated = make_market(market_id="undated", end_date=None)
    dated   = _dated_markets(3)
    open_m  = make_market(market_id="open", resolved=None, end_date=hours(1))

    training, test = split_markets([undated, open_m] + dated, 0.5)

    ordered = [m.market_id for m in training + test]
    assert ordered == ["m000", "m001", "m002", "undated"]
    assert len(training) == 2


def test_split_floors_the_training_count():
    training, test = split_markets(_dated_markets(7), 0.5)
    assert (len(training), len(test)) == (3, 4)


@pytest.mark.parametrize("ratio, sizes", [(0.0, (0, 5)), (1.0, (5, 0))])
def test_split_extremes(ratio, sizes):
    training, test = split_markets(_dated_markets(5), ratio)
    assert (len(training), len(test)) == sizes


def test_invalid_training_ratio():
    with pytest.raises(ValueError):
        BacktestEngine(BuyFirstOutcome(), training_ratio=1.5)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def test_settlement_rules():
    assert is_bet_winner(_bet("Yes", "buy"), "Yes")
    assert not is_bet_winner(_bet("Yes", "buy"), "No")
    assert is_bet_winner(_bet("Yes", "sell"), "No")
    assert not is_bet_winner(_bet("Yes", "sell"), "Yes")
    assert is_bet_winner(_bet("yes", "buy"), "YES")


def test_settled_bet_cost_and_payout():
    win  = settle_bet(_bet(amount=100, price=0.4), "Yes")
    loss = settle_bet(_bet(amount=100, price=0.4), "No")

    assert (win.result, win.payout, win.cost) == ("win", 100, pytest.approx(40.0))
    assert (loss.result, loss.payout, loss.cost) == ("loss", 0.0, pytest.approx(40.0))


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def test_snapshot_hides_resolution_without_touching_original():
    original = make_market(prices=list(reversed(hourly_prices([0.1, 0.2, 0.3]))), resolved="No")

    snap = prepare_market_snapshot(original)

    assert snap.resolved_outcome is None
    assert snap.active is True
    assert [p.price for p in snap.historical_prices] == [0.1, 0.2, 0.3]
    assert original.resolved_outcome == "No"
    assert original.active is False
    assert [p.price for p in original.historical_prices] == [0.3, 0.2, 0.1]


def test_snapshot_keeps_full_history():
    # history is not cut at the decision time; strategies do their own filtering
    original = make_market(prices=hourly_prices([0.5] * 30), end_date=hours(5))
    assert len(prepare_market_snapshot(original).historical_prices) == 30


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def test_run_scores_only_the_test_partition():
    markets = _dated_markets(10, resolved="Yes")
    for m in markets[8:]:
        m.resolved_outcome = "No"
    strategy = BuyFirstOutcome()

    result = backtest(strategy, markets, 0.6)

    assert result.total_bets == 4
    assert result.wins == 2
    assert result.losses == 2
    assert result.win_rate == pytest.approx(50.0)
    assert result.total_cost == pytest.approx(200.0)
    assert result.total_winnings == pytest.approx(200.0)
    assert result.net_profit == pytest.approx(0.0)
    assert result.roi == pytest.approx(0.0)


def test_strategy_sees_snapshots_and_context():
    markets  = _dated_markets(5)
    strategy = BuyFirstOutcome()

    backtest(strategy, markets, 0.6)

    (seen, context), = strategy.calls
    assert context.mode == BACKTEST
    assert [m.market_id for m in context.training_markets] == ["m000", "m001", "m002"]
    assert [m.market_id for m in context.evaluation_markets] == ["m003", "m004"]
    assert all(m.resolved_outcome is None and m.active for m in seen)
    assert all(m.resolved_outcome == "Yes" for m in markets)


def test_roi_and_earnings_curve():
    markets = _dated_markets(4)
    markets[3].resolved_outcome = "No"
    strategy = BuyFirstOutcome({"price": 0.25})

    result = backtest(strategy, markets, 0.5)

    # m002 wins (+75), m003 loses (-25)
    assert result.net_profit == pytest.approx(50.0)
    assert result.roi == pytest.approx(100.0)
    assert [p.cumulative_earnings for p in result.earnings_over_time] == pytest.approx([75.0, 50.0])
    assert all(p.strategy_id == "buy_first" for p in result.earnings_over_time)


def test_no_resolved_markets_gives_empty_result():
    strategy = BuyFirstOutcome()
    result = backtest(strategy, [make_market(resolved=None)], 0.8)

    assert result.total_bets == 0
    assert result.roi == 0.0
    assert result.bets == []
    assert strategy.calls == []


def test_bets_on_unknown_markets_are_discarded():
    class StrayBets(BuyFirstOutcome):
        def generate_bets(self, markets, context=None):
            return super().generate_bets(markets, context) + [_bet(market_id="nowhere")]

    result = backtest(StrayBets(), _dated_markets(2), 0.0)
    assert result.total_bets == 2
    assert {b.market_id for b in result.bets} == {"m000", "m001"}


def test_strategy_errors_propagate_from_the_engine():
    with pytest.raises(RuntimeError, match="boom"):
        backtest(BrokenStrategy(), _dated_markets(3), 0.5)


def test_runs_are_deterministic():
    markets = _dated_markets(6)
    first  = backtest(BuyFirstOutcome(), markets, 0.5).to_dict()
    second = backtest(BuyFirstOutcome(), markets, 0.5).to_dict()
    assert first == second


# ---------------------------------------------------------------------------
# Several strategies
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("workers", [None, 4])
def test_run_backtests_reports_failures_separately(workers):
    markets    = _dated_markets(5)
    strategies = [BuyFirstOutcome(), BrokenStrategy(), BuyFirstOutcome(strategy_id="second")]

    runs = run_backtests(strategies, markets, 0.6, max_workers=workers)

    assert [r.strategy_id for r in runs] == ["buy_first", "broken", "second"]
    assert [r.failed for r in runs] == [False, True, False]
    assert runs[1].error == "boom"
    assert runs[1].error_type == "RuntimeError"
    assert runs[1].result is None
    assert runs[1].to_dict()["status"] == "failed"
    assert runs[0].to_dict()["status"] == "ok"
    assert runs[0].result.total_bets == 2


def test_zero_bet_run_is_not_a_failure():
    runs = run_backtests([BuyFirstOutcome()], [make_market(resolved=None)])
    assert not runs[0].failed
    assert runs[0].result.total_bets == 0
