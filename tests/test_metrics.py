import pytest

from betsim.metrics import (
    calculate_historical_stats,
    coin_flip_variance,
    print_historical_stats,
    print_results,
    print_run_failure,
    rank_volatile_markets,
)
from betsim.models import BacktestResult
from conftest import hourly_prices, make_market


def test_empty_market_set():
    stats = calculate_historical_stats([])
    assert stats.total_markets == 0
    assert stats.resolved_markets == 0
    assert stats.avg_volume == 0.0
    assert stats.avg_liquidity == 0.0
    assert stats.volatile_markets == []
    assert stats.top_outcomes == {}


def test_coin_flip_variance_measures_distance_from_half():
    assert coin_flip_variance([]) == 0.0
    assert coin_flip_variance([0.5, 0.5]) == 0.0
    assert coin_flip_variance([0.0, 1.0]) == pytest.approx(0.25)
    # a steady price far from 0.5 still counts as "volatile"
    assert coin_flip_variance([0.9] * 5) == pytest.approx(0.16)


def test_volatile_ranking_needs_more_than_ten_points():
    short  = make_market(market_id="short", prices=hourly_prices([0.99] * 10))
    calm   = make_market(market_id="calm", prices=hourly_prices([0.5] * 11))
    wild   = make_market(market_id="wild", prices=hourly_prices([0.1, 0.9] * 6))
    medium = make_market(market_id="medium", prices=hourly_prices([0.3, 0.7] * 6))

    ranked = rank_volatile_markets([short, calm, wild, medium])

    assert [v.market_id for v in ranked] == ["wild", "medium", "calm"]
    assert rank_volatile_markets([short, calm, wild, medium], top_n=1)[0].market_id == "wild"


def test_historical_stats_summarise_the_set():
    markets = [
        make_market(market_id="a", resolved="Yes", liquidity=100.0),
        make_market(market_id="b", resolved="No", liquidity=300.0),
        make_market(market_id="c", resolved="Yes", liquidity=200.0),
        make_market(market_id="d", resolved=None, liquidity=400.0),
    ]

    stats = calculate_historical_stats(markets)

    assert stats.total_markets == 4
    assert stats.resolved_markets == 3
    assert stats.avg_liquidity == pytest.approx(250.0)
    assert stats.top_outcomes == {"Yes": 2, "No": 1}
    assert stats.to_dict()["top_outcomes"] == {"Yes": 2, "No": 1}


def test_console_reports(capsys):
    print_results(BacktestResult(strategy_id="s", strategy_name="Sample", total_bets=3, roi=-12.5))
    print_run_failure("Broken", "boom")
    print_historical_stats(calculate_historical_stats([make_market()]))

    out = capsys.readouterr().out
    assert "BACKTEST RESULTS — Sample" in out
    assert "-12.50%" in out
    assert "BACKTEST FAILED — Broken" in out
    assert "boom" in out
    assert "MARKET DATA SUMMARY" in out
