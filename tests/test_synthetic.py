from datetime import timedelta

import numpy as np
import pytest

from polymarket_lab.synthetic import generate_markets, generate_trades, random_walk
from conftest import hours

NOW = hours(24 * 30)


def test_market_set_shape(small_markets):
    assert len(small_markets) == 10
    assert len({m.market_id for m in small_markets}) == 10
    assert small_markets[0].market_id == "synthetic-0001"

    resolved = [m for m in small_markets if m.is_resolved]
    assert len(resolved) == 8
    assert all(not m.active and m.resolution_date == m.end_date for m in resolved)
    assert all(m.active and m.resolved_outcome is None for m in small_markets[8:])
    assert all(m.resolved_outcome in ("Yes", "No") for m in resolved)


def test_end_dates_are_distinct_and_straddle_now(small_markets):
    end_dates = [m.end_date for m in small_markets]
    assert len(set(end_dates)) == 10
    assert end_dates == sorted(end_dates)
    assert end_dates[7] == NOW - timedelta(days=1)
    assert end_dates[8] == NOW + timedelta(days=1)


def test_history_is_bounded_and_anchored(small_markets):
    for m in small_markets:
        # 48 hourly steps plus the starting point, two outcomes each
        assert len(m.historical_prices) == 2 * 49
        assert all(0.05 <= p.price <= 0.95 for p in m.historical_prices)
        assert m.historical_prices[-1].timestamp == min(m.end_date, NOW)

        assert len(m.trades) == 200
        stamps = [t.timestamp for t in m.trades]
        assert stamps == sorted(stamps)
        assert all(0.01 <= t.price <= 0.99 for t in m.trades)
        assert all(t.maker.startswith("0x") and len(t.maker) == 42 for t in m.trades)
        assert 50000 <= m.liquidity <= 300000


def test_same_seed_same_markets():
    a = generate_markets(4, seed=11, now=NOW, price_points=24, trade_count=30)
    b = generate_markets(4, seed=11, now=NOW, price_points=24, trade_count=30)
    c = generate_markets(4, seed=12, now=NOW, price_points=24, trade_count=30)

    dump = lambda ms: [m.to_dict(include_history=True) for m in ms]
    assert dump(a) == dump(b)
    assert dump(a) != dump(c)


def test_random_walk_stays_in_range():
    path = random_walk(0.94, np.random.default_rng(0), points=500)
    assert len(path) == 501
    assert path.min() >= 0.05
    assert path.max() <= 0.95


def test_trade_prices_follow_their_hour():
    path   = np.array([0.2] * 10 + [0.8])
    trades = generate_trades(["Yes", "No"], path, np.random.default_rng(3), NOW, count=40)

    # 40 trades every 3 minutes cover the last two hours of the path
    for t in trades:
        reference = 0.8 if NOW - t.timestamp < timedelta(hours=1) else 0.2
        if t.outcome == "No":
            reference = 1.0 - reference
        assert t.price == pytest.approx(reference, abs=0.015 + 1e-9)


def test_whales_are_present(small_markets):
    amounts = [t.amount for m in small_markets for t in m.trades]
    assert any(a >= 1000 for a in amounts)
    assert any(a < 1000 for a in amounts)
