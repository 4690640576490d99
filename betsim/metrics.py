"""
betsim/metrics.py — Descriptive statistics over market sets and console
reports for backtest results.

calculate_historical_stats() is read-only and independent of the backtest
engine, so it can be called on any market set, resolved or not.
"""

from collections import Counter
from typing import List

import numpy as np

from betsim.config import VOLATILE_MIN_POINTS, VOLATILE_TOP_N, VOLATILITY_CENTER
from betsim.models import BacktestResult, HistoricalStats, Market, VolatileMarket


def coin_flip_variance(prices: List[float]) -> float:
    """Mean squared distance of prices from 0.5 (not price-to-price variance)."""
    if not prices:
        return 0.0
    arr = np.asarray(prices, dtype=float)
    return float(np.mean((arr - VOLATILITY_CENTER) ** 2))


def rank_volatile_markets(markets: List[Market], top_n: int = VOLATILE_TOP_N) -> List[VolatileMarket]:
    candidates = [
        VolatileMarket(
            market_id = m.market_id,
            question  = m.question,
            variance  = coin_flip_variance([p.price for p in m.historical_prices]),
        )
        for m in markets
        if len(m.historical_prices) > VOLATILE_MIN_POINTS
    ]
    # reverse=True keeps equal variances in input order
    candidates.sort(key=lambda v: v.variance, reverse=True)
    return candidates[:top_n]


def calculate_historical_stats(markets: List[Market]) -> HistoricalStats:
    resolved = [m for m in markets if m.resolved_outcome is not None]

    if markets:
        avg_volume    = float(np.mean([m.volume for m in markets]))
        avg_liquidity = float(np.mean([m.liquidity for m in markets]))
    else:
        avg_volume = avg_liquidity = 0.0

    return HistoricalStats(
        total_markets    = len(markets),
        resolved_markets = len(resolved),
        avg_volume       = avg_volume,
        avg_liquidity    = avg_liquidity,
        volatile_markets = rank_volatile_markets(markets),
        top_outcomes     = dict(Counter(m.resolved_outcome for m in resolved)),
    )


# ---------------------------------------------------------------------------
# Console reports
# ---------------------------------------------------------------------------

def print_results(result: BacktestResult) -> None:
    roi      = result.roi
    roi_sign = "+" if roi >= 0 else ""
    pnl_sign = "+" if result.net_profit >= 0 else "-"

    print()
    print("=" * 55)
    print(f"  BACKTEST RESULTS — {result.strategy_name}")
    print("=" * 55)
    print(f"  Total bets:            {result.total_bets:>10}")
    print(f"    Wins:                {result.wins:>10}")
    print(f"    Losses:              {result.losses:>10}")
    print(f"  Win rate:              {result.win_rate:>9.2f}%")
    print(f"  Total cost:           ${result.total_cost:>10.2f}")
    print(f"  Total winnings:       ${result.total_winnings:>10.2f}")
    print(f"  Net profit:          {pnl_sign}${abs(result.net_profit):>10.2f}")
    print(f"  ROI:                   {roi_sign}{roi:>9.2f}%")
    print("=" * 55)
    print()


def print_run_failure(strategy_name: str, error: str) -> None:
    print()
    print("=" * 55)
    print(f"  BACKTEST FAILED — {strategy_name}")
    print("=" * 55)
    print(f"  Error: {error}")
    print("=" * 55)
    print()


def print_historical_stats(stats: HistoricalStats) -> None:
    print()
    print("=" * 55)
    print("  MARKET DATA SUMMARY")
    print("=" * 55)
    print(f"  Total markets:         {stats.total_markets:>10}")
    print(f"  Resolved markets:      {stats.resolved_markets:>10}")
    print(f"  Avg volume:           ${stats.avg_volume:>10.0f}")
    print(f"  Avg liquidity:        ${stats.avg_liquidity:>10.0f}")
    if stats.top_outcomes:
        print("  Resolved outcomes:")
        for outcome, count in stats.top_outcomes.items():
            print(f"    {outcome:<20} {count:>10}")
    if stats.volatile_markets:
        print("  Most volatile markets:")
        for vm in stats.volatile_markets:
            print(f"    {vm.variance:.4f}  {vm.question[:42]}")
    print("=" * 55)
    print()
