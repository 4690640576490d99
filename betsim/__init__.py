"""
betsim/ — Platform-agnostic backtesting core.

Holds the market data model, the strategy contract and its reference
implementations, the backtest engine and the historical statistics
aggregator. Nothing in here performs I/O; data acquisition, caching and
presentation live in polymarket_lab/.

Usage:
    from betsim.backtest_engine import backtest
    from betsim.strategies import default_strategies

    for strategy in default_strategies():
        result = backtest(strategy, markets)
"""

__version__ = "0.1.0"
