"""
betsim/backtest_engine.py — Replays a strategy against resolved markets.

Steps for one run:
  1. keep resolved markets, sort them oldest → newest by end_date
  2. split into training (head) and test (tail) partitions
  3. hand the strategy a snapshot of the test markets with the answer hidden
  4. settle every proposed bet against the real outcome
  5. aggregate wins, cost, payout, ROI and the running earnings curve

The engine holds no state between runs. Errors raised by the strategy
propagate to the caller; run_backtests() is the place that turns them into
reportable failed runs.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from betsim.config import DEFAULT_TRAINING_RATIO
from betsim.models import (
    BacktestBet,
    BacktestResult,
    Bet,
    EarningsPoint,
    Market,
    StrategyContext,
)
from betsim.strategy_base import BACKTEST, StrategyBase

logger = logging.getLogger(__name__)

# Markets without an end_date sort after every dated market
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def _end_date_key(market: Market) -> Tuple[int, datetime]:
    if market.end_date is None:
        return (1, _FAR_FUTURE)
    end = market.end_date
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return (0, end)


def split_markets(
    markets:        List[Market],
    training_ratio: float = DEFAULT_TRAINING_RATIO,
) -> Tuple[List[Market], List[Market]]:
    """
    Sort resolved markets by end_date (undated last, ties in input order)
    and split at floor(count × training_ratio).

    Returns:
        (training_markets, test_markets)
    """
    resolved      = [m for m in markets if m.resolved_outcome is not None]
    ordered       = sorted(resolved, key=_end_date_key)
    split_index   = math.floor(len(ordered) * training_ratio)
    return ordered[:split_index], ordered[split_index:]


def prepare_market_snapshot(market: Market) -> Market:
    """
    Copy a test market so the strategy cannot see how it resolved.

    The copy is open (active, no resolved_outcome) and its price and trade
    histories are new lists sorted oldest → newest. History is NOT cut at
    the decision time; strategies filter by determine_decision_time().
    """
    return replace(
        market,
        outcomes          = list(market.outcomes),
        historical_prices = sorted(market.historical_prices, key=lambda p: p.timestamp),
        trades            = sorted(market.trades, key=lambda t: t.timestamp),
        resolved_outcome  = None,
        active            = True,
    )


def is_bet_winner(bet: Bet, resolved_outcome: str) -> bool:
    """
    buy X  wins iff X is the resolved outcome.
    sell X wins iff X is NOT the resolved outcome.
    Outcome labels compare case-insensitively.
    """
    matches = bet.outcome.lower() == resolved_outcome.lower()
    if bet.side == "buy":
        return matches
    return not matches


def settle_bet(bet: Bet, resolved_outcome: str) -> BacktestBet:
    """Attach result, cost and payout to a bet. A winning share pays 1 per unit."""
    won = is_bet_winner(bet, resolved_outcome)
    return BacktestBet(
        market_id   = bet.market_id,
        outcome     = bet.outcome,
        side        = bet.side,
        amount      = bet.amount,
        price_limit = bet.price_limit,
        reason      = bet.reason,
        timestamp   = bet.timestamp,
        result      = "win" if won else "loss",
        payout      = bet.amount if won else 0.0,
        cost        = bet.amount * bet.price_limit,
    )


def summarize(
    strategy:           StrategyBase,
    settled:            List[BacktestBet],
    earnings_over_time: List[EarningsPoint],
) -> BacktestResult:
    total_bets     = len(settled)
    wins           = sum(1 for b in settled if b.result == "win")
    losses         = sum(1 for b in settled if b.result == "loss")
    total_cost     = sum(b.cost for b in settled)
    total_winnings = sum(b.payout for b in settled)
    net_profit     = total_winnings - total_cost

    return BacktestResult(
        strategy_id        = strategy.strategy_id,
        strategy_name      = strategy.name,
        total_bets         = total_bets,
        wins               = wins,
        losses             = losses,
        win_rate           = wins / total_bets * 100.0 if total_bets > 0 else 0.0,
        total_cost         = total_cost,
        total_winnings     = total_winnings,
        net_profit         = net_profit,
        roi                = net_profit / total_cost * 100.0 if total_cost > 0 else 0.0,
        bets               = settled,
        earnings_over_time = earnings_over_time,
    )


# ---------------------------------------------------------------------------
# BacktestEngine
# ---------------------------------------------------------------------------

class BacktestEngine:
    """
    Runs a backtest for one strategy across a set of markets.

    Usage:
        engine = BacktestEngine(strategy)
        result = engine.run(markets)
        metrics.print_results(result)
    """

    def __init__(
        self,
        strategy:       StrategyBase,
        training_ratio: float = DEFAULT_TRAINING_RATIO,
    ):
        if not 0.0 <= training_ratio <= 1.0:
            raise ValueError(f"training_ratio must be between 0 and 1, got {training_ratio}")
        self.strategy       = strategy
        self.training_ratio = training_ratio

    def run(self, markets: List[Market]) -> BacktestResult:
        logger.info("Backtesting %s on %d markets", self.strategy.name, len(markets))

        training, test = split_markets(markets, self.training_ratio)
        if not training and not test:
            logger.warning("No resolved markets found for backtesting %s", self.strategy.name)
            return summarize(self.strategy, [], [])

        logger.info("Training markets: %d, test markets: %d", len(training), len(test))

        snapshots = [prepare_market_snapshot(m) for m in test]
        context = StrategyContext(
            mode               = BACKTEST,
            training_markets   = training,
            evaluation_markets = test,
        )

        proposed = self.strategy.generate_bets(snapshots, context)
        logger.info("%s proposed %d bets", self.strategy.name, len(proposed))

        by_id: Dict[str, Market] = {}
        for market in test:
            by_id.setdefault(market.market_id, market)

        settled:  List[BacktestBet]   = []
        earnings: List[EarningsPoint] = []
        cumulative = 0.0

        for bet in proposed:
            market = by_id.get(bet.market_id)
            if market is None or market.resolved_outcome is None:
                logger.debug("Discarding bet on unknown/unresolved market %s", bet.market_id)
                continue

            settled_bet = settle_bet(bet, market.resolved_outcome)
            cumulative += settled_bet.payout - settled_bet.cost
            settled.append(settled_bet)
            earnings.append(EarningsPoint(
                timestamp           = bet.timestamp,
                cumulative_earnings = cumulative,
                strategy_id         = self.strategy.strategy_id,
            ))

        return summarize(self.strategy, settled, earnings)


def backtest(
    strategy:       StrategyBase,
    markets:        List[Market],
    training_ratio: float = DEFAULT_TRAINING_RATIO,
) -> BacktestResult:
    """Backtest one strategy. See BacktestEngine.run()."""
    return BacktestEngine(strategy, training_ratio).run(markets)


# ---------------------------------------------------------------------------
# Running several strategies
# ---------------------------------------------------------------------------

@dataclass
class BacktestRun:
    """
    Outcome of backtesting one strategy inside a batch.

    Exactly one of result / error is set. A failed run is a broken
    strategy; a successful run with zero bets is not.
    """
    strategy_id:   str
    strategy_name: str
    result:        Optional[BacktestResult] = None
    error:         Optional[str]            = None
    error_type:    Optional[str]            = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self, include_bets: bool = False) -> dict:
        data = {
            "strategy_id":   self.strategy_id,
            "strategy_name": self.strategy_name,
            "status":        "failed" if self.failed else "ok",
        }
        if self.failed:
            data["error"]      = self.error
            data["error_type"] = self.error_type
        else:
            data["result"] = self.result.to_dict(include_bets=include_bets)
        return data


def _run_one(
    strategy:       StrategyBase,
    markets:        List[Market],
    training_ratio: float,
) -> BacktestRun:
    try:
        result = backtest(strategy, markets, training_ratio)
    except Exception as e:
        logger.exception("Backtest failed for %s", strategy.name)
        return BacktestRun(
            strategy_id   = strategy.strategy_id,
            strategy_name = strategy.name,
            error         = str(e) or e.__class__.__name__,
            error_type    = e.__class__.__name__,
        )
    return BacktestRun(
        strategy_id   = strategy.strategy_id,
        strategy_name = strategy.name,
        result        = result,
    )


def run_backtests(
    strategies:     List[StrategyBase],
    markets:        List[Market],
    training_ratio: float = DEFAULT_TRAINING_RATIO,
    max_workers:    Optional[int] = None,
) -> List[BacktestRun]:
    """
    Backtest every strategy against the same markets.

    Each strategy's failure is recorded on its own BacktestRun so one broken
    strategy does not hide the others. With max_workers > 1 the runs go to
    a thread pool; the returned list always follows the input order.
    """
    if max_workers is None or max_workers <= 1 or len(strategies) <= 1:
        return [_run_one(s, markets, training_ratio) for s in strategies]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_run_one, s, markets, training_ratio) for s in strategies]
        return [f.result() for f in futures]
