"""
polymarket_lab/synthetic.py — Seeded synthetic market data.

Used in two places:
  1. data_fetcher falls back to it when the subgraph has no history for a
     real Gamma market (so every market can still be backtested)
  2. generate_markets() builds a complete offline market set (no network)

The price walk has occasional spikes so the spike-reversal strategy has
something to react to, and a share of the trades are whale-sized so the
whale-copy strategy does too. Everything is driven by one numpy Generator,
so the same seed always gives the same markets.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import numpy as np

from betsim.models import Market, PricePoint, Trade
from betsim.strategy_base import clamp_price
from polymarket_lab.config import (
    DEFAULT_SEED,
    SYNTHETIC_LIQUIDITY_MAX,
    SYNTHETIC_LIQUIDITY_MIN,
    SYNTHETIC_PRICE_CAP,
    SYNTHETIC_PRICE_FLOOR,
    SYNTHETIC_PRICE_POINTS,
    SYNTHETIC_PRICE_STEP,
    SYNTHETIC_REGULAR_MAX,
    SYNTHETIC_REGULAR_MIN,
    SYNTHETIC_RESOLVED_FRACTION,
    SYNTHETIC_SPIKE_CHANCE,
    SYNTHETIC_SPIKE_SIZE,
    SYNTHETIC_TRADE_JITTER,
    SYNTHETIC_TRADE_MINUTES,
    SYNTHETIC_TRADES,
    SYNTHETIC_WHALE_MAX,
    SYNTHETIC_WHALE_MIN,
    SYNTHETIC_WHALE_SHARE,
)


def _labels(outcomes: List[str]) -> Tuple[str, str]:
    primary   = outcomes[0] if len(outcomes) > 0 else "Yes"
    secondary = outcomes[1] if len(outcomes) > 1 else "No"
    return primary, secondary


def _random_address(rng: np.random.Generator) -> str:
    return "0x" + rng.bytes(20).hex()


def random_liquidity(rng: np.random.Generator) -> float:
    """A plausible liquidity figure for markets the API reports none for."""
    return float(rng.uniform(SYNTHETIC_LIQUIDITY_MIN, SYNTHETIC_LIQUIDITY_MAX))


def random_walk(
    start:  float,
    rng:    np.random.Generator,
    points: int = SYNTHETIC_PRICE_POINTS,
) -> np.ndarray:
    """
    Primary-outcome price path of points + 1 values, oldest first.

    Each step moves by uniform ±STEP/2; with SPIKE_CHANCE it also jumps by
    uniform ±SPIKE/2. The path is clamped to [0.05, 0.95] after every step.
    """
    n      = points + 1
    spikes = np.where(
        rng.random(n) < SYNTHETIC_SPIKE_CHANCE,
        (rng.random(n) - 0.5) * SYNTHETIC_SPIKE_SIZE,
        0.0,
    )
    steps = (rng.random(n) - 0.5) * SYNTHETIC_PRICE_STEP + spikes

    path  = np.empty(n)
    price = start
    for i, step in enumerate(steps):
        price   = min(SYNTHETIC_PRICE_CAP, max(SYNTHETIC_PRICE_FLOOR, price + step))
        path[i] = price
    return path


def generate_price_history(
    outcomes:      List[str],
    current_price: float,
    rng:           np.random.Generator,
    anchor:        datetime,
    points:        int = SYNTHETIC_PRICE_POINTS,
) -> Tuple[List[PricePoint], np.ndarray]:
    """
    Hourly prices for the first two outcomes ending at `anchor`.

    The secondary outcome is the complement of the primary (clamped), so the
    two roughly sum to 1. Points are interleaved: primary then secondary for
    each hour.

    Returns:
        (price_points, primary_path)
    """
    primary, secondary = _labels(outcomes)
    path = random_walk(current_price, rng, points)

    history: List[PricePoint] = []
    for i, price in enumerate(path):
        timestamp = anchor - timedelta(hours=points - i)
        history.append(PricePoint(timestamp=timestamp, price=float(price), outcome=primary))
        history.append(PricePoint(
            timestamp = timestamp,
            price     = float(min(SYNTHETIC_PRICE_CAP, max(SYNTHETIC_PRICE_FLOOR, 1.0 - price))),
            outcome   = secondary,
        ))
    return history, path


def generate_trades(
    outcomes:     List[str],
    primary_path: np.ndarray,
    rng:          np.random.Generator,
    anchor:       datetime,
    count:        int = SYNTHETIC_TRADES,
) -> List[Trade]:
    """
    One trade every SYNTHETIC_TRADE_MINUTES going back from `anchor`,
    returned oldest first.

    Each trade is priced off the hourly price of its outcome at that time,
    ± half the jitter. About SYNTHETIC_WHALE_SHARE of them are whale-sized.
    """
    primary, secondary = _labels(outcomes)
    last_index = len(primary_path) - 1

    trades: List[Trade] = []
    for i in range(count):
        minutes_back = i * SYNTHETIC_TRADE_MINUTES
        timestamp    = anchor - timedelta(minutes=minutes_back)
        side         = "buy" if rng.random() > 0.5 else "sell"

        if rng.random() < SYNTHETIC_WHALE_SHARE:
            amount = rng.uniform(SYNTHETIC_WHALE_MIN, SYNTHETIC_WHALE_MAX)
        else:
            amount = rng.uniform(SYNTHETIC_REGULAR_MIN, SYNTHETIC_REGULAR_MAX)

        outcome = primary if rng.random() > 0.5 else secondary

        index     = max(0, last_index - minutes_back // 60)
        reference = primary_path[index] if outcome == primary else 1.0 - primary_path[index]
        price     = clamp_price(reference + (rng.random() - 0.5) * SYNTHETIC_TRADE_JITTER)

        trades.append(Trade(
            timestamp = timestamp,
            side      = side,
            amount    = float(amount),
            price     = float(price),
            outcome   = outcome,
            maker     = _random_address(rng),
            taker     = _random_address(rng),
        ))

    trades.reverse()
    return trades


def synthesize_history(
    outcomes:      List[str],
    current_price: float,
    rng:           np.random.Generator,
    anchor:        datetime,
) -> Tuple[List[PricePoint], List[Trade]]:
    """Price history and trades for one market, both oldest first."""
    prices, path = generate_price_history(outcomes, current_price, rng, anchor)
    trades       = generate_trades(outcomes, path, rng, anchor)
    return prices, trades


def generate_markets(
    count:             int,
    seed:              Optional[int] = DEFAULT_SEED,
    resolved_fraction: float = SYNTHETIC_RESOLVED_FRACTION,
    now:               Optional[datetime] = None,
    price_points:      int = SYNTHETIC_PRICE_POINTS,
    trade_count:       int = SYNTHETIC_TRADES,
) -> List[Market]:
    """
    Build `count` binary markets with no network access.

    The oldest round(count × resolved_fraction) markets are resolved, one
    per day ending yesterday; the rest are open and end on later days, so
    every market has a distinct end_date. A resolved market settles on its
    primary outcome with probability equal to its final primary price.
    """
    rng = np.random.default_rng(seed)
    if now is None:
        now = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)

    n_resolved = int(round(count * resolved_fraction))
    markets: List[Market] = []

    for k in range(count):
        outcomes = ["Yes", "No"]
        resolved = k < n_resolved
        if resolved:
            end_date = now - timedelta(days=n_resolved - k)
        else:
            end_date = now + timedelta(days=k - n_resolved + 1)
        anchor = min(end_date, now)

        start  = float(rng.uniform(0.2, 0.8))
        prices, path = generate_price_history(outcomes, start, rng, anchor, price_points)
        trades = generate_trades(outcomes, path, rng, anchor, trade_count)

        resolved_outcome = None
        if resolved:
            resolved_outcome = outcomes[0] if rng.random() < path[-1] else outcomes[1]

        markets.append(Market(
            market_id         = f"synthetic-{k + 1:04d}",
            question          = f"Synthetic market #{k + 1}: will event {k + 1} happen?",
            outcomes          = outcomes,
            historical_prices = prices,
            trades            = trades,
            resolved_outcome  = resolved_outcome,
            liquidity         = random_liquidity(rng),
            active            = not resolved,
            end_date          = end_date,
            resolution_date   = end_date if resolved else None,
            category          = "synthetic",
        ))

    return markets
