"""
betsim/strategies/spike_reversal.py — Price-spike reversal strategy.

Core idea:
  "If the price just jumped far away from its recent average, the move
   was probably an overreaction and will snap back — so bet against it."

Price rose above the window mean by more than spike_threshold → SELL the
primary outcome. Fell below → BUY it.
"""

import logging
from datetime import timedelta
from typing import List, Optional

import pandas as pd

from betsim.config import (
    SPIKE_MIN_TOTAL_POINTS,
    SPIKE_MIN_WINDOW_POINTS,
    SPIKE_PRICE_OFFSET,
    SPIKE_REVERSAL_DEFAULTS,
)
from betsim.models import Bet, Market, StrategyContext
from betsim.strategy_base import (
    StrategyBase,
    clamp_price,
    determine_decision_time,
    is_market_eligible,
    resolve_mode,
)

logger = logging.getLogger(__name__)


def price_frame(market: Market) -> pd.DataFrame:
    """Market price history as a DataFrame with a "price" column and a sorted datetime index."""
    df = pd.DataFrame(
        {"price": [p.price for p in market.historical_prices]},
        index=pd.DatetimeIndex([p.timestamp for p in market.historical_prices]),
    )
    return df.sort_index(kind="stable")


class SpikeReversalStrategy(StrategyBase):

    strategy_type       = "spike_detection"
    default_id          = "spike_detection"
    default_name        = "Price Spike Reversal"
    default_description = "Detect sudden price spikes and bet on mean reversion"
    DEFAULT_PARAMETERS  = SPIKE_REVERSAL_DEFAULTS

    def generate_bets(
        self,
        markets: List[Market],
        context: Optional[StrategyContext] = None,
    ) -> List[Bet]:
        mode = resolve_mode(context)
        now  = context.as_of if context is not None else None

        threshold = self.parameters["spike_threshold"]
        lookback  = timedelta(hours=self.parameters["lookback_window_hours"])
        bet_size  = self.parameters["bet_size"]

        bets: List[Bet] = []
        eligible = sufficient = 0

        for market in markets:
            if not is_market_eligible(market, mode):
                continue
            eligible += 1

            if len(market.historical_prices) < SPIKE_MIN_TOTAL_POINTS:
                continue
            sufficient += 1

            decision_time = determine_decision_time(market, mode, now)
            cutoff        = decision_time - lookback

            df     = price_frame(market)
            window = df[(df.index >= cutoff) & (df.index <= decision_time)]
            if len(window) < SPIKE_MIN_WINDOW_POINTS:
                continue

            avg_price     = float(window["price"].mean())
            current_price = float(window["price"].iloc[-1])
            change        = (current_price - avg_price) / avg_price

            if abs(change) <= threshold:
                continue

            if change > 0:
                side, target = "sell", current_price - SPIKE_PRICE_OFFSET
            else:
                side, target = "buy", current_price + SPIKE_PRICE_OFFSET

            bets.append(Bet(
                market_id   = market.market_id,
                outcome     = market.outcomes[0],
                side        = side,
                amount      = bet_size,
                price_limit = clamp_price(target),
                reason      = (
                    f"Spike detected: {change * 100:.1f}% change. "
                    f"Betting on reversion to mean {avg_price:.3f}"
                ),
                timestamp   = decision_time,
            ))

        logger.info(
            "[%s] eligible=%d, sufficient data=%d, spikes=%d",
            self.name, eligible, sufficient, len(bets),
        )
        return bets
