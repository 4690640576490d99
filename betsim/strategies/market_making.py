"""
betsim/strategies/market_making.py — Liquidity-provider market making.

Core idea:
  "Quote both sides of a liquid market: bid a little below the current
   price, offer a little above it. Widen the quotes when the price is
   jumpy, tighten them when it is calm."
"""

import logging
from typing import List, Optional

import numpy as np

from betsim.config import (
    MARKET_MAKING_DEFAULT_VOLATILITY,
    MARKET_MAKING_DEFAULTS,
    MARKET_MAKING_VOLATILITY_WINDOW,
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


def estimate_volatility(prices: List[float], current_price: float) -> float:
    """
    Root-mean-square deviation of prices from current_price.

    Falls back to MARKET_MAKING_DEFAULT_VOLATILITY with fewer than 2 prices.
    """
    if len(prices) < 2:
        return MARKET_MAKING_DEFAULT_VOLATILITY
    deviations = np.asarray(prices, dtype=float) - current_price
    return float(np.sqrt(np.mean(deviations ** 2)))


class MarketMakingStrategy(StrategyBase):

    strategy_type       = "market_making"
    default_id          = "market_making"
    default_name        = "Liquidity Provider Market Making"
    default_description = "Place balanced bids/asks with volatility-scaled spreads on liquid markets"
    DEFAULT_PARAMETERS  = MARKET_MAKING_DEFAULTS

    def generate_bets(
        self,
        markets: List[Market],
        context: Optional[StrategyContext] = None,
    ) -> List[Bet]:
        mode = resolve_mode(context)
        now  = context.as_of if context is not None else None

        min_spread    = self.parameters["min_spread"]
        max_spread    = self.parameters["max_spread"]
        bet_size      = self.parameters["bet_size_per_side"]
        min_liquidity = self.parameters["min_liquidity"]

        bets: List[Bet] = []
        eligible = liquid = with_prices = 0

        for market in markets:
            if not is_market_eligible(market, mode):
                continue
            eligible += 1

            if market.liquidity < min_liquidity:
                continue
            liquid += 1

            if not market.historical_prices:
                continue
            with_prices += 1

            current_price = market.historical_prices[-1].price
            decision_time = determine_decision_time(market, mode, now)

            recent     = [p.price for p in market.historical_prices[-MARKET_MAKING_VOLATILITY_WINDOW:]]
            volatility = estimate_volatility(recent, current_price)
            spread     = max(min_spread, min(max_spread, volatility * 2))

            bid = current_price - spread / 2
            ask = current_price + spread / 2

            bets.append(Bet(
                market_id   = market.market_id,
                outcome     = market.outcomes[0],
                side        = "buy",
                amount      = bet_size,
                price_limit = clamp_price(bid),
                reason      = f"Market making: bid at {bid:.3f}",
                timestamp   = decision_time,
            ))
            bets.append(Bet(
                market_id   = market.market_id,
                outcome     = market.outcomes[0],
                side        = "sell",
                amount      = bet_size,
                price_limit = clamp_price(ask),
                reason      = f"Market making: ask at {ask:.3f}",
                timestamp   = decision_time,
            ))

        logger.info(
            "[%s] eligible=%d, liquid=%d, with prices=%d, bets=%d",
            self.name, eligible, liquid, with_prices, len(bets),
        )
        return bets
