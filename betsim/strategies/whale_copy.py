"""
betsim/strategies/whale_copy.py — Whale copy-trading strategy.

Core idea:
  "Someone just put a lot of money on one side of this market. Large
   traders often know something — so copy them, quickly."

Only whale trades placed within copy_delay_seconds before the decision
time are copied, biggest first, at most max_bets_per_market per market.
"""

import logging
from typing import List, Optional

from betsim.config import WHALE_COPY_DEFAULTS, WHALE_COPY_PRICE_PREMIUM
from betsim.models import Bet, Market, StrategyContext, Trade
from betsim.strategy_base import (
    StrategyBase,
    clamp_price,
    determine_decision_time,
    is_market_eligible,
    resolve_mode,
)

logger = logging.getLogger(__name__)


class WhaleCopyStrategy(StrategyBase):

    strategy_type       = "copy_trading"
    default_id          = "copy_trading"
    default_name        = "Whale Copy Trading"
    default_description = "Copy recent trades from high-volume traders (whales)"
    DEFAULT_PARAMETERS  = WHALE_COPY_DEFAULTS

    def generate_bets(
        self,
        markets: List[Market],
        context: Optional[StrategyContext] = None,
    ) -> List[Bet]:
        mode = resolve_mode(context)
        now  = context.as_of if context is not None else None

        min_whale_volume     = self.parameters["min_whale_volume"]
        copy_delay_seconds   = self.parameters["copy_delay_seconds"]
        bet_size             = self.parameters["bet_size"]
        max_bets_per_market  = int(self.parameters["max_bets_per_market"])
        min_market_liquidity = self.parameters["min_market_liquidity"]

        bets: List[Bet] = []
        eligible = liquid = whales_seen = recent_seen = 0

        for market in markets:
            if not is_market_eligible(market, mode):
                continue
            eligible += 1

            if market.liquidity < min_market_liquidity:
                continue
            liquid += 1

            decision_time = determine_decision_time(market, mode, now)

            whale_trades = [
                t for t in market.trades
                if t.amount >= min_whale_volume and t.timestamp <= decision_time
            ]
            whales_seen += len(whale_trades)

            recent: List[Trade] = []
            for trade in whale_trades:
                age_seconds = (decision_time - trade.timestamp).total_seconds()
                if 0 <= age_seconds <= copy_delay_seconds:
                    recent.append(trade)
            recent_seen += len(recent)

            # sorted() is stable, so equal-sized whales keep history order
            top_whales = sorted(recent, key=lambda t: t.amount, reverse=True)[:max_bets_per_market]

            for whale in top_whales:
                bets.append(Bet(
                    market_id   = market.market_id,
                    outcome     = whale.outcome,
                    side        = whale.side,
                    amount      = bet_size,
                    price_limit = clamp_price(whale.price + WHALE_COPY_PRICE_PREMIUM),
                    reason      = f"Whale ${whale.amount:.0f} @ {whale.price:.3f}",
                    timestamp   = decision_time,
                ))

        logger.info(
            "[%s] %d markets in %s mode: %d eligible, %d liquid | whales: %d total, %d recent -> %d bets",
            self.name, len(markets), mode, eligible, liquid, whales_seen, recent_seen, len(bets),
        )
        return bets
