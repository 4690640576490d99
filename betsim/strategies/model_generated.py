"""
betsim/strategies/model_generated.py — Strategies proposed by the improvement loop.

An outside optimiser (random search, an LLM, a person) never hands us code.
It hands us a parameter record: a "template" name picked from the closed set
in TEMPLATE_DEFAULTS plus the numbers that configure it. This class turns
that record into bets.

Templates:
  none             — placeholder, proposes nothing
  price_threshold  — fade expensive primary outcomes, back cheap ones
  order_flow       — follow a strong one-sided imbalance in recent trades
  whale_copy       — same policy as WhaleCopyStrategy
  spike_reversal   — same policy as SpikeReversalStrategy
  market_making    — same policy as MarketMakingStrategy
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional

from betsim.config import (
    MARKET_MAKING_DEFAULTS,
    MODEL_GENERATED_DEFAULTS,
    ORDER_FLOW_DEFAULTS,
    PRICE_THRESHOLD_DEFAULTS,
    SPIKE_REVERSAL_DEFAULTS,
    WHALE_COPY_DEFAULTS,
)
from betsim.models import Bet, Market, StrategyContext
from betsim.strategies.market_making import MarketMakingStrategy
from betsim.strategies.spike_reversal import SpikeReversalStrategy
from betsim.strategies.whale_copy import WhaleCopyStrategy
from betsim.strategy_base import (
    StrategyBase,
    check_parameter_types,
    clamp_price,
    determine_decision_time,
    is_market_eligible,
    resolve_mode,
)

logger = logging.getLogger(__name__)

TEMPLATE_DEFAULTS = {
    "none":            {},
    "price_threshold": PRICE_THRESHOLD_DEFAULTS,
    "order_flow":      ORDER_FLOW_DEFAULTS,
    "whale_copy":      WHALE_COPY_DEFAULTS,
    "spike_reversal":  SPIKE_REVERSAL_DEFAULTS,
    "market_making":   MARKET_MAKING_DEFAULTS,
}

_DELEGATES = {
    "whale_copy":     WhaleCopyStrategy,
    "spike_reversal": SpikeReversalStrategy,
    "market_making":  MarketMakingStrategy,
}


# ---------------------------------------------------------------------------
# Rule templates
# ---------------------------------------------------------------------------

def price_threshold_bets(
    market:        Market,
    decision_time: datetime,
    params:        dict,
) -> List[Bet]:
    if market.liquidity <= params["min_liquidity"]:
        return []

    visible = [p for p in market.historical_prices if p.timestamp <= decision_time]
    if not visible:
        return []

    current = visible[-1].price
    edge    = params["edge"]

    if current > params["upper_threshold"]:
        side, limit = "sell", current - edge
        reason = f"Primary outcome rich at {current:.3f} (> {params['upper_threshold']:.2f})"
    else:
        side, limit = "buy", current + edge
        reason = f"Primary outcome cheap at {current:.3f} (<= {params['upper_threshold']:.2f})"

    return [Bet(
        market_id   = market.market_id,
        outcome     = market.outcomes[0],
        side        = side,
        amount      = params["bet_size"],
        price_limit = clamp_price(limit),
        reason      = reason,
        timestamp   = decision_time,
    )]


def order_flow_bets(
    market:        Market,
    decision_time: datetime,
    params:        dict,
) -> List[Bet]:
    cutoff = decision_time - timedelta(hours=params["window_hours"])
    window = [t for t in market.trades if cutoff <= t.timestamp <= decision_time]
    if len(window) < params["min_trades"]:
        return []

    # outcome -> [buy amount, sell amount, last price], in first-seen order
    flow: "OrderedDict[str, list]" = OrderedDict()
    for trade in window:
        entry = flow.setdefault(trade.outcome, [0.0, 0.0, trade.price])
        if trade.side == "buy":
            entry[0] += trade.amount
        else:
            entry[1] += trade.amount
        entry[2] = trade.price

    best_outcome, best_imbalance, best_price = None, 0.0, 0.0
    for outcome, (bought, sold, last_price) in flow.items():
        gross = bought + sold
        if gross <= 0:
            continue
        imbalance = (bought - sold) / gross
        if abs(imbalance) > abs(best_imbalance):
            best_outcome, best_imbalance, best_price = outcome, imbalance, last_price

    if best_outcome is None or abs(best_imbalance) <= params["imbalance_threshold"]:
        return []

    if best_imbalance > 0:
        side, limit = "buy", best_price + params["price_buffer"]
    else:
        side, limit = "sell", best_price - params["price_buffer"]

    return [Bet(
        market_id   = market.market_id,
        outcome     = best_outcome,
        side        = side,
        amount      = params["bet_size"],
        price_limit = clamp_price(limit),
        reason      = f"Order flow imbalance {best_imbalance:+.2f} on {best_outcome} over {len(window)} trades",
        timestamp   = decision_time,
    )]


_PER_MARKET_RULES = {
    "price_threshold": price_threshold_bets,
    "order_flow":      order_flow_bets,
}


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class ModelGeneratedStrategy(StrategyBase):

    strategy_type       = "model_generated"
    default_id          = "model_generated"
    default_name        = "Model-Generated Strategy"
    default_description = "Rule template and parameters proposed by the improvement loop"
    DEFAULT_PARAMETERS  = MODEL_GENERATED_DEFAULTS

    def setup(self, params: dict) -> None:
        template = params.get("template", self.DEFAULT_PARAMETERS["template"])
        if not isinstance(template, str) or template not in TEMPLATE_DEFAULTS:
            raise ValueError(
                f"Unknown template '{template}'. "
                f"Valid options: {', '.join(TEMPLATE_DEFAULTS)}"
            )

        defaults = TEMPLATE_DEFAULTS[template]
        unknown  = set(params) - set(defaults) - {"template"}
        if unknown:
            raise ValueError(
                f"Unknown parameter(s) for template '{template}': {', '.join(sorted(unknown))}"
            )
        check_parameter_types(f"template '{template}'", params, defaults)

        merged = {"template": template}
        merged.update(defaults)
        merged.update(params)
        self.parameters = merged
        logger.debug("[%s] template=%s parameters=%s", self.name, template, merged)

    @property
    def template(self) -> str:
        return self.parameters["template"]

    def template_parameters(self) -> dict:
        return {k: v for k, v in self.parameters.items() if k != "template"}

    def with_parameters(self, params: dict) -> "ModelGeneratedStrategy":
        # Switching template starts from the new template's defaults
        if params.get("template", self.template) != self.template:
            merged = dict(params)
        else:
            merged = dict(self.parameters)
            merged.update(params)
        return self.__class__(
            parameters  = merged,
            strategy_id = self.strategy_id,
            name        = self.name,
            description = self.description,
        )

    def generate_bets(
        self,
        markets: List[Market],
        context: Optional[StrategyContext] = None,
    ) -> List[Bet]:
        template = self.template

        if template == "none":
            return []

        if template in _DELEGATES:
            delegate = _DELEGATES[template](
                parameters  = self.template_parameters(),
                strategy_id = self.strategy_id,
                name        = self.name,
            )
            return delegate.generate_bets(markets, context)

        rule = _PER_MARKET_RULES[template]
        mode = resolve_mode(context)
        now  = context.as_of if context is not None else None
        params = self.template_parameters()

        bets: List[Bet] = []
        for market in markets:
            if not is_market_eligible(market, mode):
                continue
            decision_time = determine_decision_time(market, mode, now)
            bets.extend(rule(market, decision_time, params))

        logger.info("[%s] template=%s -> %d bets", self.name, template, len(bets))
        return bets
