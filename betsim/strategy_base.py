"""
betsim/strategy_base.py — Abstract base class that every strategy must inherit,
plus the helpers every strategy shares.

By forcing every strategy to implement the same methods, the backtest
engine and the improvement loop can run any strategy without knowing
anything specific about it.

The live/backtest branching lives ONLY in is_market_eligible() and
determine_decision_time(). Strategies call those two helpers instead of
checking the mode themselves.
"""

import logging
import numbers
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from betsim.config import MAX_PRICE, MIN_PRICE
from betsim.models import Bet, Market, StrategyContext

logger = logging.getLogger(__name__)

LIVE     = "live"
BACKTEST = "backtest"

STRATEGY_TYPES = ("copy_trading", "spike_detection", "market_making", "model_generated")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def check_parameter_types(owner: str, params: dict, defaults: dict) -> None:
    """
    Raise ValueError when a value does not have the type of its default.

    Numeric defaults take any int or float (never a bool). String and bool
    defaults take a value of the same type.
    """
    bad = []
    for key, value in params.items():
        if key not in defaults:
            continue
        default = defaults[key]
        if isinstance(default, bool):
            ok = isinstance(value, bool)
        elif _is_number(default):
            ok = _is_number(value)
        elif isinstance(default, str):
            ok = isinstance(value, str)
        else:
            ok = True
        if not ok:
            bad.append(f"{key}={value!r} (expected {type(default).__name__})")
    if bad:
        raise ValueError(f"Invalid parameter value(s) for {owner}: {', '.join(bad)}")


def clamp_price(price: float, low: float = MIN_PRICE, high: float = MAX_PRICE) -> float:
    """Clamp a price into [low, high] (default [0.01, 0.99])."""
    return max(low, min(high, price))


def resolve_mode(context: Optional[StrategyContext]) -> str:
    """Return the context's mode, defaulting to live when there is no context."""
    if context is None or not context.mode:
        return LIVE
    return context.mode


def is_market_eligible(market: Market, mode: str) -> bool:
    """
    Backtest: every supplied market is eligible (the engine already
    filtered and snapshotted them).
    Live: only open, unresolved markets.
    """
    if mode == BACKTEST:
        return True
    return market.resolved_outcome is None and market.active


def determine_decision_time(
    market: Market,
    mode:   str,
    now:    Optional[datetime] = None,
) -> datetime:
    """
    The moment a strategy must treat as "now" for this market.

    Backtest: last price point, else end_date, else resolution_date.
    Live (and the backtest fallback): `now` if given, else the wall clock.
    """
    if mode == BACKTEST:
        if market.historical_prices:
            return market.historical_prices[-1].timestamp
        if market.end_date is not None:
            return market.end_date
        if market.resolution_date is not None:
            return market.resolution_date

    return now if now is not None else datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# StrategyBase
# ---------------------------------------------------------------------------

class StrategyBase(ABC):
    """
    Base class for all betting strategies.

    To create a new strategy:
      1. Create a new file in betsim/strategies/
      2. Write a class that inherits from StrategyBase
      3. Set strategy_type, DEFAULT_PARAMETERS and the identity defaults
      4. Implement generate_bets()
      5. Register it in betsim/strategies/__init__.py STRATEGY_MAP

    Parameters are plain data. The improvement loop changes a strategy by
    building a new one through with_parameters(), never by editing it.
    """

    strategy_type:       str  = ""
    default_id:          str  = ""
    default_name:        str  = ""
    default_description: str  = ""
    DEFAULT_PARAMETERS:  dict = {}

    def __init__(
        self,
        parameters:  Optional[dict] = None,
        strategy_id: Optional[str]  = None,
        name:        Optional[str]  = None,
        description: Optional[str]  = None,
    ):
        self.strategy_id = strategy_id or self.default_id
        self.name        = name or self.default_name or self.__class__.__name__
        self.description = description or self.default_description
        self.parameters: dict = {}
        self.setup(dict(parameters or {}))

    def setup(self, params: dict) -> None:
        """
        Called ONCE when the strategy is built.

        Merges params over DEFAULT_PARAMETERS. Unknown parameter names and
        values of the wrong type are rejected, so a bad tuned record fails
        here instead of inside a backtest.

        Args:
            params: A dictionary of settings, e.g. {"bet_size": 50}
        """
        unknown = set(params) - set(self.DEFAULT_PARAMETERS)
        if unknown:
            raise ValueError(
                f"Unknown parameter(s) for {self.name}: {', '.join(sorted(unknown))}"
            )
        check_parameter_types(self.name, params, self.DEFAULT_PARAMETERS)
        merged = dict(self.DEFAULT_PARAMETERS)
        merged.update(params)
        self.parameters = merged
        logger.debug("[%s] parameters=%s", self.name, self.parameters)

    @abstractmethod
    def generate_bets(
        self,
        markets: List[Market],
        context: Optional[StrategyContext] = None,
    ) -> List[Bet]:
        """
        Propose bets for the given markets.

        Must not mutate `markets`. In backtest mode, only data at or before
        determine_decision_time() may influence the result.

        Returns:
            A list of Bets (possibly empty).
        """
        ...

    def with_parameters(self, params: dict) -> "StrategyBase":
        """Return a new strategy of the same class with params merged over the current ones."""
        merged = dict(self.parameters)
        merged.update(params)
        return self.__class__(
            parameters  = merged,
            strategy_id = self.strategy_id,
            name        = self.name,
            description = self.description,
        )

    def to_dict(self) -> dict:
        return {
            "strategy_id":   self.strategy_id,
            "name":          self.name,
            "description":   self.description,
            "strategy_type": self.strategy_type,
            "parameters":    dict(self.parameters),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.strategy_id!r}, parameters={self.parameters!r})"
