"""
betsim/strategies/ — Betting strategy implementations.

All strategies inherit from betsim.strategy_base.StrategyBase. Add new ones
to STRATEGY_MAP so the CLI, dashboard and improvement loop can build them
by name.
"""

from typing import List, Optional

from betsim.strategies.market_making import MarketMakingStrategy
from betsim.strategies.model_generated import TEMPLATE_DEFAULTS, ModelGeneratedStrategy
from betsim.strategies.spike_reversal import SpikeReversalStrategy
from betsim.strategies.whale_copy import WhaleCopyStrategy
from betsim.strategy_base import StrategyBase


# ---------------------------------------------------------------------------
# Strategy registry: add new strategies here
# ---------------------------------------------------------------------------
STRATEGY_MAP = {
    "whale_copy":      WhaleCopyStrategy,
    "spike_reversal":  SpikeReversalStrategy,
    "market_making":   MarketMakingStrategy,
    "model_generated": ModelGeneratedStrategy,
}

# strategy_type tag -> registry key
TYPE_TO_KEY = {cls.strategy_type: key for key, cls in STRATEGY_MAP.items()}


def strategy_key(key_or_type: str) -> str:
    """Accept either a registry key ("whale_copy") or a type tag ("copy_trading")."""
    if key_or_type in STRATEGY_MAP:
        return key_or_type
    if key_or_type in TYPE_TO_KEY:
        return TYPE_TO_KEY[key_or_type]
    raise ValueError(
        f"Unknown strategy '{key_or_type}'. Valid options: {', '.join(STRATEGY_MAP)}"
    )


def build_strategy(
    key:         str,
    parameters:  Optional[dict] = None,
    strategy_id: Optional[str]  = None,
    name:        Optional[str]  = None,
    description: Optional[str]  = None,
) -> StrategyBase:
    """Construct a strategy from its registry key (or type tag) and a parameter record."""
    cls = STRATEGY_MAP[strategy_key(key)]
    return cls(
        parameters  = parameters,
        strategy_id = strategy_id,
        name        = name,
        description = description,
    )


def default_strategies() -> List[StrategyBase]:
    """Fresh instances of the three reference strategies with default parameters."""
    return [
        WhaleCopyStrategy(),
        SpikeReversalStrategy(),
        MarketMakingStrategy(),
    ]


__all__ = [
    "STRATEGY_MAP",
    "TEMPLATE_DEFAULTS",
    "MarketMakingStrategy",
    "ModelGeneratedStrategy",
    "SpikeReversalStrategy",
    "WhaleCopyStrategy",
    "build_strategy",
    "default_strategies",
    "strategy_key",
]
