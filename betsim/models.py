"""
betsim/models.py — Data definitions shared by strategies, the backtest
engine and the data layer.

Inputs (Market, PricePoint, Trade) are produced once by the data layer and
treated as read-only here. Outputs (Bet, BacktestBet, BacktestResult,
EarningsPoint) are created fresh on every backtest run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from betsim.config import LIQUIDITY_TRADE_WINDOW


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# PricePoint
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PricePoint:
    """
    One price observation for one outcome of a market.

    Prices are probabilities on the 0.0–1.0 scale, clamped to [0.01, 0.99]
    by the data layer. A market's history interleaves all of its outcomes
    in a single sequence.
    """
    timestamp: datetime  # When this price was recorded
    price:     float     # Price between 0.01 and 0.99
    outcome:   str       # Which outcome label this price belongs to

    def to_dict(self) -> dict:
        return {
            "timestamp": _iso(self.timestamp),
            "price":     self.price,
            "outcome":   self.outcome,
        }


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Trade:
    """
    A historical fill observed on the market (somebody else's trade).
    """
    timestamp: datetime              # When the fill happened
    side:      str                   # "buy" or "sell"
    amount:    float                 # Size in currency units
    price:     float                 # Fill price, 0.01–0.99
    outcome:   str                   # Which outcome was traded
    maker:     Optional[str] = None  # Maker address, if known
    taker:     Optional[str] = None  # Taker address, if known

    def to_dict(self) -> dict:
        return {
            "timestamp": _iso(self.timestamp),
            "side":      self.side,
            "amount":    self.amount,
            "price":     self.price,
            "outcome":   self.outcome,
            "maker":     self.maker,
            "taker":     self.taker,
        }


def calculate_volume_from_trades(trades: List[Trade]) -> float:
    """Total notional traded: sum of amount × price."""
    return sum(t.amount * t.price for t in trades)


def estimate_liquidity_from_trades(trades: List[Trade]) -> float:
    """Liquidity proxy: notional of the most recent LIQUIDITY_TRADE_WINDOW trades."""
    if not trades:
        return 0.0
    return calculate_volume_from_trades(trades[-LIQUIDITY_TRADE_WINDOW:])


# ---------------------------------------------------------------------------
# Market
# ---------------------------------------------------------------------------
@dataclass
class Market:
    """
    Represents one prediction market.

    resolved_outcome is None while the market is open. A non-None value is
    the only signal the backtest engine uses to decide a market can be
    scored.

    volume and liquidity may be left as None, in which case they are
    derived from trades (see calculate_volume_from_trades and
    estimate_liquidity_from_trades).
    """
    market_id:         str                         # Unique stable identifier
    question:          str                         # Plain-English question (informational)
    outcomes:          List[str]                   # Ordered labels; index 0 is the primary outcome
    historical_prices: List[PricePoint] = field(default_factory=list)
    trades:            List[Trade]      = field(default_factory=list)
    resolved_outcome:  Optional[str]    = None     # Winning label once settled
    volume:            Optional[float]  = None
    liquidity:         Optional[float]  = None
    active:            bool             = True     # Accepts new positions
    end_date:          Optional[datetime] = None
    resolution_date:   Optional[datetime] = None
    category:          Optional[str]    = None
    image:             Optional[str]    = None

    def __post_init__(self):
        if self.volume is None:
            self.volume = calculate_volume_from_trades(self.trades)
        if self.liquidity is None:
            self.liquidity = estimate_liquidity_from_trades(self.trades)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_outcome is not None

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "market_id":        self.market_id,
            "question":         self.question,
            "outcomes":         list(self.outcomes),
            "resolved_outcome": self.resolved_outcome,
            "volume":           self.volume,
            "liquidity":        self.liquidity,
            "active":           self.active,
            "end_date":         _iso(self.end_date),
            "resolution_date":  _iso(self.resolution_date),
            "category":         self.category,
            "price_points":     len(self.historical_prices),
            "trade_count":      len(self.trades),
        }
        if include_history:
            data["historical_prices"] = [p.to_dict() for p in self.historical_prices]
            data["trades"]            = [t.to_dict() for t in self.trades]
        return data


# ---------------------------------------------------------------------------
# Bet
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Bet:
    """
    What a strategy proposes to do on one outcome of one market.

    price_limit is the purchase price per share. A winning share pays 1.
    """
    market_id:   str       # Market this bet is matched to
    outcome:     str       # Outcome label the bet is about
    side:        str       # "buy" or "sell"
    amount:      float     # Number of shares (currency units at payout)
    price_limit: float     # Price per share, 0.01–0.99
    reason:      str       # Human-readable explanation (diagnostic only)
    timestamp:   datetime  # Decision time the bet was generated for

    def to_dict(self) -> dict:
        return {
            "market_id":   self.market_id,
            "outcome":     self.outcome,
            "side":        self.side,
            "amount":      self.amount,
            "price_limit": self.price_limit,
            "reason":      self.reason,
            "timestamp":   _iso(self.timestamp),
        }


@dataclass(frozen=True)
class BacktestBet(Bet):
    """A Bet after it has been settled against the market's true outcome."""
    result: str   = "pending"  # "win", "loss" or "pending"
    payout: float = 0.0        # amount on a win, otherwise 0
    cost:   float = 0.0        # amount × price_limit

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"result": self.result, "payout": self.payout, "cost": self.cost})
        return data


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class EarningsPoint:
    """Running profit after one settled bet, in bet-processing order."""
    timestamp:           datetime
    cumulative_earnings: float
    strategy_id:         str

    def to_dict(self) -> dict:
        return {
            "timestamp":           _iso(self.timestamp),
            "cumulative_earnings": self.cumulative_earnings,
            "strategy_id":         self.strategy_id,
        }


@dataclass
class BacktestResult:
    """
    Aggregate performance of one strategy over one market set.

    win_rate and roi are percentages; both are 0 when their denominator is 0.
    """
    strategy_id:        str
    strategy_name:      str
    total_bets:         int   = 0
    wins:               int   = 0
    losses:             int   = 0
    win_rate:           float = 0.0
    total_cost:         float = 0.0
    total_winnings:     float = 0.0
    net_profit:         float = 0.0
    roi:                float = 0.0
    bets:               List[BacktestBet]   = field(default_factory=list)
    earnings_over_time: List[EarningsPoint] = field(default_factory=list)

    def to_dict(self, include_bets: bool = True) -> dict:
        data = {
            "strategy_id":    self.strategy_id,
            "strategy_name":  self.strategy_name,
            "total_bets":     self.total_bets,
            "wins":           self.wins,
            "losses":         self.losses,
            "win_rate":       self.win_rate,
            "total_cost":     self.total_cost,
            "total_winnings": self.total_winnings,
            "net_profit":     self.net_profit,
            "roi":            self.roi,
        }
        if include_bets:
            data["bets"]               = [b.to_dict() for b in self.bets]
            data["earnings_over_time"] = [p.to_dict() for p in self.earnings_over_time]
        return data


# ---------------------------------------------------------------------------
# StrategyContext
# ---------------------------------------------------------------------------
@dataclass
class StrategyContext:
    """
    The view a strategy receives alongside the markets.

    In backtest mode a strategy must only reason about data at or before its
    decision time. as_of, when set, stands in for the wall clock.
    """
    mode:               str                      = "live"  # "live" or "backtest"
    as_of:              Optional[datetime]       = None
    training_markets:   Optional[List[Market]]   = None
    evaluation_markets: Optional[List[Market]]   = None


# ---------------------------------------------------------------------------
# Historical statistics
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class VolatileMarket:
    market_id: str
    question:  str
    variance:  float  # Mean of (price - 0.5)^2 over all price points

    def to_dict(self) -> dict:
        return {"market_id": self.market_id, "question": self.question, "variance": self.variance}


@dataclass
class HistoricalStats:
    """Descriptive summary of a market set (resolved or not)."""
    total_markets:    int   = 0
    resolved_markets: int   = 0
    avg_volume:       float = 0.0
    avg_liquidity:    float = 0.0
    volatile_markets: List[VolatileMarket] = field(default_factory=list)
    top_outcomes:     Dict[str, int]       = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_markets":    self.total_markets,
            "resolved_markets": self.resolved_markets,
            "avg_volume":       self.avg_volume,
            "avg_liquidity":    self.avg_liquidity,
            "volatile_markets": [v.to_dict() for v in self.volatile_markets],
            "top_outcomes":     dict(self.top_outcomes),
        }
