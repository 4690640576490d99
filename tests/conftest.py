# tests/conftest.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
import requests

from betsim.models import Bet, Market, PricePoint, Trade
from betsim.strategy_base import StrategyBase, determine_decision_time, resolve_mode

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def hours(n: float) -> datetime:
    return T0 + timedelta(hours=n)


def hourly_prices(values: List[float], outcome: str = "Yes", start: float = 0) -> List[PricePoint]:
    return [PricePoint(timestamp=hours(start + i), price=v, outcome=outcome) for i, v in enumerate(values)]


def make_market(
    market_id:  str = "m1",
    resolved:   Optional[str] = "Yes",
    end_date:   Optional[datetime] = None,
    prices:     Optional[List[PricePoint]] = None,
    trades:     Optional[List[Trade]] = None,
    liquidity:  Optional[float] = 100000.0,
    active:     Optional[bool] = None,
    outcomes:   Optional[List[str]] = None,
) -> Market:
    return Market(
        market_id         = market_id,
        question          = f"Question {market_id}?",
        outcomes          = outcomes or ["Yes", "No"],
        historical_prices = prices if prices is not None else hourly_prices([0.5, 0.5]),
        trades            = trades if trades is not None else [],
        resolved_outcome  = resolved,
        liquidity         = liquidity,
        active            = (resolved is None) if active is None else active,
        end_date          = end_date,
    )


class BuyFirstOutcome(StrategyBase):
    """Test strategy: buy outcome 0 of every market at a fixed price. Records what it saw."""

    strategy_type       = "test"
    default_id          = "buy_first"
    default_name        = "Buy First Outcome"
    DEFAULT_PARAMETERS  = {"price": 0.5, "amount": 100}

    def __init__(self, *args, **kwargs):
        self.calls = []
        super().__init__(*args, **kwargs)

    def generate_bets(self, markets, context=None):
        self.calls.append((list(markets), context))
        mode = resolve_mode(context)
        return [
            Bet(
                market_id   = m.market_id,
                outcome     = m.outcomes[0],
                side        = "buy",
                amount      = self.parameters["amount"],
                price_limit = self.parameters["price"],
                reason      = "test",
                timestamp   = determine_decision_time(m, mode),
            )
            for m in markets
        ]


class BrokenStrategy(StrategyBase):
    strategy_type = "test"
    default_id    = "broken"
    default_name  = "Broken"

    def generate_bets(self, markets, context=None):
        raise RuntimeError("boom")


class FakeResponse:
    def __init__(self, payload, status: int = 200):
        self.payload     = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    # Retry loops sleep between attempts
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def small_markets():
    from polymarket_lab.synthetic import generate_markets
    return generate_markets(10, seed=7, now=hours(24 * 30), price_points=48, trade_count=200)
