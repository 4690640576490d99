"""
polymarket_lab/subgraph.py — Real trade history from Polymarket's orderbook
subgraph (GraphQL, hosted on Goldsky).

No login or API key is needed.

How a market's history is assembled:
  1. look up the outcome token IDs for the market's condition ID
  2. pull order-filled events for each token (paginated, newest first)
  3. turn events into prices (evenly sampled) and trades
  4. label them with the outcome name and merge all outcomes by time

Query failures raise SubgraphError. build_market_history() catches it and
returns empty lists so callers can fall back to synthetic data.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import requests

from betsim.models import PricePoint, Trade
from betsim.strategy_base import clamp_price
from polymarket_lab.config import (
    REQUEST_MAX_RETRIES,
    REQUEST_RETRY_DELAY,
    REQUEST_TIMEOUT_SECONDS,
    SUBGRAPH_AMOUNT_SCALE,
    SUBGRAPH_MAX_EVENTS,
    SUBGRAPH_PAGE_SIZE,
    SUBGRAPH_PRICE_POINTS,
    SUBGRAPH_TRADES,
    SUBGRAPH_URL,
)

logger = logging.getLogger(__name__)


class SubgraphError(Exception):
    """Raised when a subgraph query fails or returns GraphQL errors."""


ORDER_FILLED_EVENTS_QUERY = """
query GetOrderFilledEvents($tokenId: String!, $limit: Int!, $skip: Int!) {
  orderFilledEvents(
    where: { or: [{ makerAssetId: $tokenId }, { takerAssetId: $tokenId }] }
    first: $limit
    skip: $skip
    orderBy: timestamp
    orderDirection: desc
  ) {
    id
    timestamp
    maker
    taker
    makerAssetId
    takerAssetId
    makerAmountFilled
    takerAmountFilled
    fee
    transactionHash
  }
}
"""

MARKET_DATA_BY_CONDITION_QUERY = """
query GetMarketDataByCondition($conditionId: String!) {
  marketDatas(where: { condition: $conditionId }) {
    id
    condition
    outcomeIndex
  }
}
"""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def query_subgraph(query: str, variables: Optional[dict] = None, url: str = SUBGRAPH_URL) -> dict:
    """
    POST a GraphQL query, retrying transport failures.

    Returns the "data" object. GraphQL-level errors are not retried.
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, REQUEST_MAX_RETRIES + 1):
        try:
            response = requests.post(
                url,
                json    = {"query": query, "variables": variables or {}},
                headers = {"Content-Type": "application/json"},
                timeout = REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            payload = response.json()
            break

        except (requests.exceptions.RequestException, ValueError) as error:
            last_error = error
            logger.warning("[Attempt %d/%d] Subgraph request failed: %s",
                           attempt, REQUEST_MAX_RETRIES, error)
            if attempt < REQUEST_MAX_RETRIES:
                time.sleep(REQUEST_RETRY_DELAY)
    else:
        raise SubgraphError(f"All {REQUEST_MAX_RETRIES} attempts failed: {last_error}")

    errors = payload.get("errors")
    if errors:
        messages = ", ".join(str(e.get("message", e)) for e in errors)
        raise SubgraphError(f"GraphQL query failed: {messages}")

    return payload.get("data") or {}


def get_order_filled_events(token_id: str, limit: int = SUBGRAPH_PAGE_SIZE, skip: int = 0) -> List[dict]:
    """One page of fills where the token was on either side, newest first."""
    data = query_subgraph(
        ORDER_FILLED_EVENTS_QUERY,
        {"tokenId": token_id, "limit": limit, "skip": skip},
    )
    return data.get("orderFilledEvents") or []


def get_market_data_by_condition(condition_id: str) -> List[dict]:
    data = query_subgraph(MARKET_DATA_BY_CONDITION_QUERY, {"conditionId": condition_id})
    return data.get("marketDatas") or []


def paginate(
    query_fn:    Callable[[int, int], List[dict]],
    max_results: int = SUBGRAPH_MAX_EVENTS,
    page_size:   int = SUBGRAPH_PAGE_SIZE,
) -> List[dict]:
    """Call query_fn(limit, skip) until a short or empty page, up to max_results rows."""
    results: List[dict] = []
    skip = 0

    while len(results) < max_results:
        page = query_fn(page_size, skip)
        if not page:
            break
        results.extend(page)
        skip += page_size
        if len(page) < page_size:
            break

    return results[:max_results]


# ---------------------------------------------------------------------------
# Event → price / trade
# ---------------------------------------------------------------------------

def calculate_trade_price(event: dict, token_id: str) -> float:
    """
    USDC paid per outcome token.

    Maker sold the token  → taker amount / maker amount.
    Taker bought the token → maker amount / taker amount.
    Neither side matches (or a zero amount) → 0.5.
    """
    maker_amount = float(event.get("makerAmountFilled") or 0)
    taker_amount = float(event.get("takerAmountFilled") or 0)

    if event.get("makerAssetId") == token_id and maker_amount > 0:
        return taker_amount / maker_amount
    if event.get("takerAssetId") == token_id and taker_amount > 0:
        return maker_amount / taker_amount
    return 0.5


def _event_time(event: dict) -> datetime:
    return datetime.fromtimestamp(int(event["timestamp"]), tz=timezone.utc)


def sample_evenly(items: list, count: int) -> list:
    """Pick `count` items at evenly spaced indices (all of them if there are fewer)."""
    if len(items) <= count:
        return list(items)
    step = len(items) / count
    return [items[int(i * step)] for i in range(count)]


def events_to_prices(events: List[dict], token_id: str, outcome: str,
                     max_points: int = SUBGRAPH_PRICE_POINTS) -> List[PricePoint]:
    ordered = sorted(events, key=lambda e: int(e["timestamp"]))
    return [
        PricePoint(
            timestamp = _event_time(e),
            price     = clamp_price(calculate_trade_price(e, token_id)),
            outcome   = outcome,
        )
        for e in sample_evenly(ordered, max_points)
    ]


def events_to_trades(events: List[dict], token_id: str, outcome: str,
                     max_trades: int = SUBGRAPH_TRADES) -> List[Trade]:
    """Newest max_trades fills as Trades. Buying the outcome token is a "buy"."""
    trades = []
    for e in events[:max_trades]:
        buying = e.get("takerAssetId") == token_id
        amount = e.get("takerAmountFilled") if buying else e.get("makerAmountFilled")
        trades.append(Trade(
            timestamp = _event_time(e),
            side      = "buy" if buying else "sell",
            amount    = float(amount or 0) / SUBGRAPH_AMOUNT_SCALE,
            price     = clamp_price(calculate_trade_price(e, token_id)),
            outcome   = outcome,
            maker     = e.get("maker"),
            taker     = e.get("taker"),
        ))
    return trades


# ---------------------------------------------------------------------------
# Market history
# ---------------------------------------------------------------------------

def _outcome_index(market_data: dict) -> float:
    try:
        return int(market_data.get("outcomeIndex"))
    except (TypeError, ValueError):
        return float("inf")


def get_token_ids_for_condition(condition_id: str) -> List[str]:
    """Outcome token IDs ordered by outcomeIndex (entries without one go last)."""
    market_datas = sorted(get_market_data_by_condition(condition_id), key=_outcome_index)
    return [md["id"] for md in market_datas if md.get("id")]


def build_market_history(
    condition_id: str,
    outcomes:     List[str],
) -> Tuple[List[PricePoint], List[Trade]]:
    """
    Price points and trades for every outcome of a market, merged and
    sorted oldest first. Returns two empty lists when nothing is found or
    the subgraph is unreachable.
    """
    try:
        token_ids = get_token_ids_for_condition(condition_id)
        if not token_ids:
            logger.info("No token IDs found for condition %s", condition_id)
            return [], []

        prices: List[PricePoint] = []
        trades: List[Trade]      = []
        for token_id, outcome in zip(token_ids, outcomes):
            events = paginate(
                lambda limit, skip, token_id=token_id: get_order_filled_events(token_id, limit, skip)
            )
            logger.debug("Outcome %r (token %s…): %d fills", outcome, token_id[:12], len(events))
            prices.extend(events_to_prices(events, token_id, outcome))
            trades.extend(events_to_trades(events, token_id, outcome))

    except SubgraphError as e:
        logger.warning("Subgraph history unavailable for %s: %s", condition_id, e)
        return [], []

    prices.sort(key=lambda p: p.timestamp)
    trades.sort(key=lambda t: t.timestamp)
    return prices, trades
