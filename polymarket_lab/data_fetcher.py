"""
polymarket_lab/data_fetcher.py — Builds betsim Markets from Polymarket's public APIs.

No login or API key is needed for historical/read-only data.

Data sources:
  1. Gamma API  → list of markets (question, outcomes, prices, dates)
  2. Subgraph   → real trades and prices for each outcome token
  3. Synthetic  → seeded fallback when the subgraph has nothing

Closed markets whose winning price is decisive (≥ 0.95) are treated as
resolved to that outcome. When include_resolved is set, closed markets
without a decisive price get a seeded synthetic resolution so the set is
still backtestable (demo data, not ground truth).
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

import numpy as np
import requests

from betsim.models import Market
from polymarket_lab import subgraph, synthetic
from polymarket_lab.config import (
    DEFAULT_MARKETS_TO_FETCH,
    GAMMA_API_URL,
    MAX_MARKETS_TO_FETCH,
    REQUEST_MAX_RETRIES,
    REQUEST_RETRY_DELAY,
    REQUEST_TIMEOUT_SECONDS,
    RESOLVED_PRICE_THRESHOLD,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTCOMES = ["Yes", "No"]


# ---------------------------------------------------------------------------
# Helper: HTTP GET with automatic retry
# ---------------------------------------------------------------------------

def _get_with_retry(url: str, params: dict = None) -> Optional[Any]:
    """
    Make a GET request and retry up to REQUEST_MAX_RETRIES times on failure.

    Returns the parsed JSON response, or None if all attempts fail.
    """
    for attempt in range(1, REQUEST_MAX_RETRIES + 1):
        try:
            response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()  # raises an error for 4xx/5xx status codes
            return response.json()

        except (requests.exceptions.RequestException, ValueError) as error:
            logger.warning("[Attempt %d/%d] Request failed: %s", attempt, REQUEST_MAX_RETRIES, error)
            if attempt < REQUEST_MAX_RETRIES:
                time.sleep(REQUEST_RETRY_DELAY)

    logger.error("All %d attempts failed for %s", REQUEST_MAX_RETRIES, url)
    return None


# ---------------------------------------------------------------------------
# Gamma API
# ---------------------------------------------------------------------------

def fetch_gamma_markets(limit: int = DEFAULT_MARKETS_TO_FETCH, closed: bool = False) -> List[dict]:
    """
    Raw market listings from the Gamma API.

    Args:
        limit:  How many markets to retrieve (capped at MAX_MARKETS_TO_FETCH).
        closed: True for closed markets (backtesting), False for active ones.
    """
    params = {
        "limit":  min(limit, MAX_MARKETS_TO_FETCH),
        "active": str(not closed).lower(),
        "closed": str(closed).lower(),
    }
    logger.info("Fetching %d markets from Gamma API (closed=%s)", params["limit"], closed)
    data = _get_with_retry(GAMMA_API_URL, params=params)

    if not isinstance(data, list):
        logger.warning("Could not fetch markets. Returning empty list.")
        return []
    return data


def _load_json_list(raw: Any) -> Optional[list]:
    # Gamma encodes list fields as JSON strings: '["Yes", "No"]'
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, list) else None
    return None


def parse_outcomes(raw: Any) -> List[str]:
    """Outcome labels from a Gamma field; ["Yes", "No"] when missing or malformed."""
    values = _load_json_list(raw)
    if not values:
        return list(DEFAULT_OUTCOMES)
    return [str(v) for v in values]


def parse_outcome_prices(raw: Any, count: int = 2) -> List[float]:
    """Outcome prices from a Gamma field; unparseable entries become 0.5."""
    values = _load_json_list(raw)
    if not values:
        return [0.5] * count

    prices = []
    for value in values:
        try:
            price = float(value)
        except (TypeError, ValueError):
            price = 0.5
        prices.append(price if price > 0 else 0.5)
    return prices


def parse_date(raw: Any) -> Optional[datetime]:
    """ISO date or datetime string → tz-aware UTC datetime (None if missing or bad)."""
    if not raw or not isinstance(raw, str):
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable date %r", raw)
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def infer_resolved_outcome(item: dict, outcomes: List[str], prices: List[float]) -> Optional[str]:
    """
    The winning outcome of a closed market, if the listing makes it clear.

    An explicit "outcome" field wins. Otherwise a closed market resolves to
    the outcome whose final price is at least RESOLVED_PRICE_THRESHOLD.
    """
    if item.get("outcome"):
        return str(item["outcome"])
    if not item.get("closed"):
        return None

    pairs = list(zip(outcomes, prices))
    if not pairs:
        return None
    outcome, price = max(pairs, key=lambda pair: pair[1])
    return outcome if price >= RESOLVED_PRICE_THRESHOLD else None


def _number(item: dict, *keys: str) -> float:
    for key in keys:
        value = item.get(key)
        if value in (None, ""):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return 0.0


def build_market(
    item:                 dict,
    rng:                  np.random.Generator,
    use_subgraph:         bool = True,
    synthetic_resolution: bool = False,
    now:                  Optional[datetime] = None,
) -> Market:
    """
    Turn one Gamma listing into a Market with price and trade history.

    History comes from the subgraph when possible. If either prices or
    trades come back empty, synthetic history is generated around the
    listing's current price, ending at the market's end date (or now, for
    markets that haven't ended).
    """
    now          = now or datetime.now(timezone.utc)
    outcomes     = parse_outcomes(item.get("outcomes"))
    prices       = parse_outcome_prices(item.get("outcomePrices"), len(outcomes))
    condition_id = item.get("conditionId") or ""
    market_id    = str(item.get("id") or condition_id)
    if not market_id:
        raise ValueError("market has neither id nor conditionId")

    end_date  = parse_date(item.get("endDateIso") or item.get("endDate"))
    volume    = _number(item, "volumeNum", "volume")
    liquidity = _number(item, "liquidityNum", "liquidity")
    if liquidity == 0:
        liquidity = synthetic.random_liquidity(rng)

    historical_prices, trades = [], []
    if use_subgraph and condition_id:
        historical_prices, trades = subgraph.build_market_history(condition_id, outcomes)
        if historical_prices and trades:
            logger.info("Subgraph: %d prices, %d trades for %s",
                        len(historical_prices), len(trades), market_id)

    if not historical_prices or not trades:
        anchor = min(end_date, now) if end_date is not None else now
        historical_prices, trades = synthetic.synthesize_history(
            outcomes, prices[0] if prices else 0.5, rng, anchor,
        )
        logger.debug("Synthetic history for %s", market_id)

    resolved_outcome = infer_resolved_outcome(item, outcomes, prices)
    if resolved_outcome is None and synthetic_resolution and item.get("closed"):
        resolved_outcome = outcomes[0] if rng.random() > 0.5 else outcomes[min(1, len(outcomes) - 1)]
        logger.info("Synthetic resolved outcome for %r: %s", item.get("question"), resolved_outcome)

    return Market(
        market_id         = market_id,
        question          = item.get("question") or item.get("description") or "Unknown question",
        outcomes          = outcomes,
        historical_prices = historical_prices,
        trades            = trades,
        resolved_outcome  = resolved_outcome,
        volume            = volume if volume > 0 else None,
        liquidity         = liquidity,
        active            = item.get("active") is not False and item.get("closed") is not True,
        end_date          = end_date,
        resolution_date   = end_date,
        category          = item.get("category"),
        image             = item.get("image"),
    )


def fetch_markets(
    limit:            int  = DEFAULT_MARKETS_TO_FETCH,
    include_resolved: bool = False,
    use_subgraph:     bool = True,
    seed:             Optional[int] = None,
) -> List[Market]:
    """
    Fetch markets from Gamma and attach history to each.

    Args:
        limit:            How many markets to retrieve.
        include_resolved: Fetch closed markets (for backtesting) instead of open ones.
        use_subgraph:     Try the subgraph for real history before going synthetic.
        seed:             Seed for synthetic history, liquidity and resolutions.

    Returns:
        A list of Market objects. Malformed listings are skipped.
    """
    rng   = np.random.default_rng(seed)
    items = fetch_gamma_markets(limit, closed=include_resolved)

    markets = []
    for item in items:
        try:
            markets.append(build_market(
                item,
                rng,
                use_subgraph         = use_subgraph,
                synthetic_resolution = include_resolved,
            ))
        except (KeyError, TypeError, ValueError) as e:
            # Skip malformed market entries but keep going
            logger.warning("Skipping malformed market entry %s: %s", item.get("id"), e)

    resolved = sum(1 for m in markets if m.is_resolved)
    logger.info("Parsed %d markets (%d resolved)", len(markets), resolved)
    return markets
