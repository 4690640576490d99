"""
polymarket_lab/data_storage.py — Save and load markets to/from CSV files.

Why cache data?
  - Fetching from Gamma + the subgraph takes seconds per market.
  - Backtesting the same market set many times (while tuning a strategy)
    would be very slow if we re-downloaded everything each time.
  - CSVs let us reload in under a second, and reusing one cached set
    keeps runs comparable.

File layout:
  data/markets.csv               — one row per market (outcomes as JSON)
  data/prices_{id}_{hash}.csv    — price history for one market
  data/trades_{id}_{hash}.csv    — trade history for one market
"""

import csv
import hashlib
import json
import logging
import os
import re
from datetime import datetime
from typing import List, Optional

from betsim.models import Market, PricePoint, Trade
from polymarket_lab.config import DATA_DIR

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ensure_data_dir(data_dir: str) -> None:
    """Create the data/ directory if it doesn't already exist."""
    os.makedirs(data_dir, exist_ok=True)


def _safe_id(market_id: str) -> str:
    # The hash keeps ids that differ only in replaced characters apart
    digest = hashlib.sha1(market_id.encode("utf-8")).hexdigest()[:8]
    safe   = re.sub(r"[^A-Za-z0-9_-]", "_", market_id)
    return f"{safe}_{digest}"


def _markets_file(data_dir: str) -> str:
    return os.path.join(data_dir, "markets.csv")


def _price_file_path(market_id: str, data_dir: str) -> str:
    return os.path.join(data_dir, f"prices_{_safe_id(market_id)}.csv")


def _trade_file_path(market_id: str, data_dir: str) -> str:
    return os.path.join(data_dir, f"trades_{_safe_id(market_id)}.csv")


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else ""


def _date(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _float(value: str) -> Optional[float]:
    return float(value) if value != "" else None


# ---------------------------------------------------------------------------
# Markets: save and load
# ---------------------------------------------------------------------------

MARKET_FIELDS = [
    "market_id", "question", "outcomes", "resolved_outcome",
    "volume", "liquidity", "active",
    "end_date", "resolution_date", "category", "image",
]

PRICE_FIELDS = ["timestamp", "price", "outcome"]

TRADE_FIELDS = ["timestamp", "side", "amount", "price", "outcome", "maker", "taker"]


def save_markets(markets: List[Market], data_dir: str = DATA_DIR) -> None:
    """
    Write markets.csv plus one price file and one trade file per market.

    Overwrites the files completely each time (fresh snapshot).
    """
    _ensure_data_dir(data_dir)
    path = _markets_file(data_dir)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=MARKET_FIELDS)
        writer.writeheader()
        for m in markets:
            writer.writerow({
                "market_id":        m.market_id,
                "question":         m.question,
                "outcomes":         json.dumps(list(m.outcomes)),
                "resolved_outcome": m.resolved_outcome or "",
                "volume":           m.volume,
                "liquidity":        m.liquidity,
                "active":           m.active,
                "end_date":         _iso(m.end_date),
                "resolution_date":  _iso(m.resolution_date),
                "category":         m.category or "",
                "image":            m.image or "",
            })
            save_price_history(m.market_id, m.historical_prices, data_dir)
            save_trades(m.market_id, m.trades, data_dir)

    logger.info("Saved %d markets to %s", len(markets), path)


def load_markets(data_dir: str = DATA_DIR) -> List[Market]:
    """
    Read markets (with their price and trade histories) from the cache.

    Returns an empty list if the cache doesn't exist yet.
    """
    path = _markets_file(data_dir)
    if not os.path.exists(path):
        return []

    markets = []
    with open(path, "r", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            market_id = row["market_id"]
            markets.append(Market(
                market_id         = market_id,
                question          = row["question"],
                outcomes          = json.loads(row["outcomes"]),
                historical_prices = load_price_history(market_id, data_dir),
                trades            = load_trades(market_id, data_dir),
                resolved_outcome  = row["resolved_outcome"] or None,
                volume            = _float(row["volume"]),
                liquidity         = _float(row["liquidity"]),
                active            = row["active"].lower() == "true",
                end_date          = _date(row["end_date"]),
                resolution_date   = _date(row["resolution_date"]),
                category          = row["category"] or None,
                image             = row["image"] or None,
            ))

    logger.info("Loaded %d markets from cache", len(markets))
    return markets


def markets_cache_exists(data_dir: str = DATA_DIR) -> bool:
    """Return True if a markets cache file already exists."""
    return os.path.exists(_markets_file(data_dir))


# ---------------------------------------------------------------------------
# Price and trade history: save and load
# ---------------------------------------------------------------------------

def save_price_history(market_id: str, points: List[PricePoint], data_dir: str = DATA_DIR) -> None:
    _ensure_data_dir(data_dir)
    path = _price_file_path(market_id, data_dir)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=PRICE_FIELDS)
        writer.writeheader()
        for p in points:
            writer.writerow({
                "timestamp": p.timestamp.isoformat(),
                "price":     p.price,
                "outcome":   p.outcome,
            })

    logger.debug("Saved %d price points to %s", len(points), path)


def load_price_history(market_id: str, data_dir: str = DATA_DIR) -> List[PricePoint]:
    """Returns an empty list if no cache exists yet."""
    path = _price_file_path(market_id, data_dir)
    if not os.path.exists(path):
        return []

    with open(path, "r", encoding="utf-8") as f:
        return [
            PricePoint(
                timestamp = datetime.fromisoformat(row["timestamp"]),
                price     = float(row["price"]),
                outcome   = row["outcome"],
            )
            for row in csv.DictReader(f)
        ]


def save_trades(market_id: str, trades: List[Trade], data_dir: str = DATA_DIR) -> None:
    _ensure_data_dir(data_dir)
    path = _trade_file_path(market_id, data_dir)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=TRADE_FIELDS)
        writer.writeheader()
        for t in trades:
            writer.writerow({
                "timestamp": t.timestamp.isoformat(),
                "side":      t.side,
                "amount":    t.amount,
                "price":     t.price,
                "outcome":   t.outcome,
                "maker":     t.maker or "",
                "taker":     t.taker or "",
            })

    logger.debug("Saved %d trades to %s", len(trades), path)


def load_trades(market_id: str, data_dir: str = DATA_DIR) -> List[Trade]:
    """Returns an empty list if no cache exists yet."""
    path = _trade_file_path(market_id, data_dir)
    if not os.path.exists(path):
        return []

    with open(path, "r", encoding="utf-8") as f:
        return [
            Trade(
                timestamp = datetime.fromisoformat(row["timestamp"]),
                side      = row["side"],
                amount    = float(row["amount"]),
                price     = float(row["price"]),
                outcome   = row["outcome"],
                maker     = row["maker"] or None,
                taker     = row["taker"] or None,
            )
            for row in csv.DictReader(f)
        ]
