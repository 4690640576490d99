"""
polymarket_lab/config.py — Settings for fetching data, caching it and
running the lab (CLI, dashboard, improvement loop).

Change values here to tweak how the lab behaves.
No code logic lives here — just numbers and strings.
Endpoints and the cache directory can be overridden from the environment.
"""

import os


# ---------------------------------------------------------------------------
# API endpoints (public, no login required for historical data)
# ---------------------------------------------------------------------------

# Gamma API: returns a list of markets (questions, outcomes, prices, dates)
GAMMA_API_URL = os.environ.get("POLY_GAMMA_API_URL", "https://gamma-api.polymarket.com/markets")

# Goldsky orderbook subgraph: order-filled events and token IDs per condition
SUBGRAPH_URL = os.environ.get(
    "POLY_SUBGRAPH_URL",
    "https://api.goldsky.com/api/public/project_cl6mb8i9h0003e201j6li0diw"
    "/subgraphs/orderbook-subgraph/prod/gn",
)

# How long to wait (seconds) before giving up on an API call
REQUEST_TIMEOUT_SECONDS = 30

# How many times to retry a failed API call before giving up
REQUEST_MAX_RETRIES = 3

# Pause between retries (seconds)
REQUEST_RETRY_DELAY = 2.0


# ---------------------------------------------------------------------------
# Data fetching defaults
# ---------------------------------------------------------------------------

# How many markets to fetch when the user doesn't specify
DEFAULT_MARKETS_TO_FETCH = 20

# Maximum markets allowed in one run (keeps things fast)
MAX_MARKETS_TO_FETCH = 200

# A closed market whose outcome price is at least this high resolved to it
RESOLVED_PRICE_THRESHOLD = 0.95

# Subgraph pagination: GraphQL returns at most this many rows per page
SUBGRAPH_PAGE_SIZE = 1000

# Upper bound on events pulled per token when building price history
SUBGRAPH_MAX_EVENTS = 5000

# Per outcome: price points kept after even sampling, and trades kept
SUBGRAPH_PRICE_POINTS = 100
SUBGRAPH_TRADES = 50

# Fill amounts on the subgraph are in micro-units (6 decimals)
SUBGRAPH_AMOUNT_SCALE = 1e6


# ---------------------------------------------------------------------------
# Synthetic data
# ---------------------------------------------------------------------------

# Hourly price points generated per outcome (plus the current hour)
SYNTHETIC_PRICE_POINTS = 500

# Random walk: step is uniform in ±STEP/2, spikes add uniform ±SPIKE/2
SYNTHETIC_PRICE_STEP   = 0.08
SYNTHETIC_SPIKE_CHANCE = 0.05
SYNTHETIC_SPIKE_SIZE   = 0.15
SYNTHETIC_PRICE_FLOOR  = 0.05
SYNTHETIC_PRICE_CAP    = 0.95

# Trades: one every N minutes going back from "now"
SYNTHETIC_TRADES         = 1250
SYNTHETIC_TRADE_MINUTES  = 3
SYNTHETIC_TRADE_JITTER   = 0.03   # Trade price = reference price ± JITTER/2

# Share of trades that are whales, and the size ranges
SYNTHETIC_WHALE_SHARE  = 0.35
SYNTHETIC_WHALE_MIN    = 1000.0
SYNTHETIC_WHALE_MAX    = 10000.0
SYNTHETIC_REGULAR_MIN  = 50.0
SYNTHETIC_REGULAR_MAX  = 950.0

# Liquidity filled in when the API reports none
SYNTHETIC_LIQUIDITY_MIN = 50000.0
SYNTHETIC_LIQUIDITY_MAX = 300000.0

# Offline market sets: share of markets that are resolved
SYNTHETIC_RESOLVED_FRACTION = 0.8

# Default seed so offline runs are reproducible
DEFAULT_SEED = 42


# ---------------------------------------------------------------------------
# File paths
# ---------------------------------------------------------------------------

# Where cached CSV files are stored
DATA_DIR = os.environ.get("POLY_DATA_DIR", "data")

# Werkzeug access log for the dashboard
LOGS_DIR   = "logs"
ACCESS_LOG = os.path.join(LOGS_DIR, "dashboard_access.log")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

DASHBOARD_HOST = "127.0.0.1"
DASHBOARD_PORT = 5000


# ---------------------------------------------------------------------------
# Improvement loop
# ---------------------------------------------------------------------------

DEFAULT_EPOCHS = 5

# Strategies with ROI (%) below this get re-tuned each epoch
IMPROVE_BELOW_ROI = 50.0

# Ask for a new strategy every N epochs (and on the last one)
GENERATE_EVERY = 2

# Random search: relative size of each parameter nudge
RANDOM_SEARCH_SCALE = 0.25

# OpenAI chat completions (key comes from OPENAI_API_KEY)
OPENAI_DEFAULT_MODEL   = "gpt-4o-mini"
OPENAI_TEMPERATURE     = 0.7
OPENAI_TIMEOUT_SECONDS = 60
