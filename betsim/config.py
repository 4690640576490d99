"""
betsim/config.py — Constants for the backtesting core.

Change values here to tweak strategy defaults and engine behaviour.
No code logic lives here — just numbers and strings.
"""

# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

# Every price limit a strategy emits is clamped into this range.
# Binary shares never trade at exactly 0 or 1.
MIN_PRICE = 0.01
MAX_PRICE = 0.99


# ---------------------------------------------------------------------------
# Backtest engine
# ---------------------------------------------------------------------------

# Fraction of resolved markets (oldest first) used as the training partition.
# The remainder is the test partition that bets are generated and scored on.
DEFAULT_TRAINING_RATIO = 0.8


# ---------------------------------------------------------------------------
# Market summaries
# ---------------------------------------------------------------------------

# Liquidity proxy: notional of the most recent N trades
LIQUIDITY_TRADE_WINDOW = 10


# ---------------------------------------------------------------------------
# Historical statistics
# ---------------------------------------------------------------------------

# Markets need MORE than this many price points to be ranked by variance
VOLATILE_MIN_POINTS = 10

# How many of the most volatile markets to report
VOLATILE_TOP_N = 5

# Variance is measured as distance from a coin flip, not price-to-price
VOLATILITY_CENTER = 0.5


# ---------------------------------------------------------------------------
# Strategy defaults
# ---------------------------------------------------------------------------

# Whale copy: copy large trades placed shortly before decision time
WHALE_COPY_DEFAULTS = {
    "min_whale_volume":     1000,   # $1,000+ trade counts as a whale
    "copy_delay_seconds":   7200,   # Only copy whales from the last 2 hours
    "bet_size":             100,    # $100 per copied bet
    "max_bets_per_market":  3,      # Copy at most the 3 biggest whales
    "min_market_liquidity": 50000,  # Skip markets under $50k liquidity
}

# Whale copy pays up to this much above the whale's price
WHALE_COPY_PRICE_PREMIUM = 0.02

# Spike reversal: fade sudden moves away from the recent mean
SPIKE_REVERSAL_DEFAULTS = {
    "spike_threshold":       0.05,  # 5% deviation from the window mean
    "lookback_window_hours": 24,
    "bet_size":              100,
}

SPIKE_MIN_TOTAL_POINTS  = 10   # Minimum price points in the whole history
SPIKE_MIN_WINDOW_POINTS = 5    # Minimum price points inside the lookback window
SPIKE_PRICE_OFFSET      = 0.03 # Limit price offset from the current price

# Market making: quote both sides around the current price
MARKET_MAKING_DEFAULTS = {
    "min_spread":        0.02,
    "max_spread":        0.08,
    "bet_size_per_side": 100,
    "min_liquidity":     30000,
}

MARKET_MAKING_VOLATILITY_WINDOW  = 20    # Last N prices used for volatility
MARKET_MAKING_DEFAULT_VOLATILITY = 0.03  # Used when fewer than 2 prices exist

# Model-generated: the template picks the rule set, the rest configure it.
# "none" is the empty placeholder that proposes nothing.
MODEL_GENERATED_DEFAULTS = {
    "template": "none",
}

PRICE_THRESHOLD_DEFAULTS = {
    "min_liquidity":   50000,
    "upper_threshold": 0.7,   # Above this the primary outcome looks overpriced
    "edge":            0.05,
    "bet_size":        100,
}

ORDER_FLOW_DEFAULTS = {
    "window_hours":        6,
    "min_trades":          5,
    "imbalance_threshold": 0.3,   # |net flow| / gross flow needed to follow
    "bet_size":            100,
    "price_buffer":        0.02,
}
