"""
polymarket_lab/dashboard.py — JSON dashboard for one lab session.

Serves the loaded markets, the strategy pool and backtest results at
http://localhost:5000. The session (markets, strategies, last results) lives
in a LabState object owned by whoever calls create_app(); the app never
reaches for global state, so tests can build as many apps as they like.

Run via the CLI:
  polymarket-lab --synthetic --dashboard

Routes:
  GET  /                                  tiny HTML page polling /api/results
  GET  /api/markets                       loaded markets (no history)
  GET  /api/stats                         historical stats for the market set
  GET  /api/strategies                    strategy pool with parameters
  POST /api/strategies/<id>/parameters    {"parameters": {...}} → rebuilt strategy
  POST /api/backtest                      run every strategy (or {"strategies": [...]})
  GET  /api/results                       runs from the last backtest
"""

import logging
import os
import re
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

from flask import Flask, Response, jsonify, request

from betsim.backtest_engine import BacktestRun, run_backtests
from betsim.config import DEFAULT_TRAINING_RATIO
from betsim.metrics import calculate_historical_stats
from betsim.models import Market
from betsim.strategy_base import StrategyBase
from polymarket_lab.config import ACCESS_LOG, DASHBOARD_HOST, DASHBOARD_PORT, LOGS_DIR

logger = logging.getLogger(__name__)


@dataclass
class LabState:
    """Everything one dashboard session serves. Guarded by `lock`."""
    markets:        List[Market]
    strategies:     List[StrategyBase]
    training_ratio: float             = DEFAULT_TRAINING_RATIO
    last_runs:      List[BacktestRun] = field(default_factory=list)
    lock:           threading.Lock    = field(default_factory=threading.Lock, repr=False)

    def find_strategy(self, strategy_id: str) -> Optional[int]:
        for i, s in enumerate(self.strategies):
            if s.strategy_id == strategy_id:
                return i
        return None


def _redirect_werkzeug_to_file() -> None:
    """Send Werkzeug HTTP access logs to logs/dashboard_access.log."""
    os.makedirs(LOGS_DIR, exist_ok=True)
    handler = logging.FileHandler(ACCESS_LOG)
    handler.setLevel(logging.INFO)
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.setLevel(logging.INFO)
    werkzeug_logger.handlers = [handler]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _no_cache(resp):
    """Apply standard cache-busting headers to a Flask response."""
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    resp.headers["Pragma"]        = "no-cache"
    resp.headers["Expires"]       = "0"
    return resp


def _valid_name(name: str) -> bool:
    """Return True iff name contains only safe characters."""
    return bool(re.fullmatch(r"[a-zA-Z0-9_-]+", name))


def _error(message: str, status: int):
    return _no_cache(jsonify({"error": message})), status


INDEX_HTML = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>Polymarket Lab</title>
  <style>
    body  { font-family: monospace; background: #111; color: #ddd; margin: 2em; }
    table { border-collapse: collapse; }
    td, th { padding: 4px 12px; border-bottom: 1px solid #333; text-align: right; }
    th:first-child, td:first-child { text-align: left; }
    .failed { color: #f66; }
    .pos { color: #6f6; } .neg { color: #f66; }
  </style>
</head>
<body>
  <h2>Polymarket Lab</h2>
  <button onclick="runBacktest()">Run backtest</button>
  <table id="results">
    <thead><tr><th>Strategy</th><th>Bets</th><th>Win rate</th><th>Net profit</th><th>ROI</th></tr></thead>
    <tbody></tbody>
  </table>
  <script>
    function row(run) {
      if (run.status === "failed") {
        return `<tr class="failed"><td>${run.strategy_name}</td><td colspan="4">FAILED: ${run.error}</td></tr>`;
      }
      const r = run.result;
      const cls = r.roi >= 0 ? "pos" : "neg";
      return `<tr><td>${r.strategy_name}</td><td>${r.total_bets}</td><td>${r.win_rate.toFixed(1)}%</td>` +
             `<td class="${cls}">$${r.net_profit.toFixed(2)}</td><td class="${cls}">${r.roi.toFixed(1)}%</td></tr>`;
    }
    async function refresh() {
      const data = await (await fetch("/api/results")).json();
      document.querySelector("#results tbody").innerHTML = data.runs.map(row).join("");
    }
    async function runBacktest() {
      await fetch("/api/backtest", {method: "POST"});
      refresh();
    }
    refresh();
    setInterval(refresh, 5000);
  </script>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(state: LabState) -> Flask:
    app = Flask(__name__)

    @app.route("/")
    def index():
        return _no_cache(Response(INDEX_HTML, mimetype="text/html"))

    @app.route("/api/markets")
    def api_markets():
        with state.lock:
            markets = [m.to_dict() for m in state.markets]
        return _no_cache(jsonify({"markets": markets, "count": len(markets)}))

    @app.route("/api/stats")
    def api_stats():
        with state.lock:
            stats = calculate_historical_stats(state.markets)
        return _no_cache(jsonify(stats.to_dict()))

    @app.route("/api/strategies")
    def api_strategies():
        with state.lock:
            strategies = [s.to_dict() for s in state.strategies]
        return _no_cache(jsonify({"strategies": strategies}))

    @app.route("/api/strategies/<strategy_id>/parameters", methods=["POST"])
    def api_update_parameters(strategy_id: str):
        """Rebuild one strategy with new parameters (merged over the current ones)."""
        if not _valid_name(strategy_id):
            return _error("Invalid strategy id", 400)

        body   = request.get_json(silent=True)
        params = body.get("parameters") if isinstance(body, dict) else None
        if not isinstance(params, dict):
            return _error('Body must be {"parameters": {...}}', 400)

        with state.lock:
            index = state.find_strategy(strategy_id)
            if index is None:
                return _error(f"No strategy '{strategy_id}'", 404)
            try:
                updated = state.strategies[index].with_parameters(params)
            except ValueError as e:
                return _error(str(e), 400)
            state.strategies[index] = updated

        logger.info("Updated %s parameters: %s", strategy_id, params)
        return _no_cache(jsonify(updated.to_dict()))

    @app.route("/api/backtest", methods=["POST"])
    def api_backtest():
        """
        Backtest the pool (or the listed strategy ids).

        200 when every run succeeded, 500 when any failed. Failed runs are
        tagged "failed" with their error; they are never reported as
        zero-bet results.
        """
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            return _error("Body must be a JSON object", 400)

        ratio = body.get("training_ratio", state.training_ratio)
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not 0.0 <= ratio <= 1.0:
            return _error("training_ratio must be a number between 0 and 1", 400)

        with state.lock:
            strategies = list(state.strategies)
            markets    = list(state.markets)

        wanted = body.get("strategies")
        if wanted is not None:
            if not isinstance(wanted, list):
                return _error("strategies must be a list of ids", 400)
            strategies = [s for s in strategies if s.strategy_id in wanted]
            if not strategies:
                return _error("No matching strategies", 404)

        runs = run_backtests(strategies, markets, float(ratio))

        with state.lock:
            state.last_runs = runs

        failed = sum(1 for r in runs if r.failed)
        resp   = jsonify({
            "runs":   [r.to_dict() for r in runs],
            "failed": failed,
        })
        return _no_cache(resp), (500 if failed else 200)

    @app.route("/api/results")
    def api_results():
        with state.lock:
            runs = [r.to_dict(include_bets=True) for r in state.last_runs]
        return _no_cache(jsonify({"runs": runs}))

    return app


# ---------------------------------------------------------------------------
# Public helper: start Flask in a daemon thread (called from main.py)
# ---------------------------------------------------------------------------

def start_in_thread(state: LabState, host: str = DASHBOARD_HOST, port: int = DASHBOARD_PORT) -> None:
    """
    Launch the Flask dev server in a background daemon thread.

    Raises OSError if the port is already in use.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
        except OSError:
            raise OSError(f"Port {port} is already in use")

    app = create_app(state)

    def _run():
        _redirect_werkzeug_to_file()
        app.run(host=host, port=port, use_reloader=False, threaded=True)

    t = threading.Thread(target=_run, daemon=True)
    t.start()
    time.sleep(0.3)
    print(f"\nDashboard running at → http://{host}:{port}")
    print("Open that URL in your browser. Press Ctrl+C to stop.\n")
