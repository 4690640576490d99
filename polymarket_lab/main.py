"""
polymarket_lab/main.py — Command-line entry point for the Polymarket lab.

Loads a market set (Gamma + subgraph, the CSV cache, or fully synthetic),
backtests one or all strategies on it and prints the results. With
--epochs it runs the improvement loop instead; with --dashboard it keeps
serving the results over HTTP afterwards.

Usage examples:
  polymarket-lab --synthetic                              # offline, all strategies
  polymarket-lab --strategy whale_copy --markets 50
  polymarket-lab --no-fetch --strategy spike_reversal     # cached data only
  polymarket-lab --synthetic --epochs 5 --mutator random
  polymarket-lab --synthetic --epochs 3 --mutator openai  # needs OPENAI_API_KEY
  polymarket-lab --synthetic --dashboard

Exit status is 1 when any strategy's backtest failed, so a broken strategy
is never mistaken for one that simply found nothing to bet on.

Run  polymarket-lab --help  for all options.
"""

import argparse
import json
import logging
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from betsim.backtest_engine import BacktestRun, run_backtests
from betsim.config import DEFAULT_TRAINING_RATIO
from betsim.improvement import ImprovementLoop, RandomSearchMutator, print_improvement_summary
from betsim.metrics import calculate_historical_stats, print_historical_stats, print_results, print_run_failure
from betsim.models import Market
from betsim.strategies import STRATEGY_MAP, build_strategy, default_strategies
from polymarket_lab.config import (
    DEFAULT_EPOCHS,
    DEFAULT_MARKETS_TO_FETCH,
    DEFAULT_SEED,
    GENERATE_EVERY,
    IMPROVE_BELOW_ROI,
    RANDOM_SEARCH_SCALE,
)
from polymarket_lab.data_fetcher import fetch_markets
from polymarket_lab.data_storage import load_markets, markets_cache_exists, save_markets
from polymarket_lab.synthetic import generate_markets


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-lab",
        description=(
            "Polymarket strategy lab\n"
            "  backtest:  replay strategies against resolved markets, measure ROI\n"
            "  improve:   re-tune strategies over several epochs (--epochs)"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "--strategy",
        type=str,
        default="all",
        choices=["all"] + [k for k in STRATEGY_MAP if k != "model_generated"],
        help=(
            "Which strategy to run (default: all):\n"
            "  whale_copy      — Copy large recent trades\n"
            "  spike_reversal  — Fade sudden moves away from the recent mean\n"
            "  market_making   — Quote both sides around the current price\n"
            "  all             — All three reference strategies"
        ),
    )

    parser.add_argument(
        "--markets",
        type=int,
        default=DEFAULT_MARKETS_TO_FETCH,
        help=f"How many markets to load (default: {DEFAULT_MARKETS_TO_FETCH})",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--no-fetch",
        action="store_true",
        help="Skip API fetch, use cached data only",
    )
    source.add_argument(
        "--synthetic",
        action="store_true",
        help="Generate a seeded synthetic market set (no network)",
    )

    parser.add_argument(
        "--no-subgraph",
        action="store_true",
        help="Don't query the subgraph for real history (synthetic history instead)",
    )

    parser.add_argument(
        "--save-cache",
        action="store_true",
        help="Save the loaded markets to the CSV cache",
    )

    parser.add_argument(
        "--training-ratio",
        type=float,
        default=DEFAULT_TRAINING_RATIO,
        help=f"Share of resolved markets (oldest first) held out for training (default: {DEFAULT_TRAINING_RATIO})",
    )

    parser.add_argument(
        "--epochs",
        type=int,
        default=0,
        help=f"Run the improvement loop for N epochs instead of one backtest (e.g. {DEFAULT_EPOCHS})",
    )

    parser.add_argument(
        "--mutator",
        type=str,
        default="random",
        choices=["random", "openai"],
        help=(
            "How the improvement loop proposes changes (default: random):\n"
            "  random — seeded random search over parameters\n"
            "  openai — ask an OpenAI model (OPENAI_API_KEY in .env)"
        ),
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_SEED,
        help=f"Seed for synthetic data and random search (default: {DEFAULT_SEED})",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON instead of tables",
    )

    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Serve results at http://localhost:5000 after the run (Ctrl+C to stop)",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Debug logging",
    )

    return parser


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def load_market_set(args) -> List[Market]:
    """Pick the market source from the flags. Returns [] if nothing could be loaded."""
    # Progress goes to stderr in --json mode so stdout stays parseable
    out = sys.stderr if args.json else sys.stdout

    if args.synthetic:
        print(f"Generating {args.markets} synthetic markets (seed {args.seed})...", file=out)
        markets = generate_markets(args.markets, seed=args.seed)

    elif args.no_fetch:
        if not markets_cache_exists():
            print("ERROR: --no-fetch used but no cached data found. Run without --no-fetch first.", file=out)
            return []
        print("Loading markets from cache...", file=out)
        markets = load_markets()

    else:
        print(f"Fetching {args.markets} resolved markets from Polymarket...", file=out)
        markets = fetch_markets(
            limit            = args.markets,
            include_resolved = True,
            use_subgraph     = not args.no_subgraph,
            seed             = args.seed,
        )

    if markets and args.save_cache:
        save_markets(markets)
        print(f"Saved {len(markets)} markets to the cache.", file=out)
    return markets


def build_strategies(name: str):
    if name == "all":
        return default_strategies()
    return [build_strategy(name)]


def build_mutator(args):
    if args.mutator == "openai":
        from polymarket_lab.openai_mutator import mutator_from_env
        return mutator_from_env()
    return RandomSearchMutator(seed=args.seed, scale=RANDOM_SEARCH_SCALE)


def report_runs(runs: List[BacktestRun], as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.to_dict() for r in runs], indent=2))
        return
    for run in runs:
        if run.failed:
            print_run_failure(run.strategy_name, run.error)
        else:
            print_results(run.result)


def serve_dashboard(markets, strategies, training_ratio, runs) -> None:
    from polymarket_lab.dashboard import LabState, start_in_thread

    state = LabState(
        markets        = markets,
        strategies     = list(strategies),
        training_ratio = training_ratio,
        last_runs      = runs,
    )
    try:
        start_in_thread(state)
    except OSError as e:
        print(f"ERROR: {e}")
        return
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nDashboard stopped.")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args   = parser.parse_args(argv)

    logging.basicConfig(
        level  = logging.DEBUG if args.verbose else logging.WARNING,
        format = "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    load_dotenv()

    if not 0.0 <= args.training_ratio <= 1.0:
        parser.error("--training-ratio must be between 0 and 1")
    if args.markets < 1:
        parser.error("--markets must be at least 1")

    if not args.json:
        print()
        print("=" * 55)
        print("  Polymarket Lab — " + ("Improvement Loop" if args.epochs > 0 else "Backtesting"))
        print(f"  Strategy : {args.strategy}")
        print(f"  Markets  : {args.markets}")
        print(f"  Training : {args.training_ratio:.0%}")
        if args.epochs > 0:
            print(f"  Epochs   : {args.epochs} ({args.mutator})")
        print("=" * 55)

    markets = load_market_set(args)
    if not markets:
        print("ERROR: No markets available. Cannot run backtest.", file=sys.stderr)
        return 1

    if not args.json:
        print_historical_stats(calculate_historical_stats(markets))

    strategies = build_strategies(args.strategy)

    # ----------------------------------------------------------------
    # IMPROVEMENT LOOP
    # ----------------------------------------------------------------
    if args.epochs > 0:
        try:
            mutator = build_mutator(args)
        except ValueError as e:
            print(f"\nERROR: Could not build mutator: {e}")
            return 1

        loop = ImprovementLoop(
            mutator           = mutator,
            epochs            = args.epochs,
            training_ratio    = args.training_ratio,
            improve_below_roi = IMPROVE_BELOW_ROI,
            generate_every    = GENERATE_EVERY,
        )
        report = loop.run(strategies, markets)
        runs   = report.epochs[-1].runs

        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            report_runs(runs, as_json=False)
            print_improvement_summary(report)
        strategies = report.strategies

    # ----------------------------------------------------------------
    # SINGLE BACKTEST
    # ----------------------------------------------------------------
    else:
        runs = run_backtests(strategies, markets, args.training_ratio)
        report_runs(runs, args.json)

    failed = [r for r in runs if r.failed]
    if failed and not args.json:
        print(f"{len(failed)} of {len(runs)} strategies FAILED: "
              + ", ".join(r.strategy_name for r in failed))

    if args.dashboard:
        serve_dashboard(markets, strategies, args.training_ratio, runs)

    if not args.json:
        print("Done.")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
