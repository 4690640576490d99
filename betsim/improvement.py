"""
betsim/improvement.py — Epoch loop that re-tunes strategies between backtests.

Each epoch:
  1. backtest every strategy in the pool
  2. record a StrategyBenchmark per successful run
  3. ask the mutator to improve the worst performer (if its ROI is low)
  4. every few epochs, ask the mutator for a brand new strategy

A mutator only ever returns a StrategyProposal: a registry key plus a
parameter record. Proposals are turned into strategies through the
registry, so nothing a mutator returns is ever executed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from betsim.backtest_engine import BacktestRun, run_backtests
from betsim.config import DEFAULT_TRAINING_RATIO, MAX_PRICE
from betsim.metrics import calculate_historical_stats
from betsim.models import BacktestResult, HistoricalStats, Market
from betsim.strategies import STRATEGY_MAP, TEMPLATE_DEFAULTS, build_strategy, strategy_key
from betsim.strategy_base import StrategyBase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class StrategyBenchmark:
    """One strategy's headline numbers for one epoch."""
    strategy_id:         str
    strategy_name:       str
    epoch:               int
    win_rate:            float
    roi:                 float
    net_profit:          float
    total_bets:          int
    improvement_percent: float = 0.0  # ROI change vs. the previous epoch

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StrategyProposal:
    """
    A mutator's suggestion, as plain data.

    strategy_type is a registry key ("whale_copy") or a type tag
    ("copy_trading"). For model-generated strategies the parameters carry
    the "template" name.
    """
    strategy_type:        str
    parameters:           dict          = field(default_factory=dict)
    name:                 Optional[str] = None
    description:          Optional[str] = None
    reasoning:            str           = ""
    expected_improvement: float         = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def apply_proposal(strategy: StrategyBase, proposal: StrategyProposal) -> StrategyBase:
    """
    Build the strategy a proposal describes, keeping the original identity.

    Same class → with_parameters() (merged). Different class → a fresh
    strategy from the registry. Raises ValueError for unknown strategies,
    templates or parameter names.
    """
    key = strategy_key(proposal.strategy_type)
    if STRATEGY_MAP[key] is strategy.__class__:
        return strategy.with_parameters(proposal.parameters)
    return build_strategy(
        key,
        parameters  = proposal.parameters,
        strategy_id = strategy.strategy_id,
        name        = proposal.name or strategy.name,
        description = proposal.description or strategy.description,
    )


# ---------------------------------------------------------------------------
# Mutators
# ---------------------------------------------------------------------------

class StrategyMutator(ABC):
    """Something that proposes better parameters (random search, an LLM, ...)."""

    @abstractmethod
    def improve_strategy(
        self,
        strategy: StrategyBase,
        result:   BacktestResult,
        stats:    HistoricalStats,
    ) -> Optional[StrategyProposal]:
        """Return a proposal for `strategy`, or None to leave it as is."""
        ...

    def generate_strategy(
        self,
        stats:      HistoricalStats,
        benchmarks: List[StrategyBenchmark],
        strategies: List[StrategyBase],
    ) -> Optional[StrategyProposal]:
        """Return a proposal for a new strategy, or None. Default: never generates."""
        return None


def perturb_parameters(params: dict, rng: np.random.Generator, scale: float) -> dict:
    """
    Multiply every numeric parameter by a random factor in [1 - scale, 1 + scale].

    Integers stay integers (at least 1). Values below 1 are treated as
    prices/ratios and kept inside (0, 0.99]. Strings and booleans are left
    alone, and min_spread never ends up above max_spread.
    """
    out = {}
    for key, value in params.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            out[key] = value
            continue
        factor = 1.0 + float(rng.uniform(-scale, scale))
        if isinstance(value, int):
            out[key] = max(1, int(round(value * factor)))
        elif 0 < value < 1:
            out[key] = min(MAX_PRICE, max(0.001, value * factor))
        else:
            out[key] = value * factor

    if "min_spread" in out and "max_spread" in out and out["min_spread"] > out["max_spread"]:
        out["min_spread"], out["max_spread"] = out["max_spread"], out["min_spread"]
    return out


class RandomSearchMutator(StrategyMutator):
    """
    Seeded random search: nudge every numeric knob, and generate new
    model-generated strategies from a random template.
    """

    def __init__(self, seed: int = 42, scale: float = 0.25):
        self.scale = scale
        self.rng   = np.random.default_rng(seed)

    def improve_strategy(self, strategy, result, stats):
        params   = dict(strategy.parameters)
        template = params.pop("template", None)
        proposal = perturb_parameters(params, self.rng, self.scale)
        if template is not None:
            proposal["template"] = template
        return StrategyProposal(
            strategy_type = strategy.strategy_type,
            parameters    = proposal,
            reasoning     = f"Random search step (±{self.scale:.0%}) from ROI {result.roi:.1f}%",
        )

    def generate_strategy(self, stats, benchmarks, strategies):
        templates = [t for t in TEMPLATE_DEFAULTS if t != "none"]
        template  = str(self.rng.choice(templates))
        params    = perturb_parameters(TEMPLATE_DEFAULTS[template], self.rng, self.scale)
        params["template"] = template
        return StrategyProposal(
            strategy_type = "model_generated",
            parameters    = params,
            name          = f"Generated {template.replace('_', ' ').title()}",
            description   = f"Random-search variant of the {template} template",
            reasoning     = "Random template draw",
        )


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

@dataclass
class EpochReport:
    epoch:      int
    runs:       List[BacktestRun]
    benchmarks: List[StrategyBenchmark]
    improved:   Optional[str]              = None  # strategy_id that was re-tuned
    proposal:   Optional[StrategyProposal] = None
    generated:  Optional[str]              = None  # strategy_id that was added
    rejected:   List[str]                  = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "epoch":      self.epoch,
            "runs":       [r.to_dict() for r in self.runs],
            "benchmarks": [b.to_dict() for b in self.benchmarks],
            "improved":   self.improved,
            "proposal":   self.proposal.to_dict() if self.proposal else None,
            "generated":  self.generated,
            "rejected":   list(self.rejected),
        }


@dataclass
class ImprovementReport:
    epochs:     List[EpochReport]
    strategies: List[StrategyBase]

    def roi_changes(self) -> Dict[str, Tuple[float, float]]:
        """strategy_id -> (first-epoch ROI, last-epoch ROI) for strategies benchmarked in both."""
        if not self.epochs:
            return {}
        first = {b.strategy_id: b for b in self.epochs[0].benchmarks}
        last  = {b.strategy_id: b for b in self.epochs[-1].benchmarks}
        return {sid: (first[sid].roi, last[sid].roi) for sid in first if sid in last}

    def to_dict(self) -> dict:
        return {
            "epochs":     [e.to_dict() for e in self.epochs],
            "strategies": [s.to_dict() for s in self.strategies],
        }


class ImprovementLoop:
    """
    Usage:
        loop   = ImprovementLoop(RandomSearchMutator(seed=7), epochs=5)
        report = loop.run(default_strategies(), markets)
    """

    def __init__(
        self,
        mutator:           StrategyMutator,
        epochs:            int   = 5,
        training_ratio:    float = DEFAULT_TRAINING_RATIO,
        improve_below_roi: float = 50.0,
        generate_every:    int   = 2,
        max_workers:       Optional[int] = None,
    ):
        if epochs < 1:
            raise ValueError("epochs must be at least 1")
        self.mutator           = mutator
        self.epochs            = epochs
        self.training_ratio    = training_ratio
        self.improve_below_roi = improve_below_roi
        self.generate_every    = max(1, generate_every)
        self.max_workers       = max_workers

    def run(self, strategies: List[StrategyBase], markets: List[Market]) -> ImprovementReport:
        pool  = list(strategies)
        stats = calculate_historical_stats(markets)
        previous_roi: Dict[str, float] = {}
        reports: List[EpochReport] = []

        for epoch in range(1, self.epochs + 1):
            logger.info("Epoch %d/%d: backtesting %d strategies", epoch, self.epochs, len(pool))
            runs = run_backtests(pool, markets, self.training_ratio, self.max_workers)

            benchmarks = []
            for run in runs:
                if run.failed:
                    continue
                r = run.result
                benchmarks.append(StrategyBenchmark(
                    strategy_id         = r.strategy_id,
                    strategy_name       = r.strategy_name,
                    epoch               = epoch,
                    win_rate            = r.win_rate,
                    roi                 = r.roi,
                    net_profit          = r.net_profit,
                    total_bets          = r.total_bets,
                    improvement_percent = r.roi - previous_roi.get(r.strategy_id, r.roi),
                ))
            previous_roi = {b.strategy_id: b.roi for b in benchmarks}

            report = EpochReport(epoch=epoch, runs=runs, benchmarks=benchmarks)
            self._improve_worst(pool, runs, stats, report)

            if epoch % self.generate_every == 0 or epoch == self.epochs:
                self._generate(pool, stats, benchmarks, epoch, report)

            reports.append(report)

        return ImprovementReport(epochs=reports, strategies=pool)

    def _improve_worst(self, pool, runs, stats, report: EpochReport) -> None:
        candidates = [(i, run) for i, run in enumerate(runs) if not run.failed]
        if not candidates:
            return

        index, worst = min(candidates, key=lambda pair: pair[1].result.roi)
        if worst.result.roi >= self.improve_below_roi:
            return

        proposal = self.mutator.improve_strategy(pool[index], worst.result, stats)
        if proposal is None:
            return

        try:
            pool[index] = apply_proposal(pool[index], proposal)
        except ValueError as e:
            logger.warning("Rejected proposal for %s: %s", worst.strategy_name, e)
            report.rejected.append(f"{worst.strategy_id}: {e}")
            return

        report.improved = worst.strategy_id
        report.proposal = proposal
        logger.info("Improved %s: %s", worst.strategy_name, proposal.reasoning)

    def _generate(self, pool, stats, benchmarks, epoch: int, report: EpochReport) -> None:
        proposal = self.mutator.generate_strategy(stats, benchmarks, pool)
        if proposal is None:
            return

        new_id = f"model_generated_{epoch}"
        try:
            strategy = build_strategy(
                proposal.strategy_type,
                parameters  = proposal.parameters,
                strategy_id = new_id,
                name        = proposal.name,
                description = proposal.description,
            )
        except ValueError as e:
            logger.warning("Rejected generated strategy: %s", e)
            report.rejected.append(f"{new_id}: {e}")
            return

        pool.append(strategy)
        report.generated = new_id
        logger.info("Generated %s (%s)", strategy.name, new_id)


def print_improvement_summary(report: ImprovementReport) -> None:
    print()
    print("=" * 55)
    print("  IMPROVEMENT LOOP SUMMARY")
    print("=" * 55)
    for epoch in report.epochs:
        line = f"  Epoch {epoch.epoch}: {len(epoch.benchmarks)} ok"
        failed = sum(1 for r in epoch.runs if r.failed)
        if failed:
            line += f", {failed} FAILED"
        if epoch.improved:
            line += f" | tuned {epoch.improved}"
        if epoch.generated:
            line += f" | added {epoch.generated}"
        print(line)
    print("-" * 55)
    for strategy_id, (first, last) in report.roi_changes().items():
        change = last - first
        sign   = "+" if change >= 0 else ""
        print(f"  {strategy_id:<24} {first:>8.1f}% -> {last:>8.1f}% ({sign}{change:.1f})")
    print(f"  Strategies in pool:    {len(report.strategies):>10}")
    print("=" * 55)
    print()
