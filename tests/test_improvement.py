import numpy as np
import pytest

from betsim.improvement import (
    ImprovementLoop,
    RandomSearchMutator,
    StrategyMutator,
    StrategyProposal,
    apply_proposal,
    perturb_parameters,
)
from betsim.strategies import (
    MarketMakingStrategy,
    ModelGeneratedStrategy,
    WhaleCopyStrategy,
    default_strategies,
)
from conftest import BrokenStrategy


class NoOpMutator(StrategyMutator):
    def improve_strategy(self, strategy, result, stats):
        return None


class BadMutator(StrategyMutator):
    def improve_strategy(self, strategy, result, stats):
        return StrategyProposal(strategy_type=strategy.strategy_type, parameters={"not_a_knob": 1})

    def generate_strategy(self, stats, benchmarks, strategies):
        return StrategyProposal(strategy_type="model_generated", parameters={"template": "exec"})


def test_perturb_parameters_respects_types_and_bounds():
    rng    = np.random.default_rng(0)
    params = {"bet_size": 1, "spike_threshold": 0.98, "min_liquidity": 50000.0,
              "template": "order_flow", "flag": True}

    for _ in range(50):
        out = perturb_parameters(params, rng, 0.5)
        assert isinstance(out["bet_size"], int) and out["bet_size"] >= 1
        assert 0 < out["spike_threshold"] <= 0.99
        assert out["min_liquidity"] > 0
        assert out["template"] == "order_flow"
        assert out["flag"] is True


def test_perturb_keeps_spreads_ordered():
    rng = np.random.default_rng(1)
    for _ in range(50):
        out = perturb_parameters({"min_spread": 0.05, "max_spread": 0.051}, rng, 0.5)
        assert out["min_spread"] <= out["max_spread"]


def test_apply_proposal_same_type_keeps_identity():
    strategy = WhaleCopyStrategy(strategy_id="w1", name="Whales")
    proposal = StrategyProposal(strategy_type="copy_trading", parameters={"bet_size": 25})

    tuned = apply_proposal(strategy, proposal)

    assert isinstance(tuned, WhaleCopyStrategy)
    assert tuned.strategy_id == "w1"
    assert tuned.name == "Whales"
    assert tuned.parameters["bet_size"] == 25
    assert strategy.parameters["bet_size"] == 100


def test_apply_proposal_can_switch_to_a_template():
    strategy = MarketMakingStrategy(strategy_id="mm")
    proposal = StrategyProposal(
        strategy_type="model_generated",
        parameters={"template": "order_flow", "min_trades": 3},
    )

    tuned = apply_proposal(strategy, proposal)

    assert isinstance(tuned, ModelGeneratedStrategy)
    assert tuned.strategy_id == "mm"
    assert tuned.template == "order_flow"
    assert tuned.parameters["min_trades"] == 3


def test_apply_proposal_rejects_unknown_parameters():
    with pytest.raises(ValueError):
        apply_proposal(WhaleCopyStrategy(), StrategyProposal("whale_copy", {"nope": 1}))


def test_apply_proposal_rejects_wrongly_typed_values():
    with pytest.raises(ValueError, match="min_whale_volume"):
        apply_proposal(WhaleCopyStrategy(), StrategyProposal("whale_copy", {"min_whale_volume": "1000"}))


class StringMutator(StrategyMutator):
    def improve_strategy(self, strategy, result, stats):
        return StrategyProposal(strategy.strategy_type, {"bet_size": "lots"}, reasoning="bad")


def test_wrongly_typed_proposals_never_break_the_pool(small_markets):
    report = ImprovementLoop(StringMutator(), epochs=3, improve_below_roi=1e9).run(
        default_strategies(), small_markets,
    )

    assert all(not run.failed for e in report.epochs for run in e.runs)
    assert all(e.improved is None and len(e.rejected) == 1 for e in report.epochs)
    assert [s.parameters for s in report.strategies] == [s.parameters for s in default_strategies()]


def test_random_search_is_seeded():
    a = RandomSearchMutator(seed=5).generate_strategy(None, [], [])
    b = RandomSearchMutator(seed=5).generate_strategy(None, [], [])
    assert a == b
    assert a.strategy_type == "model_generated"
    assert a.parameters["template"] != "none"
    ModelGeneratedStrategy(a.parameters)


def test_loop_tunes_and_generates(small_markets):
    loop = ImprovementLoop(RandomSearchMutator(seed=3), epochs=3, improve_below_roi=1e9)

    report = loop.run(default_strategies(), small_markets)

    assert [e.epoch for e in report.epochs] == [1, 2, 3]
    assert all(e.improved is not None for e in report.epochs)
    # generated on epoch 2 (every 2nd) and on the last epoch
    assert [e.generated for e in report.epochs] == [None, "model_generated_2", "model_generated_3"]
    ids = [s.strategy_id for s in report.strategies]
    assert ids[-2:] == ["model_generated_2", "model_generated_3"]
    assert len(report.epochs[2].benchmarks) == 4


def test_first_epoch_has_no_improvement_baseline(small_markets):
    report = ImprovementLoop(NoOpMutator(), epochs=2).run(default_strategies(), small_markets)

    assert all(b.improvement_percent == 0.0 for b in report.epochs[0].benchmarks)
    # nothing changed, so nothing improved either
    assert all(b.improvement_percent == pytest.approx(0.0) for b in report.epochs[1].benchmarks)
    changes = report.roi_changes()
    assert set(changes) == {"copy_trading", "spike_detection", "market_making"}
    assert all(first == pytest.approx(last) for first, last in changes.values())


def test_invalid_proposals_are_rejected_not_applied(small_markets):
    strategies = default_strategies()
    report = ImprovementLoop(BadMutator(), epochs=2, improve_below_roi=1e9).run(strategies, small_markets)

    assert [s.parameters for s in report.strategies] == [s.parameters for s in strategies]
    assert all(e.improved is None for e in report.epochs)
    assert len(report.epochs[1].rejected) == 2


def test_failed_strategies_are_never_tuned(small_markets):
    report = ImprovementLoop(NoOpMutator(), epochs=1).run([BrokenStrategy()], small_markets)

    assert report.epochs[0].benchmarks == []
    assert report.epochs[0].runs[0].failed
    assert report.epochs[0].improved is None


def test_report_serialises(small_markets):
    report = ImprovementLoop(RandomSearchMutator(seed=1), epochs=1).run(default_strategies(), small_markets)
    data = report.to_dict()
    assert len(data["epochs"]) == 1
    assert data["epochs"][0]["runs"][0]["status"] == "ok"


def test_epochs_must_be_positive():
    with pytest.raises(ValueError):
        ImprovementLoop(NoOpMutator(), epochs=0)
