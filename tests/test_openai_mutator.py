import json
from types import SimpleNamespace

import openai
import pytest

from betsim.metrics import calculate_historical_stats
from betsim.models import BacktestResult
from betsim.strategies import ModelGeneratedStrategy, SpikeReversalStrategy
from polymarket_lab.openai_mutator import (
    OpenAIMutator,
    improve_prompt,
    mutator_from_env,
    parse_response,
)
from conftest import make_market

STATS  = calculate_historical_stats([make_market()])
RESULT = BacktestResult(strategy_id="spike_detection", strategy_name="Spike", total_bets=10, roi=-5.0)


def _reply(payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    """Stands in for client.chat.completions; replays queued replies or errors."""

    def __init__(self):
        self.replies = []
        self.calls   = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def completions():
    return FakeCompletions()


def _mutator(completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIMutator("sk-test", client=client)


def test_parse_response_accepts_a_parameter_record():
    data = parse_response(json.dumps({
        "template": "order_flow", "parameters": {"bet_size": 20}, "reasoning": "r",
    }))
    assert data["template"] == "order_flow"


@pytest.mark.parametrize("content", [
    "import os; os.system('rm -rf /')",
    "[1, 2]",
    json.dumps({"template": "order_flow", "code": "def f(): pass"}),
    json.dumps({"template": "python", "parameters": {}}),
    json.dumps({"template": "order_flow", "parameters": [1]}),
])
def test_parse_response_rejects_anything_else(content):
    assert parse_response(content) is None


def test_improve_keeps_own_type(completions):
    completions.replies.append(_reply({
        "template": "spike_reversal",
        "parameters": {"spike_threshold": 0.08},
        "reasoning": "Be pickier",
        "expectedImprovementPercent": 12,
    }))

    proposal = _mutator(completions).improve_strategy(SpikeReversalStrategy(), RESULT, STATS)

    assert proposal.strategy_type == "spike_reversal"
    assert proposal.parameters == {"spike_threshold": 0.08}
    assert proposal.reasoning == "Be pickier"
    assert proposal.expected_improvement == 12.0
    (call,) = completions.calls
    assert call["response_format"] == {"type": "json_object"}
    assert call["model"] == "gpt-4o-mini"
    assert "ROI: -5.0% (poor)" in call["messages"][1]["content"]


def test_improve_can_switch_to_a_template(completions):
    completions.replies.append(_reply({"template": "order_flow", "parameters": {"min_trades": 3}}))

    proposal = _mutator(completions).improve_strategy(SpikeReversalStrategy(), RESULT, STATS)

    assert proposal.strategy_type == "model_generated"
    assert proposal.parameters == {"min_trades": 3, "template": "order_flow"}
    assert proposal.name == "AI Order Flow"


def test_unknown_parameters_are_rejected(completions):
    completions.replies.append(_reply({"template": "spike_reversal", "parameters": {"leverage": 10}}))
    assert _mutator(completions).improve_strategy(SpikeReversalStrategy(), RESULT, STATS) is None


def test_wrongly_typed_parameters_are_rejected(completions):
    completions.replies.append(_reply({"template": "spike_reversal", "parameters": {"bet_size": "lots"}}))
    completions.replies.append(_reply({"template": "order_flow", "parameters": {"min_trades": "five"}}))
    mutator = _mutator(completions)

    assert mutator.improve_strategy(SpikeReversalStrategy(), RESULT, STATS) is None
    assert mutator.generate_strategy(STATS, [], [SpikeReversalStrategy()]) is None


def test_model_generated_strategies_are_retuned_as_templates(completions):
    completions.replies.append(_reply({"template": "price_threshold", "parameters": {"edge": 0.1}}))
    strategy = ModelGeneratedStrategy({"template": "price_threshold"})

    proposal = _mutator(completions).improve_strategy(strategy, RESULT, STATS)

    assert proposal.strategy_type == "model_generated"
    assert proposal.parameters == {"edge": 0.1, "template": "price_threshold"}


def test_generate_strategy(completions):
    completions.replies.append(_reply({"template": "none", "parameters": {}}))
    completions.replies.append(_reply({"template": "whale_copy", "parameters": {"bet_size": 10}}))
    mutator = _mutator(completions)

    assert mutator.generate_strategy(STATS, [], [SpikeReversalStrategy()]) is None

    proposal = mutator.generate_strategy(STATS, [], [SpikeReversalStrategy()])
    assert proposal.strategy_type == "model_generated"
    assert proposal.parameters == {"bet_size": 10, "template": "whale_copy"}


def test_client_errors_return_none(completions):
    completions.replies.append(openai.OpenAIError("connection reset"))
    assert _mutator(completions).improve_strategy(SpikeReversalStrategy(), RESULT, STATS) is None


@pytest.mark.parametrize("reply", [
    SimpleNamespace(choices=[]),
    SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))]),
])
def test_malformed_completion_returns_none(completions, reply):
    completions.replies.append(reply)
    assert _mutator(completions).improve_strategy(SpikeReversalStrategy(), RESULT, STATS) is None


def test_prompt_mentions_current_parameters():
    prompt = improve_prompt(SpikeReversalStrategy(), RESULT, STATS)
    assert '"spike_threshold": 0.05' in prompt
    assert "order_flow" in prompt


def test_mutator_from_env(monkeypatch):
    monkeypatch.setattr("dotenv.load_dotenv", lambda *args, **kwargs: False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        mutator_from_env()

    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
    mutator = mutator_from_env()
    assert mutator.api_key == "sk-env"
    assert mutator.model == "gpt-test"
    assert mutator.client.api_key == "sk-env"
