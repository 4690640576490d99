"""
polymarket_lab/openai_mutator.py — Strategy mutator backed by an OpenAI chat model.

The model is asked for a parameter record, never for code:

    {
      "template": "order_flow",
      "parameters": {"window_hours": 4, "bet_size": 50},
      "reasoning": "short explanation",
      "expectedImprovementPercent": 12.5
    }

"template" must be one of the names in TEMPLATE_DEFAULTS and "parameters"
must only use that template's parameter names. Anything else (extra keys,
code, unknown templates) is rejected and the strategy is left unchanged.

Usage:
    from polymarket_lab.openai_mutator import mutator_from_env
    mutator = mutator_from_env()         # reads OPENAI_API_KEY from .env

Environment variables:
    OPENAI_API_KEY = sk-...
    OPENAI_MODEL   = gpt-4o-mini  (optional)
"""

import json
import logging
import os
from typing import List, Optional

import openai

from betsim.improvement import StrategyBenchmark, StrategyMutator, StrategyProposal
from betsim.models import BacktestResult, HistoricalStats
from betsim.strategies import TEMPLATE_DEFAULTS, build_strategy, strategy_key
from betsim.strategy_base import StrategyBase
from polymarket_lab.config import (
    OPENAI_DEFAULT_MODEL,
    OPENAI_TEMPERATURE,
    OPENAI_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

RESPONSE_KEYS = {"template", "parameters", "reasoning", "expectedImprovementPercent"}

SYSTEM_PROMPT = (
    "You are a quantitative trading expert specializing in prediction markets. "
    "You tune rule-based betting strategies by choosing a template and its parameters. "
    "Return only valid JSON."
)


def _describe_templates() -> str:
    lines = []
    for name, defaults in TEMPLATE_DEFAULTS.items():
        if name == "none":
            continue
        lines.append(f"- {name}: {json.dumps(defaults)}")
    return "\n".join(lines)


def _describe_stats(stats: HistoricalStats) -> str:
    return (
        f"- Total markets: {stats.total_markets}\n"
        f"- Resolved markets: {stats.resolved_markets}\n"
        f"- Avg volume: ${stats.avg_volume:.0f}\n"
        f"- Avg liquidity: ${stats.avg_liquidity:.0f}"
    )


_RESPONSE_FORMAT = """Return ONLY valid JSON with exactly these keys:
{
  "template": "one of the template names above",
  "parameters": { "...": "values for that template's parameters only" },
  "reasoning": "brief explanation of the key changes",
  "expectedImprovementPercent": number
}"""


def improve_prompt(strategy: StrategyBase, result: BacktestResult, stats: HistoricalStats) -> str:
    quality = "poor" if result.roi < 20 else "mediocre"
    return f"""You are optimizing a Polymarket betting strategy.

Current Strategy:
Name: {strategy.name}
Type: {strategy.strategy_type}
Description: {strategy.description}
Parameters: {json.dumps(strategy.parameters)}

Performance:
- Win Rate: {result.win_rate:.1f}%
- ROI: {result.roi:.1f}% ({quality})
- Net Profit: ${result.net_profit:.2f}
- Total Bets: {result.total_bets}

Market Context:
{_describe_stats(stats)}

Available templates and their default parameters:
{_describe_templates()}

Pick a template (keeping the current one is fine) and parameters that should
raise ROI. If ROI is negative, rethink the approach. Be more selective.

{_RESPONSE_FORMAT}"""


def generate_prompt(
    stats:      HistoricalStats,
    benchmarks: List[StrategyBenchmark],
    strategies: List[StrategyBase],
) -> str:
    roi_by_id = {b.strategy_id: b.roi for b in benchmarks}
    existing  = "\n".join(
        f"- {s.name} (ROI: {roi_by_id[s.strategy_id]:.1f}%): {s.description}"
        if s.strategy_id in roi_by_id else f"- {s.name} (ROI: N/A): {s.description}"
        for s in strategies
    )
    return f"""You are an expert Polymarket betting strategist. Propose a NEW strategy.

Historical Data Summary:
{_describe_stats(stats)}

Existing Strategies:
{existing}

Available templates and their default parameters:
{_describe_templates()}

{_RESPONSE_FORMAT}"""


def parse_response(content: str) -> Optional[dict]:
    """
    Validate the model's JSON reply. Returns the decoded dict, or None if it
    is not a JSON object with exactly the expected keys and types.
    """
    try:
        data = json.loads(content)
    except (TypeError, json.JSONDecodeError) as e:
        logger.warning("Model reply is not JSON: %s", e)
        return None

    if not isinstance(data, dict):
        logger.warning("Model reply is not a JSON object")
        return None

    extra = set(data) - RESPONSE_KEYS
    if extra:
        logger.warning("Model reply has unexpected keys: %s", ", ".join(sorted(extra)))
        return None

    if data.get("template") not in TEMPLATE_DEFAULTS or not isinstance(data.get("parameters", {}), dict):
        logger.warning("Model reply has an invalid template or parameters: %r", data.get("template"))
        return None

    return data


class OpenAIMutator(StrategyMutator):

    def __init__(
        self,
        api_key:     str,
        model:       str   = OPENAI_DEFAULT_MODEL,
        temperature: float = OPENAI_TEMPERATURE,
        client:      Optional[openai.OpenAI] = None,
    ):
        self.api_key     = api_key
        self.model       = model
        self.temperature = temperature
        self.client      = client or openai.OpenAI(api_key=api_key, timeout=OPENAI_TIMEOUT_SECONDS)

    def _complete(self, prompt: str) -> Optional[dict]:
        """Request one JSON-mode chat completion and return the validated reply."""
        try:
            response = self.client.chat.completions.create(
                model           = self.model,
                temperature     = self.temperature,
                response_format = {"type": "json_object"},
                messages        = [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user",   "content": prompt},
                ],
            )
            content = response.choices[0].message.content
        except (openai.OpenAIError, IndexError, AttributeError) as e:
            logger.warning("OpenAI request failed: %s", e)
            return None

        return parse_response(content)

    def _to_proposal(self, data: dict, own_key: Optional[str]) -> Optional[StrategyProposal]:
        template   = data["template"]
        parameters = dict(data.get("parameters") or {})

        if template == own_key:
            proposal = StrategyProposal(strategy_type=own_key, parameters=parameters)
        else:
            parameters["template"] = template
            proposal = StrategyProposal(
                strategy_type = "model_generated",
                parameters    = parameters,
                name          = f"AI {template.replace('_', ' ').title()}",
                description   = f"Model-tuned {template} template",
            )
        proposal.reasoning = str(data.get("reasoning") or "")
        try:
            proposal.expected_improvement = float(data.get("expectedImprovementPercent") or 0.0)
        except (TypeError, ValueError):
            proposal.expected_improvement = 0.0

        # Dry build: unknown parameter names fail here instead of mid-loop
        try:
            build_strategy(proposal.strategy_type, proposal.parameters)
        except ValueError as e:
            logger.warning("Rejected model proposal: %s", e)
            return None
        return proposal

    def improve_strategy(self, strategy, result, stats):
        data = self._complete(improve_prompt(strategy, result, stats))
        if data is None:
            return None
        own_key = strategy_key(strategy.strategy_type)
        if own_key == "model_generated":
            own_key = None
        return self._to_proposal(data, own_key)

    def generate_strategy(self, stats, benchmarks, strategies):
        data = self._complete(generate_prompt(stats, benchmarks, strategies))
        if data is None or data["template"] == "none":
            return None
        return self._to_proposal(data, own_key=None)


def mutator_from_env() -> OpenAIMutator:
    """
    Build an OpenAIMutator from environment variables (via .env).

    Loads .env automatically if present.
    """
    from dotenv import load_dotenv
    load_dotenv()

    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ValueError(
            "OPENAI_API_KEY not set in environment.\n"
            "Add it to .env or use --mutator random"
        )
    return OpenAIMutator(api_key=api_key, model=os.environ.get("OPENAI_MODEL", OPENAI_DEFAULT_MODEL))
