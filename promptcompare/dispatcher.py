"""
Execution dispatcher for prompt comparison.

This module turns a (prompt, scenario values) pair into an ExecutionResult:
it resolves the prompt and its model configuration, fills the template, times
the completion call and derives token throughput and cost metrics.
"""

import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from .config import DEFAULT_COST_PER_TOKEN, Configuration
from .llm_client import LLMClient
from .templates import interpolate

logger = logging.getLogger(__name__)


@dataclass
class MetricsData:
    """Derived metrics for a single completion call."""
    token_usage: int = 0
    latency: float = 0.0  # milliseconds
    inference_speed: float = 0.0  # tokens per second
    compute_cost: float = 0.0  # USD


@dataclass
class ExecutionResult:
    """Outcome of running one prompt for one scenario."""
    prompt_id: str
    scenario_id: int
    metrics: MetricsData
    output: str = ""
    variables: str = "{}"  # JSON snapshot of the values used
    model: Optional[str] = None
    completed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def key(self):
        return (self.prompt_id, self.scenario_id)

    @property
    def variable_values(self) -> Dict[str, str]:
        return json.loads(self.variables)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionResult":
        metrics = payload.get("metrics") or {}
        return cls(
            prompt_id=str(payload["prompt_id"]),
            scenario_id=int(payload["scenario_id"]),
            metrics=MetricsData(
                token_usage=int(metrics.get("token_usage", 0)),
                latency=float(metrics.get("latency", 0.0)),
                inference_speed=float(metrics.get("inference_speed", 0.0)),
                compute_cost=float(metrics.get("compute_cost", 0.0)),
            ),
            output=str(payload.get("output") or ""),
            variables=str(payload.get("variables") or "{}"),
            model=payload.get("model"),
            completed_at=str(payload.get("completed_at") or ""),
        )


def inference_speed(tokens: int, latency_ms: float) -> float:
    """
    Tokens per second for a call.

    Zero latency yields 0.0 when no tokens were produced and infinity
    otherwise, so the result is never NaN.
    """
    if latency_ms <= 0:
        return math.inf if tokens > 0 else 0.0
    return tokens / (latency_ms / 1000)


def compute_metrics(tokens: int, latency_ms: float, cost_per_token: float) -> MetricsData:
    latency_ms = max(0.0, latency_ms)
    return MetricsData(
        token_usage=tokens,
        latency=latency_ms,
        inference_speed=inference_speed(tokens, latency_ms),
        compute_cost=tokens * cost_per_token,
    )


class Dispatcher:
    """
    Runs prompts against the completion boundary.

    Each call to ``run`` is independent; the dispatcher keeps no state between
    calls, so any number of runs may be awaited concurrently.
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        cost_per_token: float = DEFAULT_COST_PER_TOKEN,
        clock: Callable[[], float] = time.perf_counter
    ):
        self.client = client or LLMClient()
        self.cost_per_token = cost_per_token
        self.clock = clock

    async def run(
        self,
        prompt_id: str,
        scenario_values: Mapping[str, str],
        config: Configuration,
        credentials: Optional[str] = None,
        scenario_id: int = 0
    ) -> ExecutionResult:
        """
        Execute one prompt with one scenario's variable values.

        Raises NotFoundError for an unknown prompt or model configuration. The
        client raises ExecutionError for provider failures; anything else it
        raises propagates unchanged. Nothing is retried.
        """
        prompt = config.get_prompt(prompt_id)
        model = config.get_model(prompt.model_config)

        prompt_text = interpolate(prompt.template.text, scenario_values)

        logger.info("Dispatching %s (scenario %d) to %s", prompt_id, scenario_id, model.model)
        start_time = self.clock()
        response = await self.client.complete_async(prompt_text, model, credentials)
        end_time = self.clock()

        metrics = compute_metrics(
            response.total_tokens,
            (end_time - start_time) * 1000,
            self.cost_per_token,
        )
        logger.info(
            "Completed %s (scenario %d): %d tokens in %.0fms",
            prompt_id, scenario_id, metrics.token_usage, metrics.latency
        )

        return ExecutionResult(
            prompt_id=prompt_id,
            scenario_id=scenario_id,
            metrics=metrics,
            output=response.content or "",
            variables=json.dumps(dict(scenario_values), sort_keys=True),
            model=model.model,
        )
