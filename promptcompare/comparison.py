"""
Comparison view model.

Shapes the result store into pandas frames and display strings for the
presentation layer, which renders them without further computation.
"""

import math
from typing import Dict, List, Mapping

import pandas as pd

from .config import Configuration, PromptSpec
from .dispatcher import MetricsData
from .storage import ResultStore
from .templates import placeholders

RESULT_COLUMNS = [
    "prompt_id", "prompt_name", "scenario", "model", "token_usage", "latency_ms",
    "inference_speed", "compute_cost", "output_length", "output", "completed_at",
]


def format_metrics(metrics: MetricsData) -> Dict[str, str]:
    """Display strings for the four metrics of a result."""
    if math.isinf(metrics.inference_speed):
        speed = "∞ tok/s"
    else:
        speed = f"{metrics.inference_speed:.1f} tok/s"

    return {
        "Token Usage": str(metrics.token_usage),
        "Latency": f"{metrics.latency:.0f}ms",
        "Speed": speed,
        "Cost": f"${metrics.compute_cost:.4f}",
    }


def results_frame(config: Configuration, store: ResultStore) -> pd.DataFrame:
    """One row per stored result, in store order."""
    names = {prompt.id: prompt.name for prompt in config.prompts}
    rows = []
    for result in store:
        rows.append({
            "prompt_id": result.prompt_id,
            # Results for prompts dropped by a reload keep their id as a name
            "prompt_name": names.get(result.prompt_id, result.prompt_id),
            "scenario": result.scenario_id,
            "model": result.model,
            "token_usage": result.metrics.token_usage,
            "latency_ms": result.metrics.latency,
            "inference_speed": result.metrics.inference_speed,
            "compute_cost": result.metrics.compute_cost,
            "output_length": len(result.output),
            "output": result.output,
            "completed_at": result.completed_at,
        })
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def comparison_frame(config: Configuration, store: ResultStore, scenario: int) -> pd.DataFrame:
    """
    Side-by-side rows for one scenario.

    Every configured prompt gets a row in configuration order; prompts that
    have not been run show "No data" metrics and "No output".
    """
    rows = []
    for prompt in config.prompts:
        result = store.get(prompt.id, scenario)
        row = {"Prompt": prompt.name}
        if result is None:
            row.update({label: "No data" for label in ("Token Usage", "Latency", "Speed", "Cost")})
            row["Output"] = "No output"
        else:
            row.update(format_metrics(result.metrics))
            row["Output"] = result.output or "No output"
        rows.append(row)

    return pd.DataFrame(
        rows, columns=["Prompt", "Token Usage", "Latency", "Speed", "Cost", "Output"]
    )


def non_main_summary(prompt: PromptSpec, values: Mapping[str, str]) -> str:
    """``name: value`` pairs for a prompt's supporting variables."""
    return ", ".join(
        f"{variable.name}: {values.get(variable.name, '')}"
        for variable in prompt.variables
        if not variable.is_main
    )


def unfilled_placeholders(prompt: PromptSpec, values: Mapping[str, str]) -> List[str]:
    """Placeholders in a prompt's template with no value, or an empty one, in ``values``."""
    return [name for name in placeholders(prompt.template.text) if not values.get(name)]
