"""
Cross-prompt variable aggregation.

Prompts that share a variable name share one form field per scenario. This
module derives that deduplicated set from a Configuration, merging
descriptions and main flags and tracking which prompts reference each name.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .config import Configuration, VariableSpec


@dataclass
class AggregatedVariable:
    """A variable name merged across every prompt that declares it."""
    name: str
    description: str
    is_main: bool
    prompt_ids: List[str] = field(default_factory=list)
    type: str = "string"
    options: Optional[Tuple[str, ...]] = None
    default: Optional[Union[str, int, float, bool]] = None

    @classmethod
    def seed(cls, variable: VariableSpec, prompt_id: str) -> "AggregatedVariable":
        return cls(
            name=variable.name,
            description=variable.description,
            is_main=variable.is_main,
            prompt_ids=[prompt_id],
            type=variable.type,
            options=variable.options,
            default=variable.default,
        )

    def merge(self, variable: VariableSpec, prompt_id: str) -> None:
        """Fold another prompt's declaration of the same name into this entry."""
        if prompt_id not in self.prompt_ids:
            self.prompt_ids.append(prompt_id)

        if variable.description and variable.description not in self.description:
            if self.description:
                self.description = f"{self.description}\n{variable.description}"
            else:
                self.description = variable.description

        self.is_main = self.is_main or variable.is_main


def aggregate(config: Configuration) -> List[AggregatedVariable]:
    """
    Derive the deduplicated variable set of a configuration.

    Order follows first occurrence: prompts in configuration order, then each
    prompt's own variable order. The result is recomputed on every call and
    never cached.
    """
    merged: Dict[str, AggregatedVariable] = {}

    for prompt in config.prompts:
        for variable in prompt.variables:
            existing = merged.get(variable.name)
            if existing is None:
                merged[variable.name] = AggregatedVariable.seed(variable, prompt.id)
            else:
                existing.merge(variable, prompt.id)

    return list(merged.values())


def main_variable(variables: List[AggregatedVariable]) -> Optional[AggregatedVariable]:
    """Return the first aggregated variable flagged as main, if any."""
    return next((variable for variable in variables if variable.is_main), None)
