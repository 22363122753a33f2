"""
Process-wide comparison state.

A ComparisonSession owns the loaded Configuration, the result store, the
scenario variable matrix, the per-(prompt, scenario) in-flight flags and the
error messages waiting to be shown. It is the call site for dispatch: every
failure is caught here and turned into a dismissible message, and the
in-flight flag is always cleared.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .config import Configuration, NotFoundError, Settings, load_config
from .dispatcher import Dispatcher, ExecutionResult
from .llm_client import ExecutionError, LLMClient
from .storage import KeyValueStore, ResultStore, SQLiteKeyValueStore, StorageError, VariableValueMatrix
from .variables import AggregatedVariable, aggregate

logger = logging.getLogger(__name__)


class ComparisonSession:
    """State shared by every view of the comparison page."""

    def __init__(
        self,
        config: Configuration,
        storage: KeyValueStore,
        dispatcher: Optional[Dispatcher] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or Settings()
        self.config = config
        self.storage = storage
        self.dispatcher = dispatcher or Dispatcher(cost_per_token=self.settings.cost_per_token)
        self.results = ResultStore.load(storage)
        self.values = VariableValueMatrix.load(storage)
        self.in_flight: Dict[Tuple[str, int], bool] = {}
        self.errors: List[str] = []

    @classmethod
    def open(cls, settings: Settings, client: Optional[LLMClient] = None) -> "ComparisonSession":
        """Load the configuration and cached state named by ``settings``."""
        config = load_config(settings.config_path, strict=False)
        client = client or LLMClient(settings.max_concurrent_requests)
        dispatcher = Dispatcher(client, cost_per_token=settings.cost_per_token)
        return cls(config, SQLiteKeyValueStore(settings.db_path), dispatcher, settings)

    def reload_config(self, source: Union[str, Path, Mapping[str, Any]]) -> Configuration:
        """Replace the whole configuration; stored results and values are kept."""
        self.config = load_config(source, strict=False)
        return self.config

    @property
    def scenarios(self) -> range:
        return range(self.config.scenarios)

    def variables(self) -> List[AggregatedVariable]:
        return aggregate(self.config)

    def _check_scenario(self, scenario: int) -> None:
        if scenario not in self.scenarios:
            raise ValueError(
                f"Scenario {scenario} out of range 0..{self.config.scenarios - 1}"
            )

    def set_variable(self, name: str, scenario: int, value: str) -> None:
        self._check_scenario(scenario)
        self.values.upsert(name, scenario, value)

    def scenario_values(self, scenario: int) -> Dict[str, str]:
        """Entered values for a scenario, falling back to configured defaults."""
        defaults = {
            variable.name: str(variable.default)
            for variable in self.variables()
            if variable.default is not None
        }
        return self.values.scenario_values(scenario, defaults)

    def is_running(self, prompt_id: str, scenario: int) -> bool:
        return self.in_flight.get((prompt_id, scenario), False)

    async def trigger(
        self,
        prompt_id: str,
        scenario: int,
        credentials: Optional[str] = None
    ) -> Optional[ExecutionResult]:
        """
        Run one prompt for one scenario and store the result.

        Returns None when the run failed; the failure is appended to
        ``errors``. Concurrent triggers for the same key are not blocked, and
        the one that completes last is what the store keeps.
        """
        key = (prompt_id, scenario)
        self.in_flight[key] = True
        try:
            self._check_scenario(scenario)
            result = await self.dispatcher.run(
                prompt_id,
                self.scenario_values(scenario),
                self.config,
                credentials,
                scenario_id=scenario,
            )
            self.results.upsert(result)
            return result
        except (NotFoundError, ValueError) as e:
            logger.warning("Cannot run %s for scenario %s: %s", prompt_id, scenario, e)
            self.errors.append(str(e))
        except ExecutionError as e:
            logger.error("Execution failed for %s (scenario %s): %s", prompt_id, scenario, e)
            self.errors.append(str(e))
        except StorageError as e:
            logger.error("Could not store the result for %s (scenario %s): %s", prompt_id, scenario, e)
            self.errors.append(str(e))
        finally:
            self.in_flight[key] = False
        return None

    async def trigger_scenario(
        self,
        scenario: int,
        credentials: Optional[str] = None
    ) -> List[Optional[ExecutionResult]]:
        """Run every configured prompt for a scenario concurrently."""
        tasks = [
            self.trigger(prompt_id, scenario, credentials)
            for prompt_id in self.config.prompt_ids
        ]
        return list(await asyncio.gather(*tasks))

    def dismiss_error(self, index: int) -> None:
        if 0 <= index < len(self.errors):
            del self.errors[index]
