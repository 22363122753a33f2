"""
Storage layer for prompt comparison results.

This module keeps the result store and the scenario variable matrix in memory
and writes a full JSON snapshot of each through a key-value port on every
mutation. The SQLite implementation is the durable, single-user cache; the
in-memory implementation backs tests.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Protocol, Tuple, Union

from .dispatcher import ExecutionResult

logger = logging.getLogger(__name__)

RESULTS_KEY = "promptResults"
VARIABLES_KEY = "variableValues"


class StorageError(Exception):
    """Raised when a snapshot cannot be written to the durable store."""
    pass


class KeyValueStore(Protocol):
    """
    Port for the durable client-local store.

    ``set`` raises StorageError when the write did not happen.
    """

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Key-value store held in a dict, for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLiteKeyValueStore:
    """
    Key-value store backed by a single SQLite table.

    Every write is its own transaction, committed before ``set`` returns.
    """

    def __init__(self, db_path: Union[str, Path] = "prompt_cache.db"):
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections with proper transaction handling."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning("Could not read %s from %s: %s", key, self.db_path, e)
            return None
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (key, value))
        except sqlite3.Error as e:
            raise StorageError(f"Could not write {key} to {self.db_path}: {e}") from e


def _read_snapshot(storage: KeyValueStore, key: str) -> Optional[object]:
    """Read and decode a snapshot; missing or corrupt snapshots read as None."""
    raw = storage.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring corrupt snapshot under %s: %s", key, e)
        return None


class ResultStore:
    """
    Execution results keyed by (prompt_id, scenario_id).

    Holds at most one result per key. A later result for an existing key
    replaces the earlier one in its original position.
    """

    def __init__(self, storage: KeyValueStore, results: Optional[List[ExecutionResult]] = None):
        self.storage = storage
        self._results: List[ExecutionResult] = []
        self._index: Dict[Tuple[str, int], int] = {}
        for result in results or []:
            self._put(self._results, self._index, result)

    @classmethod
    def load(cls, storage: KeyValueStore) -> "ResultStore":
        """Rebuild the store from its last snapshot, or start empty."""
        payload = _read_snapshot(storage, RESULTS_KEY)
        if not isinstance(payload, list):
            return cls(storage)

        try:
            results = [ExecutionResult.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring corrupt result snapshot: %s", e)
            return cls(storage)
        return cls(storage, results)

    load_from_durable_store = load

    @staticmethod
    def _put(
        results: List[ExecutionResult],
        index: Dict[Tuple[str, int], int],
        result: ExecutionResult
    ) -> None:
        position = index.get(result.key)
        if position is None:
            index[result.key] = len(results)
            results.append(result)
        else:
            results[position] = result

    def _commit(self, results: List[ExecutionResult], index: Dict[Tuple[str, int], int]) -> None:
        # Write before swapping, so a failed write leaves memory matching the last snapshot
        self.storage.set(RESULTS_KEY, json.dumps([result.to_dict() for result in results]))
        self._results, self._index = results, index

    def upsert(self, result: ExecutionResult) -> None:
        """
        Insert or replace the result for its key and persist the whole store.

        Raises StorageError if the snapshot cannot be written; the store is
        then left as it was.
        """
        results, index = list(self._results), dict(self._index)
        self._put(results, index, result)
        self._commit(results, index)

    def get(self, prompt_id: str, scenario_id: int) -> Optional[ExecutionResult]:
        position = self._index.get((prompt_id, scenario_id))
        return self._results[position] if position is not None else None

    def results(self) -> List[ExecutionResult]:
        return list(self._results)

    def clear(self) -> None:
        self._commit([], {})

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[ExecutionResult]:
        return iter(self.results())


class VariableValueMatrix:
    """User-entered variable values: name -> scenario -> value."""

    def __init__(self, storage: KeyValueStore, values: Optional[Dict[str, Dict[int, str]]] = None):
        self.storage = storage
        self._values: Dict[str, Dict[int, str]] = values or {}

    @classmethod
    def load(cls, storage: KeyValueStore) -> "VariableValueMatrix":
        payload = _read_snapshot(storage, VARIABLES_KEY)
        if not isinstance(payload, dict):
            return cls(storage)

        try:
            # JSON object keys are strings; scenario indices come back as ints
            values = {
                str(name): {int(scenario): str(value) for scenario, value in by_scenario.items()}
                for name, by_scenario in payload.items()
            }
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring corrupt variable snapshot: %s", e)
            return cls(storage)
        return cls(storage, values)

    load_from_durable_store = load

    def upsert(self, name: str, scenario: int, value: str) -> None:
        """Set one cell and persist the whole matrix, leaving it unchanged if the write fails."""
        values = {cell_name: dict(by_scenario) for cell_name, by_scenario in self._values.items()}
        values.setdefault(name, {})[scenario] = str(value)
        self.storage.set(VARIABLES_KEY, json.dumps(values))
        self._values = values

    def get(self, name: str, scenario: int) -> Optional[str]:
        return self._values.get(name, {}).get(scenario)

    def scenario_values(
        self,
        scenario: int,
        defaults: Optional[Mapping[str, str]] = None
    ) -> Dict[str, str]:
        """All values entered for a scenario, over the given defaults."""
        values = dict(defaults or {})
        for name, by_scenario in self._values.items():
            if scenario in by_scenario:
                values[name] = by_scenario[scenario]
        return values
