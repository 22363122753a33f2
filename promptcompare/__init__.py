"""
Prompt Compare - side-by-side comparison of LLM prompt templates.

This package loads prompt templates with named variables from a declarative
configuration, fills them per scenario, runs them against an LLM provider and
keeps the latest result for every (prompt, scenario) pair in a local cache.
"""

__version__ = "1.0.0"

from .config import (
    ConfigLoadError,
    Configuration,
    ModelSpec,
    NotFoundError,
    ParseError,
    PromptSpec,
    SchemaError,
    SchemaReferenceError,
    Settings,
    Template,
    VariableSpec,
    load_config,
)
from .dispatcher import Dispatcher, ExecutionResult, MetricsData
from .llm_client import ExecutionError, LLMClient, LLMResponse
from .session import ComparisonSession
from .storage import (
    InMemoryKeyValueStore,
    ResultStore,
    SQLiteKeyValueStore,
    VariableValueMatrix,
)
from .templates import interpolate
from .variables import AggregatedVariable, aggregate

__all__ = [
    "AggregatedVariable",
    "ComparisonSession",
    "ConfigLoadError",
    "Configuration",
    "Dispatcher",
    "ExecutionError",
    "ExecutionResult",
    "InMemoryKeyValueStore",
    "LLMClient",
    "LLMResponse",
    "MetricsData",
    "ModelSpec",
    "NotFoundError",
    "ParseError",
    "PromptSpec",
    "ResultStore",
    "SQLiteKeyValueStore",
    "SchemaError",
    "SchemaReferenceError",
    "Settings",
    "Template",
    "VariableSpec",
    "VariableValueMatrix",
    "aggregate",
    "interpolate",
    "load_config",
]
