"""
Configuration model for prompt comparison.

This module loads the declarative prompt configuration (YAML or JSON) into an
immutable in-memory model of models, prompts and variables, and defines the
application settings that govern storage, cost estimation and logging.

Dependencies:
    - pyyaml: YAML parsing (JSON documents are parsed with the json module)

Environment Variables:
    - PROMPTCOMPARE_CONFIG: Path to the prompt configuration document
    - PROMPTCOMPARE_DB: Path to the SQLite cache file
    - PROMPTCOMPARE_COST_PER_TOKEN: Per-token USD rate for cost estimates
    - PROMPTCOMPARE_MAX_CONCURRENT: Concurrent completion requests allowed
    - PROMPTCOMPARE_LOG_LEVEL: Root logging level
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO_COUNT = 3
DEFAULT_COST_PER_TOKEN = 0.00002
VARIABLE_TYPES = ("string", "number", "boolean")


class ConfigLoadError(Exception):
    """Base exception for configuration loading failures."""
    pass


class ParseError(ConfigLoadError):
    """Raised when the configuration source is unreadable or not valid YAML/JSON."""
    pass


class SchemaError(ConfigLoadError):
    """Raised when the configuration document does not match the schema."""
    pass


class SchemaReferenceError(SchemaError):
    """Raised when a single prompt is malformed or references an unknown model."""

    def __init__(self, prompt_id: str, message: str):
        super().__init__(f"Prompt '{prompt_id}': {message}")
        self.prompt_id = prompt_id


class NotFoundError(LookupError):
    """Raised when a prompt or model configuration id does not resolve."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


@dataclass(frozen=True)
class ModelSpec:
    """Configuration for a language model backend."""
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class VariableSpec:
    """A named slot within a prompt template."""
    name: str
    description: str = ""
    type: str = "string"
    is_main: bool = False
    options: Optional[Tuple[str, ...]] = None
    default: Optional[Union[str, int, float, bool]] = None


@dataclass(frozen=True)
class Template:
    """
    A prompt template in either of its declared shapes.

    Exactly one of ``single`` or ``lines`` is set. Use ``text`` everywhere the
    template is consumed.
    """
    single: Optional[str] = None
    lines: Optional[Tuple[str, ...]] = None

    @classmethod
    def parse(cls, raw: Any) -> "Template":
        if isinstance(raw, str):
            return cls(single=raw)
        if isinstance(raw, (list, tuple)) and all(isinstance(line, str) for line in raw):
            return cls(lines=tuple(raw))
        raise TypeError("template must be a string or a list of strings")

    @property
    def text(self) -> str:
        if self.lines is not None:
            return "\n".join(self.lines)
        return self.single or ""


@dataclass(frozen=True)
class PromptSpec:
    """A named prompt template bound to one model configuration."""
    id: str
    name: str
    description: str
    template: Template
    variables: Tuple[VariableSpec, ...]
    model_config: str


@dataclass(frozen=True)
class Configuration:
    """
    The root aggregate of models and prompts.

    Loaded once and never edited in place; a reload produces a new instance.
    """
    models: Dict[str, ModelSpec] = field(default_factory=dict)
    prompts: Tuple[PromptSpec, ...] = ()
    scenarios: int = DEFAULT_SCENARIO_COUNT
    rejected: Dict[str, SchemaReferenceError] = field(default_factory=dict)

    def get_prompt(self, prompt_id: str) -> PromptSpec:
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt
        raise NotFoundError("Prompt", prompt_id)

    def get_model(self, model_id: str) -> ModelSpec:
        try:
            return self.models[model_id]
        except KeyError:
            raise NotFoundError("Model config", model_id) from None

    @property
    def prompt_ids(self) -> List[str]:
        return [prompt.id for prompt in self.prompts]


@dataclass
class Settings:
    """Application settings for a comparison session."""
    config_path: Path = Path("prompts/prompts.yaml")
    db_path: Path = Path("prompt_cache.db")
    cost_per_token: float = DEFAULT_COST_PER_TOKEN
    max_concurrent_requests: Optional[int] = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from PROMPTCOMPARE_* environment variables."""
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get("PROMPTCOMPARE_CONFIG"):
            settings.config_path = Path(env["PROMPTCOMPARE_CONFIG"])
        if env.get("PROMPTCOMPARE_DB"):
            settings.db_path = Path(env["PROMPTCOMPARE_DB"])
        if env.get("PROMPTCOMPARE_COST_PER_TOKEN"):
            settings.cost_per_token = float(env["PROMPTCOMPARE_COST_PER_TOKEN"])
        if env.get("PROMPTCOMPARE_MAX_CONCURRENT"):
            settings.max_concurrent_requests = int(env["PROMPTCOMPARE_MAX_CONCURRENT"])
        if env.get("PROMPTCOMPARE_LOG_LEVEL"):
            settings.log_level = env["PROMPTCOMPARE_LOG_LEVEL"].upper()
        return settings


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_document(source: Union[str, Path, Mapping[str, Any]]) -> Any:
    """Read the raw document from a path, a YAML/JSON string or a parsed mapping."""
    if isinstance(source, Mapping):
        return source

    path = Path(source) if isinstance(source, Path) else None
    if path is None and "\n" not in source and Path(source).suffix.lower() in (".yaml", ".yml", ".json"):
        path = Path(source)

    if path is not None:
        if not path.exists():
            raise ParseError(f"Configuration file not found: {path}")
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ParseError(f"Cannot read configuration file {path}: {e}") from e
        if path.suffix.lower() == ".json":
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise ParseError(f"Invalid JSON in config file {path}: {e}") from e
    else:
        raw = source

    # YAML is a superset of JSON, so inline documents of either kind parse here
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML in configuration: {e}") from e


def _parse_model(model_id: str, payload: Any) -> ModelSpec:
    if not isinstance(payload, Mapping):
        raise SchemaError(f"Model config '{model_id}' must be a mapping")
    if not payload.get("model"):
        raise SchemaError(f"Model config '{model_id}' is missing 'model'")

    max_tokens = payload.get("max_tokens")
    try:
        return ModelSpec(
            provider=str(payload.get("provider") or "openai"),
            model=str(payload["model"]),
            temperature=float(payload.get("temperature", 0.7)),
            max_tokens=int(max_tokens) if max_tokens is not None else None,
        )
    except (TypeError, ValueError) as e:
        raise SchemaError(f"Model config '{model_id}' has invalid sampling parameters: {e}") from e


def _parse_variable(prompt_id: str, payload: Any) -> VariableSpec:
    if not isinstance(payload, Mapping) or not payload.get("name"):
        raise SchemaReferenceError(prompt_id, "every variable needs a 'name'")

    name = str(payload["name"])
    var_type = str(payload.get("type") or "string")
    if var_type not in VARIABLE_TYPES:
        raise SchemaReferenceError(
            prompt_id, f"variable '{name}' has unknown type '{var_type}'"
        )

    options = payload.get("options")
    if options is not None:
        if not isinstance(options, (list, tuple)):
            raise SchemaReferenceError(prompt_id, f"options of '{name}' must be a list")
        options = tuple(str(option) for option in options)

    return VariableSpec(
        name=name,
        description=str(payload.get("description") or ""),
        type=var_type,
        is_main=bool(payload.get("isMain", False)),
        options=options,
        default=payload.get("default"),
    )


def _parse_prompt(payload: Mapping[str, Any], models: Dict[str, ModelSpec]) -> PromptSpec:
    prompt_id = str(payload["id"])

    for required in ("template", "variables", "modelConfig"):
        if required not in payload:
            raise SchemaReferenceError(prompt_id, f"missing required field '{required}'")

    try:
        template = Template.parse(payload["template"])
    except TypeError as e:
        raise SchemaReferenceError(prompt_id, str(e)) from e

    raw_variables = payload["variables"] or []
    if not isinstance(raw_variables, list):
        raise SchemaReferenceError(prompt_id, "'variables' must be a list")
    variables = tuple(_parse_variable(prompt_id, item) for item in raw_variables)

    names = [variable.name for variable in variables]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise SchemaReferenceError(prompt_id, f"duplicate variables: {', '.join(duplicates)}")
    if sum(1 for variable in variables if variable.is_main) > 1:
        raise SchemaReferenceError(prompt_id, "more than one main variable")

    model_ref = str(payload["modelConfig"])
    if model_ref not in models:
        raise SchemaReferenceError(prompt_id, f"modelConfig '{model_ref}' does not resolve")

    return PromptSpec(
        id=prompt_id,
        name=str(payload.get("name") or prompt_id),
        description=str(payload.get("description") or ""),
        template=template,
        variables=variables,
        model_config=model_ref,
    )


def load_config(
    source: Union[str, Path, Mapping[str, Any]],
    strict: bool = True
) -> Configuration:
    """
    Load a prompt configuration into a Configuration.

    With ``strict`` set, the first malformed prompt raises SchemaReferenceError.
    Otherwise malformed prompts are excluded and recorded in
    ``Configuration.rejected`` so that the remaining prompts stay usable.
    """
    document = _read_document(source)
    if not isinstance(document, Mapping):
        raise SchemaError("Top-level configuration document must be a mapping")

    raw_models = document.get("models")
    if not isinstance(raw_models, Mapping):
        raise SchemaError("Configuration requires a 'models' mapping")
    raw_prompts = document.get("prompts")
    if not isinstance(raw_prompts, list):
        raise SchemaError("Configuration requires a 'prompts' list")

    scenarios = document.get("scenarios", DEFAULT_SCENARIO_COUNT)
    if not isinstance(scenarios, int) or isinstance(scenarios, bool) or scenarios < 1:
        raise SchemaError("'scenarios' must be a positive integer")

    models = {str(model_id): _parse_model(str(model_id), payload)
              for model_id, payload in raw_models.items()}

    prompts: List[PromptSpec] = []
    rejected: Dict[str, SchemaReferenceError] = {}
    seen_ids = set()

    for index, payload in enumerate(raw_prompts):
        if not isinstance(payload, Mapping) or not payload.get("id"):
            raise SchemaError(f"Prompt #{index + 1} must be a mapping with an 'id'")
        prompt_id = str(payload["id"])
        if prompt_id in seen_ids:
            raise SchemaError(f"Duplicate prompt id: {prompt_id}")
        seen_ids.add(prompt_id)

        try:
            prompts.append(_parse_prompt(payload, models))
        except SchemaReferenceError as e:
            if strict:
                raise
            logger.warning("Excluding prompt from configuration: %s", e)
            rejected[prompt_id] = e

    return Configuration(
        models=models,
        prompts=tuple(prompts),
        scenarios=scenarios,
        rejected=rejected,
    )
