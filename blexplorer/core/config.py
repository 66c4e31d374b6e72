"""Settings loading and validation for the YAML config file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blexplorer.core.errors import ConfigLoadError, ConfigValidationError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    adapter: str | None = None
    scanning_mode: str = "active"
    connect_timeout_s: float = 10.0
    power_poll_interval_s: float = 2.0
    log_level: str = "WARNING"


def config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "blexplorer" / "config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("blexplorer.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any], source: Path) -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = Settings()
    return Settings(
        adapter=doc.get("adapter", defaults.adapter),
        scanning_mode=doc.get("scanning_mode", defaults.scanning_mode),
        connect_timeout_s=float(doc.get("connect_timeout_s", defaults.connect_timeout_s)),
        power_poll_interval_s=float(doc.get("power_poll_interval_s", defaults.power_poll_interval_s)),
        log_level=doc.get("log_level", defaults.log_level),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from `path` (or the XDG config file); defaults when absent."""
    source = path or config_path()
    if not source.exists():
        LOGGER.debug("No config file at %s, using defaults", source)
        return Settings()
    return _build_settings(_read_yaml(source), source)
