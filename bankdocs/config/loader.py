"""YAML configuration loader with environment variable overrides.

Layers, later ones winning:

  1. config/config.yaml  - static defaults checked into the repo
  2. .env file           - local developer overrides
  3. Environment vars    - set at deploy time

Layers 2 and 3 are resolved by :class:`Settings`; ``load_config`` reads
layer 1 and deep-merges the Settings-derived sections on top.  YAML-only
keys, such as the ``retrieval.abbreviations`` and ``retrieval.synonyms``
tables consumed by the query enhancer, pass through after a shape check.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from bankdocs.config.settings import Settings
from bankdocs.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file; a missing file yields
              the Settings-derived values only.
        settings: Pre-built Settings; a fresh instance is created when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the file is not valid YAML, its top level is
            not a mapping, or a retrieval table has the wrong shape.
    """
    yaml_config = _read_yaml(Path(path))
    settings = settings or Settings()

    _deep_merge(yaml_config, _settings_sections(settings))
    _check_retrieval_tables(yaml_config.get("retrieval") or {}, path)
    return yaml_config


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {config_path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    return loaded


def _settings_sections(settings: Settings) -> dict[str, Any]:
    return {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "ollama": {
            "base_url": settings.ollama_base_url,
            "embedding_model": settings.ollama_embedding_model,
            "chat_model": settings.ollama_chat_model,
        },
        "store": {
            "backend": settings.passage_store_backend,
        },
        "ingestion": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "batch_size": settings.ingestion_batch_size,
            "schedule_enabled": settings.ingestion_schedule_enabled,
            "sources": settings.get_configured_sources(),
        },
        "retrieval": {
            "max_results": settings.retrieval_max_results,
            "min_score": settings.retrieval_min_score,
        },
        "logging": {
            "level": settings.log_level,
        },
    }


def _check_retrieval_tables(retrieval: dict[str, Any], path: str) -> None:
    abbreviations = retrieval.get("abbreviations")
    if abbreviations is not None and not (
        isinstance(abbreviations, dict)
        and all(isinstance(v, str) for v in abbreviations.values())
    ):
        raise ConfigurationError(f"{path}: retrieval.abbreviations must map terms to strings")

    synonyms = retrieval.get("synonyms")
    if synonyms is not None and not (
        isinstance(synonyms, dict) and all(isinstance(v, list) for v in synonyms.values())
    ):
        raise ConfigurationError(f"{path}: retrieval.synonyms must map terms to lists")


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
