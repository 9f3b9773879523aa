"""Read sources.yaml: which upstream repos feed which part of the docs site"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from docs_sync.models.sources_config import SourcesConfig

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes")


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not data:
        raise ValueError(f"{config_path} is empty; expected docs_root and sources.github_repos")
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must be a mapping, got {type(data).__name__}")
    return data


def _apply_env_overrides(sources_config: SourcesConfig) -> None:
    """REFRESH_ENABLED switches the periodic resync on or off for this process"""
    value = os.getenv("REFRESH_ENABLED")
    if value is None:
        return
    enabled = value.lower() in TRUTHY
    if sources_config.refresh.enabled != enabled:
        logger.info(f"REFRESH_ENABLED={value}: periodic resync {'on' if enabled else 'off'}")
        sources_config.refresh.enabled = enabled


def load_sources_config(config_path: str | Path = "sources.yaml") -> SourcesConfig:
    """
    Load the upstream repositories and their docs site destinations

    Args:
        config_path: Path to sources.yaml

    Returns:
        Validated SourcesConfig

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If the YAML is malformed or a source is invalid
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(
            f"No sources file at {config_path} (copy sources.yaml.example to get started)"
        )

    data = _read_yaml(config_path)
    try:
        sources_config = SourcesConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid sources in {config_path}: {e}") from e

    _apply_env_overrides(sources_config)

    enabled = sources_config.get_enabled_github_repos()
    logger.info(f"Syncing {len(enabled)} upstream repo(s) into {sources_config.docs_root}")
    for source in enabled:
        root = source.markdown_root or "/"
        branch = source.branch or "default branch"
        logger.info(
            f"  {source.full_name}:{root} ({branch}) -> "
            f"{sources_config.docs_root}/{source.destination_path}"
        )
    if sources_config.refresh.enabled:
        logger.info(f"Periodic resync every {sources_config.refresh.interval_hours}h")

    return sources_config
