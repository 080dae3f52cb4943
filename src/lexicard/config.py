"""Configuration loader with YAML and environment variable support.

Reads ~/.config/lexicard/config.yaml (when present) and applies
LEXICARD_* environment overrides on top.

Environment variables:
- LEXICARD_LLM_ENDPOINT: Override backend endpoint
- LEXICARD_LLM_API_KEY: Override backend API key
- LEXICARD_LLM_MODEL: Override model identifier
- LEXICARD_LLM_PROVIDER: Override wire format (auto, openai, ollama)
- LEXICARD_BATCH_SIZE: Override batch size
- LEXICARD_COLLECTION_PATH: Override word collection file
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from lexicard.models.config import Config
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "lexicard" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    A missing file is not an error: every setting has a default, and a
    missing API key surfaces later as a failed task.

    Args:
        config_path: Path to config file. If None, uses ~/.config/lexicard/config.yaml

    Returns:
        Validated Config object

    Raises:
        PermissionError: If the config file is group/world readable
        ValueError: If the config file is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        logger.info("config_loading", path=str(config_path))
        try:
            base = Config.load(config_path)
        except PermissionError as e:
            logger.error("config_permission_error", path=str(config_path), error=str(e))
            raise
        except Exception as e:
            logger.error("config_validation_error", path=str(config_path), error=str(e))
            raise ValueError(f"Configuration validation failed: {e}") from e
        data = base.model_dump(mode="json")
    else:
        logger.info("config_not_found_using_defaults", path=str(config_path))
        data = {}

    data = _apply_env_overrides(data)

    try:
        config = Config(**data)
    except Exception as e:
        logger.error("config_validation_error", error=str(e))
        raise ValueError(f"Configuration validation failed: {e}") from e

    logger.info("config_loaded", model=config.llm.model, provider=config.llm.provider)
    return config


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration data.

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    for section in ("llm", "batch", "storage"):
        data.setdefault(section, {})

    if env_endpoint := os.getenv("LEXICARD_LLM_ENDPOINT"):
        data["llm"]["endpoint"] = env_endpoint

    if env_api_key := os.getenv("LEXICARD_LLM_API_KEY"):
        data["llm"]["api_key"] = env_api_key

    if env_model := os.getenv("LEXICARD_LLM_MODEL"):
        data["llm"]["model"] = env_model

    if env_provider := os.getenv("LEXICARD_LLM_PROVIDER"):
        data["llm"]["provider"] = env_provider

    if env_batch_size := os.getenv("LEXICARD_BATCH_SIZE"):
        try:
            data["batch"]["batch_size"] = int(env_batch_size)
        except ValueError:
            logger.warning("config_env_override_ignored", variable="LEXICARD_BATCH_SIZE")

    if env_collection := os.getenv("LEXICARD_COLLECTION_PATH"):
        data["storage"]["collection_path"] = env_collection

    return data
