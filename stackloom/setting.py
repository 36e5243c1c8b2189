"""Stackloom settings.

Settings are read from ``config/stackloom.yaml`` (or the file named by
``STACKLOOM_CONFIG``), then selected environment variables override them.
A ``.env`` file in the working directory is loaded first.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .core import constants

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "stackloom.yaml"


class BatchSettings(BaseModel):
    size: int = Field(constants.BATCH_SIZE, ge=1, description="Files transformed concurrently")


class RecoverySettings(BaseModel):
    max_retries: int = Field(constants.RETRY_MAX_ATTEMPTS, ge=1)
    initial_backoff_ms: int = Field(constants.RETRY_INITIAL_BACKOFF_MS, ge=0)
    max_backoff_ms: int = Field(constants.RETRY_MAX_BACKOFF_MS, ge=0)
    backoff_multiplier: float = Field(constants.RETRY_BACKOFF_MULTIPLIER, ge=1)


class EquivalenceSettings(BaseModel):
    control_flow_tolerance: float = Field(constants.CONTROL_FLOW_TOLERANCE, ge=0)
    control_flow_min_delta: int = Field(constants.CONTROL_FLOW_MIN_DELTA, ge=0)
    ui_element_tolerance: float = Field(constants.UI_ELEMENT_TOLERANCE, ge=0)
    ui_element_min_delta: int = Field(constants.UI_ELEMENT_MIN_DELTA, ge=0)


class ScoringSettings(BaseModel):
    review_threshold: int = Field(constants.REVIEW_THRESHOLD, ge=0, le=100)
    semantic_skipped_confidence: int = Field(constants.SEMANTIC_SKIPPED_CONFIDENCE, ge=0, le=100)
    semantic_failed_confidence: int = Field(constants.SEMANTIC_FAILED_CONFIDENCE, ge=0, le=100)


class BackupSettings(BaseModel):
    max_backups: int = Field(constants.MAX_BACKUPS, ge=1)


class SemanticSettings(BaseModel):
    enabled: bool = Field(False, description="Run the LLM-assisted semantic pass")
    provider: str = Field("ollama", description="ollama | openai")
    model: str = Field("llama3.1", description="Model name for the provider")
    base_url: Optional[str] = None
    api_key: Optional[str] = Field(None, repr=False)
    temperature: float = 0.0
    request_timeout: float = 120.0


class StackloomSettings(BaseModel):
    log_level: str = "INFO"
    batch: BatchSettings = Field(default_factory=BatchSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    equivalence: EquivalenceSettings = Field(default_factory=EquivalenceSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    semantic: SemanticSettings = Field(default_factory=SemanticSettings)


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        logger.warning(f"stackloom.yaml not found at {config_path}, using defaults")
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return data


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay environment variables onto the raw settings mapping."""
    semantic = dict(data.get("semantic") or {})
    batch = dict(data.get("batch") or {})

    if os.getenv("STACKLOOM_LOG_LEVEL"):
        data["log_level"] = os.getenv("STACKLOOM_LOG_LEVEL")
    if os.getenv("STACKLOOM_BATCH_SIZE"):
        batch["size"] = int(os.getenv("STACKLOOM_BATCH_SIZE"))
    if os.getenv("STACKLOOM_SEMANTIC_ENABLED"):
        semantic["enabled"] = os.getenv("STACKLOOM_SEMANTIC_ENABLED", "").lower() in ("1", "true", "yes")
    if os.getenv("STACKLOOM_LLM_PROVIDER"):
        semantic["provider"] = os.getenv("STACKLOOM_LLM_PROVIDER")
    if os.getenv("STACKLOOM_LLM_MODEL"):
        semantic["model"] = os.getenv("STACKLOOM_LLM_MODEL")

    provider = semantic.get("provider", "ollama")
    if provider == "ollama" and os.getenv("OLLAMA_HOST") and not semantic.get("base_url"):
        host = os.getenv("OLLAMA_HOST")
        semantic["base_url"] = host if host.startswith("http") else f"http://{host}:11434"
    if provider == "openai" and os.getenv("OPENAI_API_KEY") and not semantic.get("api_key"):
        semantic["api_key"] = os.getenv("OPENAI_API_KEY")

    data["semantic"] = semantic
    data["batch"] = batch
    return data


def load_settings(config_path: Optional[str | Path] = None) -> StackloomSettings:
    """Build settings from YAML plus environment overrides.

    Args:
        config_path: Explicit YAML path. Defaults to ``STACKLOOM_CONFIG``
            or ``config/stackloom.yaml`` at the project root.
    """
    path = Path(config_path or os.getenv("STACKLOOM_CONFIG") or DEFAULT_CONFIG_PATH)
    data = _apply_env_overrides(_load_yaml(path))
    return StackloomSettings.model_validate(data)


@lru_cache(maxsize=1)
def get_settings() -> StackloomSettings:
    """Process-wide settings, loaded once."""
    return load_settings()


def reload_settings() -> StackloomSettings:
    """Drop the cached settings and load them again."""
    get_settings.cache_clear()
    return get_settings()
