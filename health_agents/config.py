"""
Settings for Health Buddy.

Resolution order: dataclass defaults, then an optional YAML file, then
HEALTH_* environment variables (plus OLLAMA_API_BASE).
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Union

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "health_buddy.yaml"

# YAML section -> {yaml key: Settings field}
YAML_SECTIONS = {
    "cache": {"ttl": "cache_ttl"},
    "llm": {
        "provider": "llm_provider",
        "gateway_url": "gateway_url",
        "model_path": "model_path",
        "litellm_model": "litellm_model",
        "request_timeout": "request_timeout",
    },
    "retry": {
        "max_retries": "max_retries",
        "base_delay": "retry_base_delay",
        "max_delay": "retry_max_delay",
    },
    "local_model": {
        "name": "local_model",
        "api_base": "ollama_api_base",
        "prefer": "prefer_local_model",
    },
    "conversation": {
        "max_messages": "max_messages",
        "sessions_dir": "sessions_dir",
    },
    "network": {"probe_interval": "probe_interval"},
}

ENV_VARS = {
    "HEALTH_CACHE_TTL": "cache_ttl",
    "HEALTH_LLM_PROVIDER": "llm_provider",
    "HEALTH_GATEWAY_URL": "gateway_url",
    "HEALTH_MODEL_PATH": "model_path",
    "HEALTH_GATEWAY_TOKEN": "gateway_token",
    "HEALTH_LITELLM_MODEL": "litellm_model",
    "HEALTH_MAX_RETRIES": "max_retries",
    "HEALTH_RETRY_BASE_DELAY": "retry_base_delay",
    "HEALTH_REQUEST_TIMEOUT": "request_timeout",
    "HEALTH_PREFER_LOCAL_MODEL": "prefer_local_model",
    "HEALTH_LOCAL_MODEL": "local_model",
    "OLLAMA_API_BASE": "ollama_api_base",
    "HEALTH_SESSIONS_DIR": "sessions_dir",
}


@dataclass
class Settings:
    cache_ttl: float = 300.0
    llm_provider: str = "gateway"
    gateway_url: str = ""
    model_path: str = ""
    gateway_token: Optional[str] = None
    litellm_model: str = "gpt-4o-mini"
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    request_timeout: float = 30.0
    prefer_local_model: bool = False
    local_model: str = "llama3.2"
    ollama_api_base: Optional[str] = None
    max_messages: int = 10
    sessions_dir: str = "~/.health_buddy/sessions"
    probe_interval: float = 30.0

    def validate(self) -> None:
        """Raise ValueError for settings the pipeline cannot run with."""
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.cache_ttl <= 0:
            raise ValueError(f"cache_ttl must be > 0, got {self.cache_ttl}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")
        if self.max_messages < 1:
            raise ValueError(f"max_messages must be >= 1, got {self.max_messages}")

    @property
    def sessions_path(self) -> Path:
        return Path(self.sessions_dir).expanduser()


_FIELD_TYPES = {f.name: f.type for f in fields(Settings)}


def _coerce(name: str, raw) -> object:
    """Convert a YAML or environment value to the field's type."""
    field_type = _FIELD_TYPES[name]
    if raw is None:
        return None
    try:
        if field_type in (bool, "bool"):
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in ("1", "true", "yes", "on")
        if field_type in (int, "int"):
            return int(raw)
        if field_type in (float, "float"):
            return float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {name}: {raw!r}")
    return str(raw)


def _load_yaml(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.debug(f"[CONFIG] No config file at {path}, using defaults")
        return {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return config


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from defaults, YAML and the environment.

    Args:
        path: YAML file; defaults to config/health_buddy.yaml. A missing
            file is not an error.

    Returns:
        Validated Settings

    Raises:
        ValueError: If the YAML is invalid or a value fails validation
    """
    settings = Settings()
    config = _load_yaml(Path(path) if path else DEFAULT_CONFIG_PATH)

    for section, keys in YAML_SECTIONS.items():
        values = config.get(section) or {}
        for key, name in keys.items():
            if key in values:
                setattr(settings, name, _coerce(name, values[key]))

    for var, name in ENV_VARS.items():
        raw = os.environ.get(var)
        if raw is not None and raw != "":
            setattr(settings, name, _coerce(name, raw))

    settings.llm_provider = settings.llm_provider.lower()
    settings.validate()
    logger.debug(f"[CONFIG] provider={settings.llm_provider} retries={settings.max_retries} ttl={settings.cache_ttl}")
    return settings
