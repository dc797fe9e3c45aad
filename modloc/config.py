import copy
import json
from pathlib import Path
from typing import Dict, Any

from modloc.core import database as db
from modloc.core.schema import initialize_database
from modloc.logger import get_logger

logger = get_logger(__name__)

BUILTIN_PROVIDERS = ["anthropic", "openai", "deepseek", "gemini", "deepl"]

BUILTIN_PROVIDER_DISPLAY_NAMES = {
    "anthropic": "Anthropic Claude",
    "openai": "OpenAI GPT",
    "deepseek": "DeepSeek",
    "gemini": "Google Gemini",
    "deepl": "DeepL",
}

PROVIDER_DEFAULTS = {
    "timeout": 30
}

PROVIDER_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"

LOG_MODES = ["off", "info", "debug"]

CIRCUIT_BREAKER_KEYS = ("failure_threshold", "success_threshold", "open_timeout_seconds")

BASE_DIR = Path(__file__).parent.parent
DEFAULT_OUTPUT_DIR = BASE_DIR / "output"

DEFAULT_COMPILATION_PREFIX = "!!!!!!!!!!_{lang}_compilation_twmt_"

# Default configuration template
DEFAULT_CONFIG = {
    "anthropic": {
        "timeout": 30,
        "api_url": "https://api.anthropic.com/v1"
    },
    "openai": {
        "timeout": 30,
        "api_url": "https://api.openai.com/v1"
    },
    "deepseek": {
        "timeout": 30,
        "api_url": "https://api.deepseek.com"
    },
    "gemini": {
        "timeout": 30,
        "api_url": "https://generativelanguage.googleapis.com/v1beta"
    },
    "deepl": {
        "timeout": 30,
        "api_url": "https://api-free.deepl.com/v2"
    },
    "circuit_breaker": {
        "failure_threshold": 5,
        "success_threshold": 3,
        "open_timeout_seconds": 300
    },
    "compilation": {
        "default_prefix": DEFAULT_COMPILATION_PREFIX,
        "output_dir": str(DEFAULT_OUTPUT_DIR)
    },
    "log_mode": "off"
}


def initialize_app():
    """Create the schema and seed data, then store DEFAULT_CONFIG when no config row exists."""
    logger.info("Starting modloc initialization")

    initialize_database()
    logger.info("Schema ready at %s", db.DB_FILE)

    try:
        existing_config = db.get_app_config('config')
        if not existing_config:
            logger.info("Storing default configuration")
            save_config(DEFAULT_CONFIG)
        else:
            logger.debug("Stored configuration found")
    except Exception as e:
        logger.error(f"Could not read or seed stored configuration: {e}")
        logger.warning("Falling back to in-memory defaults")

    logger.info("modloc initialized")


def _merge_defaults(stored: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from a stored config with their defaults (one level deep)."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_config() -> Dict[str, Any]:
    """Stored configuration merged over DEFAULT_CONFIG."""
    try:
        config_json = db.get_app_config('config')
        if config_json:
            config = _merge_defaults(json.loads(config_json))
            logger.debug("Configuration loaded")
            return config

        logger.info("No stored configuration, persisting defaults")
        config = copy.deepcopy(DEFAULT_CONFIG)
        try:
            save_config(config)
        except Exception as save_error:
            logger.error(f"Could not persist default configuration: {save_error}")
        return config
    except json.JSONDecodeError as e:
        logger.error(f"Stored configuration is not valid JSON: {e}")
        logger.warning("Replacing it with defaults")
        config = copy.deepcopy(DEFAULT_CONFIG)
        try:
            save_config(config)
            logger.info("Corrupted configuration replaced")
        except Exception as save_error:
            logger.error(f"Failed to replace corrupted config: {save_error}")
        return config
    except Exception as e:
        logger.error(f"Could not load configuration: {e}")
        logger.warning("Falling back to in-memory defaults")
        return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any]):
    """Persist the whole configuration as one JSON document."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        db.set_app_config('config', config_json)
        logger.info("Configuration saved")
    except Exception as e:
        logger.error(f"Could not save configuration: {e}")
        raise


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Return the stored settings block for a provider, falling back to defaults."""
    config = load_config()
    provider_config = dict(PROVIDER_DEFAULTS)
    provider_config.update(DEFAULT_CONFIG.get(provider, {}))
    provider_config.update(config.get(provider) or {})
    return provider_config


def validate_config(config_dict: Dict[str, Any]) -> str | None:
    """Validate a configuration update and return an error message if invalid."""
    if not isinstance(config_dict, dict):
        return "Configuration must be an object"

    if "log_mode" in config_dict and config_dict["log_mode"] not in LOG_MODES:
        return f"Invalid log_mode: {config_dict['log_mode']}. Expected one of {', '.join(LOG_MODES)}"

    for provider in BUILTIN_PROVIDERS:
        if provider not in config_dict:
            continue
        provider_config = config_dict[provider]
        if not isinstance(provider_config, dict):
            return f"{provider} config must be an object"
        if "api_key" in provider_config:
            return f"{provider} api_key must be stored through the API key endpoint"
        api_url = provider_config.get("api_url")
        if api_url is not None and not isinstance(api_url, str):
            return f"{provider} api_url must be a string"
        timeout = provider_config.get("timeout")
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            return f"{provider} timeout must be a positive number"

    breaker = config_dict.get("circuit_breaker")
    if breaker is not None:
        if not isinstance(breaker, dict):
            return "circuit_breaker config must be an object"
        unknown = sorted(set(breaker) - set(CIRCUIT_BREAKER_KEYS))
        if unknown:
            return f"Unknown circuit_breaker setting: {unknown[0]}"
        for key in CIRCUIT_BREAKER_KEYS:
            value = breaker.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
                return f"circuit_breaker {key} must be a positive integer"

    compilation = config_dict.get("compilation")
    if compilation is not None and not isinstance(compilation, dict):
        return "compilation config must be an object"

    return None


def factory_reset():
    """Delete the database file and start over with seed data and DEFAULT_CONFIG."""
    logger.warning("Factory reset: removing %s", db.DB_FILE)

    if db.DB_FILE.exists():
        db.DB_FILE.unlink()

    initialize_app()
    logger.info("Factory reset finished")
