"""Settings API routes: configuration, ignored source texts and log files."""

from __future__ import annotations

import copy
from pathlib import Path

from flask import Blueprint, jsonify

import modloc.config as config
from modloc.config import (
    BUILTIN_PROVIDERS,
    BUILTIN_PROVIDER_DISPLAY_NAMES,
    PROVIDER_DEFAULTS,
    LOG_MODES,
)
from modloc.errors import ServiceError
from modloc.llm.service import set_llm_provider_service
from modloc.logger import get_logger, LOG_FILE, _clear_log_mode_cache
from modloc.translation import get_ignored_text_service, reset_ignored_text_service
from modloc.web.responses import bad_request, error_response, get_json_body

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)


@settings_bp.get("/")
def get_settings():
    """Configuration plus the provider and log mode metadata the settings page needs."""
    try:
        current_config = config.load_config()
        logger.debug("Settings served")
        return jsonify({
            "config": current_config,
            "meta": {
                "builtin_providers": [
                    {"id": p, "name": BUILTIN_PROVIDER_DISPLAY_NAMES[p]}
                    for p in BUILTIN_PROVIDERS
                ],
                "provider_defaults": PROVIDER_DEFAULTS,
                "log_modes": LOG_MODES,
            }
        })
    except Exception as e:
        logger.error(f"Could not read settings: {e}")
        return jsonify({"error": "Failed to retrieve settings"}), 500


@settings_bp.put("/")
def update_settings():
    """Update configuration; provider and section blocks are merged key by key."""
    data = get_json_body()
    if "config" not in data:
        return bad_request("config is missing")

    new_config = data["config"]
    validation_error = config.validate_config(new_config)
    if validation_error:
        return bad_request(validation_error)

    try:
        current_config = copy.deepcopy(config.load_config())
        for key, value in new_config.items():
            if isinstance(value, dict) and isinstance(current_config.get(key), dict):
                current_config[key].update(value)
            else:
                current_config[key] = value

        config.save_config(current_config)
        _clear_log_mode_cache()
        logger.info("Settings saved: %s", ", ".join(sorted(new_config)))
        return jsonify({"message": "Settings saved", "config": current_config})
    except Exception as e:
        logger.error(f"Could not save settings: {e}")
        return jsonify({"error": "Failed to update settings"}), 500


@settings_bp.post("/factory-reset")
def factory_reset():
    """Delete all data and restore the default configuration."""
    try:
        config.factory_reset()
        reset_ignored_text_service()
        set_llm_provider_service(None)
        _clear_log_mode_cache()
        return jsonify({"message": "Factory reset complete"})
    except Exception as e:
        logger.error(f"Factory reset failed: {e}")
        return jsonify({"error": "Factory reset failed"}), 500


@settings_bp.delete("/logs")
def clear_logs():
    """Remove every *.log file under the log directory."""
    try:
        log_file = Path(LOG_FILE)
        deleted_count = 0

        log_dir = log_file.parent
        if log_dir.exists():
            for log_path in log_dir.glob("*.log"):
                log_path.unlink()
                deleted_count += 1

        if deleted_count > 0:
            logger.info(f"Deleted {deleted_count} log file(s)")
            return jsonify({"message": f"Deleted {deleted_count} log file(s)"})
        return jsonify({"message": "No log files to delete"})
    except OSError as e:
        logger.error(f"Could not delete log files: {e}")
        return jsonify({"error": "Failed to delete logs"}), 500


# ============================================================
# Ignored source texts
# ============================================================

@settings_bp.get("/ignored-texts")
def list_ignored_texts():
    service = get_ignored_text_service()
    return jsonify({
        "texts": service.get_all(),
        "enabled_count": service.get_enabled_count(),
        "total_count": service.get_total_count(),
    })


@settings_bp.post("/ignored-texts")
def add_ignored_text():
    try:
        text = get_ignored_text_service().add(get_json_body().get("source_text"))
        return jsonify({"text": text}), 201
    except ServiceError as e:
        return error_response(e)


@settings_bp.put("/ignored-texts/<text_id>")
def update_ignored_text(text_id: str):
    try:
        text = get_ignored_text_service().update(text_id, get_json_body().get("source_text"))
        return jsonify({"text": text})
    except ServiceError as e:
        return error_response(e)


@settings_bp.delete("/ignored-texts/<text_id>")
def delete_ignored_text(text_id: str):
    try:
        get_ignored_text_service().delete(text_id)
        return jsonify({"message": "Ignored text deleted"})
    except ServiceError as e:
        return error_response(e)


@settings_bp.post("/ignored-texts/<text_id>/toggle")
def toggle_ignored_text(text_id: str):
    try:
        return jsonify({"text": get_ignored_text_service().toggle_enabled(text_id)})
    except ServiceError as e:
        return error_response(e)


@settings_bp.post("/ignored-texts/reset")
def reset_ignored_texts():
    return jsonify({"texts": get_ignored_text_service().reset_to_defaults()})
