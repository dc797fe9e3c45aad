"""LLM provider API routes: API keys, models, circuit breakers and custom rules."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from modloc.config import BUILTIN_PROVIDERS
from modloc.errors import ServiceError
from modloc.llm import models as model_repo
from modloc.llm.rules import LlmCustomRulesService
from modloc.llm.service import get_llm_provider_service
from modloc.logger import get_logger
from modloc.web.responses import bad_request, error_response, get_json_body

llm_bp = Blueprint("llm", __name__)
logger = get_logger(__name__)

rules_service = LlmCustomRulesService()


def _unknown_provider(provider: str):
    if provider not in BUILTIN_PROVIDERS:
        return jsonify({"error": f"Unknown provider: {provider}", "code": "not_found"}), 404
    return None


# ============================================================
# API keys
# ============================================================

@llm_bp.get("/providers")
def list_providers():
    service = get_llm_provider_service()
    return jsonify({"providers": service.get_all_api_key_statuses()})


@llm_bp.put("/providers/<provider>/api-key")
def save_api_key(provider: str):
    data = get_json_body()
    try:
        status = get_llm_provider_service().save_api_key(
            provider, data.get("api_key"), validate=bool(data.get("validate", True)))
        return jsonify({"provider": status})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to save API key for {provider}: {e}")
        return jsonify({"error": "Failed to save API key"}), 500


@llm_bp.delete("/providers/<provider>/api-key")
def delete_api_key(provider: str):
    try:
        get_llm_provider_service().delete_api_key(provider)
        return jsonify({"message": "API key deleted"})
    except ServiceError as e:
        return error_response(e)


@llm_bp.post("/providers/<provider>/test")
def test_connection(provider: str):
    try:
        return jsonify(get_llm_provider_service().test_connection(provider))
    except ServiceError as e:
        return error_response(e)


# ============================================================
# Models
# ============================================================

@llm_bp.get("/providers/<provider>/models")
def list_models(provider: str):
    missing = _unknown_provider(provider)
    if missing:
        return missing
    scope = request.args.get("scope", "available")
    if scope == "enabled":
        models = model_repo.get_enabled_by_provider(provider)
    elif scope == "all":
        models = model_repo.get_by_provider(provider, include_archived=True)
    else:
        models = model_repo.get_available_by_provider(provider)
    return jsonify({"models": models, "default": model_repo.get_default_by_provider(provider)})


@llm_bp.post("/providers/<provider>/models/refresh")
def refresh_models(provider: str):
    try:
        return jsonify(get_llm_provider_service().refresh_models(provider))
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Failed to refresh models for {provider}: {e}")
        return jsonify({"error": "Failed to refresh models"}), 500


@llm_bp.delete("/providers/<provider>/models")
def reset_models(provider: str):
    missing = _unknown_provider(provider)
    if missing:
        return missing
    return jsonify({"deleted": model_repo.reset_provider_models(provider)})


@llm_bp.get("/models/default")
def global_default_model():
    return jsonify({"model": model_repo.get_global_default()})


MODEL_ACTIONS = {
    "enable": model_repo.enable,
    "disable": model_repo.disable,
    "toggle": model_repo.toggle_enabled,
    "default": model_repo.set_as_default,
    "archive": model_repo.archive,
    "unarchive": model_repo.unarchive,
}


@llm_bp.post("/models/<model_pk>/<action>")
def update_model(model_pk: str, action: str):
    handler = MODEL_ACTIONS.get(action)
    if handler is None:
        return bad_request(f"Unknown model action: {action}")
    try:
        return jsonify({"model": handler(model_pk)})
    except ServiceError as e:
        return error_response(e)


# ============================================================
# Circuit breakers
# ============================================================

@llm_bp.get("/circuit-breakers")
def circuit_breaker_statuses():
    return jsonify({"circuit_breakers": get_llm_provider_service().get_all_circuit_breaker_statuses()})


@llm_bp.get("/circuit-breakers/<provider>")
def circuit_breaker_status(provider: str):
    return jsonify({"circuit_breaker": get_llm_provider_service().get_circuit_breaker_status(provider)})


@llm_bp.post("/circuit-breakers/<provider>/reset")
def reset_circuit_breaker(provider: str):
    return jsonify({"circuit_breaker": get_llm_provider_service().reset_circuit_breaker(provider)})


# ============================================================
# Custom rules
# ============================================================

@llm_bp.get("/rules")
def list_rules():
    return jsonify({
        "rules": rules_service.get_all_rules(),
        "enabled_count": rules_service.get_enabled_rules_count(),
    })


@llm_bp.post("/rules")
def add_rule():
    try:
        rule = rules_service.add_rule(get_json_body().get("rule_text"))
        return jsonify({"rule": rule}), 201
    except ServiceError as e:
        return error_response(e)


@llm_bp.put("/rules/<rule_id>")
def update_rule(rule_id: str):
    try:
        return jsonify({"rule": rules_service.update_rule(rule_id, get_json_body().get("rule_text"))})
    except ServiceError as e:
        return error_response(e)


@llm_bp.delete("/rules/<rule_id>")
def delete_rule(rule_id: str):
    try:
        rules_service.delete_rule(rule_id)
        return jsonify({"message": "Rule deleted"})
    except ServiceError as e:
        return error_response(e)


@llm_bp.post("/rules/<rule_id>/toggle")
def toggle_rule(rule_id: str):
    try:
        return jsonify({"rule": rules_service.toggle_enabled(rule_id)})
    except ServiceError as e:
        return error_response(e)


@llm_bp.post("/rules/reorder")
def reorder_rules():
    ids = get_json_body().get("ids")
    if not isinstance(ids, list):
        return bad_request("ids must be a list")
    return jsonify({"rules": rules_service.reorder_rules(ids)})


@llm_bp.get("/rules/combined")
def combined_rules():
    project_id = request.args.get("project_id")
    if project_id:
        text = rules_service.get_combined_rules_text_for_project(project_id)
    else:
        text = rules_service.get_combined_rules_text()
    return jsonify({"text": text})


@llm_bp.get("/projects/<project_id>/rule")
def get_project_rule(project_id: str):
    return jsonify({"rule": rules_service.get_rule_for_project(project_id)})


@llm_bp.put("/projects/<project_id>/rule")
def set_project_rule(project_id: str):
    try:
        rule = rules_service.set_project_rule(project_id, get_json_body().get("rule_text"))
        return jsonify({"rule": rule})
    except ServiceError as e:
        return error_response(e)


@llm_bp.delete("/projects/<project_id>/rule")
def delete_project_rule(project_id: str):
    return jsonify({"deleted": rules_service.delete_project_rule(project_id)})


@llm_bp.post("/projects/<project_id>/rule/toggle")
def toggle_project_rule(project_id: str):
    return jsonify({"rule": rules_service.toggle_project_rule_enabled(project_id)})
