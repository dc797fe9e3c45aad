"""Languages and game installations API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from modloc.core import database as db
from modloc.errors import ServiceError
from modloc.logger import get_logger
from modloc.web.responses import bad_request, error_response, get_json_body

catalog_bp = Blueprint("catalog", __name__)
logger = get_logger(__name__)


@catalog_bp.get("/languages")
def list_languages():
    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    languages = db.get_active_languages() if active_only else db.get_all_languages()
    return jsonify({"languages": languages})


@catalog_bp.get("/languages/<language_id>")
def get_language(language_id: str):
    language = db.get_language_by_id(language_id)
    if not language:
        return jsonify({"error": "Language not found", "code": "not_found"}), 404
    return jsonify({"language": language})


@catalog_bp.post("/languages")
def create_language():
    data = get_json_body()
    code = (data.get("code") or "").strip()
    name = (data.get("name") or "").strip()
    if not code or not name:
        return bad_request("code and name are required")
    try:
        language = db.insert_language(
            code=code,
            name=name,
            native_name=data.get("native_name"),
            is_active=bool(data.get("is_active", True)),
        )
        logger.info(f"Added language {code}")
        return jsonify({"language": language}), 201
    except ServiceError as e:
        return error_response(e)


@catalog_bp.get("/games")
def list_game_installations():
    return jsonify({"games": db.get_all_game_installations()})


@catalog_bp.get("/games/<installation_id>")
def get_game_installation(installation_id: str):
    game = db.get_game_installation_by_id(installation_id)
    if not game:
        return jsonify({"error": "Game installation not found", "code": "not_found"}), 404
    return jsonify({"game": game})


@catalog_bp.get("/games/by-code/<game_code>")
def get_game_installation_by_code(game_code: str):
    game = db.get_game_installation_by_game_code(game_code)
    if not game:
        return jsonify({"error": "Game installation not found", "code": "not_found"}), 404
    return jsonify({"game": game})


@catalog_bp.post("/games")
def create_game_installation():
    data = get_json_body()
    game_code = (data.get("game_code") or "").strip()
    game_name = (data.get("game_name") or "").strip()
    if not game_code or not game_name:
        return bad_request("game_code and game_name are required")
    try:
        game = db.insert_game_installation(
            game_code=game_code,
            game_name=game_name,
            installation_path=data.get("installation_path"),
            steam_workshop_path=data.get("steam_workshop_path"),
            steam_app_id=data.get("steam_app_id"),
            is_auto_detected=bool(data.get("is_auto_detected", False)),
        )
        logger.info(f"Added game installation {game_code}")
        return jsonify({"game": game}), 201
    except ServiceError as e:
        return error_response(e)
