"""JSON error responses shared by the blueprints."""

from __future__ import annotations

from flask import jsonify, request

from modloc.errors import ServiceError

STATUS_BY_CODE = {
    "invalid_data": 400,
    "not_found": 404,
    "already_exists": 409,
    "file_error": 422,
    "circuit_open": 503,
    "provider_error": 502,
    "cancelled": 409,
}


def error_response(error: ServiceError):
    """Map a service error to ``(json, status)``."""
    return jsonify(error.to_dict()), STATUS_BY_CODE.get(error.code, 400)


def bad_request(message: str):
    return jsonify({"error": message, "code": "invalid_data"}), 400


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
