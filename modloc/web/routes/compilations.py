"""Compilation API routes: CRUD, conflict analysis, generation jobs and BBCode."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from modloc.compilation import CompilationService
from modloc.errors import ServiceError
from modloc.logger import get_logger
from modloc.web.responses import bad_request, error_response, get_json_body
from modloc.web.tasks import cancel_job, create_compilation_job, get_job, get_latest_job, serialize_job

compilations_bp = Blueprint("compilations", __name__)
logger = get_logger(__name__)

compilation_service = CompilationService()


@compilations_bp.get("/")
def list_compilations():
    try:
        compilations = compilation_service.get_all_compilations(request.args.get("game_installation_id"))
        return jsonify({"compilations": compilations})
    except Exception as e:
        logger.error(f"Failed to list compilations: {e}")
        return jsonify({"error": "Failed to list compilations"}), 500


@compilations_bp.post("/")
def create_compilation():
    data = get_json_body()
    project_ids = data.get("project_ids") or []
    if not isinstance(project_ids, list):
        return bad_request("project_ids must be a list")
    try:
        details = compilation_service.create_compilation(
            name=data.get("name"),
            pack_name=data.get("pack_name"),
            game_installation_id=data.get("game_installation_id"),
            language_id=data.get("language_id"),
            project_ids=project_ids,
            prefix=data.get("prefix"),
        )
        return jsonify({"compilation": details.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to create compilation: {e}")
        return jsonify({"error": "Failed to create compilation"}), 500


@compilations_bp.get("/<compilation_id>")
def get_compilation(compilation_id: str):
    try:
        details = compilation_service.get_compilation_with_details(compilation_id)
        return jsonify({"compilation": details.to_dict()})
    except ServiceError as e:
        return error_response(e)


@compilations_bp.put("/<compilation_id>")
def update_compilation(compilation_id: str):
    data = get_json_body()
    project_ids = data.get("project_ids")
    if project_ids is not None and not isinstance(project_ids, list):
        return bad_request("project_ids must be a list")
    try:
        details = compilation_service.update_compilation(
            compilation_id,
            name=data.get("name"),
            prefix=data.get("prefix"),
            pack_name=data.get("pack_name"),
            language_id=data.get("language_id"),
            project_ids=project_ids,
        )
        return jsonify({"compilation": details.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to update compilation {compilation_id}: {e}")
        return jsonify({"error": "Failed to update compilation"}), 500


@compilations_bp.delete("/<compilation_id>")
def delete_compilation(compilation_id: str):
    try:
        compilation_service.delete_compilation(compilation_id)
        return jsonify({"message": "Compilation deleted"})
    except ServiceError as e:
        return error_response(e)


@compilations_bp.get("/<compilation_id>/conflicts")
def analyze_conflicts(compilation_id: str):
    try:
        analysis = compilation_service.analyze_conflicts(compilation_id)
        return jsonify({"analysis": analysis.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Conflict analysis failed for compilation {compilation_id}: {e}")
        return jsonify({"error": "Conflict analysis failed"}), 500


@compilations_bp.get("/<compilation_id>/bbcode")
def get_bbcode(compilation_id: str):
    try:
        return jsonify({"bbcode": compilation_service.generate_bbcode(compilation_id)})
    except ServiceError as e:
        return error_response(e)


# ============================================================
# Generation jobs
# ============================================================

@compilations_bp.post("/<compilation_id>/generate")
def start_generation(compilation_id: str):
    data = get_json_body()
    try:
        compilation_service.get_compilation_with_details(compilation_id)
        active = get_latest_job(compilation_id, active_only=True)
        if active:
            return jsonify({"error": "Compilation is already being generated", "code": "already_exists",
                            "job": serialize_job(active)}), 409
        job = create_compilation_job(
            compilation_id,
            output_dir=data.get("output_dir"),
            resolutions=data.get("resolutions"),
        )
        return jsonify({"job": serialize_job(job)}), 202
    except ServiceError as e:
        return error_response(e)
    except ValueError as e:
        return bad_request(str(e))


@compilations_bp.get("/jobs/<job_id>")
def job_status(job_id: str):
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found", "code": "not_found"}), 404
    return jsonify({"job": serialize_job(job)})


@compilations_bp.post("/jobs/<job_id>/cancel")
def cancel_generation(job_id: str):
    if not cancel_job(job_id):
        return jsonify({"error": "Job not found or already finished", "code": "not_found"}), 404
    return jsonify({"message": "Cancellation requested"})


@compilations_bp.get("/<compilation_id>/jobs/latest")
def latest_job(compilation_id: str):
    job = get_latest_job(compilation_id)
    return jsonify({"job": serialize_job(job) if job else None})
