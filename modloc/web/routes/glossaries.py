"""Glossary management API routes."""

from __future__ import annotations

import io
import tempfile
from pathlib import Path

from flask import Blueprint, jsonify, request, send_file

from modloc.errors import ServiceError
from modloc.glossary import GlossaryService
from modloc.glossary.service import EXPORT_FORMATS
from modloc.logger import get_logger
from modloc.web.responses import bad_request, error_response, get_json_body

glossaries_bp = Blueprint("glossaries", __name__)
logger = get_logger(__name__)

glossary_service = GlossaryService()

FILE_EXTENSIONS = {"csv": ".csv", "tbx": ".tbx", "excel": ".xlsx"}
MIME_TYPES = {
    "csv": "text/csv",
    "tbx": "application/x-tbx+xml",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _bool_arg(name: str, default: bool) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def _list_arg(name: str):
    values = [v for v in request.args.getlist(name) if v]
    return values or None


# ============================================================
# Glossaries
# ============================================================

@glossaries_bp.get("/")
def list_glossaries():
    try:
        glossaries = glossary_service.get_all_glossaries(
            game_installation_id=request.args.get("game_installation_id"),
            include_universal=_bool_arg("include_universal", True),
        )
        return jsonify({"glossaries": glossaries})
    except Exception as e:
        logger.error(f"Failed to list glossaries: {e}")
        return jsonify({"error": "Failed to list glossaries"}), 500


@glossaries_bp.post("/")
def create_glossary():
    data = get_json_body()
    try:
        glossary = glossary_service.create_glossary(
            name=data.get("name"),
            target_language_id=data.get("target_language_id"),
            description=data.get("description"),
            is_global=bool(data.get("is_global", False)),
            game_installation_id=data.get("game_installation_id"),
        )
        return jsonify({"glossary": glossary}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to create glossary: {e}")
        return jsonify({"error": "Failed to create glossary"}), 500


@glossaries_bp.get("/<glossary_id>")
def get_glossary(glossary_id: str):
    try:
        return jsonify({"glossary": glossary_service.get_glossary_by_id(glossary_id)})
    except ServiceError as e:
        return error_response(e)


@glossaries_bp.put("/<glossary_id>")
def update_glossary(glossary_id: str):
    data = get_json_body()
    try:
        glossary = glossary_service.update_glossary(
            glossary_id, name=data.get("name"), description=data.get("description"))
        return jsonify({"glossary": glossary})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to update glossary {glossary_id}: {e}")
        return jsonify({"error": "Failed to update glossary"}), 500


@glossaries_bp.delete("/<glossary_id>")
def delete_glossary(glossary_id: str):
    try:
        glossary_service.delete_glossary(glossary_id)
        return jsonify({"message": "Glossary deleted"})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to delete glossary {glossary_id}: {e}")
        return jsonify({"error": "Failed to delete glossary"}), 500


@glossaries_bp.get("/<glossary_id>/stats")
def glossary_stats(glossary_id: str):
    try:
        return jsonify({"stats": glossary_service.get_glossary_stats(glossary_id)})
    except ServiceError as e:
        return error_response(e)


@glossaries_bp.get("/<glossary_id>/validate")
def validate_glossary(glossary_id: str):
    try:
        problems = glossary_service.validate_glossary(glossary_id)
        return jsonify({"valid": not problems, "problems": problems})
    except ServiceError as e:
        return error_response(e)


# ============================================================
# Entries
# ============================================================

@glossaries_bp.get("/<glossary_id>/entries")
def list_entries(glossary_id: str):
    try:
        entries = glossary_service.get_entries_by_glossary(
            glossary_id, request.args.get("target_language_code"))
        return jsonify({"entries": entries})
    except ServiceError as e:
        return error_response(e)


@glossaries_bp.post("/<glossary_id>/entries")
def add_entry(glossary_id: str):
    data = get_json_body()
    try:
        entry = glossary_service.add_entry(
            glossary_id=glossary_id,
            target_language_code=data.get("target_language_code"),
            source_term=data.get("source_term"),
            target_term=data.get("target_term"),
            case_sensitive=bool(data.get("case_sensitive", False)),
            notes=data.get("notes"),
        )
        return jsonify({"entry": entry}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to add glossary entry: {e}")
        return jsonify({"error": "Failed to add entry"}), 500


@glossaries_bp.put("/entries/<entry_id>")
def update_entry(entry_id: str):
    data = get_json_body()
    try:
        entry = glossary_service.update_entry(
            entry_id,
            source_term=data.get("source_term"),
            target_term=data.get("target_term"),
            target_language_code=data.get("target_language_code"),
            case_sensitive=data.get("case_sensitive"),
            notes=data.get("notes"),
        )
        return jsonify({"entry": entry})
    except ServiceError as e:
        return error_response(e)


@glossaries_bp.delete("/entries/<entry_id>")
def delete_entry(entry_id: str):
    try:
        glossary_service.delete_entry(entry_id)
        return jsonify({"message": "Entry deleted"})
    except ServiceError as e:
        return error_response(e)


@glossaries_bp.post("/entries/delete")
def delete_entries():
    """Bulk delete: ``{"ids": [...]}``."""
    ids = get_json_body().get("ids")
    if not isinstance(ids, list):
        return bad_request("ids must be a list")
    deleted = glossary_service.delete_entries(ids)
    return jsonify({"deleted": deleted})


@glossaries_bp.get("/entries/search")
def search_entries():
    entries = glossary_service.search_entries(
        request.args.get("q", ""),
        glossary_ids=_list_arg("glossary_id"),
        target_language_code=request.args.get("target_language_code"),
    )
    return jsonify({"entries": entries})


@glossaries_bp.post("/match")
def match_terms():
    """Glossary terms found in a source text, with substitutions and consistency warnings."""
    data = get_json_body()
    source_text = data.get("source_text")
    lang = data.get("target_language_code")
    if not source_text or not lang:
        return bad_request("source_text and target_language_code are required")

    kwargs = {
        "glossary_ids": data.get("glossary_ids") or None,
        "game_installation_id": data.get("game_installation_id"),
    }
    try:
        matches = glossary_service.find_matches(source_text, lang, **kwargs)
        payload = {
            "matches": [m.to_dict() for m in matches],
            "terms": glossary_service.find_matching_terms(source_text, lang, **kwargs),
        }
        target_text = data.get("target_text")
        if target_text is not None:
            payload["substituted"] = glossary_service.apply_substitutions(
                source_text, target_text, lang, **kwargs)
            payload["consistency"] = glossary_service.check_consistency(
                source_text, target_text, lang, **kwargs)
        return jsonify(payload)
    except ServiceError as e:
        return error_response(e)


# ============================================================
# Import / Export
# ============================================================

@glossaries_bp.post("/<glossary_id>/import")
def import_glossary(glossary_id: str):
    file_format = request.args.get("format", "csv")
    upload = request.files.get("file")
    if upload is None:
        return bad_request("No file uploaded")

    try:
        with tempfile.TemporaryDirectory() as tmp_dir:
            file_path = Path(tmp_dir) / f"import{FILE_EXTENSIONS.get(file_format, '')}"
            upload.save(file_path)
            result = glossary_service.import_file(
                glossary_id,
                file_format,
                file_path,
                target_language_code=request.args.get("target_language_code"),
                skip_duplicates=_bool_arg("skip_duplicates", True),
            )
        return jsonify({"result": result.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to import glossary {glossary_id}: {e}")
        return jsonify({"error": "Failed to import glossary"}), 500


@glossaries_bp.get("/<glossary_id>/export")
def export_glossary(glossary_id: str):
    file_format = request.args.get("format", "csv")
    if file_format not in EXPORT_FORMATS:
        return bad_request(f"Unsupported export format: {file_format}")

    try:
        glossary = glossary_service.get_glossary_by_id(glossary_id)
        with tempfile.TemporaryDirectory() as tmp_dir:
            file_path = Path(tmp_dir) / f"export{FILE_EXTENSIONS[file_format]}"
            count = glossary_service.export(
                glossary_id, file_format, file_path, request.args.get("target_language_code"))
            content = file_path.read_bytes()
        logger.info(f"Exported glossary {glossary_id} as {file_format} ({count} entries)")
        return send_file(
            io.BytesIO(content),
            mimetype=MIME_TYPES[file_format],
            as_attachment=True,
            download_name=f"{glossary['name']}{FILE_EXTENSIONS[file_format]}",
        )
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to export glossary {glossary_id}: {e}")
        return jsonify({"error": "Failed to export glossary"}), 500
