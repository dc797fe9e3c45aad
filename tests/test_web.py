from __future__ import annotations

import io
import time

import httpx
import pytest

from modloc import config
from modloc.llm import CircuitBreakerManager, LlmProviderService
from modloc.llm.service import set_llm_provider_service
from modloc.web import create_app


@pytest.fixture
def client():
    app = create_app()
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


def _wait_for_job(client, job_id: str, timeout: float = 10.0) -> dict:
    deadline = time.time() + timeout
    while time.time() < deadline:
        job = client.get(f"/api/compilations/jobs/{job_id}").get_json()["job"]
        if job["state"] in ("completed", "failed", "cancelled"):
            return job
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_unknown_route_is_json(client) -> None:
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["code"] == "not_found"


def test_glossary_lifecycle(client) -> None:
    response = client.post("/api/glossaries/", json={"name": "Lore", "is_global": True})
    assert response.status_code == 201
    glossary = response.get_json()["glossary"]

    duplicate = client.post("/api/glossaries/", json={"name": "Lore", "is_global": True})
    assert duplicate.status_code == 409
    assert duplicate.get_json()["code"] == "already_exists"

    assert client.post("/api/glossaries/", json={"name": " ", "is_global": True}).status_code == 400

    entry = client.post(f"/api/glossaries/{glossary['id']}/entries", json={
        "target_language_code": "fr", "source_term": "Warpstone", "target_term": "Malepierre",
    })
    assert entry.status_code == 201

    match = client.post("/api/glossaries/match", json={
        "source_text": "Mine the warpstone",
        "target_language_code": "fr",
        "target_text": "Extrayez la pierre",
    }).get_json()
    assert [m["target_term"] for m in match["matches"]] == ["Malepierre"]
    assert len(match["consistency"]) == 1

    search = client.get("/api/glossaries/entries/search?q=warp").get_json()
    assert len(search["entries"]) == 1

    listed = client.get("/api/glossaries/").get_json()["glossaries"]
    assert [g["name"] for g in listed] == ["Lore"]

    assert client.delete(f"/api/glossaries/{glossary['id']}").status_code == 200
    assert client.get(f"/api/glossaries/{glossary['id']}").status_code == 404


def test_glossary_import_and_export(client) -> None:
    glossary = client.post("/api/glossaries/", json={"name": "Units", "is_global": True}).get_json()["glossary"]

    csv_bytes = "source_term,target_term,notes\nSword,Épée,\nAxe,Hache,\n".encode("utf-8")
    response = client.post(
        f"/api/glossaries/{glossary['id']}/import?format=csv&target_language_code=fr",
        data={"file": (io.BytesIO(csv_bytes), "terms.csv")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.get_json()["result"]["imported"] == 2

    exported = client.get(f"/api/glossaries/{glossary['id']}/export?format=tbx")
    assert exported.status_code == 200
    assert "Units.tbx" in exported.headers["Content-Disposition"]
    assert b"<martif" in exported.data

    assert client.get(f"/api/glossaries/{glossary['id']}/export?format=pdf").status_code == 400
    assert client.post(f"/api/glossaries/{glossary['id']}/import").status_code == 400


def test_catalog_duplicates_conflict(client) -> None:
    game = {"game_code": "wh3", "game_name": "Total War: WARHAMMER III"}
    assert client.post("/api/catalog/games", json=game).status_code == 201
    assert client.post("/api/catalog/games", json=game).status_code == 409
    assert client.get("/api/catalog/games/by-code/wh3").get_json()["game"]["game_name"] == game["game_name"]

    assert client.post("/api/catalog/languages", json={"code": "fr", "name": "French"}).status_code == 409
    assert client.post("/api/catalog/languages", json={"code": "pl", "name": "Polish"}).status_code == 201
    assert client.get("/api/catalog/languages/missing").status_code == 404


def test_settings_update_and_validation(client) -> None:
    response = client.put("/api/settings/", json={"config": {"openai": {"timeout": 45}, "log_mode": "off"}})
    assert response.status_code == 200

    settings = client.get("/api/settings/").get_json()
    assert settings["config"]["openai"] == {"timeout": 45, "api_url": "https://api.openai.com/v1"}
    assert settings["config"]["circuit_breaker"]["failure_threshold"] == 5
    assert settings["meta"]["log_modes"] == ["off", "info", "debug"]

    assert client.put("/api/settings/", json={"config": {"log_mode": "loud"}}).status_code == 400
    assert client.put("/api/settings/", json={}).status_code == 400


def test_ignored_texts_routes(client) -> None:
    added = client.post("/api/settings/ignored-texts", json={"source_text": "TBD"})
    assert added.status_code == 201
    text_id = added.get_json()["text"]["id"]

    assert client.post("/api/settings/ignored-texts", json={"source_text": "tbd"}).status_code == 409
    toggled = client.post(f"/api/settings/ignored-texts/{text_id}/toggle").get_json()["text"]
    assert toggled["is_enabled"] is False

    listed = client.get("/api/settings/ignored-texts").get_json()
    assert listed["total_count"] == listed["enabled_count"] + 1

    assert client.delete("/api/settings/ignored-texts/missing").status_code == 404


def test_llm_routes(client, fake_keyring) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})

    set_llm_provider_service(LlmProviderService(
        breakers=CircuitBreakerManager(), transport=httpx.MockTransport(handler)))

    saved = client.put("/api/llm/providers/openai/api-key", json={"api_key": "sk-abcdefghijkl"})
    assert saved.status_code == 200
    assert saved.get_json()["provider"]["masked_key"] == "sk-a...ijkl"

    refreshed = client.post("/api/llm/providers/openai/models/refresh").get_json()
    model_id = refreshed["models"][0]["id"]
    default = client.post(f"/api/llm/models/{model_id}/default").get_json()["model"]
    assert default["is_default"] is True
    assert client.get("/api/llm/models/default").get_json()["model"]["id"] == model_id
    assert client.post(f"/api/llm/models/{model_id}/explode").status_code == 400

    assert client.get("/api/llm/providers/mistral/models").status_code == 404
    assert client.put("/api/llm/providers/mistral/api-key", json={"api_key": "x"}).status_code == 400

    breakers = client.get("/api/llm/circuit-breakers").get_json()["circuit_breakers"]
    assert breakers["openai"]["state"] == "closed"

    rule = client.post("/api/llm/rules", json={"rule_text": "Keep names"}).get_json()["rule"]
    assert client.get("/api/llm/rules/combined").get_json()["text"] == "Keep names"
    assert client.delete(f"/api/llm/rules/{rule['id']}").status_code == 200


def test_compilation_generation_job(client, game, french, make_project, tmp_path) -> None:
    alpha = make_project("Alpha", {"a": ("Sword", "Épée"), "shared": ("One", "Un")}, mod_steam_id="42")
    beta = make_project("Beta", {"b": ("Axe", "Hache"), "shared": ("Two", "Deux")})

    created = client.post("/api/compilations/", json={
        "name": "Pack FR",
        "pack_name": "pack",
        "game_installation_id": game["id"],
        "language_id": french["id"],
        "project_ids": [alpha, beta],
    })
    assert created.status_code == 201
    compilation_id = created.get_json()["compilation"]["compilation"]["id"]

    analysis = client.get(f"/api/compilations/{compilation_id}/conflicts").get_json()["analysis"]
    assert analysis["summary"]["total_count"] == 1
    conflict_id = analysis["conflicts"][0]["id"]

    bad = client.post(f"/api/compilations/{compilation_id}/generate",
                      json={"resolutions": {"resolutions": {conflict_id: "both"}}})
    assert bad.status_code == 400

    started = client.post(f"/api/compilations/{compilation_id}/generate", json={
        "output_dir": str(tmp_path / "out"),
        "resolutions": {"resolutions": {conflict_id: "use_second"}},
    })
    assert started.status_code == 202
    job = _wait_for_job(client, started.get_json()["job"]["job_id"])

    assert job["state"] == "completed", job["error"]
    assert job["result"]["entry_count"] == 3
    assert job["progress"]["current"] == job["progress"]["total"]
    output = (tmp_path / "out" / "!!!!!!!!!!_fr_compilation_twmt_pack.loc.tsv").read_text(encoding="utf-8")
    assert "shared\tDeux" in output

    latest = client.get(f"/api/compilations/{compilation_id}/jobs/latest").get_json()["job"]
    assert latest["job_id"] == job["job_id"]
    assert client.post(f"/api/compilations/jobs/{job['job_id']}/cancel").status_code == 404

    bbcode = client.get(f"/api/compilations/{compilation_id}/bbcode").get_json()["bbcode"]
    assert bbcode == "[url=https://steamcommunity.com/sharedfiles/filedetails/?id=42]Alpha[/url]"


def test_compilation_not_found(client) -> None:
    assert client.get("/api/compilations/missing").status_code == 404
    assert client.post("/api/compilations/missing/generate", json={}).status_code == 404
    assert client.get("/api/compilations/jobs/missing").status_code == 404


def test_unknown_circuit_breaker_setting_keeps_llm_routes_working(client) -> None:
    assert client.put("/api/settings/", json={"config": {"circuit_breaker": {"enabled": True}}}).status_code == 400
    assert client.put("/api/settings/", json={
        "config": {"circuit_breaker": {"failure_threshold": True}}}).status_code == 400

    stored = config.load_config()
    stored["circuit_breaker"]["enabled"] = True
    config.save_config(stored)
    assert client.put("/api/settings/", json={
        "config": {"circuit_breaker": {"failure_threshold": 2}}}).status_code == 200

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": []})

    set_llm_provider_service(LlmProviderService(transport=httpx.MockTransport(handler)))

    assert client.put("/api/llm/providers/openai/api-key", json={"api_key": "sk-abcdefghijkl"}).status_code == 200
    assert client.post("/api/llm/providers/openai/test").get_json()["valid"] is True
    status = client.get("/api/llm/circuit-breakers/openai").get_json()
    assert status["circuit_breaker"]["state"] == "closed"
