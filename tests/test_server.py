import pytest
from fastapi.testclient import TestClient

from visual_edits.gateway import EditGateway
from visual_edits.server import create_app

from .conftest import FOO_JSX, SECRET

AUTH = {"x-api-key": SECRET}


@pytest.fixture
def client(make_config):
    return TestClient(create_app(make_config()))


def test_ping(client):
    r = client.get("/ping")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["time"].endswith("+00:00")


def test_missing_or_wrong_key_is_unauthorized(client, project):
    for headers in ({}, {"x-api-key": "wrong"}, {"x-api-key": ""}):
        r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers=headers)
        assert r.status_code == 401
        assert r.json() == {"error": "Unauthorized"}
    assert (project / "src" / "components" / "Foo.jsx").read_text(encoding="utf-8") == FOO_JSX


def test_no_secret_configured_rejects_everyone(make_config):
    client = TestClient(create_app(make_config(secret=None)))
    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers={"x-api-key": ""})
    assert r.status_code == 401


def test_credentials_are_checked_before_the_body(client):
    r = client.post("/edit-file", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 401


@pytest.mark.parametrize(
    "body",
    [{}, {"changes": []}, {"changes": "Foo"}, {"changes": None}, [{"fileName": "Foo"}]],
)
def test_missing_changes_is_bad_request(client, body):
    r = client.post("/edit-file", json=body, headers=AUTH)
    assert r.status_code == 400
    assert r.json() == {"error": "No changes provided"}


def test_malformed_json_is_bad_request(client):
    r = client.post("/edit-file", content=b"{not json", headers={**AUTH, "content-type": "application/json"})
    assert r.status_code == 400


def test_edit_round_trip(client, project):
    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert "rejectedChanges" not in body
    assert body["edits"][0]["path"] == "/src/components/Foo.jsx"
    assert not (project / "src" / "components" / "Foo.jsx.backup").exists()


def test_partial_result_is_still_200(client):
    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}, {"fileName": "Ghost"}]}, headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "partial"
    assert body["rejectedChanges"][0]["error"] == "not_found"
    assert body["rejectedChanges"][0]["changeIndices"] == [1]


def test_cors_headers_only_for_allowed_origins(client):
    r = client.post(
        "/edit-file",
        json={"changes": [{"fileName": "Foo"}]},
        headers={**AUTH, "Origin": "https://preview.emergentagent.com"},
    )
    assert r.headers["access-control-allow-origin"] == "https://preview.emergentagent.com"
    assert "x-api-key" in r.headers["access-control-allow-headers"]

    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers={**AUTH, "Origin": "https://evil.example"})
    assert r.status_code == 200
    assert "access-control-allow-origin" not in r.headers


def test_cors_headers_on_error_responses(client):
    r = client.post("/edit-file", json={"changes": []}, headers={"Origin": "http://localhost:3000"})
    assert r.status_code == 401
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_preflight(client):
    r = client.options("/edit-file", headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"})
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert "POST" in r.headers["access-control-allow-methods"]
    assert "x-api-key" in r.headers["access-control-allow-headers"]

    denied = client.options("/edit-file", headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"})
    assert denied.status_code == 403
    assert denied.content == b""
    assert client.options("/edit-file").status_code == 403


def test_unexpected_failure_is_500(make_config):
    class Exploding(EditGateway):
        def process(self, changes):
            raise RuntimeError("boom")

    config = make_config()
    client = TestClient(create_app(config, gateway=Exploding(config)))
    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers=AUTH)
    assert r.status_code == 500
    assert r.json() == {"error": "boom"}


def test_end_to_end_with_audit_commit(project, make_config, git):
    client = TestClient(create_app(make_config(audit_enabled=True)))
    r = client.post("/edit-file", json={"changes": [{"fileName": "Foo"}]}, headers=AUTH)

    assert r.status_code == 200
    edit = r.json()["edits"][0]
    assert edit["commit"]["ok"] == "true"
    assert git("log", "-1", "--format=%s").strip() == edit["commit"]["message"]
    assert (project / "src" / "components" / "Foo.jsx").read_text(encoding="utf-8") == FOO_JSX
    assert not (project / "src" / "components" / "Foo.jsx.backup").exists()
