"""
Integration tests for the HTTP API.

The router is mounted on a bare app so the catalog can be swapped for the
in-memory test session.
"""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api import routes
from src.catalog.database import get_db


@pytest.fixture
def client(test_settings, db_session, monkeypatch):
    monkeypatch.setattr(routes, "get_settings", lambda: test_settings)

    app = FastAPI()
    app.include_router(routes.router, prefix="/api/v1")

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def converted(client, films_csv):
    response = client.post("/api/v1/convert", json={"input": str(films_csv), "tags": ["x"]})
    assert response.status_code == 201
    return response.json()


class TestConvertEndpoint:
    """Tests for POST /convert."""

    def test_convert(self, converted, films_csv):
        assert converted["input"] == str(films_csv)
        assert converted["dataset"] == "films"
        assert converted["record_count"] == 3
        assert converted["converted_count"] == 3
        assert "filmId" in converted["unique_fields"]
        assert converted["tags"] == ["films", "source:films.csv", "x"]
        assert converted["jsonl_path"].endswith("films.jsonl")

    def test_missing_input(self, client, tmp_path):
        response = client.post("/api/v1/convert", json={"input": str(tmp_path / "nope.csv")})
        assert response.status_code == 404

    def test_unsupported_format(self, client, tmp_path):
        path = tmp_path / "data.xml"
        path.write_text("<rows/>", encoding="utf-8")
        response = client.post("/api/v1/convert", json={"input": str(path)})
        assert response.status_code == 422
        assert "xml" in response.json()["detail"]

    def test_unreadable_source(self, client, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{nope", encoding="utf-8")
        response = client.post("/api/v1/convert", json={"input": str(path)})
        assert response.status_code == 400
        assert "Invalid JSON" in response.json()["detail"]


class TestProfileEndpoints:
    """Tests for the profile read endpoints."""

    def test_list_profiles(self, client, converted):
        response = client.get("/api/v1/profiles")
        assert response.status_code == 200
        items = response.json()
        assert [(i["dataset"], i["record_count"], i["version"]) for i in items] == [("films", 3, 1)]

    def test_get_profile_from_catalog(self, client, converted):
        response = client.get("/api/v1/profiles/films")
        assert response.status_code == 200
        body = response.json()
        assert body["recordCount"] == 3
        assert body["fields"]["filmId"]["originalName"] == "Film ID"

    def test_get_profile_from_file(self, client, test_settings, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "shows.profile.json").write_text(
            json.dumps({"dataset": "shows", "recordCount": 2, "fields": {"id": {}}}),
            encoding="utf-8",
        )

        response = client.get("/api/v1/profiles/shows")

        assert response.status_code == 200
        assert response.json()["dataset"] == "shows"

    def test_invalid_profile_file(self, client, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "bad.profile.json").write_text('{"dataset": "bad"}', encoding="utf-8")

        assert client.get("/api/v1/profiles/bad").status_code == 422

    def test_missing_profile(self, client):
        assert client.get("/api/v1/profiles/nope").status_code == 404

    def test_report(self, client, converted):
        response = client.get("/api/v1/profiles/films/report", params={"match": "^film"})

        assert response.status_code == 200
        body = response.json()
        assert [row["name"] for row in body["rows"]] == ["filmId"]
        assert "_sort" not in body["rows"][0]
        assert body["text"].startswith("Summary")

    def test_report_invalid_filter(self, client, converted):
        response = client.get("/api/v1/profiles/films/report", params={"only": "bogus"})
        assert response.status_code == 400


class TestAppEndpoints:
    """Tests for the service endpoints of the main app."""

    @pytest.fixture
    def app_client(self):
        from src.main import app
        return TestClient(app)

    def test_root_and_health(self, app_client):
        assert app_client.get("/").json()["service"] == "Loose Ingest API"
        assert app_client.get("/health").json() == {"status": "healthy"}

    def test_metrics(self, app_client):
        response = app_client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
