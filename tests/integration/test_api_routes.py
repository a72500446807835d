"""
Integration tests for the HTTP API.

Core services run against SQLite and the in-process document store,
injected through FastAPI dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from dualstore.api.dependencies import get_catalog_store, get_orchestrator, get_retrieval_engine
from dualstore.main import app


@pytest.fixture
def client(orchestrator, catalog, retrieval_engine):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_catalog_store] = lambda: catalog
    app.dependency_overrides[get_retrieval_engine] = lambda: retrieval_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ingest(client, write_json):
    def _ingest(name, data, **extra):
        response = client.post("/api/v1/ingest/staged", json={"filePath": write_json(name, data), **extra})
        assert response.status_code == 201, response.text
        return response.json()
    return _ingest


class TestIngestEndpoint:

    def test_ingest_flat(self, ingest, people):
        body = ingest("people.json", people)

        assert body["success"] is True
        assert body["dataset"]["backend"] == "postgres"
        assert body["processing"]["recommended_backend"] == "sql"
        assert body["profile"]["recordCount"] == 4

    def test_ingest_nested_with_name(self, ingest, nested_orders):
        body = ingest("orders.json", nested_orders, datasetName="orders", originalFilename="orders.json")

        assert body["dataset"]["name"] == "orders"
        assert body["dataset"]["backend"] == "mongodb"
        assert body["dataset"]["collections"] == [f"dataset_{body['dataset']['id']}"]

    def test_missing_file(self, client, tmp_path):
        response = client.post("/api/v1/ingest/staged", json={"filePath": str(tmp_path / "nope.json")})

        assert response.status_code == 400
        assert response.json()["detail"]["success"] is False
        assert response.json()["detail"]["error"] == "InputError"

    def test_malformed_json(self, client, write_text):
        response = client.post("/api/v1/ingest/staged", json={"filePath": write_text("bad.json", "[1,")})

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "AnalysisError"

    def test_empty_dataset(self, client, write_json):
        response = client.post("/api/v1/ingest/staged", json={"filePath": write_json("e.json", [])})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "EmptyDatasetError"

    def test_missing_body_field(self, client):
        assert client.post("/api/v1/ingest/staged", json={}).status_code == 422


class TestProfileEndpoint:

    def test_profile(self, client, write_json, people, catalog):
        response = client.post("/api/v1/profile", json={"filePath": write_json("people.json", people)})

        assert response.status_code == 200
        assert response.json()["profile"]["recordCount"] == 4
        assert catalog.count() == 0


class TestDatasetEndpoints:

    def test_list_and_filter_by_backend(self, client, ingest, people, nested_orders):
        ingest("people.json", people)
        ingest("orders.json", nested_orders)

        all_sets = client.get("/api/v1/datasets").json()
        nosql = client.get("/api/v1/datasets", params={"backend": "nosql"}).json()

        assert all_sets["pagination"]["total"] == 2
        assert [d["storage"] for d in nosql["datasets"]] == ["mongodb"]

    def test_list_rejects_unknown_backend(self, client):
        response = client.get("/api/v1/datasets", params={"backend": "graph"})

        assert response.status_code == 400

    def test_list_rejects_unknown_sort(self, client):
        assert client.get("/api/v1/datasets", params={"sortBy": "secret"}).status_code == 400

    def test_get_update_delete(self, client, ingest, people):
        dataset_id = ingest("people.json", people)["dataset"]["id"]

        assert client.get(f"/api/v1/datasets/{dataset_id}").json()["dataset"]["id"] == dataset_id

        updated = client.patch(f"/api/v1/datasets/{dataset_id}", json={"tags": ["hr"]}).json()
        assert updated["dataset"]["tags"] == ["hr"]

        assert client.delete(f"/api/v1/datasets/{dataset_id}").status_code == 200
        assert client.get(f"/api/v1/datasets/{dataset_id}").status_code == 404

    def test_unknown_dataset(self, client):
        assert client.get("/api/v1/datasets/missing").status_code == 404
        assert client.patch("/api/v1/datasets/missing", json={"tags": []}).status_code == 404
        assert client.delete("/api/v1/datasets/missing").status_code == 404

    def test_search(self, client, ingest, people):
        ingest("people.json", people)

        body = client.get("/api/v1/datasets/search/PEOPLE").json()

        assert body["count"] == 1


class TestDataEndpoints:

    def test_query_string_filters(self, client, ingest, people):
        dataset_id = ingest("people.json", people)["dataset"]["id"]

        body = client.get(f"/api/v1/datasets/{dataset_id}/data", params={"age": "30"}).json()

        assert [r["name"] for r in body["data"]] == ["Alice"]
        assert body["pagination"]["total"] == 1

    def test_sort_and_fields(self, client, ingest, people):
        dataset_id = ingest("people.json", people)["dataset"]["id"]

        body = client.get(
            f"/api/v1/datasets/{dataset_id}/data",
            params={"sort": '{"age": -1}', "fields": "name", "limit": "2"},
        ).json()

        assert body["data"] == [{"name": "Carol"}, {"name": "Dave"}]

    def test_query_document(self, client, ingest, nested_orders):
        dataset_id = ingest("orders.json", nested_orders)["dataset"]["id"]

        body = client.post(
            f"/api/v1/datasets/{dataset_id}/query",
            json={"where": {"total": {"$gte": 12.5}}, "orderBy": "total"},
        ).json()

        assert [r["order_id"] for r in body["data"]] == [1, 3]

    def test_invalid_operator(self, client, ingest, people):
        dataset_id = ingest("people.json", people)["dataset"]["id"]

        response = client.post(f"/api/v1/datasets/{dataset_id}/query", json={"where": {"age": {"$regex": "3"}}})

        assert response.status_code == 400

    def test_stats(self, client, ingest, nested_orders):
        dataset_id = ingest("orders.json", nested_orders)["dataset"]["id"]

        stats = client.get(f"/api/v1/datasets/{dataset_id}/stats").json()["stats"]

        assert stats["storedCount"] == 3
        assert stats["backend"] == "nosql"

    def test_retrieve(self, client, ingest, people):
        dataset = ingest("people.json", people)["dataset"]

        body = client.post("/api/v1/retrieve", json={
            "dataset": dataset["id"],
            "entity": dataset["default_entity"],
            "filter": {"active": False},
            "orderBy": "name",
        }).json()

        assert body["count"] == 2
        assert [r["name"] for r in body["data"]] == ["Bob", "Dave"]

    def test_retrieve_unknown_entity(self, client, ingest, people):
        dataset_id = ingest("people.json", people)["dataset"]["id"]

        response = client.post("/api/v1/retrieve", json={"dataset": dataset_id, "entity": "nope"})

        assert response.status_code == 404

    def test_retrieve_requires_dataset(self, client):
        response = client.post("/api/v1/retrieve", json={"entity": "x"})

        assert response.status_code == 400
