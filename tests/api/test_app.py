"""
Tests for the REST API.

Tests cover:
1. Health and root endpoints
2. Applying first and incremental revisions
3. Hierarchy, node and revision reads
4. Search by query and by vector
5. Error mapping to HTTP status codes
"""

import pytest
from fastapi.testclient import TestClient

from app import app
from tests.conftest import DIMENSION, TWO_SECTIONS


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("BOLT_ANALYZER_PROVIDER", "hashing")
    monkeypatch.setenv("BOLT_VIEW_DIMENSION", str(DIMENSION))
    monkeypatch.setenv("BOLT_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("BOLT_INDEX_BACKEND", "memory")
    monkeypatch.setenv("BOLT_LOG_TO_FILE", "false")
    monkeypatch.setenv("BOLT_LOG_LEVEL", "WARNING")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def applied(client):
    response = client.post(
        "/documents/doc-1", json={"content": TWO_SECTIONS, "title": "Port and Bakery"}
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.integration
class TestServer:
    """Tests for service endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["analyzer"] == "hashing"
        assert body["storage"] == "memory"
        assert body["index"] == "memory"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "BoltGraph API"

    def test_stats(self, client, applied):
        stats = client.get("/stats").json()
        assert stats["documents"] == 1
        assert stats["access"]["updates_committed"] == 1


@pytest.mark.integration
class TestDocuments:
    """Tests for applying and reading revisions."""

    def test_first_revision(self, applied):
        assert applied["document_id"] == "doc-1"
        assert applied["parent_revision_id"] is None
        assert applied["tombstoned"] == []
        assert "doc-1" in applied["regenerated"]
        assert applied["full_regeneration"] is False

    def test_incremental_revision(self, client, applied):
        edited = TWO_SECTIONS.replace("every morning", "every evening")
        response = client.post(
            "/documents/doc-1", json={"content": edited, "title": "Port and Bakery"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["parent_revision_id"] == applied["revision_id"]
        assert body["preserved"]
        assert "doc-1" in body["regenerated"]

    def test_hierarchy_without_vectors(self, client, applied):
        body = client.get("/documents/doc-1/hierarchy").json()

        assert body["revision_id"] == applied["revision_id"]
        assert {node["granularity"] for node in body["nodes"]} == {
            "document",
            "section",
            "paragraph",
            "concept",
        }
        assert all("combined_vector" not in node for node in body["nodes"])
        assert any(edge["type"] == "contains" for edge in body["edges"])

    def test_hierarchy_with_vectors(self, client, applied):
        body = client.get("/documents/doc-1/hierarchy", params={"include_vectors": True}).json()
        root = next(node for node in body["nodes"] if node["id"] == "doc-1")
        assert len(root["combined_vector"]) == DIMENSION

    def test_node(self, client, applied):
        response = client.get(
            "/documents/doc-1/nodes/doc-1", params={"revision": applied["revision_id"]}
        )

        assert response.status_code == 200
        assert response.json()["granularity"] == "document"
        assert response.json()["feature_metadata"]["title"] == "Port and Bakery"

    def test_revisions(self, client, applied):
        body = client.get("/documents/doc-1/revisions").json()

        assert body["revisions"] == [applied["revision_id"]]
        assert body["head"] == applied["revision_id"]

    def test_list_documents(self, client, applied):
        assert client.get("/documents").json() == {"documents": ["doc-1"]}

    def test_cancel_without_update(self, client, applied):
        body = client.delete("/documents/doc-1/update").json()
        assert body == {"document_id": "doc-1", "cancelled": False}


@pytest.mark.integration
class TestSearch:
    """Tests for the search endpoint."""

    def test_search_by_query(self, client, applied):
        response = client.post(
            "/search",
            json={
                "query": "crane lifts cargo containers",
                "k": 3,
                "document_id": "doc-1",
                "granularity": "paragraph",
            },
        )

        assert response.status_code == 200
        hits = response.json()
        assert len(hits) == 3
        assert all(hit["granularity"] == "paragraph" for hit in hits)
        assert hits[0]["score"] >= hits[-1]["score"]

    def test_search_by_vector(self, client, applied):
        root = client.get("/documents/doc-1/nodes/doc-1").json()
        response = client.post("/search", json={"vector": root["combined_vector"], "k": 1})

        assert response.json()[0]["node_id"] == "doc-1"
        assert response.json()[0]["score"] == pytest.approx(1.0)

    def test_query_and_vector_rejected(self, client):
        response = client.post("/search", json={"query": "crane", "vector": [1.0]})
        assert response.status_code == 400

    def test_wrong_dimension(self, client, applied):
        response = client.post("/search", json={"vector": [1.0, 0.0]})
        assert response.status_code == 500


@pytest.mark.integration
class TestErrors:
    """Tests for error mapping."""

    def test_blank_document(self, client):
        response = client.post("/documents/doc-1", json={"content": "   "})

        assert response.status_code == 400
        assert "error" in response.json()["detail"]

    def test_unknown_document(self, client):
        assert client.get("/documents/missing/hierarchy").status_code == 404
        assert client.get("/documents/missing/revisions").status_code == 404

    def test_unknown_node(self, client, applied):
        assert client.get("/documents/doc-1/nodes/par_missing").status_code == 404
