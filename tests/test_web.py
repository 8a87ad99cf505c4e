"""Tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from pagevault.models import Project
from pagevault.web import create_web_app, format_results


@pytest.fixture
def client(config, registry, health):
    return TestClient(create_web_app(config, registry, health))


@pytest.fixture
def built(registry, project):
    registry.create_or_update_index(project)
    return registry


BASE = "/api/projects/alpha"


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["projects_indexed"] == 0
        assert body["embedding_model"] == "all-MiniLM-L6-v2"


class TestVectors:
    def test_stats_before_build(self, client):
        r = client.get(f"{BASE}/vectors")
        assert r.status_code == 200
        body = r.json()
        assert body["projectTitle"] == "Alpha"
        assert body["hybridRetriever"]["status"] == "absent"
        assert body["hybridRetriever"]["initialized"] is False

    def test_build(self, client):
        r = client.post(f"{BASE}/vectors")
        assert r.status_code == 200
        assert r.json() == {"success": True}
        stats = client.get(f"{BASE}/vectors").json()["hybridRetriever"]
        assert stats["status"] == "ready"
        assert stats["chunkCount"] == 5

    def test_build_failure(self, client, semantic):
        semantic.fail_rebuild = True
        r = client.post(f"{BASE}/vectors")
        assert r.status_code == 500
        body = r.json()
        assert body["success"] is False
        assert "embedding service unreachable" in body["details"]

    def test_unknown_project(self, client):
        assert client.get("/api/projects/ghost/vectors").status_code == 404
        r = client.post("/api/projects/ghost/vectors")
        assert r.status_code == 404
        assert r.json() == {"error": "Project not found"}

    def test_reinitialize(self, client, built):
        r = client.put(f"{BASE}/vectors", json={"action": "reinitialize-hybrid"})
        assert r.status_code == 200
        assert r.json()["message"] == "Hybrid retriever reinitialized successfully"
        assert built.get_state("alpha").build_count == 2

    def test_reinitialize_invalid_action(self, client):
        r = client.put(f"{BASE}/vectors", json={"action": "rebuild-everything"})
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid action"

    def test_reinitialize_failure(self, client, built, semantic):
        semantic.fail_rebuild = True
        r = client.put(f"{BASE}/vectors", json={"action": "reinitialize-hybrid"})
        assert r.status_code == 500
        assert r.json()["success"] is False

    def test_regenerate_vectors(self, client, built):
        r = client.post(f"{BASE}/regenerate-vectors")
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["projectId"] == "alpha"
        assert body["projectTitle"] == "Alpha"
        assert built.get_state("alpha").build_count == 2

    def test_regenerate_vectors_without_prior_index(self, client, registry):
        r = client.post(f"{BASE}/regenerate-vectors")
        assert r.status_code == 200
        assert registry.get_state("alpha").status == "ready"

    def test_regenerate_vectors_failure(self, client, built, semantic):
        semantic.fail_rebuild = True
        r = client.post(f"{BASE}/regenerate-vectors")
        assert r.status_code == 500
        body = r.json()
        assert body["success"] is False
        assert "embedding service unreachable" in body["details"]
        assert built.get_state("alpha").status == "failed"

    def test_regenerate_vectors_unknown_project(self, client):
        r = client.post("/api/projects/ghost/regenerate-vectors")
        assert r.status_code == 404
        assert r.json() == {"error": "Project not found"}

    def test_regenerate_all(self, client, store):
        store.put_project(Project(id="empty", title="Empty"), notify=False)
        r = client.post("/api/regenerate-all-vectors")
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["results"]["successful"] == 1
        assert body["results"]["total"] == 2


class TestSearch:
    def test_search(self, client, built):
        r = client.post(f"{BASE}/search", json={"query": "budget allocation", "k": 3})
        assert r.status_code == 200
        body = r.json()
        assert body["indexAvailable"] is True
        assert body["degraded"] is False
        assert 0 < body["count"] <= 3
        first = body["results"][0]
        assert first["rank"] == 1
        assert first["pageTitle"] == "Budget"
        assert first["pageId"] == "p-budget"
        assert first["metadata"]["projectId"] == "alpha"

    def test_search_without_index(self, client):
        body = client.post(f"{BASE}/search", json={"query": "budget"}).json()
        assert body["indexAvailable"] is False
        assert body["results"] == []

    def test_degraded_search(self, client, built, semantic):
        semantic.fail_search = True
        body = client.post(f"{BASE}/search", json={"query": "budget"}).json()
        assert body["degraded"] is True
        assert body["results"][0]["source"] == "lexical"

    def test_stop_word_query_reports_lexical_fallback(self, client, built):
        body = client.post(f"{BASE}/search", json={"query": "the and of"}).json()
        assert body["lexicalFallback"] is True
        assert body["error"] is None
        assert body["count"] > 0

    def test_content_query_not_lexical_fallback(self, client, built):
        body = client.post(f"{BASE}/search", json={"query": "budget"}).json()
        assert body["lexicalFallback"] is False

    def test_degraded_search_reports_error(self, client, built, semantic):
        semantic.fail_search = True
        body = client.post(f"{BASE}/search", json={"query": "the and of"}).json()
        assert body["degraded"] is True
        assert body["lexicalFallback"] is True
        assert body["error"]

    def test_hybrid_summary_flags(self, client, built):
        summary = client.post(
            f"{BASE}/test-hybrid-search", json={"query": "the and of"},
        ).json()["summary"]
        assert summary["lexicalFallback"] is True
        assert summary["error"] is None
        summary = client.post(
            f"{BASE}/test-hybrid-search", json={"query": "budget"},
        ).json()["summary"]
        assert summary["lexicalFallback"] is False

    def test_custom_weights(self, client, built):
        r = client.post(f"{BASE}/test-hybrid-search", json={
            "query": "pasta recipe", "weights": {"semantic": 1.0, "keyword": 0.0},
        })
        assert r.status_code == 200
        body = r.json()
        assert body["weights"] == {"semantic": 1.0, "keyword": 0.0}
        assert body["hybridResults"][0]["pageTitle"] == "Recipes"
        assert body["semanticResults"][0]["type"] == "semantic"
        assert body["summary"]["hybridRetrieverStats"]["status"] == "ready"

    def test_default_weights_reported(self, client, built):
        body = client.post(f"{BASE}/test-hybrid-search", json={"query": "budget"}).json()
        assert body["weights"]["semantic"] == pytest.approx(0.7)
        assert body["weights"]["keyword"] == pytest.approx(0.3)

    @pytest.mark.parametrize("payload", [
        {"query": ""},
        {"query": "   "},
        {},
        {"query": "budget", "k": 0},
        {"query": "budget", "weights": {"semantic": 1.5, "keyword": 0.3}},
        {"query": "budget", "weights": {"semantic": 0.0, "keyword": 0.0}},
        {"query": "budget", "weights": {"semantic": "0.7", "keyword": 0.3}},
        {"query": "budget", "weights": {"semantic": "0.7", "keyword": "0.3"}},
        {"query": "budget", "weights": {"semantic": True, "keyword": 0}},
        {"query": "budget", "weights": {"semantic": None, "keyword": 0.3}},
    ])
    def test_invalid_input(self, client, built, payload):
        r = client.post(f"{BASE}/test-hybrid-search", json=payload)
        assert r.status_code == 400
        assert "error" in r.json()

    def test_blank_query_message(self, client, built):
        r = client.post(f"{BASE}/search", json={"query": ""})
        assert r.json() == {"error": "Query is required"}

    def test_unknown_project(self, client):
        r = client.post("/api/projects/ghost/test-hybrid-search", json={"query": "budget"})
        assert r.status_code == 404


class TestRetrievalQuality:
    def test_report(self, client, built):
        r = client.post(f"{BASE}/test-retrieval-quality", json={"query": "budget"})
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["analysis"]["query"] == "budget"
        assert "qualityMetrics" in body["analysis"]

    def test_requires_query(self, client):
        assert client.post(f"{BASE}/test-retrieval-quality", json={}).status_code == 400


class TestFormatResults:
    def test_preview_truncation(self, built):
        hits = built.lexical_search("alpha", "budget allocation", 1)
        formatted = format_results(hits, "lexical", 10)
        assert formatted[0]["content"] == "Q3 revenue..."
        assert formatted[0]["type"] == "lexical"

    def test_short_content_not_marked(self, built):
        hits = built.lexical_search("alpha", "pasta", 1)
        assert format_results(hits, "lexical", 500)[0]["content"] == "pasta and tomato sauce recipe"
