# =============================================================================
# API Tests — /health and the database-free /files endpoints
# =============================================================================
#
# The processor dependency is overridden with one wired to the in-memory
# store and a fake embedder. TestClient is used without a `with` block so
# the lifespan (database initialisation) never runs.
# =============================================================================

import pytest
from fastapi.testclient import TestClient

from chunkwise.api.deps import get_processor
from chunkwise.config import settings
from chunkwise.main import app
from chunkwise.services.chunk_store import InMemoryChunkStore
from chunkwise.services.document_source import SourceDocument
from chunkwise.services.processing import DocumentProcessor

SAMPLE_TEXT = "\n\n".join(
    " ".join(f"Paragraph {p} sentence {s} covers quarterly results." for s in range(8))
    for p in range(6)
)


def _fake_embed(text: str) -> list[float]:
    return [float(len(text)), float(text.count("a")), 1.0]


@pytest.fixture
def processor():
    proc = DocumentProcessor(InMemoryChunkStore(), _fake_embed)
    app.dependency_overrides[get_processor] = lambda: proc
    yield proc
    app.dependency_overrides.clear()


@pytest.fixture
def client(processor):
    return TestClient(app)


class TestHealth:
    """Tests for GET /health."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == settings.app_version
        assert body["vectorstore"] == settings.vectorstore_type


class TestAnalyze:
    """Tests for POST /files/analyze."""

    def test_reports_all_strategies(self, client):
        response = client.post(
            "/files/analyze",
            files={"file": ("results.txt", SAMPLE_TEXT.encode(), "text/plain")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["file_name"] == "results.txt"
        assert body["total_characters"] == len(SAMPLE_TEXT)
        assert [s["name"] for s in body["strategies"]] == [
            "Character Splitter",
            "Sentence Splitter",
            "Paragraph Splitter",
        ]

    def test_binary_upload_rejected(self, client):
        response = client.post(
            "/files/analyze",
            files={"file": ("report.pdf", b"%PDF-1.7 binary", "application/pdf")},
        )

        assert response.status_code == 415
        assert response.json()["error"]["code"] == "UNSUPPORTED_DOCUMENT"

    def test_empty_upload_rejected(self, client):
        response = client.post(
            "/files/analyze",
            files={"file": ("empty.txt", b"", "text/plain")},
        )
        assert response.status_code == 400


class TestSearchAndChunks:
    """Tests for GET /files/search and GET /files/{file_id}/chunks."""

    def test_search_returns_ranked_hits(self, client, processor):
        processor.process_document(SourceDocument(4, "q3.txt", SAMPLE_TEXT))

        response = client.get("/files/search", params={"query": "quarterly results", "limit": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == len(body["results"])
        assert 0 < body["count"] <= 3
        assert body["results"][0]["file_name"] == "q3.txt"
        scores = [hit["similarity_score"] for hit in body["results"]]
        assert scores == sorted(scores, reverse=True)

    def test_search_limit_above_maximum_rejected(self, client):
        response = client.get(
            "/files/search",
            params={"query": "q", "limit": settings.search_max_limit + 1},
        )
        assert response.status_code == 422

    def test_chunks_listing(self, client, processor):
        result = processor.process_document(SourceDocument(9, "notes.txt", SAMPLE_TEXT))

        response = client.get("/files/9/chunks")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] > 0
        assert [c["chunk_index"] for c in body["chunks"]] == list(range(body["count"]))
        assert body["chunks"][0]["strategy"] == result.selected_strategy
        assert body["chunks"][0]["embedding_dimensions"] == 3

    def test_chunks_for_unknown_file_is_empty(self, client):
        response = client.get("/files/404/chunks")
        assert response.status_code == 200
        assert response.json()["chunks"] == []
