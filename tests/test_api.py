import pytest
from fastapi.testclient import TestClient

from docsearch.config import reset_settings_cache
from docsearch.errors import StoreError
from docsearch.ingest.extractors import ExtractedDocument
from docsearch.service import get_search_service
from docsearch.synthesis import AnswerSynthesizer

DETROIT_TEXT = "Wisconsin brick cheese blend is mandatory for the Detroit-style pizza."


class FakeExtractor:
    def extract(self, data: bytes) -> ExtractedDocument:
        return ExtractedDocument(text=DETROIT_TEXT, page_count=1)


@pytest.fixture
def client(service, tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    reset_settings_cache()
    from docsearch.main import app

    app.dependency_overrides[get_search_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload(client, name="menu.pdf", content_type="application/pdf", organization_id="org"):
    return client.post(
        f"/organizations/{organization_id}/files",
        files={"file": (name, b"%PDF-1.4 fake", content_type)},
    )


def test_healthcheck(client):
    assert client.get("/healthz").text == "ok"


def test_upload_list_search_and_delete(client, service):
    service.pipeline.extractor = FakeExtractor()

    response = upload(client)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["chunk_count"] == 1
    assert body["file"]["has_embeddings"] is True

    files = client.get("/organizations/org/files").json()
    assert [item["file_name"] for item in files] == ["menu.pdf"]

    answer = client.post(
        "/organizations/org/search",
        json={"query": "What cheese is mandatory for the Detroit-style pizza?", "mode": "extractive"},
    )
    assert answer.status_code == 200
    assert answer.json()["content"] == DETROIT_TEXT

    deleted = client.delete(
        f"/organizations/org/files/{files[0]['id']}", params={"storage_path": files[0]["storage_path"]}
    )
    assert deleted.json() == {"status": "ok", "removed_chunks": 1}
    assert client.get("/organizations/org/files").json() == []


def test_upload_rejects_non_pdf(client):
    response = upload(client, name="notes.txt", content_type="text/plain")

    assert response.status_code == 415
    assert response.json()["detail"] == "Invalid file type. Only PDF files are supported."


def test_failed_ingestion_reports_storage_path(client):
    response = upload(client, name="broken.pdf")

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["message"] == "Failed to process PDF for embeddings"
    assert detail["storage_path"].startswith("organizations/org/")


def test_delete_outside_organization_is_rejected(client):
    response = client.delete("/organizations/org/files/abc", params={"storage_path": "organizations/other/x.pdf"})

    assert response.status_code == 400


def test_organization_with_unsafe_characters_can_delete_its_upload(client, service):
    service.pipeline.extractor = FakeExtractor()

    stored = upload(client, organization_id="acme corp").json()
    assert stored["storage_path"].startswith(service.file_storage.organization_prefix("acme corp"))
    assert not stored["storage_path"].startswith("organizations/acme_corp/")

    files = client.get("/organizations/acme corp/files").json()
    deleted = client.delete(
        f"/organizations/acme corp/files/{files[0]['id']}", params={"storage_path": stored["storage_path"]}
    )

    assert deleted.status_code == 200
    assert deleted.json() == {"status": "ok", "removed_chunks": 1}
    assert client.get("/organizations/acme corp/files").json() == []
    assert not (service.file_storage.root / stored["storage_path"]).exists()


def test_search_validation_and_no_match(client):
    assert client.post("/organizations/org/search", json={"query": ""}).status_code == 422
    assert client.post("/organizations/org/search", json={"query": "   "}).status_code == 422

    response = client.post("/organizations/org/search", json={"query": "Anything about cheese?"})
    assert response.json() == {"content": "I couldn't find a relevant answer in the document.", "similarity": 0.0}


def test_store_failure_maps_to_generic_503(client, service, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("connection refused by 10.0.0.3")

    monkeypatch.setattr(service.store, "fetch_candidates", broken)

    response = client.post("/organizations/org/search", json={"query": "cheese?"})

    assert response.status_code == 503
    assert response.json()["detail"] == "Search failed"


def test_run_default_tests_and_grade(client):
    summary = client.post("/organizations/org/tests/run", json={}).json()

    assert summary["total_tests"] == 3
    assert summary["passed_tests"] == 0
    assert "Consider lowering similarity threshold" in summary["suggestions"]

    test_id = summary["detailed_results"][0]["test_id"]
    graded = client.post(
        "/organizations/org/grades",
        json={"test_id": test_id, "query": "q", "bot_response": "r", "score": 3, "graded_by": "qa"},
    )
    assert graded.status_code == 200
    assert graded.json()["score"] == 3.0

    bad = client.post(
        "/organizations/org/grades",
        json={"test_id": test_id, "query": "q", "bot_response": "r", "score": "high", "graded_by": "qa"},
    )
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Grade must be a number"


def test_generate_tests_and_single_run(client, service, completion_provider):
    service.pipeline.extractor = FakeExtractor()
    upload(client)
    completion_provider.queue(
        '{"queries": [{"query": "Is the brick cheese aged?", "category": "Menu", "complexity": "simple"}]}',
        '{"queries": [{"query": "Which pan do you use?", "category": "Technical", "complexity": "simple"}]}',
    )

    generated = client.post("/organizations/org/tests/generate", json={"file_name": "menu.pdf", "count": 1})
    assert generated.status_code == 200
    assert generated.json()[0]["category"] == "Menu & Ingredients"

    single = client.post("/organizations/org/tests/single")
    assert single.status_code == 200
    assert single.json()["source_file"] == "menu.pdf"
    assert single.json()["score"] is None


def test_single_run_without_pdfs_is_client_error(client):
    response = client.post("/organizations/org/tests/single")

    assert response.status_code == 400
    assert response.json()["detail"] == "No PDF files found for this organization"


def test_search_internal_failure_hides_details(client, service, monkeypatch):
    service.pipeline.extractor = FakeExtractor()
    upload(client)

    async def switched_model(query):
        return [1.0, 0.0]

    monkeypatch.setattr(service.embedder, "embed_query", switched_model)

    response = client.post("/organizations/org/search", json={"query": "Which cheese?", "mode": "extractive"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Search failed"


def test_generative_search_without_completion_provider_is_client_error(client, service):
    service.synthesizer = AnswerSynthesizer(None, default_mode="extractive")
    service.pipeline.extractor = FakeExtractor()
    upload(client)

    response = client.post(
        "/organizations/org/search",
        json={"query": "What cheese is mandatory for the Detroit-style pizza?", "mode": "generative"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Generative answers need a completion provider"
