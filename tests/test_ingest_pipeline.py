import logging
from types import SimpleNamespace

import pytest

from docsearch.embeddings import EmbedderGateway
from docsearch.errors import EmbeddingError, InputValidationError
from docsearch.ingest import IngestPipeline, PDFExtractor
from docsearch.ingest import extractors as extractors_module
from docsearch.ingest.extractors import ExtractedDocument
from docsearch.providers import EmbeddingProvider, MockEmbeddingProvider


class FakeExtractor:
    def __init__(self, text: str, page_count: int = 2) -> None:
        self.text = text
        self.page_count = page_count

    def extract(self, data: bytes) -> ExtractedDocument:
        return ExtractedDocument(text=self.text, page_count=self.page_count)


class FlakyProvider(EmbeddingProvider):
    model_name = "flaky"

    def __init__(self, fail_on: str) -> None:
        self.fail_on = fail_on

    async def embed(self, text: str) -> list[float]:
        if self.fail_on in text:
            raise RuntimeError("embedding service unavailable")
        return [1.0, 0.5, 0.25]


DOCUMENT = "\n\n".join(
    [
        "Wisconsin brick cheese blend is mandatory for the Detroit-style pizza.",
        "Dough ferments for a minimum of 24 hours.",
        "Late deliveries receive complimentary breadsticks.",
    ]
)


class RecordingHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def audit_records():
    logger = logging.getLogger("docsearch.ingest.audit")
    handler = RecordingHandler()
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


@pytest.mark.parametrize(
    ("organization_id", "storage_path", "data", "mime_type", "reason"),
    [
        ("org", "organizations/org/a.pdf", b"", "application/pdf", "File is required"),
        ("", "organizations/org/a.pdf", b"%PDF", "application/pdf", "Organization ID is required"),
        ("org", "", b"%PDF", "application/pdf", "File path is required"),
        ("org", "organizations/org/a.txt", b"text", "text/plain", "Invalid file type. Only PDF files are supported."),
    ],
)
@pytest.mark.anyio
async def test_invalid_uploads_are_rejected_before_any_call(
    store, settings, organization_id, storage_path, data, mime_type, reason
):
    provider = MockEmbeddingProvider()
    pipeline = IngestPipeline(store, EmbedderGateway(provider), extractor=FakeExtractor(DOCUMENT), settings=settings)

    with pytest.raises(InputValidationError) as excinfo:
        await pipeline.ingest(organization_id, "a.pdf", storage_path, data, mime_type)

    assert excinfo.value.reason == reason
    assert provider.calls == []
    assert store.list_files("org") == []


@pytest.mark.anyio
async def test_ingest_stores_chunks_and_marks_file(store, settings, embedder):
    settings.max_chunk_size = 80
    pipeline = IngestPipeline(store, embedder, extractor=FakeExtractor(DOCUMENT, page_count=3), settings=settings)

    result = await pipeline.ingest("org", "menu.pdf", "organizations/org/1-menu.pdf", b"%PDF-1.4", "application/pdf")

    assert result.chunk_count == 3
    assert result.page_count == 3
    assert result.source_file.has_embeddings
    chunks = store.fetch_file_chunks("org", "menu.pdf")
    assert [chunk.chunk_index for chunk in chunks] == [1, 2, 3]
    assert all(chunk.total_chunks == 3 and chunk.page_count == 3 for chunk in chunks)
    assert all(chunk.storage_path == "organizations/org/1-menu.pdf" for chunk in chunks)


@pytest.mark.anyio
async def test_reingesting_same_file_does_not_duplicate(store, settings, embedder):
    pipeline = IngestPipeline(store, embedder, extractor=FakeExtractor(DOCUMENT), settings=settings)

    for _ in range(2):
        await pipeline.ingest("org", "menu.pdf", "organizations/org/1-menu.pdf", b"%PDF", "application/pdf")

    assert len(store.fetch_file_chunks("org", "menu.pdf")) == 1
    assert len(store.list_files("org")) == 1


@pytest.mark.anyio
async def test_embedding_failure_leaves_file_unembedded(store, settings):
    settings.max_chunk_size = 80
    pipeline = IngestPipeline(
        store,
        EmbedderGateway(FlakyProvider(fail_on="breadsticks")),
        extractor=FakeExtractor(DOCUMENT),
        settings=settings,
    )

    with pytest.raises(EmbeddingError):
        await pipeline.ingest("org", "menu.pdf", "organizations/org/1-menu.pdf", b"%PDF", "application/pdf")

    assert store.fetch_candidates("org") == []
    source_file = store.get_file_by_path("organizations/org/1-menu.pdf")
    assert source_file is not None
    assert not source_file.has_embeddings


@pytest.mark.anyio
async def test_ingest_writes_audit_record(store, settings, embedder, audit_records):
    pipeline = IngestPipeline(store, embedder, extractor=FakeExtractor(DOCUMENT), settings=settings)

    await pipeline.ingest("org", "menu.pdf", "organizations/org/1-menu.pdf", b"%PDF", "application/pdf")

    audit = [record.msg for record in audit_records]
    assert audit and audit[-1]["status"] == "ok"
    assert audit[-1]["file"] == "menu.pdf"
    assert audit[-1]["chunks"] == 1


def test_pdf_extractor_joins_pages_as_paragraphs(monkeypatch):
    pages = [
        SimpleNamespace(extract_text=lambda: "Page   one\nline two"),
        SimpleNamespace(extract_text=lambda: None),
        SimpleNamespace(extract_text=lambda: "Page three"),
    ]
    monkeypatch.setattr(extractors_module, "PdfReader", lambda stream: SimpleNamespace(pages=pages))

    document = PDFExtractor().extract(b"%PDF")

    assert document.page_count == 3
    assert document.text == "Page one line two\n\n\n\nPage three"


def test_pdf_extractor_rejects_unreadable_bytes():
    with pytest.raises(InputValidationError, match="Could not read PDF"):
        PDFExtractor().extract(b"definitely not a pdf")
