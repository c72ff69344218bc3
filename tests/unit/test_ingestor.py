"""Tests for the knowledge base ingest workflow"""

import pytest
from datetime import datetime
from unittest.mock import Mock, patch

from kbingest.errors import DocumentValidationError, PersistenceError
from kbingest.models import (
    DocumentAnalysis, KnowledgeEntry, ProcessingLogEntry, ProcessingResult, RawDocument
)
from kbingest.processing.orchestrator import DocumentProcessor
from kbingest.storage.ingest import KnowledgeBaseIngestor
from kbingest.storage.knowledge_store import KnowledgeStore


RETURNS_POLICY = (
    "Return Policy\n\n"
    "1. Items may be returned within 30 days of delivery for a full refund.\n"
    "2. Refunds are issued to the original payment method within 5 business days.\n"
    "3. Shipping costs are not refundable unless the item arrived damaged.\n"
)


@pytest.fixture
def store(kb_config):
    return KnowledgeStore(kb_config)


@pytest.fixture
def ingestor(kb_config, store):
    return KnowledgeBaseIngestor(kb_config, processor=DocumentProcessor(kb_config), store=store)


def text_document(text=RETURNS_POLICY, name="returns.txt"):
    return RawDocument(content=text.encode("utf-8"), name=name)


def ai_result(*confidences):
    entries = [
        KnowledgeEntry(
            title=f"Entry {i}",
            content=f"Content {i}",
            category="Shipping & Returns",
            confidence_score=confidence,
            tags=["returns"],
            source_type="ai_generated",
            source_section=f"Section {i}, page {i + 1}"
        )
        for i, confidence in enumerate(confidences)
    ]
    return ProcessingResult(
        success=True,
        extracted_text=RETURNS_POLICY,
        analysis=DocumentAnalysis.default(),
        entries=entries,
        processing_log=[ProcessingLogEntry(datetime.now(), 'info', 'done')],
        extraction_method='advanced_stream',
        segmentation_method='ai',
        page_count=2,
        total_tokens=1200,
        estimated_cost=0.018
    )


class TestValidateUpload:
    """Test upload validation"""

    def test_accepts_pdf_and_text(self, ingestor):
        assert ingestor.validate_upload(RawDocument(b"%PDF", "terms.pdf")) == "application/pdf"
        assert ingestor.validate_upload(RawDocument(b"x", "faq.md")) == "text/markdown"

    def test_rejects_word_documents(self, ingestor):
        with pytest.raises(DocumentValidationError, match="Unsupported file type"):
            ingestor.validate_upload(RawDocument(b"PK", "contract.docx"))

    def test_rejects_empty_file(self, ingestor):
        with pytest.raises(DocumentValidationError, match="empty"):
            ingestor.validate_upload(RawDocument(b"", "terms.pdf"))

    def test_rejects_oversized_file(self, kb_config, store):
        kb_config.extraction.max_file_size = 10
        ingestor = KnowledgeBaseIngestor(kb_config, processor=Mock(), store=store)

        with pytest.raises(DocumentValidationError, match="less than"):
            ingestor.validate_upload(RawDocument(b"x" * 11, "terms.pdf"))

    def test_rejection_stores_nothing(self, ingestor, store):
        with pytest.raises(DocumentValidationError):
            ingestor.ingest(RawDocument(b"", "terms.pdf"))

        assert store.select_rows('kb_documents') == []


class TestIngest:
    """Test the ingest workflow"""

    def test_successful_ingest(self, ingestor, store):
        summary = ingestor.ingest(text_document(), title="Returns")

        assert summary['status'] == 'completed'
        assert summary['error'] is None
        assert summary['entries_created'] > 0

        document = store.select_rows('kb_documents', {'id': summary['document_id']})[0]
        assert document['title'] == "Returns"
        assert document['ai_processing_status'] == 'completed'
        assert document['extraction_method'] == 'plain_text'
        assert document['analysis']['language'] == 'en'
        assert isinstance(document['processing_log'], list)
        assert store.objects.read_binary(document['file_path']) == RETURNS_POLICY.encode("utf-8")

        entries = ingestor.get_document_entries(summary['document_id'])
        assert len(entries) == summary['entries_created']
        assert all(entry['is_approved'] is False for entry in entries)
        assert all(entry['source'] == 'pdf_heuristic' for entry in entries)
        assert all(entry['ai_generated'] is False for entry in entries)

    def test_document_insert_failure_removes_binary(self, ingestor, store):
        with patch.object(store, 'insert_rows', side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                ingestor.ingest(text_document())

        assert list(store.objects.root.rglob("*.txt")) == []

    def test_title_defaults_to_file_stem(self, ingestor, store):
        summary = ingestor.ingest(text_document())

        document = store.select_rows('kb_documents', {'id': summary['document_id']})[0]
        assert document['title'] == "returns"

    def test_completed_job(self, ingestor):
        summary = ingestor.ingest(text_document())

        status = ingestor.get_processing_status(summary['document_id'])
        assert status['status'] == 'completed'
        assert status['progress'] == 100
        assert status['current_step'] == 'Processing completed'
        assert status['error_message'] is None
        assert status['entries_generated'] == summary['entries_created']

    def test_max_entries(self, ingestor):
        summary = ingestor.ingest(text_document(), max_entries=1)
        assert summary['entries_created'] == 1

    def test_failed_processing(self, ingestor, store):
        summary = ingestor.ingest(text_document("too short"))

        assert summary['status'] == 'failed'
        assert summary['entries_created'] == 0
        assert "Failed to extract meaningful text" in summary['error']

        document = store.select_rows('kb_documents', {'id': summary['document_id']})[0]
        assert document['ai_processing_status'] == 'failed'
        assert "Failed to extract meaningful text" in document['ai_processing_error']

        status = ingestor.get_processing_status(summary['document_id'])
        assert status['status'] == 'failed'
        assert status['error_message'] == summary['error']
        assert status['entries_generated'] == 0

    def test_progress_follows_pipeline_states(self, kb_config, store):
        reported = []
        ingestor = KnowledgeBaseIngestor(kb_config, processor=DocumentProcessor(kb_config), store=store)
        original = ingestor._update_progress
        ingestor._update_progress = lambda job_id, progress, step: (
            reported.append(progress), original(job_id, progress, step)
        )

        ingestor.ingest(text_document())

        assert reported == [15, 30, 30, 60, 90]

    def test_ai_entries(self, kb_config, store):
        processor = Mock()
        processor.process_document.return_value = ai_result(0.6, 0.9)
        ingestor = KnowledgeBaseIngestor(kb_config, processor=processor, store=store)

        summary = ingestor.ingest(RawDocument(b"%PDF-1.4 body", "terms.pdf"))

        entries = ingestor.get_document_entries(summary['document_id'])
        assert [entry['confidence_score'] for entry in entries] == [0.9, 0.6]
        assert all(entry['source'] == 'pdf_ai_generated' for entry in entries)
        assert all(entry['ai_generated'] is True for entry in entries)
        assert entries[0]['page_number'] == 2
        assert entries[0]['original_text'] == "Section 1, page 2"

        status = ingestor.get_processing_status(summary['document_id'])
        assert status['estimated_cost'] == pytest.approx(0.018)

    def test_no_entries_fails_job(self, kb_config, store):
        processor = Mock()
        processor.process_document.return_value = ai_result()
        ingestor = KnowledgeBaseIngestor(kb_config, processor=processor, store=store)

        summary = ingestor.ingest(RawDocument(b"%PDF-1.4 body", "terms.pdf"))

        assert summary['status'] == 'failed'
        assert "No knowledge base entries" in summary['error']
        assert store.select_rows('knowledge_base') == []


class TestReview:
    """Test review operations on ingested documents"""

    def test_approve_entry(self, ingestor):
        summary = ingestor.ingest(text_document())
        entry_id = ingestor.get_document_entries(summary['document_id'])[0]['id']

        assert ingestor.approve_entry(entry_id) is True

        entry = ingestor.store.get_entry(entry_id)
        assert entry['is_approved'] is True

    def test_approve_missing_entry(self, ingestor):
        assert ingestor.approve_entry(999) is False

    def test_status_for_unknown_document(self, ingestor):
        assert ingestor.get_processing_status(999) is None

    def test_delete_document(self, ingestor, store):
        summary = ingestor.ingest(text_document())
        document_id = summary['document_id']
        file_path = store.select_rows('kb_documents', {'id': document_id})[0]['file_path']

        assert ingestor.delete_document(document_id) is True

        assert ingestor.get_document_entries(document_id) == []
        assert ingestor.get_processing_status(document_id) is None
        assert not (store.objects.root / file_path).exists()

    def test_delete_missing_document(self, ingestor):
        assert ingestor.delete_document(999) is False
