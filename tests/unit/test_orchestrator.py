"""Tests for the document processing pipeline"""

import logging
import pytest
from unittest.mock import Mock, MagicMock

from kbingest.analysis.analyzer import DocumentAnalyzer
from kbingest.errors import SegmentationDelegationError, TransientNetworkError
from kbingest.models import DocumentAnalysis, KnowledgeEntry, MANUAL_ENTRY_METHOD, RawDocument
from kbingest.processing.orchestrator import (
    DocumentProcessor, ProcessingLog, ProcessingState, infer_media_type
)
from kbingest.segmentation.delegated import DelegatedSegmenter, DelegationResult
from kbingest.segmentation.heuristic import HeuristicSegmenter


SCENARIO_TEXT = "1. Returns must be made within 7 days.\n2. Contact support@site.com for help."


def text_document(text=SCENARIO_TEXT, name="returns.txt"):
    return RawDocument(content=text.encode("utf-8"), name=name)


class TestInferMediaType:
    """Test media type inference"""

    @pytest.mark.parametrize("name,expected", [
        ("terms.pdf", "application/pdf"),
        ("TERMS.PDF", "application/pdf"),
        ("notes.txt", "text/plain"),
        ("README.md", "text/markdown"),
        ("contract.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
        ("contract.doc", "application/msword"),
        ("archive.zip", "application/pdf"),
        ("no_extension", "application/pdf"),
    ])
    def test_inference(self, name, expected):
        assert infer_media_type(name) == expected


class TestProcessingLog:
    """Test the processing log"""

    def test_records_and_mirrors(self):
        logger = MagicMock()
        log = ProcessingLog(logger)

        log.info("started", {"fileName": "a.pdf"})
        log.warning("slow")
        log.error("failed", {"error": "boom"})

        assert len(log) == 3
        assert [entry.level for entry in log.entries] == ["info", "warning", "error"]
        assert log.entries[0].details == {"fileName": "a.pdf"}
        logger.log.assert_any_call(logging.INFO, "started: {'fileName': 'a.pdf'}")
        logger.log.assert_any_call(logging.WARNING, "slow")

    def test_timestamps_are_ordered(self):
        log = ProcessingLog(MagicMock())
        log.info("one")
        log.info("two")

        assert log.entries[0].timestamp <= log.entries[1].timestamp


class TestDocumentProcessor:
    """Test DocumentProcessor"""

    def test_process_text_document(self, kb_config):
        processor = DocumentProcessor(config=kb_config)
        states = []

        result = processor.process_document(text_document(), on_state_change=states.append)

        assert result.success is True
        assert result.extracted_text == SCENARIO_TEXT
        assert result.extraction_method == "plain_text"
        assert result.segmentation_method == "heuristic"
        assert result.page_count == 1
        assert result.analysis.structure == "numbered"
        assert result.entries[0].title == "Returns must be made within 7 days."
        assert result.total_tokens == 0
        assert result.errors == []
        assert states == [
            ProcessingState.IDLE, ProcessingState.EXTRACTING, ProcessingState.ANALYZING,
            ProcessingState.SEGMENTING, ProcessingState.DONE
        ]

    def test_log_messages(self, kb_config):
        result = DocumentProcessor(config=kb_config).process_document(text_document())
        messages = [entry.message for entry in result.processing_log]

        assert messages[0] == "Starting document processing"
        assert "Document analysis completed" in messages
        assert "Knowledge entries generated" in messages
        assert messages[-1] == "Document processing completed successfully"
        assert result.processing_log[0].details == {
            "fileName": "returns.txt",
            "fileSize": len(SCENARIO_TEXT),
            "mediaType": "text/plain"
        }

    def test_process_pdf_document(self, kb_config, stream_pdf_bytes):
        document = RawDocument(content=stream_pdf_bytes, name="returns.pdf")

        result = DocumentProcessor(config=kb_config).process_document(document)

        assert result.success is True
        assert result.extraction_method == "advanced_stream"
        assert result.page_count == 1
        assert "Returns must be made within thirty days" in result.extracted_text

    def test_max_entries_bound(self, kb_config):
        text = "\n".join(f"{i}. Customers must follow rule {i} when ordering" for i in range(1, 41))

        result = DocumentProcessor(config=kb_config).process_document(text_document(text), max_entries=5)

        assert len(result.entries) == 5

    def test_max_entries_defaults_to_config(self, kb_config):
        kb_config.segmentation.max_entries = 7
        text = "\n".join(f"{i}. Customers must follow rule {i} when ordering" for i in range(1, 41))

        result = DocumentProcessor(config=kb_config).process_document(text_document(text))

        assert len(result.entries) == 7

    def test_word_document_fails(self, kb_config):
        document = RawDocument(content=b"PK\x03\x04 word content", name="contract.docx")
        states = []

        result = DocumentProcessor(config=kb_config).process_document(
            document, on_state_change=states.append
        )

        assert result.success is False
        assert result.extracted_text == ""
        assert result.entries == []
        assert result.analysis == DocumentAnalysis.default()
        assert result.errors == ["Document processing failed"]
        assert "Unsupported document type" in result.processing_log[-1].details["error"]
        assert states[-1] == ProcessingState.FAILED

    def test_short_text_fails(self, kb_config):
        result = DocumentProcessor(config=kb_config).process_document(text_document("Too short."))

        assert result.success is False
        assert result.processing_log[-1].details == {
            "error": "Failed to extract meaningful text from document"
        }

    def test_unreadable_pdf_uses_templates(self, kb_config):
        document = RawDocument(content=bytes(range(128, 256)) * 4, name="scan.pdf")

        result = DocumentProcessor(config=kb_config).process_document(document)

        assert result.success is True
        assert result.extraction_method == MANUAL_ENTRY_METHOD
        assert result.segmentation_method == "template"
        assert [entry.title for entry in result.entries] == [
            "Account Registration Terms", "Service Usage Restrictions", "Payment and Billing Terms"
        ]
        warnings = [entry.message for entry in result.processing_log if entry.level == "warning"]
        assert "All extraction methods failed, manual entry required" in warnings

    def test_unknown_media_type_attempts_pdf(self, kb_config, stream_pdf_bytes):
        document = RawDocument(content=stream_pdf_bytes, name="returns.bin", media_type="application/octet-stream")

        result = DocumentProcessor(config=kb_config).process_document(document)

        assert result.success is True
        assert result.extraction_method == "advanced_stream"
        assert any(
            "Unknown media type" in entry.message for entry in result.processing_log
            if entry.level == "warning"
        )

    def test_delegate_success(self, kb_config):
        entry = KnowledgeEntry(
            title="Return window", content="Returns within 7 days.", category="Shipping & Returns",
            confidence_score=0.9, source_type="ai_generated"
        )
        delegate = Mock()
        delegate.segment.return_value = DelegationResult(
            entries=[entry], summary="ok", model="openai/gpt-4-turbo",
            total_tokens=1500, estimated_cost=0.024
        )

        result = DocumentProcessor(config=kb_config, delegate=delegate).process_document(
            text_document(), title="Store Terms"
        )

        assert result.segmentation_method == "ai"
        assert result.entries == [entry]
        assert result.total_tokens == 1500
        assert result.estimated_cost == 0.024
        args = delegate.segment.call_args[0]
        assert args[0] == SCENARIO_TEXT
        assert args[2] == "Store Terms"

    def test_delegation_failure_equals_heuristic(self, kb_config):
        provider = Mock()
        provider.chat_completion.side_effect = TransientNetworkError("Network connection failed")
        delegate = DelegatedSegmenter(provider, kb_config.segmentation)

        result = DocumentProcessor(config=kb_config, delegate=delegate).process_document(
            text_document(), max_entries=20
        )

        analysis = DocumentAnalyzer().analyze(SCENARIO_TEXT, "returns.txt")
        expected = HeuristicSegmenter().segment(SCENARIO_TEXT, analysis, 20)

        assert result.success is True
        assert result.segmentation_method == "heuristic"
        assert result.entries == expected
        assert any(
            entry.message == "AI segmentation failed, using heuristic segmentation"
            for entry in result.processing_log
        )

    def test_delegation_error_from_mock(self, kb_config):
        delegate = Mock()
        delegate.segment.side_effect = SegmentationDelegationError("Language model returned no entries")

        result = DocumentProcessor(config=kb_config, delegate=delegate).process_document(text_document())

        assert result.success is True
        assert result.segmentation_method == "heuristic"

    def test_result_serializes(self, kb_config):
        result = DocumentProcessor(config=kb_config).process_document(text_document())
        data = result.to_dict()

        assert data["success"] is True
        assert data["analysis"]["document_type"] == result.analysis.document_type
        assert isinstance(data["processing_log"][0]["timestamp"], str)


class TestFromConfig:
    """Test processor construction from configuration"""

    def test_ai_disabled(self, kb_config):
        assert DocumentProcessor.from_config(kb_config, use_ai=False).delegate is None

    def test_ai_without_api_key(self, kb_config):
        processor = DocumentProcessor.from_config(kb_config, use_ai=True)
        assert processor.delegate is None

    def test_ai_with_api_key(self, kb_config):
        kb_config.openrouter.api_key = "sk-or-test"
        processor = DocumentProcessor.from_config(kb_config, use_ai=True)
        assert isinstance(processor.delegate, DelegatedSegmenter)

    def test_uses_config_flag(self, kb_config):
        kb_config.openrouter.api_key = "sk-or-test"
        kb_config.segmentation.use_ai = True
        assert DocumentProcessor.from_config(kb_config).delegate is not None
