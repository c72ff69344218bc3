"""Document processing pipeline: extraction, analysis and segmentation"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from kbingest.analysis.analyzer import DocumentAnalyzer
from kbingest.config import KBConfig
from kbingest.errors import (
    ExtractionError, LLMAPIError, SegmentationDelegationError, UnsupportedDocumentError
)
from kbingest.extraction.text_extractor import TextExtractor
from kbingest.llm.provider import LLMProvider
from kbingest.logging_setup import get_logger, log_performance
from kbingest.models import (
    DocumentAnalysis, ExtractedText, KnowledgeEntry, ProcessingLogEntry,
    ProcessingResult, RawDocument
)
from kbingest.segmentation.delegated import DelegatedSegmenter, DelegationResult
from kbingest.segmentation.heuristic import HeuristicSegmenter


PDF_MEDIA_TYPE = 'application/pdf'
TEXT_MEDIA_TYPES = ('text/plain', 'text/markdown')
WORD_MEDIA_TYPES = (
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
)

EXTENSION_MEDIA_TYPES = {
    'pdf': PDF_MEDIA_TYPE,
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'doc': 'application/msword',
    'txt': 'text/plain',
    'md': 'text/markdown'
}

PLAIN_TEXT_METHOD = "plain_text"


def infer_media_type(file_name: str) -> str:
    """Guess a media type from the file extension; unknown extensions are treated as PDF"""
    extension = Path(file_name).suffix.lower().lstrip('.')
    return EXTENSION_MEDIA_TYPES.get(extension, PDF_MEDIA_TYPE)


class ProcessingState(Enum):
    """Stages a document passes through"""
    IDLE = "idle"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    SEGMENTING = "segmenting"
    DONE = "done"
    FAILED = "failed"


class ProcessingLog:
    """Append-only record of one processing run, mirrored onto a logger"""

    LEVELS = {
        'info': logging.INFO,
        'warning': logging.WARNING,
        'error': logging.ERROR
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.entries: List[ProcessingLogEntry] = []
        self.logger = logger or get_logger(__name__)

    def append(self, level: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.entries.append(ProcessingLogEntry(
            timestamp=datetime.now(),
            level=level,
            message=message,
            details=details
        ))
        if details:
            self.logger.log(self.LEVELS[level], f"{message}: {details}")
        else:
            self.logger.log(self.LEVELS[level], message)

    def info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.append('info', message, details)

    def warning(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.append('warning', message, details)

    def error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.append('error', message, details)

    def __len__(self) -> int:
        return len(self.entries)


StateCallback = Callable[[ProcessingState], None]


class DocumentProcessor:
    """Coordinates extraction, analysis and segmentation of uploaded documents

    Instances hold no per-document state, so one processor may serve
    several documents concurrently.
    """

    def __init__(self, config: Optional[KBConfig] = None,
                 delegate: Optional[DelegatedSegmenter] = None,
                 extractor: Optional[TextExtractor] = None,
                 analyzer: Optional[DocumentAnalyzer] = None,
                 segmenter: Optional[HeuristicSegmenter] = None):
        """
        Initialize the processor

        Args:
            config: kbingest configuration. If None, loads default config.
            delegate: Language-model segmenter; heuristics only when None
        """
        self.config = config or KBConfig.load()
        self.logger = get_logger(f"{__name__}.DocumentProcessor")
        self.extractor = extractor or TextExtractor()
        self.analyzer = analyzer or DocumentAnalyzer()
        self.segmenter = segmenter or HeuristicSegmenter()
        self.delegate = delegate

    @classmethod
    def from_config(cls, config: KBConfig, use_ai: Optional[bool] = None) -> 'DocumentProcessor':
        """Build a processor, wiring the language-model segmenter when enabled and configured"""
        if use_ai is None:
            use_ai = config.segmentation.use_ai

        delegate = None
        if use_ai:
            try:
                provider = LLMProvider(config.openrouter)
                delegate = DelegatedSegmenter(provider, config.segmentation)
            except LLMAPIError as e:
                get_logger(f"{__name__}.DocumentProcessor").warning(
                    f"AI segmentation unavailable, using heuristics: {e.message}"
                )

        return cls(config=config, delegate=delegate)

    def process_document(self, document: RawDocument, max_entries: Optional[int] = None,
                         title: Optional[str] = None,
                         on_state_change: Optional[StateCallback] = None) -> ProcessingResult:
        """
        Turn an uploaded document into knowledge entries

        Args:
            document: Uploaded document
            max_entries: Upper bound on entries (defaults to config)
            title: Document title used in prompts (defaults to the file stem)
            on_state_change: Called with each state the run enters

        Returns:
            ProcessingResult. Failures never raise; they yield success=False
            with empty text, the default analysis and no entries.
        """
        log = ProcessingLog(self.logger)
        max_entries = max_entries or self.config.segmentation.max_entries
        title = title or Path(document.name).stem
        media_type = document.media_type or infer_media_type(document.name)

        def enter(state: ProcessingState) -> None:
            self.logger.debug(f"{document.name}: {state.value}")
            if on_state_change is not None:
                on_state_change(state)

        enter(ProcessingState.IDLE)
        log.info('Starting document processing', {
            'fileName': document.name,
            'fileSize': document.size,
            'mediaType': media_type
        })

        try:
            with log_performance(f"Processing {document.name}", self.logger):
                enter(ProcessingState.EXTRACTING)
                extracted, page_count = self._extract_text(document, media_type, log)

                enter(ProcessingState.ANALYZING)
                analysis = self.analyzer.analyze(extracted.text, document.name)
                log.info('Document analysis completed', analysis.to_dict())

                enter(ProcessingState.SEGMENTING)
                entries, method, delegation = self._segment(
                    extracted, analysis, title, max_entries, log
                )
                log.info('Knowledge entries generated', {'count': len(entries), 'method': method})

            enter(ProcessingState.DONE)
            log.info('Document processing completed successfully', {
                'entries': len(entries),
                'textLength': extracted.length
            })

            return ProcessingResult(
                success=True,
                extracted_text=extracted.text,
                analysis=analysis,
                entries=entries,
                processing_log=log.entries,
                extraction_method=extracted.method,
                segmentation_method=method,
                page_count=page_count,
                total_tokens=delegation.total_tokens if delegation else 0,
                estimated_cost=delegation.estimated_cost if delegation else 0.0
            )

        except Exception as e:
            enter(ProcessingState.FAILED)
            log.error('Document processing failed', {'error': getattr(e, 'message', str(e))})

            return ProcessingResult(
                success=False,
                extracted_text="",
                analysis=DocumentAnalysis.default(),
                entries=[],
                processing_log=log.entries
            )

    def _extract_text(self, document: RawDocument, media_type: str,
                      log: ProcessingLog) -> Tuple[ExtractedText, int]:
        log.info('Extracting text from document', {'mediaType': media_type})

        if media_type in WORD_MEDIA_TYPES:
            raise UnsupportedDocumentError(document.name, media_type)

        if media_type in TEXT_MEDIA_TYPES:
            text = document.content.decode('utf-8', errors='replace').strip()
            extracted = ExtractedText(text=text, method=PLAIN_TEXT_METHOD)
            page_count = 1
        else:
            if media_type != PDF_MEDIA_TYPE:
                log.warning(f"Unknown media type {media_type}, attempting PDF extraction")
            extracted = self.extractor.extract_with_details(document)
            page_count = self.extractor.estimate_page_count(document)

        for method in extracted.rejected_methods:
            log.warning(f"Extraction method {method} did not pass the quality gate")

        if extracted.is_placeholder:
            log.warning('All extraction methods failed, manual entry required')

        if extracted.length < self.config.extraction.min_text_length:
            raise ExtractionError(
                "Failed to extract meaningful text from document",
                "The document may be empty, scanned or protected. Try exporting it as text."
            )

        log.info('Text extraction completed', {
            'method': extracted.method,
            'textLength': extracted.length,
            'pageCount': page_count
        })
        return extracted, page_count

    def _segment(self, extracted: ExtractedText, analysis: DocumentAnalysis, title: str,
                 max_entries: int,
                 log: ProcessingLog) -> Tuple[List[KnowledgeEntry], str, Optional[DelegationResult]]:
        if extracted.is_placeholder:
            log.info('Using template-based extraction')
            return self.segmenter.template_entries(analysis, max_entries), 'template', None

        if self.delegate is not None:
            try:
                delegation = self.delegate.segment(
                    extracted.text, analysis, title, max_entries,
                    self.config.segmentation.focus_areas
                )
                log.info('AI segmentation completed', {
                    'model': delegation.model,
                    'totalTokens': delegation.total_tokens,
                    'estimatedCost': round(delegation.estimated_cost, 6)
                })
                return delegation.entries, 'ai', delegation
            except SegmentationDelegationError as e:
                log.warning('AI segmentation failed, using heuristic segmentation', {'error': e.message})

        entries = self.segmenter.segment(extracted.text, analysis, max_entries)
        return entries, 'heuristic', None
