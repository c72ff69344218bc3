"""Ingest workflow: store an upload, process it and persist the knowledge entries"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

from ..config import KBConfig
from ..errors import DocumentValidationError, KBIngestError, PersistenceError
from ..models import KnowledgeEntry, ProcessingResult, RawDocument
from ..processing.orchestrator import (
    DocumentProcessor, ProcessingState, PDF_MEDIA_TYPE, TEXT_MEDIA_TYPES, infer_media_type
)
from ..segmentation.delegated import extract_page_number
from .knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


ACCEPTED_MEDIA_TYPES = (PDF_MEDIA_TYPE,) + TEXT_MEDIA_TYPES

# Job progress reported as the pipeline advances
STATE_PROGRESS = {
    ProcessingState.EXTRACTING: (15, 'Retrieving document content...'),
    ProcessingState.ANALYZING: (30, 'Analyzing content...'),
    ProcessingState.SEGMENTING: (30, 'Generating knowledge entries...'),
}

ENTRY_SOURCES = {
    'ai': 'pdf_ai_generated',
    'heuristic': 'pdf_heuristic',
    'template': 'template',
}


class KnowledgeBaseIngestor:
    """Runs documents through the processor and records them in the knowledge store"""

    def __init__(self, config: KBConfig, processor: Optional[DocumentProcessor] = None,
                 store: Optional[KnowledgeStore] = None):
        self.config = config
        self.processor = processor or DocumentProcessor.from_config(config)
        self.store = store or KnowledgeStore(config)

    def validate_upload(self, document: RawDocument) -> str:
        """
        Check an upload before anything is stored

        Returns:
            The effective media type

        Raises:
            DocumentValidationError: For unsupported types, empty or oversized files
        """
        media_type = document.media_type or infer_media_type(document.name)

        if media_type not in ACCEPTED_MEDIA_TYPES:
            raise DocumentValidationError(
                f"Unsupported file type '{media_type}' for {document.name}",
                "Upload a PDF, plain text or markdown file."
            )
        if document.size == 0:
            raise DocumentValidationError(f"File is empty: {document.name}")

        max_size = self.config.extraction.max_file_size
        if document.size > max_size:
            raise DocumentValidationError(
                f"File size must be less than {max_size // (1024 * 1024)}MB: {document.name}",
                "Split the document into smaller parts."
            )

        return media_type

    def ingest(self, document: RawDocument, title: Optional[str] = None,
               description: Optional[str] = None,
               max_entries: Optional[int] = None) -> Dict[str, Any]:
        """
        Upload, process and persist a document

        Rows are written in the order document, job, entries so that no entry
        can reference a missing document.

        Returns:
            Summary with document_id, job_id, status, entries_created and error

        Raises:
            DocumentValidationError: If the upload is rejected
            PersistenceError: If the document or job row cannot be created
        """
        media_type = self.validate_upload(document)
        title = title or Path(document.name).stem
        max_entries = max_entries or self.config.segmentation.max_entries

        object_path = f"{uuid.uuid4().hex}/{document.name}"
        self.store.upload_binary(object_path, document.content)
        logger.info(f"Stored upload {document.name} at {object_path}")

        try:
            document_row = self.store.insert_rows('kb_documents', [{
                'title': title,
                'description': description,
                'file_name': document.name,
                'file_path': object_path,
                'file_size': document.size,
                'mime_type': media_type,
                'ai_processing_status': 'processing'
            }])[0]
        except PersistenceError:
            self.store.objects.remove_binary(object_path)
            raise
        document_id = document_row['id']

        job_row = self.store.insert_rows('kb_processing_jobs', [{
            'document_id': document_id,
            'status': 'processing',
            'progress': 5,
            'current_step': 'Starting analysis...',
            'processing_config': {'max_entries': max_entries, 'title': title}
        }])[0]
        job_id = job_row['id']

        try:
            result = self.processor.process_document(
                document, max_entries=max_entries, title=title,
                on_state_change=lambda state: self._report_state(job_id, state)
            )
            if not result.success:
                raise KBIngestError(self._failure_message(result))

            self._update_progress(job_id, 60, 'Creating knowledge base entries...')
            self.store.update_row('kb_documents', document_id, {
                'extracted_text': result.extracted_text,
                'extraction_method': result.extraction_method,
                'page_count': result.page_count,
                'analysis': result.analysis.to_dict(),
                'processing_log': [entry.to_dict() for entry in result.processing_log]
            })

            rows = [self._entry_row(entry, document_id, result) for entry in result.entries]
            if not rows:
                raise KBIngestError("No knowledge base entries were generated from the analysis")
            inserted = self.store.insert_rows('knowledge_base', rows)

            self._update_progress(job_id, 90, 'Finalizing...')
            self.store.update_row('kb_processing_jobs', job_id, {
                'status': 'completed',
                'progress': 100,
                'current_step': 'Processing completed',
                'segmentation_method': result.segmentation_method,
                'total_tokens_used': result.total_tokens,
                'estimated_cost': result.estimated_cost,
                'completed_at': datetime.now().isoformat()
            })
            self.store.update_row('kb_documents', document_id, {'ai_processing_status': 'completed'})

            logger.info(f"Ingested {document.name}: {len(inserted)} entries")
            return {
                'document_id': document_id,
                'job_id': job_id,
                'status': 'completed',
                'entries_created': len(inserted),
                'error': None
            }

        except KBIngestError as e:
            logger.error(f"Ingest failed for {document.name}: {e.message}")
            self._mark_failed(document_id, job_id, e.message)
            return {
                'document_id': document_id,
                'job_id': job_id,
                'status': 'failed',
                'entries_created': 0,
                'error': e.message
            }

    def get_document_entries(self, document_id: int) -> List[Dict[str, Any]]:
        """Entries generated from a document, most confident first"""
        return self.store.select_rows(
            'knowledge_base', {'source_document_id': document_id},
            order_by='confidence_score', descending=True
        )

    def approve_entry(self, entry_id: int) -> bool:
        return self.store.update_row('knowledge_base', entry_id, {'is_approved': True})

    def get_processing_status(self, document_id: int) -> Optional[Dict[str, Any]]:
        """Latest job state for a document, or None if it has never been processed"""
        jobs = self.store.select_rows(
            'kb_processing_jobs', {'document_id': document_id},
            order_by='created_at', descending=True, limit=1
        )
        if not jobs:
            return None

        job = jobs[0]
        entries = self.store.select_rows('knowledge_base', {'source_document_id': document_id})
        return {
            'document_id': document_id,
            'status': job['status'],
            'progress': job['progress'],
            'current_step': job['current_step'] or 'Processing...',
            'error_message': job['error_message'],
            'entries_generated': len(entries),
            'estimated_cost': job['estimated_cost'] or 0.0
        }

    def delete_document(self, document_id: int) -> bool:
        """Delete a document with its jobs, entries and stored binary"""
        documents = self.store.select_rows('kb_documents', {'id': document_id})
        if not documents:
            return False

        deleted = self.store.delete_row('kb_documents', document_id)
        try:
            self.store.objects.remove_binary(documents[0]['file_path'])
        except PersistenceError as e:
            logger.warning(f"Document {document_id} deleted but its binary was not: {e.message}")
        return deleted

    def _entry_row(self, entry: KnowledgeEntry, document_id: int,
                   result: ProcessingResult) -> Dict[str, Any]:
        page_number = extract_page_number(entry.source_section)
        if page_number is None and entry.page_reference and entry.page_reference.isdigit():
            page_number = int(entry.page_reference)

        return {
            'source_document_id': document_id,
            'title': entry.title,
            'content': entry.content,
            'category': entry.category,
            'subcategory': entry.subcategory,
            'tags': entry.tags,
            'keywords': entry.keywords,
            'priority': entry.priority,
            'confidence_score': entry.confidence_score,
            'source': ENTRY_SOURCES.get(result.segmentation_method, 'pdf_heuristic'),
            'source_type': entry.source_type,
            'original_text': entry.source_section,
            'page_number': page_number,
            'page_reference': entry.page_reference,
            'ai_generated': result.segmentation_method == 'ai',
            'is_approved': False
        }

    def _failure_message(self, result: ProcessingResult) -> str:
        for entry in reversed(result.processing_log):
            if entry.level == 'error':
                detail = (entry.details or {}).get('error')
                return f"{entry.message}: {detail}" if detail else entry.message
        return "Document processing failed"

    def _report_state(self, job_id: int, state: ProcessingState) -> None:
        if state in STATE_PROGRESS:
            progress, step = STATE_PROGRESS[state]
            self._update_progress(job_id, progress, step)

    def _update_progress(self, job_id: int, progress: int, current_step: str) -> None:
        self.store.update_row('kb_processing_jobs', job_id, {
            'progress': progress,
            'current_step': current_step
        })

    def _mark_failed(self, document_id: int, job_id: int, message: str) -> None:
        try:
            self.store.update_row('kb_processing_jobs', job_id, {
                'status': 'failed',
                'error_message': message,
                'completed_at': datetime.now().isoformat()
            })
            self.store.update_row('kb_documents', document_id, {
                'ai_processing_status': 'failed',
                'ai_processing_error': message
            })
        except PersistenceError as e:
            logger.error(f"Could not record failure for document {document_id}: {e.message}")
