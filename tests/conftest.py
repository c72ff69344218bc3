"""Pytest configuration and fixtures"""

import pytest
import tempfile
import shutil
from pathlib import Path

from kbingest.config import (
    KBConfig, OpenRouterConfig, ExtractionConfig, SegmentationConfig, LoggingConfig
)
from kbingest.models import DocumentAnalysis


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def kb_config(temp_dir):
    """Configuration with data kept in a temporary directory"""
    return KBConfig(
        openrouter=OpenRouterConfig(api_key=""),
        extraction=ExtractionConfig(),
        segmentation=SegmentationConfig(use_ai=False),
        logging=LoggingConfig(file_enabled=False, console_enabled=False),
        data_dir=str(temp_dir / "data")
    )


@pytest.fixture
def terms_analysis():
    """Analysis of a simple numbered terms document"""
    return DocumentAnalysis(
        document_type="terms",
        language="en",
        structure="numbered",
        estimated_entries=2,
        complexity="simple",
        confidence=0.6
    )


@pytest.fixture
def stream_pdf_bytes():
    """Minimal PDF whose content stream holds text-show operators"""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj\n"
        b"2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj\n"
        b"3 0 obj << /Type /Page /Parent 2 0 R /Contents 4 0 R >> endobj\n"
        b"4 0 obj << /Length 200 >>\n"
        b"stream\n"
        b"BT /F1 12 Tf 72 720 Td (Returns must be made within thirty days of delivery) Tj ET\n"
        b"BT /F1 12 Tf 72 700 Td (Refunds are issued to the original payment method) Tj ET\n"
        b"endstream\n"
        b"endobj\n"
        b"%%EOF\n"
    )
