"""Heuristic text extraction from binary documents

PDF content streams are scanned with regular expressions instead of a PDF
parser. Several independent strategies are tried in order and the first
candidate that passes the quality gate wins; when none does, a manual-entry
prompt naming the file is returned so processing can continue.
"""

import re
from typing import Callable, List, Tuple

from kbingest.models import RawDocument, ExtractedText, MANUAL_ENTRY_METHOD
from kbingest.logging_setup import get_logger, log_performance


# Marker left by a PDF generator whose streams decode to garbage
GENERATOR_ARTIFACT = "reportlab"
MIN_CANDIDATE_LENGTH = 50

_ALPHA_RUN = re.compile(r'[a-zA-Z\s]{10,}')
_LETTER = re.compile(r'[a-zA-Z]')
_PARENTHESIZED = re.compile(r'\(([^)]+)\)')
_SYMBOLS_ONLY = re.compile(r'^[<>@#$%^&*()_+=|\\{}\[\]:";\'?/.,~`!\-\s]+$')
_ESCAPED_BREAK = re.compile(r'\\[rn]')

_STREAM = re.compile(r'stream\s*\r?\n([\s\S]*?)\r?\n\s*endstream')
_ADVANCED_PATTERNS = [
    re.compile(r'BT.*?ET', re.DOTALL),
    re.compile(r'\(([^)]{3,})\)\s*Tj'),
    re.compile(r'\[([^\]]{10,})\]\s*TJ'),
    re.compile(r'\(([^)]{5,})\)'),
    re.compile(r'\b[A-Z][a-z]{2,}\b'),
]

_UNIX_STREAM = re.compile(r'stream\s*\n([\s\S]*?)\n\s*endstream')
_SHOW_TEXT = re.compile(r'\(([^)]+)\)\s*Tj')
_REGEX_PATTERNS = [
    re.compile(r'\(([^)]+)\)'),
    re.compile(r'/F\d+\s+\d+\s+Tf[^(]*\(([^)]+)\)'),
    re.compile(r'BT[^E]*\(([^)]+)\)[^E]*ET'),
    re.compile(r'Td[^(]*\(([^)]+)\)'),
    re.compile(r'TJ[^(]*\(([^)]+)\)'),
]

_READABLE_RUN = re.compile(r'[a-zA-Z\s.,;:!?]{20,}')
RAW_ENCODINGS = ('utf-8', 'latin-1', 'ascii')


def normalize_text(text: str) -> str:
    """Collapse whitespace, drop non-printable characters and blank lines"""
    text = re.sub(r'[^\S\n]+', ' ', text)
    text = re.sub(r'[^\x20-\x7E\n]', '', text)
    text = re.sub(r'\n\s*\n', '\n', text)
    return text.strip()


def passes_quality_gate(candidate: str) -> bool:
    """Check an extraction candidate for length, artifacts and letter density"""
    return (
        len(candidate) > MIN_CANDIDATE_LENGTH
        and GENERATOR_ARTIFACT not in candidate
        and _ALPHA_RUN.search(candidate) is not None
    )


def manual_entry_prompt(file_name: str) -> str:
    """Instructional text used when no text could be recovered"""
    return f"""This document ({file_name}) contains content that requires manual processing.

INSTRUCTIONS FOR MANUAL ENTRY:
Please create knowledge base entries manually by:
1. Opening the original document
2. Reading the terms and conditions
3. Creating individual entries for each term or condition
4. Editing the auto-generated template entries

Template entries have been created that you can edit with the actual content of the document.

Common terms to look for and extract:
- Return policies and timeframes
- Shipping information and costs
- Payment terms and conditions
- Warranty and liability information
- Contact and support details
- Usage restrictions
- Refund procedures
- Cancellation policies

Please edit each template entry with the actual content of the document."""


def _decode(content: bytes, encoding: str = 'utf-8') -> str:
    return content.decode(encoding, errors='replace')


def _has_letters(text: str) -> bool:
    return _LETTER.search(text) is not None


class TextExtractor:
    """Extracts best-effort plain text from uploaded documents"""

    def __init__(self):
        self.logger = get_logger(f"{__name__}.TextExtractor")
        self.strategies: List[Tuple[str, Callable[[bytes], str]]] = [
            ("advanced_stream", self._advanced_stream_extraction),
            ("basic", self._basic_extraction),
            ("regex", self._regex_extraction),
            ("raw_text", self._raw_text_extraction),
        ]

    def extract(self, document: RawDocument) -> str:
        """Return extracted text, or the manual-entry prompt if nothing usable was found"""
        return self.extract_with_details(document).text

    def extract_with_details(self, document: RawDocument) -> ExtractedText:
        """
        Run the extraction strategies in order until one passes the quality gate

        Args:
            document: Uploaded document

        Returns:
            ExtractedText naming the winning strategy and the rejected ones.
            Never raises; strategy errors count as rejections.
        """
        rejected = []

        with log_performance(f"Text extraction from {document.name}", self.logger):
            for name, strategy in self.strategies:
                try:
                    candidate = strategy(document.content)
                except Exception as e:
                    self.logger.warning(f"{name} extraction raised for {document.name}: {e}")
                    rejected.append(name)
                    continue

                if passes_quality_gate(candidate):
                    self.logger.info(f"{name} extraction succeeded, length: {len(candidate)}")
                    return ExtractedText(text=candidate, method=name, rejected_methods=rejected)

                self.logger.debug(f"{name} extraction rejected ({len(candidate)} characters)")
                rejected.append(name)

        self.logger.warning(f"All extraction methods failed for {document.name}, creating manual entry prompt")
        return ExtractedText(
            text=manual_entry_prompt(document.name),
            method=MANUAL_ENTRY_METHOD,
            rejected_methods=rejected
        )

    def estimate_page_count(self, document: RawDocument) -> int:
        """Estimate the number of pages from PDF structure tokens or file size"""
        raw = _decode(document.content)

        counts = [int(value) for value in re.findall(r'/Count\s+(\d+)', raw)]
        if counts:
            max_count = max(counts)
            if 0 < max_count < 10000:
                return max_count

        page_objects = re.findall(r'/Type\s*/Page[^s]', raw)
        if page_objects:
            return len(page_objects)

        # Roughly 150KB per page
        size_estimate = max(1, int(document.size / 150000 + 0.5))
        return min(size_estimate, 500)

    def _advanced_stream_extraction(self, content: bytes) -> str:
        """Recover text-show operands from inside content streams"""
        raw = _decode(content)
        pieces = []

        streams = _STREAM.findall(raw)
        self.logger.debug(f"Advanced extraction found {len(streams)} streams")

        for stream in streams:
            for pattern in _ADVANCED_PATTERNS:
                for match in pattern.finditer(stream):
                    operands = _PARENTHESIZED.findall(match.group(0))
                    if not operands:
                        continue
                    cleaned = _ESCAPED_BREAK.sub(' ', ' '.join(operands)).strip()
                    if len(cleaned) > 5 and re.search(r'[a-zA-Z]{3,}', cleaned):
                        pieces.append(cleaned)

        return normalize_text(' '.join(pieces))

    def _basic_extraction(self, content: bytes) -> str:
        """Collect every parenthesized string in the file"""
        raw = _decode(content)

        texts = [
            text for text in _PARENTHESIZED.findall(raw)
            if len(text) > 2 and _has_letters(text) and not _SYMBOLS_ONLY.match(text)
        ]

        return normalize_text(' '.join(texts))

    def _regex_extraction(self, content: bytes) -> str:
        """Apply a broad set of text-operator patterns globally and per stream"""
        raw = _decode(content)
        parts = []

        parts.append(' '.join(
            text for text in _PARENTHESIZED.findall(raw)
            if len(text) > 1 and _has_letters(text)
        ))
        parts.append(' '.join(
            text for text in _SHOW_TEXT.findall(raw)
            if len(text) > 1 and _has_letters(text)
        ))

        for stream in _UNIX_STREAM.findall(raw):
            for pattern in _REGEX_PATTERNS:
                texts = []
                for match in pattern.finditer(stream):
                    operand = _PARENTHESIZED.search(match.group(0))
                    text = operand.group(1) if operand else ''
                    if len(text) > 1 and _has_letters(text):
                        texts.append(text)
                parts.append(' '.join(texts))

        return normalize_text(' '.join(parts))

    def _raw_text_extraction(self, content: bytes) -> str:
        """Keep the longest run of readable characters across several decodings"""
        best_text = ''

        for encoding in RAW_ENCODINGS:
            decoded = _decode(content, encoding)
            combined = ' '.join(_READABLE_RUN.findall(decoded))
            if len(combined) > len(best_text):
                best_text = combined

        return normalize_text(best_text)
