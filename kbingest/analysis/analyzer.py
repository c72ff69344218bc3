"""Document analysis with rule-based pattern matching"""

import re
from typing import List

from kbingest.models import DocumentAnalysis
from kbingest.logging_setup import get_logger


DOCUMENT_TYPE_CATEGORIES = {
    'terms': 'Terms & Conditions',
    'policy': 'Company Policies',
    'manual': 'Technical Support',
    'faq': 'General FAQ',
    'procedures': 'Company Policies'
}


def category_for_document_type(document_type: str) -> str:
    """Map a document type onto the knowledge-base category its entries belong to"""
    return DOCUMENT_TYPE_CATEGORIES.get(document_type, 'General FAQ')


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


class DocumentAnalyzer:
    """Classifies extracted text by type, structure and complexity"""

    def __init__(self):
        """Initialize the analyzer with predefined patterns"""
        self.logger = get_logger(f"{__name__}.DocumentAnalyzer")

        # Checked in order, first hit wins
        self.filename_patterns = [
            ('terms', ['terms', 'conditions']),
            ('policy', ['policy', 'privacy']),
            ('manual', ['manual', 'guide']),
            ('faq', ['faq', 'questions'])
        ]
        self.content_patterns = [
            ('terms', ['terms of service', 'terms and conditions', 'user agreement', 'license agreement']),
            ('policy', ['privacy policy', 'data protection', 'cookie policy', 'refund policy']),
            ('manual', ['user manual', 'instruction', 'how to', 'step by step']),
            ('faq', ['frequently asked', 'common questions', 'q:', 'a:']),
            ('procedures', ['procedure', 'process', 'workflow', 'guidelines'])
        ]
        self.structure_patterns = [
            ('numbered', [r'^\s*\d+\.\s', r'^\s*\(\d+\)\s']),
            ('sectioned', [r'^[A-Z\s]{3,}$', r'^\s*[A-Z][^.]*:$']),
            ('hierarchical', [r'^\s*[a-z]\)\s', r'^\s*[ivx]+\.\s'])
        ]
        self.jargon_terms = ['hereby', 'whereas', 'notwithstanding', 'pursuant', 'hereunder']
        self.entry_density = {
            'terms': 1 / 150,
            'policy': 1 / 200,
            'manual': 1 / 100,
            'faq': 1 / 50,
            'procedures': 1 / 120
        }

    def analyze(self, text: str, filename: str = "") -> DocumentAnalysis:
        """
        Analyze extracted text

        Args:
            text: Extracted document text, possibly empty
            filename: Original file name, used as the strongest type signal

        Returns:
            DocumentAnalysis; identical inputs always produce identical results
        """
        document_type = self.detect_document_type(text, filename)

        analysis = DocumentAnalysis(
            document_type=document_type,
            language='en',
            structure=self.detect_structure(text),
            estimated_entries=self.estimate_entry_count(text, document_type),
            complexity=self.assess_complexity(text),
            confidence=self.calculate_confidence(text)
        )

        self.logger.debug(f"Analysis for {filename or '<unnamed>'}: {analysis}")
        return analysis

    def detect_document_type(self, text: str, filename: str = "") -> str:
        lower_filename = filename.lower()
        for document_type, terms in self.filename_patterns:
            if any(term in lower_filename for term in terms):
                return document_type

        lower_text = text.lower()
        for document_type, patterns in self.content_patterns:
            if any(pattern in lower_text for pattern in patterns):
                return document_type

        return 'terms'

    def detect_structure(self, text: str) -> str:
        for structure, patterns in self.structure_patterns:
            if any(re.search(pattern, text, re.MULTILINE) for pattern in patterns):
                return structure

        return 'unstructured'

    def assess_complexity(self, text: str) -> str:
        """Classify complexity from sentence length and legal vocabulary"""
        word_count = self._word_count(text)
        sentence_count = len(re.split(r'[.!?]+', text))
        avg_words_per_sentence = word_count / sentence_count

        lower_text = text.lower()
        jargon_count = sum(1 for term in self.jargon_terms if term in lower_text)

        if word_count > 5000 or avg_words_per_sentence > 25 or jargon_count > 5:
            return 'complex'
        if word_count > 2000 or avg_words_per_sentence > 15 or jargon_count > 2:
            return 'medium'
        return 'simple'

    def estimate_entry_count(self, text: str, document_type: str) -> int:
        density = self.entry_density.get(document_type, self.entry_density['terms'])
        return max(1, _round_half_up(self._word_count(text) * density))

    def calculate_confidence(self, text: str) -> float:
        """Score text quality from length, sentence count and capitalization"""
        confidence = 0.5

        if len(text) > 1000:
            confidence += 0.2
        if len(text) > 5000:
            confidence += 0.1

        sentences = self._sentences(text)
        if len(sentences) > 5:
            confidence += 0.1

        if sentences:
            proper = [s for s in sentences if re.match(r'^[A-Z]', s.strip())]
            if len(proper) / len(sentences) > 0.7:
                confidence += 0.1

        return min(1.0, round(confidence, 2))

    def _word_count(self, text: str) -> int:
        return len(re.split(r'\s+', text))

    def _sentences(self, text: str) -> List[str]:
        return [s for s in re.split(r'[.!?]+', text) if len(s.strip()) > 10]
