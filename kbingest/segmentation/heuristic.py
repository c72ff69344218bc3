"""Heuristic segmentation of extracted text into knowledge entries

The cascade is an ordered list of passes. Each pass is a plain function
``(text, category, budget) -> entries`` paired with an engagement rule that
looks at how many entries the earlier passes produced. The driver stops as
soon as the entry budget is spent.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from kbingest.models import DocumentAnalysis, KnowledgeEntry
from kbingest.analysis.analyzer import category_for_document_type
from kbingest.extraction.text_extractor import GENERATOR_ARTIFACT
from kbingest.logging_setup import get_logger
from kbingest.segmentation.templates import (
    GENERIC_TEMPLATES, GENERIC_TEMPLATE_CONFIDENCE, GENERIC_TEMPLATE_SECTION,
    TEMPLATE_CONFIDENCE, templates_for_document_type
)


DEFAULT_MAX_ENTRIES = 50

PATTERN_LINE_CONFIDENCE = 0.8
SENTENCE_CONFIDENCE = 0.6
PARAGRAPH_CONFIDENCE = 0.7
FULL_TEXT_CONFIDENCE = 0.3

# Text shorter than this is treated as a failed extraction
SHORT_TEXT_LENGTH = 500

DOMAIN_VOCABULARY = [
    'must', 'shall', 'will', 'may', 'cannot', 'required', 'prohibited',
    'within', 'before', 'after', 'terms', 'condition', 'policy', 'agreement',
    'refund', 'return', 'shipping', 'payment', 'service', 'customer', 'order',
    'delivery', 'warranty', 'liability', 'contact', 'support', 'price', 'fee'
]

_LIST_MARKER = re.compile(r'^(\d+\.|[a-z]\)|[A-Z]\)|[-•*]|[IVX]+\.)')
_MARKER_PREFIXES = [
    re.compile(r'^\d+[.)]\s*'),
    re.compile(r'^[a-zA-Z]\)\s*'),
    re.compile(r'^[-•*]\s*'),
    re.compile(r'^[IVX]+\.\s*'),
]


def _truncate(text: str, limit: int) -> str:
    title = text[:limit].strip()
    return title + '...' if len(text) > limit else title


def _strip_list_marker(line: str) -> str:
    for prefix in _MARKER_PREFIXES:
        line = prefix.sub('', line)
    return line


def _is_meaningful_line(line: str) -> bool:
    if _LIST_MARKER.match(line) or len(line) > 20:
        return True
    lower_line = line.lower()
    return any(word in lower_line for word in DOMAIN_VOCABULARY)


def pattern_line_entries(text: str, category: str, budget: int) -> List[KnowledgeEntry]:
    """One entry per list item, substantial line or line using policy vocabulary"""
    lines = [line.strip() for line in text.split('\n')]
    lines = [line for line in lines if len(line) > 5]

    entries = []
    for i, line in enumerate(lines):
        if len(entries) >= budget:
            break
        if not _is_meaningful_line(line):
            continue

        title = _strip_list_marker(line)[:100].strip()
        if len(title) <= 5:
            continue

        entries.append(KnowledgeEntry(
            title=title,
            content=line,
            category=category,
            confidence_score=PATTERN_LINE_CONFIDENCE,
            tags=['policy', 'terms'],
            source_section=f"Line {i + 1}"
        ))

    return entries


def sentence_entries(text: str, category: str, budget: int) -> List[KnowledgeEntry]:
    """One entry per sentence of moderate length"""
    sentences = [s.strip() for s in re.split(r'[.!?]+', text)]
    sentences = [s for s in sentences if len(s) > 20]

    entries = []
    for i, sentence in enumerate(sentences):
        if len(entries) >= budget:
            break
        if len(sentence) >= 200:
            continue

        entries.append(KnowledgeEntry(
            title=_truncate(sentence, 60),
            content=sentence,
            category=category,
            confidence_score=SENTENCE_CONFIDENCE,
            tags=['extracted', 'terms'],
            source_section=f"Sentence {i + 1}"
        ))

    return entries


def paragraph_entries(text: str, category: str, budget: int) -> List[KnowledgeEntry]:
    """One entry per blank-line separated paragraph"""
    paragraphs = [p.strip() for p in re.split(r'\n\s*\n', text)]
    paragraphs = [p for p in paragraphs if len(p) > 30]

    return [
        KnowledgeEntry(
            title=_truncate(paragraph, 80),
            content=paragraph,
            category=category,
            confidence_score=PARAGRAPH_CONFIDENCE,
            tags=['policy', 'extracted'],
            source_section=f"Paragraph {i + 1}"
        )
        for i, paragraph in enumerate(paragraphs[:budget])
    ]


def generic_template_entries(text: str, category: str, budget: int) -> List[KnowledgeEntry]:
    """Stub entries for common policies, to be edited by a reviewer"""
    return [
        KnowledgeEntry(
            title=template['title'],
            content=template['content'],
            category=template['category'],
            confidence_score=GENERIC_TEMPLATE_CONFIDENCE,
            tags=list(template['tags']),
            source_section=GENERIC_TEMPLATE_SECTION
        )
        for template in GENERIC_TEMPLATES[:budget]
    ]


def looks_corrupt(text: str) -> bool:
    return GENERATOR_ARTIFACT in text or len(text) < SHORT_TEXT_LENGTH


@dataclass(frozen=True)
class SegmentationPass:
    """A cascade step and the rule deciding whether it runs"""
    name: str
    strategy: Callable[[str, str, int], List[KnowledgeEntry]]
    engaged: Callable[[str, int], bool]


DEFAULT_PASSES = (
    SegmentationPass('pattern_lines', pattern_line_entries, lambda text, produced: True),
    SegmentationPass('sentences', sentence_entries, lambda text, produced: produced < 3),
    SegmentationPass('paragraphs', paragraph_entries, lambda text, produced: produced < 2),
    SegmentationPass(
        'generic_templates', generic_template_entries,
        lambda text, produced: produced < 5 and looks_corrupt(text)
    ),
)


class HeuristicSegmenter:
    """Splits text into knowledge entries without any external service"""

    def __init__(self, passes: Optional[List[SegmentationPass]] = None):
        self.logger = get_logger(f"{__name__}.HeuristicSegmenter")
        self.passes = list(passes) if passes is not None else list(DEFAULT_PASSES)

    def segment(self, text: str, analysis: DocumentAnalysis,
                max_entries: int = DEFAULT_MAX_ENTRIES) -> List[KnowledgeEntry]:
        """
        Run the heuristic cascade

        Args:
            text: Extracted text
            analysis: Analysis of the same text; supplies the entry category
            max_entries: Upper bound on the number of entries returned

        Returns:
            At most max_entries entries. Blank text yields the template
            entries for the document type.
        """
        if max_entries <= 0:
            return []

        if not text.strip():
            self.logger.info("No text to segment, using document type templates")
            return self.template_entries(analysis, max_entries)

        category = category_for_document_type(analysis.document_type)
        entries = []

        for segmentation_pass in self.passes:
            budget = max_entries - len(entries)
            if budget <= 0:
                break
            if not segmentation_pass.engaged(text, len(entries)):
                continue

            produced = segmentation_pass.strategy(text, category, budget)[:budget]
            self.logger.debug(f"Pass {segmentation_pass.name} produced {len(produced)} entries")
            entries.extend(produced)

        if not entries:
            self.logger.info("Heuristic passes produced nothing, keeping the text as a single entry")
            entries.append(self._full_text_entry(text, category))

        self.logger.info(f"Heuristic segmentation produced {len(entries)} entries")
        return entries

    def template_entries(self, analysis: DocumentAnalysis,
                         max_entries: int = DEFAULT_MAX_ENTRIES) -> List[KnowledgeEntry]:
        """Entries from the fixed table for the analysed document type"""
        category = category_for_document_type(analysis.document_type)
        templates = templates_for_document_type(analysis.document_type)

        return [
            KnowledgeEntry(
                title=template['title'],
                content=template['content'],
                category=category,
                confidence_score=TEMPLATE_CONFIDENCE,
                subcategory=template['subcategory'],
                tags=list(template['tags']),
                keywords=list(template['keywords']),
                priority=template.get('priority', 5),
                source_section=f"Section {i + 1}",
                page_reference='1'
            )
            for i, template in enumerate(templates[:max_entries])
        ]

    def _full_text_entry(self, text: str, category: str) -> KnowledgeEntry:
        content = text.strip()[:1000]
        return KnowledgeEntry(
            title=_truncate(' '.join(content.split()), 80),
            content=content,
            category=category,
            confidence_score=FULL_TEXT_CONFIDENCE,
            tags=['extracted', 'needs-review'],
            source_section='Full Text'
        )
