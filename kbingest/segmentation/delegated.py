"""Knowledge entry segmentation delegated to a language model"""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from kbingest.config import SegmentationConfig
from kbingest.errors import SegmentationDelegationError
from kbingest.llm.provider import LLMProvider
from kbingest.logging_setup import get_logger
from kbingest.models import DocumentAnalysis, KnowledgeEntry, VALID_CATEGORIES


AI_SOURCE_TYPE = "ai_generated"

SYSTEM_PROMPT = (
    "You are an expert at extracting structured knowledge base entries from documents. "
    "Your task is to analyze the document content and create comprehensive, well-structured "
    "knowledge base entries that would be useful for a customer service chatbot. Focus on "
    "extracting policies, procedures, FAQs, terms and conditions, and any information that "
    "would help answer customer questions."
)

ANALYSIS_PROMPT = """Please analyze the following document titled "{title}" and extract knowledge base entries that would be useful for a customer service chatbot.
The document appears to be a {document_type} document with {structure} structure.

Document Content:
{content}

Instructions:
1. Extract up to {max_entries} distinct knowledge base entries
2. Focus on areas like: {focus_areas}
3. Each entry should be self-contained and answer a potential customer question
4. Provide a confidence score (0.1-1.0) based on how clear and useful the information is
5. Categorize each entry appropriately
6. Include relevant tags for searchability
7. If the content spans multiple pages, note the page reference if possible

Please respond with a JSON object in this exact format:
{{
  "summary": "Brief summary of the document and what types of information were extracted",
  "entries": [
    {{
      "title": "Clear, descriptive title for this knowledge base entry",
      "content": "Detailed content that fully answers the question or explains the policy/procedure",
      "category": "One of: {categories}",
      "tags": ["relevant", "searchable", "tags"],
      "confidence_score": 0.95,
      "section_reference": "Section name or page number if identifiable"
    }}
  ]
}}

Focus on extracting information that customers would commonly ask about, such as:
- Return policies and procedures
- Shipping information and timeframes
- Payment terms and methods
- Account requirements and restrictions
- Service limitations and exclusions
- Contact information and support hours
- Warranty and guarantee terms
- Privacy and data usage policies
- Refund and cancellation policies
- Product specifications and requirements

Make sure each entry is complete, accurate, and would be helpful for answering customer inquiries."""

IMPROVE_SYSTEM_PROMPT = (
    "You are an expert at improving knowledge base entries for customer service. "
    "Make them clearer, more comprehensive, and better formatted."
)

IMPROVE_PROMPT = """Please improve this knowledge base entry:

Title: {title}
Content: {content}
{context}
Please respond with a JSON object:
{{
  "title": "improved title",
  "content": "improved content with better formatting and clarity",
  "tags": ["suggested", "relevant", "tags"]
}}"""

QUESTIONS_SYSTEM_PROMPT = "Generate 3-5 natural customer questions that this knowledge base entry would answer."

QUESTIONS_PROMPT = """Content: {content}

Please respond with a JSON array of questions:
["question 1", "question 2", "question 3"]"""

# USD per 1K tokens
MODEL_PRICING = {
    'gpt-4-turbo': {'input': 0.01, 'output': 0.03},
    'gpt-4': {'input': 0.03, 'output': 0.06},
    'gpt-3.5-turbo': {'input': 0.001, 'output': 0.002}
}
DEFAULT_PRICING_MODEL = 'gpt-4-turbo'
INPUT_TOKEN_SHARE = 0.7

DEFAULT_CONFIDENCE = 0.5
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0


def estimate_cost(total_tokens: int, model: str) -> float:
    """Estimate request cost in USD assuming a 70/30 input/output token split"""
    name = model.split('/')[-1]
    pricing = MODEL_PRICING[DEFAULT_PRICING_MODEL]
    # Longest key first so gpt-4-turbo wins over gpt-4
    for key in sorted(MODEL_PRICING, key=len, reverse=True):
        if name.startswith(key):
            pricing = MODEL_PRICING[key]
            break

    input_tokens = total_tokens * INPUT_TOKEN_SHARE
    output_tokens = total_tokens * (1 - INPUT_TOKEN_SHARE)
    return (input_tokens / 1000) * pricing['input'] + (output_tokens / 1000) * pricing['output']


def extract_page_number(reference: Optional[str]) -> Optional[int]:
    """Parse 'page N' out of a section reference"""
    if not reference:
        return None
    match = re.search(r'page\s+(\d+)', reference, re.IGNORECASE)
    return int(match.group(1)) if match else None


def parse_first_json(text: str, opener: str = '{') -> Any:
    """
    Decode the first complete JSON value starting with ``opener`` in free-form text

    Raises:
        ValueError: If no position in the text starts a decodable value
    """
    decoder = json.JSONDecoder()
    position = text.find(opener)
    while position != -1:
        try:
            value, _ = decoder.raw_decode(text, position)
            return value
        except json.JSONDecodeError:
            position = text.find(opener, position + 1)

    raise ValueError("No JSON value found in response")


def validate_category(category: Any) -> str:
    return category if category in VALID_CATEGORIES else 'Other'


def clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value) if value else DEFAULT_CONFIDENCE
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def _unique_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    result = []
    for value in values:
        if isinstance(value, str) and value.strip() and value.strip() not in result:
            result.append(value.strip())
    return result


@dataclass
class DelegationResult:
    """Entries produced by the language model plus usage accounting"""
    entries: List[KnowledgeEntry]
    summary: str
    model: str
    total_tokens: int = 0
    estimated_cost: float = 0.0
    processing_time: float = 0.0


class DelegatedSegmenter:
    """Asks a language model to segment text into knowledge entries"""

    def __init__(self, provider: LLMProvider, config: Optional[SegmentationConfig] = None):
        self.provider = provider
        self.config = config or SegmentationConfig()
        self.logger = get_logger(f"{__name__}.DelegatedSegmenter")

    def segment(self, text: str, analysis: DocumentAnalysis, title: str = "",
                max_entries: Optional[int] = None,
                focus_areas: Optional[List[str]] = None) -> DelegationResult:
        """
        Segment text with a single chat completion

        Args:
            text: Extracted text; only the first prompt_char_limit characters are sent
            analysis: Analysis of the text, used to frame the request
            title: Document title shown to the model
            max_entries: Upper bound on returned entries
            focus_areas: Topics the model should concentrate on

        Returns:
            DelegationResult with at least one validated entry

        Raises:
            SegmentationDelegationError: On request failure, unparsable output or no entries
        """
        max_entries = max_entries or self.config.max_entries
        start_time = time.time()

        prompt = self.build_prompt(text, analysis, title, max_entries, focus_areas)

        try:
            completion = self.provider.chat_completion(
                SYSTEM_PROMPT, prompt,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens
            )
        except Exception as e:
            raise SegmentationDelegationError(f"Language model request failed: {e}", e)

        try:
            parsed = parse_first_json(completion.content)
        except ValueError as e:
            raise SegmentationDelegationError("Language model response contained no JSON object", e)

        raw_entries = parsed.get('entries') if isinstance(parsed, dict) else None
        if not isinstance(raw_entries, list):
            raise SegmentationDelegationError("Language model response has no entries list")

        entries = []
        for item in raw_entries:
            entry = self._to_entry(item)
            if entry is not None:
                entries.append(entry)
        entries = entries[:max_entries]

        if not entries:
            raise SegmentationDelegationError("Language model returned no entries")

        summary = parsed.get('summary') or 'Analysis completed'
        self.logger.info(
            f"Language model produced {len(entries)} entries using {completion.total_tokens} tokens"
        )

        return DelegationResult(
            entries=entries,
            summary=summary if isinstance(summary, str) else 'Analysis completed',
            model=completion.model,
            total_tokens=completion.total_tokens,
            estimated_cost=estimate_cost(completion.total_tokens, completion.model),
            processing_time=time.time() - start_time
        )

    def build_prompt(self, text: str, analysis: DocumentAnalysis, title: str,
                     max_entries: int, focus_areas: Optional[List[str]] = None) -> str:
        limit = self.config.prompt_char_limit
        content = text[:limit]
        if len(text) > limit:
            content += ' ...[truncated]'

        return ANALYSIS_PROMPT.format(
            title=title or 'Untitled Document',
            document_type=analysis.document_type,
            structure=analysis.structure,
            content=content,
            max_entries=max_entries,
            focus_areas=', '.join(focus_areas or self.config.focus_areas),
            categories=', '.join(VALID_CATEGORIES)
        )

    def _to_entry(self, item: Any) -> Optional[KnowledgeEntry]:
        if not isinstance(item, dict):
            return None

        content = item.get('content')
        if not isinstance(content, str) or not content.strip():
            self.logger.debug("Skipping model entry without content")
            return None

        title = item.get('title')
        if not isinstance(title, str) or not title.strip():
            title = 'Untitled Entry'

        section = item.get('section_reference')
        section = str(section) if section else None
        page = item.get('page_reference') or extract_page_number(section)

        return KnowledgeEntry(
            title=title.strip(),
            content=content.strip(),
            category=validate_category(item.get('category')),
            confidence_score=clamp_confidence(item.get('confidence_score')),
            tags=_unique_strings(item.get('tags')),
            source_type=AI_SOURCE_TYPE,
            source_section=section,
            page_reference=str(page) if page else None
        )


class EntryEnhancer:
    """Optional language-model helpers for reviewing existing entries"""

    def __init__(self, provider: LLMProvider):
        self.provider = provider
        self.logger = get_logger(f"{__name__}.EntryEnhancer")

    def improve_entry(self, title: str, content: str, context: str = "") -> Dict[str, Any]:
        """Return a clearer title, content and suggested tags, or the input unchanged on failure"""
        prompt = IMPROVE_PROMPT.format(
            title=title,
            content=content,
            context=f"Additional Context: {context}\n" if context else ""
        )

        try:
            completion = self.provider.chat_completion(
                IMPROVE_SYSTEM_PROMPT, prompt, temperature=0.4, max_tokens=1000
            )
            parsed = parse_first_json(completion.content)
            if isinstance(parsed, dict):
                return {
                    'title': parsed.get('title') or title,
                    'content': parsed.get('content') or content,
                    'tags': _unique_strings(parsed.get('tags'))
                }
        except Exception as e:
            self.logger.warning(f"Entry improvement failed: {e}")

        return {'title': title, 'content': content, 'tags': []}

    def suggest_questions(self, content: str) -> List[str]:
        """Customer questions the entry answers, empty on failure"""
        try:
            completion = self.provider.chat_completion(
                QUESTIONS_SYSTEM_PROMPT,
                QUESTIONS_PROMPT.format(content=content[:1000]),
                temperature=0.6,
                max_tokens=300
            )
            return _unique_strings(parse_first_json(completion.content, opener='['))
        except Exception as e:
            self.logger.warning(f"Question generation failed: {e}")
            return []
