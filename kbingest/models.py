"""Core data models for kbingest"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Dict, Any, Union


DOCUMENT_TYPES = ("terms", "policy", "manual", "faq", "procedures")
STRUCTURES = ("numbered", "sectioned", "hierarchical", "unstructured")
COMPLEXITIES = ("simple", "medium", "complex")
LOG_LEVELS = ("info", "warning", "error")

VALID_CATEGORIES = (
    "Product Information",
    "Shipping & Returns",
    "Technical Support",
    "Company Policies",
    "Troubleshooting",
    "General FAQ",
    "Terms & Conditions",
    "Other",
)

# Extraction method reported when every strategy failed the quality gate
MANUAL_ENTRY_METHOD = "manual_entry"


@dataclass(frozen=True)
class RawDocument:
    """An uploaded file, never modified after construction"""
    content: bytes
    name: str
    media_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Union[str, Path], media_type: Optional[str] = None) -> 'RawDocument':
        path = Path(path)
        return cls(content=path.read_bytes(), name=path.name, media_type=media_type)


@dataclass
class ExtractedText:
    """Best-effort text for a document and the strategy that produced it"""
    text: str
    method: str
    rejected_methods: List[str] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.text)

    @property
    def is_placeholder(self) -> bool:
        return self.method == MANUAL_ENTRY_METHOD


@dataclass(frozen=True)
class DocumentAnalysis:
    """Classification of a document's type, structure and complexity"""
    document_type: str  # one of DOCUMENT_TYPES
    language: str
    structure: str  # one of STRUCTURES
    estimated_entries: int
    complexity: str  # one of COMPLEXITIES
    confidence: float

    @classmethod
    def default(cls) -> 'DocumentAnalysis':
        """Analysis reported for documents that failed processing"""
        return cls(
            document_type="terms",
            language="en",
            structure="unstructured",
            estimated_entries=1,
            complexity="medium",
            confidence=0.3
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class KnowledgeEntry:
    """One self-contained fact or rule for the customer-support knowledge base"""
    title: str
    content: str
    category: str
    confidence_score: float
    tags: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    priority: int = 5
    source_type: str = "document"
    subcategory: Optional[str] = None
    source_section: Optional[str] = None
    page_reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProcessingLogEntry:
    """A single timestamped record of a processing run"""
    timestamp: datetime
    level: str  # one of LOG_LEVELS
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class ProcessingResult:
    """Terminal output of processing one document"""
    success: bool
    extracted_text: str
    analysis: DocumentAnalysis
    entries: List[KnowledgeEntry]
    processing_log: List[ProcessingLogEntry]
    extraction_method: str = ""
    segmentation_method: str = ""
    page_count: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    @property
    def errors(self) -> List[str]:
        return [entry.message for entry in self.processing_log if entry.level == "error"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "extracted_text": self.extracted_text,
            "analysis": self.analysis.to_dict(),
            "entries": [entry.to_dict() for entry in self.entries],
            "processing_log": [entry.to_dict() for entry in self.processing_log],
            "extraction_method": self.extraction_method,
            "segmentation_method": self.segmentation_method,
            "page_count": self.page_count,
            "total_tokens": self.total_tokens,
            "estimated_cost": self.estimated_cost,
        }
