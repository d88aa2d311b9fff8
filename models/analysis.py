"""
Transcript and analysis result data models
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import json


@dataclass(frozen=True)
class AnalysisInput:
    """A transcript waiting to be analysed"""
    item_id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def word_count(self) -> int:
        """Word count from metadata, or counted from the text"""
        count = self.metadata.get("word_count")
        if isinstance(count, int) and count >= 0:
            return count
        return len(self.text.split())

    @property
    def label(self) -> str:
        """Human readable name used in progress output"""
        return self.metadata.get("storyteller_name") or self.item_id

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisInput":
        """Create input from a stored transcript row"""
        metadata = {
            key: value for key, value in data.items()
            if key not in ("id", "transcript_content")
        }
        return cls(
            item_id=str(data["id"]),
            text=data.get("transcript_content") or "",
            metadata=metadata,
        )


def _clamp_score(value: Any, default: float) -> float:
    """Coerce a model-supplied score into [0, 1]"""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, score))


@dataclass(frozen=True)
class AnalysisResult:
    """
    Structured analysis of one transcript

    Straight out of the analyzer `themes` holds the model's free-form labels;
    once the pipeline has resolved them it holds catalog theme ids and the
    original labels move to `raw_themes`.
    """
    item_id: str
    themes: List[str] = field(default_factory=list)
    emotions: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    quotes: List[str] = field(default_factory=list)
    summary: str = ""
    insights: List[str] = field(default_factory=list)
    cultural_elements: List[str] = field(default_factory=list)
    sensitivity_flags: List[str] = field(default_factory=list)
    confidence_score: float = 0.0
    quality_or_diversity_score: float = 0.0
    raw_themes: List[str] = field(default_factory=list)
    is_fallback: bool = False
    model_name: Optional[str] = None
    analysis_type: str = "theme_extraction"
    analysis_version: Optional[str] = None
    processing_time_seconds: Optional[float] = field(default=None, compare=False)
    created_at: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "confidence_score", _clamp_score(self.confidence_score, 0.0))
        object.__setattr__(
            self, "quality_or_diversity_score", _clamp_score(self.quality_or_diversity_score, 0.0)
        )

    def is_approved(self, threshold: float) -> bool:
        """Results above the confidence threshold can be used without review"""
        return self.confidence_score > threshold

    def to_dict(self, approval_threshold: float = 0.7) -> dict:
        """Convert result to the stored analysis row"""
        return {
            "transcript_id": self.item_id,
            "analysis_type": self.analysis_type,
            "ai_model_used": self.model_name,
            "analysis_version": self.analysis_version,
            "themes_identified": list(self.themes),
            "raw_themes": list(self.raw_themes),
            "primary_emotions": list(self.emotions),
            "key_topics": list(self.topics),
            "key_quotes": list(self.quotes),
            "summary": self.summary,
            "insights": list(self.insights),
            "cultural_elements": list(self.cultural_elements),
            "sensitivity_flags": list(self.sensitivity_flags),
            "confidence_score": self.confidence_score,
            "quality_score": self.quality_or_diversity_score,
            "is_fallback": self.is_fallback,
            "processing_status": "completed",
            "processing_time_seconds": self.processing_time_seconds,
            "human_reviewed": False,
            "approved_for_use": self.is_approved(approval_threshold),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        """Create result from a stored analysis row"""
        created_at = data.get("created_at")
        return cls(
            item_id=str(data["transcript_id"]),
            themes=list(data.get("themes_identified") or []),
            emotions=list(data.get("primary_emotions") or []),
            topics=list(data.get("key_topics") or []),
            quotes=list(data.get("key_quotes") or []),
            summary=data.get("summary") or "",
            insights=list(data.get("insights") or []),
            cultural_elements=list(data.get("cultural_elements") or []),
            sensitivity_flags=list(data.get("sensitivity_flags") or []),
            confidence_score=data.get("confidence_score", 0.0),
            quality_or_diversity_score=data.get("quality_score", 0.0),
            raw_themes=list(data.get("raw_themes") or []),
            is_fallback=bool(data.get("is_fallback", False)),
            model_name=data.get("ai_model_used"),
            analysis_type=data.get("analysis_type") or "theme_extraction",
            analysis_version=data.get("analysis_version"),
            processing_time_seconds=data.get("processing_time_seconds"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )

    def to_json(self) -> str:
        """Convert result to JSON string"""
        return json.dumps(self.to_dict(), indent=2)


@dataclass(frozen=True)
class QuoteRecord:
    """A quote pulled out of a transcript, private until the storyteller approves it"""
    transcript_id: str
    quote_text: str
    storyteller_id: Optional[str] = None
    extracted_by_ai: bool = True
    ai_confidence_score: float = 0.8
    quote_type: str = "wisdom"
    visibility: str = "private"
    storyteller_approved: bool = False

    def to_dict(self) -> dict:
        """Convert quote to the stored quote row"""
        return {
            "transcript_id": self.transcript_id,
            "storyteller_id": self.storyteller_id,
            "quote_text": self.quote_text,
            "extracted_by_ai": self.extracted_by_ai,
            "ai_confidence_score": self.ai_confidence_score,
            "quote_type": self.quote_type,
            "visibility": self.visibility,
            "storyteller_approved": self.storyteller_approved,
        }
