"""Data model for units of competency and their per-identifier outcomes."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp used in the corpus and classification log."""
    return _utc_now().isoformat()


@dataclass(frozen=True)
class UnitLink:
    """Weak reference to another unit page (supersession)."""

    code: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "url": self.url}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UnitLink"]:
        if not data or not data.get("code"):
            return None
        return cls(code=data["code"], url=data.get("url", ""))


@dataclass(frozen=True)
class UnitElement:
    """One element of competency with its ordered performance criteria."""

    element: str
    performance_criteria: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"element": self.element, "performance_criteria": list(self.performance_criteria)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnitElement":
        return cls(
            element=data.get("element", ""),
            performance_criteria=list(data.get("performance_criteria") or []),
        )


@dataclass(frozen=True)
class EvidenceGroup:
    """A top-level evidence topic and the sub-items listed beneath it."""

    topic: str
    items: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "items": list(self.items)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceGroup":
        return cls(topic=data.get("topic", ""), items=list(data.get("items") or []))


@dataclass(frozen=True)
class Section:
    """Raw heading-delimited block captured in document order."""

    heading: str
    level: int
    paragraphs: List[str] = field(default_factory=list)
    lists: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "heading": self.heading,
            "level": self.level,
            "paragraphs": list(self.paragraphs),
            "lists": [list(items) for items in self.lists],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(
            heading=data.get("heading", ""),
            level=int(data.get("level", 2)),
            paragraphs=list(data.get("paragraphs") or []),
            lists=[list(items) for items in data.get("lists") or []],
        )


@dataclass(frozen=True)
class CompetencyRecord:
    """Normalized representation of one scraped unit of competency.

    Created once per successful extraction and never mutated; a later
    extraction of the same code replaces the whole record.
    """

    url: str
    code: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None  # Current / Superseded / Deleted
    release: Optional[str] = None  # "Release 2"
    application: Optional[str] = None
    unit_sector: Optional[str] = None
    licensing: Optional[str] = None
    prerequisites: List[str] = field(default_factory=list)
    elements: List[UnitElement] = field(default_factory=list)
    foundation_skills: Optional[str] = None
    assessment_conditions: Optional[str] = None
    performance_evidence: List[EvidenceGroup] = field(default_factory=list)
    knowledge_evidence: List[EvidenceGroup] = field(default_factory=list)
    superseded_by: Optional[UnitLink] = None
    supersedes: Optional[UnitLink] = None
    sections: List[Section] = field(default_factory=list)
    last_fetched_at: str = field(default_factory=utc_timestamp)

    @property
    def criteria_count(self) -> int:
        return sum(len(e.performance_criteria) for e in self.elements)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "release": self.release,
            "application": self.application,
            "unit_sector": self.unit_sector,
            "licensing": self.licensing,
            "prerequisites": list(self.prerequisites),
            "elements": [e.to_dict() for e in self.elements],
            "foundation_skills": self.foundation_skills,
            "assessment_conditions": self.assessment_conditions,
            "performance_evidence": [g.to_dict() for g in self.performance_evidence],
            "knowledge_evidence": [g.to_dict() for g in self.knowledge_evidence],
            "superseded_by": self.superseded_by.to_dict() if self.superseded_by else None,
            "supersedes": self.supersedes.to_dict() if self.supersedes else None,
            "sections": [s.to_dict() for s in self.sections],
            "last_fetched_at": self.last_fetched_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompetencyRecord":
        """Create from a corpus line."""
        return cls(
            url=data.get("url", ""),
            code=data.get("code") or "Unknown",
            title=data.get("title") or "Unknown",
            description=data.get("description"),
            status=data.get("status"),
            release=data.get("release"),
            application=data.get("application"),
            unit_sector=data.get("unit_sector"),
            licensing=data.get("licensing"),
            prerequisites=list(data.get("prerequisites") or []),
            elements=[UnitElement.from_dict(e) for e in data.get("elements") or []],
            foundation_skills=data.get("foundation_skills"),
            assessment_conditions=data.get("assessment_conditions"),
            performance_evidence=[EvidenceGroup.from_dict(g) for g in data.get("performance_evidence") or []],
            knowledge_evidence=[EvidenceGroup.from_dict(g) for g in data.get("knowledge_evidence") or []],
            superseded_by=UnitLink.from_dict(data.get("superseded_by")),
            supersedes=UnitLink.from_dict(data.get("supersedes")),
            sections=[Section.from_dict(s) for s in data.get("sections") or []],
            last_fetched_at=data.get("last_fetched_at") or utc_timestamp(),
        )


# Outcome variants. Exactly one exists per identifier known to the store.

@dataclass(frozen=True)
class Present:
    """Record extracted and persisted in the corpus."""

    record: CompetencyRecord


@dataclass(frozen=True)
class Invalid:
    """Permanently rejected (the catalog has no such unit). Never retried."""

    reason: str
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self, code: str) -> Dict[str, Any]:
        return {"code": code, "reason": self.reason, "permanent": True, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Pending:
    """Failed transiently; retried on later runs while attempts < max_retries."""

    attempts: int
    last_error: str
    last_attempt_at: str = field(default_factory=utc_timestamp)

    def to_dict(self, code: str) -> Dict[str, Any]:
        return {
            "code": code,
            "error": self.last_error,
            "attempts": self.attempts,
            "last_attempt": self.last_attempt_at,
        }


Outcome = Union[Present, Invalid, Pending]
