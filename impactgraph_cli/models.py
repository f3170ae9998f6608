"""Core data models for impact runs, impact items, the linkage graph and link suggestions."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

Severity = Literal["low", "medium", "high"]
ItemType = Literal["documentation", "backlog", "spec", "test", "code", "kpi", "data"]
ReviewStatus = Literal["pending", "review_required", "reviewed", "ignored"]
RunStatus = Literal["pending", "running", "completed", "failed"]
LinkSource = Literal["manual", "ai_suggested", "context"]
TargetType = Literal["code", "test", "data", "artefact"]
SuggestionStatus = Literal["pending", "accepted", "rejected"]

SEVERITIES = ("low", "medium", "high")
SEVERITY_SCORES: Dict[str, int] = {"low": 1, "medium": 3, "high": 5}
ITEM_TYPES = ("documentation", "backlog", "spec", "test", "code", "kpi", "data")
REVIEW_STATUSES = ("pending", "review_required", "reviewed", "ignored")
RUN_STATUSES = ("pending", "running", "completed", "failed")
TARGET_TYPES = ("code", "test", "data", "artefact")

# artifact_type -> item_type for artefacts reached through links or a shared product context
ARTEFACT_ITEM_TYPES: Dict[str, str] = {
    "prd": "documentation",
    "canvas": "documentation",
    "roadmap": "documentation",
    "impact_analysis": "documentation",
    "story": "backlog",
    "epic": "backlog",
    "tech_spec": "spec",
}


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ------------------------------------------------------------------
# Artefacts (owned by the surrounding application)
# ------------------------------------------------------------------

@dataclass
class Artefact:
    """A tracked product document. Content is either text or a JSON-like tree."""
    id: str
    title: str
    content: Any
    artifact_type: str = "prd"
    product_context_id: Optional[str] = None
    updated_at: str = ""

    @property
    def item_type(self) -> str:
        return ARTEFACT_ITEM_TYPES.get(self.artifact_type, "documentation")


@dataclass
class ArtefactVersion:
    id: str
    artefact_id: str
    version_number: int
    content: Any
    previous_version_id: Optional[str] = None
    created_at: str = ""


# ------------------------------------------------------------------
# Changes
# ------------------------------------------------------------------

@dataclass
class Change:
    """One discrete delta between two snapshots of an artefact."""
    change_type: str
    entity: str
    before: str
    after: str
    severity: Severity
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Change":
        severity = payload.get("severity", "low")
        return cls(
            change_type=str(payload.get("change_type", "content_update")),
            entity=str(payload.get("entity", "")),
            before=str(payload.get("before", "")),
            after=str(payload.get("after", "")),
            severity=severity if severity in SEVERITIES else "low",
            description=str(payload.get("description", "")),
        )


# ------------------------------------------------------------------
# Linkage graph edges
# ------------------------------------------------------------------

@dataclass
class CodeLink:
    """Edge from an artefact to a source file (``feature_code_map``)."""
    artefact_id: str
    file_path: str
    confidence: float = 1.0
    link_source: LinkSource = "manual"
    symbols: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    target_type = "code"

    @property
    def target_identifier(self) -> str:
        return self.file_path


@dataclass
class TestLink:
    """Edge from an artefact to a test entry (``test_index``)."""
    artefact_id: str
    test_file: str
    test_name: Optional[str] = None
    test_type: str = "unit"
    related_file_path: Optional[str] = None
    confidence: float = 1.0
    link_source: LinkSource = "manual"
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    target_type = "test"
    __test__ = False

    @property
    def target_identifier(self) -> str:
        if self.test_name:
            return f"{self.test_file}::{self.test_name}"
        return self.test_file


@dataclass
class DataLink:
    """Edge from an artefact to a data table, event or KPI (``feature_data_map``)."""
    artefact_id: str
    table_name: str
    event_name: Optional[str] = None
    kpi_name: Optional[str] = None
    confidence: float = 1.0
    link_source: LinkSource = "manual"
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    target_type = "data"

    @property
    def is_kpi(self) -> bool:
        return bool(self.kpi_name)

    @property
    def target_identifier(self) -> str:
        return self.kpi_name or self.event_name or self.table_name


@dataclass
class ArtefactLink:
    """Edge from one artefact to another (``artefact_links``)."""
    source_id: str
    target_id: str
    link_type: str = "relates_to"
    confidence_score: float = 1.0
    user_id: str = ""
    link_source: LinkSource = "manual"
    target_type: str = "artefact"
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    @property
    def artefact_id(self) -> str:
        return self.source_id

    @property
    def confidence(self) -> float:
        return self.confidence_score

    @property
    def target_identifier(self) -> str:
        return self.target_id


LinkEdge = Union[CodeLink, TestLink, DataLink, ArtefactLink]


@dataclass
class LinkageGraph:
    """All outgoing edges of one artefact, grouped by target kind."""
    code: List[CodeLink] = field(default_factory=list)
    tests: List[TestLink] = field(default_factory=list)
    data: List[DataLink] = field(default_factory=list)
    artefacts: List[ArtefactLink] = field(default_factory=list)

    def all_edges(self) -> List[LinkEdge]:
        return [*self.code, *self.tests, *self.data, *self.artefacts]

    def __len__(self) -> int:
        return len(self.all_edges())


# ------------------------------------------------------------------
# Per-item-type metadata
# ------------------------------------------------------------------

@dataclass
class ItemMetadata:
    """Metadata snapshot taken at run time.

    ``coupling`` is the confidence of the edge that produced the item; it
    informs the reviewer and never changes the score. ``extra`` keeps any
    keys the typed variants do not know about.
    """
    coupling: Optional[float] = None
    link_source: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = "generic"

    def to_dict(self) -> Dict[str, Any]:
        payload = {k: v for k, v in asdict(self).items() if k != "extra" and v is not None}
        payload.update(self.extra)
        payload["kind"] = self.kind
        return payload


@dataclass
class CodeMetadata(ItemMetadata):
    file_path: str = ""
    symbols: List[str] = field(default_factory=list)

    kind = "code"


@dataclass
class TestMetadata(ItemMetadata):
    test_file: str = ""
    test_name: Optional[str] = None
    test_type: Optional[str] = None

    kind = "test"
    __test__ = False


@dataclass
class DataMetadata(ItemMetadata):
    table_name: str = ""
    event_name: Optional[str] = None
    kpi_name: Optional[str] = None

    kind = "data"


@dataclass
class DocMetadata(ItemMetadata):
    artefact_type: Optional[str] = None
    link_type: Optional[str] = None
    change_types: List[str] = field(default_factory=list)

    kind = "doc"


_METADATA_KINDS = {
    cls.kind: cls for cls in (ItemMetadata, CodeMetadata, TestMetadata, DataMetadata, DocMetadata)
}


def metadata_from_dict(payload: Dict[str, Any]) -> ItemMetadata:
    """Rebuild the typed metadata variant from its stored dict."""
    data = dict(payload or {})
    cls = _METADATA_KINDS.get(data.pop("kind", "generic"), ItemMetadata)
    known = set(cls.__dataclass_fields__) - {"extra"}
    kwargs = {k: data.pop(k) for k in list(data) if k in known}
    return cls(**kwargs, extra=data)


# ------------------------------------------------------------------
# Runs and items
# ------------------------------------------------------------------

@dataclass
class RunSummary:
    total_changes: int = 0
    type_breakdown: Dict[str, int] = field(default_factory=dict)
    high_severity_count: int = 0
    linked_artefacts: int = 0
    manual_links: int = 0
    code_files_impacted: int = 0
    tests_impacted: int = 0
    data_tables_impacted: int = 0
    data_kpis_impacted: int = 0
    category_breakdown: Dict[str, int] = field(default_factory=dict)
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)
    source: str = "edit"
    document_name: Optional[str] = None
    changes: List[Change] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["changes"] = [c.to_dict() for c in self.changes]
        return payload

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "RunSummary":
        data = dict(payload or {})
        changes = [Change.from_dict(c) for c in data.pop("changes", [])]
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known}, changes=changes)


@dataclass
class ImpactRun:
    id: str
    artefact_id: str
    status: RunStatus = "pending"
    impact_score: float = 0
    summary: RunSummary = field(default_factory=RunSummary)
    trigger_change_set_id: Optional[str] = None
    artefact_version_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


@dataclass
class ImpactItem:
    id: str
    impact_run_id: str
    item_name: str
    item_type: ItemType
    impact_score: float
    impact_reason: str
    review_status: ReviewStatus = "pending"
    related_artefact_id: Optional[str] = None
    metadata: ItemMetadata = field(default_factory=ItemMetadata)
    created_at: str = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        """Identity key used to match items across runs."""
        return f"{self.item_type}:{self.item_name}"


# ------------------------------------------------------------------
# Oracle payloads
# ------------------------------------------------------------------

@dataclass
class CandidateTarget:
    """Linked entity offered to the classifier oracle."""
    type: TargetType
    id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Classification:
    target_id: str
    score: float
    reason: str


@dataclass
class SuggestedLink:
    target_type: str
    target_id: str
    link_type: str
    confidence: float
    reasoning: str


@dataclass
class LinkSuggestion:
    artefact_id: str
    suggested_target_type: str
    suggested_target_id: str
    suggested_link_type: str
    confidence: float
    reasoning: str = ""
    status: SuggestionStatus = "pending"
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)


# ------------------------------------------------------------------
# Diff results and scheduling
# ------------------------------------------------------------------

@dataclass
class RunDiff:
    older_run_id: str
    newer_run_id: str
    new: List[ImpactItem] = field(default_factory=list)
    resolved: List[ImpactItem] = field(default_factory=list)
    persisted: List[ImpactItem] = field(default_factory=list)
    score_delta: float = 0

    available = True

    @property
    def trend(self) -> str:
        if self.score_delta > 0:
            return "increased"
        if self.score_delta < 0:
            return "reduced"
        return "stable"


@dataclass
class InsufficientData:
    """Diff unavailable: fewer than two completed runs to compare."""
    artefact_id: str
    completed_runs: int
    reason: str = "At least two completed runs are required to compare"

    available = False


@dataclass
class QueueEntry:
    """Deferred analysis request owned by an external job system."""
    artefact_id: str
    scheduled_at: datetime
    id: str = field(default_factory=new_id)
    previous_content: Any = None
