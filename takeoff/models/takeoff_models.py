"""Data models for the drawing takeoff pipeline.

This module defines the records that flow between pipeline stages: page scan
results, the document context, detail specifications, per-page extractions,
and the reconciled conflicts and line items.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from takeoff.utils.normalization import item_key

UNKNOWN_PAGE_TYPE = "Unknown"

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _coerce_str_list(value: Any) -> List[str]:
    """Coerce a loosely-typed model field into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []

    result = []
    for entry in value:
        if entry is None:
            continue
        if isinstance(entry, dict):
            entry = entry.get("description") or entry.get("text") or entry.get("item") or ""
        text = str(entry).strip()
        if text:
            result.append(text)
    return result


def _blank_for_none(value: Any) -> Any:
    """Read a null or numeric text field as a string."""
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class LegendItem(BaseModel):
    """One legend entry: a drawing symbol and what it stands for."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Symbol or line style as drawn")
    meaning: str = Field(default="", description="What the symbol represents")
    material: Optional[str] = Field(None, description="Material named by the legend, if any")

    coerce_meaning = field_validator("meaning", mode="before")(_blank_for_none)


class DetailReference(BaseModel):
    """A pointer from the document to a standard detail."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Type designation, e.g. 'Type A Island'")
    sheet: str = Field(default="", description="Sheet or detail number, e.g. 'C-5.1'")

    coerce_sheet = field_validator("sheet", mode="before")(_blank_for_none)


class DocumentContext(BaseModel):
    """Document-level metadata merged from the leading pages.

    Read-only after the context stage.
    """

    model_config = ConfigDict(frozen=True)

    document_type: str = ""
    trade: str = ""
    project_name: str = ""
    legend_items: List[LegendItem] = Field(default_factory=list)
    key_specifications: List[str] = Field(default_factory=list)
    detail_references: List[DetailReference] = Field(default_factory=list)
    standards_referenced: List[str] = Field(default_factory=list)

    coerce_lists = field_validator(
        "key_specifications", "standards_referenced", mode="before"
    )(_coerce_str_list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.document_type
            or self.trade
            or self.project_name
            or self.legend_items
            or self.key_specifications
            or self.detail_references
            or self.standards_referenced
        )


class DetailSpec(BaseModel):
    """Dimensions and material for one type designation from a detail sheet."""

    model_config = ConfigDict(frozen=True)

    type_designation: str = ""
    detail_number: str = ""
    dimensions: Optional[str] = None
    material: Optional[str] = None
    thickness: Optional[str] = None
    color: Optional[str] = None
    source_page: int = Field(..., ge=1)


class PageScanResult(BaseModel):
    """Relevance verdict for one sampled page."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    relevant: bool
    topics: List[str] = Field(default_factory=list, description="Taxonomy topic keys found")
    matched_keywords: List[str] = Field(default_factory=list)
    confidence: int = Field(default=0, ge=0, le=100)
    page_type: str = Field(default=UNKNOWN_PAGE_TYPE)
    summary: str = ""

    @property
    def mentions_detail(self) -> bool:
        """Whether the page looks like a detail sheet."""
        return "detail" in self.page_type.lower() or "detail" in self.summary.lower()


class RecommendationTier(str, Enum):
    """Confidence tier attached to a material decision."""

    DOCUMENT_SPECIFIED = "document-specified"
    UPGRADE_RECOMMENDED = "upgrade-recommended"
    HIGH_BEST_PRACTICE = "high-best-practice"
    MODERATE_BEST_PRACTICE = "moderate-best-practice"
    LOW_TRAFFIC_ACCEPTABLE = "low-traffic-acceptable"
    UNKNOWN = "unknown"


class MaterialRecommendation(BaseModel):
    """Outcome of the material-decision heuristic for one quantity."""

    model_config = ConfigDict(frozen=True)

    material: str
    definitive: bool
    confidence: RecommendationTier
    reasoning: str = ""
    upgrade: bool = False
    recommendation: Optional[str] = None


class QuantityItem(BaseModel):
    """A counted or measured quantity from one page."""

    model_config = ConfigDict(frozen=True)

    item: str = Field(..., min_length=1)
    value: float = Field(..., ge=0)
    unit: str = "EA"
    location: Optional[str] = None
    source: str = "from plan"
    material_spec: Optional[str] = None
    dimensions: Optional[str] = None
    detail_reference: Optional[str] = None
    material_recommendation: Optional[MaterialRecommendation] = None

    @field_validator("item", mode="before")
    @classmethod
    def strip_item(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("value", mode="before")
    @classmethod
    def parse_value(cls, value: Any) -> Any:
        # Models sometimes return "1,200" or "850 LF"
        if isinstance(value, str):
            match = _NUMBER.search(value.replace(",", ""))
            return float(match.group(0)) if match else value
        return value

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "EA"
        return value.strip() if isinstance(value, str) else value

    @field_validator("source", mode="before")
    @classmethod
    def default_source(cls, value: Any) -> Any:
        return value or "from plan"

    @property
    def key(self) -> str:
        """Normalized grouping key, e.g. ``'parking stalls_ea'``."""
        return item_key(self.item, self.unit)


class MaterialEntry(BaseModel):
    """A material callout read from a legend, note or detail."""

    model_config = ConfigDict(frozen=True, extra="allow")

    item: str = ""
    specification: str = ""
    color: Optional[str] = None
    width: Optional[str] = None
    size: Optional[str] = None
    source: Optional[str] = None


class PageExtraction(BaseModel):
    """Everything extracted from one relevant page."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(..., ge=1)
    page_type: str = UNKNOWN_PAGE_TYPE
    quantities: List[QuantityItem] = Field(default_factory=list)
    materials: List[MaterialEntry] = Field(default_factory=list)
    scope_items: List[str] = Field(default_factory=list)
    specifications: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    cross_references: List[str] = Field(default_factory=list)
    content_summary: str = ""

    coerce_lists = field_validator(
        "scope_items", "specifications", "notes", "cross_references", mode="before"
    )(_coerce_str_list)

    @classmethod
    def sentinel(cls, page_number: int, content_summary: Optional[str] = None) -> "PageExtraction":
        """Well-formed empty record used in place of a failed extraction."""
        return cls(
            page_number=page_number,
            page_type=UNKNOWN_PAGE_TYPE,
            content_summary=content_summary or "Analysis failed",
        )

    @property
    def is_sentinel(self) -> bool:
        return (
            self.page_type == UNKNOWN_PAGE_TYPE
            and not self.quantities
            and not self.materials
            and not self.scope_items
            and not self.specifications
            and not self.notes
            and not self.cross_references
        )


class Occurrence(BaseModel):
    """One page's contribution to an item key."""

    model_config = ConfigDict(frozen=True)

    page: int
    value: float
    unit: str
    location: str = "not specified"
    source: str = "from plan"


class Conflict(BaseModel):
    """An item key whose occurrences disagree on value."""

    model_config = ConfigDict(frozen=True)

    type: str = "quantity_conflict"
    item_key: str
    item: str
    issue: str = ""
    occurrences: List[Occurrence]

    @property
    def distinct_values(self) -> List[float]:
        return sorted({o.value for o in self.occurrences})


class LineItem(BaseModel):
    """Aggregated quantity for one (item, unit) pair across all pages."""

    model_config = ConfigDict(frozen=True)

    item: str
    unit: str
    total_quantity: float
    locations: List[str] = Field(default_factory=list)
    pages: List[int] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    source_breakdown: List[Occurrence] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return item_key(self.item, self.unit)


class DedupReport(BaseModel):
    """Outcome of the duplicate-page pass."""

    pages_analyzed: int = 0
    duplicates_found: int = 0
    pages_removed: List[int] = Field(default_factory=list)
    items_before: int = 0
    items_after: int = 0
    skipped_reason: Optional[str] = None


class ResolutionQuestion(BaseModel):
    """A question surfaced to the estimator after aggregation."""

    id: int
    type: str
    question: str
    description: str = ""
    item: Optional[str] = None
    details: List[str] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)


class RunStats(BaseModel):
    """Counts and timings for one pipeline run."""

    total_pages: int = 0
    scanned_pages: int = 0
    relevant_pages: int = 0
    extracted_pages: int = 0
    failed_pages: int = 0
    inference_calls: int = 0
    quantities: int = 0
    materials: int = 0
    scope_items: int = 0
    specifications: int = 0
    notes: int = 0
    stage_seconds: Dict[str, float] = Field(default_factory=dict)


class TakeoffResult(BaseModel):
    """Everything the pipeline hands to the persistence layer."""

    document_context: DocumentContext
    detail_specs: Dict[str, DetailSpec] = Field(default_factory=dict)
    line_items: List[LineItem] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    document_map: List[PageExtraction] = Field(default_factory=list)
    relevant_pages: List[PageScanResult] = Field(default_factory=list)
    failed_pages: List[int] = Field(default_factory=list)
    dedup_report: DedupReport = Field(default_factory=DedupReport)
    questions: List[ResolutionQuestion] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
