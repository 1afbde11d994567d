"""Topic taxonomy with keywords for relevance detection."""

from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class Topic(BaseModel):
    """A scope topic the relevance scanner looks for."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Human-readable topic name")
    keywords: List[str] = Field(default_factory=list, description="Lower-case trigger keywords")


TopicTaxonomy = Mapping[str, Topic]


TOPICS: Dict[str, Topic] = {
    "striping": Topic(
        label="Striping",
        keywords=[
            "stripe", "striping", "line", "lines",
            "pavement marking", "traffic marking",
            "yellow line", "white line",
            "centerline", "edge line",
            "paint", "thermoplastic",
        ],
    ),
    "thermoplastic_lines": Topic(
        label="Thermoplastic Lines",
        keywords=[
            "thermoplastic", "thermo",
            "line", "lines",
            "white", "yellow",
            "pavement marking",
        ],
    ),
    "crosswalks": Topic(
        label="Crosswalks",
        keywords=[
            "crosswalk", "crosswalks",
            "crossing", "pedestrian crossing",
            "zebra crossing",
            "ladder marking",
            "continental",
        ],
    ),
    "stop_bars": Topic(
        label="Stop Bars",
        keywords=["stop bar", "stop line", "stop marking", "intersection"],
    ),
    "symbols_legends": Topic(
        label="Symbols & Legends",
        keywords=[
            "symbol", "symbols",
            "legend", "arrow",
            "bike lane", "bicycle",
            "handicap", "accessible",
            "pavement message",
        ],
    ),
    "curb_painting": Topic(
        label="Curb Painting",
        keywords=[
            "curb", "curbing",
            "paint", "painting",
            "red curb", "yellow curb",
            "blue curb", "white curb",
        ],
    ),
    "signage": Topic(
        label="Signage (ADA & Posts)",
        keywords=[
            "sign", "signage",
            "post", "posts",
            "ada", "accessible",
            "parking sign",
            "regulatory", "warning",
        ],
    ),
    "line_removal": Topic(
        label="Line Removal",
        keywords=[
            "removal", "remove",
            "obliterate", "obliteration",
            "grind", "grinding",
            "sandblast", "waterblast",
            "eradicate",
        ],
    ),
    "quantities_tables": Topic(
        label="Quantities Tables",
        keywords=[
            "quantity", "quantities",
            "table", "schedule",
            "summary", "total",
            "bid item", "pay item",
            "unit price",
        ],
    ),
    "specification_notes": Topic(
        label="Specification Notes",
        keywords=[
            "specification", "spec",
            "note", "notes",
            "general note",
            "detail", "standard",
            "requirement", "material",
        ],
    ),
}


def get_topic(key: str, taxonomy: Optional[TopicTaxonomy] = None) -> Optional[Topic]:
    """Get topic by key."""
    return (taxonomy or TOPICS).get(key)


def get_topic_keys(taxonomy: Optional[TopicTaxonomy] = None) -> List[str]:
    """Get all topic keys."""
    return list((taxonomy or TOPICS).keys())


def get_topic_options(taxonomy: Optional[TopicTaxonomy] = None) -> List[Dict[str, str]]:
    """Get all topics as value/label pairs for selection lists."""
    return [
        {"value": key, "label": topic.label}
        for key, topic in (taxonomy or TOPICS).items()
    ]


def is_valid_topic(key: str, taxonomy: Optional[TopicTaxonomy] = None) -> bool:
    """Check if topic exists."""
    return key in (taxonomy or TOPICS)
