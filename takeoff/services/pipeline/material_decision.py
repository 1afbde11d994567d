"""Material decision rules for pavement-marking items.

Deterministic: no inference calls. The project analysis is derived once from
the document context; each marking item is then decided with a fixed
precedence (first match wins):

1. The item already names a durable material: left unchanged.
2. The document specifies thermoplastic: applied and written into the item.
3. The document specifies paint on a high-traffic or GDOT project: paint is
   kept, with a thermoplastic upgrade recommendation attached.
4. The document specifies paint: applied and written into the item.
5. No specification: a non-definitive recommendation by traffic level. The
   item text is never touched.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from takeoff.models.takeoff_models import DocumentContext, MaterialRecommendation, RecommendationTier
from takeoff.utils.normalization import normalize_text

THERMOPLASTIC = "thermoplastic"
PAINT = "paint"

# Materials that, named in an item, settle the decision
DURABLE_MATERIALS = {
    "thermoplastic": THERMOPLASTIC,
    "thermo": THERMOPLASTIC,
    "epoxy": "epoxy",
    "mma": "methyl methacrylate",
    "methyl methacrylate": "methyl methacrylate",
    "preformed": "preformed thermoplastic",
    "tape": "preformed tape",
}

MARKING_KEYWORDS = (
    "stripe", "striping", "line", "stop bar", "crosswalk", "arrow", "marking",
    "hatch", "chevron", "symbol", "legend", "gore", "island",
    "only", "word", "yield", "lane", "curb paint", "hatching",
)

# Items naming these are sign or hardware work, not markings
NON_MARKING_KEYWORDS = ("sign", "signage", "post", "pole", "panel", "bollard")

SITE_TYPE_KEYWORDS = {
    "highway": ("highway", "interstate", "state route", "freeway", "expressway", "corridor"),
    "commercial": ("retail", "shopping", "plaza", "mall", "store", "commercial", "market", "restaurant"),
    "institutional": ("school", "hospital", "university", "campus", "municipal", "county", "city hall"),
    "office": ("office", "business park", "corporate"),
    "residential": ("residential", "apartment", "condo", "subdivision", "townhome", "housing"),
}

HIGH_TRAFFIC_REFERENCES = ("highway", "aadt", "dot", "interstate", "arterial", "state route")

TRAFFIC_BY_SITE_TYPE = {
    "highway": "high",
    "commercial": "moderate",
    "institutional": "moderate",
    "office": "moderate",
    "residential": "low",
}


def _mentions(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


@dataclass(frozen=True)
class ProjectAnalysis:
    """Project-level facts the material rules depend on."""
    site_type: str = "unknown"
    traffic_level: str = "unknown"
    has_material_spec: bool = False
    has_paint_spec: bool = False
    has_gdot_standard: bool = False


@dataclass(frozen=True)
class MaterialDecision:
    """Outcome for one item: the (possibly rewritten) item text and the decision."""
    item: str
    recommendation: MaterialRecommendation


def _context_texts(context: DocumentContext) -> List[str]:
    texts = [context.project_name, context.document_type, context.trade]
    texts.extend(context.key_specifications)
    texts.extend(context.standards_referenced)
    for legend in context.legend_items:
        texts.extend([legend.meaning, legend.material or ""])
    return [normalize_text(t) for t in texts if t]


def _site_type(texts: Iterable[str]) -> str:
    joined = " | ".join(texts)
    for site_type, keywords in SITE_TYPE_KEYWORDS.items():
        if any(keyword in joined for keyword in keywords):
            return site_type
    return "unknown"


def analyze_project(context: DocumentContext) -> ProjectAnalysis:
    """Derive site type, traffic level and material flags from the context."""
    site_texts = [normalize_text(t) for t in (context.project_name, context.document_type) if t]
    site_type = _site_type(site_texts)

    texts = _context_texts(context)
    joined = " | ".join(texts)

    if site_type == "highway" or any(_mentions(joined, ref) for ref in HIGH_TRAFFIC_REFERENCES):
        traffic_level = "high"
    else:
        traffic_level = TRAFFIC_BY_SITE_TYPE.get(site_type, "unknown")

    spec_texts = [normalize_text(t) for t in context.key_specifications]
    spec_texts.extend(normalize_text(legend.material or "") for legend in context.legend_items)
    spec_joined = " | ".join(spec_texts)

    return ProjectAnalysis(
        site_type=site_type,
        traffic_level=traffic_level,
        has_material_spec=THERMOPLASTIC in spec_joined,
        has_paint_spec=_mentions(spec_joined, PAINT),
        has_gdot_standard="gdot" in joined or "georgia dot" in joined,
    )


def _mentions_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}(?:s|es)?\b", text) is not None


def is_pavement_marking(item: str) -> bool:
    """True when the item names a marking keyword as a whole word and is not a sign or post."""
    text = normalize_text(item)
    if any(_mentions_word(text, keyword) for keyword in NON_MARKING_KEYWORDS):
        return False
    return any(_mentions_word(text, keyword) for keyword in MARKING_KEYWORDS)


def stated_material(item: str) -> Optional[str]:
    """Durable material named in the item text, if any."""
    text = normalize_text(item)
    for word, material in DURABLE_MATERIALS.items():
        if _mentions(text, word):
            return material
    return None


def _prepend(item: str, material: str) -> str:
    if _mentions(normalize_text(item), material):
        return item
    return f"{material} {item}"


def decide_material(item: str, analysis: ProjectAnalysis) -> MaterialDecision:
    """Apply the material precedence rules to one marking item.

    Args:
        item: Item text as extracted
        analysis: Project analysis from ``analyze_project``

    Returns:
        MaterialDecision with the item text to keep and the recommendation
    """
    material = stated_material(item)
    if material == THERMOPLASTIC and analysis.has_material_spec:
        return MaterialDecision(item=item, recommendation=_thermoplastic_specified())
    if material:
        return MaterialDecision(
            item=item,
            recommendation=MaterialRecommendation(
                material=material,
                definitive=True,
                confidence=RecommendationTier.DOCUMENT_SPECIFIED,
                reasoning="Material stated in the item description",
            ),
        )

    if analysis.has_material_spec:
        return MaterialDecision(item=_prepend(item, THERMOPLASTIC), recommendation=_thermoplastic_specified())

    if analysis.has_paint_spec and (analysis.traffic_level == "high" or analysis.has_gdot_standard):
        reason = "GDOT standards referenced" if analysis.has_gdot_standard else "high traffic"
        return MaterialDecision(
            item=item,
            recommendation=MaterialRecommendation(
                material=PAINT,
                definitive=False,
                confidence=RecommendationTier.UPGRADE_RECOMMENDED,
                reasoning=f"Document specifies paint; thermoplastic recommended ({reason})",
                upgrade=True,
                recommendation=THERMOPLASTIC,
            ),
        )

    if analysis.has_paint_spec:
        return MaterialDecision(
            item=_prepend(item, PAINT),
            recommendation=MaterialRecommendation(
                material=PAINT,
                definitive=True,
                confidence=RecommendationTier.DOCUMENT_SPECIFIED,
                reasoning="Document specifies painted pavement markings",
            ),
        )

    return MaterialDecision(item=item, recommendation=_best_practice(analysis))


def _thermoplastic_specified() -> MaterialRecommendation:
    return MaterialRecommendation(
        material=THERMOPLASTIC,
        definitive=True,
        confidence=RecommendationTier.DOCUMENT_SPECIFIED,
        reasoning="Document specifies thermoplastic pavement markings",
    )


def _best_practice(analysis: ProjectAnalysis) -> MaterialRecommendation:
    if analysis.traffic_level == "high":
        return MaterialRecommendation(
            material=THERMOPLASTIC,
            definitive=False,
            confidence=RecommendationTier.HIGH_BEST_PRACTICE,
            reasoning="No material specified; thermoplastic is standard for high-traffic roadways",
        )
    if analysis.traffic_level == "moderate":
        return MaterialRecommendation(
            material=THERMOPLASTIC,
            definitive=False,
            confidence=RecommendationTier.MODERATE_BEST_PRACTICE,
            reasoning=f"No material specified; thermoplastic is common for {analysis.site_type} sites",
        )
    if analysis.traffic_level == "low":
        return MaterialRecommendation(
            material=PAINT,
            definitive=False,
            confidence=RecommendationTier.LOW_TRAFFIC_ACCEPTABLE,
            reasoning="No material specified; paint is acceptable for low-traffic sites",
        )
    return MaterialRecommendation(
        material=PAINT,
        definitive=False,
        confidence=RecommendationTier.UNKNOWN,
        reasoning="No material specified and traffic level unknown; confirm with the engineer",
    )
