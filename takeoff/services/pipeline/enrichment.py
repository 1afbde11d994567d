"""Enrichment engine (Stage 3).

Cross-references extracted quantities with the detail specs and applies the
material rules. Returns new records; the input extractions are left as they
were.
"""

import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from takeoff.models.takeoff_models import DetailSpec, DocumentContext, PageExtraction, QuantityItem
from takeoff.services.pipeline.material_decision import (
    ProjectAnalysis,
    analyze_project,
    decide_material,
    is_pavement_marking,
)
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import normalize_text

LOGGER = get_logger(__name__)


def find_detail_spec(
    item: str,
    detail_specs: Mapping[str, DetailSpec],
) -> Optional[Tuple[str, DetailSpec]]:
    """First detail spec (in map order) whose key appears in the item text.

    Keys match as whole words. A key with no letters (a bare detail number)
    only matches when written as "detail N" or "type N".
    """
    text = normalize_text(item)
    for key, spec in detail_specs.items():
        if key and _key_pattern(key).search(text):
            return key, spec
    return None


def _key_pattern(key: str) -> "re.Pattern[str]":
    escaped = re.escape(key)
    if not any(ch.isalpha() for ch in key):
        return re.compile(rf"\b(?:detail|dtl|type)\.?\s*(?:no\.?\s*|#\s*)?{escaped}(?![\w/-]|\.\d)")
    return re.compile(rf"(?<!\w){escaped}(?!\w)")


def _material_spec(spec: DetailSpec) -> Optional[str]:
    parts = [part for part in (spec.material, spec.thickness, spec.color) if part]
    return ", ".join(parts) or None


def attach_detail_spec(
    quantity: QuantityItem,
    detail_specs: Mapping[str, DetailSpec],
) -> QuantityItem:
    """Fill dimensions, material_spec and detail_reference from a matching detail.

    Fields that are already set are never overwritten.
    """
    match = find_detail_spec(quantity.item, detail_specs)
    if match is None:
        return quantity

    key, spec = match
    updates: Dict[str, str] = {}
    if quantity.dimensions is None and spec.dimensions:
        updates["dimensions"] = spec.dimensions
    material_spec = _material_spec(spec)
    if quantity.material_spec is None and material_spec:
        updates["material_spec"] = material_spec
    if quantity.detail_reference is None:
        updates["detail_reference"] = spec.detail_number or spec.type_designation or key

    return quantity.model_copy(update=updates) if updates else quantity


def enrich_quantity(
    quantity: QuantityItem,
    analysis: ProjectAnalysis,
    detail_specs: Mapping[str, DetailSpec],
) -> QuantityItem:
    enriched = attach_detail_spec(quantity, detail_specs)
    if not is_pavement_marking(enriched.item):
        return enriched

    decision = decide_material(enriched.item, analysis)
    return enriched.model_copy(
        update={"item": decision.item, "material_recommendation": decision.recommendation}
    )


class EnrichmentEngine:
    """Applies detail specs and material decisions to every extracted page."""

    def enrich(
        self,
        extractions: Sequence[PageExtraction],
        context: DocumentContext,
        detail_specs: Mapping[str, DetailSpec],
    ) -> List[PageExtraction]:
        """Enrich all quantities.

        Args:
            extractions: Pages surviving deduplication
            context: Merged document context
            detail_specs: Detail spec map

        Returns:
            New PageExtraction records in the same order
        """
        analysis = analyze_project(context)
        LOGGER.info(
            f"Project analysis: site={analysis.site_type}, traffic={analysis.traffic_level}, "
            f"thermoplastic_spec={analysis.has_material_spec}, paint_spec={analysis.has_paint_spec}, "
            f"gdot={analysis.has_gdot_standard}"
        )

        enriched_pages: List[PageExtraction] = []
        decisions = rewritten = with_detail = 0

        for page in extractions:
            quantities = []
            for quantity in page.quantities:
                enriched = enrich_quantity(quantity, analysis, detail_specs)
                if enriched.material_recommendation is not None:
                    decisions += 1
                if enriched.item != quantity.item:
                    rewritten += 1
                if enriched.detail_reference is not None and quantity.detail_reference is None:
                    with_detail += 1
                quantities.append(enriched)
            enriched_pages.append(page.model_copy(update={"quantities": quantities}))

        LOGGER.info(
            f"Enrichment: {decisions} material decisions, {rewritten} items rewritten, "
            f"{with_detail} items linked to detail specs"
        )
        return enriched_pages
