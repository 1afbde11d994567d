"""Unit tests for the enrichment engine."""

import pytest

from takeoff.models.takeoff_models import DetailSpec, DocumentContext, PageExtraction, QuantityItem
from takeoff.services.pipeline.enrichment import EnrichmentEngine, attach_detail_spec, find_detail_spec


@pytest.fixture
def detail_specs():
    return {
        "type a island": DetailSpec(
            type_designation="Type A Island", detail_number="5/C-5.1",
            dimensions="6 ft x 20 ft", material="thermoplastic", thickness="90 mil", source_page=9,
        ),
        "island": DetailSpec(type_designation="Island", dimensions="4 ft x 10 ft", source_page=10),
    }


@pytest.fixture
def thermoplastic_context():
    return DocumentContext(key_specifications=["All pavement markings shall be thermoplastic"])


class TestDetailSpecs:
    def test_first_matching_key_wins(self, detail_specs):
        key, spec = find_detail_spec("Type A Island hatching", detail_specs)
        assert key == "type a island"
        assert spec.source_page == 9

    def test_attaches_missing_fields(self, detail_specs):
        quantity = QuantityItem(item="Type A island hatching", value=2)

        enriched = attach_detail_spec(quantity, detail_specs)

        assert enriched.dimensions == "6 ft x 20 ft"
        assert enriched.material_spec == "thermoplastic, 90 mil"
        assert enriched.detail_reference == "5/C-5.1"
        assert quantity.dimensions is None

    def test_never_overwrites(self, detail_specs):
        quantity = QuantityItem(item="Type A island", value=2, dimensions="as drawn")

        enriched = attach_detail_spec(quantity, detail_specs)

        assert enriched.dimensions == "as drawn"
        assert enriched.material_spec == "thermoplastic, 90 mil"

    def test_no_match(self, detail_specs):
        quantity = QuantityItem(item="stop bar", value=2)
        assert attach_detail_spec(quantity, detail_specs) is quantity

    def test_key_matches_whole_words_only(self):
        specs = {"island": DetailSpec(type_designation="Island", dimensions="4 ft x 10 ft")}

        assert find_detail_spec("islander drive striping", specs) is None
        assert find_detail_spec("island nose hatching", specs)[0] == "island"

    def test_bare_detail_number_needs_detail_or_type_prefix(self):
        specs = {"5": DetailSpec(detail_number="5", material="concrete", dimensions="6x6")}
        quantity = QuantityItem(item="25 MPH speed limit sign", value=2)

        assert attach_detail_spec(quantity, specs) is quantity
        assert find_detail_spec("5 inch white line", specs) is None
        assert find_detail_spec("curb ramp per detail 5", specs)[0] == "5"
        assert find_detail_spec("Type 5 curb ramp", specs)[0] == "5"
        assert find_detail_spec("curb ramp per detail 5/C-2", specs) is None


class TestEnrichmentEngine:
    def test_rewrites_marking_items_under_thermoplastic_spec(self, thermoplastic_context):
        pages = [
            PageExtraction(
                page_number=2,
                page_type="Site Plan",
                quantities=[
                    QuantityItem(item="paint stop bar", value=4),
                    QuantityItem(item="catch basin", value=1),
                ],
            )
        ]

        enriched = EnrichmentEngine().enrich(pages, thermoplastic_context, {})

        stop_bar, basin = enriched[0].quantities
        assert stop_bar.item == "thermoplastic paint stop bar"
        assert stop_bar.material_recommendation.definitive is True
        assert basin.item == "catch basin"
        assert basin.material_recommendation is None
        # input untouched
        assert pages[0].quantities[0].item == "paint stop bar"

    def test_enrichment_is_idempotent(self, thermoplastic_context, detail_specs):
        pages = [
            PageExtraction(
                page_number=2,
                quantities=[QuantityItem(item="paint stop bar", value=4),
                            QuantityItem(item="Type A island striping", value=3, unit="EA")],
            )
        ]
        engine = EnrichmentEngine()

        once = engine.enrich(pages, thermoplastic_context, detail_specs)
        twice = engine.enrich(once, thermoplastic_context, detail_specs)

        assert once == twice

    def test_signs_are_not_rewritten(self, thermoplastic_context):
        pages = [
            PageExtraction(
                page_number=3,
                quantities=[
                    QuantityItem(item="Yield sign", value=2),
                    QuantityItem(item="Lane closure sign", value=4),
                ],
            )
        ]

        enriched = EnrichmentEngine().enrich(pages, thermoplastic_context, {})

        assert [q.item for q in enriched[0].quantities] == ["Yield sign", "Lane closure sign"]
        assert all(q.material_recommendation is None for q in enriched[0].quantities)

    def test_no_spec_keeps_item_text(self):
        pages = [PageExtraction(page_number=1, quantities=[QuantityItem(item="4 inch white line", value=850, unit="LF")])]

        enriched = EnrichmentEngine().enrich(pages, DocumentContext(), {})

        quantity = enriched[0].quantities[0]
        assert quantity.item == "4 inch white line"
        assert quantity.material_recommendation.definitive is False
