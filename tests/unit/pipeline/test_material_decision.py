"""Unit tests for the material decision rules."""

import pytest

from takeoff.models.takeoff_models import DocumentContext, LegendItem, RecommendationTier
from takeoff.services.pipeline.material_decision import (
    ProjectAnalysis,
    analyze_project,
    decide_material,
    is_pavement_marking,
    stated_material,
)


class TestAnalyzeProject:
    def test_thermoplastic_spec(self):
        context = DocumentContext(
            project_name="Peachtree Plaza Shopping Center",
            key_specifications=["All pavement markings shall be thermoplastic"],
        )

        analysis = analyze_project(context)

        assert analysis.site_type == "commercial"
        assert analysis.traffic_level == "moderate"
        assert analysis.has_material_spec is True
        assert analysis.has_paint_spec is False

    def test_legend_material_counts_as_spec(self):
        context = DocumentContext(
            legend_items=[LegendItem(symbol="SWL", meaning="solid white line", material="Thermoplastic")]
        )
        assert analyze_project(context).has_material_spec is True

    def test_highway_references_raise_traffic(self):
        context = DocumentContext(
            project_name="Oak Street Apartments",
            key_specifications=["Traffic paint per GDOT Section 652"],
            standards_referenced=["GDOT Standard Specifications", "AADT 24,000"],
        )

        analysis = analyze_project(context)

        assert analysis.site_type == "residential"
        assert analysis.traffic_level == "high"
        assert analysis.has_paint_spec is True
        assert analysis.has_gdot_standard is True

    def test_empty_context(self):
        assert analyze_project(DocumentContext()) == ProjectAnalysis()


@pytest.mark.parametrize(
    "item, expected",
    [
        ("4 inch white striping", True),
        ("stop bar", True),
        ("left turn arrow", True),
        ("handicap symbol", True),
        ("parking stalls", False),
        ("ADA parking sign", False),
        ("catch basin", False),
        ("mobilization", False),
        ("Yield sign", False),
        ("Lane closure sign", False),
        ("stop bar sign post", False),
        ("pipeline cleanout", False),
        ("ONLY word legend", True),
        ("double yellow lines", True),
    ],
)
def test_is_pavement_marking(item, expected):
    assert is_pavement_marking(item) is expected


def test_stated_material():
    assert stated_material("24 inch thermoplastic stop bar") == "thermoplastic"
    assert stated_material("Epoxy lane line") == "epoxy"
    assert stated_material("paint stop bar") is None
    assert stated_material("stop bar") is None


class TestDecideMaterial:
    def test_paint_item_under_thermoplastic_spec(self):
        analysis = ProjectAnalysis(has_material_spec=True)

        first = decide_material("paint stop bar", analysis)

        assert first.recommendation.material == "thermoplastic"
        assert first.recommendation.definitive is True
        assert first.item == "thermoplastic paint stop bar"

        second = decide_material(first.item, analysis)
        assert second.item == "thermoplastic paint stop bar"
        assert second.item.count("thermoplastic") == 1
        assert second.recommendation.material == "thermoplastic"
        assert second.recommendation.definitive is True

    def test_item_material_wins(self):
        analysis = ProjectAnalysis(has_paint_spec=True)

        decision = decide_material("Epoxy lane line", analysis)

        assert decision.item == "Epoxy lane line"
        assert decision.recommendation.material == "epoxy"
        assert decision.recommendation.definitive is True

    def test_paint_spec_on_high_traffic_recommends_upgrade(self):
        analysis = ProjectAnalysis(traffic_level="high", has_paint_spec=True)

        decision = decide_material("4 inch yellow line", analysis)

        assert decision.item == "4 inch yellow line"
        assert decision.recommendation.material == "paint"
        assert decision.recommendation.upgrade is True
        assert decision.recommendation.recommendation == "thermoplastic"
        assert decision.recommendation.confidence == RecommendationTier.UPGRADE_RECOMMENDED

    def test_paint_spec_with_gdot_recommends_upgrade(self):
        analysis = ProjectAnalysis(traffic_level="low", has_paint_spec=True, has_gdot_standard=True)
        assert decide_material("stop bar", analysis).recommendation.upgrade is True

    def test_paint_spec_applied(self):
        analysis = ProjectAnalysis(traffic_level="low", has_paint_spec=True)

        decision = decide_material("stop bar", analysis)

        assert decision.item == "paint stop bar"
        assert decision.recommendation.definitive is True
        assert decide_material(decision.item, analysis).item == "paint stop bar"

    @pytest.mark.parametrize(
        "traffic_level, material, tier",
        [
            ("high", "thermoplastic", RecommendationTier.HIGH_BEST_PRACTICE),
            ("moderate", "thermoplastic", RecommendationTier.MODERATE_BEST_PRACTICE),
            ("low", "paint", RecommendationTier.LOW_TRAFFIC_ACCEPTABLE),
            ("unknown", "paint", RecommendationTier.UNKNOWN),
        ],
    )
    def test_no_spec_recommendation_never_rewrites(self, traffic_level, material, tier):
        decision = decide_material("stop bar", ProjectAnalysis(traffic_level=traffic_level))

        assert decision.item == "stop bar"
        assert decision.recommendation.material == material
        assert decision.recommendation.confidence == tier
        assert decision.recommendation.definitive is False
        assert decision.recommendation.reasoning
