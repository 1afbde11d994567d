"""Unit tests for the relevance scanner."""

import pytest

from takeoff.config.topics import TOPICS, Topic
from takeoff.core.exceptions import TransientInferenceError
from takeoff.services.pipeline.relevance_scanner import (
    SCAN_FAILED_SUMMARY,
    RelevanceScanner,
    build_topic_details,
    keyword_scores,
    normalize_topics,
    parse_scan_payload,
    sample_page_numbers,
)


class TestSamplePageNumbers:
    def test_all_pages_when_short(self):
        assert sample_page_numbers(4, 30) == [1, 2, 3, 4]

    def test_stride_includes_first_and_last(self):
        samples = sample_page_numbers(100, 30)

        assert len(samples) == 30
        assert samples[0] == 1
        assert samples[-1] == 100
        assert samples == sorted(set(samples))

    def test_small_stride(self):
        assert sample_page_numbers(10, 4) == [1, 4, 6, 10]

    def test_deterministic(self):
        assert sample_page_numbers(57, 30) == sample_page_numbers(57, 30)

    def test_empty(self):
        assert sample_page_numbers(0, 30) == []


class TestTopicMatching:
    def test_normalize_topics_by_key_and_label(self):
        topics = normalize_topics(["Stop Bars", "striping", "thermoplastic lines"], TOPICS)
        assert topics == ["stop_bars", "striping", "thermoplastic_lines"]

    def test_normalize_topics_drops_names_outside_taxonomy(self):
        assert normalize_topics(["none", "Parking Lots", None, "Crosswalks"], TOPICS) == ["crosswalks"]

    def test_keyword_scores(self):
        taxonomy = {"stop_bars": Topic(label="Stop Bars", keywords=["stop bar", "stop line", "stop marking", "intersection"])}

        assert keyword_scores("24 inch stop bar", taxonomy) == {"stop_bars": 0.5}
        assert keyword_scores("stop bar at intersection", taxonomy) == {"stop_bars": 1.0}
        assert keyword_scores("water main", taxonomy) == {}

    def test_topic_details_lists_every_topic(self):
        details = build_topic_details(TOPICS)
        assert details.count("\n") == len(TOPICS) - 1
        assert "- Striping: Look for stripe, striping, line, lines, pavement marking" in details


class TestParseScanPayload:
    def test_model_verdict_relevant(self):
        result = parse_scan_payload(
            {
                "relevant": True,
                "topics_found": ["Striping"],
                "keywords_found": [],
                "page_type": "Site Plan",
                "confidence": 85,
                "brief_description": "Parking lot striping",
            },
            page_number=3,
            taxonomy=TOPICS,
        )

        assert result.relevant is True
        assert result.topics == ["striping"]
        assert result.confidence == 85
        assert result.summary == "Parking lot striping"

    def test_relevant_without_topics_is_not_relevant(self):
        result = parse_scan_payload({"relevant": True, "topics_found": []}, page_number=3, taxonomy=TOPICS)
        assert result.relevant is False

    def test_keyword_backstop_overrides_model(self):
        result = parse_scan_payload(
            {"relevant": False, "topics_found": [], "keywords_found": ["crosswalk"], "page_type": "Other"},
            page_number=4,
            taxonomy=TOPICS,
        )

        assert result.relevant is True
        assert "crosswalks" in result.topics
        assert result.confidence > 0

    def test_irrelevant_page(self):
        result = parse_scan_payload(
            {"relevant": False, "topics_found": [], "keywords_found": [], "page_type": "Cover"},
            page_number=1,
            taxonomy=TOPICS,
        )

        assert result.relevant is False
        assert result.topics == []
        assert result.page_type == "Cover"

    def test_confidence_coercion(self):
        payload = {"relevant": True, "topics_found": ["signage"], "confidence": "0.9"}
        assert parse_scan_payload(payload, 2, TOPICS).confidence == 90

        payload["confidence"] = None
        assert parse_scan_payload(payload, 2, TOPICS).confidence == 70

    @pytest.mark.parametrize("confidence", ["nan", float("nan"), float("inf"), "-Infinity"])
    def test_non_finite_confidence_uses_default(self, confidence):
        payload = {"relevant": True, "topics_found": ["signage"], "confidence": confidence}

        result = parse_scan_payload(payload, 2, TOPICS)

        assert result.relevant is True
        assert result.confidence == 70

    @pytest.mark.parametrize("flag", ["false", "False", "no", "0"])
    def test_string_false_with_non_topic_is_not_relevant(self, flag):
        result = parse_scan_payload({"relevant": flag, "topics_found": ["none"]}, page_number=4, taxonomy=TOPICS)

        assert result.relevant is False
        assert result.topics == []

    def test_string_true_with_topic_is_relevant(self):
        result = parse_scan_payload({"relevant": "true", "topics_found": ["Crosswalks"]}, page_number=4, taxonomy=TOPICS)

        assert result.relevant is True
        assert result.topics == ["crosswalks"]


class TestRelevanceScanner:
    @pytest.mark.asyncio
    async def test_scan_returns_result_per_sampled_page(self, make_inference_client, make_executor, make_pages):
        def responder(prompt, page):
            if page in (2, 5):
                return {"relevant": True, "topics_found": ["striping"], "page_type": "Site Plan"}
            return {"relevant": False, "topics_found": [], "page_type": "Cover"}

        client, generator = make_inference_client(responder)
        scanner = RelevanceScanner(client, make_executor(batch_size=10), max_scan_pages=30)

        results = await scanner.scan(make_pages(6), total_pages=6)

        assert [r.page_number for r in results] == [1, 2, 3, 4, 5, 6]
        assert [r.page_number for r in results if r.relevant] == [2, 5]
        assert generator.calls[0]["generation_config"]["image_detail"] == "low"

    @pytest.mark.asyncio
    async def test_failed_scan_is_not_relevant(self, make_inference_client, make_executor, make_pages):
        def responder(prompt, page):
            if page == 2:
                return TransientInferenceError("timeout")
            return {"relevant": True, "topics_found": ["signage"]}

        client, _ = make_inference_client(responder)
        scanner = RelevanceScanner(client, make_executor(max_retries=1))

        results = await scanner.scan(make_pages(3), total_pages=3)

        failed = results[1]
        assert failed.page_number == 2
        assert failed.relevant is False
        assert failed.summary == SCAN_FAILED_SUMMARY

    @pytest.mark.asyncio
    async def test_render_failure_is_page_level(self, make_inference_client, make_executor, make_pages):
        client, _ = make_inference_client(lambda prompt, page: {"relevant": True, "topics_found": ["striping"]})
        scanner = RelevanceScanner(client, make_executor())

        results = await scanner.scan(make_pages(3, fail_pages=[3]), total_pages=3)

        assert [r.relevant for r in results] == [True, True, False]

    @pytest.mark.asyncio
    async def test_custom_taxonomy(self, make_inference_client, make_executor, make_pages):
        taxonomy = {"curbs": Topic(label="Curb Painting", keywords=["curb"])}
        client, generator = make_inference_client(
            lambda prompt, page: {"relevant": True, "topics_found": ["Curb Painting"]}
        )
        scanner = RelevanceScanner(client, make_executor())

        results = await scanner.scan(make_pages(1), total_pages=1, taxonomy=taxonomy)

        assert results[0].topics == ["curbs"]
        assert "Curb Painting: Look for curb" in generator.calls[0]["prompt"]
