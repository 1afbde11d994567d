"""Unit tests for the detail spec extractor."""

import pytest

from takeoff.models.takeoff_models import DetailSpec, PageScanResult
from takeoff.services.pipeline.detail_spec_extractor import (
    DetailSpecExtractor,
    merge_detail_specs,
    parse_detail_payload,
    select_detail_pages,
)


def test_parse_detail_payload_keys_and_fields():
    payload = {
        "details": [
            {"type_designation": "Type A Island", "detail_number": "5/C-5.1", "dimensions": "6 ft x 20 ft",
             "material": "thermoplastic", "thickness": None},
            {"detail_number": "7/C-5.2", "material": "paint"},
            {"dimensions": "no key"},
            "junk",
        ]
    }

    specs = parse_detail_payload(payload, page_number=12)

    assert [s.type_designation for s in specs] == ["Type A Island", ""]
    assert specs[0].thickness is None
    assert specs[1].detail_number == "7/C-5.2"
    assert all(s.source_page == 12 for s in specs)


def test_merge_first_spec_wins():
    first = DetailSpec(type_designation="Type A Island", dimensions="6 ft", source_page=3)
    second = DetailSpec(type_designation="TYPE A ISLAND", dimensions="8 ft", source_page=9)
    numbered = DetailSpec(detail_number="7/C-5.2", source_page=9)

    merged = merge_detail_specs([[first], [second, numbered]])

    assert list(merged) == ["type a island", "7/c-5.2"]
    assert merged["type a island"].dimensions == "6 ft"


def test_select_detail_pages():
    results = [
        PageScanResult(page_number=2, relevant=True, page_type="Site Plan", summary="striping layout"),
        PageScanResult(page_number=8, relevant=True, page_type="Detail Sheet"),
        PageScanResult(page_number=9, relevant=True, page_type="Other", summary="Typical striping details"),
        PageScanResult(page_number=10, relevant=False, page_type="Detail Sheet"),
    ]

    assert select_detail_pages(results) == [8, 9]


class TestDetailSpecExtractor:
    @pytest.mark.asyncio
    async def test_no_detail_pages(self, make_inference_client, make_executor, make_pages):
        client, generator = make_inference_client(lambda prompt, page: {})
        extractor = DetailSpecExtractor(client, make_executor())

        assert await extractor.extract(make_pages(), []) == {}
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_extracts_from_each_page(self, make_inference_client, make_executor, make_pages):
        def responder(prompt, page):
            if page == 8:
                return {"details": [{"type_designation": "Type A Island", "dimensions": "6 ft x 20 ft"}]}
            return "not json"

        client, generator = make_inference_client(responder)
        extractor = DetailSpecExtractor(client, make_executor())

        specs = await extractor.extract(make_pages(10), [8, 9])

        assert list(specs) == ["type a island"]
        assert specs["type a island"].source_page == 8
        assert "page 8" in generator.calls[0]["prompt"]
