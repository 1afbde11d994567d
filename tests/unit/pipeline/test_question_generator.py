"""Unit tests for resolution questions."""

from takeoff.models.takeoff_models import Conflict, Occurrence, PageExtraction, QuantityItem
from takeoff.services.pipeline.question_generator import generate_questions


def test_question_per_conflict():
    conflict = Conflict(
        item_key="parking stalls_ea",
        item="parking stalls",
        occurrences=[
            Occurrence(page=2, value=47, unit="EA", location="north lot"),
            Occurrence(page=6, value=48, unit="EA", source="schedule"),
        ],
    )

    questions = generate_questions([conflict], [])

    assert len(questions) == 1
    question = questions[0]
    assert question.id == 1
    assert question.type == "quantity_conflict"
    assert question.details == [
        "Page 2: 47 EA at north lot (from plan)",
        "Page 6: 48 EA at not specified (schedule)",
    ]
    assert question.options[0] == "Sum all quantities (Total: 95 EA)"
    assert question.options[1] == "Use highest count (48 EA)"
    assert len(question.options) == 4


def test_summary_when_no_conflicts():
    pages = [PageExtraction(page_number=1, quantities=[QuantityItem(item="stop bar", value=2)])]

    questions = generate_questions([], pages)

    assert len(questions) == 1
    assert questions[0].type == "summary"
    assert "Found 1 quantities and 0 material specifications" in questions[0].question
