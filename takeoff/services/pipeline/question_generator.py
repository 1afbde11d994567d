"""Resolution questions surfaced to the estimator after aggregation."""

from typing import List, Sequence

from takeoff.models.takeoff_models import Conflict, PageExtraction, ResolutionQuestion


def _fmt(value: float) -> str:
    return f"{value:g}"


def conflict_question(conflict: Conflict, question_id: int) -> ResolutionQuestion:
    occurrences = conflict.occurrences
    unit = occurrences[0].unit
    total = sum(o.value for o in occurrences)
    highest = max(o.value for o in occurrences)

    return ResolutionQuestion(
        id=question_id,
        type=conflict.type,
        item=conflict.item,
        question=(
            f"Different {conflict.item} quantities found across multiple pages. "
            f"How should we handle this?"
        ),
        description=f"Found {len(occurrences)} different counts:",
        details=[
            f"Page {o.page}: {_fmt(o.value)} {o.unit} at {o.location} ({o.source})"
            for o in occurrences
        ],
        options=[
            f"Sum all quantities (Total: {_fmt(total)} {unit})",
            f"Use highest count ({_fmt(highest)} {unit})",
            "Keep separate by location",
            "Need to verify with project documents",
        ],
    )


def generate_questions(
    conflicts: Sequence[Conflict],
    extractions: Sequence[PageExtraction],
) -> List[ResolutionQuestion]:
    """One question per conflict, or a single summary when there are none.

    Args:
        conflicts: Output of conflict detection
        extractions: Final page records, used for the summary counts

    Returns:
        Questions numbered from 1
    """
    if conflicts:
        return [conflict_question(conflict, i) for i, conflict in enumerate(conflicts, start=1)]

    total_quantities = sum(len(p.quantities) for p in extractions)
    total_materials = sum(len(p.materials) for p in extractions)
    return [
        ResolutionQuestion(
            id=1,
            type="summary",
            question=(
                f"Extraction complete! Found {total_quantities} quantities and "
                f"{total_materials} material specifications with no conflicts detected."
            ),
            description=(
                "All extracted data appears consistent across pages. "
                "You can now proceed to add your unit prices for bidding."
            ),
            options=[
                "Show me the extracted line items",
                "Review document details",
                "Analyze more pages",
            ],
        )
    ]
