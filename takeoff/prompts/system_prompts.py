# Prompts for the multi-pass drawing takeoff pipeline.
# - Every prompt asks for strict JSON with an explicit schema.
# - Templates use string.Template placeholders ($name) so the JSON examples
#   can keep literal braces.
# - Prompts provided:
#   1) DOCUMENT_CONTEXT_PROMPT      (Stage 0, leading pages)
#   2) DETAIL_SPEC_PROMPT           (Stage 0.5, detail sheets)
#   3) RELEVANCE_SCAN_PROMPT        (Stage 1, cheap pass)
#   4) DEEP_EXTRACTION_PROMPT       (Stage 2, expensive pass)
#   5) DUPLICATE_DETECTION_PROMPT   (Stage 2.5, text only)

from string import Template

# =============================================================================
# STAGE 0: DOCUMENT CONTEXT
# =============================================================================
DOCUMENT_CONTEXT_PROMPT = Template(r"""
You are reading page $page_number of a construction drawing set to build
document-level context for a quantity takeoff.

Extract ONLY what is printed on this page. Do not guess.

Look for:
- The title block: project name, sheet title, discipline / trade
- Legends: every symbol or line style and what it means, with material if stated
- General notes and key specifications (material, color, width, thickness)
- References to standard details ("TYPE A ISLAND, SEE 5/C-5.1")
- Standards referenced (MUTCD, GDOT, ADA, state DOT sections, AADT counts)

CRITICAL: Respond with ONLY valid JSON. No markdown, no code blocks.

{
  "document_type": "Site Plan" | "Striping Plan" | "Signing and Marking Plan" | "Detail Sheet" | "Cover" | "Other",
  "trade": "pavement marking",
  "project_name": "Name from the title block or empty string",
  "legend_items": [
    {"symbol": "4\" SWL", "meaning": "4 inch solid white line", "material": "thermoplastic"}
  ],
  "key_specifications": ["All pavement markings shall be thermoplastic"],
  "detail_references": [{"type": "Type A Island", "sheet": "C-5.1"}],
  "standards_referenced": ["MUTCD 2009", "GDOT Section 653"]
}

If the page has none of this, return empty strings and empty arrays.
""")

# =============================================================================
# STAGE 0.5: DETAIL SPECIFICATIONS
# =============================================================================
DETAIL_SPEC_PROMPT = Template(r"""
You are reading a DETAIL SHEET (page $page_number) from a construction drawing set.

Extract every standard detail that defines a TYPE designation or a detail
number, with its dimensions and material.

CRITICAL: Respond with ONLY valid JSON. No markdown, no code blocks.

{
  "details": [
    {
      "type_designation": "Type A Island",
      "detail_number": "5/C-5.1",
      "dimensions": "6 ft x 20 ft, 45 degree hatching at 2 ft o.c.",
      "material": "thermoplastic",
      "thickness": "90 mil",
      "color": "yellow"
    }
  ]
}

Use null for values that are not printed. If the page defines no details,
return {"details": []}.
""")

# =============================================================================
# STAGE 1: RELEVANCE SCAN
# =============================================================================
RELEVANCE_SCAN_PROMPT = Template(r"""
You are analyzing a construction document page. Check if it contains information about ANY of these topics:

$topic_details

IMPORTANT:
- Check for ALL topics, not just the first few
- Even if you see just ONE topic keyword, mark as relevant
- When in doubt, mark as relevant

Look carefully at:
- Text in drawings and CAD labels
- Tables and schedules with quantities
- Quantity callouts and dimensions
- Material specifications in notes
- Detail references and legends

CRITICAL: Respond with ONLY valid JSON. No markdown, no code blocks.

If you see ANY relevant information, return:
{
  "relevant": true,
  "topics_found": ["topic keys or labels from the list above"],
  "keywords_found": ["actual", "keywords", "you", "see"],
  "page_type": "Site Plan" | "Detail Sheet" | "Schedule" | "Specification" | "Notes" | "Other",
  "confidence": 75,
  "brief_description": "What you see on the page"
}

If it's clearly a cover page, index, or utility plan with NO relevant info, return:
{
  "relevant": false,
  "topics_found": [],
  "keywords_found": [],
  "page_type": "Cover" | "Index" | "Other",
  "confidence": 0,
  "brief_description": "Brief description"
}
""")

# =============================================================================
# STAGE 2: DEEP EXTRACTION
# =============================================================================
DEEP_EXTRACTION_PROMPT = Template(r"""
You are analyzing page $page_number of a CONSTRUCTION PLAN for a bid estimate.

DOCUMENT CONTEXT (from the title block, legends and general notes):
$document_context

DETAIL SPECIFICATIONS (keyed by type designation):
$detail_specs

YOUR JOB: Extract every piece of information that quantifies work.

1. COUNT everything visible (parking stalls, signs, crosswalks, stop bars, arrows)
2. MEASURE striping from the scale bar (if you see 1"=20' use it)
3. READ material specs from legends, notes and callouts
4. Use the TYPE designations above when an item refers to a detail
5. List scope items even without exact quantities

RESPOND WITH ONLY VALID JSON (no markdown, no code blocks):

{
  "page_type": "Site Plan" | "Detail Sheet" | "Schedule" | "Specification" | "Notes" | "Other",
  "quantities": [
    {"item": "parking stalls", "value": 45, "unit": "EA", "location": "north lot", "source": "counted from plan"},
    {"item": "4 inch white striping", "value": 850, "unit": "LF", "location": "main parking", "source": "measured from 1\"=20' scale"}
  ],
  "materials": [
    {"item": "pavement striping", "specification": "4-inch white thermoplastic", "color": "white", "width": "4 inch", "source": "legend"}
  ],
  "scope_items": ["Install parking lot striping"],
  "specifications": ["Striping shall be 4-inch white thermoplastic"],
  "notes": ["See detail C-3 for crosswalk pattern"],
  "cross_references": ["Detail C-3", "Sheet L-5"]
}

Quantity values must be bare non-negative numbers. If the page has no
quantifiable information, return empty arrays but fill in page_type.
""")

# =============================================================================
# STAGE 2.5: DUPLICATE PAGE DETECTION
# =============================================================================
DUPLICATE_DETECTION_PROMPT = Template(r"""
The pages below were extracted from ONE drawing set. Some PDFs contain the
same sheet scanned twice; counting both would double the quantities.

PAGE SUMMARIES:
$page_summaries

Identify ONLY groups of pages that are the SAME SHEET:
- same page_type
- same items
- same quantities

Two different sheets of the same project often share item names with
different quantities. Those are NOT duplicates. If there is ANY doubt,
do not list the group.

RESPOND WITH ONLY VALID JSON:
{
  "duplicate_groups": [
    {"pages": [3, 7], "keep": 3, "confidence": "high", "reason": "identical items and quantities"}
  ],
  "pages_to_remove": [7]
}

If there are no duplicates, return {"duplicate_groups": [], "pages_to_remove": []}.
""")
