import json
import re
from typing import Any, Dict, List, Optional, Union

from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def clean_json_response(text: Optional[str]) -> Optional[str]:
    """Strip prose and markdown fencing around a JSON payload.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace
    - Prose before or after the outermost JSON object

    Args:
        text: Raw model output

    Returns:
        Cleaned text, or None when nothing is left
    """
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
        cleaned = cleaned.strip()

    # Fallback: cut to the outermost object
    if cleaned and not cleaned.startswith(("{", "[")):
        match = re.search(r"\{[\s\S]*\}", cleaned)
        if match:
            cleaned = match.group(0)

    return cleaned or None


def parse_json_safely(text: Optional[str]) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    cleaned = clean_json_response(text)
    if cleaned is None:
        return None

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

        if "Extra data" in str(e):
            merged = _parse_concatenated_json(cleaned)
            if merged is not None:
                LOGGER.info("Parsed concatenated JSON, merged into single result")
                return merged

        # Last resort: the first balanced object
        first = _first_balanced_object(cleaned)
        if first is not None:
            try:
                return json.loads(first)
            except json.JSONDecodeError:
                pass

        LOGGER.error(f"Failed to parse JSON: {e}")
        return None


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first brace-balanced ``{...}`` span, ignoring braces in strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:idx + 1]
    return None


def _parse_concatenated_json(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse several JSON values written back to back and merge them.

    Args:
        text: Text containing potentially concatenated JSON

    Returns:
        Merged result or None if nothing could be decoded
    """
    decoder = json.JSONDecoder()
    results = []
    idx = 0
    text = text.strip()

    while idx < len(text):
        while idx < len(text) and text[idx] in " \t\n\r":
            idx += 1
        if idx >= len(text):
            break

        try:
            obj, end_idx = decoder.raw_decode(text, idx)
            results.append(obj)
            idx = end_idx
        except json.JSONDecodeError:
            next_brace = text.find("{", idx + 1)
            if next_brace == -1:
                break
            idx = next_brace

    if results:
        return _merge_json_objects(results)

    return None


def _merge_json_objects(objects: List[Any]) -> Union[Dict[str, Any], List[Any]]:
    """Merge a list of parsed JSON objects into a single result.

    Dicts are merged key by key (lists concatenated, later scalars win);
    lists are flattened; mixed types are returned as a list.
    """
    if len(objects) == 1:
        return objects[0]

    if all(isinstance(obj, dict) for obj in objects):
        merged: Dict[str, Any] = {}
        for obj in objects:
            for key, value in obj.items():
                existing = merged.get(key)
                if isinstance(existing, list) and isinstance(value, list):
                    merged[key] = existing + value
                elif isinstance(existing, dict) and isinstance(value, dict):
                    merged[key] = {**existing, **value}
                else:
                    merged[key] = value
        return merged

    if all(isinstance(obj, list) for obj in objects):
        flattened = []
        for obj in objects:
            flattened.extend(obj)
        return flattened

    return objects
