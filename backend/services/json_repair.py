"""
JSON repair for model output.

Models emit JSON in two places here: tool-call arguments assembled from
streamed deltas, and the part-identification answer from the vision model.
Both are occasionally malformed (code fences, Python literals, trailing
commas, output cut off mid-object). This module extracts, repairs and parses
them deterministically.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def extract_json_from_response(text: str) -> Optional[str]:
    """
    Extract a JSON object string from a model response.

    Tries (in order):
    1. fenced code blocks (```json or bare ```)
    2. outermost { ... } in the text
    3. an unterminated object starting at the first {

    Returns:
        Extracted JSON string, or None if no object is present
    """
    if not text:
        return None

    fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
    if fenced and "{" in fenced.group(1):
        return fenced.group(1).strip()

    whole = re.search(r"\{[\s\S]*\}", text)
    if whole:
        return whole.group(0).strip()

    start = text.find("{")
    if start >= 0:
        return text[start:].strip()

    return None


def repair_json(json_str: str) -> str:
    """
    Repair common model JSON mistakes.

    1. Content after the first complete top-level object
    2. Python literals (None, True, False)
    3. Single-quoted keys and values
    4. Trailing commas before } or ]
    5. Missing values after a colon
    6. Unclosed strings, braces and brackets from truncated output
    """
    original = json_str

    depth = 0
    end = 0
    in_string = False
    escaped = False
    for i, c in enumerate(json_str):
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c in "{[":
            depth += 1
        elif c in "}]":
            depth -= 1
            if depth == 0:
                end = i + 1
                break
    if 0 < end < len(json_str):
        json_str = json_str[:end]

    json_str = re.sub(r"\bNone\b", "null", json_str)
    json_str = re.sub(r"\bTrue\b", "true", json_str)
    json_str = re.sub(r"\bFalse\b", "false", json_str)

    json_str = re.sub(r"'(\w+)'\s*:", r'"\1":', json_str)
    json_str = re.sub(r":\s*'([^'\"]*)'", r': "\1"', json_str)

    json_str = re.sub(r",\s*}", "}", json_str)
    json_str = re.sub(r",\s*]", "]", json_str)

    json_str = re.sub(r":\s*,", ": null,", json_str)
    json_str = re.sub(r":\s*}", ": null}", json_str)

    # Truncated output: close the open string, then any open containers
    if json_str.count('"') - json_str.count('\\"') & 1:
        json_str += '"'
    stack = []
    in_string = False
    escaped = False
    for c in json_str:
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c in "{[":
            stack.append("}" if c == "{" else "]")
        elif c in "}]" and stack:
            stack.pop()
    if stack:
        json_str = re.sub(r",\s*$", "", json_str) + "".join(reversed(stack))

    if json_str != original:
        logger.info("Applied JSON repairs")

    return json_str


def parse_json_response(text: str) -> Optional[Any]:
    """
    Full pipeline: extract JSON from a model response, repair, and parse.

    Returns:
        Parsed object, or None if extraction/parsing fails
    """
    json_str = extract_json_from_response(text)
    if json_str is None:
        logger.warning("No JSON found in response")
        return None

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(json_str)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed after all repairs: {e}")
        return None


def parse_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """Parse a streamed tool-call argument string into a dict.

    Empty or unparseable arguments become ``{}`` so the tool can report its
    own missing-parameter error.
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = parse_json_response(raw)
    if not isinstance(parsed, dict):
        logger.warning(f"Tool arguments are not an object: {raw[:200]}")
        return {}
    return parsed
