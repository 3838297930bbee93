"""
JSON extraction from free-form model output.

Language models wrap their JSON in prose. ``extract_json_object`` returns the
first JSON object embedded in the text. Objects may contain at most one level
of nested braces; deeper structures are not matched.
"""
import json
import re
from typing import Any, Dict

from stocklens.core.exceptions import ParseFailureException

JSON_OBJECT_PATTERN = re.compile(r"\{[^{}]*\{[^{}]*\}[^{}]*\}|\{[^{}]*\}")


def extract_json_object(text: str) -> Dict[str, Any]:
    if not text:
        raise ParseFailureException("Empty response text")

    match = JSON_OBJECT_PATTERN.search(text)
    if not match:
        raise ParseFailureException("No JSON object found in response", details={"preview": text[:100]})

    try:
        decoded = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ParseFailureException(
            "Embedded JSON could not be decoded",
            details={"error": str(exc), "fragment": match.group(0)[:200]},
        ) from exc

    if not isinstance(decoded, dict):
        raise ParseFailureException("Embedded JSON is not an object")
    return decoded
