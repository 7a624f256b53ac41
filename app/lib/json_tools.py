# app/lib/json_tools.py
import json
import re
from typing import Any, Dict

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", flags=re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")

def strip_code_fence(text: str) -> str:
    s = (text or "").strip()
    if s.startswith("```"):
        s = _FENCE_OPEN.sub("", s)
        s = _FENCE_CLOSE.sub("", s)
    return s

def extract_json_object(text: str) -> str:
    """
    Best-effort: return the substring of `text` that holds a single JSON object.
    Models sometimes wrap the payload in markdown fences or chatter around it.
    """
    s = strip_code_fence(text)
    if s.startswith("{") and s.endswith("}"):
        return s
    start = s.find("{")
    end = s.rfind("}")
    if start != -1 and end > start:
        return s[start:end + 1]
    return s

def load_json_object(text: str) -> Dict[str, Any]:
    """Parse a model reply into a dict. Raises ValueError when that is not possible."""
    if not text or not text.strip():
        raise ValueError("empty model reply")
    try:
        data = json.loads(extract_json_object(text))
    except json.JSONDecodeError as e:
        raise ValueError(f"model reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
