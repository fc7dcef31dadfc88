# backend/src/fitplan/utils/llm.py
import json
from typing import Any


def _strip_fences(s: str) -> str:
    s = s.strip()
    if s.startswith("```"):
        s = s.strip("` \n")
        if s.lower().startswith("json"):
            s = s[4:].lstrip()
    return s


def loads_model_json(text: str) -> Any:
    """
    Parse JSON text produced by a model.
    Code fences are removed first; json.JSONDecodeError propagates.
    """
    return json.loads(_strip_fences(text))
