from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import ValidationError

from fitplan.core.exceptions import InputValidationError

from .schemas import Profile


def _issue_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def format_validation_issue(error: ValidationError) -> str:
    """Render the first pydantic issue as ``Field "<path>": <message>``."""
    issues = error.errors(include_url=False)
    if not issues:
        return "Payload validation failed."
    issue = issues[0]
    path = _issue_path(issue.get("loc") or ())
    label = f'Field "{path}"' if path else "Field"
    return f"{label}: {issue.get('msg', 'invalid value')}"


def parse_profile(raw: Any) -> Profile:
    """Turn an untyped JSON value into a Profile or raise InputValidationError.

    Numeric fields accept numeric strings; only the first failing field is
    reported.
    """
    if not isinstance(raw, dict):
        raise InputValidationError(None, "request body must be a JSON object")
    try:
        return Profile.model_validate(raw)
    except ValidationError as exc:
        issue = exc.errors(include_url=False)[0]
        field = _issue_path(issue.get("loc") or ()) or None
        raise InputValidationError(field, issue.get("msg", "invalid value")) from exc


def normalize_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", "", (text or "").lower())


def has_medical_condition(text: Optional[str]) -> bool:
    """Any non-blank text counts; the content itself is never inspected."""
    return len(normalize_text(text)) > 0
