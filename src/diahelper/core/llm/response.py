"""Parsing and guardrail enforcement for narrative LLM output."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class LLMResponseError(ValueError):
    """Raised when the LLM output does not match the expected JSON shape."""


@dataclass
class GuardrailCheck:
    """Result of checking narrative text against the prohibited patterns."""

    passed: bool
    flags: list[str] = field(default_factory=list)


# Phrases that turn an educational estimate into a diagnosis or prescription
PROHIBITED_PATTERNS: dict[str, tuple[str, ...]] = {
    "making medical diagnoses": (
        "you have diabetes",
        "you have been diagnosed",
        "you are diabetic",
        "you have prediabetes",
        "this confirms",
    ),
    "prescribing treatments": (
        "start taking metformin",
        "take this medication",
        "stop taking your medication",
        "increase your insulin",
        "i prescribe",
    ),
    "making disease predictions": (
        "you will develop",
        "you will get diabetes",
        "guaranteed to",
    ),
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_payload(text: str, *, required_keys: tuple[str, ...] = ()) -> dict[str, Any]:
    """Parse a JSON object from LLM output, tolerating a Markdown code fence.

    Raises:
        LLMResponseError: Not a JSON object, or a required string key is missing.
    """
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"LLM response is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise LLMResponseError("LLM response is not a JSON object")

    for key in required_keys:
        value = payload.get(key)
        if not isinstance(value, str) or not value.strip():
            raise LLMResponseError(f"LLM response is missing a non-empty {key!r} string")
    return payload


def check_guardrails(content: str) -> GuardrailCheck:
    flags: list[str] = []
    content_lower = content.lower()

    for action, patterns in PROHIBITED_PATTERNS.items():
        for pattern in patterns:
            if pattern in content_lower:
                flags.append(f"prohibited_pattern_detected: {action} ('{pattern}')")

    if flags:
        logger.warning("Guardrail flags on narrative: %s", flags)
    return GuardrailCheck(passed=not flags, flags=flags)


def sanitize_content(content: str, guardrail_check: GuardrailCheck) -> str:
    """Replace each sentence that contains a flagged phrase with a redaction note."""
    if guardrail_check.passed:
        return content

    phrases: list[str] = []
    for flag in guardrail_check.flags:
        match = re.search(r"\('([^']+)'\)", flag)
        if match:
            phrases.append(match.group(1))

    sanitized = content
    for phrase in phrases:
        pattern = re.compile(
            r"[^.!?\n]*" + re.escape(phrase) + r"[^.!?\n]*[.!?]?",
            re.IGNORECASE,
        )
        sanitized = pattern.sub("[Removed: contains prohibited health guidance]", sanitized)
    return sanitized


def enforce_disclaimers(content: str, disclaimers: list[str]) -> tuple[str, list[str]]:
    """Append any required disclaimer the text does not already contain.

    Returns: (possibly modified content, flags)
    """
    required = [d.strip() for d in disclaimers if d.strip()]
    if not required:
        return content, []

    def _norm(s: str) -> str:
        return " ".join(s.lower().split())

    content_norm = _norm(content)
    missing = [d for d in required if _norm(d) not in content_norm]
    if not missing:
        return content, []

    footer = "\n\n---\nDisclaimers:\n" + "\n".join(f"- {d}" for d in missing)
    return content + footer, [f"disclaimer_appended: {d}" for d in missing]
