"""Coerce AI analysis output into the ranges we store."""

import math
from typing import Any, Dict

DEFAULT_RISK = "medium"


def normalize_score(value: Any) -> float:
    """Parse a protection score and clamp it to [0, 100]. Unparsable or non-finite values become 0."""
    if isinstance(value, bool):
        value = int(value)
    try:
        score = float(value if value is not None else 0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(score):
        return 0
    score = min(100.0, max(0.0, score))
    return int(score) if score.is_integer() else score


def normalize_risk(value: Any) -> str:
    raw = str(value or "").lower()
    if "low" in raw:
        return "low"
    if "high" in raw:
        return "high"
    return DEFAULT_RISK


def normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raw = {}
    return {
        "protectionScore": normalize_score(raw.get("protectionScore")),
        "overallRisk": normalize_risk(raw.get("overallRisk")),
    }
