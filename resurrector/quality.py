"""README quality report normalisation."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from .errors import DecodeError
from .logging import get_logger

# Weights must sum to 100; the overall score is the weighted average of category scores.
CATEGORY_WEIGHTS: Dict[str, int] = {
    "completeness": 30,
    "accuracy": 25,
    "structure": 20,
    "readability": 15,
    "visual_appeal": 10,
}

CATEGORY_LABELS: Dict[str, str] = {
    "completeness": "Completeness",
    "accuracy": "Accuracy",
    "structure": "Structure & Formatting",
    "readability": "Readability",
    "visual_appeal": "Visual Appeal",
}

_CATEGORY_ALIASES: Dict[str, str] = {
    "sections": "completeness",
    "coverage": "completeness",
    "correctness": "accuracy",
    "formatting": "structure",
    "format": "structure",
    "structure_and_formatting": "structure",
    "clarity": "readability",
    "visuals": "visual_appeal",
    "visual": "visual_appeal",
    "appeal": "visual_appeal",
    "badges": "visual_appeal",
}

FALLBACK_SCORE = 30
FALLBACK_SUGGESTION = (
    "This README was assembled from repository metadata only because generation failed. "
    "Retry the generation to produce a complete document."
)

_logger = get_logger("quality")


@dataclass
class QualityCategory:
    """Score for a single rubric category."""

    score: int
    label: str
    weight: int
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "label": self.label,
            "weight": self.weight,
            "detail": self.detail,
        }


@dataclass
class QualityReport:
    """Overall score, per-category breakdown, and ordered suggestions."""

    score: int
    categories: Dict[str, QualityCategory] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "QualityReport":
        """Normalise the scoring tool's JSON into a report with fixed weights."""
        if not isinstance(payload, Mapping):
            raise DecodeError(
                f"Quality report must be a JSON object, got {type(payload).__name__}"
            )

        categories = _parse_categories(payload.get("categories"))
        if categories:
            score = weighted_score(categories.values())
        else:
            score = _clamp_score(payload.get("score"))

        return cls(
            score=score,
            categories=categories,
            suggestions=_parse_suggestions(payload.get("suggestions")),
        )

    @classmethod
    def fallback(cls) -> "QualityReport":
        return cls(score=FALLBACK_SCORE, categories={}, suggestions=[FALLBACK_SUGGESTION])

    def suggestion_text(self) -> str:
        return ", ".join(self.suggestions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "categories": {key: category.to_dict() for key, category in self.categories.items()},
            "suggestions": list(self.suggestions),
        }


def weighted_score(categories: Iterable[QualityCategory]) -> int:
    """Return the weighted average of category scores, rounded half up."""
    total_weight = 0
    accumulated = 0
    for category in categories:
        total_weight += category.weight
        accumulated += category.score * category.weight
    if total_weight <= 0:
        return 0
    return _clamp_score(int(accumulated / total_weight + 0.5))


def _parse_categories(raw: Any) -> Dict[str, QualityCategory]:
    entries: List[tuple[str, Any]] = []
    if isinstance(raw, Mapping):
        entries = [(str(key), value) for key, value in raw.items()]
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, Mapping):
                key = item.get("key") or item.get("id") or item.get("name") or item.get("label")
                if key:
                    entries.append((str(key), item))

    categories: Dict[str, QualityCategory] = {}
    for raw_key, value in entries:
        key = _canonical_category(raw_key)
        if key is None:
            _logger.debug("Ignoring unknown quality category %r", raw_key)
            continue
        if isinstance(value, Mapping):
            score = _clamp_score(value.get("score"))
            detail = value.get("detail") or value.get("details") or value.get("feedback") or ""
        else:
            score = _clamp_score(value)
            detail = ""
        categories[key] = QualityCategory(
            score=score,
            label=CATEGORY_LABELS[key],
            weight=CATEGORY_WEIGHTS[key],
            detail=str(detail),
        )
    return categories


def _canonical_category(name: str) -> str | None:
    normalised = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    if normalised in CATEGORY_WEIGHTS:
        return normalised
    if normalised in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[normalised]
    for key, label in CATEGORY_LABELS.items():
        if normalised == re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_"):
            return key
    return None


def _parse_suggestions(raw: Any) -> List[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    suggestions: List[str] = []
    for item in raw:
        if isinstance(item, Mapping):
            item = item.get("text") or item.get("suggestion") or ""
        text = str(item).strip() if item is not None else ""
        if text:
            suggestions.append(text)
    return suggestions


def _clamp_score(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return max(0, min(100, int(round(value))))


__all__ = [
    "CATEGORY_LABELS",
    "CATEGORY_WEIGHTS",
    "FALLBACK_SCORE",
    "QualityCategory",
    "QualityReport",
    "weighted_score",
]
