"""
Rating Aggregator

Derives a single overall score for an appraisal from its weighted category
ratings. Pure functions: nothing here writes to the record it reads, and the
category data is aggregated as given (no clamping, no validation).
"""
from typing import Any, Iterable, Optional


def _value(item: Any, key: str) -> float:
    raw = item.get(key) if isinstance(item, dict) else getattr(item, key, None)
    return float(raw or 0)


def weighted_average(category_ratings: Iterable[Any]) -> Optional[float]:
    """
    Weighted mean of ``rating`` by ``weight``, rounded to 2 decimals.

    Weights are normalized by their own sum, so they need not total 100.
    Returns None when there are no categories or the weights sum to zero.
    """
    total_weight = 0.0
    weighted_score = 0.0
    for category in category_ratings or []:
        weight = _value(category, "weight")
        total_weight += weight
        weighted_score += _value(category, "rating") * weight
    if total_weight > 0:
        return round(weighted_score / total_weight, 2)
    return None


def overall_rating(appraisal: Any) -> Optional[float]:
    """
    Overall rating for an appraisal.

    An explicit, non-zero stored ``overall_rating`` always wins. A missing or
    zero stored value falls back to the category-weighted average.
    """
    stored = appraisal.overall_rating
    if stored:
        return stored
    return weighted_average(appraisal.category_ratings)


def responsibility_weight_total(responsibilities: Iterable[Any]) -> float:
    return sum(_value(item, "weight") for item in responsibilities or [])
