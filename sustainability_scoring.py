"""
Weighted sustainability scoring.

Pure functions: no I/O, no shared state.  Every score shown to a user is
derived here from raw_score x weight; any weighted or overall score that
arrived with the upstream payload is ignored.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple, Union

from project_report import (
    CategoryScore,
    CategoryWeight,
    MissingCategoryData,
    ReportDataError,
    SustainabilityScore,
    check_raw_score,
    check_weight,
)
from scoring_config import CATEGORY_ORDER, SCORING_MODEL, ScoreBand, SustainabilityCategory

logger = logging.getLogger(__name__)

CategoryKey = Union[SustainabilityCategory, str]


@dataclass(frozen=True)
class CategoryContribution:
    """One category's share of the overall score."""
    category: SustainabilityCategory
    raw_score: float
    weight: float
    weighted_score: float     # rounded to 1 dp for display
    weighted_exact: float     # full precision, used for classification
    max_score: float          # weight * 10, rounded to 1 dp
    percentage: float         # weighted score as % of max (0 when max is 0)
    band: ScoreBand

    @property
    def rating(self) -> str:
        return self.band.label


@dataclass(frozen=True)
class ScoreSummary:
    contributions: Tuple[CategoryContribution, ...]
    overall_score: float      # rounded to 1 dp
    overall_exact: float
    band: ScoreBand
    weight_sum: float
    weights_normalized: bool  # False when weights do not sum to 1.0

    @property
    def rating(self) -> str:
        return self.band.label


# =============================================================================
# Rounding and classification
# =============================================================================

def round_score(value: float, ndigits: int = 1) -> float:
    """Round half away from zero.

    Python's round() is round-half-to-even (round(0.25, 1) -> 0.2), which
    disagrees with how scores are shown in the UI.  The small epsilon
    absorbs binary float noise such as 0.35 * 3 == 1.0499999999999998.
    """
    factor = 10 ** ndigits
    rounded = math.floor(abs(value) * factor + 0.5 + 1e-9) / factor
    if value < 0 and rounded:
        return -rounded
    return rounded


def classify_score(score: float, weight: float = 1.0) -> ScoreBand:
    """Return the rating band for *score*.

    For a category, pass its weight: thresholds are scaled to the
    category's own maximum (weighted >= weight * 7.5 is Sustainable).
    A category with zero weight has no maximum and falls in the lowest band.
    """
    bands = SCORING_MODEL.score_bands
    if weight <= 0:
        return bands[-1]
    for band in bands:
        if score >= band.threshold * weight:
            return band
    return bands[-1]


def get_rating(score: float, weight: float = 1.0) -> str:
    return classify_score(score, weight).label


# =============================================================================
# Aggregation
# =============================================================================

def compute_weighted_score(raw_score: float, weight: float) -> float:
    """raw_score x weight, rounded to one decimal place."""
    if not (math.isfinite(raw_score) and math.isfinite(weight)):
        raise ReportDataError(f"Cannot weight raw score {raw_score} by {weight}")
    return round_score(raw_score * weight)


def score_percentage(weighted_score: float, weight: float) -> float:
    """Weighted score as a percentage of the category maximum (weight x 10).

    A zero maximum yields 0% rather than a division error.
    """
    max_score = weight * SCORING_MODEL.raw_score_max
    if max_score <= 0:
        return 0.0
    return weighted_score / max_score * 100


def _category(key: CategoryKey) -> SustainabilityCategory:
    if isinstance(key, SustainabilityCategory):
        return key
    try:
        return SustainabilityCategory.from_label(key)
    except ValueError:
        raise MissingCategoryData(f"Unknown sustainability category {key!r}")


def _paired_categories(
    scores: Mapping[CategoryKey, CategoryScore],
    weights: Mapping[CategoryKey, CategoryWeight],
) -> Tuple[Dict[SustainabilityCategory, CategoryScore], Dict[SustainabilityCategory, CategoryWeight]]:
    by_score = {_category(k): v for k, v in scores.items()}
    by_weight = {_category(k): v for k, v in weights.items()}

    without_weight = [c.label for c in CATEGORY_ORDER if c in by_score and c not in by_weight]
    without_score = [c.label for c in CATEGORY_ORDER if c in by_weight and c not in by_score]
    if without_weight or without_score:
        parts = []
        if without_weight:
            parts.append(f"no weight for {', '.join(without_weight)}")
        if without_score:
            parts.append(f"no score for {', '.join(without_score)}")
        raise MissingCategoryData("; ".join(parts))
    return by_score, by_weight


def _overall_exact(
    by_score: Dict[SustainabilityCategory, CategoryScore],
    by_weight: Dict[SustainabilityCategory, CategoryWeight],
) -> float:
    total = 0.0
    # Fixed summation order keeps the float result identical across runs.
    for category in CATEGORY_ORDER:
        if category not in by_score:
            continue
        raw = by_score[category].raw_score
        weight = by_weight[category].weight
        check_raw_score(category, raw)
        check_weight(category, weight)
        total += raw * weight
    return total


def compute_overall_score(
    scores: Mapping[CategoryKey, CategoryScore],
    weights: Mapping[CategoryKey, CategoryWeight],
) -> float:
    """Sum of raw_score x weight over all categories, rounded to 1 dp.

    Weights are used as supplied: if they do not sum to 1.0 the result can
    leave the nominal 0-10 range, and that is reported rather than corrected.

    Raises MissingCategoryData if the two maps do not cover the same
    categories, OutOfRangeScore for a raw score outside 0-10 and
    InvalidWeight for a weight that is not finite or lies outside 0-1.
    """
    by_score, by_weight = _paired_categories(scores, weights)
    return round_score(_overall_exact(by_score, by_weight))


def aggregate(sustainability: SustainabilityScore) -> ScoreSummary:
    """Compute every category contribution plus the overall score."""
    by_score, by_weight = _paired_categories(sustainability.scores, sustainability.weights)
    overall_exact = _overall_exact(by_score, by_weight)

    contributions = []
    for category in CATEGORY_ORDER:
        if category not in by_score:
            continue
        raw = by_score[category].raw_score
        weight = by_weight[category].weight
        exact = raw * weight
        contributions.append(CategoryContribution(
            category=category,
            raw_score=raw,
            weight=weight,
            weighted_score=round_score(exact),
            weighted_exact=exact,
            max_score=round_score(weight * SCORING_MODEL.raw_score_max),
            percentage=score_percentage(exact, weight),
            band=classify_score(exact, weight),
        ))

    weight_sum = sum(w.weight for w in by_weight.values())
    normalized = abs(weight_sum - 1.0) < SCORING_MODEL.weight_sum_tolerance
    if not normalized:
        logger.warning(
            "Sustainability weights sum to %.3f, not 1.0; overall score is not renormalised",
            weight_sum,
        )

    return ScoreSummary(
        contributions=tuple(contributions),
        overall_score=round_score(overall_exact),
        overall_exact=overall_exact,
        band=classify_score(overall_exact),
        weight_sum=weight_sum,
        weights_normalized=normalized,
    )

