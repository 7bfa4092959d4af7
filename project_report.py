"""
Typed report entities and the validated parse step for SiteCheck.

Upstream report data is loosely-typed JSON produced by a language model.
parse_project_report() turns it into the frozen dataclasses below and
fails fast on anything the scoring pipeline cannot work with:

  - a sustainability category missing from the score or weight map
    -> MissingCategoryData
  - a raw score outside 0-10 -> OutOfRangeScore
  - a weight that is not a finite number within 0-1 -> InvalidWeight
  - a payload that is not shaped like a report at all -> ReportDataError

Optional sections (feasibility, policy, risks, funding, data sources) are
parsed leniently: if absent or malformed they become None / empty and the
composer renders an explicit "not available" state for them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from scoring_config import CATEGORY_ORDER, SCORING_MODEL, SustainabilityCategory

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================

class ReportDataError(ValueError):
    """Upstream report data cannot be turned into a report."""


class MissingCategoryData(ReportDataError):
    """A sustainability category is absent from the score or weight map."""


class OutOfRangeScore(ReportDataError):
    """A raw category score lies outside the 0-10 scale."""


class InvalidWeight(ReportDataError):
    """A category weight is not a finite number within 0-1."""


class IncompleteReportSection(ReportDataError):
    """An optional report section is empty or absent.

    Raised by ProjectReport.require(); the composer recovers from it by
    rendering a placeholder.  It never escapes the composer.
    """

    def __init__(self, section: str, detail: str = ""):
        self.section = section
        super().__init__(f"Report section {section!r} is not available" + (f": {detail}" if detail else ""))


# =============================================================================
# Data classes
# =============================================================================

@dataclass(frozen=True)
class CategoryScore:
    raw_score: float
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class CategoryWeight:
    weight: float
    justification: str = ""


@dataclass(frozen=True)
class SustainabilityScore:
    """Raw scores and weights keyed by the fixed category enum.

    There is deliberately no stored overall score: it is always
    recomputed from the current raw_score/weight pairs.
    """
    scores: Dict[SustainabilityCategory, CategoryScore]
    weights: Dict[SustainabilityCategory, CategoryWeight]


@dataclass(frozen=True)
class RiskEntry:
    value: str
    explanation: str = ""


@dataclass(frozen=True)
class FeasibilityReport:
    status: str
    key_findings: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LocalRegulation:
    law_name: str
    compliance_status: str
    notes: str = ""


@dataclass(frozen=True)
class InternationalGuideline:
    treaty: str
    alignment: str
    notes: str = ""


@dataclass(frozen=True)
class PolicyCompliance:
    local_regulations: Tuple[LocalRegulation, ...] = ()
    international_guidelines: Tuple[InternationalGuideline, ...] = ()


@dataclass(frozen=True)
class FundingOpportunity:
    name: str
    amount: str = ""
    eligibility: str = ""
    application_deadline: str = ""
    link: str = ""


@dataclass(frozen=True)
class DataSource:
    """One upstream dataset / GIS layer used to build the report."""
    name: str
    summary: str = ""
    source: str = ""


@dataclass(frozen=True)
class ProjectLocation:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: str = ""
    country: str = ""
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProjectReport:
    project_name: str
    location: ProjectLocation
    sustainability_score: SustainabilityScore
    feasibility_report: Optional[FeasibilityReport] = None
    risk_analysis: Dict[str, RiskEntry] = field(default_factory=dict)
    policy_compliance: Optional[PolicyCompliance] = None
    funding_opportunities: Tuple[FundingOpportunity, ...] = ()
    data_sources: Tuple[DataSource, ...] = ()
    last_updated: Optional[str] = None

    def require(self, section: str):
        """Return an optional section, raising IncompleteReportSection if it is absent or empty."""
        value = getattr(self, section, None)
        if value is None:
            raise IncompleteReportSection(section)
        if isinstance(value, (dict, tuple, list)) and not value:
            raise IncompleteReportSection(section, "empty")
        if isinstance(value, PolicyCompliance) and not (
            value.local_regulations or value.international_guidelines
        ):
            raise IncompleteReportSection(section, "empty")
        return value


# =============================================================================
# Parse helpers
# =============================================================================

def _as_number(value: Any, what: str) -> float:
    # bool is an int subclass; "true" is not a score.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            return float(str(value).strip())
        except (TypeError, ValueError):
            raise ReportDataError(f"{what} must be a number, got {value!r}")
    return float(value)


def _optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _text_list(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(_text(v) for v in value if _text(v))


def _dict_list(value: Any, what: str) -> List[dict]:
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("Ignoring %s: expected a list, got %s", what, type(value).__name__)
        return []
    items = [v for v in value if isinstance(v, dict)]
    if len(items) != len(value):
        logger.warning("Dropped %d malformed %s entries", len(value) - len(items), what)
    return items


def _category_map(raw: Any, what: str) -> Dict[SustainabilityCategory, dict]:
    if not isinstance(raw, dict):
        raise MissingCategoryData(f"sustainability_score.{what} is missing")
    result = {}
    for label, entry in raw.items():
        try:
            category = SustainabilityCategory.from_label(label)
        except ValueError:
            raise ReportDataError(f"Unknown sustainability category {label!r} in {what}")
        if not isinstance(entry, dict):
            raise ReportDataError(f"{what}[{label!r}] must be an object")
        result[category] = entry
    missing = [c.label for c in CATEGORY_ORDER if c not in result]
    if missing:
        raise MissingCategoryData(
            f"sustainability_score.{what} is missing: {', '.join(missing)}"
        )
    return result


def check_raw_score(category: SustainabilityCategory, raw_score: float) -> None:
    """Raise OutOfRangeScore unless raw_score lies within the 0-10 scale."""
    if not (SCORING_MODEL.raw_score_min <= raw_score <= SCORING_MODEL.raw_score_max):
        raise OutOfRangeScore(
            f"{category.label} raw score {raw_score} is outside "
            f"{SCORING_MODEL.raw_score_min:g}-{SCORING_MODEL.raw_score_max:g}"
        )


def check_weight(category: SustainabilityCategory, weight: float) -> None:
    """Raise InvalidWeight unless weight is finite and within 0-1.

    Only individual weights are checked; their sum may still drift from 1.0.
    """
    if not math.isfinite(weight) or not (0.0 <= weight <= 1.0):
        raise InvalidWeight(f"{category.label} weight {weight} is outside 0-1")


def parse_sustainability_score(data: Any) -> SustainabilityScore:
    if not isinstance(data, dict):
        raise MissingCategoryData("sustainability_score is missing")

    raw_scores = _category_map(data.get("scores"), "scores")
    raw_weights = _category_map(data.get("weights"), "weights")

    scores = {}
    for category, entry in raw_scores.items():
        raw_score = _as_number(entry.get("raw_score"), f"{category.label} raw_score")
        check_raw_score(category, raw_score)
        metrics = {}
        raw_metrics = entry.get("metrics") or {}
        if isinstance(raw_metrics, dict):
            for name, value in raw_metrics.items():
                number = _optional_number(value)
                if number is None:
                    logger.debug("Dropping non-numeric metric %r for %s", name, category.label)
                    continue
                metrics[str(name)] = number
        scores[category] = CategoryScore(raw_score=raw_score, metrics=metrics)

    weights = {}
    for category, entry in raw_weights.items():
        weight = _as_number(entry.get("weight"), f"{category.label} weight")
        check_weight(category, weight)
        weights[category] = CategoryWeight(
            weight=weight,
            justification=_text(entry.get("justification")),
        )
    return SustainabilityScore(scores=scores, weights=weights)


def _parse_location(data: Any) -> ProjectLocation:
    if not isinstance(data, dict):
        return ProjectLocation()
    images = data.get("images") or []
    return ProjectLocation(
        latitude=_optional_number(data.get("latitude")),
        longitude=_optional_number(data.get("longitude")),
        city=_text(data.get("city")),
        country=_text(data.get("country")),
        images=tuple(_text(i) for i in images if _text(i)) if isinstance(images, list) else (),
    )


def _parse_feasibility(data: Any) -> Optional[FeasibilityReport]:
    if not isinstance(data, dict) or not _text(data.get("status")):
        if data is not None:
            logger.warning("feasibility_report has no status; treating as unavailable")
        return None
    return FeasibilityReport(
        status=_text(data["status"]),
        key_findings=_text_list(data.get("key_findings")),
        recommendations=_text_list(data.get("recommendations")),
    )


def _parse_risks(data: Any) -> Dict[str, RiskEntry]:
    if not isinstance(data, dict):
        return {}
    risks = {}
    for key, entry in data.items():
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed risk entry %r", key)
            continue
        risks[str(key)] = RiskEntry(
            value=_text(entry.get("value")),
            explanation=_text(entry.get("explanation")),
        )
    return risks


def _parse_policy(data: Any) -> Optional[PolicyCompliance]:
    if not isinstance(data, dict):
        return None
    local = tuple(
        LocalRegulation(
            law_name=_text(r.get("law_name")),
            compliance_status=_text(r.get("compliance_status")),
            notes=_text(r.get("notes")),
        )
        for r in _dict_list(data.get("local_regulations"), "local_regulations")
    )
    international = tuple(
        InternationalGuideline(
            treaty=_text(g.get("treaty")),
            alignment=_text(g.get("alignment")),
            notes=_text(g.get("notes")),
        )
        for g in _dict_list(data.get("international_guidelines"), "international_guidelines")
    )
    return PolicyCompliance(local_regulations=local, international_guidelines=international)


def _parse_funding(data: Any) -> Tuple[FundingOpportunity, ...]:
    return tuple(
        FundingOpportunity(
            name=_text(f.get("name")),
            amount=_text(f.get("amount")),
            eligibility=_text(f.get("eligibility")),
            application_deadline=_text(f.get("application_deadline")),
            link=_text(f.get("link")),
        )
        for f in _dict_list(data, "funding_opportunities")
    )


def _parse_data_sources(data: Any) -> Tuple[DataSource, ...]:
    entries = data.get("api") if isinstance(data, dict) else None
    return tuple(
        DataSource(
            name=_text(s.get("name")),
            summary=_text(s.get("summary")),
            source=_text(s.get("source")),
        )
        for s in _dict_list(entries, "api_context_data.api")
    )


def parse_project_report(data: Any) -> ProjectReport:
    """Validate upstream JSON and build a ProjectReport.

    Raises ReportDataError (or a subclass) when the payload cannot be
    scored.  Optional sections never raise.
    """
    if not isinstance(data, dict):
        raise ReportDataError("Report payload must be a JSON object")

    return ProjectReport(
        project_name=_text(data.get("project_name")) or "Untitled Project",
        location=_parse_location(data.get("location")),
        sustainability_score=parse_sustainability_score(data.get("sustainability_score")),
        feasibility_report=_parse_feasibility(data.get("feasibility_report")),
        risk_analysis=_parse_risks(data.get("risk_analysis")),
        policy_compliance=_parse_policy(data.get("policy_compliance")),
        funding_opportunities=_parse_funding(data.get("funding_opportunities")),
        data_sources=_parse_data_sources(data.get("api_context_data")),
        last_updated=_text(data.get("last_updated")) or None,
    )
