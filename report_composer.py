"""
Binds a ProjectReport into ordered, independently displayable sections.

Section order is fixed:

    cover -> executive_summary -> category_analysis -> risk_feasibility
          -> policy_funding -> data_sources

The same section dicts feed the JSON API and the PDF export, so screen
and document always show the same numbers.  Optional report data that is
missing never fails composition; the affected part is rendered with an
explicit "not available" placeholder instead.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from project_report import (
    FundingOpportunity,
    IncompleteReportSection,
    ProjectReport,
    RiskEntry,
    SustainabilityScore,
)
from scoring_config import (
    CATEGORY_NARRATIVES,
    CERTIFICATION_STATEMENT,
    COMPLIANT_KEYWORDS,
    DATA_SOURCE_KINDS,
    DEADLINE_WARNING_DAYS,
    DEFAULT_DATA_SOURCE_KIND,
    FEASIBILITY_TONES,
    FEASIBLE_KEYWORDS,
    METHODOLOGY_POINTS,
    NEGATED_FEASIBLE_KEYWORDS,
    NON_COMPLIANT_KEYWORDS,
    NOT_AVAILABLE,
    SCORE_CITATION,
    SCORE_NOTE,
    SCORING_MODEL,
    UNRATED_SEVERITY,
)
from sustainability_scoring import CategoryContribution, ScoreSummary, aggregate, round_score

logger = logging.getLogger(__name__)

REPORT_SUBTITLE = "Sustainability & Feasibility Assessment"
OVERALL_LABEL = "Overall"

SECTION_TITLES = (
    ("cover", "Project Overview"),
    ("executive_summary", "Executive Summary"),
    ("category_analysis", "Detailed Sustainability Assessment"),
    ("risk_feasibility", "Risk Analysis & Feasibility"),
    ("policy_funding", "Policy Compliance & Funding Opportunities"),
    ("data_sources", "Data Sources & Methodology"),
)


# =============================================================================
# Row / section types
# =============================================================================

@dataclass(frozen=True)
class ScoreRow:
    label: str
    raw_score: Optional[float]   # None on the Overall row
    weight: float
    weighted_score: float
    max_score: float
    percentage: float
    rating: str
    css_class: str
    is_overall: bool = False


@dataclass(frozen=True)
class RiskRow:
    key: str
    title: str
    value: str
    explanation: str
    severity: str


@dataclass
class ReportSection:
    key: str
    title: str
    available: bool = True
    content: Dict[str, Any] = field(default_factory=dict)
    placeholder: Optional[str] = None
    collapsible: bool = True
    expanded: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Tables
# =============================================================================

def _score_row(c: CategoryContribution) -> ScoreRow:
    return ScoreRow(
        label=c.category.label,
        raw_score=c.raw_score,
        weight=c.weight,
        weighted_score=c.weighted_score,
        max_score=c.max_score,
        percentage=round_score(c.percentage),
        rating=c.band.label,
        css_class=c.band.css_class,
    )


def table_rows(summary: ScoreSummary) -> List[ScoreRow]:
    rows = [_score_row(c) for c in summary.contributions]
    rows.append(ScoreRow(
        label=OVERALL_LABEL,
        raw_score=None,
        weight=round_score(summary.weight_sum, 3),
        weighted_score=summary.overall_score,
        max_score=SCORING_MODEL.raw_score_max,
        percentage=round_score(summary.overall_exact / SCORING_MODEL.raw_score_max * 100),
        rating=summary.band.label,
        css_class=summary.band.css_class,
        is_overall=True,
    ))
    return rows


def render_table(sustainability: SustainabilityScore) -> List[ScoreRow]:
    """One row per category in fixed display order, then the Overall row.

    Row order never depends on the order the categories were supplied in.
    """
    return table_rows(aggregate(sustainability))


_KEY_SEPARATORS = re.compile(r"[\s_\-]+")


def humanize_key(key: str) -> str:
    """'flood_risk_level' -> 'Flood Risk Level'."""
    words = [w for w in _KEY_SEPARATORS.split(key) if w]
    return " ".join(w[0].upper() + w[1:] for w in words)


def risk_severity(value: str) -> str:
    level = (value or "").lower()
    for rule in SCORING_MODEL.risk_severity_rules:
        if any(k in level for k in rule.keywords):
            return rule.level
    return UNRATED_SEVERITY


def render_risk_rows(risk_map: Mapping[str, RiskEntry]) -> List[RiskRow]:
    """Risk rows in the order supplied; risk keys are open-ended."""
    return [
        RiskRow(
            key=key,
            title=humanize_key(key),
            value=entry.value,
            explanation=entry.explanation,
            severity=risk_severity(entry.value),
        )
        for key, entry in risk_map.items()
    ]


def count_risks(risk_map: Mapping[str, RiskEntry]) -> Dict[str, int]:
    counts = {rule.level: 0 for rule in SCORING_MODEL.risk_severity_rules}
    for entry in risk_map.values():
        severity = risk_severity(entry.value)
        if severity in counts:
            counts[severity] += 1
    return counts


# =============================================================================
# Label grading
# =============================================================================

def feasibility_tone(status: str) -> str:
    lowered = (status or "").lower()
    for keyword, tone in FEASIBILITY_TONES:
        if keyword in lowered:
            return tone
    return "other"


def is_feasible_status(status: str) -> bool:
    """True when the document should show a highlight rather than a warning."""
    lowered = (status or "").lower()
    if any(k in lowered for k in NEGATED_FEASIBLE_KEYWORDS):
        return False
    return any(k in lowered for k in FEASIBLE_KEYWORDS)


def compliance_tone(status: str) -> str:
    lowered = (status or "").lower()
    words = set(re.findall(r"[a-z]+", lowered))
    if any(k in words for k in NON_COMPLIANT_KEYWORDS):
        return "non_compliant"
    if any(k in lowered for k in COMPLIANT_KEYWORDS):
        return "compliant"
    return "review"


def data_source_kind(name: str) -> str:
    lowered = (name or "").lower()
    for kind, keywords in DATA_SOURCE_KINDS:
        if any(k in lowered for k in keywords):
            return kind
    return DEFAULT_DATA_SOURCE_KIND


# =============================================================================
# Funding
# =============================================================================

_NON_NUMERIC = re.compile(r"[^0-9.]")


def parse_amount(amount: str) -> float:
    """Numeric part of a free-text amount ('$2,500,000' -> 2500000.0); 0 if none."""
    digits = _NON_NUMERIC.sub("", amount or "")
    try:
        return float(digits)
    except ValueError:
        return 0.0


def total_funding(opportunities: Iterable[FundingOpportunity]) -> float:
    return sum(parse_amount(o.amount) for o in opportunities)


_DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%m/%d/%Y")


def parse_deadline(text: str) -> Optional[date]:
    text = (text or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def format_date(d: date) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def deadline_label(text: str, today: date) -> str:
    deadline = parse_deadline(text)
    if deadline is None:
        return text or NOT_AVAILABLE
    days = (deadline - today).days
    if days < 0:
        return f"Expired ({format_date(deadline)})"
    if days == 0:
        return "Today!"
    if days == 1:
        return "Tomorrow!"
    if days <= 7:
        return f"{days} days left!"
    return format_date(deadline)


def deadline_approaching(text: str, today: date) -> bool:
    deadline = parse_deadline(text)
    if deadline is None:
        return False
    return 0 < (deadline - today).days <= DEADLINE_WARNING_DAYS


# =============================================================================
# Narrative
# =============================================================================

def category_narrative(contribution: CategoryContribution) -> str:
    return CATEGORY_NARRATIVES[contribution.band.label].format(category=contribution.category.label)


def executive_narrative(report: ProjectReport, summary: ScoreSummary) -> str:
    where = ", ".join(p for p in (report.location.city, report.location.country) if p)
    where = f" in {where}" if where else ""
    text = (
        f"{report.project_name}{where} achieves an overall sustainability score of "
        f"{summary.overall_score:.1f}/10 and is rated {summary.rating}."
    )
    if summary.contributions:
        ranked = sorted(summary.contributions, key=lambda c: c.percentage, reverse=True)
        text += (
            f" Its strongest category is {ranked[0].category.label} "
            f"({ranked[0].raw_score:.1f}/10)"
        )
        if len(ranked) > 1:
            text += (
                f" and its weakest is {ranked[-1].category.label} "
                f"({ranked[-1].raw_score:.1f}/10)"
            )
        text += "."
    if report.feasibility_report:
        text += f" Feasibility status: {report.feasibility_report.status}."
    return text


# =============================================================================
# Section builders
# =============================================================================

def _unavailable_part() -> Dict[str, Any]:
    return {"available": False, "placeholder": NOT_AVAILABLE}


def _part(builder: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a sub-part builder, turning IncompleteReportSection into a placeholder."""
    try:
        content = builder()
    except IncompleteReportSection as exc:
        logger.info("Rendering placeholder: %s", exc)
        return _unavailable_part()
    content["available"] = True
    return content


def _format_coordinate(value: Optional[float]) -> Optional[str]:
    return f"{value:.4f}" if value is not None else None


def _cover(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    loc = report.location
    lat, lon = _format_coordinate(loc.latitude), _format_coordinate(loc.longitude)
    return {
        "project_name": report.project_name,
        "subtitle": REPORT_SUBTITLE,
        "city": loc.city or NOT_AVAILABLE,
        "country": loc.country or NOT_AVAILABLE,
        "location": ", ".join(p for p in (loc.city, loc.country) if p) or NOT_AVAILABLE,
        "latitude": lat,
        "longitude": lon,
        "coordinates": f"{lat}, {lon}" if lat and lon else NOT_AVAILABLE,
        "images": list(loc.images),
        "report_date": report.last_updated or NOT_AVAILABLE,
        "overall_score": summary.overall_score,
        "rating": summary.rating,
        "css_class": summary.band.css_class,
    }


def _executive_summary(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    return {
        "narrative": executive_narrative(report, summary),
        "rows": [asdict(r) for r in table_rows(summary)],
        "formula": [f"{c.raw_score:.1f} x {c.weight:.2f}" for c in summary.contributions],
        "overall_score": summary.overall_score,
        "rating": summary.rating,
        "weight_sum": round_score(summary.weight_sum, 3),
        "weights_normalized": summary.weights_normalized,
        "risk_counts": count_risks(report.risk_analysis),
        "feasibility_status": (
            report.feasibility_report.status if report.feasibility_report else NOT_AVAILABLE
        ),
        "total_funding": total_funding(report.funding_opportunities),
        "note": SCORE_NOTE,
        "citation": SCORE_CITATION,
    }


def _category_analysis(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    sustainability = report.sustainability_score
    categories = []
    for c in summary.contributions:
        categories.append({
            "category": c.category.label,
            "raw_score": c.raw_score,
            "weight": c.weight,
            "justification": sustainability.weights[c.category].justification or NOT_AVAILABLE,
            "weighted_score": c.weighted_score,
            "max_score": c.max_score,
            "percentage": round_score(c.percentage),
            "rating": c.rating,
            "css_class": c.band.css_class,
            "metrics": [
                {"name": humanize_key(name), "value": value}
                for name, value in sustainability.scores[c.category].metrics.items()
            ],
            "narrative": category_narrative(c),
        })
    return {"categories": categories}


def _risk_part(report: ProjectReport) -> Dict[str, Any]:
    risks = report.require("risk_analysis")
    return {
        "rows": [asdict(r) for r in render_risk_rows(risks)],
        "counts": count_risks(risks),
    }


def _feasibility_part(report: ProjectReport) -> Dict[str, Any]:
    feasibility = report.require("feasibility_report")
    return {
        "status": feasibility.status,
        "tone": feasibility_tone(feasibility.status),
        "feasible": is_feasible_status(feasibility.status),
        "key_findings": list(feasibility.key_findings),
        "recommendations": list(feasibility.recommendations),
    }


def _risk_feasibility(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    return {
        "risks": _part(lambda: _risk_part(report)),
        "feasibility": _part(lambda: _feasibility_part(report)),
    }


def _policy_part(report: ProjectReport) -> Dict[str, Any]:
    policy = report.require("policy_compliance")
    return {
        "local_regulations": [
            {**asdict(r), "tone": compliance_tone(r.compliance_status)}
            for r in policy.local_regulations
        ],
        "international_guidelines": [
            {**asdict(g), "tone": compliance_tone(g.alignment)}
            for g in policy.international_guidelines
        ],
    }


def _funding_part(report: ProjectReport, today: date) -> Dict[str, Any]:
    rows = []
    for o in report.funding_opportunities:
        deadline = parse_deadline(o.application_deadline)
        rows.append({
            **asdict(o),
            "deadline": format_date(deadline) if deadline else (o.application_deadline or NOT_AVAILABLE),
            "deadline_label": deadline_label(o.application_deadline, today),
            "deadline_approaching": deadline_approaching(o.application_deadline, today),
        })
    return {"rows": rows, "total": total_funding(report.funding_opportunities)}


def _policy_funding(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    # Empty funding is a table with zero rows, not a placeholder.
    return {
        "policy": _part(lambda: _policy_part(report)),
        "funding": {**_funding_part(report, today), "available": True},
    }


def _data_sources(report: ProjectReport, summary: ScoreSummary, today: date) -> Dict[str, Any]:
    sources = _part(lambda: {
        "rows": [
            {**asdict(s), "kind": data_source_kind(s.name)}
            for s in report.require("data_sources")
        ],
    })
    return {
        "sources": sources,
        "methodology": list(METHODOLOGY_POINTS),
        "certification": CERTIFICATION_STATEMENT,
        "model_version": SCORING_MODEL.version,
    }


_BUILDERS = {
    "cover": _cover,
    "executive_summary": _executive_summary,
    "category_analysis": _category_analysis,
    "risk_feasibility": _risk_feasibility,
    "policy_funding": _policy_funding,
    "data_sources": _data_sources,
}


def _section_available(content: Dict[str, Any]) -> bool:
    """A section is unavailable only when every value in it is an unavailable part."""
    return any(
        not (isinstance(v, dict) and v.get("available") is False)
        for v in content.values()
    )


def compose_report(
    report: ProjectReport,
    today: Optional[date] = None,
    summary: Optional[ScoreSummary] = None,
) -> List[ReportSection]:
    """Compose every report section in fixed order.

    *today* anchors relative funding-deadline labels; defaults to the
    current date.  Raises only for score data problems (MissingCategoryData,
    OutOfRangeScore), never for missing optional sections.
    """
    today = today or date.today()
    summary = summary or aggregate(report.sustainability_score)

    sections = []
    for key, title in SECTION_TITLES:
        content = _BUILDERS[key](report, summary, today)
        available = _section_available(content)
        sections.append(ReportSection(
            key=key,
            title=title,
            available=available,
            content=content,
            placeholder=None if available else NOT_AVAILABLE,
        ))
    return sections


def sections_by_key(sections: Iterable[ReportSection]) -> Dict[str, ReportSection]:
    return {s.key: s for s in sections}


def summary_to_dict(summary: ScoreSummary) -> Dict[str, Any]:
    return {
        "overall_score": summary.overall_score,
        "rating": summary.rating,
        "css_class": summary.band.css_class,
        "weight_sum": round_score(summary.weight_sum, 3),
        "weights_normalized": summary.weights_normalized,
        "categories": {
            c.category.label: {
                "raw_score": c.raw_score,
                "weight": c.weight,
                "weighted_score": c.weighted_score,
                "rating": c.rating,
            }
            for c in summary.contributions
        },
    }
