"""
Scoring model configuration for SiteCheck.

Owns every constant that affects the sustainability score and its
classification: the closed set of categories (in display order), the
rating bands, and the keyword tables used to grade free-text labels
coming back from upstream providers.

Frozen dataclasses provide type checking and IDE support without
the indirection of YAML/JSON config files.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


# =============================================================================
# Categories
# =============================================================================

class SustainabilityCategory(Enum):
    """The five fixed sustainability dimensions.

    Member order is the display order used by every table and page.
    """
    CLIMATE = "Climate & Weather Data"
    AIR_QUALITY = "Air Quality & Pollution"
    DISASTER_RISK = "Disaster Risk & Hazard Data"
    BIODIVERSITY = "Biodiversity & Ecosystem Health"
    RENEWABLE_ENERGY = "Renewable Energy & Infrastructure Feasibility"

    @property
    def label(self) -> str:
        return self.value

    @classmethod
    def from_label(cls, label: str) -> "SustainabilityCategory":
        """Look up a category by its display name (ValueError if unknown)."""
        return cls(label)


CATEGORY_ORDER: Tuple[SustainabilityCategory, ...] = tuple(SustainabilityCategory)


# =============================================================================
# Dataclasses
# =============================================================================

@dataclass(frozen=True)
class ScoreBand:
    """Maps a minimum score (on the 0-10 scale) to a rating label."""
    threshold: float
    label: str
    css_class: str = ""
    color: Tuple[int, int, int] = (0, 0, 0)  # RGB used by PDF / share image


@dataclass(frozen=True)
class SeverityRule:
    """Keyword rule for grading a free-text label.

    The first rule whose keywords appear (case-insensitive substring)
    in the label wins.
    """
    level: str
    keywords: Tuple[str, ...]


@dataclass(frozen=True)
class ScoringModel:
    """Top-level container for all scoring parameters.

    A single module-level instance (SCORING_MODEL) is the source of truth.
    Bump `version` on every change that alters score outputs.
    """
    version: str
    raw_score_min: float
    raw_score_max: float
    weight_sum_tolerance: float
    score_bands: Tuple[ScoreBand, ...]
    risk_severity_rules: Tuple[SeverityRule, ...]


# =============================================================================
# SCORING_MODEL: current production values
# =============================================================================

SCORING_MODEL = ScoringModel(
    version="1.0.0",
    raw_score_min=0.0,
    raw_score_max=10.0,
    weight_sum_tolerance=0.001,
    # Highest threshold first; boundaries belong to the higher band.
    score_bands=(
        ScoreBand(7.5, "Sustainable", "band-sustainable", (22, 163, 74)),
        ScoreBand(5.0, "Partially Sustainable", "band-partial", (37, 99, 235)),
        ScoreBand(2.5, "Partially Not Feasible", "band-limited", (217, 119, 6)),
        ScoreBand(0.0, "Not Feasible", "band-poor", (220, 38, 38)),
    ),
    risk_severity_rules=(
        SeverityRule("high", ("high",)),
        SeverityRule("medium", ("medium", "moderate")),
        SeverityRule("low", ("low",)),
    ),
)

UNRATED_SEVERITY = "unrated"

# Feasibility status keywords (overview badge).  Checked in order.
FEASIBILITY_TONES = (
    ("approved", "approved"),
    ("pending", "pending"),
    ("rejected", "rejected"),
)

# Status containing one of these is shown as a highlight block in the PDF;
# anything else gets a warning block.  Negated forms are checked first.
FEASIBLE_KEYWORDS = ("approved", "feasible")
NEGATED_FEASIBLE_KEYWORDS = ("not feasible", "infeasible", "unfeasible", "not approved")

# Policy compliance grading.  Negations first: "Non-compliant" contains "compliant".
NON_COMPLIANT_KEYWORDS = ("non", "not")
COMPLIANT_KEYWORDS = ("compliant", "aligned")

# Funding deadlines within this many days are flagged as approaching.
DEADLINE_WARNING_DAYS = 30

# Data source kinds shown in the appendix.
DATA_SOURCE_KINDS = (
    ("imagery", ("satellite", "aerial")),
    ("dataset", ("data", "database")),
)
DEFAULT_DATA_SOURCE_KIND = "layer"


# =============================================================================
# Report copy
# =============================================================================

NOT_AVAILABLE = "Not available"

SCORE_NOTE = (
    "Raw scores are multiplied by their respective weights and summed to "
    "calculate the overall sustainability score."
)

SCORE_CITATION = (
    "Scores are derived from public climate, air quality, hazard, biodiversity "
    "and energy datasets listed in the appendix."
)

# One narrative sentence per band, formatted with the category label.
CATEGORY_NARRATIVES = {
    "Sustainable": (
        "{category} conditions strongly support the project and present "
        "no material sustainability concerns."
    ),
    "Partially Sustainable": (
        "{category} conditions are broadly favourable, with some factors "
        "that should be monitored during planning."
    ),
    "Partially Not Feasible": (
        "{category} conditions raise notable concerns that require "
        "mitigation before the project proceeds."
    ),
    "Not Feasible": (
        "{category} conditions are unfavourable and present a significant "
        "barrier to the project."
    ),
}

METHODOLOGY_POINTS = (
    "Each category receives a raw score between 0 and 10 from the underlying data sources.",
    "Category weights reflect the relative importance of each dimension for the site.",
    "Weighted scores are computed as raw score multiplied by weight.",
    "The overall score is the sum of all weighted scores, without renormalisation.",
    "Ratings: 7.5-10 Sustainable, 5-7.5 Partially Sustainable, "
    "2.5-5 Partially Not Feasible, 0-2.5 Not Feasible.",
    "Risk, policy and funding findings are reported as supplied and are not scored.",
)

CERTIFICATION_STATEMENT = (
    "This report was generated from the data sources listed above. Figures are "
    "indicative and should be verified by a qualified assessor before any "
    "investment or permitting decision."
)


# Validate bands at import time (ValueError, not assert,
# so validation is never stripped by python -O).
_thresholds = [b.threshold for b in SCORING_MODEL.score_bands]
if _thresholds != sorted(_thresholds, reverse=True):
    raise ValueError("score_bands must be ordered highest threshold first")
if _thresholds[-1] != SCORING_MODEL.raw_score_min:
    raise ValueError("lowest score band must start at raw_score_min")
if set(CATEGORY_NARRATIVES) != {b.label for b in SCORING_MODEL.score_bands}:
    raise ValueError("CATEGORY_NARRATIVES must cover every score band")
