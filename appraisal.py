"""
Property appraisal variant of the report.

An appraisal arrives as structured JSON from the valuation model (see
appraisal_client.py).  This module validates it into typed entities,
derives the rental and growth figures shown in the document, and composes
the appraisal sections in fixed order.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from project_report import IncompleteReportSection, ReportDataError
from report_composer import ReportSection
from scoring_config import NOT_AVAILABLE

logger = logging.getLogger(__name__)

CURRENCY_PREFIX = "PHP"
AGENT_FEE_RATE = 0.05
GROWTH_RATE = 0.08
PROJECTION_YEARS = (1, 3, 5, 10)
VALIDITY_DAYS = 90


# =============================================================================
# Data classes
# =============================================================================

@dataclass(frozen=True)
class MarketData:
    comparable_sales: str
    active_listings: str
    government_values: str


@dataclass(frozen=True)
class RentalIncomePotential:
    monthly_rental_income: float
    occupancy_rates: float  # percent, 0-100


@dataclass(frozen=True)
class ValuationProcess:
    base_valuation: str
    adjustment_factors: str
    market_comparison: str
    rental_income_valuation: str
    aggregate_valuation: str  # currency text as returned by the model
    agent_fee: float


@dataclass(frozen=True)
class ProximityData:
    nearest_locations: str
    festivals_events: str


@dataclass(frozen=True)
class AppraisalResult:
    market_data: MarketData
    purpose_of_appraisal: str
    rental_income_potential: RentalIncomePotential
    valuation_process: ValuationProcess
    proximity_data: ProximityData


@dataclass(frozen=True)
class PropertyDetails:
    """The listing being appraised, as entered by the seller."""
    project_name: str
    city: str = ""
    province: str = ""
    country: str = ""
    latitude: str = ""
    longitude: str = ""
    type: str = ""
    subtype: str = ""
    bedrooms: str = ""
    bathrooms: str = ""
    land_size: str = ""
    floor_area: str = ""
    amenities: Tuple[str, ...] = ()
    price: str = ""
    description: str = ""
    last_updated: str = ""

    def to_prompt(self) -> str:
        """Plain-text property description sent to the valuation model."""
        lines = [f"Property: {self.project_name}"]
        where = ", ".join(p for p in (self.city, self.province, self.country) if p)
        if where:
            lines.append(f"Location: {where}")
        if self.latitude and self.longitude:
            lines.append(f"Coordinates: {self.latitude}, {self.longitude}")
        for label, value in (
            ("Type", self.type),
            ("Listing type", self.subtype),
            ("Bedrooms", self.bedrooms),
            ("Bathrooms", self.bathrooms),
            ("Lot area (sqm)", self.land_size),
            ("Floor area (sqm)", self.floor_area),
            ("Asking price", self.price),
        ):
            if value:
                lines.append(f"{label}: {value}")
        if self.amenities:
            lines.append("Amenities: " + ", ".join(self.amenities))
        if self.description:
            lines.append(f"Description: {self.description}")
        return "\n".join(lines)


# =============================================================================
# Parsing
# =============================================================================

def _section(data: dict, name: str) -> dict:
    value = data.get(name)
    if not isinstance(value, dict):
        raise IncompleteReportSection(name)
    return value


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise ReportDataError(f"{what} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        parsed = parse_currency(_text(value))
        if parsed is None:
            raise ReportDataError(f"{what} must be a number, got {value!r}")
        return parsed


def parse_appraisal(data: Any) -> AppraisalResult:
    """Validate the valuation model's JSON.

    Every part of an appraisal feeds the document, so a missing part
    raises IncompleteReportSection (a ReportDataError).
    """
    if not isinstance(data, dict):
        raise ReportDataError("Appraisal payload must be a JSON object")
    if data.get("error"):
        raise ReportDataError(f"Appraisal failed: {data['error']}")

    market = _section(data, "market_data")
    rental = _section(data, "rental_income_potential")
    valuation = _section(data, "valuation_process")
    proximity = _section(data, "proximity_data")

    return AppraisalResult(
        market_data=MarketData(
            comparable_sales=_text(market.get("comparable_sales")),
            active_listings=_text(market.get("active_listings")),
            government_values=_text(market.get("government_values")),
        ),
        purpose_of_appraisal=_text(data.get("purpose_of_appraisal")),
        rental_income_potential=RentalIncomePotential(
            monthly_rental_income=_number(rental.get("monthly_rental_income"), "monthly_rental_income"),
            occupancy_rates=_number(rental.get("occupancy_rates"), "occupancy_rates"),
        ),
        valuation_process=ValuationProcess(
            base_valuation=_text(valuation.get("base_valuation")),
            adjustment_factors=_text(valuation.get("adjustment_factors")),
            market_comparison=_text(valuation.get("market_comparison")),
            rental_income_valuation=_text(valuation.get("rental_income_valuation")),
            aggregate_valuation=_text(valuation.get("aggregate_valuation")),
            agent_fee=_number(valuation.get("agent_fee"), "agent_fee"),
        ),
        proximity_data=ProximityData(
            nearest_locations=_text(proximity.get("nearest_locations")),
            festivals_events=_text(proximity.get("festivals_events")),
        ),
    )


def parse_property_details(data: Any) -> PropertyDetails:
    if not isinstance(data, dict):
        raise ReportDataError("Property payload must be a JSON object")
    name = _text(data.get("project_name") or data.get("property_name"))
    if not name:
        raise ReportDataError("project_name is required")
    location = data.get("location") if isinstance(data.get("location"), dict) else {}
    details = data.get("property_details") if isinstance(data.get("property_details"), dict) else {}
    amenities = details.get("amenities") or []
    return PropertyDetails(
        project_name=name,
        city=_text(location.get("city")),
        province=_text(location.get("province")),
        country=_text(location.get("country")),
        latitude=_text(location.get("latitude")),
        longitude=_text(location.get("longitude")),
        type=_text(details.get("type")),
        subtype=_text(details.get("subtype")),
        bedrooms=_text(details.get("bedrooms")),
        bathrooms=_text(details.get("bathrooms")),
        land_size=_text(details.get("land_size")),
        floor_area=_text(details.get("floor_area")),
        amenities=tuple(_text(a) for a in amenities if _text(a)) if isinstance(amenities, list) else (),
        price=_text(data.get("price")),
        description=_text(data.get("description")),
        last_updated=_text(data.get("last_updated")),
    )


# =============================================================================
# Money
# =============================================================================

_CURRENCY_JUNK = re.compile(r"[^\d.\-]")


def parse_currency(text: str) -> Optional[float]:
    """'PHP 19,950,000.00' -> 19950000.0; None when there is no number."""
    cleaned = _CURRENCY_JUNK.sub("", text or "")
    if not cleaned or cleaned in ("-", ".", "-."):
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def format_currency(amount: Optional[float]) -> str:
    if amount is None:
        return NOT_AVAILABLE
    return f"{CURRENCY_PREFIX} {amount:,.2f}"


def aggregate_value(appraisal: AppraisalResult) -> Optional[float]:
    return parse_currency(appraisal.valuation_process.aggregate_valuation)


def format_valuation(appraisal: AppraisalResult) -> str:
    """Numeric valuations are formatted; free text is shown as returned."""
    value = aggregate_value(appraisal)
    if value is None:
        return appraisal.valuation_process.aggregate_valuation or NOT_AVAILABLE
    return format_currency(value)


@dataclass(frozen=True)
class RentalMetrics:
    monthly_income: float
    annual_income: float
    occupancy_rate: float
    effective_annual_income: float
    gross_yield: Optional[float]  # percent of aggregate valuation


def rental_metrics(appraisal: AppraisalResult) -> RentalMetrics:
    rental = appraisal.rental_income_potential
    annual = rental.monthly_rental_income * 12
    effective = annual * (rental.occupancy_rates / 100)
    value = aggregate_value(appraisal)
    gross_yield = annual / value * 100 if value else None
    return RentalMetrics(
        monthly_income=rental.monthly_rental_income,
        annual_income=annual,
        occupancy_rate=rental.occupancy_rates,
        effective_annual_income=effective,
        gross_yield=gross_yield,
    )


def project_values(
    amount: Optional[float],
    rate: float = GROWTH_RATE,
    years: Tuple[int, ...] = PROJECTION_YEARS,
) -> List[Dict[str, Any]]:
    """Compound growth projection; empty when the valuation is not numeric."""
    if amount is None:
        return []
    rows = [{"horizon": "Current", "years": 0, "value": amount}]
    for n in years:
        rows.append({
            "horizon": f"{n} Year" if n == 1 else f"{n} Years",
            "years": n,
            "value": amount * (1 + rate) ** n,
        })
    return rows


# =============================================================================
# Composition
# =============================================================================

APPRAISAL_SECTION_TITLES = (
    ("valuation_summary", "Property Valuation Report"),
    ("property_specifications", "Property Specifications"),
    ("market_analysis", "Comprehensive Market Analysis"),
    ("location_analysis", "Location Analysis & Final Valuation"),
    ("investment_summary", "Investment Potential & Summary"),
)


def _or_na(value: str) -> str:
    return value or NOT_AVAILABLE


def _with_unit(value: str, unit: str) -> str:
    return f"{value} {unit}" if value else NOT_AVAILABLE


def compose_appraisal(property_details: PropertyDetails, appraisal: AppraisalResult) -> List[ReportSection]:
    valuation = appraisal.valuation_process
    value = aggregate_value(appraisal)
    metrics = rental_metrics(appraisal)
    where = ", ".join(p for p in (property_details.city, property_details.province, property_details.country) if p)

    content = {
        "valuation_summary": {
            "project_name": property_details.project_name,
            "location": _or_na(where),
            "report_date": _or_na(property_details.last_updated),
            "purpose": _or_na(appraisal.purpose_of_appraisal),
            "aggregate_valuation": format_valuation(appraisal),
            "components": [
                {"label": "Base Zonal Valuation", "value": _or_na(valuation.base_valuation)},
                {"label": "Quality & Feature Adjustments", "value": _or_na(valuation.adjustment_factors)},
                {"label": "Market-Based Valuation", "value": _or_na(valuation.market_comparison)},
                {"label": "Annual Rental Income Potential", "value": _or_na(valuation.rental_income_valuation)},
                {"label": "Final Aggregate Valuation", "value": format_valuation(appraisal)},
                {"label": f"Agent Commission ({AGENT_FEE_RATE:.0%})", "value": format_currency(valuation.agent_fee)},
            ],
            "overview": _or_na(property_details.description),
        },
        "property_specifications": {
            "rows": [
                {"label": "Property Type", "value": _or_na(property_details.type)},
                {"label": "Listing Type", "value": _or_na(property_details.subtype)},
                {"label": "Bedrooms", "value": _or_na(property_details.bedrooms)},
                {"label": "Bathrooms", "value": _or_na(property_details.bathrooms)},
                {"label": "Land Size", "value": _with_unit(property_details.land_size, "sqm")},
                {"label": "Floor Area", "value": _with_unit(property_details.floor_area, "sqm")},
                {"label": "Asking Price", "value": _or_na(property_details.price)},
            ],
            "amenities": list(property_details.amenities),
        },
        "market_analysis": {
            "comparable_sales": _or_na(appraisal.market_data.comparable_sales),
            "active_listings": _or_na(appraisal.market_data.active_listings),
            "government_values": _or_na(appraisal.market_data.government_values),
            "rental_metrics": asdict(metrics),
            "rental_rows": [
                {"label": "Monthly Rental Income", "value": format_currency(metrics.monthly_income)},
                {"label": "Annual Rental Income", "value": format_currency(metrics.annual_income)},
                {"label": "Expected Occupancy Rate", "value": f"{metrics.occupancy_rate:g}%"},
                {"label": "Effective Annual Income", "value": format_currency(metrics.effective_annual_income)},
                {
                    "label": "Gross Rental Yield",
                    "value": f"{metrics.gross_yield:.2f}%" if metrics.gross_yield is not None else NOT_AVAILABLE,
                },
            ],
        },
        "location_analysis": {
            "nearest_locations": _or_na(appraisal.proximity_data.nearest_locations),
            "festivals_events": _or_na(appraisal.proximity_data.festivals_events),
            "aggregate_valuation": format_valuation(appraisal),
            "notes": [
                f"This appraisal is valid for {VALIDITY_DAYS} days from the report date",
                f"Agent fee: {format_currency(valuation.agent_fee)} ({AGENT_FEE_RATE:.0%} of valuation)",
                "The final value may be subject to negotiation",
                "Market conditions may affect the actual selling price",
            ],
        },
        "investment_summary": {
            "aggregate_valuation": format_valuation(appraisal),
            "growth_rate": GROWTH_RATE,
            "projections": [
                {**row, "formatted": format_currency(row["value"])}
                for row in project_values(value)
            ],
        },
    }

    sections = []
    for key, title in APPRAISAL_SECTION_TITLES:
        section_content = content[key]
        available = True
        if key == "investment_summary" and not section_content["projections"]:
            # Free-text valuation: nothing to project.
            available = False
        sections.append(ReportSection(
            key=key,
            title=title,
            available=available,
            content=section_content,
            placeholder=None if available else NOT_AVAILABLE,
        ))
    return sections
