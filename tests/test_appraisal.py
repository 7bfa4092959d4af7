"""Unit tests for appraisal.py: parsing, money helpers and section composition."""

import pytest

from appraisal import (
    APPRAISAL_SECTION_TITLES,
    compose_appraisal,
    format_currency,
    format_valuation,
    parse_appraisal,
    parse_currency,
    parse_property_details,
    project_values,
    rental_metrics,
)
from project_report import IncompleteReportSection, ReportDataError
from report_composer import sections_by_key
from scoring_config import NOT_AVAILABLE


class TestParseAppraisal:
    def test_full_payload(self, appraisal_payload):
        appraisal = parse_appraisal(appraisal_payload)
        assert appraisal.purpose_of_appraisal == "Selling"
        assert appraisal.rental_income_potential.monthly_rental_income == 35000.0
        assert appraisal.valuation_process.agent_fee == 420000.0
        assert appraisal.proximity_data.festivals_events == "Sunduan Festival"

    @pytest.mark.parametrize("part", [
        "market_data", "rental_income_potential", "valuation_process", "proximity_data",
    ])
    def test_missing_part_raises(self, appraisal_payload, part):
        del appraisal_payload[part]
        with pytest.raises(IncompleteReportSection) as exc_info:
            parse_appraisal(appraisal_payload)
        assert exc_info.value.section == part

    def test_provider_error_payload(self):
        with pytest.raises(ReportDataError, match="No response"):
            parse_appraisal({"error": "No response received from the AI model"})

    def test_not_an_object(self):
        with pytest.raises(ReportDataError):
            parse_appraisal("appraisal")

    def test_currency_text_in_number_field(self, appraisal_payload):
        appraisal_payload["valuation_process"]["agent_fee"] = "PHP 420,000"
        assert parse_appraisal(appraisal_payload).valuation_process.agent_fee == 420000.0

    def test_unparseable_number(self, appraisal_payload):
        appraisal_payload["rental_income_potential"]["occupancy_rates"] = "high"
        with pytest.raises(ReportDataError, match="occupancy_rates"):
            parse_appraisal(appraisal_payload)


class TestParsePropertyDetails:
    def test_full_payload(self, property_payload):
        details = parse_property_details(property_payload)
        assert details.project_name == "Azure Residences Unit 12B"
        assert details.province == "Metro Manila"
        assert details.amenities == ("Pool", "Gym")

    def test_property_name_alias(self, property_payload):
        property_payload["property_name"] = property_payload.pop("project_name")
        assert parse_property_details(property_payload).project_name == "Azure Residences Unit 12B"

    def test_name_required(self, property_payload):
        del property_payload["project_name"]
        with pytest.raises(ReportDataError, match="project_name"):
            parse_property_details(property_payload)

    def test_to_prompt(self, property_payload):
        prompt = parse_property_details(property_payload).to_prompt()
        assert "Location: Paranaque, Metro Manila, Philippines" in prompt
        assert "Floor area (sqm): 56" in prompt
        assert "Amenities: Pool, Gym" in prompt
        assert "Lot area" not in prompt  # empty fields omitted


class TestMoney:
    @pytest.mark.parametrize("text,value", [
        ("PHP 19,950,000.00", 19950000.0),
        ("₱8,400,000", 8400000.0),
        ("1500", 1500.0),
        ("Estimated based on market", None),
        ("", None),
    ])
    def test_parse_currency(self, text, value):
        assert parse_currency(text) == value

    def test_format_currency(self):
        assert format_currency(1234.5) == "PHP 1,234.50"
        assert format_currency(None) == NOT_AVAILABLE

    def test_format_valuation_numeric(self, appraisal_payload):
        assert format_valuation(parse_appraisal(appraisal_payload)) == "PHP 8,400,000.00"

    def test_format_valuation_free_text(self, appraisal_payload):
        appraisal_payload["valuation_process"]["aggregate_valuation"] = "Subject to inspection"
        assert format_valuation(parse_appraisal(appraisal_payload)) == "Subject to inspection"


class TestRentalMetrics:
    def test_values(self, appraisal_payload):
        metrics = rental_metrics(parse_appraisal(appraisal_payload))
        assert metrics.annual_income == 420000.0
        assert metrics.effective_annual_income == pytest.approx(336000.0)
        assert metrics.gross_yield == pytest.approx(5.0)

    def test_no_yield_without_numeric_valuation(self, appraisal_payload):
        appraisal_payload["valuation_process"]["aggregate_valuation"] = "TBD"
        assert rental_metrics(parse_appraisal(appraisal_payload)).gross_yield is None


class TestProjectValues:
    def test_compound_growth(self):
        rows = project_values(1000000.0)
        assert [r["horizon"] for r in rows] == ["Current", "1 Year", "3 Years", "5 Years", "10 Years"]
        assert rows[1]["value"] == pytest.approx(1080000.0)
        assert rows[-1]["value"] == pytest.approx(1000000.0 * 1.08 ** 10)

    def test_custom_rate(self):
        rows = project_values(100.0, rate=0.1, years=(2,))
        assert rows[-1]["value"] == pytest.approx(121.0)

    def test_none_amount(self):
        assert project_values(None) == []


class TestComposeAppraisal:
    def test_section_order(self, property_payload, appraisal_payload):
        sections = compose_appraisal(
            parse_property_details(property_payload), parse_appraisal(appraisal_payload),
        )
        assert [s.key for s in sections] == [key for key, _ in APPRAISAL_SECTION_TITLES]

    def test_content(self, property_payload, appraisal_payload):
        by_key = sections_by_key(compose_appraisal(
            parse_property_details(property_payload), parse_appraisal(appraisal_payload),
        ))
        summary = by_key["valuation_summary"].content
        assert summary["aggregate_valuation"] == "PHP 8,400,000.00"
        assert summary["location"] == "Paranaque, Metro Manila, Philippines"
        specs = {r["label"]: r["value"] for r in by_key["property_specifications"].content["rows"]}
        assert specs["Floor Area"] == "56 sqm"
        assert specs["Land Size"] == NOT_AVAILABLE
        assert by_key["investment_summary"].available is True

    def test_free_text_valuation_has_no_projection(self, property_payload, appraisal_payload):
        appraisal_payload["valuation_process"]["aggregate_valuation"] = "TBD"
        by_key = sections_by_key(compose_appraisal(
            parse_property_details(property_payload), parse_appraisal(appraisal_payload),
        ))
        investment = by_key["investment_summary"]
        assert investment.available is False
        assert investment.placeholder == NOT_AVAILABLE
