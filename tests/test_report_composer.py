"""Unit tests for report_composer.py: tables, label grading and section composition."""

from dataclasses import replace
from datetime import date

import pytest

from project_report import FundingOpportunity, RiskEntry, parse_project_report
from report_composer import (
    OVERALL_LABEL,
    SECTION_TITLES,
    compliance_tone,
    compose_report,
    count_risks,
    data_source_kind,
    deadline_approaching,
    deadline_label,
    feasibility_tone,
    format_date,
    humanize_key,
    is_feasible_status,
    parse_amount,
    parse_deadline,
    render_risk_rows,
    render_table,
    risk_severity,
    sections_by_key,
    table_rows,
    total_funding,
)
from scoring_config import CATEGORY_ORDER, NOT_AVAILABLE
from sustainability_scoring import aggregate

TODAY = date(2025, 6, 1)


def _compose(payload, today=TODAY):
    return sections_by_key(compose_report(parse_project_report(payload), today=today))


# =============================================================================
# Score table
# =============================================================================

class TestRenderTable:
    def test_one_row_per_category_then_overall(self, sample_payload):
        rows = render_table(parse_project_report(sample_payload).sustainability_score)
        assert [r.label for r in rows] == [c.label for c in CATEGORY_ORDER] + [OVERALL_LABEL]

    def test_overall_row(self, sample_payload):
        overall = render_table(parse_project_report(sample_payload).sustainability_score)[-1]
        assert overall.is_overall is True
        assert overall.raw_score is None
        assert overall.weighted_score == 7.1
        assert overall.max_score == 10.0
        assert overall.rating == "Partially Sustainable"

    def test_order_independent_of_input(self, sample_payload):
        block = sample_payload["sustainability_score"]
        block["scores"] = dict(reversed(list(block["scores"].items())))
        rows = render_table(parse_project_report(sample_payload).sustainability_score)
        assert rows[0].label == "Climate & Weather Data"
        assert rows[0].weighted_score == 2.4

    def test_percentage_rounds_half_away_from_zero(self, sample_payload):
        summary = aggregate(parse_project_report(sample_payload).sustainability_score)
        first = replace(summary.contributions[0], percentage=61.25)
        summary = replace(summary, contributions=(first,) + summary.contributions[1:])
        # 61.25 is exact in binary; round() would give 61.2
        assert table_rows(summary)[0].percentage == 61.3


# =============================================================================
# Risks
# =============================================================================

class TestRisks:
    @pytest.mark.parametrize("key,title", [
        ("flood_risk", "Flood Risk"),
        ("seismic-risk", "Seismic Risk"),
        ("heat stress", "Heat Stress"),
        ("sea_level__rise", "Sea Level Rise"),
        ("pH_level", "PH Level"),
    ])
    def test_humanize_key(self, key, title):
        assert humanize_key(key) == title

    @pytest.mark.parametrize("value,severity", [
        ("High", "high"),
        ("Very high", "high"),
        ("Moderate", "medium"),
        ("medium-low", "medium"),
        ("Low", "low"),
        ("Unknown", "unrated"),
        ("", "unrated"),
    ])
    def test_risk_severity(self, value, severity):
        assert risk_severity(value) == severity

    def test_supplied_order_preserved(self):
        risks = {
            "zeta_risk": RiskEntry("Low"),
            "alpha_risk": RiskEntry("High"),
        }
        assert [r.title for r in render_risk_rows(risks)] == ["Zeta Risk", "Alpha Risk"]

    def test_count_risks(self, sample_payload):
        report = parse_project_report(sample_payload)
        assert count_risks(report.risk_analysis) == {"high": 1, "medium": 1, "low": 1}


# =============================================================================
# Label grading
# =============================================================================

class TestLabelGrading:
    @pytest.mark.parametrize("status,tone", [
        ("Approved", "approved"),
        ("Pending review", "pending"),
        ("Rejected", "rejected"),
        ("Under study", "other"),
    ])
    def test_feasibility_tone(self, status, tone):
        assert feasibility_tone(status) == tone

    @pytest.mark.parametrize("status,feasible", [
        ("Approved with conditions", True),
        ("Feasible", True),
        ("Not feasible", False),
        ("Infeasible", False),
        ("Not approved", False),
        ("Pending", False),
    ])
    def test_is_feasible_status(self, status, feasible):
        assert is_feasible_status(status) is feasible

    @pytest.mark.parametrize("status,tone", [
        ("Compliant", "compliant"),
        ("Aligned", "compliant"),
        ("Non-compliant", "non_compliant"),
        ("Not aligned", "non_compliant"),
        ("Under review", "review"),
    ])
    def test_compliance_tone(self, status, tone):
        assert compliance_tone(status) == tone

    @pytest.mark.parametrize("name,kind", [
        ("Satellite Imagery", "imagery"),
        ("Aerial photos", "imagery"),
        ("Air Quality Data", "dataset"),
        ("Flood zones", "layer"),
    ])
    def test_data_source_kind(self, name, kind):
        assert data_source_kind(name) == kind


# =============================================================================
# Funding
# =============================================================================

class TestFunding:
    @pytest.mark.parametrize("amount,value", [
        ("$2,500,000", 2500000.0),
        ("PHP 1,000.50", 1000.5),
        ("Up to 50000 USD", 50000.0),
        ("Varies", 0.0),
        ("", 0.0),
    ])
    def test_parse_amount(self, amount, value):
        assert parse_amount(amount) == value

    def test_total_funding(self):
        opportunities = [
            FundingOpportunity(name="A", amount="$1,000"),
            FundingOpportunity(name="B", amount="2,500"),
            FundingOpportunity(name="C", amount="TBD"),
        ]
        assert total_funding(opportunities) == 3500.0

    @pytest.mark.parametrize("text,expected", [
        ("2025-06-30", date(2025, 6, 30)),
        ("2025-06-30T12:00:00Z", date(2025, 6, 30)),
        ("June 30, 2025", date(2025, 6, 30)),
        ("Jun 30, 2025", date(2025, 6, 30)),
        ("06/30/2025", date(2025, 6, 30)),
        ("Rolling", None),
        ("", None),
    ])
    def test_parse_deadline(self, text, expected):
        assert parse_deadline(text) == expected

    def test_format_date(self):
        assert format_date(date(2025, 3, 5)) == "Mar 5, 2025"

    @pytest.mark.parametrize("text,label", [
        ("2025-05-31", "Expired (May 31, 2025)"),
        ("2025-06-01", "Today!"),
        ("2025-06-02", "Tomorrow!"),
        ("2025-06-08", "7 days left!"),
        ("2025-06-09", "Jun 9, 2025"),
        ("Rolling", "Rolling"),
        ("", NOT_AVAILABLE),
    ])
    def test_deadline_label(self, text, label):
        assert deadline_label(text, TODAY) == label

    def test_deadline_approaching(self):
        assert deadline_approaching("2025-06-15", TODAY) is True
        assert deadline_approaching("2025-07-01", TODAY) is True
        assert deadline_approaching("2025-07-02", TODAY) is False
        assert deadline_approaching("2025-06-01", TODAY) is False
        assert deadline_approaching("Rolling", TODAY) is False


# =============================================================================
# Composition
# =============================================================================

class TestComposeReport:
    def test_fixed_section_order(self, sample_payload):
        sections = compose_report(parse_project_report(sample_payload), today=TODAY)
        assert [s.key for s in sections] == [key for key, _ in SECTION_TITLES]
        assert all(s.available for s in sections)

    def test_cover(self, sample_payload):
        cover = _compose(sample_payload)["cover"].content
        assert cover["project_name"] == "Riverside Eco Village"
        assert cover["coordinates"] == "14.5995, 120.9842"
        assert cover["overall_score"] == 7.1
        assert cover["rating"] == "Partially Sustainable"
        assert cover["css_class"] == "band-partial"
        assert cover["location"] == "Manila, Philippines"

    @pytest.mark.parametrize("city,country,expected", [
        ("", "", NOT_AVAILABLE),
        ("Manila", "", "Manila"),
        ("", "Philippines", "Philippines"),
    ])
    def test_cover_location_joins_present_parts(self, sample_payload, city, country, expected):
        sample_payload["location"]["city"] = city
        sample_payload["location"]["country"] = country
        assert _compose(sample_payload)["cover"].content["location"] == expected

    def test_executive_summary(self, sample_payload):
        summary = _compose(sample_payload)["executive_summary"].content
        assert summary["rows"][-1]["label"] == OVERALL_LABEL
        assert summary["formula"][0] == "8.0 x 0.30"
        assert summary["risk_counts"] == {"high": 1, "medium": 1, "low": 1}
        assert summary["total_funding"] == 2500000.0
        assert "Riverside Eco Village in Manila, Philippines" in summary["narrative"]
        assert "strongest category is Biodiversity & Ecosystem Health" in summary["narrative"]

    def test_upstream_overall_score_ignored(self, sample_payload):
        sample_payload["sustainability_score"]["overall_score"] = 1.0
        assert _compose(sample_payload)["cover"].content["overall_score"] == 7.1

    def test_category_analysis(self, sample_payload):
        categories = _compose(sample_payload)["category_analysis"].content["categories"]
        assert len(categories) == 5
        climate = categories[0]
        assert climate["justification"] == "Typhoon exposure"
        assert climate["metrics"] == [{"name": "Avg Temperature", "value": 27.5}]
        assert climate["narrative"].startswith("Climate & Weather Data conditions strongly support")

    def test_missing_feasibility_renders_placeholder(self, sample_payload):
        del sample_payload["feasibility_report"]
        section = _compose(sample_payload)["risk_feasibility"]
        assert section.available is True  # risks still present
        assert section.content["feasibility"] == {"available": False, "placeholder": NOT_AVAILABLE}
        assert section.content["risks"]["available"] is True

    def test_all_optional_parts_missing(self, sample_payload):
        for key in ("feasibility_report", "risk_analysis", "policy_compliance"):
            del sample_payload[key]
        section = _compose(sample_payload)["risk_feasibility"]
        assert section.available is False
        assert section.placeholder == NOT_AVAILABLE

    def test_empty_funding_renders_zero_rows(self, sample_payload):
        sample_payload["funding_opportunities"] = []
        funding = _compose(sample_payload)["policy_funding"].content["funding"]
        assert funding["rows"] == []
        assert funding["total"] == 0.0
        assert funding["available"] is True

    def test_funding_rows(self, sample_payload):
        row = _compose(sample_payload)["policy_funding"].content["funding"]["rows"][0]
        assert row["deadline"] == "Jun 30, 2025"
        assert row["deadline_label"] == "Jun 30, 2025"
        assert row["deadline_approaching"] is True

    def test_policy_tones(self, sample_payload):
        policy = _compose(sample_payload)["policy_funding"].content["policy"]
        assert [r["tone"] for r in policy["local_regulations"]] == ["compliant", "non_compliant"]
        assert policy["international_guidelines"][0]["tone"] == "compliant"

    def test_data_sources_without_sources_still_available(self, sample_payload):
        del sample_payload["api_context_data"]
        section = _compose(sample_payload)["data_sources"]
        assert section.available is True
        assert section.content["sources"]["available"] is False
        assert len(section.content["methodology"]) == 6

    def test_sections_serialise(self, sample_payload):
        sections = compose_report(parse_project_report(sample_payload), today=TODAY)
        as_dicts = [s.to_dict() for s in sections]
        assert as_dicts[0]["key"] == "cover"
        assert as_dicts[0]["collapsible"] is True
