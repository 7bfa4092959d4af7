"""PDF export for SiteCheck project reports and property appraisals.

Renders the composed report sections (report_composer.compose_report /
appraisal.compose_appraisal) into a fixed A4 layout with fpdf2.

Output is byte-reproducible for identical input: the PDF creation date is
pinned to the report date and nothing else time-dependent is written.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from fpdf import FPDF
from fpdf.fonts import FontFace

from appraisal import AppraisalResult, PropertyDetails, compose_appraisal
from project_report import ProjectReport
from report_composer import ReportSection, compose_report, sections_by_key
from scoring_config import NOT_AVAILABLE, SCORING_MODEL

logger = logging.getLogger(__name__)

# Brand colors
NAVY = (15, 52, 96)
GREEN = (22, 163, 74)
LIGHT_GREEN = (220, 252, 231)
AMBER = (217, 119, 6)
LIGHT_AMBER = (254, 243, 199)
GRAY = (107, 114, 128)
LIGHT_GRAY = (243, 244, 246)
WHITE = (255, 255, 255)
DARK = (31, 41, 55)

BRAND = "SiteCheck"

# Used when a report has no parseable date.
FIXED_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)

# Core PDF fonts are Latin-1 only.
_REPLACEMENTS = {
    "—": "-", "–": "-", "‘": "'", "’": "'",
    "“": '"', "”": '"', "•": "-", "…": "...",
    "₱": "PHP ", "≤": "<=", "≥": ">=",
}


def pdf_text(value) -> str:
    text = NOT_AVAILABLE if value is None else str(value)
    for src, dst in _REPLACEMENTS.items():
        text = text.replace(src, dst)
    return text.encode("latin-1", "replace").decode("latin-1")


def creation_date(report_date: Optional[str]) -> datetime:
    """Report date as an aware datetime, or FIXED_EPOCH."""
    if report_date:
        try:
            parsed = datetime.fromisoformat(report_date.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable report date %r, using fixed epoch", report_date)
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return FIXED_EPOCH


def _band_color(css_class: str):
    for band in SCORING_MODEL.score_bands:
        if band.css_class == css_class:
            return band.color
    return NAVY


class SiteReportPDF(FPDF):
    """Branded A4 document with shared section helpers."""

    def __init__(self, document_title: str, report_date: Optional[str]):
        super().__init__(format="A4")
        self.document_title = document_title
        self.set_auto_page_break(auto=True, margin=22)
        self.set_creation_date(creation_date(report_date))
        self.set_title(pdf_text(document_title))
        self.set_author(BRAND)

    def header(self):
        if self.page_no() == 1:
            return  # Cover page has custom header
        self.set_font("Helvetica", "B", 9)
        self.set_text_color(*GRAY)
        self.cell(0, 8, pdf_text(f"{BRAND}  |  {self.document_title}"), align="L")
        self.set_x(self.l_margin)
        self.set_font("Helvetica", "", 9)
        self.cell(0, 8, f"Page {self.page_no()}", align="R", new_x="LMARGIN", new_y="NEXT")
        self.set_draw_color(*NAVY)
        self.set_line_width(0.5)
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "", 7)
        self.set_text_color(*GRAY)
        self.cell(0, 5, f"{BRAND}  |  Indicative assessment, not a certified valuation", align="C")

    # -- section helpers ------------------------------------------------------

    def section_title(self, title: str):
        self.set_font("Helvetica", "B", 15)
        self.set_text_color(*NAVY)
        self.cell(0, 10, pdf_text(title.upper()), new_x="LMARGIN", new_y="NEXT")
        self.set_draw_color(*NAVY)
        self.set_line_width(0.7)
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)
        self.set_text_color(*DARK)

    def subsection(self, title: str):
        self.ln(2)
        self.set_font("Helvetica", "B", 11)
        self.set_text_color(*NAVY)
        self.cell(0, 7, pdf_text(title), new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(*DARK)
        self.ln(1)

    def body_text(self, text: str, size: int = 10, italic: bool = False):
        self.set_font("Helvetica", "I" if italic else "", size)
        self.set_text_color(*DARK)
        self.multi_cell(0, 5.5, pdf_text(text), new_x="LMARGIN", new_y="NEXT")
        self.ln(2)

    def bullets(self, items: Iterable[str]):
        self.set_font("Helvetica", "", 10)
        self.set_text_color(*DARK)
        for item in items:
            self.multi_cell(0, 5.5, pdf_text(f"-  {item}"), new_x="LMARGIN", new_y="NEXT")
        self.ln(2)

    def key_value_row(self, key: str, value, bold_value: bool = False):
        self.set_font("Helvetica", "", 9)
        self.set_text_color(*GRAY)
        self.cell(55, 6, pdf_text(key))
        self.set_text_color(*DARK)
        self.set_font("Helvetica", "B" if bold_value else "", 10)
        self.cell(0, 6, pdf_text(value), new_x="LMARGIN", new_y="NEXT")

    def not_available(self, what: str):
        self.set_font("Helvetica", "I", 10)
        self.set_text_color(*GRAY)
        self.cell(0, 7, pdf_text(f"{what}: {NOT_AVAILABLE}"), new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(*DARK)
        self.ln(2)

    def simple_table(self, headers: Sequence[str], rows: Sequence[Sequence], col_widths: Sequence[int]):
        self.set_font("Helvetica", "", 9)
        self.set_text_color(*DARK)
        headings = FontFace(emphasis="BOLD", color=WHITE, fill_color=NAVY)
        with self.table(
            col_widths=tuple(col_widths),
            line_height=5,
            headings_style=headings,
            cell_fill_color=LIGHT_GRAY,
            cell_fill_mode="ROWS",
            text_align="LEFT",
        ) as table:
            header_row = table.row()
            for h in headers:
                header_row.cell(pdf_text(h))
            for values in rows:
                row = table.row()
                for v in values:
                    row.cell(pdf_text(v))
        self.ln(3)

    def callout(self, title: str, lines: Iterable[str], positive: bool):
        fg, bg = (GREEN, LIGHT_GREEN) if positive else (AMBER, LIGHT_AMBER)
        self.set_fill_color(*bg)
        self.set_text_color(*fg)
        self.set_font("Helvetica", "B", 10)
        self.cell(0, 7, pdf_text(title), fill=True, new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(*DARK)
        self.set_font("Helvetica", "", 9)
        for line in lines:
            self.multi_cell(0, 5, pdf_text(f"-  {line}"), fill=True, new_x="LMARGIN", new_y="NEXT")
        self.ln(3)

    def score_box(self, label: str, score: str, rating: str, color):
        y = self.get_y()
        self.set_fill_color(*LIGHT_GRAY)
        self.rect(15, y, 180, 32, "F")
        self.set_xy(25, y + 3)
        self.set_font("Helvetica", "", 10)
        self.set_text_color(*GRAY)
        self.cell(80, 7, pdf_text(label))
        self.set_xy(25, y + 12)
        self.set_font("Helvetica", "B", 24)
        self.set_text_color(*color)
        self.cell(60, 12, pdf_text(score))
        self.set_xy(95, y + 14)
        self.set_font("Helvetica", "B", 14)
        self.cell(90, 10, pdf_text(rating.upper()))
        self.set_text_color(*DARK)
        self.set_y(y + 38)


# =============================================================================
# Project report
# =============================================================================

def _fmt(value, spec: str = ".1f") -> str:
    return "-" if value is None else format(value, spec)


def _cover_page(pdf: SiteReportPDF, cover: ReportSection):
    c = cover.content
    pdf.add_page()
    pdf.set_fill_color(*NAVY)
    pdf.rect(0, 0, 210, 55, "F")
    pdf.set_font("Helvetica", "B", 28)
    pdf.set_text_color(*WHITE)
    pdf.set_xy(15, 14)
    pdf.cell(0, 12, BRAND.upper())
    pdf.set_font("Helvetica", "", 11)
    pdf.set_xy(15, 30)
    pdf.cell(0, 8, pdf_text(c["subtitle"]))

    pdf.set_text_color(*DARK)
    pdf.set_xy(15, 70)
    pdf.set_font("Helvetica", "B", 20)
    pdf.multi_cell(180, 10, pdf_text(c["project_name"]), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)
    pdf.set_x(15)
    pdf.key_value_row("Location", c["location"])
    pdf.key_value_row("Coordinates", c["coordinates"])
    pdf.key_value_row("Report date", c["report_date"])
    pdf.ln(8)
    pdf.score_box(
        "OVERALL SUSTAINABILITY SCORE",
        f"{c['overall_score']:.1f} / 10",
        c["rating"],
        _band_color(c["css_class"]),
    )


def _executive_page(pdf: SiteReportPDF, section: ReportSection):
    c = section.content
    pdf.add_page()
    pdf.section_title(section.title)
    pdf.body_text(c["narrative"])
    pdf.subsection("Sustainability Scores")
    pdf.simple_table(
        ("Category", "Raw Score", "Weight", "Weighted", "Rating"),
        [
            (
                r["label"],
                _fmt(r["raw_score"]),
                _fmt(r["weight"], ".2f"),
                f"{r['weighted_score']:.1f} / {r['max_score']:.1f}",
                r["rating"],
            )
            for r in c["rows"]
        ],
        col_widths=(70, 22, 20, 32, 46),
    )
    if not c["weights_normalized"]:
        pdf.body_text(
            f"Category weights sum to {c['weight_sum']:g}, not 1.0; the overall score "
            "is reported without renormalisation.",
            size=9, italic=True,
        )
    pdf.body_text(f"Note: {c['note']}", size=9, italic=True)
    pdf.key_value_row("Feasibility status", c["feasibility_status"])
    counts = c["risk_counts"]
    pdf.key_value_row(
        "Risk profile",
        f"{counts.get('high', 0)} high, {counts.get('medium', 0)} medium, {counts.get('low', 0)} low",
    )
    pdf.key_value_row("Identified funding", f"{c['total_funding']:,.0f}")
    pdf.ln(4)
    pdf.body_text(c["citation"], size=8, italic=True)


def _category_page(pdf: SiteReportPDF, section: ReportSection):
    pdf.add_page()
    pdf.section_title(section.title)
    for cat in section.content["categories"]:
        pdf.subsection(cat["category"])
        pdf.key_value_row(
            "Score",
            f"{cat['raw_score']:.1f} / 10  (weighted {cat['weighted_score']:.1f} / {cat['max_score']:.1f})",
            bold_value=True,
        )
        pdf.key_value_row("Weight", f"{cat['weight']:.2f}")
        pdf.key_value_row("Rating", cat["rating"])
        pdf.body_text(f"Weight justification: {cat['justification']}", size=9)
        if cat["metrics"]:
            pdf.bullets(f"{m['name']}: {m['value']:g}" for m in cat["metrics"])
        pdf.body_text(cat["narrative"], size=9, italic=True)


def _risk_page(pdf: SiteReportPDF, section: ReportSection):
    risks = section.content["risks"]
    feasibility = section.content["feasibility"]
    pdf.add_page()
    pdf.section_title(section.title)

    pdf.subsection("Risk Analysis")
    if risks["available"]:
        pdf.simple_table(
            ("Risk", "Level", "Explanation"),
            [(r["title"], r["value"], r["explanation"]) for r in risks["rows"]],
            col_widths=(45, 30, 115),
        )
    else:
        pdf.not_available("Risk analysis")

    pdf.subsection("Feasibility")
    if not feasibility["available"]:
        pdf.not_available("Feasibility report")
        return
    pdf.callout(
        f"Status: {feasibility['status']}",
        feasibility["key_findings"] or [NOT_AVAILABLE],
        positive=feasibility["feasible"],
    )
    pdf.subsection("Recommendations")
    if feasibility["recommendations"]:
        pdf.bullets(feasibility["recommendations"])
    else:
        pdf.not_available("Recommendations")


def _policy_page(pdf: SiteReportPDF, section: ReportSection):
    policy = section.content["policy"]
    funding = section.content["funding"]
    pdf.add_page()
    pdf.section_title(section.title)

    pdf.subsection("Local Regulations")
    if policy["available"] and policy["local_regulations"]:
        pdf.simple_table(
            ("Regulation", "Status", "Notes"),
            [(r["law_name"], r["compliance_status"], r["notes"]) for r in policy["local_regulations"]],
            col_widths=(55, 35, 100),
        )
    else:
        pdf.not_available("Local regulations")

    pdf.subsection("International Guidelines")
    if policy["available"] and policy["international_guidelines"]:
        pdf.simple_table(
            ("Treaty", "Alignment", "Notes"),
            [(g["treaty"], g["alignment"], g["notes"]) for g in policy["international_guidelines"]],
            col_widths=(55, 35, 100),
        )
    else:
        pdf.not_available("International guidelines")

    pdf.subsection("Funding Opportunities")
    if funding["rows"]:
        pdf.simple_table(
            ("Program", "Amount", "Eligibility", "Deadline"),
            [(f["name"], f["amount"], f["eligibility"], f["deadline"]) for f in funding["rows"]],
            col_widths=(50, 30, 80, 30),
        )
    else:
        pdf.not_available("Funding opportunities")


def _appendix_page(pdf: SiteReportPDF, section: ReportSection):
    c = section.content
    pdf.add_page()
    pdf.section_title(section.title)
    pdf.subsection("Data Sources")
    if c["sources"]["available"]:
        pdf.simple_table(
            ("Source", "Summary", "Provider"),
            [(s["name"], s["summary"], s["source"]) for s in c["sources"]["rows"]],
            col_widths=(45, 100, 45),
        )
    else:
        pdf.not_available("Data sources")
    pdf.subsection("Methodology")
    pdf.bullets(c["methodology"])
    pdf.subsection("Certification")
    pdf.body_text(c["certification"], size=9)
    pdf.body_text(f"Scoring model version {c['model_version']}", size=8, italic=True)


_PAGE_RENDERERS = (
    ("cover", _cover_page),
    ("executive_summary", _executive_page),
    ("category_analysis", _category_page),
    ("risk_feasibility", _risk_page),
    ("policy_funding", _policy_page),
    ("data_sources", _appendix_page),
)


def build_report_pdf(report: ProjectReport, sections: Optional[List[ReportSection]] = None) -> bytes:
    """Render a project report to PDF bytes."""
    sections = sections or compose_report(report)
    by_key: Dict[str, ReportSection] = sections_by_key(sections)
    pdf = SiteReportPDF(f"{report.project_name} - Sustainability Report", report.last_updated)
    for key, render in _PAGE_RENDERERS:
        render(pdf, by_key[key])
    logger.info("Rendered report PDF for %r (%d pages)", report.project_name, pdf.page_no())
    return bytes(pdf.output())


# =============================================================================
# Appraisal
# =============================================================================

def _label_value_table(pdf: SiteReportPDF, header: Sequence[str], rows: Iterable[dict]):
    pdf.simple_table(header, [(r["label"], r["value"]) for r in rows], col_widths=(90, 100))


def build_appraisal_pdf(property_details: PropertyDetails, appraisal: AppraisalResult) -> bytes:
    """Render a property appraisal to PDF bytes."""
    by_key = sections_by_key(compose_appraisal(property_details, appraisal))
    pdf = SiteReportPDF(f"{property_details.project_name} - Appraisal", property_details.last_updated or None)

    summary = by_key["valuation_summary"]
    c = summary.content
    pdf.add_page()
    pdf.set_fill_color(*NAVY)
    pdf.rect(0, 0, 210, 45, "F")
    pdf.set_font("Helvetica", "B", 24)
    pdf.set_text_color(*WHITE)
    pdf.set_xy(15, 12)
    pdf.cell(0, 12, "PROPERTY VALUATION REPORT")
    pdf.set_text_color(*DARK)
    pdf.set_xy(15, 55)
    pdf.set_font("Helvetica", "B", 16)
    pdf.multi_cell(180, 8, pdf_text(c["project_name"]), new_x="LMARGIN", new_y="NEXT")
    pdf.key_value_row("Location", c["location"])
    pdf.key_value_row("Report date", c["report_date"])
    pdf.key_value_row("Purpose", c["purpose"])
    pdf.ln(4)
    pdf.score_box("AGGREGATE VALUATION", c["aggregate_valuation"], "", GREEN)
    _label_value_table(pdf, ("Valuation Component", "Value"), c["components"])
    pdf.subsection("Property Overview")
    pdf.body_text(c["overview"])

    specs = by_key["property_specifications"]
    pdf.add_page()
    pdf.section_title(specs.title)
    _label_value_table(pdf, ("Feature", "Specification"), specs.content["rows"])
    if specs.content["amenities"]:
        pdf.subsection("Amenities & Features")
        pdf.bullets(specs.content["amenities"])

    market = by_key["market_analysis"]
    m = market.content
    pdf.add_page()
    pdf.section_title(market.title)
    pdf.subsection("1. Comparable Sales Analysis")
    pdf.body_text(m["comparable_sales"])
    pdf.subsection("2. Active Listings")
    pdf.body_text(m["active_listings"])
    pdf.subsection("3. Government Valuations")
    pdf.body_text(m["government_values"])
    pdf.subsection("4. Rental Income Potential")
    _label_value_table(pdf, ("Rental Metric", "Value"), m["rental_rows"])

    location = by_key["location_analysis"]
    loc = location.content
    pdf.add_page()
    pdf.section_title(location.title)
    pdf.subsection("1. Proximity to Key Locations")
    pdf.body_text(loc["nearest_locations"])
    pdf.subsection("2. Community & Cultural Environment")
    pdf.body_text(loc["festivals_events"])
    pdf.subsection("3. Final Valuation")
    pdf.score_box("AGGREGATE VALUATION", loc["aggregate_valuation"], "", GREEN)
    pdf.callout("Important Notes", loc["notes"], positive=False)

    investment = by_key["investment_summary"]
    pdf.add_page()
    pdf.section_title(investment.title)
    if investment.available:
        rate = investment.content["growth_rate"]
        pdf.subsection(f"Future Value Projection ({rate:.0%} annual growth)")
        pdf.simple_table(
            ("Time Horizon", "Projected Value"),
            [(p["horizon"], p["formatted"]) for p in investment.content["projections"]],
            col_widths=(90, 100),
        )
    else:
        pdf.not_available("Value projection")

    logger.info("Rendered appraisal PDF for %r", property_details.project_name)
    return bytes(pdf.output())
