import csv
import io
import logging
import os
import re
import sys
import uuid
from dataclasses import asdict
from datetime import date

from flask import Flask, Response, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect, generate_csrf
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv

from appraisal import compose_appraisal, parse_appraisal, parse_property_details
from appraisal_client import AppraisalClient, AppraisalServiceError
from models import (
    find_report_by_hash, get_event_counts, get_recent_reports, get_report,
    increment_view_count, init_db, log_event, payload_hash, save_report,
)
from og_image import generate_og_image
from project_report import ReportDataError, parse_project_report
from report_composer import compose_report, render_table, summary_to_dict
from report_pdf import build_appraisal_pdf, build_report_pdf
from report_trace import ReportTrace, clear_trace, get_trace, set_trace, timed_stage
from scoring_config import SCORING_MODEL
from sustainability_scoring import aggregate

load_dotenv()

# ---------------------------------------------------------------------------
# Sentry error tracking, gated on SENTRY_DSN; silent when unset (local dev)
# ---------------------------------------------------------------------------
_sentry_dsn = os.environ.get("SENTRY_DSN")
if _sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    def _sentry_before_send(event, hint):
        """Demote bad payloads and provider outages to breadcrumbs."""
        exc_info = hint.get("exc_info")
        if exc_info:
            exc_type, exc_value, _ = exc_info
            if exc_type is not None and issubclass(exc_type, (ReportDataError, AppraisalServiceError)):
                sentry_sdk.add_breadcrumb(
                    category="report" if issubclass(exc_type, ReportDataError) else "appraisal",
                    message=str(exc_value),
                    level="warning",
                )
                return None
        return event

    sentry_sdk.init(
        dsn=_sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.0,
        environment=os.environ.get("SITECHECK_ENVIRONMENT", "production"),
        before_send=_sentry_before_send,
    )

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'sitecheck-dev-key')
if (not app.config['SECRET_KEY'] or app.config['SECRET_KEY'] == 'sitecheck-dev-key') and os.environ.get('FLASK_DEBUG') != '1':
    print("FATAL: SECRET_KEY is not set. Refusing to start with insecure default.", file=sys.stderr)
    print("Set SECRET_KEY in your environment or .env file.", file=sys.stderr)
    sys.exit(1)

# Real client IP behind the reverse proxy, for the limiter and logs.
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)

# POSTs must carry an X-CSRFToken header obtained from /api/csrf-token.
csrf = CSRFProtect(app)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rate limiting.  In-memory storage is per-process.
# ---------------------------------------------------------------------------
RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "60/minute")
RATE_LIMIT_REPORT = os.environ.get("RATE_LIMIT_REPORT", "20/hour")

limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
)
logging.getLogger("flask-limiter").setLevel(logging.WARNING)

OPENAI_APPRAISAL_MODEL = os.environ.get("OPENAI_APPRAISAL_MODEL")

if not os.environ.get("OPENAI_API_KEY"):
    logger.warning(
        "OPENAI_API_KEY is not set. "
        "Appraisal requests will return 503 until it is configured."
    )


def _generate_request_id():
    return uuid.uuid4().hex[:10]


@app.before_request
def _set_request_context():
    g.request_id = _generate_request_id()
    trace = ReportTrace(trace_id=g.request_id, model_version=SCORING_MODEL.version)
    set_trace(trace)


@app.after_request
def _after_request(response):
    response.headers["X-Request-ID"] = getattr(g, "request_id", "")
    return response


@app.teardown_request
def _finish_trace(exc):
    trace = get_trace()
    if trace and trace.stages:
        trace.log_summary()
    clear_trace()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _error(message, status, **extra):
    body = {"error": message, "request_id": getattr(g, "request_id", None)}
    body.update(extra)
    return jsonify(body), status


def _slug(name):
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "report"


def _pdf_response(pdf_bytes, filename):
    return Response(
        pdf_bytes,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}.pdf"},
    )


def _build(payload, today=None):
    """Parse, score and compose a report payload.  Raises ReportDataError."""
    report = timed_stage("parse", parse_project_report, payload)
    summary = timed_stage("score", aggregate, report.sustainability_score)
    sections = timed_stage("compose", compose_report, report, today=today, summary=summary)
    return report, summary, sections


def _load_stored(report_id):
    """Stored row plus its re-parsed report, or (None, None) if unknown."""
    stored = get_report(report_id)
    if not stored:
        return None, None
    return stored, timed_stage("parse", parse_project_report, stored["payload"])


def _report_response(report_id, stored_at, report, summary, sections):
    return {
        "report_id": report_id,
        "created_at": stored_at,
        "project_name": report.project_name,
        "summary": summary_to_dict(summary),
        "sections": [s.to_dict() for s in sections],
        "model_version": SCORING_MODEL.version,
    }


@app.errorhandler(ReportDataError)
def report_data_error(e):
    logger.info("Rejected report data: %s", e)
    return _error(str(e), 422, type=type(e).__name__)


# ---------------------------------------------------------------------------
# Report API
# ---------------------------------------------------------------------------

@app.route("/api/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@app.route("/api/report", methods=["POST"])
@limiter.limit(RATE_LIMIT_REPORT)
def create_report():
    """Validate, score and store a report payload.

    Identical payloads are stored once; resubmitting returns the existing
    report_id with 200 instead of 201.
    """
    payload = _json_body()
    if payload is None:
        return _error("A JSON object body is required", 400)

    try:
        report, summary, sections = _build(payload)
    except ReportDataError as e:
        log_event("report_rejected", metadata={"error": type(e).__name__})
        raise

    existing = find_report_by_hash(payload_hash(payload))
    if existing:
        stored = get_report(existing)
        return jsonify({
            **_report_response(existing, stored["created_at"], report, summary, sections),
            "deduplicated": True,
        }), 200

    report_id = save_report(report.project_name, payload, summary.overall_score, summary.rating)
    log_event("report_created", report_id=report_id, metadata={"overall_score": summary.overall_score})
    stored = get_report(report_id)
    return jsonify(_report_response(report_id, stored["created_at"], report, summary, sections)), 201


@app.route("/api/report/<report_id>")
def view_report(report_id):
    stored, report = _load_stored(report_id)
    if not stored:
        return _error("Report not found", 404)

    summary = timed_stage("score", aggregate, report.sustainability_score)
    sections = timed_stage("compose", compose_report, report, today=date.today(), summary=summary)
    increment_view_count(report_id)
    log_event("report_viewed", report_id=report_id)
    return jsonify(_report_response(report_id, stored["created_at"], report, summary, sections))


@app.route("/api/report/<report_id>/pdf")
def export_report_pdf(report_id):
    stored, report = _load_stored(report_id)
    if not stored:
        return _error("Report not found", 404)

    pdf_bytes = timed_stage("render_pdf", build_report_pdf, report)
    log_event("pdf_exported", report_id=report_id)
    return _pdf_response(pdf_bytes, f"sitecheck-{_slug(report.project_name)}-{report_id}")


@app.route("/api/report/<report_id>/csv")
def export_report_csv(report_id):
    """Score table as CSV: one row per category, then the Overall row."""
    stored, report = _load_stored(report_id)
    if not stored:
        return _error("Report not found", 404)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["report_id", "project_name", "created_at", "model_version"])
    writer.writerow([report_id, report.project_name, stored["created_at"], SCORING_MODEL.version])
    writer.writerow([])
    writer.writerow(["category", "raw_score", "weight", "weighted_score", "max_score", "percentage", "rating"])
    for row in render_table(report.sustainability_score):
        writer.writerow([
            row.label,
            "" if row.raw_score is None else row.raw_score,
            row.weight,
            f"{row.weighted_score:.1f}",
            f"{row.max_score:.1f}",
            row.percentage,
            row.rating,
        ])

    log_event("csv_exported", report_id=report_id)
    return Response(
        output.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=sitecheck-{report_id}.csv"},
    )


@app.route("/api/report/<report_id>/og.png")
def report_og_image(report_id):
    stored, report = _load_stored(report_id)
    if not stored:
        return _error("Report not found", 404)

    summary = aggregate(report.sustainability_score)
    where = ", ".join(p for p in (report.location.city, report.location.country) if p)
    png = generate_og_image(
        project_name=report.project_name,
        location=where,
        score=summary.overall_score,
        rating=summary.rating,
        band_css_class=summary.band.css_class,
        categories=[(c.category.label, c.percentage) for c in summary.contributions],
    )
    if png is None:
        return _error("Share image unavailable", 503)
    return Response(png, mimetype="image/png", headers={"Cache-Control": "public, max-age=3600"})


@app.route("/api/report/pdf", methods=["POST"])
@limiter.limit(RATE_LIMIT_REPORT)
def render_report_pdf():
    """PDF for a posted payload, without storing it."""
    payload = _json_body()
    if payload is None:
        return _error("A JSON object body is required", 400)

    report = timed_stage("parse", parse_project_report, payload)
    pdf_bytes = timed_stage("render_pdf", build_report_pdf, report)
    log_event("pdf_exported")
    return _pdf_response(pdf_bytes, f"sitecheck-{_slug(report.project_name)}")


# ---------------------------------------------------------------------------
# Appraisal API
# ---------------------------------------------------------------------------

@app.route("/api/appraisal", methods=["POST"])
@limiter.limit(RATE_LIMIT_REPORT)
def request_appraisal():
    """Ask the valuation model for an appraisal of the posted property."""
    data = _json_body()
    if data is None:
        return _error("A JSON object body is required", 400)
    property_details = parse_property_details(data.get("property", data))

    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        return _error("Appraisal service is not configured", 503)

    client = AppraisalClient(api_key, model=OPENAI_APPRAISAL_MODEL)
    try:
        appraisal = timed_stage("appraisal", client.request_appraisal, property_details)
    except AppraisalServiceError as e:
        logger.warning("Appraisal failed for %r: %s", property_details.project_name, e)
        log_event("appraisal_failed", metadata={"error": str(e)[:200]})
        return _error("The appraisal could not be generated. Please try again later.", 502)

    sections = timed_stage("compose", compose_appraisal, property_details, appraisal)
    log_event("appraisal_requested")
    return jsonify({
        "property": asdict(property_details),
        "appraisal": asdict(appraisal),
        "sections": [s.to_dict() for s in sections],
    })


@app.route("/api/appraisal/pdf", methods=["POST"])
@limiter.limit(RATE_LIMIT_REPORT)
def render_appraisal_pdf():
    data = _json_body()
    if data is None:
        return _error("A JSON object body is required", 400)

    property_details = parse_property_details(data.get("property"))
    appraisal = parse_appraisal(data.get("appraisal"))
    pdf_bytes = timed_stage("render_pdf", build_appraisal_pdf, property_details, appraisal)
    log_event("pdf_exported", metadata={"kind": "appraisal"})
    return _pdf_response(pdf_bytes, f"appraisal-{_slug(property_details.project_name)}")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@app.route("/healthz")
@limiter.exempt
def healthz():
    """Lightweight health-check endpoint for monitoring."""
    return jsonify({
        "status": "ok",
        "model_version": SCORING_MODEL.version,
        "appraisal_configured": bool(os.environ.get("OPENAI_API_KEY")),
    })


@app.route("/api/stats")
def stats():
    """Recent reports and event counts."""
    return jsonify({
        "events": get_event_counts(),
        "recent_reports": get_recent_reports(limit=10),
    })


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.errorhandler(429)
def rate_limit_exceeded(e):
    return _error("Too many requests. Please wait and try again.", 429)


@app.errorhandler(404)
def not_found(e):
    return _error("Not found", 404)


@app.errorhandler(500)
def internal_error(e):
    return _error("Internal server error", 500)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

# Initialize database on import (safe to call repeatedly)
init_db()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
