"""Shared fixtures for the SiteCheck test suite.

Provides a Flask test client wired to a temporary SQLite database and a
complete sample report payload.
"""

import atexit
import copy
import os
import tempfile

import pytest

# Point the DB at a temp file BEFORE importing app/models (they read DB_PATH at import time)
_test_db_fd, _test_db_path = tempfile.mkstemp(suffix=".db")
os.close(_test_db_fd)  # sqlite3 opens its own handle
os.environ["SITECHECK_DB_PATH"] = _test_db_path
atexit.register(lambda: os.unlink(_test_db_path) if os.path.exists(_test_db_path) else None)

# Suppress the SECRET_KEY startup guard
os.environ.setdefault("SECRET_KEY", "test-secret-key")

# Limiter state is per-process and shared across tests
os.environ["RATE_LIMIT_DEFAULT"] = "10000/minute"
os.environ["RATE_LIMIT_REPORT"] = "10000/minute"

from app import app  # noqa: E402
from models import init_db, _get_db  # noqa: E402


SAMPLE_PAYLOAD = {
    "project_name": "Riverside Eco Village",
    "location": {
        "latitude": 14.5995,
        "longitude": 120.9842,
        "city": "Manila",
        "country": "Philippines",
        "images": ["https://example.com/site.jpg"],
    },
    "sustainability_score": {
        "scores": {
            "Climate & Weather Data": {"raw_score": 8.0, "metrics": {"avg_temperature": 27.5}},
            "Air Quality & Pollution": {"raw_score": 6.0, "metrics": {"pm2_5": 18}},
            "Disaster Risk & Hazard Data": {"raw_score": 7.0, "metrics": {}},
            "Biodiversity & Ecosystem Health": {"raw_score": 9.0, "metrics": {}},
            "Renewable Energy & Infrastructure Feasibility": {"raw_score": 5.0, "metrics": {}},
        },
        "weights": {
            "Climate & Weather Data": {"weight": 0.3, "justification": "Typhoon exposure"},
            "Air Quality & Pollution": {"weight": 0.2, "justification": "Urban traffic"},
            "Disaster Risk & Hazard Data": {"weight": 0.2, "justification": "Flood plain"},
            "Biodiversity & Ecosystem Health": {"weight": 0.15, "justification": "River habitat"},
            "Renewable Energy & Infrastructure Feasibility": {"weight": 0.15, "justification": "Grid access"},
        },
        # Upstream totals are ignored and always recomputed.
        "overall_score": 9.9,
    },
    "feasibility_report": {
        "status": "Approved with conditions",
        "key_findings": ["Site is above the 100-year flood line"],
        "recommendations": ["Install rainwater harvesting"],
    },
    "risk_analysis": {
        "flood_risk": {"value": "High", "explanation": "Adjacent to river"},
        "seismic-risk": {"value": "Moderate", "explanation": "Near fault line"},
        "heat stress": {"value": "Low", "explanation": "Tree cover"},
    },
    "policy_compliance": {
        "local_regulations": [
            {"law_name": "Clean Air Act", "compliance_status": "Compliant", "notes": ""},
            {"law_name": "Water Code", "compliance_status": "Non-compliant", "notes": "Permit pending"},
        ],
        "international_guidelines": [
            {"treaty": "Paris Agreement", "alignment": "Aligned", "notes": ""},
        ],
    },
    "funding_opportunities": [
        {
            "name": "Green Climate Fund",
            "amount": "$2,500,000",
            "eligibility": "Climate adaptation projects",
            "application_deadline": "2025-06-30",
            "link": "https://example.com/gcf",
        },
    ],
    "api_context_data": {
        "api": [
            {"name": "Satellite Imagery", "summary": "Land cover", "source": "Sentinel-2"},
            {"name": "Air Quality Data", "summary": "PM2.5 readings", "source": "OpenAQ"},
        ],
    },
    "last_updated": "2025-03-05",
}


@pytest.fixture()
def sample_payload():
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture(autouse=True)
def _fresh_db():
    """Reset the database before every test, keeping the schema."""
    init_db()
    conn = _get_db()
    for table in ("events", "reports"):
        conn.execute(f"DELETE FROM {table}")
    conn.commit()
    conn.close()
    yield


@pytest.fixture()
def client():
    """Flask test client with CSRF disabled (we're testing logic, not CSRF)."""
    app.config["TESTING"] = True
    app.config["WTF_CSRF_ENABLED"] = False
    with app.test_client() as c:
        yield c


PROPERTY_PAYLOAD = {
    "project_name": "Azure Residences Unit 12B",
    "location": {
        "city": "Paranaque",
        "province": "Metro Manila",
        "country": "Philippines",
        "latitude": "14.4793",
        "longitude": "121.0198",
    },
    "property_details": {
        "type": "Condominium",
        "subtype": "For Sale",
        "bedrooms": "2",
        "bathrooms": "1",
        "land_size": "",
        "floor_area": "56",
        "amenities": ["Pool", "Gym"],
    },
    "price": "PHP 8,500,000",
    "description": "Corner unit with bay view",
    "last_updated": "2025-03-05",
}

APPRAISAL_PAYLOAD = {
    "market_data": {
        "comparable_sales": "Similar units sold for PHP 150,000/sqm",
        "active_listings": "Twelve listings between PHP 7M and PHP 9M",
        "government_values": "BIR zonal value PHP 120,000/sqm",
    },
    "purpose_of_appraisal": "Selling",
    "rental_income_potential": {
        "monthly_rental_income": 35000,
        "occupancy_rates": 80,
    },
    "valuation_process": {
        "base_valuation": "PHP 6,720,000",
        "adjustment_factors": "+10% for corner unit",
        "market_comparison": "PHP 8,400,000",
        "rental_income_valuation": "PHP 420,000 per year",
        "aggregate_valuation": "PHP 8,400,000.00",
        "agent_fee": 420000,
    },
    "proximity_data": {
        "nearest_locations": "SM Mall of Asia 2 km",
        "festivals_events": "Sunduan Festival",
    },
}


@pytest.fixture()
def property_payload():
    return copy.deepcopy(PROPERTY_PAYLOAD)


@pytest.fixture()
def appraisal_payload():
    return copy.deepcopy(APPRAISAL_PAYLOAD)
