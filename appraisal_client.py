"""
Thin client for the appraisal model (OpenAI Responses API).

Sends a PropertyDetails description with a strict JSON schema and parses
the structured output with appraisal.parse_appraisal().  Every failure
(network, HTTP status, missing or malformed output) surfaces as
AppraisalServiceError; there is no canned fallback appraisal.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import requests

from appraisal import AppraisalResult, PropertyDetails, parse_appraisal
from project_report import ReportDataError
from report_trace import get_trace

logger = logging.getLogger(__name__)

RESPONSES_URL = "https://api.openai.com/v1/responses"
DEFAULT_MODEL = "gpt-4o"

SYSTEM_PROMPT = (
    "You are an automated valuation model for residential real estate in the "
    "Philippines. From the property details provided, estimate the market value "
    "and show your method step by step: base valuation from BIR zonal values or "
    "comparable price per square meter, adjustments for notable features, a "
    "cross-check against recent comparable sales and active listings, a rental "
    "income valuation where relevant, and the aggregate valuation. Include an "
    "agent commission of roughly 5%. Report aggregate_valuation as a bare amount "
    "with no explanation."
)


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


def _number(description: str) -> Dict[str, str]:
    return {"type": "number", "description": description}


def _object(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


APPRAISAL_SCHEMA = _object({
    "market_data": _object({
        "comparable_sales": _string("Recent sales of similar properties."),
        "active_listings": _string("Competing properties currently on the market."),
        "government_values": _string("BIR zonal valuation and assessed values."),
    }),
    "purpose_of_appraisal": _string("Selling, bank loan, investment analysis or personal estimate."),
    "rental_income_potential": _object({
        "monthly_rental_income": _number("Current or potential monthly rent."),
        "occupancy_rates": _number("Typical occupancy percentage in the area."),
    }),
    "valuation_process": _object({
        "base_valuation": _string("Zonal valuation or average market rate."),
        "adjustment_factors": _string("Adjustments for specific features."),
        "market_comparison": _string("Cross-reference with similar sales."),
        "rental_income_valuation": _string("Estimated annual rental income."),
        "aggregate_valuation": _string("Final value only, no explanation."),
        "agent_fee": _number("Approximate 5% agent commission."),
    }),
    "proximity_data": _object({
        "nearest_locations": _string("Nearby hospitals, schools and commercial centres."),
        "festivals_events": _string("Festivals and events celebrated in the area."),
    }),
})


class AppraisalServiceError(RuntimeError):
    """The appraisal provider could not produce a usable appraisal."""


class AppraisalClient:
    DEFAULT_TIMEOUT = 90  # seconds; web-search backed responses are slow

    def __init__(self, api_key: str, model: Optional[str] = None):
        if not api_key:
            raise AppraisalServiceError("OPENAI_API_KEY is not configured")
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def build_request(self, property_details: PropertyDetails) -> Dict[str, Any]:
        return {
            "model": self.model,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": SYSTEM_PROMPT}]},
                {"role": "user", "content": [{"type": "input_text", "text": property_details.to_prompt()}]},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "property_appraisal",
                    "strict": True,
                    "schema": APPRAISAL_SCHEMA,
                },
            },
            "tools": [{
                "type": "web_search_preview",
                "user_location": {"type": "approximate", "country": "PH"},
                "search_context_size": "high",
            }],
            "temperature": 0.13,
            "max_output_tokens": 8000,
        }

    def _traced_post(self, endpoint_name: str, payload: dict) -> requests.Response:
        t0 = time.time()
        try:
            response = self.session.post(RESPONSES_URL, json=payload, timeout=self.DEFAULT_TIMEOUT)
        except requests.RequestException as exc:
            raise AppraisalServiceError(f"Appraisal request failed: {exc}") from exc
        elapsed_ms = int((time.time() - t0) * 1000)
        trace = get_trace()
        if trace:
            trace.record_call(
                service="openai",
                endpoint=endpoint_name,
                elapsed_ms=elapsed_ms,
                status_code=response.status_code,
            )
        return response

    def request_appraisal(self, property_details: PropertyDetails) -> AppraisalResult:
        response = self._traced_post("responses", self.build_request(property_details))
        if response.status_code != 200:
            logger.warning(
                "Appraisal provider returned HTTP %d for %r",
                response.status_code, property_details.project_name,
            )
            raise AppraisalServiceError(f"Appraisal provider returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise AppraisalServiceError("Appraisal provider returned a non-JSON body") from exc

        text = extract_output_text(body)
        if not text:
            raise AppraisalServiceError("No response received from the appraisal model")
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise AppraisalServiceError("Failed to parse appraisal response") from exc
        try:
            return parse_appraisal(data)
        except ReportDataError as exc:
            raise AppraisalServiceError(f"Appraisal response is incomplete: {exc}") from exc


def extract_output_text(body: Any) -> str:
    """Concatenate the output_text parts of a Responses API body."""
    if not isinstance(body, dict):
        return ""
    if isinstance(body.get("output_text"), str):
        return body["output_text"]
    parts = []
    for item in body.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and content.get("type") == "output_text":
                parts.append(content.get("text") or "")
    return "".join(parts)
