"""GTM parameter validation tool."""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..models.validation import DateRange, GTMEventConfig
from ..services.ga4.exceptions import GA4BaseException
from ..services.ga4.ga4_client import GA4Client
from ..services.gtm.export_parser import parse_gtm_export
from ..services.validation.gtm_validator import GTMParameterValidator
from .responses import ToolResponse, create_error_response, create_success_response

logger = logging.getLogger(__name__)


def _load_export(gtm_export_json: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(gtm_export_json, str):
        return json.loads(gtm_export_json)
    return gtm_export_json


async def handle_gtm_validation(
    property_id: Union[int, str],
    gtm_events: Optional[List[Dict[str, Any]]] = None,
    gtm_export_json: Optional[Union[str, Dict[str, Any]]] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """
    Validate GTM event parameters against a GA4 property.

    Either gtm_events or gtm_export_json must be given; the export wins
    when both are present.

    Args:
        property_id: GA4 property ID
        gtm_events: [{"eventName": "purchase", "parameters": ["value", ...]}]
        gtm_export_json: GTM container export (object or JSON text)
        start_date: Report start date (default: 7daysAgo)
        end_date: Report end date (default: yesterday)
        client: GA4 client override

    Returns:
        ValidationSummary as JSON, or an error response
    """
    if gtm_export_json:
        try:
            export = _load_export(gtm_export_json)
        except json.JSONDecodeError as e:
            return create_error_response("Invalid GTM export JSON", e)
        events = parse_gtm_export(export)
        if not events:
            return create_error_response("No GA4 event tags found in the GTM export JSON")
    elif gtm_events:
        try:
            events = [GTMEventConfig.model_validate(event) for event in gtm_events]
        except ValidationError as e:
            return create_error_response("Invalid gtm_events", e)
    else:
        return create_error_response("Either gtm_events or gtm_export_json is required")

    date_range = DateRange()
    if start_date:
        date_range.start_date = start_date
    if end_date:
        date_range.end_date = end_date

    validator = GTMParameterValidator(client or GA4Client())
    try:
        summary = await validator.validate(property_id, events, date_range)
    except GA4BaseException as e:
        logger.error(f"GTM parameter validation failed for {property_id}: {e}")
        return create_error_response("GTM parameter validation failed", e)

    return create_success_response(summary)
