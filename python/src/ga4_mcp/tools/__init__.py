"""MCP tool handlers."""

from .admin import (
    get_account_summaries,
    get_property_details,
    list_google_ads_links,
    list_property_annotations,
)
from .gtm_validation import handle_gtm_validation
from .reporting import get_custom_dimensions_and_metrics, run_realtime_report, run_report
from .responses import ToolResponse, create_error_response, create_success_response

__all__ = [
    "ToolResponse",
    "create_success_response",
    "create_error_response",
    "get_account_summaries",
    "get_property_details",
    "list_google_ads_links",
    "list_property_annotations",
    "run_report",
    "run_realtime_report",
    "get_custom_dimensions_and_metrics",
    "handle_gtm_validation",
]
