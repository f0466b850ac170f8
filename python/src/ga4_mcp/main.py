"""
MCP server entry point.

This is the stdio Model Context Protocol server that provides:
- GA4 Admin API tools (accounts, properties, Google Ads links, annotations)
- GA4 Data API tools (reports, realtime reports, custom definitions)
- GTM → GA4 parameter validation
"""

import logging
import sys
from typing import Annotated, Any, Dict, List, Optional, Union

import sentry_sdk
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from .core.config import settings
from .services.ga4.client_cache import get_client_cache
from .services.ga4.credentials import AuthMode
from .tools import (
    ToolResponse,
    get_account_summaries,
    get_custom_dimensions_and_metrics,
    get_property_details,
    handle_gtm_validation,
    list_google_ads_links,
    list_property_annotations,
    run_realtime_report,
    run_report,
)

# Configure logging to stderr (stdout carries the MCP protocol)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

logging.getLogger("google.auth").setLevel(logging.ERROR)

# Initialize Sentry if DSN provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"{settings.SERVER_NAME}@{settings.SERVER_VERSION}",
        traces_sample_rate=0.1,
    )
    logger.info("Sentry initialized")


mcp = FastMCP(
    name=settings.SERVER_NAME,
    instructions="""
    Google Analytics 4 MCP Server.

    Use ga4_account_summaries to discover accounts and properties, then query
    a property with ga4_run_report or ga4_run_realtime_report.

    ga4_validate_gtm_params checks whether the parameters sent by Google Tag
    Manager GA4 event tags are registered as custom dimensions and collected.
    """,
)

PropertyId = Annotated[
    Union[int, str],
    Field(description="GA4 property ID: 123456789 or 'properties/123456789'"),
]
FilterExpression = Annotated[
    Optional[Dict[str, Any]],
    Field(description="GA4 FilterExpression (filter, andGroup, orGroup, notExpression)"),
]
OrderBys = Annotated[
    Optional[List[Dict[str, Any]]],
    Field(description="GA4 OrderBy list, e.g. [{'metric': {'metricName': 'eventCount'}, 'desc': true}]"),
]


def _unwrap(response: ToolResponse) -> str:
    """Return the response text, raising ToolError for error responses."""
    if response.is_error:
        raise ToolError(response.text)
    return response.text


# ----------------------------------------------------------------------
# Admin API tools
# ----------------------------------------------------------------------


@mcp.tool(name="ga4_account_summaries")
async def account_summaries_tool() -> str:
    """Retrieve the Google Analytics accounts and properties the credential can access."""
    return _unwrap(await get_account_summaries())


@mcp.tool(name="ga4_property_details")
async def property_details_tool(property_id: PropertyId) -> str:
    """Return details about a specific GA4 property."""
    return _unwrap(await get_property_details(property_id))


@mcp.tool(name="ga4_google_ads_links")
async def google_ads_links_tool(property_id: PropertyId) -> str:
    """List the Google Ads accounts linked to a GA4 property."""
    return _unwrap(await list_google_ads_links(property_id))


@mcp.tool(name="ga4_property_annotations")
async def property_annotations_tool(property_id: PropertyId) -> str:
    """List the reporting data annotations of a GA4 property."""
    return _unwrap(await list_property_annotations(property_id))


# ----------------------------------------------------------------------
# Data API tools
# ----------------------------------------------------------------------


@mcp.tool(name="ga4_run_report")
async def run_report_tool(
    property_id: PropertyId,
    date_ranges: Annotated[
        List[Dict[str, str]],
        Field(description="[{'startDate': '30daysAgo', 'endDate': 'yesterday', 'name': 'current'}]"),
    ],
    dimensions: Annotated[List[str], Field(description="Dimension API names, e.g. ['date', 'eventName']")],
    metrics: Annotated[List[str], Field(description="Metric API names, e.g. ['activeUsers', 'eventCount']")],
    dimension_filter: FilterExpression = None,
    metric_filter: FilterExpression = None,
    order_bys: OrderBys = None,
    limit: Annotated[Optional[int], Field(description="Maximum rows to return")] = None,
    offset: Annotated[Optional[int], Field(description="Row offset for pagination")] = None,
    currency_code: Annotated[Optional[str], Field(description="ISO 4217 currency code, e.g. 'USD'")] = None,
    return_property_quota: Annotated[Optional[bool], Field(description="Include property quota state")] = None,
) -> str:
    """Run a Google Analytics Data API report."""
    return _unwrap(await run_report(
        property_id,
        date_ranges,
        dimensions,
        metrics,
        dimension_filter=dimension_filter,
        metric_filter=metric_filter,
        order_bys=order_bys,
        limit=limit,
        offset=offset,
        currency_code=currency_code,
        return_property_quota=return_property_quota,
    ))


@mcp.tool(name="ga4_run_realtime_report")
async def run_realtime_report_tool(
    property_id: PropertyId,
    dimensions: Annotated[List[str], Field(description="Realtime dimension API names, e.g. ['country']")],
    metrics: Annotated[List[str], Field(description="Realtime metric API names, e.g. ['activeUsers']")],
    dimension_filter: FilterExpression = None,
    metric_filter: FilterExpression = None,
    order_bys: OrderBys = None,
    limit: Annotated[Optional[int], Field(description="Maximum rows to return")] = None,
    return_property_quota: Annotated[Optional[bool], Field(description="Include property quota state")] = None,
) -> str:
    """Run a realtime report covering the last 30 minutes."""
    return _unwrap(await run_realtime_report(
        property_id,
        dimensions,
        metrics,
        dimension_filter=dimension_filter,
        metric_filter=metric_filter,
        order_bys=order_bys,
        limit=limit,
        return_property_quota=return_property_quota,
    ))


@mcp.tool(name="ga4_custom_dimensions_metrics")
async def custom_dimensions_metrics_tool(property_id: PropertyId) -> str:
    """Return the custom dimensions and metrics defined on a GA4 property."""
    return _unwrap(await get_custom_dimensions_and_metrics(property_id))


# ----------------------------------------------------------------------
# GTM validation
# ----------------------------------------------------------------------


@mcp.tool(name="ga4_validate_gtm_params")
async def validate_gtm_params_tool(
    property_id: PropertyId,
    gtm_events: Annotated[
        Optional[List[Dict[str, Any]]],
        Field(description="[{'eventName': 'purchase', 'parameters': ['value', 'currency']}]"),
    ] = None,
    gtm_export_json: Annotated[
        Optional[Union[Dict[str, Any], str]],
        Field(description="GTM container export (object or JSON text); used instead of gtm_events"),
    ] = None,
    start_date: Annotated[Optional[str], Field(description="Start date (default: 7daysAgo)")] = None,
    end_date: Annotated[Optional[str], Field(description="End date (default: yesterday)")] = None,
) -> str:
    """
    Check GTM event parameters against GA4 custom dimensions and collected data.

    Every (event, parameter) pair is classified as collected, not_collected
    or not_registered, with recommendations for fixing gaps.
    """
    return _unwrap(await handle_gtm_validation(
        property_id,
        gtm_events=gtm_events,
        gtm_export_json=gtm_export_json,
        start_date=start_date,
        end_date=end_date,
    ))


def log_credential_banner() -> None:
    """Log which credential mode the server will use."""
    info = get_client_cache().get_credentials_info()
    if info is None:
        logger.warning("No GA4 credentials configured; tools will fail until credentials are added")
        return

    mode = info["mode"]
    if mode == AuthMode.ACCESS_TOKEN.value:
        logger.warning(
            "Using access-token mode: the token cannot be refreshed and expires after about 1 hour"
        )
    elif "email" in info:
        logger.info(f"Auth mode: {mode} ({info['email']})")
    else:
        logger.info(f"Auth mode: {mode}")


def main() -> None:
    """Main entry point for the MCP server."""
    logger.info(f"Starting {settings.SERVER_NAME} v{settings.SERVER_VERSION}...")
    log_credential_banner()
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
