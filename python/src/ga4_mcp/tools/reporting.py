"""
Data API tools: core reports, realtime reports and custom definitions.

Filters and orderBys are passed through in the GA4 Data API JSON shape, e.g.

    {"filter": {"fieldName": "eventName",
                "stringFilter": {"matchType": "EXACT", "value": "purchase"}}}
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..services.ga4.exceptions import GA4BaseException
from ..services.ga4.ga4_client import GA4Client
from ..services.ga4.helpers import construct_property_resource_name
from .responses import ToolResponse, create_error_response, create_success_response

logger = logging.getLogger(__name__)


def build_report_body(
    dimensions: List[str],
    metrics: List[str],
    date_ranges: Optional[List[Dict[str, Any]]] = None,
    dimension_filter: Optional[Dict[str, Any]] = None,
    metric_filter: Optional[Dict[str, Any]] = None,
    order_bys: Optional[List[Dict[str, Any]]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    currency_code: Optional[str] = None,
    return_property_quota: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Assemble a report request body, leaving out unset options.

    Returns:
        Request body with camelCase keys
    """
    body: Dict[str, Any] = {
        "dimensions": [{"name": name} for name in dimensions],
        "metrics": [{"name": name} for name in metrics],
    }
    if date_ranges is not None:
        body["dateRanges"] = date_ranges
    if dimension_filter:
        body["dimensionFilter"] = dimension_filter
    if metric_filter:
        body["metricFilter"] = metric_filter
    if order_bys:
        body["orderBys"] = order_bys
    if limit is not None:
        body["limit"] = limit
    if offset is not None:
        body["offset"] = offset
    if currency_code:
        body["currencyCode"] = currency_code
    if return_property_quota is not None:
        body["returnPropertyQuota"] = return_property_quota
    return body


async def run_report(
    property_id: Union[int, str],
    date_ranges: List[Dict[str, Any]],
    dimensions: List[str],
    metrics: List[str],
    dimension_filter: Optional[Dict[str, Any]] = None,
    metric_filter: Optional[Dict[str, Any]] = None,
    order_bys: Optional[List[Dict[str, Any]]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    currency_code: Optional[str] = None,
    return_property_quota: Optional[bool] = None,
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """
    Run a GA4 Data API report.

    Args:
        property_id: Property ID in any accepted format
        date_ranges: [{"startDate": "...", "endDate": "...", "name": "..."}]
        dimensions: Dimension API names
        metrics: Metric API names
        dimension_filter: FilterExpression applied to dimensions
        metric_filter: FilterExpression applied to metrics
        order_bys: OrderBy list
        limit: Maximum rows to return
        offset: Row offset
        currency_code: ISO 4217 currency code
        return_property_quota: Include the property quota state
        client: GA4 client override

    Returns:
        The report as JSON, or an error response
    """
    client = client or GA4Client()
    body = build_report_body(
        dimensions,
        metrics,
        date_ranges=date_ranges,
        dimension_filter=dimension_filter,
        metric_filter=metric_filter,
        order_bys=order_bys,
        limit=limit,
        offset=offset,
        currency_code=currency_code,
        return_property_quota=return_property_quota,
    )
    try:
        report = await client.run_report(property_id, body)
    except GA4BaseException as e:
        return create_error_response(f"Failed to run report for {property_id}", e)

    return create_success_response(report)


async def run_realtime_report(
    property_id: Union[int, str],
    dimensions: List[str],
    metrics: List[str],
    dimension_filter: Optional[Dict[str, Any]] = None,
    metric_filter: Optional[Dict[str, Any]] = None,
    order_bys: Optional[List[Dict[str, Any]]] = None,
    limit: Optional[int] = None,
    return_property_quota: Optional[bool] = None,
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """Run a realtime report covering the last 30 minutes."""
    client = client or GA4Client()
    body = build_report_body(
        dimensions,
        metrics,
        dimension_filter=dimension_filter,
        metric_filter=metric_filter,
        order_bys=order_bys,
        limit=limit,
        return_property_quota=return_property_quota,
    )
    try:
        report = await client.run_realtime_report(property_id, body)
    except GA4BaseException as e:
        return create_error_response(f"Failed to run realtime report for {property_id}", e)

    return create_success_response(report)


async def get_custom_dimensions_and_metrics(
    property_id: Union[int, str],
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """Return the custom dimensions and metrics defined on a property."""
    client = client or GA4Client()
    try:
        property_name = construct_property_resource_name(property_id)
        metadata = await client.get_metadata(property_name)
    except GA4BaseException as e:
        return create_error_response(
            f"Failed to get custom dimensions and metrics for {property_id}", e
        )

    custom_dimensions = [d for d in metadata.get("dimensions") or [] if d.get("custom_definition")]
    custom_metrics = [m for m in metadata.get("metrics") or [] if m.get("custom_definition")]

    return create_success_response({
        "propertyId": property_name,
        "customDimensions": custom_dimensions,
        "customMetrics": custom_metrics,
        "customDimensionsCount": len(custom_dimensions),
        "customMetricsCount": len(custom_metrics),
    })
