"""Admin API tools: accounts, properties, Google Ads links and annotations."""

import logging
from typing import Optional, Union

from ..services.ga4.exceptions import GA4BaseException
from ..services.ga4.ga4_client import GA4Client
from ..services.ga4.helpers import construct_property_resource_name
from .responses import ToolResponse, create_error_response, create_success_response

logger = logging.getLogger(__name__)


async def get_account_summaries(client: Optional[GA4Client] = None) -> ToolResponse:
    """Retrieve every GA4 account and property the credential can see."""
    client = client or GA4Client()
    try:
        summaries = await client.list_account_summaries()
    except GA4BaseException as e:
        return create_error_response("Failed to get account summaries", e)

    return create_success_response({
        "accountSummaries": summaries,
        "totalCount": len(summaries),
    })


async def get_property_details(
    property_id: Union[int, str],
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """Return details about a specific GA4 property."""
    client = client or GA4Client()
    try:
        prop = await client.get_property(property_id)
    except GA4BaseException as e:
        return create_error_response(f"Failed to get property details for {property_id}", e)

    return create_success_response(prop)


async def list_google_ads_links(
    property_id: Union[int, str],
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """Return the Google Ads links of a property."""
    client = client or GA4Client()
    try:
        links = await client.list_google_ads_links(property_id)
    except GA4BaseException as e:
        return create_error_response(f"Failed to list Google Ads links for {property_id}", e)

    return create_success_response({
        "googleAdsLinks": links,
        "totalCount": len(links),
    })


async def list_property_annotations(
    property_id: Union[int, str],
    client: Optional[GA4Client] = None,
) -> ToolResponse:
    """Return the reporting data annotations of a property."""
    client = client or GA4Client()
    try:
        property_name = construct_property_resource_name(property_id)
        annotations = await client.list_property_annotations(property_name)
    except GA4BaseException as e:
        return create_error_response(f"Failed to list property annotations for {property_id}", e)

    return create_success_response({
        "propertyId": property_name,
        "annotations": annotations,
        "totalCount": len(annotations),
    })
