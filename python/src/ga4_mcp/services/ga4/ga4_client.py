"""
Google Analytics 4 Admin and Data API client.

Thin async wrapper over the Admin (v1beta/v1alpha) and Data (v1beta) APIs:
- Clients come from the process-wide GA4ClientCache
- Every call carries a bounded timeout
- Google API errors are translated into the GA4 exception hierarchy
- Responses are returned as plain dictionaries

Example:
    >>> client = GA4Client()
    >>> metadata = await client.get_metadata("123456789")
    >>> report = await client.run_report("123456789", {
    ...     "dateRanges": [{"startDate": "7daysAgo", "endDate": "yesterday"}],
    ...     "dimensions": [{"name": "eventName"}],
    ...     "metrics": [{"name": "eventCount"}],
    ... })
    >>> print(report.get("row_count"))
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Union

from google.analytics import admin_v1alpha, admin_v1beta, data_v1beta
from google.api_core import exceptions as core_exceptions
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.protobuf.json_format import ParseError

from ...core.config import settings
from .client_cache import GA4ClientCache, get_client_cache
from .exceptions import (
    GA4BaseException,
    GA4APIError,
    GA4AuthenticationError,
    GA4InvalidPropertyError,
    GA4QuotaExceededError,
    GA4RateLimitError,
    GA4TimeoutError,
)
from .helpers import construct_property_resource_name, proto_to_dict

logger = logging.getLogger(__name__)

PropertyId = Union[int, str]

ACCOUNT_SUMMARIES_PAGE_SIZE = 200


class GA4Client:
    """
    GA4 API capability interface used by the tools and the validation engine.

    Provides getMetadata, runReport, runRealtimeReport and the paginated
    admin listings. Any object exposing the same coroutines can stand in
    for it.
    """

    def __init__(
        self,
        client_cache: Optional[GA4ClientCache] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize GA4 client.

        Args:
            client_cache: Source of authenticated API clients (defaults to the global cache)
            timeout: Per-call timeout in seconds
        """
        self.client_cache = client_cache or get_client_cache()
        self.timeout = timeout or settings.GA4_API_TIMEOUT_SECONDS

    @contextmanager
    def _translate_errors(self, description: str) -> Iterator[None]:
        """Map Google API failures onto GA4 exceptions."""
        try:
            yield
        except GA4BaseException:
            raise
        except RefreshError as e:
            logger.error(f"OAuth token refresh failed during {description}: {e}")
            raise GA4AuthenticationError(f"OAuth token refresh failed: {e}") from e
        except GoogleAuthError as e:
            logger.error(f"Google auth error during {description}: {e}")
            raise GA4AuthenticationError(f"Google authentication failed: {e}") from e
        except (core_exceptions.DeadlineExceeded, core_exceptions.RetryError, asyncio.TimeoutError) as e:
            logger.warning(f"GA4 API timeout during {description}: {e}")
            raise GA4TimeoutError(f"{description} timed out after {self.timeout}s") from e
        except core_exceptions.ResourceExhausted as e:
            if "quota" in str(e).lower():
                logger.error(f"GA4 quota exceeded during {description}: {e}")
                raise GA4QuotaExceededError(str(e)) from e
            logger.warning(f"GA4 rate limit exceeded during {description}: {e}")
            raise GA4RateLimitError(str(e)) from e
        except (core_exceptions.Unauthenticated, core_exceptions.PermissionDenied) as e:
            logger.error(f"GA4 authentication error during {description}: {e}")
            raise GA4AuthenticationError(str(e)) from e
        except core_exceptions.NotFound as e:
            logger.error(f"GA4 resource not found during {description}: {e}")
            raise GA4InvalidPropertyError(str(e)) from e
        except core_exceptions.GoogleAPICallError as e:
            logger.error(f"GA4 API error during {description}: {e}")
            raise GA4APIError(f"GA4 API error: {e}", status_code=e.code) from e
        except ParseError as e:
            raise GA4APIError(f"Invalid request for {description}: {e}", status_code=400) from e

    # ------------------------------------------------------------------
    # Data API
    # ------------------------------------------------------------------

    async def get_metadata(self, property_id: PropertyId) -> Dict[str, Any]:
        """
        Fetch dimension and metric metadata for a property.

        Args:
            property_id: Property ID in any accepted format

        Returns:
            Metadata with "dimensions" and "metrics" lists
        """
        name = f"{construct_property_resource_name(property_id)}/metadata"
        client = await self.client_cache.get_data_client()
        with self._translate_errors(f"getMetadata({name})"):
            response = await client.get_metadata(
                request=data_v1beta.GetMetadataRequest(name=name),
                timeout=self.timeout,
            )
        return proto_to_dict(response)

    async def run_report(self, property_id: PropertyId, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a Data API report.

        Args:
            property_id: Property ID in any accepted format
            body: Report request in GA4 JSON form (dateRanges, dimensions, metrics,
                dimensionFilter, metricFilter, orderBys, limit, offset, ...)

        Returns:
            Parsed report response
        """
        property_name = construct_property_resource_name(property_id)
        client = await self.client_cache.get_data_client()
        with self._translate_errors(f"runReport({property_name})"):
            request = data_v1beta.RunReportRequest.from_json(
                json.dumps({**body, "property": property_name})
            )
            response = await client.run_report(request=request, timeout=self.timeout)
        return proto_to_dict(response)

    async def run_realtime_report(self, property_id: PropertyId, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a Data API realtime report (last 30 minutes).

        Args:
            property_id: Property ID in any accepted format
            body: Realtime request in GA4 JSON form

        Returns:
            Parsed realtime report response
        """
        property_name = construct_property_resource_name(property_id)
        client = await self.client_cache.get_data_client()
        with self._translate_errors(f"runRealtimeReport({property_name})"):
            request = data_v1beta.RunRealtimeReportRequest.from_json(
                json.dumps({**body, "property": property_name})
            )
            response = await client.run_realtime_report(request=request, timeout=self.timeout)
        return proto_to_dict(response)

    # ------------------------------------------------------------------
    # Admin API
    # ------------------------------------------------------------------

    async def list_account_summaries(self) -> List[Dict[str, Any]]:
        """Return every account summary visible to the credential (all pages)."""
        client = await self.client_cache.get_admin_client()
        with self._translate_errors("listAccountSummaries"):
            pager = await client.list_account_summaries(
                request=admin_v1beta.ListAccountSummariesRequest(page_size=ACCOUNT_SUMMARIES_PAGE_SIZE),
                timeout=self.timeout,
            )
            return [proto_to_dict(summary) async for summary in pager]

    async def get_property(self, property_id: PropertyId) -> Dict[str, Any]:
        """Return the property resource."""
        name = construct_property_resource_name(property_id)
        client = await self.client_cache.get_admin_client()
        with self._translate_errors(f"getProperty({name})"):
            response = await client.get_property(
                request=admin_v1beta.GetPropertyRequest(name=name),
                timeout=self.timeout,
            )
        return proto_to_dict(response)

    async def list_google_ads_links(self, property_id: PropertyId) -> List[Dict[str, Any]]:
        """Return every Google Ads link of a property (all pages)."""
        parent = construct_property_resource_name(property_id)
        client = await self.client_cache.get_admin_client()
        with self._translate_errors(f"listGoogleAdsLinks({parent})"):
            pager = await client.list_google_ads_links(
                request=admin_v1beta.ListGoogleAdsLinksRequest(parent=parent),
                timeout=self.timeout,
            )
            return [proto_to_dict(link) async for link in pager]

    async def list_property_annotations(self, property_id: PropertyId) -> List[Dict[str, Any]]:
        """Return reporting data annotations of a property (Admin API v1alpha)."""
        parent = construct_property_resource_name(property_id)
        client = await self.client_cache.get_admin_alpha_client()
        with self._translate_errors(f"listReportingDataAnnotations({parent})"):
            pager = await client.list_reporting_data_annotations(
                request=admin_v1alpha.ListReportingDataAnnotationsRequest(parent=parent),
                timeout=self.timeout,
            )
            return [proto_to_dict(annotation) async for annotation in pager]
