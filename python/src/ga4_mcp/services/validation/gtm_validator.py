"""
GTM → GA4 parameter validation.

Checks whether the event parameters a GTM container sends are registered
as GA4 custom dimensions and actually collected.

Query plan:
    Naive:     one report per (event, parameter)      -> N x M calls
    Optimized: 1 metadata call + 1 report per distinct
               registered parameter, broken down by
               eventName                              -> 1 + R calls

Example:
    >>> validator = GTMParameterValidator(GA4Client())
    >>> summary = await validator.validate(
    ...     "123456789",
    ...     [GTMEventConfig(event_name="purchase", parameters=["value", "currency"])],
    ... )
    >>> print(summary.collected, summary.api_calls)
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union

from ...core.config import settings
from ...models.validation import (
    DateRange,
    GTMEventConfig,
    ValidationResult,
    ValidationStatus,
    ValidationSummary,
)
from ..ga4.exceptions import GA4BaseException
from ..ga4.helpers import construct_property_resource_name

logger = logging.getLogger(__name__)

CUSTOM_EVENT_PREFIX = "customEvent:"
NOT_SET = "(not set)"


class ReportingGateway(Protocol):
    """The slice of the GA4 Data API the validator needs."""

    async def get_metadata(self, property_id: Union[int, str]) -> Dict[str, Any]: ...

    async def run_report(self, property_id: Union[int, str], body: Dict[str, Any]) -> Dict[str, Any]: ...


def _field(obj: Dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    # proto_to_dict yields snake_case; REST-shaped payloads use camelCase
    if snake in obj:
        return obj[snake]
    return obj.get(camel, default)


def extract_custom_event_dimensions(metadata: Dict[str, Any]) -> Set[str]:
    """
    Build the custom dimension registry from property metadata.

    Returns:
        Parameter names exposed as "customEvent:<name>" custom definitions
    """
    registered: Set[str] = set()
    for dimension in metadata.get("dimensions") or []:
        api_name = _field(dimension, "api_name", "apiName", "") or ""
        if not _field(dimension, "custom_definition", "customDefinition", False):
            continue
        if api_name.startswith(CUSTOM_EVENT_PREFIX) and len(api_name) > len(CUSTOM_EVENT_PREFIX):
            registered.add(api_name[len(CUSTOM_EVENT_PREFIX):])
    return registered


def _parse_count(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def aggregate_event_counts(report: Dict[str, Any]) -> Dict[str, int]:
    """
    Sum eventCount per event name for rows where the parameter has a value.

    Rows whose parameter value is empty or "(not set)", or whose count is
    not positive, are ignored.
    """
    counts: Dict[str, int] = defaultdict(int)
    for row in report.get("rows") or []:
        dimension_values = _field(row, "dimension_values", "dimensionValues", []) or []
        metric_values = _field(row, "metric_values", "metricValues", []) or []

        event_name = dimension_values[0].get("value", "") if len(dimension_values) > 0 else ""
        param_value = dimension_values[1].get("value", "") if len(dimension_values) > 1 else ""
        count = _parse_count(metric_values[0].get("value")) if metric_values else 0

        if param_value and param_value != NOT_SET and count > 0:
            counts[event_name] += count
    return dict(counts)


class GTMParameterValidator:
    """
    Validates GTM event parameters against GA4 custom dimensions and data.

    Features:
    - One metadata call per run (custom dimensions can change between runs)
    - One report per distinct registered parameter, regardless of event count
    - Per-parameter query failures are logged and do not abort the batch
    - Recommendations for unregistered and uncollected parameters
    """

    def __init__(
        self,
        gateway: ReportingGateway,
        row_limit: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            gateway: GA4 Data API access (GA4Client or compatible)
            row_limit: Row limit for each per-parameter report
            max_concurrency: Per-parameter reports allowed in flight at once
        """
        self.gateway = gateway
        self.row_limit = row_limit or settings.GA4_VALIDATION_ROW_LIMIT
        self.max_concurrency = max_concurrency or settings.GA4_VALIDATION_MAX_CONCURRENCY

    def _build_parameter_query(self, parameter: str, date_range: DateRange) -> Dict[str, Any]:
        return {
            "dateRanges": [{"startDate": date_range.start_date, "endDate": date_range.end_date}],
            "dimensions": [
                {"name": "eventName"},
                {"name": f"{CUSTOM_EVENT_PREFIX}{parameter}"},
            ],
            "metrics": [{"name": "eventCount"}],
            "limit": self.row_limit,
        }

    async def _query_parameters(
        self,
        property_name: str,
        parameters: Sequence[str],
        date_range: DateRange,
    ) -> Tuple[Dict[str, Dict[str, int]], List[str]]:
        """
        Run one report per registered parameter.

        Returns:
            (counts[param][eventName], parameters whose query failed)
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def query(parameter: str) -> Tuple[str, Optional[Dict[str, int]]]:
            async with semaphore:
                try:
                    report = await self.gateway.run_report(
                        property_name, self._build_parameter_query(parameter, date_range)
                    )
                except GA4BaseException as e:
                    logger.error(f"Error querying parameter {parameter}: {e}")
                    return parameter, None
            return parameter, aggregate_event_counts(report)

        results = await asyncio.gather(*(query(p) for p in parameters))

        counts: Dict[str, Dict[str, int]] = {}
        failed: List[str] = []
        for parameter, event_counts in results:
            if event_counts is None:
                failed.append(parameter)
            else:
                counts[parameter] = event_counts
        return counts, failed

    async def validate(
        self,
        property_id: Union[int, str],
        events: Sequence[GTMEventConfig],
        date_range: Optional[DateRange] = None,
    ) -> ValidationSummary:
        """
        Validate GTM events against a GA4 property.

        Args:
            property_id: GA4 property ID in any accepted format
            events: Event/parameter configurations from GTM
            date_range: Report date range (default: 7daysAgo → yesterday)

        Returns:
            Summary with per-pair verdicts, totals and recommendations

        Raises:
            InvalidPropertyIdError: If the property ID is malformed
            GA4BaseException: If credentials or the metadata call fail
        """
        date_range = date_range or DateRange()
        property_name = construct_property_resource_name(property_id)

        # Step 1: custom dimension registry (exactly one call)
        logger.info("Fetching custom dimensions metadata...")
        metadata = await self.gateway.get_metadata(property_name)
        api_calls = 1
        registered_dimensions = extract_custom_event_dimensions(metadata)
        logger.info(f"Found {len(registered_dimensions)} registered custom dimensions")

        # Step 2: distinct parameters across the batch
        all_parameters = list(dict.fromkeys(p for event in events for p in event.parameters))
        registered_params = [p for p in all_parameters if p in registered_dimensions]
        not_registered_params = [p for p in all_parameters if p not in registered_dimensions]

        # Step 3: one report per registered parameter
        logger.info(
            f"Querying {len(registered_params)} parameters "
            f"(optimized: {len(registered_params)} API calls instead of "
            f"{len(events) * len(registered_params)})..."
        )
        parameter_data, failed_params = await self._query_parameters(
            property_name, registered_params, date_range
        )
        api_calls += len(parameter_data)

        # Step 4: classify every (event, parameter) pair
        summary = ValidationSummary(
            total_events=len(events),
            total_parameters=len(all_parameters),
            api_calls=api_calls,
            failed_parameters=failed_params,
        )
        for event in events:
            for param in event.parameters:
                result = self._classify(event.event_name, param, registered_dimensions, parameter_data)
                summary.details.append(result)
                if result.status == ValidationStatus.COLLECTED:
                    summary.collected += 1
                elif result.status == ValidationStatus.NOT_COLLECTED:
                    summary.not_collected += 1
                else:
                    summary.not_registered += 1

        # Step 5: recommendations
        summary.recommendations = self._build_recommendations(not_registered_params, summary.details)

        logger.info(
            f"GTM validation complete: {summary.collected} collected, "
            f"{summary.not_collected} not collected, {summary.not_registered} not registered "
            f"({summary.api_calls} API calls)"
        )
        return summary

    @staticmethod
    def _classify(
        event_name: str,
        param: str,
        registered_dimensions: Set[str],
        parameter_data: Dict[str, Dict[str, int]],
    ) -> ValidationResult:
        if param not in registered_dimensions:
            return ValidationResult(
                event_name=event_name,
                parameter=param,
                status=ValidationStatus.NOT_REGISTERED,
                message=f"Parameter '{param}' is not registered as a GA4 custom dimension",
            )

        count = parameter_data.get(param, {}).get(event_name, 0)
        if count > 0:
            return ValidationResult(
                event_name=event_name,
                parameter=param,
                status=ValidationStatus.COLLECTED,
                count=count,
                message=f"Collected ({count:,} events)",
            )
        return ValidationResult(
            event_name=event_name,
            parameter=param,
            status=ValidationStatus.NOT_COLLECTED,
            count=0,
            message="Registered as a custom dimension, but no data collected",
        )

    @staticmethod
    def _build_recommendations(
        not_registered_params: List[str],
        details: List[ValidationResult],
    ) -> List[str]:
        recommendations: List[str] = []

        if not_registered_params:
            recommendations.append(
                "Register these parameters as custom dimensions in GA4 Admin: "
                f"{', '.join(not_registered_params)}"
            )

        not_collected_by_event: Dict[str, List[str]] = {}
        for result in details:
            if result.status == ValidationStatus.NOT_COLLECTED:
                params = not_collected_by_event.setdefault(result.event_name, [])
                if result.parameter not in params:
                    params.append(result.parameter)

        for event_name, params in not_collected_by_event.items():
            recommendations.append(
                f"Event '{event_name}' is not collecting these parameters: {', '.join(params)}"
            )

        return recommendations
