"""
GTM container export parsing.

Extracts (event name, parameter names) pairs from the GA4 Event tags
(type "gaawe") of a Google Tag Manager container export.

GA4 Event tags store parameters in three encodings, all of which are read:
1. eventParameters (legacy): list[].map[key="name"]
2. eventSettingsTable (current): list[].map[key="parameter"]
3. userProperties: list[].map[key="name"]
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from ...models.validation import GTMEventConfig

logger = logging.getLogger(__name__)

GA4_EVENT_TAG_TYPE = "gaawe"

# (list parameter key, key of the name entry inside each map)
PARAMETER_ENCODINGS = (
    ("eventParameters", "name"),
    ("eventSettingsTable", "parameter"),
    ("userProperties", "name"),
)

# e.g. "GA4 - Basic Event - Add To Cart" -> "Add To Cart"
TAG_NAME_PATTERN = re.compile(r"GA4\s*-\s*(?:Basic Event|Ecommerce)\s*-\s*(.+)", re.IGNORECASE)


def is_variable_reference(value: str) -> bool:
    """True for GTM variable references such as '{{Event Name}}'."""
    return value.startswith("{{") and value.endswith("}}")


def _find_parameter(parameters: List[Any], key: str) -> Optional[Dict[str, Any]]:
    for param in parameters:
        if isinstance(param, Mapping) and param.get("key") == key:
            return param
    return None


def _map_value(entry: Any, key: str) -> Optional[str]:
    if not isinstance(entry, Mapping):
        return None
    for item in entry.get("map") or []:
        if isinstance(item, Mapping) and item.get("key") == key:
            value = item.get("value")
            return value if isinstance(value, str) else None
    return None


def event_name_from_tag_name(tag_name: str) -> Optional[str]:
    """Recover an event name from the 'GA4 - <Basic Event|Ecommerce> - <Name>' convention."""
    match = TAG_NAME_PATTERN.search(tag_name)
    if not match:
        return None
    return re.sub(r"\s+", "_", match.group(1).strip().lower())


def _resolve_event_name(tag: Mapping[str, Any], parameters: List[Any]) -> str:
    event_param = _find_parameter(parameters, "eventName")
    value = event_param.get("value") if event_param else None
    event_name = value if isinstance(value, str) else ""

    if is_variable_reference(event_name):
        tag_name = tag.get("name") if isinstance(tag.get("name"), str) else ""
        recovered = event_name_from_tag_name(tag_name)
        if recovered is None:
            logger.warning(
                f"Skipping GTM tag {tag.get('tagId', '?')} ({tag_name!r}): "
                f"event name {event_name} is a variable and the tag name does not follow "
                "the 'GA4 - Basic Event|Ecommerce - <Name>' convention"
            )
            return ""
        return recovered
    return event_name


def _collect_parameter_names(parameters: List[Any]) -> List[str]:
    names: List[str] = []
    for list_key, name_key in PARAMETER_ENCODINGS:
        config = _find_parameter(parameters, list_key)
        if not config:
            continue
        for entry in config.get("list") or []:
            name = _map_value(entry, name_key)
            if name and not name.startswith("{{"):
                names.append(name)
    return list(dict.fromkeys(names))


def parse_gtm_export(gtm_export: Mapping[str, Any]) -> List[GTMEventConfig]:
    """
    Extract GA4 event configurations from a GTM container export.

    Args:
        gtm_export: Export JSON, either the full export (with "containerVersion")
            or the container version object itself

    Returns:
        One GTMEventConfig per GA4 Event tag with a resolvable name and at
        least one static parameter; empty if the export has no such tags
    """
    if not isinstance(gtm_export, Mapping):
        return []

    container = gtm_export.get("containerVersion", gtm_export)
    if not isinstance(container, Mapping):
        return []

    tags = container.get("tag") or []
    if not isinstance(tags, list):
        return []

    events: List[GTMEventConfig] = []
    for tag in tags:
        if not isinstance(tag, Mapping) or tag.get("type") != GA4_EVENT_TAG_TYPE:
            continue

        parameters = tag.get("parameter") or []
        if not isinstance(parameters, list):
            continue

        event_name = _resolve_event_name(tag, parameters)
        parameter_names = _collect_parameter_names(parameters)

        if event_name and parameter_names:
            events.append(GTMEventConfig(event_name=event_name, parameters=parameter_names))

    logger.info(f"Parsed {len(events)} GA4 event tags from GTM export")
    return events
