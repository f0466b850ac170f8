"""Common helpers for GA4 resource names and API payloads."""

import re
from typing import Any, Dict, Union

import proto

from .exceptions import InvalidPropertyIdError

_DIGITS = re.compile(r"^\d+$")


def construct_property_resource_name(property_value: Union[int, str]) -> str:
    """
    Return a property resource name in the format required by GA4 APIs.

    Accepts 123456789, "123456789" or "properties/123456789".

    Raises:
        InvalidPropertyIdError: For any other value
    """
    property_num = None
    if isinstance(property_value, int) and not isinstance(property_value, bool):
        if property_value >= 0:
            property_num = property_value
    elif isinstance(property_value, str):
        trimmed = property_value.strip()
        if _DIGITS.match(trimmed):
            property_num = int(trimmed)
        elif trimmed.startswith("properties/"):
            numeric_part = trimmed[len("properties/"):]
            if _DIGITS.match(numeric_part):
                property_num = int(numeric_part)

    if property_num is None:
        raise InvalidPropertyIdError(
            f"Invalid property ID: {property_value}. "
            "A valid property value is either a number or a string starting "
            "with 'properties/' and followed by a number."
        )

    return f"properties/{property_num}"


def proto_to_dict(obj: proto.Message) -> Dict[str, Any]:
    """Convert a proto-plus message to a plain dictionary."""
    return type(obj).to_dict(obj, use_integers_for_enums=False, preserving_proto_field_name=True)
