"""Structured tool responses returned by every MCP tool handler."""

import json
from typing import Any, Optional

from pydantic import BaseModel


class ToolResponse(BaseModel):
    """Text content plus an error flag, mirroring an MCP tool result."""

    text: str
    is_error: bool = False


def create_success_response(data: Any) -> ToolResponse:
    """Serialize a payload as pretty-printed JSON."""
    if isinstance(data, BaseModel):
        text = data.model_dump_json(by_alias=True, indent=2)
    else:
        text = json.dumps(data, indent=2, default=str)
    return ToolResponse(text=text)


def create_error_response(message: str, error: Optional[BaseException] = None) -> ToolResponse:
    """
    Build an error response.

    Args:
        message: What the tool was doing
        error: Underlying failure, appended as ": <error>"
    """
    if error is not None:
        message = f"{message}: {error}"
    return ToolResponse(text=message, is_error=True)
