"""
Common schema definitions for shared functionality across the API.

Every endpoint answers with the same envelope: a ``success`` flag, a human
readable ``message`` and the payload under ``data``. The audit interception
layer relies on the ``success`` flag to decide whether an action happened.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Standard response wrapper."""

    success: bool = Field(True, description="False when the operation did not take effect")
    message: str = Field("", description="Human readable summary")
    data: Optional[T] = None


def ok(message: str, data: Any = None, **extra: Any) -> dict:
    """Successful envelope as a plain dict (extra keys such as pagination are merged in)."""
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body
