"""
User-visible notifications.

Validation refusals, sync warnings and auth messages are surfaced to the
front end as Notifications instead of exceptions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    level: NotificationLevel
    message: str = Field(..., min_length=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class OperationResult(BaseModel):
    """
    Outcome of a controller operation.

    Refused operations have success=False and a message for the user;
    they never partially mutate the document.
    """

    success: bool
    message: str = ""
    entity_id: Optional[str] = None
    data: Optional[str] = Field(
        default=None,
        description="Operation output, e.g. the exported JSON text"
    )

    @classmethod
    def ok(
        cls,
        message: str = "",
        entity_id: Optional[str] = None,
        data: Optional[str] = None,
    ) -> "OperationResult":
        return cls(success=True, message=message, entity_id=entity_id, data=data)

    @classmethod
    def refused(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)
