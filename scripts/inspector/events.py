"""
Queued event records.

Defines the two kinds of records held in the durable event queue and
their persisted dictionary forms.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from schema_parser import SchemaEntry, schema_from_dicts, schema_to_dicts


SESSION_STARTED = "sessionStarted"
EVENT_SCHEMA = "event"


def timestamp_to_iso(timestamp: float) -> str:
    """Convert epoch seconds to an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _new_message_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionStarted:
    """Marker emitted when a new session begins."""
    session_id: str
    created_at: str
    message_id: str = field(default_factory=_new_message_id)

    type = SESSION_STARTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "messageId": self.message_id,
            "sessionId": self.session_id,
            "createdAt": self.created_at,
        }


@dataclass
class EventSchema:
    """Schema of one tracked event."""
    event_name: str
    schema: List[SchemaEntry]
    created_at: str
    session_id: Optional[str] = None
    message_id: str = field(default_factory=_new_message_id)

    type = EVENT_SCHEMA

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "messageId": self.message_id,
            "eventName": self.event_name,
            "eventProperties": schema_to_dicts(self.schema),
            "sessionId": self.session_id,
            "createdAt": self.created_at,
        }


QueuedEvent = Union[SessionStarted, EventSchema]


def event_from_dict(data: Dict[str, Any]) -> QueuedEvent:
    """
    Rebuild a queued event from its persisted form.

    Args:
        data: Dictionary produced by to_dict()

    Returns:
        SessionStarted or EventSchema

    Raises:
        ValueError: If the record type is unknown
        KeyError: If a required field is missing
    """
    event_type = data.get("type")

    if event_type == SESSION_STARTED:
        return SessionStarted(
            session_id=data["sessionId"],
            created_at=data["createdAt"],
            message_id=data["messageId"],
        )

    if event_type == EVENT_SCHEMA:
        return EventSchema(
            event_name=data["eventName"],
            schema=schema_from_dicts(data["eventProperties"]),
            created_at=data["createdAt"],
            session_id=data.get("sessionId"),
            message_id=data["messageId"],
        )

    raise ValueError(f"Unknown queued event type: {event_type!r}")
