"""
Wire bodies and HTTP delivery for queued events.

Builds the JSON bodies the collection endpoint expects and posts whole
batches on a background thread. Delivery never raises to the caller:
the outcome is reported through the on_result callback (None on
success, a DeliveryError otherwise).
"""

import json
import random
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from schema_parser import SchemaEntry, schema_to_dicts

from .config import DEFAULT_ENDPOINT
from .events import EVENT_SCHEMA, SESSION_STARTED, EventSchema, QueuedEvent, SessionStarted
from .output import warn


LIB_PLATFORM = "python"

DeliveryCallback = Callable[[Optional[Exception]], None]


@dataclass
class DeliveryContext:
    """Identity of the host application, attached to every body."""
    api_key: str
    app_name: str
    app_version: str
    lib_version: str
    environment: str


class DeliveryError(Exception):
    """A batch could not be delivered."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _base_body(
    context: DeliveryContext,
    message_id: str,
    session_id: Optional[str],
    created_at: str,
    sampling_rate: float
) -> Dict[str, Any]:
    return {
        "apiKey": context.api_key,
        "appName": context.app_name,
        "appVersion": context.app_version,
        "libVersion": context.lib_version,
        "env": context.environment,
        "libPlatform": LIB_PLATFORM,
        "messageId": message_id,
        "trackingId": "",
        "sessionId": session_id or "",
        "createdAt": created_at,
        "samplingRate": sampling_rate,
    }


def build_session_started_body(
    session_id: str,
    created_at: str,
    context: DeliveryContext,
    message_id: str = "",
    sampling_rate: float = 1.0
) -> Dict[str, Any]:
    """
    Build the body announcing a new session.

    Args:
        session_id: Id of the session that started
        created_at: ISO-8601 creation time
        context: Host application identity
        message_id: Unique id of this record
        sampling_rate: Current sampling rate

    Returns:
        JSON-serializable body
    """
    body = _base_body(context, message_id, session_id, created_at, sampling_rate)
    body["type"] = SESSION_STARTED
    return body


def build_event_schema_body(
    event_name: str,
    schema: List[SchemaEntry],
    created_at: str,
    context: DeliveryContext,
    session_id: Optional[str] = None,
    message_id: str = "",
    sampling_rate: float = 1.0
) -> Dict[str, Any]:
    """
    Build the body describing one event's schema.

    Args:
        event_name: Name of the tracked event
        schema: Extracted schema
        created_at: ISO-8601 creation time
        context: Host application identity
        session_id: Session the event belongs to
        message_id: Unique id of this record
        sampling_rate: Current sampling rate

    Returns:
        JSON-serializable body
    """
    body = _base_body(context, message_id, session_id, created_at, sampling_rate)
    body["type"] = EVENT_SCHEMA
    body["eventName"] = event_name
    body["eventProperties"] = schema_to_dicts(schema)
    return body


class DeliveryClient:
    """
    Posts batches of bodies to the collection endpoint.

    The endpoint may answer with {"samplingRate": r}; later batches are
    then dropped with probability 1 - r and reported as delivered.
    """

    def __init__(
        self,
        context: DeliveryContext,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 10.0
    ):
        """
        Initialize delivery client.

        Args:
            context: Host application identity
            endpoint: Collection endpoint URL
            timeout: Request timeout in seconds
        """
        self.context = context
        self.endpoint = endpoint
        self.timeout = timeout
        self.sampling_rate = 1.0

    def body_for(self, event: QueuedEvent) -> Dict[str, Any]:
        """
        Build the wire body for a queued event.

        Args:
            event: SessionStarted or EventSchema

        Returns:
            JSON-serializable body
        """
        if isinstance(event, SessionStarted):
            return build_session_started_body(
                event.session_id,
                event.created_at,
                self.context,
                message_id=event.message_id,
                sampling_rate=self.sampling_rate,
            )
        if isinstance(event, EventSchema):
            return build_event_schema_body(
                event.event_name,
                event.schema,
                event.created_at,
                self.context,
                session_id=event.session_id,
                message_id=event.message_id,
                sampling_rate=self.sampling_rate,
            )
        raise TypeError(f"Cannot build body for {type(event).__name__}")

    def send_batch(self, items: List[Dict[str, Any]], on_result: DeliveryCallback):
        """
        Send a batch without blocking the caller.

        Args:
            items: Wire bodies to send as one request
            on_result: Called with None on success or a DeliveryError on failure
        """
        if not items or random.random() > self.sampling_rate:
            _notify(on_result, None)
            return

        thread = threading.Thread(
            target=self._deliver,
            args=(items, on_result),
            name="inspector-delivery",
            daemon=True  # Don't block program exit
        )
        thread.start()

    def _deliver(self, items: List[Dict[str, Any]], on_result: DeliveryCallback):
        try:
            self._post(items)
        except DeliveryError as e:
            _notify(on_result, e)
        except Exception as e:
            _notify(on_result, DeliveryError(f"{type(e).__name__}: {e}"))
        else:
            _notify(on_result, None)

    def _post(self, items: List[Dict[str, Any]]):
        data = json.dumps(items, default=str).encode('utf-8')
        req = urllib.request.Request(
            self.endpoint,
            data=data,
            headers={'Content-Type': 'application/json'},
            method='POST',
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                payload = response.read()
        except urllib.error.HTTPError as e:
            raise DeliveryError(f"Endpoint returned HTTP {e.code}", status=e.code) from e

        self._update_sampling_rate(payload)

    def _update_sampling_rate(self, payload: bytes):
        if not payload:
            return
        try:
            rate = json.loads(payload).get("samplingRate")
        except (json.JSONDecodeError, AttributeError, UnicodeDecodeError):
            return
        if isinstance(rate, (int, float)) and not isinstance(rate, bool) and 0 <= rate <= 1:
            self.sampling_rate = float(rate)


def _notify(on_result: DeliveryCallback, error: Optional[Exception]):
    try:
        on_result(error)
    except Exception as e:
        warn(f"Delivery callback failed: {e}")
