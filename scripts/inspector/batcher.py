"""
Durable, threshold-triggered batching of queued events.

The Batcher owns the persisted event queue. Every append is followed by
a threshold check; when the queue is large enough or the flush interval
has elapsed, the whole queue is sent as one batch. On success exactly
the sent records are removed (records appended meanwhile stay queued);
on failure nothing is removed and the next threshold check retries.

Delivery completes on another thread, so queue mutations are serialized
with the store's update lock, shared by every batcher on that store.
At most one batch per batcher is in flight at a time.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Set

from schema_parser import SchemaEntry

from .config import BatchConfig
from .delivery import DeliveryClient
from .events import EventSchema, QueuedEvent, SessionStarted, event_from_dict, timestamp_to_iso
from .output import verbose, warn
from .storage import PersistentStore


class Batcher:
    """
    Queue owner and flush scheduler.

    State machine: idle -> (threshold met) -> flushing -> (result) -> idle.
    """

    CACHE_KEY = "InspectorEvents"
    FLUSH_KEY = "InspectorBatchFlushAt"

    def __init__(
        self,
        store: PersistentStore,
        delivery_client: DeliveryClient,
        config: Optional[BatchConfig] = None,
        clock: Callable[[], float] = time.time,
        hydration_timeout: Optional[float] = 2.0,
        should_log: bool = False
    ):
        """
        Initialize batcher and retry any queue left by a previous process.

        Args:
            store: Persistent store holding the queue
            delivery_client: Builds bodies and sends batches
            config: Batch thresholds (defaults if omitted)
            clock: Returns the current time in epoch seconds
            hydration_timeout: Seconds to wait for the store to hydrate
            should_log: Print verbose diagnostics
        """
        self.store = store
        self.delivery_client = delivery_client
        self.config = config or BatchConfig()
        self.clock = clock
        self.hydration_timeout = hydration_timeout
        self.should_log = should_log

        self._lock = store.update_lock
        self._in_flight = False

        self._await_hydration()

        with self._lock:
            if self.config.last_flush_at is None:
                persisted = self.store.get(self.FLUSH_KEY)
                if isinstance(persisted, (int, float)) and not isinstance(persisted, bool):
                    self.config.last_flush_at = float(persisted)
                else:
                    self.config.last_flush_at = self.clock()
                    self.store.set(self.FLUSH_KEY, self.config.last_flush_at)

            restored = self._read_queue()
            if restored:
                verbose(self.should_log, f"Restored {len(restored)} queued events")
            self.check_if_batch_needs_to_be_sent()

    @property
    def in_flight(self) -> bool:
        """True while a batch's delivery result is pending."""
        return self._in_flight

    def pending_events(self) -> List[QueuedEvent]:
        """Snapshot of the queue, oldest first."""
        with self._lock:
            return [event_from_dict(data) for data in self._read_queue()]

    def handle_session_started(self, session_id: str):
        """
        Queue a session start marker.

        Args:
            session_id: Id of the new session
        """
        event = SessionStarted(
            session_id=session_id,
            created_at=timestamp_to_iso(self.clock()),
        )
        verbose(self.should_log, f"Queued session start for {session_id}")
        self._enqueue(event)

    def handle_track_schema(
        self,
        event_name: str,
        schema: List[SchemaEntry],
        session_id: Optional[str] = None
    ):
        """
        Queue an event schema.

        Args:
            event_name: Name of the tracked event
            schema: Extracted schema
            session_id: Session the event belongs to
        """
        event = EventSchema(
            event_name=event_name,
            schema=list(schema),
            created_at=timestamp_to_iso(self.clock()),
            session_id=session_id,
        )
        self._enqueue(event)

    def check_if_batch_needs_to_be_sent(self) -> bool:
        """
        Send the whole queue if a threshold is met.

        Thresholds: queue length >= batch size, or at least the flush
        interval elapsed since the last flush.

        Returns:
            True if a batch was handed to the delivery client
        """
        with self._lock:
            if self._in_flight:
                return False

            queue = self._read_queue()
            if not queue:
                return False

            now = self.clock()
            send_by_size = len(queue) >= self.config.batch_size_threshold
            send_by_time = (
                now - self.config.last_flush_at >= self.config.batch_flush_interval_seconds
            )

            if not (send_by_size or send_by_time):
                return False

            self._send(queue, now)
            return True

    def flush(self) -> bool:
        """
        Send the whole queue now, ignoring thresholds.

        Returns:
            True if a batch was handed to the delivery client
        """
        with self._lock:
            if self._in_flight:
                return False

            queue = self._read_queue()
            if not queue:
                return False

            self._send(queue, self.clock())
            return True

    def _await_hydration(self):
        if not self.store.wait_until_ready(self.hydration_timeout):
            warn("Storage not hydrated in time; continuing with an empty queue")

    def _enqueue(self, event: QueuedEvent):
        self._await_hydration()

        with self._lock:
            queue = self._read_queue()
            queue.append(event.to_dict())

            # Drop the oldest records beyond capacity
            overflow = len(queue) - self.config.max_queue_size
            if overflow > 0:
                del queue[:overflow]

            self.store.set(self.CACHE_KEY, queue)
            self.check_if_batch_needs_to_be_sent()

    def _read_queue(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.CACHE_KEY)
        if not isinstance(raw, list):
            return []

        queue = []
        for data in raw:
            try:
                event_from_dict(data)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                warn(f"Dropping malformed queued event: {e}")
                continue
            queue.append(data)
        return queue

    def _send(self, queue: List[Dict[str, Any]], now: float):
        bodies = [self.delivery_client.body_for(event_from_dict(data)) for data in queue]
        sent_ids = {data["messageId"] for data in queue}

        self.config.last_flush_at = now
        self.store.set(self.FLUSH_KEY, now)
        self._in_flight = True

        verbose(self.should_log, f"Sending batch of {len(bodies)} events")

        try:
            self.delivery_client.send_batch(
                bodies,
                lambda error: self._on_delivery_result(sent_ids, error)
            )
        except Exception:
            self._in_flight = False
            raise

    def _on_delivery_result(self, sent_ids: Set[str], error: Optional[Exception]):
        with self._lock:
            self._in_flight = False

            if error is not None:
                warn(f"Failed to deliver batch of {len(sent_ids)} events: {error}")
                return

            queue = self._read_queue()
            remaining = [data for data in queue if data["messageId"] not in sent_ids]
            self.store.set(self.CACHE_KEY, remaining)

            verbose(
                self.should_log,
                f"Delivered batch of {len(sent_ids)} events, {len(remaining)} still queued"
            )
