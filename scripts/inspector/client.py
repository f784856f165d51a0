"""
Public entry point for schema tracking.

Validates configuration eagerly, wires storage, batching, sessions and
delivery together, and exposes the tracking calls. Apart from
construction, nothing here raises: telemetry failures are printed and
swallowed so they never affect the host application.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from schema_parser import SchemaEntry, SchemaParser, schema_from_dicts

from .batcher import Batcher
from .config import LIB_VERSION, InspectorConfig, InspectorEnv
from .delivery import DeliveryClient, DeliveryContext
from .output import verbose, warn
from .session import SessionTracker
from .storage import MemoryStore, PersistentStore, get_file_store


class InspectorConfigurationError(ValueError):
    """Raised at construction when required settings are missing or invalid."""


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class Inspector:
    """
    Infers event schemas and relays them to the collection endpoint.

    Example:
        >>> inspector = Inspector(api_key="key", env="prod", version="1.4.2")
        >>> inspector.track_schema_from_event("Checkout", {"items": [{"sku": "a"}]})
    """

    def __init__(
        self,
        api_key: str,
        env: Union[InspectorEnv, str, None] = None,
        version: Optional[str] = None,
        app_name: str = "",
        *,
        config: Optional[InspectorConfig] = None,
        store: Optional[PersistentStore] = None,
        delivery_client: Optional[DeliveryClient] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize inspector and start (or prolong) the session.

        Args:
            api_key: Project API key (required)
            env: "prod", "dev" or "staging" (defaults to dev)
            version: Host application version (required)
            app_name: Host application name
            config: Configuration (loaded from file/env if omitted)
            store: Persistent store (shared file store under storage.dir if omitted,
                memory store if that directory is unusable)
            delivery_client: Delivery client (HTTP client if omitted)
            clock: Returns the current time in epoch seconds

        Raises:
            InspectorConfigurationError: If api_key or version is missing,
                or env is not a known environment
        """
        try:
            environment = InspectorEnv.parse(env)
        except ValueError:
            raise InspectorConfigurationError(
                f"Unknown environment {env!r}. Use one of: "
                + ", ".join(e.value for e in InspectorEnv)
            ) from None
        if environment is None:
            warn("No environment provided. Defaulting to dev.")
            environment = InspectorEnv.DEV
        self.environment = environment

        if _is_blank(api_key):
            raise InspectorConfigurationError(
                "No API key provided. Inspector can't operate without API key."
            )
        self.api_key = api_key

        if _is_blank(version):
            raise InspectorConfigurationError(
                "No version provided. Please provide a comparable version string, "
                "i.e. integer or semantic."
            )
        self.version = version

        self.config = config or InspectorConfig()
        self.clock = clock
        self.batch_config = self.config.batch_config(self.environment)
        self._should_log = self.config.logging_enabled(self.environment)

        hydration_timeout = self.config.get("storage.hydration_timeout_seconds", 2.0)

        if store is None:
            try:
                store = get_file_store(self.config.get("storage.dir"))
            except OSError as e:
                warn(f"Storage unavailable, queue will not survive restarts: {e}")
                store = MemoryStore()
        self.store = store
        self.delivery_client = delivery_client or DeliveryClient(
            DeliveryContext(
                api_key=self.api_key,
                app_name=app_name or "",
                app_version=self.version,
                lib_version=LIB_VERSION,
                environment=self.environment.value,
            ),
            endpoint=self.config.get("delivery.endpoint"),
            timeout=self.config.get("delivery.timeout_sec", 10.0),
        )

        self.schema_parser = SchemaParser(max_depth=int(self.config.get("schema.max_depth", 32)))
        self.batcher = Batcher(
            self.store,
            self.delivery_client,
            config=self.batch_config,
            clock=self.clock,
            hydration_timeout=hydration_timeout,
            should_log=self._should_log,
        )
        self.session_tracker = SessionTracker(
            self.batcher,
            self.store,
            inactivity_threshold=self.config.get("session.inactivity_threshold_sec", 300.0),
            hydration_timeout=hydration_timeout,
        )

        try:
            self.session_tracker.start_or_prolong_session(self.clock())
        except Exception as e:
            warn(f"Inspector failed to start session: {e}")

    @property
    def should_log(self) -> bool:
        """Whether verbose diagnostics are printed."""
        return self._should_log

    def enable_logging(self, enable: bool):
        """
        Toggle verbose diagnostics for this inspector.

        Args:
            enable: True to print diagnostics to stderr
        """
        self._should_log = bool(enable)
        self.batcher.should_log = self._should_log

    def set_batch_size(self, batch_size: int):
        """
        Change the queue length that triggers a flush.

        Args:
            batch_size: New threshold (at least 1)
        """
        if batch_size < 1:
            raise InspectorConfigurationError("Batch size must be at least 1")
        self.batch_config.batch_size_threshold = batch_size

    def set_batch_flush_seconds(self, seconds: float):
        """
        Change the elapsed time that triggers a flush.

        Args:
            seconds: New interval (not negative)
        """
        if seconds < 0:
            raise InspectorConfigurationError("Batch flush interval must not be negative")
        self.batch_config.batch_flush_interval_seconds = seconds

    def track_schema_from_event(self, event_name: str, event_properties: Dict[str, Any]):
        """
        Extract the schema of an event and queue it.

        Args:
            event_name: Name of the event
            event_properties: Event properties (values are never sent)
        """
        try:
            if self._should_log:
                verbose(self._should_log, f"Supplied event {event_name} with params "
                                          f"{json.dumps(event_properties, default=str)}")
            schema = self.schema_parser.extract_schema(event_properties)
            self._track(event_name, schema)
        except Exception as e:
            warn(f"Inspector failed to track event '{event_name}': {e}")

    def track_schema(
        self,
        event_name: str,
        event_schema: Sequence[Union[SchemaEntry, Dict[str, Any]]]
    ):
        """
        Queue an already extracted schema.

        Args:
            event_name: Name of the event
            event_schema: SchemaEntry objects or their wire dictionaries
        """
        try:
            schema = [
                entry if isinstance(entry, SchemaEntry) else schema_from_dicts([entry])[0]
                for entry in event_schema
            ]
            self._track(event_name, schema)
        except Exception as e:
            warn(f"Inspector failed to track schema '{event_name}': {e}")

    def extract_schema(self, event_properties: Dict[str, Any]) -> List[SchemaEntry]:
        """
        Extract the schema of event properties without queueing it.

        Args:
            event_properties: Event properties

        Returns:
            Schema entries, or an empty list if extraction failed
        """
        try:
            self.session_tracker.start_or_prolong_session(self.clock())
            return self.schema_parser.extract_schema(event_properties)
        except Exception as e:
            warn(f"Inspector failed to extract schema: {e}")
            return []

    def flush(self) -> bool:
        """
        Send everything queued now, regardless of thresholds.

        Returns:
            True if a batch was handed to delivery
        """
        try:
            return self.batcher.flush()
        except Exception as e:
            warn(f"Inspector failed to flush: {e}")
            return False

    def _track(self, event_name: str, schema: List[SchemaEntry]):
        self.session_tracker.start_or_prolong_session(self.clock())
        self.batcher.handle_track_schema(
            event_name,
            schema,
            session_id=self.session_tracker.session_id,
        )
