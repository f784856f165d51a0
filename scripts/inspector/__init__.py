"""
Schema inspector runtime.

Tracks inferred event schemas and session starts in a durable queue and
relays them in batches to a collection endpoint.
"""

from .config import (
    LIB_VERSION,
    BatchConfig,
    InspectorConfig,
    InspectorEnv
)

from .events import (
    SessionStarted,
    EventSchema,
    event_from_dict
)

from .storage import PersistentStore, MemoryStore, FileStore, get_file_store
from .delivery import (
    DeliveryClient,
    DeliveryContext,
    DeliveryError,
    build_session_started_body,
    build_event_schema_body
)
from .batcher import Batcher
from .session import SessionState, SessionTracker
from .client import Inspector, InspectorConfigurationError

__all__ = [
    # Configuration
    'BatchConfig',
    'InspectorConfig',
    'InspectorEnv',
    # Queue records
    'SessionStarted',
    'EventSchema',
    'event_from_dict',
    # Storage
    'PersistentStore',
    'MemoryStore',
    'FileStore',
    'get_file_store',
    # Delivery
    'DeliveryClient',
    'DeliveryContext',
    'DeliveryError',
    'build_session_started_body',
    'build_event_schema_body',
    # Core
    'Batcher',
    'SessionState',
    'SessionTracker',
    'Inspector',
    'InspectorConfigurationError',
]

__version__ = LIB_VERSION
