#!/usr/bin/env python3
"""
Tests for the public Inspector surface.

Run with: python3 -m pytest scripts/inspector/test_client.py -v
"""

import io
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import sys
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from schema_parser import SchemaEntry, TypeTag

from inspector.client import Inspector, InspectorConfigurationError
from inspector.config import InspectorConfig, InspectorEnv
from inspector.events import EventSchema, SessionStarted
from inspector.storage import FileStore, MemoryStore
from inspector.test_batcher import FakeClock, RecordingDeliveryClient


class InspectorTestCase(unittest.TestCase):
    """Shared fixture building inspectors without touching the home directory."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config = InspectorConfig(Path(self.temp_dir.name) / "missing.json")
        self.clock = FakeClock()
        self.client = RecordingDeliveryClient()

    def tearDown(self):
        self.temp_dir.cleanup()

    def make_inspector(self, env="prod", store=None, **kwargs):
        options = {"api_key": "api-key", "env": env, "version": "1.0.0"}
        options.update(kwargs)
        return Inspector(
            config=self.config,
            store=store or MemoryStore(),
            delivery_client=self.client,
            clock=self.clock,
            **options
        )


class TestConstruction(InspectorTestCase):
    """Test eager validation and setup."""

    def test_missing_api_key(self):
        """Test an empty API key fails fast."""
        for api_key in (None, "", "   "):
            with self.assertRaises(InspectorConfigurationError):
                self.make_inspector(api_key=api_key)

    def test_missing_version(self):
        """Test an empty version fails fast."""
        for version in (None, "", "  "):
            with self.assertRaises(InspectorConfigurationError):
                self.make_inspector(version=version)

    def test_unknown_environment(self):
        """Test an unknown environment fails fast."""
        with self.assertRaises(InspectorConfigurationError):
            self.make_inspector(env="production")

    def test_configuration_error_is_value_error(self):
        """Test callers can catch ValueError."""
        with self.assertRaises(ValueError):
            self.make_inspector(api_key="")

    @patch("sys.stderr", new_callable=io.StringIO)
    def test_missing_environment_defaults_to_dev(self, mock_stderr):
        """Test no environment means dev with fast flushing and logging."""
        inspector = self.make_inspector(env=None)

        self.assertIs(inspector.environment, InspectorEnv.DEV)
        self.assertEqual(inspector.batch_config.batch_flush_interval_seconds, 1.0)
        self.assertTrue(inspector.should_log)
        self.assertIn("Defaulting to dev", mock_stderr.getvalue())

    def test_prod_settings(self):
        """Test prod uses the 30s interval and no logging."""
        inspector = self.make_inspector(env=InspectorEnv.PROD)

        self.assertEqual(inspector.batch_config.batch_flush_interval_seconds, 30.0)
        self.assertEqual(inspector.batch_config.batch_size_threshold, 30)
        self.assertFalse(inspector.should_log)

    def test_construction_starts_session(self):
        """Test a new inspector queues one session start."""
        inspector = self.make_inspector()

        pending = inspector.batcher.pending_events()
        self.assertEqual(len(pending), 1)
        self.assertIsInstance(pending[0], SessionStarted)
        self.assertEqual(pending[0].session_id, inspector.session_tracker.session_id)


class TestTracking(InspectorTestCase):
    """Test the tracking entry points."""

    def test_track_schema_from_event(self):
        """Test properties are reduced to a schema and queued."""
        inspector = self.make_inspector()

        inspector.track_schema_from_event("Checkout", {"a": "x", "b": 2, "c": {"d": True}})

        event = inspector.batcher.pending_events()[-1]
        self.assertIsInstance(event, EventSchema)
        self.assertEqual(event.event_name, "Checkout")
        self.assertEqual(event.schema, [
            SchemaEntry("a", TypeTag.STRING),
            SchemaEntry("b", TypeTag.INT),
            SchemaEntry("c", TypeTag.OBJECT, [SchemaEntry("d", TypeTag.BOOLEAN)]),
        ])
        self.assertEqual(event.session_id, inspector.session_tracker.session_id)

    def test_track_schema_accepts_dicts(self):
        """Test wire-form schemas are accepted."""
        inspector = self.make_inspector()

        inspector.track_schema("Viewed", [
            {"propertyName": "tags", "propertyType": "list", "children": []},
            SchemaEntry("id", TypeTag.INT),
        ])

        event = inspector.batcher.pending_events()[-1]
        self.assertEqual(event.schema, [
            SchemaEntry("tags", TypeTag.LIST, []),
            SchemaEntry("id", TypeTag.INT),
        ])

    def test_extract_schema_does_not_queue_event(self):
        """Test extract_schema returns the schema without queueing it."""
        inspector = self.make_inspector()

        schema = inspector.extract_schema({"tags": []})

        self.assertEqual(schema, [SchemaEntry("tags", TypeTag.LIST, [])])
        self.assertEqual(len(inspector.batcher.pending_events()), 1)

    @patch("sys.stderr", new_callable=io.StringIO)
    def test_errors_are_swallowed(self, mock_stderr):
        """Test bad input never raises to the host application."""
        inspector = self.make_inspector()
        cyclic = {}
        cyclic["self"] = cyclic

        inspector.track_schema_from_event("Loop", cyclic)
        inspector.track_schema("Bad", [{"propertyName": "x", "propertyType": "nope"}])
        result = inspector.extract_schema(["not", "a", "mapping"])

        self.assertEqual(result, [])
        self.assertEqual(len(inspector.batcher.pending_events()), 1)
        self.assertIn("Inspector failed", mock_stderr.getvalue())

    def test_session_renewed_after_inactivity(self):
        """Test tracking after a long pause starts a new session."""
        inspector = self.make_inspector()
        first_session = inspector.session_tracker.session_id

        self.clock.advance(1)
        inspector.track_schema_from_event("A", {})
        self.clock.advance(301)
        inspector.track_schema_from_event("B", {})

        pending = inspector.batcher.pending_events()
        starts = [e for e in pending if isinstance(e, SessionStarted)]
        self.assertEqual(len(starts), 2)
        self.assertNotEqual(inspector.session_tracker.session_id, first_session)
        self.assertEqual(pending[-1].session_id, inspector.session_tracker.session_id)

    def test_batch_sent_at_threshold(self):
        """Test the session start plus 29 events make one batch."""
        inspector = self.make_inspector()

        for i in range(29):
            inspector.track_schema_from_event(f"event-{i}", {"i": i})

        self.assertEqual(len(self.client.batches), 1)
        self.assertEqual(len(self.client.batches[0]), 30)
        self.assertEqual(self.client.batches[0][0]["type"], "sessionStarted")

    def test_flush(self):
        """Test flush sends what is queued."""
        inspector = self.make_inspector()

        self.assertTrue(inspector.flush())
        self.assertEqual(len(self.client.batches), 1)


class TestDefaultStorage(InspectorTestCase):
    """Test the file store an inspector builds for itself."""

    def make_default_inspector(self):
        return Inspector(
            api_key="api-key",
            env="prod",
            version="1.0.0",
            config=self.config,
            delivery_client=self.client,
            clock=self.clock,
        )

    @patch("sys.stderr", new_callable=io.StringIO)
    def test_unusable_storage_dir_falls_back_to_memory(self, mock_stderr):
        """Test an uncreatable storage dir degrades instead of raising."""
        blocker = Path(self.temp_dir.name) / "file"
        blocker.write_text("")
        self.config.set("storage.dir", str(blocker / "storage"))

        inspector = self.make_default_inspector()
        inspector.track_schema_from_event("Opened", {"a": 1})

        self.assertIsInstance(inspector.store, MemoryStore)
        self.assertEqual(len(inspector.batcher.pending_events()), 2)
        self.assertIn("Storage unavailable", mock_stderr.getvalue())

    def test_instances_on_one_dir_keep_each_others_events(self):
        """Test two inspectors sharing a storage dir lose no queued events."""
        storage_dir = Path(self.temp_dir.name) / "storage"
        self.config.set("storage.dir", str(storage_dir))

        first = self.make_default_inspector()
        second = self.make_default_inspector()
        first.track_schema_from_event("from-a", {"a": 1})
        second.track_schema_from_event("from-b", {"b": 1})

        persisted = FileStore(storage_dir, asynchronous=False).get("InspectorEvents")
        self.assertEqual(
            [record.get("eventName") for record in persisted],
            [None, "from-a", "from-b"],
        )
        self.assertEqual(persisted[0]["type"], "sessionStarted")
        self.assertIs(first.store, second.store)


class TestPerInstanceSettings(InspectorTestCase):
    """Test settings stay with their inspector."""

    def test_batch_size_is_per_instance(self):
        """Test changing one inspector's batch size leaves others alone."""
        first = self.make_inspector()
        second = self.make_inspector()

        first.set_batch_size(2)

        self.assertEqual(first.batch_config.batch_size_threshold, 2)
        self.assertEqual(second.batch_config.batch_size_threshold, 30)

    def test_set_batch_size_applies(self):
        """Test a smaller batch size triggers sooner."""
        inspector = self.make_inspector()
        inspector.set_batch_size(2)

        inspector.track_schema_from_event("A", {})

        self.assertEqual(len(self.client.batches), 1)

    def test_set_flush_seconds(self):
        """Test the flush interval can be changed."""
        inspector = self.make_inspector()
        inspector.set_batch_flush_seconds(5)

        self.clock.advance(5)
        inspector.track_schema_from_event("A", {})

        self.assertEqual(len(self.client.batches), 1)

    def test_invalid_settings(self):
        """Test invalid thresholds are rejected."""
        inspector = self.make_inspector()

        with self.assertRaises(InspectorConfigurationError):
            inspector.set_batch_size(0)
        with self.assertRaises(InspectorConfigurationError):
            inspector.set_batch_flush_seconds(-1)

    @patch("sys.stderr", new_callable=io.StringIO)
    def test_enable_logging(self, mock_stderr):
        """Test logging prints supplied events only when enabled."""
        inspector = self.make_inspector()

        inspector.track_schema_from_event("Quiet", {"a": 1})
        inspector.enable_logging(True)
        inspector.track_schema_from_event("Loud", {"a": 1})

        output = mock_stderr.getvalue()
        self.assertNotIn("Quiet", output)
        self.assertIn("[Inspector] Supplied event Loud", output)


if __name__ == "__main__":
    unittest.main()
