"""Tests for the SQLite-backed checkpoint store."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from cloudstack_node.db import DBCheckpointStore, create_session, create_state_engine
from cloudstack_node.entities.event import Checkpoint

EVENTS = [
    {"id": "ev-1", "created": "2014-03-11T10:22:33+0900", "type": "VM.START"},
    {"id": "ev-2", "created": "2014-03-11T10:22:34+0900", "type": "VM.STOP"},
]


class TestDBCheckpointStore(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.tmp_dir) / "state" / "collector.db"
        self.url = f"sqlite:///{self.db_path}"

    def _store(self, namespace: str = "cloudstack") -> DBCheckpointStore:
        engine = create_state_engine(self.url)
        self.addCleanup(engine.dispose)
        session = create_session(engine)
        self.addCleanup(session.close)
        return DBCheckpointStore(session, namespace=namespace)

    def test_engine_creates_missing_parent_directory(self):
        self._store()
        self.assertTrue(self.db_path.parent.is_dir())

    def test_empty_store_loads_as_absent_state(self):
        store = self._store()

        self.assertIsNone(store.load_checkpoint())
        self.assertEqual(store.load_baseline(), {})

    def test_checkpoint_round_trips_raw_events(self):
        store = self._store()
        store.save_checkpoint(Checkpoint.from_payload(EVENTS))

        loaded = store.load_checkpoint()

        self.assertEqual(loaded.to_payload(), EVENTS)
        self.assertEqual(loaded.startdate, "2014-03-11 10:22:34")

    def test_state_survives_reopening_the_database(self):
        first = self._store()
        first.save_checkpoint(Checkpoint.from_payload(EVENTS))
        first.save_baseline({"vm_count": 3, "Small": 0})

        reopened = self._store()

        self.assertEqual(reopened.load_checkpoint().to_payload(), EVENTS)
        self.assertEqual(reopened.load_baseline(), {"vm_count": 3, "Small": 0})

    def test_saves_overwrite_previous_value(self):
        store = self._store()
        store.save_baseline({"Small": 1})
        store.save_baseline({"Small": 0, "Large": 2})

        self.assertEqual(store.load_baseline(), {"Small": 0, "Large": 2})

    def test_namespaces_do_not_collide(self):
        prod = self._store("cloudstack.prod")
        staging = self._store("cloudstack.staging")

        prod.save_checkpoint(Checkpoint.from_payload(EVENTS[:1]))
        prod.save_baseline({"vm_count": 1})

        self.assertIsNone(staging.load_checkpoint())
        self.assertEqual(staging.load_baseline(), {})

    def test_failed_save_keeps_previous_durable_value(self):
        store = self._store()
        store.save_checkpoint(Checkpoint.from_payload(EVENTS[:1]))

        with mock.patch.object(store._session, "commit", side_effect=RuntimeError("disk full")):
            with self.assertRaises(RuntimeError):
                store.save_checkpoint(Checkpoint.from_payload(EVENTS))

        self.assertEqual(self._store().load_checkpoint().to_payload(), EVENTS[:1])
        self.assertEqual(store.load_checkpoint().to_payload(), EVENTS[:1])

    def test_namespace_is_required(self):
        engine = create_state_engine(self.url)
        self.addCleanup(engine.dispose)
        with self.assertRaises(ValueError):
            DBCheckpointStore(create_session(engine), namespace="")


if __name__ == "__main__":
    unittest.main()
