"""Tests for the SQLite history store."""

import os
import tempfile
import time
import unittest

from mentra.history_store import HistoryStore


class TestHistoryStore(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = HistoryStore(os.path.join(self._tmp.name, "history.db"))
        self.addCleanup(self.store.close)

    def _save(self, session_id: str, module: str = "chat", title=None, **meta) -> None:
        self.store.save("u1", session_id, module, {"messages": [session_id]},
                        title, meta or None)

    def test_save_and_get(self) -> None:
        self._save("s1", title="Osmosis", mode="normal")
        rec = self.store.get_by_session("u1", "s1")
        self.assertEqual(rec.content, {"messages": ["s1"]})
        self.assertEqual(rec.title, "Osmosis")
        self.assertEqual(rec.metadata, {"mode": "normal"})
        self.assertEqual(rec.module_type, "chat")
        self.assertTrue(rec.created_at)

    def test_missing_record(self) -> None:
        self.assertIsNone(self.store.get_by_session("u1", "nope"))

    def test_upsert_keeps_title_when_none_given(self) -> None:
        self._save("s1", title="First title")
        self.store.save("u1", "s1", "chat", {"messages": ["a", "b"]}, None, {"mode": "weakness"})
        rec = self.store.get_by_session("u1", "s1")
        self.assertEqual(rec.title, "First title")
        self.assertEqual(rec.content, {"messages": ["a", "b"]})
        self.assertEqual(rec.metadata, {"mode": "weakness"})

    def test_records_are_scoped_by_user(self) -> None:
        self._save("s1")
        self.assertIsNone(self.store.get_by_session("u2", "s1"))
        self.assertEqual(self.store.list_all("u2"), [])

    def test_list_all_newest_first_and_filtered(self) -> None:
        self._save("old")
        time.sleep(0.01)
        self._save("notes", module="notes")
        time.sleep(0.01)
        self._save("new")
        self.assertEqual([r.session_id for r in self.store.list_all("u1")],
                         ["new", "notes", "old"])
        self.assertEqual([r.session_id for r in self.store.list_all("u1", "chat")],
                         ["new", "old"])

    def test_delete(self) -> None:
        self._save("s1")
        self.assertTrue(self.store.delete("u1", "s1"))
        self.assertFalse(self.store.delete("u1", "s1"))

    def test_delete_many_reports_partial_failure(self) -> None:
        self._save("s1")
        self._save("s2")
        self.assertFalse(self.store.delete_many("u1", ["s1", "missing"]))
        self.assertTrue(self.store.delete_many("u1", ["s2"]))
        self.assertEqual(self.store.list_all("u1"), [])

    def test_delete_all_by_module_and_delete_all(self) -> None:
        self._save("c1")
        self._save("n1", module="notes")
        self.assertTrue(self.store.delete_all_by_module("u1", "notes"))
        self.assertEqual([r.session_id for r in self.store.list_all("u1")], ["c1"])
        self.assertTrue(self.store.delete_all("u1"))
        self.assertEqual(self.store.list_all("u1"), [])


if __name__ == "__main__":
    unittest.main()
