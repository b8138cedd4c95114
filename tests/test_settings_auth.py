"""Tests for settings and the local user profile."""

import json
import os
import tempfile
import unittest

from mentra.auth import FileUserProvider, load_user, save_user, sign_out
from mentra.settings import Settings, load_settings, save_settings


class TempDirTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def path(self, name: str) -> str:
        return os.path.join(self._tmp.name, name)


class TestSettings(TempDirTestCase):

    def test_defaults_when_missing(self) -> None:
        settings = load_settings(self.path("none.json"))
        self.assertEqual(settings, Settings())
        self.assertEqual(settings.language, "Hinglish")
        self.assertEqual(settings.undo_timeout_ms, 10_000)
        self.assertEqual(settings.draft_debounce_ms, 2_500)

    def test_round_trip(self) -> None:
        path = self.path("settings.json")
        save_settings(Settings(base_url="http://x", language="English"), path)
        loaded = load_settings(path)
        self.assertEqual(loaded.base_url, "http://x")
        self.assertEqual(loaded.language, "English")

    def test_invalid_values_fall_back(self) -> None:
        path = self.path("settings.json")
        with open(path, "w", encoding="utf-8") as fh:
            json.dump({"language": "Klingon", "undo_timeout_ms": -5,
                       "explain_mode": "exam", "unknown": 1}, fh)
        with self.assertLogs("mentra", level="WARNING"):
            loaded = load_settings(path)
        self.assertEqual(loaded.language, "Hinglish")
        self.assertEqual(loaded.undo_timeout_ms, 10_000)
        self.assertEqual(loaded.explain_mode, "exam")

    def test_corrupt_file(self) -> None:
        path = self.path("settings.json")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("[")
        with self.assertLogs("mentra", level="WARNING"):
            self.assertEqual(load_settings(path), Settings())


class TestUserProfile(TempDirTestCase):

    def test_save_load_sign_out(self) -> None:
        path = self.path("user.json")
        self.assertIsNone(load_user(path))
        user = save_user("Asha Patel", path=path)
        self.assertEqual(load_user(path), user)
        self.assertEqual(user.first_name, "Asha")
        self.assertEqual(FileUserProvider(path).get_current_user(), user)

        renamed = save_user("Asha P.", path=path)
        self.assertEqual(renamed.id, user.id)

        sign_out(path)
        self.assertIsNone(FileUserProvider(path).get_current_user())

    def test_blank_name_has_no_first_name(self) -> None:
        user = save_user("   ", path=self.path("user.json"))
        self.assertIsNone(user.first_name)


if __name__ == "__main__":
    unittest.main()
