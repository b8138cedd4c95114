"""Tests for the reset/undo controller."""

import unittest

from fakes import ManualScheduler
from mentra.undo import ResetUndoController, UndoState


class TestResetUndoController(unittest.TestCase):

    def setUp(self) -> None:
        self.state = {"input": "draft", "turns": ("a", "b")}
        self.scheduler = ManualScheduler()
        self.changes: list[UndoState] = []
        self.ctrl = ResetUndoController(
            get_state=lambda: dict(self.state),
            apply_state=self._apply,
            timeout_ms=10_000,
            scheduler=self.scheduler,
            on_change=self.changes.append,
        )

    def _apply(self, new_state) -> None:
        self.state = dict(new_state)

    def test_reset_then_undo_restores_snapshot(self) -> None:
        self.ctrl.reset({"input": "", "turns": ()})
        self.assertEqual(self.state, {"input": "", "turns": ()})
        self.assertEqual(self.ctrl.state, UndoState.PENDING_UNDO)

        self.assertTrue(self.ctrl.undo())
        self.assertEqual(self.state, {"input": "draft", "turns": ("a", "b")})
        self.assertEqual(self.ctrl.state, UndoState.ACTIVE)
        self.assertEqual(self.scheduler.pending, 0)

    def test_undo_only_once(self) -> None:
        self.ctrl.reset({"input": "", "turns": ()})
        self.assertTrue(self.ctrl.undo())
        self.assertFalse(self.ctrl.undo())

    def test_timeout_discards_snapshot(self) -> None:
        self.ctrl.reset({"input": "", "turns": ()})
        self.scheduler.advance(9_999)
        self.assertTrue(self.ctrl.can_undo)
        self.scheduler.advance(1)
        self.assertFalse(self.ctrl.can_undo)
        self.assertFalse(self.ctrl.undo())
        self.assertEqual(self.state, {"input": "", "turns": ()})
        self.assertEqual(self.changes, [UndoState.PENDING_UNDO, UndoState.ACTIVE])

    def test_dismiss(self) -> None:
        self.ctrl.reset({"input": "", "turns": ()})
        self.ctrl.dismiss()
        self.assertFalse(self.ctrl.undo())
        self.assertEqual(self.scheduler.pending, 0)

    def test_second_reset_replaces_snapshot_and_restarts_window(self) -> None:
        self.ctrl.reset({"input": "x", "turns": ("c",)})
        self.scheduler.advance(6_000)
        self.ctrl.reset({"input": "", "turns": ()})
        self.scheduler.advance(6_000)
        self.assertTrue(self.ctrl.can_undo)
        self.ctrl.undo()
        self.assertEqual(self.state, {"input": "x", "turns": ("c",)})

    def test_undo_without_reset(self) -> None:
        self.assertFalse(self.ctrl.undo())


if __name__ == "__main__":
    unittest.main()
