import tempfile
import unittest
from pathlib import Path

from gymchat.client.cache import LocalCache
from gymchat.client.timer import DURATION_KEY, TARGET_KEY, WorkoutTimer


class FakeTime:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class WorkoutTimerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = LocalCache(Path(self._tmp.name), "athlete-a")
        self.clock = FakeTime(1000.0)

    def tearDown(self):
        self._tmp.cleanup()

    def test_countdown_resumes_after_reload(self):
        WorkoutTimer(self.store, self.clock).start(90)
        self.clock.now += 30

        reloaded = WorkoutTimer(self.store, self.clock)
        state = reloaded.restore()

        self.assertEqual(state.duration, 90)
        self.assertEqual(reloaded.remaining(), 60)
        self.assertTrue(reloaded.running)

    def test_finished_timer_clears_persisted_target(self):
        timer = WorkoutTimer(self.store, self.clock)
        timer.start(10)
        self.clock.now += 11
        self.assertEqual(timer.remaining(), 0)
        self.assertIsNone(self.store.load_value(TARGET_KEY))
        self.assertEqual(self.store.load_value(DURATION_KEY), 10)

    def test_expired_target_is_not_restored(self):
        WorkoutTimer(self.store, self.clock).start(5)
        self.clock.now += 60
        timer = WorkoutTimer(self.store, self.clock)
        self.assertIsNone(timer.restore().target)
        self.assertFalse(timer.running)

    def test_rejects_non_positive_duration(self):
        with self.assertRaises(ValueError):
            WorkoutTimer(self.store, self.clock).set_duration(0)
