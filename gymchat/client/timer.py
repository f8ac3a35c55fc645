import time
from dataclasses import dataclass
from typing import Callable, Optional

from gymchat.client.cache import LocalCache


TARGET_KEY = "gym_smart_timer_target"
DURATION_KEY = "gym_smart_timer_duration"
DEFAULT_DURATION = 60


@dataclass
class TimerState:
    target: Optional[int]  # epoch ms when the countdown ends, None when idle
    duration: int  # seconds


class WorkoutTimer:
    """Rest countdown whose end time survives a reload."""

    def __init__(self, store: LocalCache, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self.state = TimerState(target=None, duration=DEFAULT_DURATION)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def restore(self) -> TimerState:
        duration = self._store.load_value(DURATION_KEY)
        target = self._store.load_value(TARGET_KEY)
        if isinstance(duration, int) and duration > 0:
            self.state.duration = duration
        if isinstance(target, int) and target > self._now_ms():
            self.state.target = target
        else:
            self.state.target = None
            self._store.remove_value(TARGET_KEY)
        return self.state

    def start(self, duration: Optional[int] = None) -> TimerState:
        if duration is not None:
            self.set_duration(duration)
        self.state.target = self._now_ms() + self.state.duration * 1000
        self._store.save_value(TARGET_KEY, self.state.target)
        self._store.save_value(DURATION_KEY, self.state.duration)
        return self.state

    def set_duration(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError("Timer duration must be positive")
        self.state.duration = seconds
        self._store.save_value(DURATION_KEY, seconds)

    def remaining(self) -> int:
        """Whole seconds left; a finished countdown resets itself and returns 0."""
        if self.state.target is None:
            return 0
        left_ms = self.state.target - self._now_ms()
        if left_ms <= 0:
            self.reset()
            return 0
        return -(-left_ms // 1000)

    @property
    def running(self) -> bool:
        return self.remaining() > 0

    def reset(self) -> None:
        self.state.target = None
        self._store.remove_value(TARGET_KEY)
