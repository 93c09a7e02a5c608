"""Centralized cancellation utilities for background tasks"""

import threading
import time


class CancellationManager:
    def __init__(self):
        self._event = threading.Event()

    @property
    def is_cancelled(self):
        return self._event.is_set()

    def check_cancelled(self):
        """Check if cancellation has been requested"""
        return self._event.is_set()

    def cancel(self):
        """Signal cancellation"""
        self._event.set()

    def reset(self):
        """Reset cancellation state"""
        self._event.clear()


class Deadline:
    """Wall-clock budget measured with time.monotonic()."""

    def __init__(self, seconds, clock=time.monotonic):
        self._clock = clock
        self.started = clock()
        self.expires = self.started + seconds

    def remaining(self):
        return max(0.0, self.expires - self._clock())

    def expired(self):
        return self._clock() >= self.expires

    def elapsed(self):
        return self._clock() - self.started
