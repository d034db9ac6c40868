"""Per-frame callback scheduling used by the simulation tick loop."""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections import OrderedDict
from typing import Callable, Dict, Optional

from typing_extensions import Protocol

LOGGER = logging.getLogger(__name__)

FrameCallback = Callable[[], None]


class FrameScheduler(Protocol):
    """Host per-frame callback facility.

    Callbacks run on the host's single thread of control; the engine never
    blocks between frames.
    """

    def request_frame(self, callback: FrameCallback) -> int:
        """Schedule ``callback`` for the next frame and return a cancel token."""

    def cancel(self, token: int) -> None:
        """Cancel a pending frame; unknown or fired tokens are ignored."""


class ManualFrameScheduler:
    """Scheduler advanced explicitly by the caller (tests, headless layout)."""

    def __init__(self) -> None:
        self._tokens = itertools.count(1)
        self._pending: "OrderedDict[int, FrameCallback]" = OrderedDict()
        self.frames_run = 0

    def request_frame(self, callback: FrameCallback) -> int:
        token = next(self._tokens)
        self._pending[token] = callback
        return token

    def cancel(self, token: int) -> None:
        self._pending.pop(token, None)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def run_frame(self) -> int:
        """Run every callback pending at the start of the frame.

        Callbacks requested while the frame runs are deferred to the next one.

        Returns:
            int: Number of callbacks executed.
        """

        batch = list(self._pending.items())
        self._pending.clear()
        for _, callback in batch:
            callback()
        self.frames_run += 1
        return len(batch)

    def run_until_idle(self, max_frames: int = 10_000) -> int:
        """Advance frames until nothing is pending or ``max_frames`` is reached."""

        frames = 0
        while self._pending and frames < max_frames:
            self.run_frame()
            frames += 1
        return frames


class AsyncioFrameScheduler:
    """Map frames onto ``loop.call_later`` at a fixed frame rate."""

    def __init__(self, frame_rate: int = 60, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if frame_rate <= 0:
            raise ValueError("frame_rate must be positive")
        self._interval = 1.0 / frame_rate
        self._loop = loop
        self._tokens = itertools.count(1)
        self._handles: Dict[int, asyncio.TimerHandle] = {}

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def request_frame(self, callback: FrameCallback) -> int:
        token = next(self._tokens)

        def _fire() -> None:
            self._handles.pop(token, None)
            callback()

        self._handles[token] = self._event_loop().call_later(self._interval, _fire)
        return token

    def cancel(self, token: int) -> None:
        handle = self._handles.pop(token, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for token in list(self._handles):
            self.cancel(token)


__all__ = ["AsyncioFrameScheduler", "FrameCallback", "FrameScheduler", "ManualFrameScheduler"]
