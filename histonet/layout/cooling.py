"""Tick-driven cooling schedule applied after structural layout resets."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from histonet.config import CoolingStepConfig


class CoolingPhase(str, Enum):
    """Phase of the cooling schedule."""

    WARM = "warm"
    COOLING = "cooling"
    SETTLING = "settling"
    FINISHED = "finished"


@dataclass(frozen=True)
class CoolingStep:
    """Alpha adjustment applied once ``after_ticks`` have elapsed in a phase."""

    after_ticks: int
    enter: CoolingPhase
    alpha_target: float
    alpha_cap: Optional[float] = None

    @classmethod
    def from_config(cls, step: CoolingStepConfig, frame_rate: int) -> "CoolingStep":
        return cls(
            after_ticks=max(1, int(math.ceil(step.after_seconds * frame_rate))),
            enter=CoolingPhase(step.enter),
            alpha_target=step.alpha_target,
            alpha_cap=step.alpha_cap,
        )


class CoolingSchedule:
    """Explicit phase machine replacing chained timers.

    The schedule is advanced by the simulation once per tick; cancelling it
    is a single assignment, so teardown never leaves a pending adjustment.
    """

    def __init__(self, steps: Sequence[CoolingStep], *, start_phase: CoolingPhase = CoolingPhase.WARM) -> None:
        self._steps: Tuple[CoolingStep, ...] = tuple(steps)
        self._index = 0
        self._phase = start_phase if self._steps else CoolingPhase.FINISHED
        self._remaining = self._steps[0].after_ticks if self._steps else 0

    @classmethod
    def from_config(
        cls,
        steps: Sequence[CoolingStepConfig],
        frame_rate: int,
        *,
        start_phase: CoolingPhase = CoolingPhase.WARM,
    ) -> "CoolingSchedule":
        return cls([CoolingStep.from_config(step, frame_rate) for step in steps], start_phase=start_phase)

    @property
    def phase(self) -> CoolingPhase:
        return self._phase

    @property
    def active(self) -> bool:
        return self._index < len(self._steps)

    @property
    def remaining_ticks(self) -> int:
        return self._remaining if self.active else 0

    def advance(self) -> Optional[CoolingStep]:
        """Count one tick; return the step that fires on this tick, if any."""

        if not self.active:
            return None
        self._remaining -= 1
        if self._remaining > 0:
            return None
        step = self._steps[self._index]
        self._index += 1
        self._phase = step.enter
        if self.active:
            self._remaining = self._steps[self._index].after_ticks
        return step

    def cancel(self) -> None:
        self._index = len(self._steps)
        self._phase = CoolingPhase.FINISHED
        self._remaining = 0


__all__ = ["CoolingPhase", "CoolingSchedule", "CoolingStep"]
