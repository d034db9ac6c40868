from __future__ import annotations

import asyncio

import pytest

from histonet.config import CoolingStepConfig
from histonet.layout.cooling import CoolingPhase, CoolingSchedule, CoolingStep
from histonet.layout.scheduling import AsyncioFrameScheduler, ManualFrameScheduler


def _steps():
    return [
        CoolingStepConfig(after_seconds=1.0, enter="cooling", alpha_target=0.05, alpha_cap=0.1),
        CoolingStepConfig(after_seconds=0.05, enter="finished", alpha_target=0.0),
    ]


def test_step_ticks_derive_from_frame_rate() -> None:
    step = CoolingStep.from_config(_steps()[0], 60)
    assert step.after_ticks == 60
    assert step.enter is CoolingPhase.COOLING
    assert step.alpha_cap == 0.1
    assert CoolingStep.from_config(_steps()[1], 10).after_ticks == 1


def test_schedule_fires_steps_in_order() -> None:
    schedule = CoolingSchedule.from_config(_steps(), 60)
    assert schedule.phase is CoolingPhase.WARM
    assert schedule.remaining_ticks == 60
    fired = [schedule.advance() for _ in range(60)]
    assert fired[:-1] == [None] * 59
    assert fired[-1].enter is CoolingPhase.COOLING
    assert schedule.phase is CoolingPhase.COOLING
    assert schedule.remaining_ticks == 3
    for _ in range(2):
        assert schedule.advance() is None
    assert schedule.advance().enter is CoolingPhase.FINISHED
    assert not schedule.active
    assert schedule.advance() is None


def test_cancel_finishes_schedule() -> None:
    schedule = CoolingSchedule.from_config(_steps(), 60)
    schedule.cancel()
    assert schedule.phase is CoolingPhase.FINISHED
    assert not schedule.active
    assert schedule.remaining_ticks == 0
    assert schedule.advance() is None


def test_empty_schedule_is_finished() -> None:
    schedule = CoolingSchedule([])
    assert schedule.phase is CoolingPhase.FINISHED
    assert not schedule.active


def test_manual_scheduler_defers_nested_requests() -> None:
    scheduler = ManualFrameScheduler()
    calls = []

    def _again() -> None:
        calls.append("again")

    def _first() -> None:
        calls.append("first")
        scheduler.request_frame(_again)

    scheduler.request_frame(_first)
    assert scheduler.run_frame() == 1
    assert calls == ["first"]
    assert scheduler.pending == 1
    assert scheduler.run_until_idle() == 1
    assert calls == ["first", "again"]
    assert scheduler.frames_run == 2


def test_manual_scheduler_cancel_ignores_unknown_tokens() -> None:
    scheduler = ManualFrameScheduler()
    token = scheduler.request_frame(lambda: None)
    scheduler.cancel(token)
    scheduler.cancel(token)
    scheduler.cancel(999)
    assert scheduler.pending == 0


def test_manual_scheduler_respects_frame_limit() -> None:
    scheduler = ManualFrameScheduler()

    def _forever() -> None:
        scheduler.request_frame(_forever)

    scheduler.request_frame(_forever)
    assert scheduler.run_until_idle(max_frames=5) == 5
    assert scheduler.pending == 1


def test_asyncio_scheduler_runs_and_cancels_frames() -> None:
    fired = []

    async def _exercise() -> None:
        scheduler = AsyncioFrameScheduler(frame_rate=240)
        scheduler.request_frame(lambda: fired.append("first"))
        token = scheduler.request_frame(lambda: fired.append("cancelled"))
        scheduler.cancel(token)
        pending = scheduler.request_frame(lambda: fired.append("dropped"))
        scheduler.cancel_all()
        scheduler.cancel(pending)
        scheduler.request_frame(lambda: fired.append("late"))
        await asyncio.sleep(0.05)

    asyncio.run(_exercise())
    assert fired == ["late"]


def test_asyncio_scheduler_rejects_invalid_rate() -> None:
    with pytest.raises(ValueError):
        AsyncioFrameScheduler(frame_rate=0)
