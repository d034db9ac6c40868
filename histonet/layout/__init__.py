"""Force simulation, cooling, frame scheduling and position continuity."""

from histonet.layout.continuity import InitialLayout, PositionContinuityCache, PositionSnapshot
from histonet.layout.cooling import CoolingPhase, CoolingSchedule, CoolingStep
from histonet.layout.scheduling import AsyncioFrameScheduler, FrameScheduler, ManualFrameScheduler
from histonet.layout.simulation import (
    ForceSimulation,
    Positions,
    SimulationHandle,
    SimulationStatus,
    SimulationStoppedError,
)
from histonet.layout.state import LayoutState, Viewport

__all__ = [
    "AsyncioFrameScheduler",
    "CoolingPhase",
    "CoolingSchedule",
    "CoolingStep",
    "ForceSimulation",
    "FrameScheduler",
    "InitialLayout",
    "LayoutState",
    "ManualFrameScheduler",
    "PositionContinuityCache",
    "PositionSnapshot",
    "Positions",
    "SimulationHandle",
    "SimulationStatus",
    "SimulationStoppedError",
    "Viewport",
]
