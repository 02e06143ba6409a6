"""FIFO replay and position recalculation."""

from swingtrack.engine.fifo import consume, open_lot, replay
from swingtrack.engine.recalc import PositionEngine

__all__ = ["PositionEngine", "consume", "open_lot", "replay"]
