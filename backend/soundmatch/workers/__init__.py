"""Background worker exports."""

from .recalculation import RecalculationWorker

__all__ = ["RecalculationWorker"]
