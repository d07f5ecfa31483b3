from .background import PeriodicTask, SessionSweeper

__all__ = ["PeriodicTask", "SessionSweeper"]
