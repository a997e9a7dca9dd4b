"""Multi-provider dispatch."""

from .engine import (
    NOT_READY_MESSAGE,
    ComparisonReport,
    DispatchEngine,
    get_engine,
    reset_engine,
)

__all__ = [
    "NOT_READY_MESSAGE",
    "ComparisonReport",
    "DispatchEngine",
    "get_engine",
    "reset_engine",
]
