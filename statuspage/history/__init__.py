"""Daily status history persistence and retention."""

from .recorder import DayRecord, HistoryRecorder
from .retention import RetentionJob

__all__ = ["DayRecord", "HistoryRecorder", "RetentionJob"]
