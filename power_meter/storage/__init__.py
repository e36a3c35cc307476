"""Historical telemetry stores."""

from .history import CsvHistoryStore, FirebaseHistoryStore, HistoryStore

__all__ = ["CsvHistoryStore", "FirebaseHistoryStore", "HistoryStore"]
