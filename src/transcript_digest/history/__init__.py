"""
Persisted job history: record stores and the query engine.
"""

from .preferences import JsonPreferenceStore, PreferenceStore
from .query import HistoryQueryEngine
from .store import HistoryStore, InMemoryHistoryStore, JsonHistoryStore

__all__ = [
    "HistoryQueryEngine",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "PreferenceStore",
    "JsonPreferenceStore",
]
