"""
Query, filtering, pagination and statistics over the job history.

Results are always ordered by creation time, newest first; pagination
depends on that ordering. has_more is derived from the total number of
matching records, not from whether the page happens to be full.
"""

import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..exceptions import StoreError
from ..models import (
    DEFAULT_PAGE_SIZE,
    HistoryFilter,
    HistoryPage,
    HistoryRecord,
    HistoryStats,
    JobKind,
    SummarizationResult,
    SummaryRecord,
    TranscriptionResult,
)
from ..language import AUTO, recommended_language
from .preferences import AUTO_DETECT_KEY, DEFAULT_LANGUAGE_KEY, PreferenceStore
from .store import HistoryStore

logger = logging.getLogger(__name__)


def _parse_date(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO date/datetime into a naive local datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class HistoryQueryEngine:
    """Stores job results and answers history queries."""

    def __init__(
        self,
        store: HistoryStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        preferences: Optional[PreferenceStore] = None,
    ):
        """
        Initialize the query engine.

        Args:
            store: Record store holding the history
            page_size: Default page size when a filter sets no limit
            preferences: User preference store; kept in memory when omitted
        """
        self.store = store
        self.page_size = page_size
        self.preferences = preferences if preferences is not None else PreferenceStore()

    def save_transcription(self, result: TranscriptionResult, record_id: str) -> HistoryRecord:
        """Insert or replace the record of a transcription job."""
        now = datetime.now().isoformat()
        existing = self.store.get(record_id)
        record = HistoryRecord(
            id=record_id,
            text=result.text,
            language=result.language,
            model_used=result.model_used,
            duration=result.duration,
            confidence=result.confidence,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            kind=JobKind.TRANSCRIPTION.value,
            summary=existing.summary if existing else None,
        )
        self.store.put(record)
        return record

    def save_summary(
        self,
        result: SummarizationResult,
        record_id: str,
        text: str = "",
        transcription_id: Optional[str] = None,
    ) -> HistoryRecord:
        """
        Persist a summarization result.

        With transcription_id the summary is attached to that transcription's
        record, which is replaced as a whole. Otherwise a new record holding
        the summarized text is stored under record_id.

        Raises:
            StoreError: If transcription_id does not exist
        """
        now = datetime.now().isoformat()
        summary = SummaryRecord(
            id=record_id,
            summary=result.summary,
            model_used=result.model_used,
            original_length=result.original_length,
            summary_length=result.summary_length,
            compression_ratio=result.compression_ratio,
            processing_time=result.processing_time,
            created_at=now,
        )

        if transcription_id:
            transcription = self.store.get(transcription_id)
            if transcription is None:
                raise StoreError(f"Transcription {transcription_id} not found")
            record = replace(transcription, summary=summary, updated_at=now)
        else:
            record = HistoryRecord(
                id=record_id,
                text=text,
                language=result.language,
                model_used=result.model_used,
                duration=0.0,
                created_at=now,
                updated_at=now,
                kind=JobKind.SUMMARIZATION.value,
                summary=summary,
            )

        self.store.put(record)
        return record

    def get(self, record_id: str) -> Optional[HistoryRecord]:
        return self.store.get(record_id)

    def get_summary(self, record_id: str) -> Optional[SummaryRecord]:
        """Get the summary attached to a record, or None if there is none."""
        record = self.store.get(record_id)
        return record.summary if record else None

    def delete(self, record_id: str) -> bool:
        """Delete a record together with its attached summary."""
        deleted = self.store.delete(record_id)
        if deleted:
            logger.info(f"Deleted history record {record_id}")
        return deleted

    def clear_all(self) -> None:
        """Delete every record, every summary and all user preferences."""
        self.store.clear()
        self.preferences.clear()
        logger.info("Cleared all history data")

    def recommended_language(self, text: str) -> str:
        """Pick a language for text using the default_language and auto_detect preferences."""
        auto_detect = (self.preferences.get(AUTO_DETECT_KEY) or "true").strip().lower()
        return recommended_language(
            text,
            default_language=self.preferences.get(DEFAULT_LANGUAGE_KEY) or AUTO,
            auto_detect=auto_detect not in ("false", "0", "no", "off"),
        )

    def query(self, history_filter: Optional[HistoryFilter] = None) -> HistoryPage:
        """
        Filter, order and paginate the history.

        All given filter fields must match. search_text matches the record text
        or its summary, case-insensitively.

        Raises:
            StoreError: If the store cannot be read
            ValueError: If the filter is invalid
        """
        history_filter = history_filter or HistoryFilter(limit=self.page_size)
        limit = history_filter.limit if history_filter.limit is not None else self.page_size
        offset = history_filter.offset or 0
        if limit <= 0 or offset < 0:
            raise ValueError("limit must be positive and offset non-negative")

        date_from = _parse_date(history_filter.date_from)
        date_to = _parse_date(history_filter.date_to)
        needle = history_filter.search_text.lower() if history_filter.search_text else None

        matching = []
        for record in self._load_all():
            if history_filter.language and record.language != history_filter.language:
                continue
            if history_filter.model_used and record.model_used != history_filter.model_used:
                continue
            if date_from or date_to:
                created_at = _parse_date(record.created_at)
                if date_from and created_at < date_from:
                    continue
                if date_to and created_at > date_to:
                    continue
            if needle and not self._contains(record, needle):
                continue
            matching.append(record)

        matching.sort(key=lambda r: _parse_date(r.created_at), reverse=True)

        total = len(matching)
        items = matching[offset : offset + limit]
        return HistoryPage(items=items, total_matching=total, has_more=offset + len(items) < total)

    def stats(self) -> HistoryStats:
        """
        Aggregate statistics over every stored record, ignoring any filter.

        The most used language/model pair is the most frequent one; ties go
        to the pair encountered first in store iteration order. That order is
        store-specific (directory order for JsonHistoryStore), so ties are
        not deterministic across stores.
        """
        records = self._load_all()
        if not records:
            return HistoryStats()

        confidences = [r.confidence for r in records if r.confidence is not None]
        pairs = Counter((r.language, r.model_used) for r in records)
        (language, model_used), _ = pairs.most_common(1)[0]

        return HistoryStats(
            total_jobs=len(records),
            total_summaries=sum(1 for r in records if r.summary is not None),
            total_duration=sum(r.duration or 0.0 for r in records),
            average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            most_used_language=language or "Unknown",
            most_used_model=model_used or "Unknown",
        )

    def export(self) -> List[Dict[str, Any]]:
        """Export every record as a plain dictionary, newest first."""
        records = self._load_all()
        records.sort(key=lambda r: _parse_date(r.created_at), reverse=True)
        return [record.to_dict() for record in records]

    def _load_all(self) -> List[HistoryRecord]:
        try:
            return list(self.store.iter_records())
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to retrieve history: {e}") from e

    @staticmethod
    def _contains(record: HistoryRecord, needle: str) -> bool:
        if needle in record.text.lower():
            return True
        return record.summary is not None and needle in record.summary.summary.lower()
