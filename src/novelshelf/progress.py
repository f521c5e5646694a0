from __future__ import annotations

import logging
from dataclasses import dataclass

from .doc import ChapterDoc
from .offsets import OffsetIndex
from .pagination import Paginator
from .store import BookStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReadingPosition:
    chapter: int  # 0-based
    page: int  # 1-based
    offset: int  # global offset the position was derived from (after clamping)
    percentage: int


class ProgressTracker:
    """Persists one global offset per book and derives positions from it."""

    def __init__(self, store: BookStore) -> None:
        self.store = store

    def save(self, book_id: int, global_offset: int) -> None:
        self.store.upsert_progress(book_id, max(0, int(global_offset)))

    def load(self, book_id: int) -> int | None:
        progress = self.store.find_progress(book_id)
        if progress is None:
            return None
        return progress.global_offset

    @staticmethod
    def resolve(
        doc: ChapterDoc,
        global_offset: int | None,
        paginator: Paginator,
        index: OffsetIndex | None = None,
    ) -> ReadingPosition | None:
        """
        Translate a saved offset into chapter/page/percentage.

        Offsets past the end of the book (content changed since they were
        saved) fall back to the first page of the first chapter.
        """
        index = index or OffsetIndex(doc.chapters)
        offset = global_offset or 0
        location = index.locate(offset)
        if location is None:
            return None
        if offset < 0 or offset >= index.total:
            if offset not in (0, index.total):
                logger.warning(
                    "Saved offset %d outside book length %d; restarting at chapter 1",
                    offset,
                    index.total,
                )
            offset = 0
        chapter = doc.chapters[location.chapter]
        page = paginator.pages(chapter.content).page_for_offset(location.offset)
        return ReadingPosition(
            chapter=location.chapter,
            page=page,
            offset=offset,
            percentage=index.percentage(offset),
        )


__all__ = ["ProgressTracker", "ReadingPosition"]
