from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .defaults import DEFAULT_PAGE_SIZE
from .importer import ImportResult, import_novel
from .offsets import OffsetIndex
from .pagination import Paginator
from .progress import ProgressTracker
from .reader import ReadingSession
from .store import Book, BookStore

logger = logging.getLogger(__name__)

SORT_MODES = ("recent", "title", "author")


@dataclass(slots=True)
class BookListing:
    id: int
    title: str
    author: str
    file_path: str
    updated_at: str
    chapter_count: int
    current_chapter: str
    percentage: int
    last_read_at: str | None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "title": self.title,
            "file_path": self.file_path,
            "updated_at": self.updated_at,
            "chapter_count": self.chapter_count,
            "percentage": self.percentage,
        }
        if self.author:
            payload["author"] = self.author
        if self.current_chapter:
            payload["current_chapter"] = self.current_chapter
        if self.last_read_at:
            payload["last_read_at"] = self.last_read_at
        return payload


def normalize_sort_mode(value: str | None) -> str:
    normalized = (value or "").lower().strip()
    return normalized if normalized in SORT_MODES else "recent"


class Library:
    """Bookshelf service: import, listing, opening and deleting books."""

    def __init__(self, store: BookStore, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.store = store
        self.tracker = ProgressTracker(store)
        self.paginator = Paginator(page_size)

    def import_file(
        self,
        path: Path | str | None,
        *,
        encoding: str | None = None,
        single_chapter_fallback: bool = False,
        on_progress: Callable[[int], None] | None = None,
    ) -> ImportResult | None:
        return import_novel(
            path,
            self.store,
            encoding=encoding,
            single_chapter_fallback=single_chapter_fallback,
            on_progress=on_progress,
        )

    def get(self, book_id: int) -> Book | None:
        return self.store.find_by_id(book_id)

    def open(self, book_id: int) -> ReadingSession | None:
        book = self.store.find_by_id(book_id)
        if book is None:
            return None
        return ReadingSession(book, self.tracker, self.paginator)

    def delete(self, book_id: int) -> bool:
        deleted = self.store.delete(book_id)
        if deleted:
            self.paginator.clear()
            logger.info("Deleted book %d", book_id)
        return deleted

    def _listing(self, book: Book) -> BookListing:
        doc = book.content
        progress = self.store.find_progress(book.id)
        current_chapter = ""
        percentage = 0
        last_read_at = None
        if progress is not None:
            index = OffsetIndex(doc.chapters)
            location = index.locate(progress.global_offset)
            if location is not None:
                current_chapter = doc.chapters[location.chapter].title
                percentage = index.percentage(index.to_global(location.chapter, location.offset))
            last_read_at = progress.last_read_at
        return BookListing(
            id=book.id,
            title=book.title,
            author=book.author,
            file_path=book.file_path,
            updated_at=book.updated_at,
            chapter_count=len(doc.chapters),
            current_chapter=current_chapter,
            percentage=percentage,
            last_read_at=last_read_at,
        )

    def list_books(self, query: str | None = None, sort: str | None = None) -> list[BookListing]:
        sort_mode = normalize_sort_mode(sort)
        needle = (query or "").strip().casefold()
        entries: list[tuple[tuple[object, ...], BookListing]] = []
        for position, book in enumerate(self.store.list_all()):
            title = book.title.casefold()
            author = book.author.casefold()
            if needle and needle not in title and needle not in author:
                continue
            if sort_mode == "title":
                sort_key: tuple[object, ...] = (title, position)
            elif sort_mode == "author":
                sort_key = (0 if author else 1, author, title, position)
            else:
                sort_key = (position,)
            entries.append((sort_key, self._listing(book)))
        entries.sort(key=lambda item: item[0])
        return [listing for _, listing in entries]


__all__ = ["BookListing", "Library", "SORT_MODES", "normalize_sort_mode"]
