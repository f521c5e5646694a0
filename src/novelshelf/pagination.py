from __future__ import annotations

import math
import threading
from bisect import bisect_right
from collections import OrderedDict
from dataclasses import dataclass

from .defaults import DEFAULT_PAGE_SIZE

PARAGRAPH_SEPARATOR = "\n\n"
# Boundary tables kept per Paginator; least recently used ones are evicted.
DEFAULT_CACHED_TABLES = 64


@dataclass(frozen=True, slots=True)
class PageSpan:
    number: int  # 1-based
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start


def _check_page_size(page_size: int) -> None:
    if page_size <= 0:
        raise ValueError(f"page_size must be positive, got {page_size}")


def page_count(content: str, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    _check_page_size(page_size)
    if not content:
        return 0
    return math.ceil(len(content) / page_size)


def _soft_end(content: str, position: int) -> int:
    if position >= len(content):
        return len(content)
    newline = content.find("\n", position)
    return len(content) if newline == -1 else newline


def page_spans(content: str, page_size: int = DEFAULT_PAGE_SIZE) -> list[PageSpan]:
    """
    Compute the page-boundary table for one chapter.

    Every interior boundary is the page grid point pushed forward to the next
    newline, so a line is never split across pages. The spans cover the content
    exactly once; a page whose grid range was swallowed by a long line comes
    out empty so the table length always equals :func:`page_count`.
    """
    count = page_count(content, page_size)
    if count == 0:
        return []
    bounds = [0]
    for number in range(1, count):
        grid = max(number * page_size, bounds[-1])
        bounds.append(_soft_end(content, grid))
    bounds.append(len(content))
    return [
        PageSpan(number=number, start=bounds[number - 1], end=bounds[number])
        for number in range(1, count + 1)
    ]


def split_paragraphs(window: str) -> list[str]:
    paragraphs: list[str] = []
    for paragraph in window.split(PARAGRAPH_SEPARATOR):
        cleaned = paragraph.strip()
        if cleaned:
            paragraphs.append(cleaned)
    return paragraphs


class ChapterPages:
    """Boundary table plus lookups for a single chapter's content."""

    def __init__(self, content: str, page_size: int) -> None:
        self.content = content
        self.page_size = page_size
        self.spans = page_spans(content, page_size)
        self._filled = [span for span in self.spans if not span.is_empty]
        self._filled_starts = [span.start for span in self._filled]

    @property
    def count(self) -> int:
        return len(self.spans)

    @property
    def last_page(self) -> int:
        if not self._filled:
            return 1
        return self._filled[-1].number

    def span(self, page_number: int) -> PageSpan | None:
        if 1 <= page_number <= len(self.spans):
            return self.spans[page_number - 1]
        return None

    def page_start(self, page_number: int) -> int:
        span = self.span(page_number)
        if span is None:
            return 0 if page_number < 1 else len(self.content)
        return span.start

    def window(self, page_number: int) -> str:
        span = self.span(page_number)
        if span is None:
            return ""
        return self.content[span.start : span.end]

    def slice(self, page_number: int) -> list[str]:
        return split_paragraphs(self.window(page_number))

    def next_filled(self, page_number: int) -> int | None:
        """First non-empty page at or after ``page_number``."""
        for span in self._filled:
            if span.number >= page_number:
                return span.number
        return None

    def prev_filled(self, page_number: int) -> int | None:
        """Last non-empty page at or before ``page_number``."""
        for span in reversed(self._filled):
            if span.number <= page_number:
                return span.number
        return None

    def page_for_offset(self, offset: int) -> int:
        if not self._filled:
            return 1
        if offset < 0:
            return self._filled[0].number
        position = bisect_right(self._filled_starts, offset) - 1
        if position < 0:
            return self._filled[0].number
        return self._filled[position].number


def page_slice(content: str, page_size: int, page_number: int) -> list[str]:
    return ChapterPages(content, page_size).slice(page_number)


class Paginator:
    """Caches :class:`ChapterPages` tables for recently read chapter texts."""

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_tables: int = DEFAULT_CACHED_TABLES,
    ) -> None:
        _check_page_size(page_size)
        self.page_size = page_size
        self.max_tables = max(1, max_tables)
        self._tables: OrderedDict[str, ChapterPages] = OrderedDict()
        self._lock = threading.Lock()

    def pages(self, content: str) -> ChapterPages:
        with self._lock:
            table = self._tables.get(content)
            if table is not None:
                self._tables.move_to_end(content)
                return table
        table = ChapterPages(content, self.page_size)
        with self._lock:
            self._tables[content] = table
            self._tables.move_to_end(content)
            while len(self._tables) > self.max_tables:
                self._tables.popitem(last=False)
        return table

    def cached_tables(self) -> int:
        with self._lock:
            return len(self._tables)

    def clear(self) -> None:
        with self._lock:
            self._tables.clear()

    def page_count(self, content: str) -> int:
        return self.pages(content).count

    def page_slice(self, content: str, page_number: int) -> list[str]:
        return self.pages(content).slice(page_number)


__all__ = [
    "ChapterPages",
    "PageSpan",
    "Paginator",
    "page_count",
    "page_slice",
    "page_spans",
    "split_paragraphs",
]
