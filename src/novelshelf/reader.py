from __future__ import annotations

from dataclasses import dataclass, field

from .defaults import DEFAULT_PAGE_SIZE
from .offsets import OffsetIndex
from .pagination import ChapterPages, Paginator
from .progress import ProgressTracker
from .store import Book


@dataclass
class PageView:
    book_id: int
    book_title: str
    author: str
    chapter: int
    chapter_count: int
    chapter_title: str
    show_chapter_title: bool
    page: int
    page_count: int
    paragraphs: list[str] = field(default_factory=list)
    offset: int = 0
    percentage: int = 0

    def to_payload(self) -> dict[str, object]:
        return {
            "book_id": self.book_id,
            "book_title": self.book_title,
            "author": self.author,
            "chapter": self.chapter,
            "chapter_count": self.chapter_count,
            "chapter_title": self.chapter_title,
            "show_chapter_title": self.show_chapter_title,
            "page": self.page,
            "page_count": self.page_count,
            "paragraphs": list(self.paragraphs),
            "offset": self.offset,
            "percentage": self.percentage,
        }


class ReadingSession:
    """
    Reading state for one open book.

    The current chapter and page are derived from the saved global offset and
    every navigation action writes exactly one new offset back through the
    tracker. Boundary actions that have nowhere to go return ``False`` and
    save nothing.
    """

    def __init__(
        self,
        book: Book,
        tracker: ProgressTracker,
        paginator: Paginator | None = None,
    ) -> None:
        self.book = book
        self.doc = book.content
        self.tracker = tracker
        self.paginator = paginator or Paginator(DEFAULT_PAGE_SIZE)
        self.index = OffsetIndex(self.doc.chapters)
        self.chapter = 0
        self.page = 1
        self.restore()

    @property
    def chapter_count(self) -> int:
        return len(self.doc.chapters)

    def restore(self) -> None:
        saved = self.tracker.load(self.book.id)
        position = self.tracker.resolve(self.doc, saved, self.paginator, self.index)
        if position is None:
            self.chapter, self.page = 0, 1
            return
        self.chapter, self.page = position.chapter, position.page

    def _pages(self, chapter: int) -> ChapterPages:
        return self.paginator.pages(self.doc.chapters[chapter].content)

    def _move(self, chapter: int, page: int) -> int:
        self.chapter = chapter
        self.page = page
        offset = self.index.to_global(chapter, self._pages(chapter).page_start(page))
        self.tracker.save(self.book.id, offset)
        return offset

    @property
    def offset(self) -> int:
        if not self.doc.chapters:
            return 0
        return self.index.to_global(self.chapter, self._pages(self.chapter).page_start(self.page))

    def select_chapter(self, chapter: int) -> int:
        if not 0 <= chapter < self.chapter_count:
            raise IndexError(f"Chapter {chapter} out of range (0..{self.chapter_count - 1})")
        return self._move(chapter, 1)

    def next_chapter(self) -> bool:
        if self.chapter + 1 >= self.chapter_count:
            return False
        self._move(self.chapter + 1, 1)
        return True

    def prev_chapter(self) -> bool:
        if self.chapter <= 0 or not self.doc.chapters:
            return False
        self._move(self.chapter - 1, 1)
        return True

    def turn_to(self, page: int) -> bool:
        """
        Go to ``page`` of the current chapter.

        Page 0 continues on the previous chapter's last page and a page past
        the last non-empty one continues on the next chapter's first page.
        Empty pages (swallowed by a long line) are skipped in the direction
        of travel, so the saved offset always starts a page with text.
        """
        if not self.doc.chapters:
            return False
        pages = self._pages(self.chapter)
        if page < 1:
            if self.chapter <= 0:
                return False
            previous = self.chapter - 1
            self._move(previous, self._pages(previous).last_page)
            return True
        if page > pages.last_page:
            return self.next_chapter()
        if page > self.page:
            target = pages.next_filled(page)
        else:
            target = pages.prev_filled(page)
        self._move(self.chapter, target or page)
        return True

    def next_page(self) -> bool:
        return self.turn_to(self.page + 1)

    def prev_page(self) -> bool:
        return self.turn_to(self.page - 1)

    def view(self) -> PageView:
        if not self.doc.chapters:
            return PageView(
                book_id=self.book.id,
                book_title=self.doc.title or self.book.title,
                author=self.doc.author,
                chapter=0,
                chapter_count=0,
                chapter_title="",
                show_chapter_title=False,
                page=1,
                page_count=0,
            )
        chapter = self.doc.chapters[self.chapter]
        pages = self._pages(self.chapter)
        offset = self.offset
        return PageView(
            book_id=self.book.id,
            book_title=self.doc.title or self.book.title,
            author=self.doc.author,
            chapter=self.chapter,
            chapter_count=self.chapter_count,
            chapter_title=chapter.title,
            show_chapter_title=self.page == 1,
            page=self.page,
            page_count=pages.last_page if pages.count else 0,
            paragraphs=pages.slice(self.page),
            offset=offset,
            percentage=self.index.percentage(offset),
        )


__all__ = ["PageView", "ReadingSession"]
