from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Sequence

from .doc import Chapter


@dataclass(frozen=True, slots=True)
class Location:
    chapter: int  # 0-based position in ChapterDoc.chapters
    offset: int  # characters into that chapter's content


class OffsetIndex:
    """
    Maps global character offsets to chapter positions and back.

    Chapter start offsets are computed once; every caller that needs a chapter
    start, a location or a percentage goes through this table.
    """

    def __init__(self, chapters: Sequence[Chapter]) -> None:
        self.lengths = [len(chapter.content) for chapter in chapters]
        self.starts: list[int] = []
        running = 0
        for length in self.lengths:
            self.starts.append(running)
            running += length
        self.total = running

    def __len__(self) -> int:
        return len(self.lengths)

    def chapter_start(self, chapter: int) -> int:
        if chapter <= 0:
            return 0
        if chapter >= len(self.starts):
            return self.total
        return self.starts[chapter]

    def chapter_length(self, chapter: int) -> int:
        return self.lengths[chapter]

    def locate(self, global_offset: int) -> Location | None:
        if not self.lengths:
            return None
        if global_offset < 0 or global_offset >= self.total:
            return Location(0, 0)
        # Empty chapters share their start with the next chapter; bisect_right
        # lands on the last of them, which is the one holding the offset.
        chapter = bisect_right(self.starts, global_offset) - 1
        return Location(chapter, global_offset - self.starts[chapter])

    def to_global(self, chapter: int, offset: int) -> int:
        return self.chapter_start(chapter) + offset

    def clamp(self, global_offset: int) -> int:
        return min(max(global_offset, 0), self.total)

    def percentage(self, global_offset: int) -> int:
        if self.total <= 0:
            return 0
        return round(self.clamp(global_offset) / self.total * 100)


def locate(chapters: Sequence[Chapter], global_offset: int) -> Location | None:
    return OffsetIndex(chapters).locate(global_offset)


def to_global(chapters: Sequence[Chapter], chapter: int, offset: int) -> int:
    return OffsetIndex(chapters).to_global(chapter, offset)


__all__ = ["Location", "OffsetIndex", "locate", "to_global"]
