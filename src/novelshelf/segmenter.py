from __future__ import annotations

import re
from typing import Callable

from .doc import Chapter, ChapterDoc

TITLE_OPEN = "《"
TITLE_CLOSE = "》"
AUTHOR_PREFIX = "作者："

CHAPTER_HEADING_PATTERN = re.compile(
    r"^第[一二三四五六七八九十百千万零0-9]+[章节卷集][:：]?\s*(.*)$"
)

# Lines scanned between two progress callbacks.
_PROGRESS_STRIDE = 200

ProgressCallback = Callable[[int, int], None]


def is_chapter_heading(line: str) -> bool:
    return CHAPTER_HEADING_PATTERN.match(line.strip()) is not None


def _scan_header(lines: list[str]) -> tuple[str | None, str, int]:
    """
    Return ``(title, author, body_start)`` from the top of the book.

    ``body_start`` is the line index after the author line, or after the title
    line when no author line exists.
    """
    title: str | None = None
    title_line: int | None = None
    for position, raw in enumerate(lines):
        line = raw.strip()
        if title is None and line.startswith(TITLE_OPEN) and line.endswith(TITLE_CLOSE):
            title = line[len(TITLE_OPEN) : -len(TITLE_CLOSE)]
            title_line = position
            continue
        if line.startswith(AUTHOR_PREFIX):
            return title, line[len(AUTHOR_PREFIX) :].strip(), position + 1
    return title, "", (title_line + 1) if title_line is not None else 0


def segment(
    text: str,
    fallback_title: str,
    *,
    progress: ProgressCallback | None = None,
    single_chapter_fallback: bool = False,
) -> ChapterDoc:
    """
    Split decoded novel text into a :class:`ChapterDoc`.

    Chapters are delimited by heading lines such as ``第一章 开始``; the heading
    line becomes the chapter title and is not repeated in the content. Text
    before the first heading is treated as the title/author block.

    When no heading matches, the result has no chapters unless
    ``single_chapter_fallback`` is set, in which case the body becomes one
    chapter titled after the book.

    ``progress`` receives ``(lines_done, lines_total)``; anything it raises
    aborts the scan.
    """
    lines = text.split("\n")
    total_lines = len(lines)
    title, author, body_start = _scan_header(lines)
    if not title:
        title = fallback_title

    chapters: list[Chapter] = []
    current: Chapter | None = None
    buffer: list[str] = []
    for position, raw in enumerate(lines):
        if progress is not None and position % _PROGRESS_STRIDE == 0:
            progress(position, total_lines)
        line = raw.strip()
        if not line:
            continue
        if CHAPTER_HEADING_PATTERN.match(line):
            if current is not None:
                current.content = "\n".join(buffer)
                chapters.append(current)
                buffer = []
            current = Chapter(index=current.index + 1 if current else 1, title=line, content="")
        elif current is not None:
            buffer.append(line)

    if current is not None and buffer:
        current.content = "\n".join(buffer)
        chapters.append(current)

    if not chapters and single_chapter_fallback:
        body = [raw.strip() for raw in lines[body_start:] if raw.strip()]
        if body:
            chapters.append(Chapter(index=1, title=title, content="\n".join(body)))

    if progress is not None:
        progress(total_lines, total_lines)
    return ChapterDoc(title=title, author=author, chapters=chapters)


__all__ = [
    "AUTHOR_PREFIX",
    "CHAPTER_HEADING_PATTERN",
    "is_chapter_heading",
    "segment",
]
