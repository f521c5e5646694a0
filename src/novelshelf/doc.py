from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Mapping

CHAPTER_DOC_VERSION = 1


@dataclass
class Chapter:
    index: int
    title: str
    content: str

    def to_payload(self) -> dict[str, object]:
        return {"index": self.index, "title": self.title, "content": self.content}

    @classmethod
    def from_payload(cls, payload: object, position: int) -> "Chapter":
        if not isinstance(payload, Mapping):
            raise ValueError(f"Chapter entry {position} is not an object.")
        index = payload.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            index = position + 1
        title = payload.get("title")
        content = payload.get("content")
        return cls(
            index=index,
            title=title if isinstance(title, str) else "",
            content=content if isinstance(content, str) else "",
        )


@dataclass
class ChapterDoc:
    """
    Segmented book content as persisted alongside each Book.

    ``chapters`` keeps input order; ``index`` values are 1-based and dense for
    documents produced by the segmenter.
    """

    title: str
    author: str
    chapters: list[Chapter] = field(default_factory=list)
    version: int = CHAPTER_DOC_VERSION

    @property
    def total_chars(self) -> int:
        return sum(len(chapter.content) for chapter in self.chapters)

    def to_payload(self) -> dict[str, object]:
        return {
            "version": self.version,
            "title": self.title,
            "author": self.author,
            "chapters": [chapter.to_payload() for chapter in self.chapters],
        }

    def dumps(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)

    @classmethod
    def from_payload(cls, payload: object) -> "ChapterDoc":
        if not isinstance(payload, Mapping):
            raise ValueError("Chapter document must be a JSON object.")
        version = payload.get("version", CHAPTER_DOC_VERSION)
        if not isinstance(version, int) or version < 1:
            raise ValueError(f"Invalid chapter document version: {version!r}")
        if version > CHAPTER_DOC_VERSION:
            raise ValueError(
                f"Chapter document version {version} is newer than supported "
                f"({CHAPTER_DOC_VERSION})."
            )
        raw_chapters = payload.get("chapters") or []
        if not isinstance(raw_chapters, list):
            raise ValueError("Chapter document 'chapters' must be a list.")
        title = payload.get("title")
        author = payload.get("author")
        return cls(
            title=title if isinstance(title, str) else "",
            author=author if isinstance(author, str) else "",
            chapters=[
                Chapter.from_payload(entry, position)
                for position, entry in enumerate(raw_chapters)
            ],
            version=CHAPTER_DOC_VERSION,
        )

    @classmethod
    def loads(cls, raw: str) -> "ChapterDoc":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Chapter document is not valid JSON: {exc}") from exc
        return cls.from_payload(payload)


__all__ = ["CHAPTER_DOC_VERSION", "Chapter", "ChapterDoc"]
