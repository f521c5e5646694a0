from .decoding import DecodeError, decode_bytes
from .doc import Chapter, ChapterDoc
from .importer import (
    ImportCancelled,
    ImportJob,
    ImportManager,
    ImportResult,
    NoContentError,
    import_novel,
)
from .library import Library
from .offsets import Location, OffsetIndex, locate, to_global
from .pagination import Paginator, page_count, page_slice
from .progress import ProgressTracker, ReadingPosition
from .reader import PageView, ReadingSession
from .segmenter import segment
from .store import Book, BookStore, Database, open_store

__all__ = [
    "Book",
    "BookStore",
    "Chapter",
    "ChapterDoc",
    "Database",
    "DecodeError",
    "ImportCancelled",
    "ImportJob",
    "ImportManager",
    "ImportResult",
    "Library",
    "Location",
    "NoContentError",
    "OffsetIndex",
    "PageView",
    "Paginator",
    "ProgressTracker",
    "ReadingPosition",
    "ReadingSession",
    "decode_bytes",
    "import_novel",
    "locate",
    "open_store",
    "page_count",
    "page_slice",
    "segment",
    "to_global",
]
