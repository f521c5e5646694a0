from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator
from uuid import uuid4

from .decoding import read_text_file
from .defaults import import_workers
from .segmenter import segment
from .store import BookStore

logger = logging.getLogger(__name__)

# Percentages reported at the end of each import phase.
_DECODED_PERCENT = 10
_SEGMENTED_PERCENT = 90
_DONE_PERCENT = 100


class NoContentError(ValueError):
    """Raised when no chapter heading is found in an imported file."""


class ImportCancelled(RuntimeError):
    """Raised inside a running import after :meth:`ImportJob.cancel`."""


@dataclass
class ImportResult:
    id: int
    title: str
    content: str
    created: bool
    chapter_count: int
    encoding: str

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "created": self.created,
            "chapter_count": self.chapter_count,
            "encoding": self.encoding,
        }


class ImportJob:
    """
    One import of a plain-text file into the store.

    Progress is recorded as increasing integer percentages. Each call to
    :meth:`iter_progress` replays what was recorded so far and then follows
    live updates; the stream ends after 100 on success, or early when the
    import fails or is cancelled.
    """

    def __init__(
        self,
        store: BookStore,
        source_path: Path | str,
        *,
        encoding: str | None = None,
        single_chapter_fallback: bool = False,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        self.store = store
        self.id = uuid4().hex
        self.source_path = Path(source_path)
        self.filename = self.source_path.name
        self.encoding = encoding
        self.single_chapter_fallback = single_chapter_fallback
        self.on_progress = on_progress
        self.status = "pending"
        self.message: str | None = "Waiting to start"
        self.error: str | None = None
        self.percent: int | None = None
        self.result: ImportResult | None = None
        self.created_at = datetime.now(timezone.utc)
        self.updated_at = self.created_at
        self.lock = threading.Lock()
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._history: list[int] = []
        self._changed = threading.Condition(self.lock)

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def set_status(self, status: str, message: str | None = None) -> None:
        with self.lock:
            self.status = status
            if message is not None:
                self.message = message
            self._touch()

    def set_error(self, message: str) -> None:
        with self.lock:
            self.status = "error"
            self.error = message
            self.message = message
            self._touch()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def iter_progress(self) -> Iterator[int]:
        seen = 0
        while True:
            with self._changed:
                while seen >= len(self._history) and not self._done.is_set():
                    self._changed.wait()
                batch = self._history[seen:]
            if not batch:
                return
            seen += len(batch)
            yield from batch

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ImportCancelled(f"Import of {self.filename} cancelled")

    def _report(self, percent: int) -> None:
        with self.lock:
            if self.percent is not None and percent <= self.percent:
                return
            self.percent = percent
            self._history.append(percent)
            self._touch()
            self._changed.notify_all()
        if self.on_progress is not None:
            self.on_progress(percent)

    def _segment_progress(self, done: int, total: int) -> None:
        self._check_cancelled()
        span = _SEGMENTED_PERCENT - _DECODED_PERCENT
        fraction = done / total if total else 1.0
        self._report(_DECODED_PERCENT + int(span * fraction))

    def run(self) -> ImportResult:
        self.set_status("running", f"Reading {self.filename}…")
        try:
            self._report(0)
            self._check_cancelled()
            decoded = read_text_file(self.source_path, self.encoding)
            self._report(_DECODED_PERCENT)
            self.set_status("running", f"Splitting chapters ({decoded.encoding})…")
            doc = segment(
                decoded.text,
                self.source_path.stem,
                progress=self._segment_progress,
                single_chapter_fallback=self.single_chapter_fallback,
            )
            if not doc.chapters:
                raise NoContentError(f"No chapter headings found in {self.source_path}")
            self._check_cancelled()
            self.set_status("running", "Saving…")
            book_id, created = self.store.save_import(
                doc.title, doc.author, str(self.source_path), doc
            )
            result = ImportResult(
                id=book_id,
                title=doc.title,
                content=doc.dumps(),
                created=created,
                chapter_count=len(doc.chapters),
                encoding=decoded.encoding,
            )
            with self.lock:
                self.result = result
            self._report(_DONE_PERCENT)
            verb = "Imported" if created else "Re-imported"
            self.set_status("success", f"{verb} {doc.title} ({len(doc.chapters)} chapters)")
            logger.info(
                "%s %s as book %d (%d chapters, %s)",
                verb,
                self.source_path,
                book_id,
                len(doc.chapters),
                decoded.encoding,
            )
            return result
        except ImportCancelled:
            self.set_status("cancelled", "Import cancelled")
            raise
        except Exception as exc:
            self.set_error(f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            with self._changed:
                self._done.set()
                self._changed.notify_all()

    def to_payload(self) -> dict[str, object]:
        with self.lock:
            result = self.result
            return {
                "id": self.id,
                "filename": self.filename,
                "path": str(self.source_path),
                "status": self.status,
                "message": self.message,
                "error": self.error,
                "progress": self.percent,
                "book_id": result.id if result else None,
                "title": result.title if result else None,
                "created": self.created_at.isoformat(),
                "updated": self.updated_at.isoformat(),
            }


def import_novel(
    path: Path | str | None,
    store: BookStore,
    *,
    encoding: str | None = None,
    single_chapter_fallback: bool = False,
    on_progress: Callable[[int], None] | None = None,
) -> ImportResult | None:
    """Import ``path`` synchronously; ``None``/empty path means no file was chosen."""
    if path is None or not str(path).strip():
        return None
    job = ImportJob(
        store,
        path,
        encoding=encoding,
        single_chapter_fallback=single_chapter_fallback,
        on_progress=on_progress,
    )
    return job.run()


class ImportManager:
    def __init__(self, store: BookStore, max_workers: int | None = None) -> None:
        self.store = store
        self.lock = threading.Lock()
        workers = import_workers() if max_workers is None else max(1, max_workers)
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="novelshelf-import")
        self.jobs: dict[str, ImportJob] = {}

    def create(
        self,
        source_path: Path | str,
        *,
        encoding: str | None = None,
        single_chapter_fallback: bool = False,
    ) -> ImportJob:
        job = ImportJob(
            self.store,
            source_path,
            encoding=encoding,
            single_chapter_fallback=single_chapter_fallback,
        )
        return self.enqueue(job)

    def enqueue(self, job: ImportJob) -> ImportJob:
        with self.lock:
            self.jobs[job.id] = job
        self.executor.submit(self._run_job, job)
        return job

    def get(self, job_id: str) -> ImportJob | None:
        with self.lock:
            return self.jobs.get(job_id)

    def cancel(self, job_id: str) -> bool:
        job = self.get(job_id)
        if job is None:
            return False
        job.cancel()
        return True

    def list_jobs(self) -> list[dict[str, object]]:
        with self.lock:
            snapshot = list(self.jobs.values())
        snapshot.sort(key=lambda job: job.updated_at, reverse=True)
        return [job.to_payload() for job in snapshot]

    def shutdown(self) -> None:
        with self.lock:
            jobs = list(self.jobs.values())
        for job in jobs:
            if not job.finished:
                job.cancel()
        self.executor.shutdown(wait=False, cancel_futures=False)

    def _run_job(self, job: ImportJob) -> None:
        try:
            job.run()
        except ImportCancelled:
            logger.info("Import %s cancelled", job.id)
        except Exception as exc:
            # The failure is already recorded on the job for API polling.
            logger.warning("Import %s of %s failed: %s", job.id, job.source_path, exc)


__all__ = [
    "ImportCancelled",
    "ImportJob",
    "ImportManager",
    "ImportResult",
    "NoContentError",
    "import_novel",
]
