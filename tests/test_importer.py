from __future__ import annotations

import threading
from pathlib import Path

import pytest

from novelshelf.decoding import DecodeError
from novelshelf.doc import ChapterDoc
from novelshelf.importer import (
    ImportCancelled,
    ImportJob,
    ImportManager,
    NoContentError,
    import_novel,
)
from novelshelf.store import BookStore, open_store

NOVEL = "《风起》\n作者：张三\n\n第一章 开始\n风从北方来。\n\n第二章 相遇\n她站在桥上。\n"


@pytest.fixture
def book_store(tmp_path: Path) -> BookStore:
    return open_store(tmp_path / "novels.db")


def _write(tmp_path: Path, name: str, text: str, encoding: str = "utf-8") -> Path:
    path = tmp_path / name
    path.write_bytes(text.encode(encoding))
    return path


def test_import_creates_book(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "wind.txt", NOVEL)
    result = import_novel(path, book_store)

    assert result is not None
    assert result.created is True
    assert result.title == "风起"
    assert result.chapter_count == 2
    assert result.encoding == "utf-8"
    assert ChapterDoc.loads(result.content).chapters[1].content == "她站在桥上。"

    book = book_store.find_by_id(result.id)
    assert book is not None
    assert book.title == "风起"
    assert book.author == "张三"
    assert book.file_path == str(path)
    assert book_store.find_progress(result.id) is None


def test_declared_encoding_is_honoured(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "wind.txt", NOVEL, encoding="gbk")
    result = import_novel(path, book_store, encoding="gbk")
    assert result is not None
    assert result.encoding == "gb18030"
    assert result.title == "风起"


def test_undecodable_file_creates_no_book(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "wind.txt", NOVEL, encoding="gbk")
    with pytest.raises(DecodeError):
        import_novel(path, book_store, encoding="utf-8")
    assert book_store.list_all() == []


def test_title_falls_back_to_file_stem(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "无名.txt", "第一章\n正文\n")
    result = import_novel(path, book_store)
    assert result is not None
    assert result.title == "无名"


def test_progress_is_monotonic_and_completes(tmp_path: Path, book_store: BookStore) -> None:
    body = "\n".join(f"第{number}章\n正文{number}" for number in range(1, 400))
    path = _write(tmp_path, "long.txt", body)
    seen: list[int] = []
    job = ImportJob(book_store, path, on_progress=seen.append)
    job.run()

    assert seen[0] == 0
    assert seen[-1] == 100
    assert seen == sorted(set(seen))
    assert list(job.iter_progress()) == seen
    assert job.status == "success"
    assert job.finished


def test_every_subscriber_sees_the_whole_stream(tmp_path: Path, book_store: BookStore) -> None:
    job = ImportJob(book_store, _write(tmp_path, "wind.txt", NOVEL))
    live: list[list[int]] = [[], []]
    listeners = [
        threading.Thread(target=lambda out=out: out.extend(job.iter_progress()))
        for out in live
    ]
    for listener in listeners:
        listener.start()
    job.run()
    for listener in listeners:
        listener.join(timeout=5)

    assert not any(listener.is_alive() for listener in listeners)
    assert live[0] == live[1] == [0, 10, 90, 100]
    assert list(job.iter_progress()) == [0, 10, 90, 100]
    assert list(job.iter_progress()) == [0, 10, 90, 100]


def test_reimport_keeps_id_and_resets_progress(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "wind.txt", NOVEL)
    first = import_novel(path, book_store)
    assert first is not None
    book_store.upsert_progress(first.id, 5)

    path.write_text(NOVEL + "\n第三章 离别\n风停了。\n", encoding="utf-8")
    second = import_novel(path, book_store)

    assert second is not None
    assert second.id == first.id
    assert second.created is False
    assert second.chapter_count == 3
    progress = book_store.find_progress(first.id)
    assert progress is not None and progress.global_offset == 0
    assert len(book_store.list_all()) == 1


def test_file_without_headings_is_rejected(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "plain.txt", "《散文》\n只有正文。\n")
    job = ImportJob(book_store, path)
    with pytest.raises(NoContentError):
        job.run()
    assert job.status == "error"
    assert job.error is not None and "NoContentError" in job.error
    assert book_store.list_all() == []
    assert 100 not in list(job.iter_progress())


def test_single_chapter_fallback_imports_headingless_file(
    tmp_path: Path, book_store: BookStore
) -> None:
    path = _write(tmp_path, "plain.txt", "《散文》\n只有正文。\n")
    result = import_novel(path, book_store, single_chapter_fallback=True)
    assert result is not None
    assert result.chapter_count == 1
    book = book_store.find_by_id(result.id)
    assert book is not None
    assert book.content.chapters[0].title == "散文"


@pytest.mark.parametrize("path", [None, "", "   "])
def test_no_file_chosen_is_a_no_op(path: str | None, book_store: BookStore) -> None:
    assert import_novel(path, book_store) is None
    assert book_store.list_all() == []


def test_cancel_before_save_leaves_store_untouched(tmp_path: Path, book_store: BookStore) -> None:
    path = _write(tmp_path, "wind.txt", NOVEL)
    job = ImportJob(book_store, path)

    def _cancel_after_decode(percent: int) -> None:
        if percent >= 10:
            job.cancel()

    job.on_progress = _cancel_after_decode
    with pytest.raises(ImportCancelled):
        job.run()
    assert job.status == "cancelled"
    assert job.result is None
    assert book_store.list_all() == []
    assert max(job.iter_progress()) < 100


def test_missing_file_sets_error(tmp_path: Path, book_store: BookStore) -> None:
    job = ImportJob(book_store, tmp_path / "missing.txt")
    with pytest.raises(FileNotFoundError):
        job.run()
    payload = job.to_payload()
    assert payload["status"] == "error"
    assert payload["book_id"] is None
    assert payload["filename"] == "missing.txt"


def test_manager_runs_jobs_in_background(tmp_path: Path, book_store: BookStore) -> None:
    manager = ImportManager(book_store, max_workers=1)
    try:
        path = _write(tmp_path, "wind.txt", NOVEL)
        job = manager.create(path)
        assert manager.get(job.id) is job
        assert job.wait(timeout=10)

        payload = job.to_payload()
        assert payload["status"] == "success"
        assert payload["progress"] == 100
        assert payload["title"] == "风起"
        assert isinstance(payload["book_id"], int)
        assert [entry["id"] for entry in manager.list_jobs()] == [job.id]
        assert manager.get("unknown") is None
        assert manager.cancel("unknown") is False
    finally:
        manager.shutdown()


def test_manager_records_failures(tmp_path: Path, book_store: BookStore) -> None:
    manager = ImportManager(book_store, max_workers=1)
    try:
        job = manager.create(_write(tmp_path, "plain.txt", "没有章节\n"))
        assert job.wait(timeout=10)
        assert job.status == "error"
        assert list(job.iter_progress()) == [0, 10, 90]
    finally:
        manager.shutdown()
