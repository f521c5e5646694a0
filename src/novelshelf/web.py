from __future__ import annotations

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterator

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse

from .defaults import DEFAULT_PAGE_SIZE
from .importer import ImportJob, ImportManager
from .library import Library
from .reader import ReadingSession
from .store import open_store


@dataclass(slots=True)
class WebConfig:
    db_path: Path
    page_size: int = DEFAULT_PAGE_SIZE
    import_workers: int | None = None


def _required_int(payload: dict[str, object], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{key} must be an integer.")
    return value


def _progress_events(job: ImportJob) -> Iterator[str]:
    for percent in job.iter_progress():
        yield f"data: {json.dumps({'progress': percent})}\n\n"
    yield f"event: done\ndata: {json.dumps(job.to_payload(), ensure_ascii=False)}\n\n"


def create_app(config: WebConfig) -> FastAPI:
    store = open_store(config.db_path.expanduser().resolve())
    library = Library(store, page_size=config.page_size)
    import_manager = ImportManager(store, max_workers=config.import_workers)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            import_manager.shutdown()

    app = FastAPI(title="novelshelf", lifespan=lifespan)
    app.state.config = config
    app.state.library = library
    app.state.import_manager = import_manager

    def _open_session(book_id: int) -> ReadingSession:
        session = library.open(book_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Book not found")
        return session

    def _get_job(job_id: str) -> ImportJob:
        job = import_manager.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Import job not found")
        return job

    @app.get("/api/books")
    def api_books(
        q: str | None = Query(None, description="Filter by title or author"),
        sort: str | None = Query(None, description="Sort order: recent, title, or author"),
    ) -> JSONResponse:
        listings = library.list_books(query=q, sort=sort)
        return JSONResponse({"books": [listing.to_payload() for listing in listings]})

    @app.get("/api/books/{book_id}")
    def api_book(book_id: int) -> JSONResponse:
        book = library.get(book_id)
        if book is None:
            raise HTTPException(status_code=404, detail="Book not found")
        payload: dict[str, object] = {
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "file_path": book.file_path,
            "created_at": book.created_at,
            "updated_at": book.updated_at,
            "chapters": [
                {"index": chapter.index, "title": chapter.title, "length": len(chapter.content)}
                for chapter in book.content.chapters
            ],
            "total_chars": book.content.total_chars,
        }
        return JSONResponse(payload)

    @app.delete("/api/books/{book_id}")
    def api_delete_book(book_id: int) -> JSONResponse:
        if not library.delete(book_id):
            raise HTTPException(status_code=404, detail="Book not found")
        return JSONResponse({"deleted": True, "book": book_id})

    @app.get("/api/books/{book_id}/page")
    def api_page(book_id: int) -> JSONResponse:
        session = _open_session(book_id)
        return JSONResponse(session.view().to_payload())

    @app.post("/api/books/{book_id}/chapter")
    def api_select_chapter(
        book_id: int,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        session = _open_session(book_id)
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        chapter = _required_int(payload, "chapter")
        try:
            session.select_chapter(chapter)
        except IndexError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(session.view().to_payload())

    @app.post("/api/books/{book_id}/page")
    def api_turn_page(
        book_id: int,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        session = _open_session(book_id)
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        page = _required_int(payload, "page")
        moved = session.turn_to(page)
        return JSONResponse({**session.view().to_payload(), "moved": moved})

    @app.post("/api/books/{book_id}/next-chapter")
    def api_next_chapter(book_id: int) -> JSONResponse:
        session = _open_session(book_id)
        moved = session.next_chapter()
        return JSONResponse({**session.view().to_payload(), "moved": moved})

    @app.post("/api/books/{book_id}/prev-chapter")
    def api_prev_chapter(book_id: int) -> JSONResponse:
        session = _open_session(book_id)
        moved = session.prev_chapter()
        return JSONResponse({**session.view().to_payload(), "moved": moved})

    @app.get("/api/imports")
    def api_imports() -> JSONResponse:
        return JSONResponse({"jobs": import_manager.list_jobs()})

    @app.post("/api/imports")
    def api_create_import(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        raw_path = payload.get("path")
        if raw_path is None or (isinstance(raw_path, str) and not raw_path.strip()):
            return JSONResponse({"job": None})
        if not isinstance(raw_path, str):
            raise HTTPException(status_code=400, detail="path must be a string.")
        source = Path(raw_path).expanduser()
        if not source.is_file():
            raise HTTPException(status_code=404, detail=f"File not found: {source}")
        encoding = payload.get("encoding")
        if encoding is not None and not isinstance(encoding, str):
            raise HTTPException(status_code=400, detail="encoding must be a string or null.")
        job = import_manager.create(
            source.resolve(),
            encoding=encoding or None,
            single_chapter_fallback=bool(payload.get("single_chapter")),
        )
        return JSONResponse({"job": job.to_payload()})

    @app.get("/api/imports/{job_id}")
    def api_import_status(job_id: str) -> JSONResponse:
        return JSONResponse({"job": _get_job(job_id).to_payload()})

    @app.delete("/api/imports/{job_id}")
    def api_cancel_import(job_id: str) -> JSONResponse:
        job = _get_job(job_id)
        job.cancel()
        return JSONResponse({"job": job.to_payload(), "cancel_requested": True})

    @app.get("/api/imports/{job_id}/events")
    def api_import_events(job_id: str) -> StreamingResponse:
        job = _get_job(job_id)
        return StreamingResponse(_progress_events(job), media_type="text/event-stream")

    return app


__all__ = ["WebConfig", "create_app"]
