from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest
from fastapi import FastAPI, HTTPException

from novelshelf.web import WebConfig, _progress_events, create_app

NOVEL = "《风起》\n作者：张三\n第一章 开始\n风从北方来。\n第二章 相遇\n她站在桥上。\n"


def _find_route(app, path: str, method: str):
    method = method.upper()
    for route in app.router.routes:
        if getattr(route, "path", None) == path and method in getattr(route, "methods", set()):
            return route.endpoint
    raise RuntimeError(f"Route {method} {path} not found")


def _json(response) -> dict:
    return json.loads(response.body)


@pytest.fixture
def app(tmp_path: Path) -> Iterator[FastAPI]:
    app = create_app(WebConfig(db_path=tmp_path / "novels.db", page_size=1000, import_workers=1))
    try:
        yield app
    finally:
        app.state.import_manager.shutdown()


@pytest.fixture
def book_id(app: FastAPI, tmp_path: Path) -> int:
    path = tmp_path / "wind.txt"
    path.write_text(NOVEL, encoding="utf-8")
    result = app.state.library.import_file(path)
    assert result is not None
    return result.id


def test_list_books(app: FastAPI, book_id: int) -> None:
    route = _find_route(app, "/api/books", "GET")
    payload = _json(route(q=None, sort=None))
    assert [book["id"] for book in payload["books"]] == [book_id]
    assert payload["books"][0]["title"] == "风起"
    assert payload["books"][0]["percentage"] == 0

    assert _json(route(q="不存在", sort="title"))["books"] == []


def test_book_detail_lists_chapters(app: FastAPI, book_id: int) -> None:
    route = _find_route(app, "/api/books/{book_id}", "GET")
    payload = _json(route(book_id))
    assert payload["author"] == "张三"
    assert payload["chapters"] == [
        {"index": 1, "title": "第一章 开始", "length": len("风从北方来。")},
        {"index": 2, "title": "第二章 相遇", "length": len("她站在桥上。")},
    ]
    assert payload["total_chars"] == 12

    with pytest.raises(HTTPException) as excinfo:
        route(book_id + 1)
    assert excinfo.value.status_code == 404


def test_page_and_navigation(app: FastAPI, book_id: int) -> None:
    page = _json(_find_route(app, "/api/books/{book_id}/page", "GET")(book_id))
    assert page["chapter"] == 0
    assert page["show_chapter_title"] is True
    assert page["paragraphs"] == ["风从北方来。"]

    turned = _json(_find_route(app, "/api/books/{book_id}/page", "POST")(book_id, {"page": 2}))
    assert turned["moved"] is True
    assert turned["chapter"] == 1
    assert turned["offset"] == 6

    nxt = _json(_find_route(app, "/api/books/{book_id}/next-chapter", "POST")(book_id))
    assert nxt["moved"] is False
    assert nxt["chapter"] == 1

    prev = _json(_find_route(app, "/api/books/{book_id}/prev-chapter", "POST")(book_id))
    assert prev["moved"] is True
    assert prev["chapter"] == 0
    assert prev["offset"] == 0


def test_select_chapter(app: FastAPI, book_id: int) -> None:
    route = _find_route(app, "/api/books/{book_id}/chapter", "POST")
    payload = _json(route(book_id, {"chapter": 1}))
    assert payload["chapter_title"] == "第二章 相遇"
    assert payload["percentage"] == 50

    reopened = _json(_find_route(app, "/api/books/{book_id}/page", "GET")(book_id))
    assert reopened["chapter"] == 1

    for bad in ({"chapter": 5}, {"chapter": "1"}, {}):
        with pytest.raises(HTTPException) as excinfo:
            route(book_id, bad)
        assert excinfo.value.status_code == 400


def test_delete_book(app: FastAPI, book_id: int) -> None:
    route = _find_route(app, "/api/books/{book_id}", "DELETE")
    payload = _json(route(book_id))
    assert payload == {"deleted": True, "book": book_id}
    with pytest.raises(HTTPException) as excinfo:
        route(book_id)
    assert excinfo.value.status_code == 404


def test_import_job_flow(app: FastAPI, tmp_path: Path) -> None:
    path = tmp_path / "wind.txt"
    path.write_text(NOVEL, encoding="utf-8")
    created = _json(_find_route(app, "/api/imports", "POST")({"path": str(path)}))
    job_id = created["job"]["id"]

    job = app.state.import_manager.get(job_id)
    assert job is not None and job.wait(timeout=10)

    status = _json(_find_route(app, "/api/imports/{job_id}", "GET")(job_id))
    assert status["job"]["status"] == "success"
    assert status["job"]["progress"] == 100
    assert isinstance(status["job"]["book_id"], int)

    jobs = _json(_find_route(app, "/api/imports", "GET")())["jobs"]
    assert [entry["id"] for entry in jobs] == [job_id]

    events = list(_progress_events(job))
    assert events[0] == 'data: {"progress": 0}\n\n'
    assert events[-2] == 'data: {"progress": 100}\n\n'
    assert events[-1].startswith("event: done\n")
    assert list(_progress_events(job))[:-1] == events[:-1]


def test_import_without_path_is_a_no_op(app: FastAPI) -> None:
    route = _find_route(app, "/api/imports", "POST")
    assert _json(route({"path": None})) == {"job": None}
    assert _json(route({"path": "  "})) == {"job": None}
    assert _json(route({})) == {"job": None}


def test_import_rejects_bad_paths(app: FastAPI, tmp_path: Path) -> None:
    route = _find_route(app, "/api/imports", "POST")
    with pytest.raises(HTTPException) as excinfo:
        route({"path": str(tmp_path / "missing.txt")})
    assert excinfo.value.status_code == 404
    with pytest.raises(HTTPException) as excinfo:
        route({"path": 42})
    assert excinfo.value.status_code == 400


def test_unknown_job_is_404(app: FastAPI) -> None:
    for path, method in (
        ("/api/imports/{job_id}", "GET"),
        ("/api/imports/{job_id}", "DELETE"),
        ("/api/imports/{job_id}/events", "GET"),
    ):
        with pytest.raises(HTTPException) as excinfo:
            _find_route(app, path, method)("missing")
        assert excinfo.value.status_code == 404


def test_unknown_book_is_404(app: FastAPI) -> None:
    with pytest.raises(HTTPException) as excinfo:
        _find_route(app, "/api/books/{book_id}/page", "GET")(99)
    assert excinfo.value.status_code == 404
