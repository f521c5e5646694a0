from __future__ import annotations

import argparse
import sys
import tomllib
from importlib import metadata
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .decoding import DecodeError
from .defaults import DEFAULT_PAGE_SIZE, default_db_path
from .importer import NoContentError
from .library import SORT_MODES, Library
from .logging_utils import build_uvicorn_log_config, configure_logging
from .reader import PageView
from .store import open_store
from .web import WebConfig, create_app


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("novelshelf")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"

COMMANDS = ("import", "list", "read", "delete", "web")


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"novelshelf {__version__}",
    )


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    _add_version_flag(parser)
    parser.add_argument(
        "--db",
        help="Path to the bookshelf database (default: $NOVELSHELF_DB or ~/.novelshelf/novels.db).",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=DEFAULT_PAGE_SIZE,
        help=f"Characters per page (default: {DEFAULT_PAGE_SIZE}).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="novelshelf",
        description=(
            "Plain-text novel bookshelf. Commands: "
            "import, list, read, delete, web. Run `novelshelf COMMAND -h` for details."
        ),
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=COMMANDS, help="Command to run.")
    return ap


def build_import_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="novelshelf import",
        description="Import a .txt novel, splitting it into chapters.",
    )
    _add_common_args(ap)
    ap.add_argument("path", nargs="?", help="Path to the .txt file.")
    ap.add_argument(
        "--encoding",
        help="Text encoding of the file (default: detect; GBK/GB18030/UTF-8/Big5 are common).",
    )
    ap.add_argument(
        "--single-chapter",
        action="store_true",
        help="Import the whole text as one chapter when no chapter headings are found.",
    )
    return ap


def build_list_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="novelshelf list", description="List books on the shelf.")
    _add_common_args(ap)
    ap.add_argument("-s", "--search", help="Only show books whose title or author contains this text.")
    ap.add_argument(
        "--sort",
        choices=SORT_MODES,
        default="recent",
        help="Sort order (default: recent).",
    )
    return ap


def build_read_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="novelshelf read",
        description="Print the current page of a book, optionally navigating first.",
    )
    _add_common_args(ap)
    ap.add_argument("book_id", type=int, help="Book id as shown by `novelshelf list`.")
    action = ap.add_mutually_exclusive_group()
    action.add_argument("--chapter", type=int, help="Jump to this chapter (1-based).")
    action.add_argument("--page", type=int, help="Go to this page of the current chapter.")
    action.add_argument("--next", action="store_true", help="Turn to the next page.")
    action.add_argument("--prev", action="store_true", help="Turn to the previous page.")
    action.add_argument("--next-chapter", action="store_true", help="Go to the next chapter.")
    action.add_argument("--prev-chapter", action="store_true", help="Go to the previous chapter.")
    return ap


def build_delete_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="novelshelf delete", description="Remove a book and its progress.")
    _add_common_args(ap)
    ap.add_argument("book_id", type=int, help="Book id as shown by `novelshelf list`.")
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="novelshelf web",
        description="Serve the bookshelf JSON API.",
    )
    _add_common_args(ap)
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    return ap


def _db_path(args: argparse.Namespace) -> Path:
    if args.db:
        return Path(args.db).expanduser().resolve()
    return default_db_path()


def _open_library(args: argparse.Namespace) -> Library:
    if args.page_size <= 0:
        raise SystemExit("--page-size must be positive.")
    return Library(open_store(_db_path(args)), page_size=args.page_size)


def _run_import(args: argparse.Namespace) -> int:
    if not args.path:
        print("No file chosen.")
        return 0
    source = Path(args.path).expanduser()
    if not source.is_file():
        raise SystemExit(f"Input file not found: {source}")
    library = _open_library(args)
    console = Console(stderr=True)
    progress: Progress | None = None
    task_id = None
    if console.is_terminal:
        progress = Progress(
            TextColumn("{task.description}", justify="left"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        progress.start()
        task_id = progress.add_task(source.name, total=100)

    def _on_progress(percent: int) -> None:
        if progress is not None and task_id is not None:
            progress.update(task_id, completed=percent)

    try:
        result = library.import_file(
            source.resolve(),
            encoding=args.encoding,
            single_chapter_fallback=args.single_chapter,
            on_progress=_on_progress,
        )
    except (DecodeError, NoContentError) as exc:
        raise SystemExit(f"Import failed: {exc}") from exc
    finally:
        if progress is not None:
            progress.stop()
    if result is None:
        print("No file chosen.")
        return 0
    verb = "Imported" if result.created else "Updated"
    print(
        f"{verb} 《{result.title}》 as book {result.id} "
        f"({result.chapter_count} chapters, {result.encoding})"
    )
    return 0


def _run_list(args: argparse.Namespace) -> int:
    library = _open_library(args)
    listings = library.list_books(query=args.search, sort=args.sort)
    if not listings:
        print("No books found.")
        return 0
    for listing in listings:
        parts = [f"{listing.id:>4}", f"《{listing.title}》"]
        if listing.author:
            parts.append(listing.author)
        parts.append(f"{listing.percentage}%")
        if listing.current_chapter:
            parts.append(listing.current_chapter)
        print("  ".join(parts))
    return 0


def _print_page(view: PageView) -> None:
    header = [f"《{view.book_title}》"]
    if view.chapter_count:
        header.append(f"{view.chapter + 1}/{view.chapter_count}")
    header.append(f"{view.page}/{view.page_count} pages")
    header.append(f"{view.percentage}%")
    print(" · ".join(header))
    print()
    if view.show_chapter_title and view.chapter_title:
        print(view.chapter_title)
        print()
    for paragraph in view.paragraphs:
        print(paragraph)
        print()


def _run_read(args: argparse.Namespace) -> int:
    library = _open_library(args)
    session = library.open(args.book_id)
    if session is None:
        raise SystemExit(f"Book not found: {args.book_id}")
    if args.chapter is not None:
        try:
            session.select_chapter(args.chapter - 1)
        except IndexError as exc:
            raise SystemExit(str(exc)) from exc
    elif args.page is not None:
        session.turn_to(args.page)
    elif args.next:
        session.next_page()
    elif args.prev:
        session.prev_page()
    elif args.next_chapter:
        session.next_chapter()
    elif args.prev_chapter:
        session.prev_chapter()
    _print_page(session.view())
    return 0


def _run_delete(args: argparse.Namespace) -> int:
    library = _open_library(args)
    if not library.delete(args.book_id):
        raise SystemExit(f"Book not found: {args.book_id}")
    print(f"Deleted book {args.book_id}")
    return 0


def _run_web(args: argparse.Namespace) -> int:
    db_path = _db_path(args)
    config = WebConfig(db_path=db_path, page_size=args.page_size)
    app = create_app(config)
    print(f"Serving novelshelf from {db_path}")
    print(f"Web URL: http://{args.host}:{args.port}/")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_config=build_uvicorn_log_config(args.debug),
    )
    return 0


_RUNNERS = {
    "import": (build_import_parser, _run_import),
    "list": (build_list_parser, _run_list),
    "read": (build_read_parser, _run_read),
    "delete": (build_delete_parser, _run_delete),
    "web": (build_web_parser, _run_web),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _RUNNERS:
        build, run = _RUNNERS[argv[0]]
        args = build().parse_args(argv[1:])
        configure_logging(args.debug)
        return run(args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
