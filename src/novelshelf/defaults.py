from __future__ import annotations

import os
from pathlib import Path

DEFAULT_PAGE_SIZE = 1000
DEFAULT_IMPORT_WORKERS = 2
DB_FILENAME = "novels.db"

DB_PATH_ENV = "NOVELSHELF_DB"
HOME_ENV = "NOVELSHELF_HOME"
IMPORT_WORKERS_ENV = "NOVELSHELF_IMPORT_WORKERS"


def data_home() -> Path:
    override = os.getenv(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".novelshelf"


def default_db_path() -> Path:
    override = os.getenv(DB_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return data_home() / DB_FILENAME


def import_workers(default: int = DEFAULT_IMPORT_WORKERS) -> int:
    workers = default
    env_workers = os.getenv(IMPORT_WORKERS_ENV)
    if env_workers:
        try:
            parsed = int(env_workers)
            if parsed > 0:
                workers = parsed
        except ValueError:
            workers = default
    return max(1, min(workers, 8))
