"""Root conftest: load test environment variables, configure structlog, and provide a fresh store."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import structlog
from dotenv import load_dotenv

from shared.db import Database, SqliteSessionStore

if TYPE_CHECKING:
    from collections.abc import Iterator

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Route structlog through stdlib logging so caplog sees store and synchronizer events.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    database = Database(tmp_path / "bingo.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> SqliteSessionStore:
    return SqliteSessionStore(db)
