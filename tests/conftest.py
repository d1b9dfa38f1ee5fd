import importlib
import os
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"

    import app.partsflow.core.config as config
    import app.partsflow.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


@pytest.fixture()
def client(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'test.db'}"

    _run_migrations(database_url)
    app, session = _setup_app(database_url)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    session.engine.dispose()


@pytest.fixture()
def db_session(client):
    from app.partsflow.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def frozen_clock(client):
    from app.partsflow.core.clock import get_clock

    clock = FrozenClock(datetime(2025, 3, 1, 12, 0, 0))
    client.app.dependency_overrides[get_clock] = lambda: clock
    return clock
