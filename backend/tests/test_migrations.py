from __future__ import annotations

import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from app.models import Base

VERSIONS_DIR = Path(__file__).resolve().parents[1] / "alembic" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename.removesuffix(".py"), VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_room_records_migration_matches_models() -> None:
    revision = _load_revision("20261019_01_create_room_records.py")
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            revision.upgrade()
            # Running twice is a no-op when the table already exists.
            revision.upgrade()
        columns = {column["name"] for column in inspect(connection).get_columns("room_records")}

    assert columns == set(Base.metadata.tables["room_records"].columns.keys())

    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            revision.downgrade()
        assert "room_records" not in inspect(connection).get_table_names()
    engine.dispose()
