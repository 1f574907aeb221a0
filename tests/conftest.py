# Test configuration

import json
import os
import sys

import pytest
from sqlalchemy.orm import sessionmaker

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at a scratch data dir and in-memory SQLite."""
    from src.config.settings import Settings
    return Settings(
        data_dir=str(tmp_path / "data"),
        database_url="sqlite://",
        persist_profiles=False,
        log_json=False,
        export_csv_on_finish=False,
    )


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with the catalog tables created."""
    from src.catalog.database import build_engine, init_db
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Session bound to the in-memory engine."""
    session = sessionmaker(bind=db_engine, autoflush=False, future=True)()
    yield session
    session.close()


@pytest.fixture
def films_csv(tmp_path):
    """Small CSV with a PK-like column, a multi-value column and messy headers."""
    path = tmp_path / "films.csv"
    path.write_text(
        "Film ID,Title,Genres,Is Released,Rating\n"
        "f-1,Alien,Horror|Sci-Fi,true,8.5\n"
        "f-2,Heat,Crime,false,8.3\n"
        "f-3,Up,Animation|Family, true ,8.2\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def write_jsonl(tmp_path):
    """Write a list of records to a JSONL file under tmp_path."""
    def _write(name, records):
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record) + "\n")
        return path
    return _write
