"""Pytest configuration and fixtures for schemagraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from schemagraph.catalog import DEFAULT_CATALOG
from schemagraph.datamodel import Datamodel, reset_datamodel
from schemagraph.storage import SqlStore

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_config(temp_dir: Path, monkeypatch) -> Generator[Path, None, None]:
    """Point every configuration path at a temporary home directory."""
    home = temp_dir / "home"
    monkeypatch.setattr("schemagraph.config.BASE_DIR", home)
    monkeypatch.setattr("schemagraph.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr("schemagraph.config.DATABASE_PATH", home / "schemagraph.db")
    monkeypatch.setattr("schemagraph.config.CATALOG_PATH", "")
    monkeypatch.setattr("schemagraph.config.DEFAULT_EDGE_COST", 10)
    monkeypatch.setattr("schemagraph.config.LOG_LEVEL", "WARNING")
    reset_datamodel()
    yield home
    reset_datamodel()


@pytest.fixture(scope="session")
def datamodel() -> Datamodel:
    """Registry built from the bundled catalog."""
    return Datamodel.from_catalog(DEFAULT_CATALOG)


@pytest.fixture
def research_db(temp_dir: Path) -> Path:
    """SQLite file holding the seeded research projects."""
    db_path = temp_dir / "research.db"
    store = SqlStore(db_path)
    store.executescript((FIXTURES / "research_project.sql").read_text(encoding="utf-8"))
    store.close()
    return db_path


@pytest.fixture
def store(research_db: Path) -> Generator[SqlStore, None, None]:
    """Open store over the seeded research database."""
    sql_store = SqlStore(research_db)
    yield sql_store
    sql_store.close()
