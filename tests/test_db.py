import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from ledger.db import wait_for_db
from ledger.models import Deployment, Film


@pytest.fixture
def bare_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


def test_creates_all_tables(bare_engine):
    wait_for_db(bare_engine, max_retries=1, retry_delay=0)

    inspector = inspect(bare_engine)
    for table in ("deployment", "film", "filmaddedevent", "account"):
        assert inspector.has_table(table)


def test_fills_in_missing_tables(bare_engine):
    SQLModel.metadata.create_all(bare_engine, tables=[Deployment.__table__, Film.__table__])
    assert not inspect(bare_engine).has_table("account")

    wait_for_db(bare_engine, max_retries=1, retry_delay=0)

    inspector = inspect(bare_engine)
    assert inspector.has_table("account")
    assert inspector.has_table("filmaddedevent")


def test_gives_up_after_retries(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'films.db'}")

    with pytest.raises(RuntimeError, match="after 2 attempts") as exc:
        wait_for_db(engine, max_retries=2, retry_delay=0)
    assert isinstance(exc.value.__cause__, OperationalError)
