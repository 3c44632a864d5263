import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

import scripts.init_db as init_db_script
from database import Base


def test_init_db_creates_sync_tables(engine, monkeypatch) -> None:
    Base.metadata.drop_all(engine)
    monkeypatch.setattr(init_db_script, "engine", engine)

    init_db_script.init_db(retries=1, delay=0.0)

    tables = set(inspect(engine).get_table_names())
    assert {"employes_raw_data", "employes_changes", "employes_timeline_v2"} <= tables


def test_retry_gives_up_after_the_last_attempt(monkeypatch) -> None:
    attempts = []
    monkeypatch.setattr(init_db_script.time, "sleep", lambda _delay: None)

    def _unavailable():
        attempts.append(1)
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(OperationalError):
        init_db_script._retry(_unavailable, retries=3, delay=0.0)

    assert len(attempts) == 3
