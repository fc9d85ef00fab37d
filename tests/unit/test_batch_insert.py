from __future__ import annotations

import pytest

from cartera_import.db.batch_insert import BatchInsertError, InsertResult, batch_insert


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []


# execute_values is patched inside the module so no database is needed

@pytest.fixture()
def fetched():
    return [(1,), (2,)]


@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch, fetched):
    import cartera_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=1000, fetch=False):
        cursor.queries.append(sql)
        return fetched[: len(rows)] if fetch else None

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def test_batch_insert_basic():
    cur = DummyCursor()
    res = batch_insert(cur, table="contribuyentes", columns=["nit", "nombre"], rows=[["1", "A"], ["2", "B"]])
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 2
    assert res.returned_values is None
    assert cur.queries == ['INSERT INTO contribuyentes ("nit","nombre") VALUES %s']


def test_batch_insert_returning():
    cur = DummyCursor()
    res = batch_insert(cur, table="procesos", columns=["vigencia"], rows=[[2023], [2024]], returning="id")
    assert res.returned_values == [1, 2]
    assert cur.queries[0].endswith('RETURNING "id"')


def test_batch_insert_empty_rows():
    res = batch_insert(DummyCursor(), table="procesos", columns=["id"], rows=[], returning="id")
    assert res.inserted_rows == 0
    assert res.returned_values == []


def test_batch_insert_returning_count_mismatch(monkeypatch):
    import cartera_import.db.batch_insert as bi

    monkeypatch.setattr(bi, "execute_values", lambda *a, **k: [(1,)])
    with pytest.raises(BatchInsertError, match="returned 1 ids for 2 rows"):
        batch_insert(DummyCursor(), table="t", columns=["c"], rows=[[1], [2]], returning="id")


def test_batch_insert_wraps_driver_error(monkeypatch):
    import cartera_import.db.batch_insert as bi

    def boom(*args, **kwargs):
        raise RuntimeError("duplicate key value")

    monkeypatch.setattr(bi, "execute_values", boom)
    with pytest.raises(BatchInsertError, match="insert into t failed: duplicate key value"):
        batch_insert(DummyCursor(), table="t", columns=["c"], rows=[[1]])
