import logging
import os

import pytest

import typedlite
from typedlite import native
from typedlite.errors import Failure, MisuseError, QueryFailure


def test_connect_creates_file(db_path):
    conn = typedlite.connect(db_path)
    assert conn.is_open
    assert os.path.exists(db_path)
    conn.close()
    assert not conn.is_open

def test_connect_accepts_pathlike(tmp_path):
    with typedlite.Connection(tmp_path / "p.db") as conn:
        assert conn.path == str(tmp_path / "p.db")
        assert conn.is_open
    assert not conn.is_open

def test_open_twice_is_misuse(conn):
    with pytest.raises(MisuseError):
        conn.open()

def test_double_close_warns(conn, caplog):
    conn.close()
    with caplog.at_level(logging.WARNING, logger="typedlite.connection"):
        conn.close()
    assert "already closed" in caplog.text

def test_query_after_close_is_misuse(conn):
    conn.close()
    with pytest.raises(MisuseError):
        conn.query("SELECT 1")

def test_cannot_open_directory(tmp_path):
    with pytest.raises(Failure) as excinfo:
        typedlite.connect(str(tmp_path))
    assert excinfo.value.code == native.SQLITE_CANTOPEN

def test_execute_ddl_and_dml(conn):
    conn.execute("CREATE TABLE foo (id INTEGER PRIMARY KEY, name TEXT)")
    conn.execute("INSERT INTO foo (name) VALUES (?)", ["alice"])
    assert conn.last_insert_row_id == 1
    assert conn.changes == 1
    conn.execute("INSERT INTO foo (name) VALUES (?)", ["bob"])
    assert conn.last_insert_row_id == 2

    rows = conn.query("SELECT name FROM foo ORDER BY id").fetch_all_rows()
    assert rows == [{"name": "alice"}, {"name": "bob"}]

def test_update_reports_changes(conn):
    conn.execute("CREATE TABLE foo (id INTEGER, v TEXT)")
    for i in range(3):
        conn.execute("INSERT INTO foo VALUES (?, ?)", [i, "x"])
    conn.execute("UPDATE foo SET v = ? WHERE id > ?", ["y", 0])
    assert conn.changes == 2

def test_syntax_error_is_query_failure(conn):
    with pytest.raises(QueryFailure) as excinfo:
        conn.query("SELEKT 1")
    assert excinfo.value.query == "SELEKT 1"
    assert isinstance(excinfo.value.error, Failure)
    assert excinfo.value.error.code == native.SQLITE_ERROR

def test_unknown_table_is_query_failure(conn):
    with pytest.raises(QueryFailure) as excinfo:
        conn.query("SELECT * FROM missing")
    assert "no such table" in excinfo.value.error.message

@pytest.mark.parametrize("sql", ["", "   ", "-- only a comment"])
def test_empty_sql_is_query_failure(conn, sql):
    with pytest.raises(QueryFailure) as excinfo:
        conn.query(sql)
    assert excinfo.value.error.code == native.SQLITE_MISUSE

def test_argument_count_mismatch_is_misuse(conn):
    with pytest.raises(MisuseError):
        conn.query("SELECT ?, ?", [1])
    with pytest.raises(MisuseError):
        conn.query("SELECT 1", [1])

def test_prepare_returns_unexecuted_statement(conn):
    statement = conn.prepare("SELECT ? + 1")
    assert statement.bind_parameter_count == 1
    assert not statement.executed
    statement.bind(41, 0)
    assert statement.execute().fetch_column(0) == 42
    assert statement.executed

def test_close_finalizes_open_statements(conn):
    statement = conn.prepare("SELECT 1")
    result = conn.query("SELECT 1 UNION ALL SELECT 2")
    assert result.has_row
    conn.close()
    assert result.closed
    assert not result.has_row
    with pytest.raises(MisuseError):
        statement.execute()

def test_close_abandons_open_transaction(conn):
    conn.begin_transaction()
    conn.close()
    assert not conn.in_transaction

def test_trace_logs_queries_and_arguments(db_path, caplog):
    conn = typedlite.connect(db_path, trace_execution=True)
    with caplog.at_level(logging.INFO, logger="typedlite.connection"):
        conn.query("SELECT ?", ["hello"])
    conn.close()
    assert "execute query: SELECT ?" in caplog.text
    assert "arg #0: 'hello'" in caplog.text

def test_trace_logs_direct_prepare(db_path, caplog):
    conn = typedlite.connect(db_path, trace_execution=True)
    with caplog.at_level(logging.INFO, logger="typedlite.connection"):
        conn.prepare("SELECT 1").close()
    conn.close()
    assert "execute query: SELECT 1" in caplog.text

def test_no_trace_by_default(conn, caplog):
    with caplog.at_level(logging.INFO, logger="typedlite.connection"):
        conn.query("SELECT 1")
    assert "execute query" not in caplog.text

def test_trace_from_environment(db_path, monkeypatch):
    monkeypatch.setenv("TYPEDLITE_TRACE", "1")
    with typedlite.connect(db_path) as conn:
        assert conn.trace_execution is True

def test_busy_retries_from_environment(db_path, monkeypatch):
    monkeypatch.setenv("TYPEDLITE_MAX_BUSY_RETRIES", "4")
    with typedlite.connect(db_path) as conn:
        assert conn.max_busy_retries == 4
    with typedlite.connect(db_path, max_busy_retries=7) as conn:
        assert conn.max_busy_retries == 7

def test_bad_busy_retries(db_path, monkeypatch):
    with pytest.raises(ValueError):
        typedlite.connect(db_path, max_busy_retries=0)
    monkeypatch.setenv("TYPEDLITE_MAX_BUSY_RETRIES", "many")
    with pytest.raises(ValueError):
        typedlite.connect(db_path)

def test_data_persists_across_connections(db_path):
    with typedlite.connect(db_path) as conn:
        conn.execute("CREATE TABLE t (v TEXT)")
        conn.execute("INSERT INTO t VALUES ('kept')")
    with typedlite.connect(db_path) as conn:
        assert conn.query("SELECT v FROM t").fetch_column("v") == "kept"

def test_reopen_after_close(conn):
    conn.execute("CREATE TABLE t (v)")
    conn.close()
    conn.open()
    assert conn.is_open
    assert conn.query("SELECT count(*) FROM t").fetch_column(0) == 0

def test_repr(conn):
    assert "open" in repr(conn)
    conn.close()
    assert "closed" in repr(conn)

def test_closed_connection_properties_are_misuse(conn):
    conn.close()
    with pytest.raises(MisuseError):
        conn.last_insert_row_id
