"""PEP 249 (DB-API 2.0) interface over :mod:`typedlite`.

Rows are tuples, ``paramstyle`` is ``qmark`` (``:name`` mappings are also
accepted and rewritten to numbered placeholders), and DML statements open a
transaction implicitly that ``commit()``/``rollback()`` end.
"""

import collections.abc
import datetime
import decimal
import json
import logging
import re
import uuid
import weakref

from . import native
from .connection import Connection as _CoreConnection
from .errors import (
    Error as _CoreError, TooBusy, InvalidType, Failure, QueryFailure, ArgumentFailure,
    RollbackFailure,
)
from .escape import escape

logger = logging.getLogger(__name__)

# DB-API 2.0 Globals
apilevel = "2.0"
threadsafety = 1  # Threads may share the module, but not connections
paramstyle = "qmark"  # ? placeholders; :name mappings are rewritten to ?N


def __getattr__(name):
    # Resolved lazily so importing the module does not load the native library.
    if name == "sqlite_version":
        return native.library_version()[0]
    if name == "sqlite_version_info":
        return native.library_version()[1]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


# Exceptions
class Error(Exception):
    pass

class Warning(Exception):
    pass

class InterfaceError(Error):
    pass

class DatabaseError(Error):
    pass

class InternalError(DatabaseError):
    pass

class OperationalError(DatabaseError):
    pass

class ProgrammingError(DatabaseError):
    pass

class IntegrityError(DatabaseError):
    pass

class DataError(DatabaseError):
    pass

class NotSupportedError(DatabaseError):
    pass


_FAILURE_CLASSES = {
    native.SQLITE_CONSTRAINT: IntegrityError,
    native.SQLITE_MISMATCH: IntegrityError,
    native.SQLITE_TOOBIG: DataError,
    native.SQLITE_MISUSE: ProgrammingError,
    native.SQLITE_RANGE: ProgrammingError,
    native.SQLITE_INTERNAL: InternalError,
    native.SQLITE_NOTFOUND: InternalError,
    native.SQLITE_CORRUPT: DatabaseError,
    native.SQLITE_NOTADB: DatabaseError,
}
for _code in (
    native.SQLITE_ERROR, native.SQLITE_PERM, native.SQLITE_ABORT, native.SQLITE_BUSY,
    native.SQLITE_LOCKED, native.SQLITE_NOMEM, native.SQLITE_READONLY, native.SQLITE_INTERRUPT,
    native.SQLITE_IOERR, native.SQLITE_FULL, native.SQLITE_CANTOPEN, native.SQLITE_PROTOCOL,
    native.SQLITE_EMPTY, native.SQLITE_SCHEMA,
):
    _FAILURE_CLASSES[_code] = OperationalError


def _format_value_for_error(v, *, max_str=200, max_bytes=64):
    if v is None:
        return None
    if isinstance(v, (bool, int, float)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
        if len(b) <= max_bytes:
            return {"_type": "bytes", "hex": b.hex(), "len": len(b)}
        head = b[:max_bytes]
        return {"_type": "bytes", "hex_prefix": head.hex(), "len": len(b)}
    if isinstance(v, str):
        if len(v) <= max_str:
            return v
        return v[:max_str] + "…"
    # Fall back to capped repr
    s = repr(v)
    if len(s) <= max_str:
        return s
    return s[:max_str] + "…"

def _format_params_for_error(params, *, max_items=50):
    if params is None:
        return None
    if isinstance(params, collections.abc.Mapping):
        out = {}
        for i, (k, v) in enumerate(params.items()):
            if i >= max_items:
                out["_truncated"] = True
                break
            out[str(k)] = _format_value_for_error(v)
        return out
    # Sequence-like
    try:
        seq = list(params)
    except TypeError:
        return _format_value_for_error(params)
    if len(seq) > max_items:
        seq = seq[:max_items] + ["<truncated>"]
    return [_format_value_for_error(v) for v in seq]

def _raise_error(error, *, sql=None, params=None):
    """Re-raise a core error as the matching DB-API exception."""
    cause = error
    while isinstance(cause, (QueryFailure, ArgumentFailure)):
        cause = cause.error

    code = None
    if isinstance(cause, Failure):
        code = cause.code
        exc_class = _FAILURE_CLASSES.get(native.primary_code(code), DatabaseError)
        msg_str = cause.message
    elif isinstance(cause, TooBusy):
        code = native.SQLITE_BUSY
        exc_class = OperationalError
        msg_str = str(cause)
    elif isinstance(cause, InvalidType):
        exc_class = ProgrammingError
        msg_str = str(error)
    elif isinstance(cause, RollbackFailure):
        exc_class = OperationalError
        msg_str = str(cause)
    else:
        exc_class = DatabaseError
        msg_str = str(cause)

    if sql is not None:
        ctx = {
            "native_code": code,
            "sql": sql,
            "params": _format_params_for_error(params),
        }
        msg_str = msg_str + "\nContext: " + json.dumps(ctx, ensure_ascii=False)

    exc = exc_class(msg_str)
    exc.sqlite_errorcode = code
    raise exc from error

# Types
Date = datetime.date
Time = datetime.time
Timestamp = datetime.datetime
def DateFromTicks(ticks): return datetime.date.fromtimestamp(ticks)
def TimeFromTicks(ticks): return datetime.datetime.fromtimestamp(ticks).time()
def TimestampFromTicks(ticks): return datetime.datetime.fromtimestamp(ticks)
def Binary(string): return bytes(string)
STRING = str
BINARY = bytes
NUMBER = float
DATETIME = datetime.datetime
ROWID = int


def _adapt(value):
    # Values the engine has no storage class for are stored the way
    # Python's sqlite3 module stores them.
    if isinstance(value, datetime.datetime):
        return value.isoformat(" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return value.bytes
    return value


# Placeholder scanning skips quoted literals and identifiers.
_TOKENS = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|:([A-Za-z_][A-Za-z0-9_]*)|(\?)""")

_DML_PREFIXES = ("INSERT", "UPDATE", "DELETE", "REPLACE")


def _lstrip_comments(sql):
    while True:
        sql = sql.lstrip()
        if sql.startswith("--"):
            end = sql.find("\n")
            if end < 0:
                return ""
            sql = sql[end + 1:]
        elif sql.startswith("/*"):
            end = sql.find("*/")
            if end < 0:
                return ""
            sql = sql[end + 2:]
        else:
            return sql


def _is_dml(sql):
    return _lstrip_comments(sql).upper().startswith(_DML_PREFIXES)


def _convert_params(sql, params):
    if params is None:
        return sql, []

    if isinstance(params, collections.abc.Mapping):
        # :name -> ?N, the same name always maps to the same N.
        param_map = {}
        new_params = []

        def replace(match):
            name, qmark = match.group(1), match.group(2)
            if qmark:
                raise ProgrammingError("Mixed parameter styles are not supported: got named parameters with qmark placeholders")
            if name is None:
                return match.group(0)
            if name not in param_map:
                if name not in params:
                    raise ProgrammingError(f"Missing parameter '{name}'")
                new_params.append(params[name])
                param_map[name] = len(new_params)
            return f"?{param_map[name]}"

        return _TOKENS.sub(replace, sql), new_params

    if isinstance(params, (str, bytes)):
        raise ProgrammingError("parameters must be a sequence or a mapping, not a string")
    for match in _TOKENS.finditer(sql):
        if match.group(1):
            raise ProgrammingError("Mixed parameter styles are not supported: got positional parameters with named placeholders")
    return sql, list(params)


class Cursor:
    def __init__(self, connection):
        self._connection = connection
        self._result = None
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self.arraysize = 1
        self._closed = False

    @property
    def connection(self):
        return self._connection

    def close(self):
        if self._closed:
            return
        self._discard_result()
        self._closed = True

    def _discard_result(self):
        if self._result is not None:
            self._result.close()
            self._result = None
        self.description = None

    def _check_open(self):
        if self._closed:
            raise ProgrammingError("Cursor is closed")
        self._connection._check_open()

    def execute(self, operation, parameters=None):
        self._check_open()
        self._discard_result()
        self.rowcount = -1

        sql, params = _convert_params(operation, parameters)
        dml = _is_dml(sql)
        self._result = self._connection._run(sql, params, begin=dml)

        names = self._result.column_names
        if names:
            self.description = tuple((name, None, None, None, None, None, None) for name in names)
        if dml:
            self.rowcount = self._connection._core.changes
        self.lastrowid = self._connection._core.last_insert_row_id
        return self

    def executemany(self, operation, seq_of_parameters):
        total = 0
        dml = False
        for params in seq_of_parameters:
            self.execute(operation, params)
            if self.rowcount >= 0:
                dml = True
                total += self.rowcount
        self.rowcount = total if dml else -1
        return self

    def fetchone(self):
        self._check_open()
        if self._result is None:
            raise ProgrammingError("No statement")
        try:
            return self._result.fetch_values()
        except _CoreError as e:
            _raise_error(e)

    def fetchmany(self, size=None):
        if size is None:
            size = self.arraysize
        rows = []
        for _ in range(size):
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def fetchall(self):
        rows = []
        while True:
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def setinputsizes(self, sizes):
        pass

    def setoutputsize(self, size, column=None):
        pass

    def __iter__(self):
        return self

    def __next__(self):
        r = self.fetchone()
        if r is None:
            raise StopIteration
        return r


class Connection:
    def __init__(self, database, *, max_busy_retries=None, trace_execution=None, lifetime=None):
        try:
            self._core = _CoreConnection(
                database,
                max_busy_retries=max_busy_retries,
                trace_execution=trace_execution,
                lifetime=lifetime,
            )
        except _CoreError as e:
            _raise_error(e)
        self._closed = False
        self.cursors = weakref.WeakSet()

    @property
    def in_transaction(self):
        return not self._closed and self._core.in_transaction

    def _check_open(self):
        if self._closed:
            raise ProgrammingError("Connection closed")

    def _run(self, sql, params, begin=False):
        core = self._core
        if begin and not core.in_transaction and core.autocommit:
            logger.debug("opening implicit transaction before DML")
            try:
                core.begin_transaction()
            except _CoreError as e:
                _raise_error(e, sql="BEGIN TRANSACTION")

        try:
            statement = core.prepare(sql)
        except _CoreError as e:
            _raise_error(e, sql=sql, params=params)

        with statement:
            expected = statement.bind_parameter_count
            if len(params) != expected:
                raise ProgrammingError(
                    f"Incorrect number of parameters: expected {expected}, got {len(params)}"
                )
            try:
                for position, param in enumerate(params):
                    statement.bind(_adapt(param), position)
                return statement.execute()
            except _CoreError as e:
                _raise_error(e, sql=sql, params=params)

    def close(self):
        if self._closed:
            return
        for c in list(self.cursors):
            c.close()
        self.cursors.clear()
        try:
            self._core.close()
        except _CoreError as e:
            _raise_error(e)
        self._closed = True

    def commit(self):
        self._check_open()
        if not self._core.in_transaction:
            return
        try:
            self._core.commit()
        except _CoreError as e:
            _raise_error(e, sql="COMMIT TRANSACTION")

    def rollback(self):
        self._check_open()
        if not self._core.in_transaction:
            return
        try:
            self._core.rollback()
        except _CoreError as e:
            _raise_error(e, sql="ROLLBACK TRANSACTION")

    def cursor(self):
        self._check_open()
        c = Cursor(self)
        self.cursors.add(c)
        return c

    def execute(self, operation, parameters=None):
        # Convenience method
        c = self.cursor()
        c.execute(operation, parameters)
        return c

    def executemany(self, operation, seq_of_parameters):
        c = self.cursor()
        c.executemany(operation, seq_of_parameters)
        return c

    def list_tables(self):
        c = self.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        try:
            return [row[0] for row in c.fetchall()]
        finally:
            c.close()

    def get_table_columns(self, table_name: str):
        c = self.execute(f"PRAGMA table_info({escape(table_name)})")
        try:
            return [
                {
                    "name": name,
                    "type": decl_type,
                    "not_null": bool(not_null),
                    "default": default,
                    "primary_key": bool(pk),
                }
                for _cid, name, decl_type, not_null, default, pk in c.fetchall()
            ]
        finally:
            c.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type:
                self.rollback()
            else:
                self.commit()
        finally:
            self.close()


def connect(database, **kwargs):
    """Open ``database`` (a path); keyword arguments go to the core connection."""
    return Connection(database, **kwargs)
