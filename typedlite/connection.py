import ctypes
import logging
import os
import weakref

from . import native
from .errors import Error, Failure, MisuseError, QueryFailure
from .gate import CallGate, DEFAULT_MAX_BUSY_RETRIES
from .handles import DatabaseHandle, StatementHandle
from .statement import PreparedStatement
from .transaction import TransactionController

logger = logging.getLogger(__name__)

OPEN_FLAGS = native.SQLITE_OPEN_CREATE | native.SQLITE_OPEN_READWRITE | native.SQLITE_OPEN_FULLMUTEX

_TRUTHY = {"1", "true", "yes", "on"}


def _env_trace():
    return os.environ.get("TYPEDLITE_TRACE", "0").strip().lower() in _TRUTHY


def _env_busy_retries():
    raw = os.environ.get("TYPEDLITE_MAX_BUSY_RETRIES")
    if not raw:
        return DEFAULT_MAX_BUSY_RETRIES
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"TYPEDLITE_MAX_BUSY_RETRIES must be an integer, got {raw!r}") from None


def _weak_callbacks(connection):
    # The controller must not keep its connection alive.
    ref = weakref.ref(connection)

    def query(sql):
        return ref().query(sql)

    def engine_idle():
        return ref().autocommit

    return query, engine_idle


class Connection:
    """One open SQLite database file.

    Not safe for concurrent compound use: prepare/bind/execute sequences on
    one connection must be serialized by the caller.
    """

    _db = None

    def __init__(self, path, *, max_busy_retries=None, trace_execution=None, lifetime=None, library=None):
        self.path = os.fspath(path)
        self._lib = library if library is not None else native.load_library()
        self.trace_execution = _env_trace() if trace_execution is None else bool(trace_execution)
        self._db = DatabaseHandle(self._lib)
        self._gate = CallGate(
            self._db.error_message,
            _env_busy_retries() if max_busy_retries is None else max_busy_retries,
        )
        query, engine_idle = _weak_callbacks(self)
        self._transactions = TransactionController(query, lifetime, engine_idle)
        self.open()

    def __del__(self):
        if self._db is None or not self._db.is_open:
            return
        try:
            self.close()
        except Error:
            logger.warning("failed to close %s during teardown", self.path, exc_info=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"<Connection {self.path!r} {state}>"

    # Configuration

    @property
    def max_busy_retries(self):
        return self._gate.max_busy_retries

    @max_busy_retries.setter
    def max_busy_retries(self, value):
        self._gate.max_busy_retries = value

    # Lifecycle

    @property
    def is_open(self):
        return self._db.is_open

    def open(self):
        """Open (creating if needed) the database file; called by __init__."""
        if self._db.is_open:
            raise MisuseError(f"connection to {self.path} is already open")
        try:
            self._gate(lambda: self._db.open(self.path, OPEN_FLAGS))
        except Error:
            self._db.discard()
            raise
        logger.debug("opened %s", self.path)

    def close(self):
        if not self._db.is_open:
            logger.warning("close() called on already closed connection %s", self.path)
            return
        self._db.finalize_statements()
        self._transactions.abandon()
        self._gate(self._db.close)
        logger.debug("closed %s", self.path)

    # Execution

    @property
    def last_insert_row_id(self):
        return self._lib.sqlite3_last_insert_rowid(self._db.ptr)

    @property
    def changes(self):
        """Rows changed by the most recent INSERT/UPDATE/DELETE."""
        return self._lib.sqlite3_changes(self._db.ptr)

    @property
    def autocommit(self):
        """True when the engine itself has no transaction open."""
        return bool(self._lib.sqlite3_get_autocommit(self._db.ptr))

    def query(self, sql, arguments=()):
        """Prepare ``sql``, bind ``arguments`` positionally and execute it."""
        arguments = list(arguments)
        with self.prepare(sql) as statement:
            if len(arguments) != statement.bind_parameter_count:
                raise MisuseError(
                    f"query expects {statement.bind_parameter_count} argument(s), got {len(arguments)}: {sql}"
                )
            for position, argument in enumerate(arguments):
                self._trace("arg #%d: %r", position, argument)
                statement.bind(argument, position)
            return statement.execute()

    execute = query

    def prepare(self, sql):
        db = self._db.ptr
        self._trace("execute query: %s", sql)
        encoded = sql.encode("utf-8")
        stmt = ctypes.c_void_p()

        def prepare_v2():
            return self._lib.sqlite3_prepare_v2(db, encoded, len(encoded), ctypes.byref(stmt), None)

        try:
            self._gate(prepare_v2)
        except Error as e:
            self._lib.sqlite3_finalize(stmt)
            raise QueryFailure(e, sql) from e

        if not stmt:
            error = Failure(native.SQLITE_MISUSE, "query contains no SQL statement")
            raise QueryFailure(error, sql) from error

        handle = StatementHandle(self._lib, stmt.value)
        self._db.adopt(handle)
        return PreparedStatement(handle, self._gate, sql, owner=self)

    def _trace(self, message, *args):
        if self.trace_execution:
            logger.info(message, *args)

    # Transactions

    @property
    def in_transaction(self):
        return self._transactions.is_active

    @property
    def transaction_state(self):
        return self._transactions.state

    def begin_transaction(self):
        self._transactions.begin()

    def commit(self):
        self._transactions.commit()

    def rollback(self):
        self._transactions.rollback()

    def perform_transaction(self, body):
        """Run ``body()`` between BEGIN and COMMIT, rolling back on any error."""
        return self._transactions.perform(body)


def connect(path, **kwargs):
    return Connection(path, **kwargs)
