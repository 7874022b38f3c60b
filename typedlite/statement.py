"""Prepared statements and the result sets they produce.

A statement handle has a single owner at any time: the
:class:`PreparedStatement` until ``execute()``, then the :class:`ResultSet`,
which finalizes it as soon as the cursor is exhausted or the result set is
closed.
"""

import ctypes

from . import native
from .errors import ArgumentFailure, Error, InvalidType, MisuseError

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

BLOB_TYPES = (bytes, bytearray, memoryview)


class PreparedStatement:
    def __init__(self, handle, gate, query="", owner=None):
        self._handle = handle
        self._gate = gate
        # Keeps the connection open while statements derived from it are alive.
        self._owner = owner
        self._lib = handle.lib
        self.query = query
        self._bind_parameter_count = self._lib.sqlite3_bind_parameter_count(handle.ptr)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def bind_parameter_count(self):
        return self._bind_parameter_count

    @property
    def executed(self):
        return self._handle is None

    def bind(self, value, position):
        """Bind ``value`` to the zero-based placeholder ``position``."""
        handle = self._require_handle()
        index = position + 1
        try:
            self._gate(lambda: self._bind_native(handle.ptr, index, value))
        except Error as e:
            raise ArgumentFailure(e, value, position) from e

    def _bind_native(self, ptr, index, value):
        lib = self._lib
        if value is None:
            return lib.sqlite3_bind_null(ptr, index)
        # bool first: it is an int subclass
        if isinstance(value, bool):
            return lib.sqlite3_bind_int64(ptr, index, 1 if value else 0)
        if isinstance(value, int):
            if not INT64_MIN <= value <= INT64_MAX:
                raise InvalidType(value)
            return lib.sqlite3_bind_int64(ptr, index, value)
        if isinstance(value, float):
            return lib.sqlite3_bind_double(ptr, index, value)
        if isinstance(value, str):
            encoded = value.encode("utf-8")
            return lib.sqlite3_bind_text(ptr, index, encoded, len(encoded), native.SQLITE_TRANSIENT)
        if isinstance(value, BLOB_TYPES):
            data = bytes(value)
            return lib.sqlite3_bind_blob(ptr, index, data, len(data), native.SQLITE_TRANSIENT)
        raise InvalidType(value)

    def execute(self):
        """Run the statement and hand its handle over to a new ResultSet.

        Statements are single-shot: prepare again to run the same SQL with
        new arguments.
        """
        handle = self._require_handle()
        self._handle = None
        return ResultSet(handle, self._gate, self._owner)

    def close(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.release()

    def _require_handle(self):
        if self._handle is None:
            raise MisuseError(f"statement was already executed or closed: {self.query}")
        return self._handle


class ResultSet:
    """Forward-only cursor over the rows of one executed statement.

    Construction steps once, so ``has_row`` tells straight away whether the
    statement produced data. Every fetch decodes the current row *before*
    advancing, which keeps the final row observable.
    """

    def __init__(self, handle, gate, owner=None):
        self._handle = handle
        self._gate = gate
        self._owner = owner
        self._lib = handle.lib
        self._has_row = False
        try:
            self._column_names = self._read_column_names()
            # Duplicate names resolve to the rightmost column, as in fetch_row().
            self._column_indexes = {name: index for index, name in enumerate(self._column_names)}
            self.step()
        except Exception:
            self.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self):
        return self.produce_row_sequence()

    @property
    def column_names(self):
        return list(self._column_names)

    @property
    def has_row(self):
        # The connection may have finalized the handle underneath us.
        return self._has_row and not self._handle.released

    @property
    def closed(self):
        return self._handle.released

    def close(self):
        self._has_row = False
        self._handle.release()

    def step(self):
        """Advance the cursor; finalize the statement once it is exhausted."""
        if not self._has_row and self._handle.released:
            return False
        ptr = self._handle.ptr
        rc = self._gate(lambda: self._lib.sqlite3_step(ptr))
        self._has_row = rc == native.SQLITE_ROW
        if not self._has_row:
            self.close()
        return self._has_row

    # fetch

    def fetch_row(self):
        """Return the current row as ``{column: value}`` and advance, or None."""
        if not self.has_row:
            return None
        row = {name: self._value_at(index) for index, name in enumerate(self._column_names)}
        self.step()
        return row

    def fetch_values(self):
        """Like :meth:`fetch_row` but as a tuple in column order."""
        if not self.has_row:
            return None
        values = tuple(self._value_at(index) for index in range(len(self._column_names)))
        self.step()
        return values

    def fetch_column(self, column):
        """Return one column (index or name) of the current row and advance.

        Returns None once the result set is exhausted; check :attr:`has_row`
        to tell that apart from a NULL value.
        """
        if not self.has_row:
            return None
        index = self._column_index(column)
        if index is None:
            return None
        value = self._value_at(index)
        self.step()
        return value

    # fetch all

    def fetch_all_rows(self):
        return list(self.produce_row_sequence())

    def fetch_all_of_column(self, column):
        return list(self.produce_column_sequence(column))

    # sequences

    def produce_row_sequence(self):
        while self.has_row:
            yield self.fetch_row()

    def produce_column_sequence(self, column):
        if not self.has_row:
            return iter(())
        index = self._column_index(column)
        if index is None:
            return iter(())
        return self._column_values(index)

    def _column_values(self, index):
        while self.has_row:
            value = self._value_at(index)
            self.step()
            yield value

    # internal

    def _read_column_names(self):
        ptr = self._handle.ptr
        count = self._lib.sqlite3_column_count(ptr)
        names = []
        for i in range(count):
            name = self._lib.sqlite3_column_name(ptr, i)
            names.append(name.decode("utf-8") if name else "")
        return tuple(names)

    def _column_index(self, column):
        if isinstance(column, str):
            if not self._column_names:
                # no data returned
                return None
            try:
                return self._column_indexes[column]
            except KeyError:
                raise MisuseError(f'Unknown column name "{column}"') from None
        if not 0 <= column < len(self._column_names):
            raise MisuseError(f"Column index out of range ({column})")
        return column

    def _value_at(self, index):
        ptr = self._handle.ptr
        lib = self._lib
        kind = lib.sqlite3_column_type(ptr, index)

        if kind == native.SQLITE_INTEGER:
            return lib.sqlite3_column_int64(ptr, index)
        if kind == native.SQLITE_FLOAT:
            return lib.sqlite3_column_double(ptr, index)
        if kind == native.SQLITE_TEXT:
            data = lib.sqlite3_column_text(ptr, index)
            size = lib.sqlite3_column_bytes(ptr, index)
            if not data:
                return ""
            return ctypes.string_at(data, size).decode("utf-8", errors="replace")
        if kind == native.SQLITE_BLOB:
            # The engine's buffer dies on the next step, string_at copies it.
            data = lib.sqlite3_column_blob(ptr, index)
            size = lib.sqlite3_column_bytes(ptr, index)
            if not data:
                return b""
            return ctypes.string_at(data, size)
        if kind == native.SQLITE_NULL:
            return None
        raise MisuseError(f"Unknown column type ({kind})")
