import ctypes
import logging
import weakref

from . import native
from .errors import MisuseError

logger = logging.getLogger(__name__)


class StatementHandle:
    """Exclusive owner of one ``sqlite3_stmt*``.

    ``release()`` finalizes the statement at most once; later calls, and the
    garbage-collection fallback in ``__del__``, are no-ops.
    """

    __slots__ = ("lib", "_ptr", "__weakref__")

    def __init__(self, lib, ptr):
        self.lib = lib
        self._ptr = ptr

    @property
    def ptr(self):
        if not self._ptr:
            raise MisuseError("statement handle used after it was finalized")
        return self._ptr

    @property
    def released(self):
        return not self._ptr

    def release(self):
        ptr, self._ptr = self._ptr, None
        if ptr:
            self.lib.sqlite3_finalize(ptr)
            return True
        return False

    def __del__(self):
        # Attributes are missing if __init__ never ran.
        if getattr(self, "_ptr", None):
            self.release()


class DatabaseHandle:
    """Exclusive owner of one ``sqlite3*`` and registry of its statements."""

    def __init__(self, lib):
        self._lib = lib
        self._ptr = ctypes.c_void_p()
        self._statements = weakref.WeakSet()

    @property
    def ptr(self):
        if not self._ptr:
            raise MisuseError("connection is closed")
        return self._ptr

    @property
    def is_open(self):
        return bool(self._ptr)

    def open(self, path, flags):
        return self._lib.sqlite3_open_v2(path.encode("utf-8"), ctypes.byref(self._ptr), flags, None)

    def adopt(self, statement):
        self._statements.add(statement)

    def finalize_statements(self):
        count = 0
        for statement in list(self._statements):
            if statement.release():
                count += 1
        self._statements.clear()
        if count:
            logger.debug("finalized %d outstanding statement(s)", count)
        return count

    def close(self):
        rc = self._lib.sqlite3_close(self._ptr)
        if native.primary_code(rc) == native.SQLITE_OK:
            self._ptr = ctypes.c_void_p()
        return rc

    def discard(self):
        """Release the handle left behind by a failed open."""
        if self._ptr:
            self._lib.sqlite3_close(self._ptr)
            self._ptr = ctypes.c_void_p()

    def error_message(self, rc):
        if self._ptr:
            message = self._lib.sqlite3_errmsg(self._ptr)
        else:
            message = self._lib.sqlite3_errstr(rc)
        if not message:
            return f"Unknown error {rc}"
        return message.decode("utf-8", errors="replace")
