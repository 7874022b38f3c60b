"""Render values as SQL literals using the engine's own formatter.

Prefer bound parameters; these helpers exist for the places where a literal
has to be spliced into SQL text (PRAGMA arguments, generated DDL).
"""

import ctypes

from . import native
from .errors import InvalidType
from .statement import INT64_MAX, INT64_MIN


def _mprintf(fmt, value):
    lib = native.load_library()
    ptr = lib.sqlite3_mprintf(fmt, value)
    if not ptr:
        raise MemoryError("sqlite3_mprintf returned NULL")
    try:
        return ctypes.string_at(ptr).decode("utf-8")
    finally:
        lib.sqlite3_free(ptr)


def escape(value):
    """Return ``value`` as a SQL literal.

    Text is single-quoted with embedded quotes doubled (``%Q``), None becomes
    ``NULL``, booleans ``1``/``0``, integers and floats use the engine's
    ``%lld`` and ``%f`` conversions.
    """
    if value is None:
        return _mprintf(b"%Q", ctypes.c_char_p(None))
    if isinstance(value, bool):
        return _mprintf(b"%d", ctypes.c_int(1 if value else 0))
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise InvalidType(value)
        return _mprintf(b"%lld", ctypes.c_longlong(value))
    if isinstance(value, float):
        return _mprintf(b"%f", ctypes.c_double(value))
    if isinstance(value, str):
        return _mprintf(b"%Q", ctypes.c_char_p(value.encode("utf-8")))
    raise InvalidType(value)
