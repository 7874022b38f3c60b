"""Error types raised by the access layer.

Recoverable runtime conditions derive from :class:`Error`. Broken caller or
engine contracts raise :class:`MisuseError`, which is an ``AssertionError``
so that it is never confused with a transient condition.
"""


class Error(Exception):
    pass


class TooBusy(Error):
    """The busy-retry budget ran out while the database stayed locked."""

    def __init__(self, attempts):
        super().__init__(f"database is busy (gave up after {attempts} attempts)")
        self.attempts = attempts


class InvalidType(Error):
    """A value outside null/bool/int/float/str/bytes was handed to the engine."""

    def __init__(self, value):
        super().__init__(f"unsupported value type {type(value).__name__}: {value!r}")
        self.value = value


class Failure(Error):
    def __init__(self, code, message):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


class QueryFailure(Error):
    def __init__(self, error, query):
        super().__init__(f"{error} (query: {query})")
        self.error = error
        self.query = query


class ArgumentFailure(Error):
    def __init__(self, error, argument, index):
        super().__init__(f"{error} (argument #{index}: {argument!r})")
        self.error = error
        self.argument = argument
        self.index = index


class RollbackFailure(Error):
    """The rollback after a failed transaction body failed as well.

    ``error`` is the failure that triggered the rollback, ``rollback_error``
    the one raised by the rollback itself.
    """

    def __init__(self, error, rollback_error):
        super().__init__(f"rollback failed: {rollback_error} (after: {error})")
        self.error = error
        self.rollback_error = rollback_error


class MisuseError(AssertionError):
    pass
