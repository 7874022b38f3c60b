import logging
import time

from . import native
from .errors import Failure, TooBusy

logger = logging.getLogger(__name__)

BUSY_RETRY_INTERVAL = 0.02
DEFAULT_MAX_BUSY_RETRIES = 10

_SUCCESS_CODES = frozenset((native.SQLITE_OK, native.SQLITE_ROW, native.SQLITE_DONE))


def validate_busy_retries(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"max_busy_retries must be a positive integer, got {value!r}")
    return value


class CallGate:
    """Single chokepoint for native calls.

    Calling the gate with a zero-argument function runs it, retrying while
    the engine reports ``SQLITE_BUSY``. Success codes are returned, every
    other code becomes a :class:`Failure` carrying the engine's message.
    """

    def __init__(self, message_source, max_busy_retries=DEFAULT_MAX_BUSY_RETRIES, sleep=time.sleep):
        self._message_source = message_source
        self._sleep = sleep
        self.max_busy_retries = max_busy_retries

    @property
    def max_busy_retries(self):
        return self._max_busy_retries

    @max_busy_retries.setter
    def max_busy_retries(self, value):
        self._max_busy_retries = validate_busy_retries(value)

    def __call__(self, call):
        attempts = self._max_busy_retries
        for attempt in range(1, attempts + 1):
            rc = call()
            code = native.primary_code(rc)
            if code in _SUCCESS_CODES:
                return code
            if code != native.SQLITE_BUSY:
                raise Failure(rc, self._message_source(rc))
            logger.debug("database busy, attempt %d/%d", attempt, attempts)
            self._sleep(BUSY_RETRY_INTERVAL)

        logger.warning("database still busy after %d attempts", attempts)
        raise TooBusy(attempts)
