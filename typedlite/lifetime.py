"""Lifetime extension for open transactions.

A transaction controller asks its extender for more runtime when a
transaction starts and gives it back when the transaction ends. On hosts
without a suspension signal this is a no-op; :class:`SignalDeferringExtender`
is the process-level counterpart, holding termination signals back until the
last open transaction has finished.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from typing import Any

logger = logging.getLogger(__name__)


class LifetimeExtender:
    """Interface: ``extend()`` returns a token that ``release()`` gives back."""

    def extend(self, reason: str) -> Any:
        return None

    def release(self, token: Any) -> None:
        pass


class NullLifetimeExtender(LifetimeExtender):
    pass


class SignalDeferringExtender(LifetimeExtender):
    """Defer termination signals while at least one extension is held.

    Signals that arrive in the meantime are re-delivered once the last
    extension is released. If ``grace`` seconds pass first, the extension
    expires and pending signals are delivered anyway, so completing the
    transaction is best-effort.

    Handlers can only be installed from the main thread; elsewhere
    ``extend()`` logs and returns None.
    """

    def __init__(self, signals=(signal.SIGTERM,), grace: float | None = 30.0) -> None:
        self._signals = tuple(signals)
        self._grace = grace
        self._lock = threading.RLock()
        self._tokens: set[int] = set()
        self._next_token = 0
        self._previous: dict[int, Any] = {}
        self._pending: list[int] = []
        self._timer: threading.Timer | None = None

    @property
    def active(self) -> bool:
        return bool(self._tokens)

    @property
    def pending_signals(self) -> list[int]:
        return list(self._pending)

    def extend(self, reason: str) -> int | None:
        with self._lock:
            if not self._tokens:
                if threading.current_thread() is not threading.main_thread():
                    logger.debug("cannot defer signals outside the main thread (%s)", reason)
                    return None
                self._install()
            self._next_token += 1
            token = self._next_token
            self._tokens.add(token)
            logger.debug("lifetime extended for %s (token %d)", reason, token)
            return token

    def release(self, token: int | None) -> None:
        if token is None:
            return
        with self._lock:
            if token not in self._tokens:
                return
            self._tokens.discard(token)
            logger.debug("lifetime extension %d released", token)
            if not self._tokens:
                self._finish()

    def _install(self) -> None:
        # Handlers may still be in place after an expiry in the timer thread.
        if not self._previous:
            for sig in self._signals:
                previous = signal.signal(sig, self._handle)
                self._previous[sig] = signal.SIG_DFL if previous is None else previous
        if self._grace is not None:
            self._timer = threading.Timer(self._grace, self._expire)
            self._timer.daemon = True
            self._timer.start()

    def _handle(self, signum: int, frame: Any) -> None:
        if self._tokens:
            logger.info("deferring signal %d until the open transaction finishes", signum)
            self._pending.append(signum)
            return
        self._forward(signum, frame)

    def _forward(self, signum: int, frame: Any) -> None:
        previous = self._previous.get(signum, signal.SIG_DFL)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    def _expire(self) -> None:
        with self._lock:
            if not self._tokens:
                return
            logger.warning("lifetime extension expired with %d transaction(s) open", len(self._tokens))
            self._tokens.clear()
            self._finish()

    def _finish(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        # Outside the main thread the handlers stay installed and forward.
        if threading.current_thread() is threading.main_thread():
            for sig, previous in self._previous.items():
                signal.signal(sig, previous)
            self._previous.clear()
        pending, self._pending = self._pending, []
        for signum in pending:
            logger.info("re-delivering deferred signal %d", signum)
            os.kill(os.getpid(), signum)
