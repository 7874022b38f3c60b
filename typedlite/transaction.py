import enum
import logging

from .errors import MisuseError, RollbackFailure
from .lifetime import NullLifetimeExtender

logger = logging.getLogger(__name__)


class TransactionState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


class TransactionController:
    """BEGIN/COMMIT/ROLLBACK state machine on top of a connection.

    ``execute`` runs one SQL statement (the connection's ``query``). While a
    transaction is active the injected lifetime extender keeps the host
    process from being suspended underneath it.
    """

    def __init__(self, execute, lifetime=None, engine_idle=None):
        self._execute = execute
        self._lifetime = lifetime if lifetime is not None else NullLifetimeExtender()
        # Reports whether the engine itself has no transaction open.
        self._engine_idle = engine_idle if engine_idle is not None else (lambda: False)
        self._state = TransactionState.IDLE
        self._token = None

    @property
    def state(self):
        return self._state

    @property
    def is_active(self):
        return self._state is TransactionState.ACTIVE

    def begin(self):
        if self.is_active:
            raise MisuseError("Transaction started while another one already in progress")
        self._run("BEGIN TRANSACTION")
        self._transition(TransactionState.ACTIVE)

    def commit(self):
        if not self.is_active:
            raise MisuseError("Transaction committed though none in progress")
        self._end("COMMIT TRANSACTION")

    def rollback(self):
        if not self.is_active:
            raise MisuseError("Transaction rolled back though none in progress")
        if self._engine_idle():
            # A trigger RAISE(ROLLBACK) or an I/O error already rolled back.
            logger.debug("engine already rolled back, skipping ROLLBACK")
            self._transition(TransactionState.IDLE)
            return
        self._end("ROLLBACK TRANSACTION")

    def perform(self, body):
        """Run ``body`` inside BEGIN/COMMIT, rolling back if anything fails."""
        self.begin()
        try:
            result = body()
            self.commit()
        except BaseException as e:
            if self.is_active:
                try:
                    self.rollback()
                except Exception as rollback_error:
                    raise RollbackFailure(e, rollback_error) from rollback_error
            raise
        return result

    def abandon(self):
        """Forget an open transaction without issuing SQL (the handle is closing)."""
        if self.is_active:
            logger.debug("abandoning open transaction")
            self._transition(TransactionState.IDLE)

    def _end(self, sql):
        ended = False
        try:
            self._run(sql)
            ended = True
        finally:
            # A failed COMMIT/ROLLBACK still ends the transaction if the engine left it.
            if ended or self._engine_idle():
                self._transition(TransactionState.IDLE)

    def _run(self, sql):
        result = self._execute(sql)
        if result is not None:
            result.close()

    def _transition(self, state):
        logger.debug("transaction %s -> %s", self._state.value, state.value)
        self._state = state
        if state is TransactionState.ACTIVE:
            self._token = self._lifetime.extend("open transaction")
        else:
            token, self._token = self._token, None
            self._lifetime.release(token)
