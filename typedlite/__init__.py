from .connection import Connection, connect
from .errors import (
    Error, TooBusy, InvalidType, Failure, QueryFailure, ArgumentFailure,
    RollbackFailure, MisuseError,
)
from .escape import escape
from .gate import BUSY_RETRY_INTERVAL, DEFAULT_MAX_BUSY_RETRIES, CallGate
from .lifetime import LifetimeExtender, NullLifetimeExtender, SignalDeferringExtender
from .statement import PreparedStatement, ResultSet
from .transaction import TransactionController, TransactionState

__version__ = "0.1.0"

__all__ = [
    "Connection", "connect",
    "PreparedStatement", "ResultSet",
    "TransactionController", "TransactionState",
    "LifetimeExtender", "NullLifetimeExtender", "SignalDeferringExtender",
    "CallGate", "BUSY_RETRY_INTERVAL", "DEFAULT_MAX_BUSY_RETRIES",
    "Error", "TooBusy", "InvalidType", "Failure", "QueryFailure",
    "ArgumentFailure", "RollbackFailure", "MisuseError",
    "escape",
]
