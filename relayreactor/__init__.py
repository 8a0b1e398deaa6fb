"""
relayreactor/__init__.py

Relay Reactor: settlement core for signed relay orders

A filler submits a requester's signed order together with an opaque
router payload. The reactor funds custody, calls the router, sweeps
custody to the recipient, enforces the minimum output by balance delta
and consumes the order id exactly once, or changes nothing at all.
"""

__version__ = "0.1.0"

from relayreactor.core.models import (
    NATIVE_ASSET,
    FillPayload,
    Order,
    SettlementRecord,
    cancellation_message,
)
from relayreactor.core.exceptions import (
    ReactorError,
    SettlementError,
    OrderExpired,
    OrderAlreadyFilled,
    InsufficientInputFunding,
    RouterExecutionFailed,
    SlippageViolation,
    InvalidOrder,
    InvalidSignature,
    InvalidFillPayload,
)
from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.custody import TokenBalances, CustodyLedger
from relayreactor.ledger import ReplayGuard
from relayreactor.router import RouterAdapter, UniversalRouterAdapter, CallableRouterAdapter
from relayreactor.settlement import SettlementEngine
from relayreactor.config import ReactorConfig

__all__ = [
    # Data model
    "Order",
    "FillPayload",
    "SettlementRecord",
    "cancellation_message",
    # Components
    "SettlementEngine",
    "ReplayGuard",
    "TokenBalances",
    "CustodyLedger",
    "RouterAdapter",
    "UniversalRouterAdapter",
    "CallableRouterAdapter",
    "Ed25519KeyManager",
    "ReactorConfig",
    # Errors
    "ReactorError",
    "SettlementError",
    "OrderExpired",
    "OrderAlreadyFilled",
    "InsufficientInputFunding",
    "RouterExecutionFailed",
    "SlippageViolation",
    "InvalidOrder",
    "InvalidSignature",
    "InvalidFillPayload",
    # Constants
    "NATIVE_ASSET",
]
