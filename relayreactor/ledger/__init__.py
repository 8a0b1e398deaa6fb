"""
Relay Reactor Ledger - Replay Guard

Append-only, hash-chained, signed log of consumed order ids.
"""

from relayreactor.ledger.entry import ConsumptionEntry, EntryKind
from relayreactor.ledger.replay_guard import Reservation, ReplayGuard
from relayreactor.ledger.verify import LedgerVerifier, VerificationSummary

__all__ = [
    "ConsumptionEntry",
    "EntryKind",
    "ReplayGuard",
    "Reservation",
    "LedgerVerifier",
    "VerificationSummary",
]
