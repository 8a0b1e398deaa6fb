"""
relayreactor/ledger/replay_guard.py

Replay Guard — the monotone, durable set of consumed order ids.

Contract — a settlement attempt MUST, in this order:
  1. reserve(order_id)    — atomic check-and-set under the guard lock.
                            Fails with OrderAlreadyFilled if the id is
                            consumed or reserved by an attempt in flight.
  2. ...settle...
  3a. commit(reservation) — append the signed entry to the JSONL log
                            (fsync'd) and only then mark the id consumed.
  3b. release(reservation) on any failure — the id becomes available
                            again; a failed append is truncated away.

Entries are never removed. State survives process restart by replaying
and verifying the log on __init__; a log that fails verification is
refused with LedgerError rather than silently trusted.
"""

import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.exceptions import LedgerError, OrderAlreadyFilled
from relayreactor.ledger.entry import ConsumptionEntry, EntryKind, GENESIS_HASH
from relayreactor.ledger.verify import LedgerVerifier

logger = logging.getLogger(__name__)


LEDGER_FILENAME = "consumed.jsonl"


@dataclass(frozen=True)
class Reservation:
    """Proof that the holder won the check-and-set for order_id."""
    order_id: str
    token:    str


class ReplayGuard:
    """
    Thread-safe via internal lock (single-process only). Several
    settlement engines may share one guard; the reserve step is the
    single serialization point per order id.
    """

    def __init__(
        self,
        key_manager: Ed25519KeyManager,
        ledger_path: str = ".relayreactor/ledger",
    ) -> None:
        self.key_manager = key_manager

        self._lock:       threading.Lock               = threading.Lock()
        self._sequence:   int                          = 0
        self._last_entry: Optional[ConsumptionEntry]   = None
        self._consumed:   Dict[str, ConsumptionEntry]  = {}
        self._pending:    Dict[str, str]               = {}

        self._ledger_dir  = Path(ledger_path)
        self._ledger_dir.mkdir(parents=True, exist_ok=True)
        self._ledger_file = self._ledger_dir / LEDGER_FILENAME

        self._restore_state()

    # ── Public API ────────────────────────────────────────────

    def reserve(self, order_id: str) -> Reservation:
        """Atomically claim order_id. Raises OrderAlreadyFilled if taken."""
        with self._lock:
            if order_id in self._consumed:
                raise OrderAlreadyFilled(
                    "Order already consumed",
                    {"order_id": order_id, "kind": self._consumed[order_id].kind},
                )
            if order_id in self._pending:
                raise OrderAlreadyFilled(
                    "Order is being settled by another attempt",
                    {"order_id": order_id},
                )
            reservation = Reservation(order_id=order_id, token=uuid.uuid4().hex)
            self._pending[order_id] = reservation.token
            return reservation

    def commit(
        self,
        reservation: Reservation,
        payload:     Optional[Dict[str, Any]] = None,
        kind:        str = EntryKind.FILLED,
    ) -> ConsumptionEntry:
        """
        Durably mark the reserved order consumed.

        Raises LedgerError if the reservation is stale or the write
        fails; in the latter case the reservation is still held and the
        caller must release() it.
        """
        with self._lock:
            self._check_reservation(reservation)

            entry = ConsumptionEntry.create(
                kind=              kind,
                order_id=          reservation.order_id,
                signer_public_key= self.key_manager.public_key_hex,
                sequence=          self._sequence,
                payload=           payload or {},
                prev=              self._last_entry,
            ).sign(self.key_manager)

            self._append_to_ledger(entry)

            # Advance state only after confirmed write
            self._sequence   += 1
            self._last_entry  = entry
            self._consumed[reservation.order_id] = entry
            del self._pending[reservation.order_id]

            logger.info(
                f"replay_guard: order {reservation.order_id} consumed "
                f"kind={kind} sequence={entry.sequence}"
            )
            return entry

    def release(self, reservation: Reservation) -> None:
        """Give up a reservation after a failed attempt. Idempotent."""
        with self._lock:
            if self._pending.get(reservation.order_id) == reservation.token:
                del self._pending[reservation.order_id]

    def consume(
        self,
        order_id: str,
        payload:  Optional[Dict[str, Any]] = None,
        kind:     str = EntryKind.FILLED,
    ) -> ConsumptionEntry:
        """reserve() + commit() in one step, releasing on failure."""
        reservation = self.reserve(order_id)
        try:
            return self.commit(reservation, payload=payload, kind=kind)
        except Exception:
            self.release(reservation)
            raise

    def is_consumed(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._consumed

    def get(self, order_id: str) -> Optional[ConsumptionEntry]:
        with self._lock:
            return self._consumed.get(order_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumed)

    @property
    def consumed_ids(self) -> Set[str]:
        with self._lock:
            return set(self._consumed)

    @property
    def ledger_file(self) -> Path:
        return self._ledger_file

    def verify_chain(self) -> bool:
        """Re-read and verify the on-disk log. Never raises."""
        if not self._ledger_file.exists():
            return True
        try:
            verifier = LedgerVerifier()
            verifier.load(self._ledger_file)
            return verifier.verify().valid
        except Exception:
            return False

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            counts: Dict[str, int] = {}
            for entry in self._consumed.values():
                counts[entry.kind] = counts.get(entry.kind, 0) + 1
            return {
                "consumed":         len(self._consumed),
                "pending":          len(self._pending),
                "by_kind":          counts,
                "next_sequence":    self._sequence,
                "last_causal_hash": (
                    self._last_entry.causal_hash if self._last_entry else GENESIS_HASH
                ),
                "ledger_file":      str(self._ledger_file),
                "signer":           self.key_manager.public_key_hex,
            }

    # ── Internal ──────────────────────────────────────────────

    def _check_reservation(self, reservation: Reservation) -> None:
        if self._pending.get(reservation.order_id) != reservation.token:
            raise LedgerError(
                "Reservation is not held",
                {"order_id": reservation.order_id},
            )

    def _restore_state(self) -> None:
        """Rebuild the consumed set from the log, refusing a corrupt log."""
        if not self._ledger_file.exists():
            return

        verifier = LedgerVerifier()
        try:
            verifier.load(self._ledger_file)
        except ValueError as exc:
            raise LedgerError(f"Failed to load replay ledger: {exc}") from exc

        summary = verifier.verify()
        if not summary.valid:
            first = summary.violations[0]
            raise LedgerError(
                "Replay ledger failed verification",
                {
                    "file":       str(self._ledger_file),
                    "violations": len(summary.violations),
                    "first":      f"{first.violation_type} at {first.at_sequence}",
                },
            )

        for entry in verifier.entries:
            self._consumed[entry.order_id] = entry
        if verifier.entries:
            self._last_entry = verifier.entries[-1]
            self._sequence   = self._last_entry.sequence + 1

        logger.info(
            f"replay_guard: restored {len(self._consumed)} consumed orders "
            f"from {self._ledger_file}"
        )

    def _append_to_ledger(self, entry: ConsumptionEntry) -> None:
        """
        Append one signed entry as a newline-terminated JSON line, fsync'd.

        A failed write is cut back to the previous file length, so neither
        a half-written line nor an un-synced whole line outlives the
        LedgerError.
        """
        try:
            line = json.dumps(entry.to_dict()) + "\n"
        except (TypeError, ValueError) as exc:
            raise LedgerError(f"Replay ledger entry not serializable: {exc}") from exc

        offset = self._ledger_file.stat().st_size if self._ledger_file.exists() else 0
        try:
            with open(self._ledger_file, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            self._truncate_ledger(offset)
            raise LedgerError(f"Replay ledger write failed: {exc}") from exc

    def _truncate_ledger(self, offset: int) -> None:
        try:
            with open(self._ledger_file, "r+b") as f:
                f.truncate(offset)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            raise LedgerError(
                "Replay ledger could not be restored after a failed write",
                {"file": str(self._ledger_file), "offset": offset, "error": str(exc)},
            ) from exc
        logger.warning(f"replay_guard: failed append rolled back to {offset} bytes")
