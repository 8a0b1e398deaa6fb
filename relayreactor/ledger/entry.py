"""
relayreactor/ledger/entry.py

ConsumptionEntry — the single record type of the replay ledger.

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Signing
    bytes_signed = canonicalize(entry.to_signing_dict())
    algorithm    = Ed25519, encoding = base64url, no padding

CONTRACT 2 — Chain
    causal_hash  = SHA-256(canonicalize(prev.to_signing_dict()))
    first_entry  = GENESIS_HASH ("0" * 64)

CONTRACT 3 — Monotonicity
    One entry per order_id, ever. kind is "filled" or "cancelled";
    either way the order can never be settled again.
═══════════════════════════════════════════════════════════════════
"""

import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from relayreactor.core.canonical import canonical_hash
from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.models import SchemaValidationResult
from relayreactor.core.time import reactor_timestamp


LEDGER_VERSION = "1.0"
GENESIS_HASH   = "0" * 64

_PUBLIC_KEY_HEX_LENGTH = 64

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


class EntryKind:
    FILLED    = "filled"
    CANCELLED = "cancelled"


_VALID_KINDS = {EntryKind.FILLED, EntryKind.CANCELLED}


@dataclass
class ConsumptionEntry:
    """One consumed order id, chained to its predecessor and signed."""

    ledger_version:    str
    entry_id:          str
    kind:              str
    order_id:          str
    signer_public_key: str
    sequence:          int
    timestamp:         str
    causal_hash:       str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    # ── Constructor ───────────────────────────────────────────

    @classmethod
    def create(
        cls,
        kind:              str,
        order_id:          str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        prev:              Optional["ConsumptionEntry"] = None,
    ) -> "ConsumptionEntry":
        """
        Create an unsigned entry with the correct causal_hash.

            entry = ConsumptionEntry.create(...).sign(key_manager)
        """
        if kind not in _VALID_KINDS:
            raise ValueError(f"Invalid kind '{kind}'. Valid: {sorted(_VALID_KINDS)}")
        if not isinstance(order_id, str) or not order_id:
            raise ValueError("order_id must be a non-empty string")
        if not isinstance(payload, dict):
            raise TypeError(f"payload must be dict, got {type(payload).__name__}")
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")

        return cls(
            ledger_version=    LEDGER_VERSION,
            entry_id=          f"consume-{uuid.uuid4()}",
            kind=              kind,
            order_id=          order_id,
            signer_public_key= signer_public_key,
            sequence=          sequence,
            timestamp=         reactor_timestamp(),
            causal_hash=       cls._compute_causal_hash(prev),
            payload=           payload,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsumptionEntry":
        """
        Deserialize from a JSONL line dict. Trusts persisted data —
        callers MUST call validate_schema().
        """
        return cls(
            ledger_version=    data["ledger_version"],
            entry_id=          data["entry_id"],
            kind=              data["kind"],
            order_id=          data["order_id"],
            signer_public_key= data["signer_public_key"],
            sequence=          data["sequence"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    # ── Schema Validation ─────────────────────────────────────

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.ledger_version != LEDGER_VERSION:
            errors.append(
                f"ledger_version: expected '{LEDGER_VERSION}', got '{self.ledger_version}'"
            )
        if self.kind not in _VALID_KINDS:
            errors.append(f"kind '{self.kind}' not in {sorted(_VALID_KINDS)}")
        if not isinstance(self.entry_id, str) or not self.entry_id.startswith("consume-"):
            errors.append(f"entry_id must start with 'consume-', got {self.entry_id!r}")
        if not isinstance(self.order_id, str) or not self.order_id:
            errors.append("order_id must be a non-empty string")

        if (
            not isinstance(self.signer_public_key, str)
            or len(self.signer_public_key) != _PUBLIC_KEY_HEX_LENGTH
        ):
            errors.append(
                f"signer_public_key must be exactly {_PUBLIC_KEY_HEX_LENGTH} hex chars"
            )

        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")

        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(
                f"timestamp {self.timestamp!r} does not match YYYY-MM-DDTHH:MM:SS.mmmZ"
            )

        if not isinstance(self.causal_hash, str) or len(self.causal_hash) != 64:
            errors.append("causal_hash must be 64 hex chars")

        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical Forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """CONTRACT 1/2 — everything except the signature."""
        return {
            "causal_hash":       self.causal_hash,
            "entry_id":          self.entry_id,
            "kind":              self.kind,
            "ledger_version":    self.ledger_version,
            "order_id":          self.order_id,
            "payload":           self.payload,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. JSONL persistence only."""
        d = self.to_signing_dict().copy()
        d["signature"] = self.signature
        return d

    # ── Chain ─────────────────────────────────────────────────

    @staticmethod
    def _compute_causal_hash(prev: Optional["ConsumptionEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    def expected_causal_hash_from(self, prev: Optional["ConsumptionEntry"]) -> str:
        return ConsumptionEntry._compute_causal_hash(prev)

    def verify_chain(self, prev: Optional["ConsumptionEntry"]) -> bool:
        return self.causal_hash == self.expected_causal_hash_from(prev)

    def verify_sequence(self, expected: int) -> bool:
        return self.sequence == expected

    # ── Signing ───────────────────────────────────────────────

    def sign(self, key_manager) -> "ConsumptionEntry":
        """Sign in place. Returns self for chaining."""
        self.signature = key_manager.sign_canonical(self.to_signing_dict())
        return self

    def verify_signature(self) -> bool:
        """Verify against the embedded signer_public_key. Never raises."""
        if not self.signature:
            return False

        return Ed25519KeyManager.verify_canonical(
            self.to_signing_dict(), self.signature, self.signer_public_key,
        )
