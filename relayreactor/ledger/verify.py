"""
relayreactor/ledger/verify.py

Replay ledger verifier.

Checks enforced, per entry in file order:
    1. Load    → ConsumptionEntry.from_dict(line)  — no other deserialization
    2. Schema  → entry.validate_schema()           — fail fast
    3. Seq     → entry.verify_sequence(i)
    4. Chain   → entry.verify_chain(prev)
    5. Replay  → no order_id appears twice
    6. Sig     → entry.verify_signature()

Used by ReplayGuard on restore and by `relayreactor verify`.
"""

import json
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set

from relayreactor.ledger.entry import ConsumptionEntry


@dataclass
class LedgerViolation:
    """A single detected violation in the ledger."""
    at_sequence:    int
    order_id:       str
    violation_type: str   # "sequence_gap" | "chain_break" | "duplicate_order" | "invalid_signature"
    detail:         str


@dataclass
class VerificationSummary:
    """Aggregate result of a full ledger verification pass."""
    total_entries:      int
    valid:              bool
    violations:         List[LedgerViolation]
    valid_signatures:   int
    invalid_signatures: int
    kind_counts:        Dict[str, int]
    signers_seen:       List[str]
    first_timestamp:    Optional[str]
    last_timestamp:     Optional[str]

    def to_dict(self) -> Dict:
        return {
            "total_entries":      self.total_entries,
            "valid":              self.valid,
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "order_id":       v.order_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "kind_counts":        self.kind_counts,
            "signers_seen":       self.signers_seen,
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
        }


class LedgerVerifier:
    """
    Usage:
        verifier = LedgerVerifier()
        verifier.load(Path(".relayreactor/ledger/consumed.jsonl"))
        summary = verifier.verify()
    """

    def __init__(self) -> None:
        self.entries:      List[ConsumptionEntry] = []
        self.violations:   List[LedgerViolation]  = []
        self._ledger_path: Optional[Path]         = None

    def load(self, ledger_path: Path) -> None:
        """
        Load a replay ledger JSONL file.

        Raises:
            FileNotFoundError — ledger file does not exist
            ValueError        — malformed JSON, missing field or schema violation
        """
        ledger_path       = Path(ledger_path)
        self._ledger_path = ledger_path
        self.entries      = []
        self.violations   = []

        if not ledger_path.exists():
            raise FileNotFoundError(f"Replay ledger not found: {ledger_path}")

        with open(ledger_path, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue

                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"Malformed JSON at ledger line {line_num}: {e}"
                    ) from e

                try:
                    entry = ConsumptionEntry.from_dict(data)
                except (KeyError, TypeError) as e:
                    raise ValueError(
                        f"Missing required field at line {line_num}: {e}"
                    ) from e

                schema = entry.validate_schema()
                if not schema:
                    raise ValueError(
                        f"Schema violation at line {line_num} "
                        f"(order_id={data.get('order_id', '?')}): {schema.errors}"
                    )

                self.entries.append(entry)

    def verify(self) -> VerificationSummary:
        """Full verification pass over all loaded entries, in file order."""
        self.violations = []

        if not self.entries:
            return VerificationSummary(
                total_entries=0, valid=True, violations=[],
                valid_signatures=0, invalid_signatures=0,
                kind_counts={}, signers_seen=[],
                first_timestamp=None, last_timestamp=None,
            )

        seen_orders: Set[str] = set()
        valid_sigs   = 0
        invalid_sigs = 0

        for i, entry in enumerate(self.entries):
            prev = self.entries[i - 1] if i > 0 else None

            if not entry.verify_sequence(i):
                self._violation(entry, "sequence_gap", f"Expected sequence {i}, got {entry.sequence}")

            if not entry.verify_chain(prev):
                expected = entry.expected_causal_hash_from(prev)
                self._violation(
                    entry, "chain_break",
                    f"causal_hash mismatch: expected ...{expected[-12:]}, "
                    f"got ...{entry.causal_hash[-12:]}",
                )

            if entry.order_id in seen_orders:
                self._violation(
                    entry, "duplicate_order",
                    f"order {entry.order_id} consumed more than once",
                )
            seen_orders.add(entry.order_id)

            if entry.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                self._violation(
                    entry, "invalid_signature",
                    f"Signature invalid (signer: {entry.signer_public_key[:16]}...)",
                )

        counts: Dict[str, int] = defaultdict(int)
        for entry in self.entries:
            counts[entry.kind] += 1

        return VerificationSummary(
            total_entries=      len(self.entries),
            valid=              len(self.violations) == 0,
            violations=         list(self.violations),
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            kind_counts=        dict(counts),
            signers_seen=       sorted({e.signer_public_key for e in self.entries}),
            first_timestamp=    self.entries[0].timestamp,
            last_timestamp=     self.entries[-1].timestamp,
        )

    def _violation(self, entry: ConsumptionEntry, violation_type: str, detail: str) -> None:
        self.violations.append(LedgerViolation(
            at_sequence=    entry.sequence,
            order_id=       entry.order_id,
            violation_type= violation_type,
            detail=         detail,
        ))
