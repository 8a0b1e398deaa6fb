"""
relayreactor/core/models.py

Relay Reactor Data Model

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Order identity
    order_id = "0x" + SHA-256(canonicalize(order.to_signing_dict()))
    The id is content-derived. The random 128-bit nonce makes two
    otherwise identical intents distinct orders.

CONTRACT 2 — Order signing
    bytes_signed = canonicalize(order.to_signing_dict())
    algorithm    = Ed25519, signer = order.requester (public key hex)
    encoding     = base64url, no padding

CONTRACT 3 — Amounts
    Token amounts are non-negative ints in memory and decimal strings
    on the wire. Deadlines are unix seconds (JSON int).

CONTRACT 4 — Native asset
    The chain's native currency is addressed as NATIVE_ASSET and held in
    the balance book like any other token.

CONTRACT 5 — Fill payload
    (commands, inputs, value) is opaque to the core. It is never signed,
    hashed into an order id, or persisted.
═══════════════════════════════════════════════════════════════════
"""

import re
import secrets
import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from relayreactor.core.canonical import canonicalize, content_id, decode_amount, encode_amount
from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.exceptions import InvalidFillPayload, InvalidOrder
from relayreactor.core.time import reactor_timestamp, unix_now


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

NATIVE_ASSET = "0x0000000000000000000000000000000000000000"

# Nonce: exactly 32 hex characters = 16 bytes = 128-bit entropy
_NONCE_HEX_LENGTH      = 32

# requester: raw Ed25519 public key = 32 bytes = 64 hex chars
_PUBLIC_KEY_HEX_LENGTH = 64

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]*$")


def cancellation_message(order_id: str) -> bytes:
    """Canonical bytes a requester signs to cancel an order."""
    return canonicalize({"action": "cancel", "order_id": order_id})


def _is_public_key_hex(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != _PUBLIC_KEY_HEX_LENGTH:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return value == value.lower()


# ─────────────────────────────────────────────────────────────
# SchemaValidationResult
# ─────────────────────────────────────────────────────────────

@dataclass
class SchemaValidationResult:
    """
    Result of Order.validate_schema().

    Returned — not raised — so callers can choose hard fail vs log.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "SchemaValidationResult(VALID)"
        return f"SchemaValidationResult(INVALID, errors={self.errors})"


# ─────────────────────────────────────────────────────────────
# Order
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Order:
    """
    An immutable signed intent: swap input_amount of input_token for at
    least min_output_amount of output_token, delivered to recipient
    before deadline.

    payer_is_user:       the requester supplies the input tokens;
                         otherwise the filler fronts them.
    router_must_custody: the router's swap recipient is the settlement
                         engine, which then sweeps output to recipient.
    """

    requester:           str
    input_token:         str
    input_amount:        int
    output_token:        str
    min_output_amount:   int
    recipient:           str
    deadline:            int
    payer_is_user:       bool
    router_must_custody: bool
    nonce:               str
    signature:           Optional[str] = None

    # ── Constructor ───────────────────────────────────────────

    @classmethod
    def create(
        cls,
        requester:           str,
        input_token:         str,
        input_amount:        int,
        output_token:        str,
        min_output_amount:   int,
        recipient:           str,
        deadline:            int,
        payer_is_user:       bool = False,
        router_must_custody: bool = False,
        now:                 Optional[int] = None,
    ) -> "Order":
        """
        Create an unsigned Order with a fresh nonce.

        Hard enforces every invariant; raises InvalidOrder on the first
        violation. The deadline must lie strictly after `now`
        (defaults to the wall clock).

        Call .sign(key_manager) immediately after:
            order = Order.create(...).sign(requester_key)
        """
        order = cls(
            requester=           requester,
            input_token=         input_token,
            input_amount=        input_amount,
            output_token=        output_token,
            min_output_amount=   min_output_amount,
            recipient=           recipient,
            deadline=            deadline,
            payer_is_user=       payer_is_user,
            router_must_custody= router_must_custody,
            nonce=               secrets.token_hex(_NONCE_HEX_LENGTH // 2),
        )

        schema = order.validate_schema()
        if not schema:
            raise InvalidOrder(
                "Order violates shape invariants",
                {"errors": "; ".join(schema.errors)},
            )

        current = unix_now() if now is None else now
        if order.deadline <= current:
            raise InvalidOrder(
                "Order deadline must be in the future",
                {"deadline": order.deadline, "now": current},
            )
        return order

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """
        Deserialize from a JSON dict. Trusts persisted data — callers
        MUST call validate_schema() before settling a deserialized order.
        """
        return cls(
            requester=           data["requester"],
            input_token=         data["input_token"],
            input_amount=        decode_amount(data["input_amount"]),
            output_token=        data["output_token"],
            min_output_amount=   decode_amount(data["min_output_amount"]),
            recipient=           data["recipient"],
            deadline=            int(data["deadline"]),
            payer_is_user=       bool(data["payer_is_user"]),
            router_must_custody= bool(data.get("router_must_custody", False)),
            nonce=               data["nonce"],
            signature=           data.get("signature"),
        )

    # ── Schema Validation ─────────────────────────────────────

    def validate_schema(self) -> SchemaValidationResult:
        """
        Validate field types and order invariants (everything except the
        deadline-versus-clock check, which depends on when it is asked).
        """
        errors: List[str] = []

        if not _is_public_key_hex(self.requester):
            errors.append(
                f"requester must be a {_PUBLIC_KEY_HEX_LENGTH}-char lowercase "
                f"hex Ed25519 public key, got {self.requester!r}"
            )

        for name in ("input_token", "output_token", "recipient"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                errors.append(f"{name} must be a non-empty address string")

        if self.input_token == self.output_token:
            errors.append("input_token and output_token must differ")

        for name in ("input_amount", "min_output_amount"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(f"{name} must be a positive int, got {value!r}")

        if not isinstance(self.deadline, int) or self.deadline <= 0:
            errors.append(f"deadline must be a positive unix timestamp, got {self.deadline!r}")

        for name in ("payer_is_user", "router_must_custody"):
            if not isinstance(getattr(self, name), bool):
                errors.append(f"{name} must be bool")

        if not isinstance(self.nonce, str) or len(self.nonce) != _NONCE_HEX_LENGTH:
            errors.append(f"nonce must be exactly {_NONCE_HEX_LENGTH} hex chars")
        else:
            try:
                bytes.fromhex(self.nonce)
            except ValueError:
                errors.append(f"nonce is not valid hex: {self.nonce!r}")

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical Forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """CONTRACT 1/2 — the exact dict hashed into order_id and signed."""
        return {
            "deadline":            self.deadline,
            "input_amount":        encode_amount(self.input_amount),
            "input_token":         self.input_token,
            "min_output_amount":   encode_amount(self.min_output_amount),
            "nonce":               self.nonce,
            "output_token":        self.output_token,
            "payer_is_user":       self.payer_is_user,
            "recipient":           self.recipient,
            "requester":           self.requester,
            "router_must_custody": self.router_must_custody,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["order_id"]  = self.order_id
        d["signature"] = self.signature
        return d

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    @property
    def order_id(self) -> str:
        return content_id(self.to_signing_dict())

    # ── Signing ───────────────────────────────────────────────

    def sign(self, key_manager) -> "Order":
        """
        Return a signed copy of this order.

        The key manager must hold the requester's key; an order can only
        be signed by the account it spends from.
        """
        if key_manager.public_key_hex != self.requester:
            raise InvalidOrder(
                "Orders must be signed by the requester key",
                {"requester": self.requester[:16], "signer": key_manager.public_key_hex[:16]},
            )
        return replace(self, signature=key_manager.sign(self.canonical_bytes_for_signing()))

    def verify_signature(self) -> bool:
        """True iff the signature verifies against the requester key. Never raises."""
        if not self.signature:
            return False

        return Ed25519KeyManager.verify_detached(
            self.canonical_bytes_for_signing(), self.signature, self.requester,
        )

    def is_expired(self, now: int) -> bool:
        return now > self.deadline


# ─────────────────────────────────────────────────────────────
# FillPayload
# ─────────────────────────────────────────────────────────────

def _parse_hex(value: str, field_name: str) -> bytes:
    if not isinstance(value, str) or not _HEX_RE.match(value):
        raise InvalidFillPayload(f"{field_name} must be a hex string", {"value": value})
    digits = value[2:] if value.startswith("0x") else value
    if len(digits) % 2:
        raise InvalidFillPayload(f"{field_name} has odd hex length", {"value": value})
    return bytes.fromhex(digits)


def _parse_value(value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise InvalidFillPayload("value must be an integer", {"value": value})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError:
            pass
    raise InvalidFillPayload("value must be an int, decimal or 0x-hex string", {"value": value})


@dataclass(frozen=True)
class FillPayload:
    """
    Opaque instruction set for the router: one command byte per entry in
    `inputs`, plus native value to forward with the call. Supplied by the
    filler per settlement; the core never looks inside.
    """
    commands: bytes
    inputs:   Tuple[bytes, ...]
    value:    int = 0

    def __post_init__(self):
        if not isinstance(self.commands, (bytes, bytearray)):
            raise InvalidFillPayload("commands must be bytes")
        if not all(isinstance(blob, (bytes, bytearray)) for blob in self.inputs):
            raise InvalidFillPayload("inputs must be a sequence of bytes")
        if not isinstance(self.value, int) or isinstance(self.value, bool) or self.value < 0:
            raise InvalidFillPayload("value must be a non-negative int", {"value": self.value})
        object.__setattr__(self, "inputs", tuple(self.inputs))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FillPayload":
        """
        Load the fixture wire format:
            {"commands": "0x..", "inputs": ["0x..", ...], "value": "0x00"}
        value may be an int, a decimal string or a 0x-hex string.
        """
        if not isinstance(data, dict):
            raise InvalidFillPayload(
                "fill payload must be a JSON object", {"type": type(data).__name__},
            )
        try:
            commands = data["commands"]
            inputs   = data["inputs"]
        except KeyError as exc:
            raise InvalidFillPayload(f"fill payload missing field {exc}") from exc
        if not isinstance(inputs, list):
            raise InvalidFillPayload("inputs must be a list of hex strings")
        return cls(
            commands=_parse_hex(commands, "commands"),
            inputs=tuple(_parse_hex(blob, "inputs") for blob in inputs),
            value=_parse_value(data.get("value", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commands": "0x" + bytes(self.commands).hex(),
            "inputs":   ["0x" + bytes(blob).hex() for blob in self.inputs],
            "value":    str(self.value),
        }


# ─────────────────────────────────────────────────────────────
# SettlementRecord
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SettlementRecord:
    """Signed outcome of one successful settlement."""

    settlement_id:      str
    order_id:           str
    filler:             str
    requester:          str
    recipient:          str
    swap_target:        str
    input_token:        str
    input_amount:       int
    input_payer:        str
    input_refunded:     int
    output_token:       str
    amount_delivered:   int
    swept_output:       int
    min_output_amount:  int
    native_value:       int
    settled_at:         str
    settler_public_key: str
    signature:          Optional[str] = None

    @classmethod
    def create(cls, **fields) -> "SettlementRecord":
        return cls(
            settlement_id=f"settlement-{uuid.uuid4()}",
            settled_at=reactor_timestamp(),
            **fields,
        )

    def to_dict_for_signing(self) -> Dict[str, Any]:
        return {
            "settlement_id":      self.settlement_id,
            "order_id":           self.order_id,
            "filler":             self.filler,
            "requester":          self.requester,
            "recipient":          self.recipient,
            "swap_target":        self.swap_target,
            "input_token":        self.input_token,
            "input_amount":       encode_amount(self.input_amount),
            "input_payer":        self.input_payer,
            "input_refunded":     encode_amount(self.input_refunded),
            "output_token":       self.output_token,
            "amount_delivered":   encode_amount(self.amount_delivered),
            "swept_output":       encode_amount(self.swept_output),
            "min_output_amount":  encode_amount(self.min_output_amount),
            "native_value":       encode_amount(self.native_value),
            "settled_at":         self.settled_at,
            "settler_public_key": self.settler_public_key,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_dict_for_signing()
        d["signature"] = self.signature
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementRecord":
        amount_fields = {
            "input_amount", "input_refunded", "amount_delivered",
            "swept_output", "min_output_amount", "native_value",
        }
        kwargs = {
            key: decode_amount(value) if key in amount_fields else value
            for key, value in data.items()
        }
        return cls(**kwargs)

    def sign(self, key_manager) -> "SettlementRecord":
        return replace(
            self, signature=key_manager.sign_canonical(self.to_dict_for_signing()),
        )

    def verify_signature(self) -> bool:
        if not self.signature:
            return False

        return Ed25519KeyManager.verify_canonical(
            self.to_dict_for_signing(), self.signature, self.settler_public_key,
        )
