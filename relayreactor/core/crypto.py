"""
relayreactor/core/crypto.py

Ed25519 identities.

A requester IS its public key: the 64-char lowercase hex of the raw
Ed25519 public key is both the order's `requester` field and its
account address in the balance book. The settlement engine signs its
records and replay-ledger entries with its own key.

Signature wire format: base64url of the 64 raw signature bytes, '='
padding stripped.
"""

import base64
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)

from relayreactor.core.canonical import canonicalize

logger = logging.getLogger(__name__)


_SIGNATURE_LENGTH  = 64
_PUBLIC_KEY_LENGTH = 32


def encode_signature(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_signature(text: str) -> bytes:
    """Inverse of encode_signature. Raises ValueError on bad input."""
    if not isinstance(text, str) or not text:
        raise ValueError("signature must be a non-empty string")
    raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    if len(raw) != _SIGNATURE_LENGTH:
        raise ValueError(f"signature must be {_SIGNATURE_LENGTH} bytes, got {len(raw)}")
    return raw


def public_key_from_hex(public_key_hex: str) -> Ed25519PublicKey:
    """Raises ValueError unless public_key_hex is a 64-char hex Ed25519 key."""
    if not isinstance(public_key_hex, str) or len(public_key_hex) != 2 * _PUBLIC_KEY_LENGTH:
        raise ValueError(f"public key must be {2 * _PUBLIC_KEY_LENGTH} hex chars")
    return Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))


class Ed25519KeyManager:
    """
    Holds one Ed25519 private key.

        key = Ed25519KeyManager.generate()
        sig = key.sign(data)
        Ed25519KeyManager.verify_detached(data, sig, key.public_key_hex)

    public_key_hex is a property (no parentheses).
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key    = private_key
        self._public_key_hex = (
            private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519KeyManager":
        """Deterministic key from a 32-byte seed. Raises ValueError otherwise."""
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load a PKCS8 PEM private key.

        Raises:
            FileNotFoundError  path does not exist
            ValueError         not a PEM file, or not an Ed25519 key
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Failed to load key from {path}: {exc}") from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"Key file {path} does not hold an Ed25519 private key")
        return cls(private_key)

    @classmethod
    def load_or_create(cls, path: Optional[Path]) -> "Ed25519KeyManager":
        """
        Load the key at path, or generate one and save it there.
        With path=None the key is ephemeral.
        """
        if path is not None and Path(path).exists():
            return cls.from_file(path)
        key_manager = cls.generate()
        if path is not None:
            key_manager.save(path)
            logger.info(f"crypto: generated key {key_manager.public_key_hex[:16]}... at {path}")
        return key_manager

    def save(self, path: Path) -> None:
        """Write the private key as unencrypted PKCS8 PEM, creating parent dirs."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(
            self._private_key.private_bytes(
                encoding=             Encoding.PEM,
                format=               PrivateFormat.PKCS8,
                encryption_algorithm= NoEncryption(),
            )
        )

    # ── Identity ──────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> str:
        """Sign raw bytes. Callers canonicalize first."""
        return encode_signature(self._private_key.sign(data))

    def sign_canonical(self, obj: Dict[str, Any]) -> str:
        return self.sign(canonicalize(obj))

    @staticmethod
    def verify_detached(data: bytes, signature: str, public_key_hex: str) -> bool:
        """
        True iff signature is a valid Ed25519 signature of data under
        public_key_hex. Any malformed input yields False; never raises.
        """
        try:
            public_key_from_hex(public_key_hex).verify(decode_signature(signature), data)
        except (_BadSignature, ValueError, TypeError):
            return False
        return True

    @staticmethod
    def verify_canonical(obj: Dict[str, Any], signature: str, public_key_hex: str) -> bool:
        return Ed25519KeyManager.verify_detached(canonicalize(obj), signature, public_key_hex)

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
