"""Crypto bridge: Ed25519 signing mechanism backed by PyNaCl (libsodium).

Bridge boundary
---------------
The trust verifier in ``ocitrust.core.signature`` depends only on the
``SigningMechanism`` protocol.  This module provides the concrete
mechanism: Ed25519 keys held in a ``Keyring``, identified by the SHA-256
fingerprint of the raw public key.

Signature blob format (canonical JSON)::

    {"keyid": "<fingerprint>", "payload": "<base64>", "signature": "<hex>"}

The payload travels inside the blob, so ``verify`` returns the
authenticated payload together with the signer's key identity.

Fail-closed: an undecodable blob, a signer that is not in the keyring, or
a bad signature all raise ``SignatureInvalidError``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from pathlib import Path

import nacl.signing
from nacl.exceptions import BadSignatureError, CryptoError

from ocitrust.core.blob_writer import write_bytes_atomic
from ocitrust.core.hasher import canonical_json_bytes
from ocitrust.errors import SignatureInvalidError, SigningError

logger = logging.getLogger(__name__)

PUBLIC_KEY_SUFFIX = ".pub"
PRIVATE_KEY_SUFFIX = ".key"


# ---------------------------------------------------------------------------
# Key primitives
# ---------------------------------------------------------------------------


def generate_keypair() -> tuple[str, str]:
    """Generate an Ed25519 key-pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_hex, public_key_hex)``; the private key is the
        32-byte seed.
    """
    sk = nacl.signing.SigningKey.generate()
    return sk.encode().hex(), sk.verify_key.encode().hex()


def public_key_for(private_key: str) -> str:
    """Derive the hex public key from a hex private seed."""
    try:
        sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    except (ValueError, TypeError, CryptoError) as exc:
        raise SigningError(f"Malformed private key: {exc}") from exc
    return sk.verify_key.encode().hex()


def sign_data(data: bytes, private_key: str) -> str:
    """Sign *data* with *private_key*; returns the hex-encoded signature."""
    try:
        sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    except (ValueError, TypeError, CryptoError) as exc:
        raise SigningError(f"Malformed private key: {exc}") from exc
    return sk.sign(data).signature.hex()


def verify_data(data: bytes, signature: str, public_key: str) -> bool:
    """Return ``True`` only if *signature* is valid for *data* under *public_key*."""
    if not signature:
        return False
    try:
        vk = nacl.signing.VerifyKey(bytes.fromhex(public_key))
        vk.verify(data, bytes.fromhex(signature))
    except (BadSignatureError, ValueError, TypeError, CryptoError):
        return False
    return True


def key_fingerprint(public_key: str) -> str:
    """Key identity: hex SHA-256 of the raw 32-byte public key."""
    try:
        raw = bytes.fromhex(public_key)
    except ValueError as exc:
        raise SignatureInvalidError(f"Malformed public key: {exc}") from exc
    return hashlib.sha256(raw).hexdigest()


# ---------------------------------------------------------------------------
# Keyring
# ---------------------------------------------------------------------------


class Keyring:
    """Trusted public keys and (optionally) private keys, by fingerprint.

    On disk a keyring is a directory of ``<name>.pub`` (hex public key) and
    ``<name>.key`` (hex private seed) files.
    """

    def __init__(self) -> None:
        self._public: dict[str, str] = {}
        self._private: dict[str, str] = {}

    def trust(self, public_key: str) -> str:
        """Add a trusted public key; returns its fingerprint."""
        fingerprint = key_fingerprint(public_key)
        self._public[fingerprint] = public_key
        return fingerprint

    def add_private_key(self, private_key: str) -> str:
        """Add a signing key (and trust its public half); returns its fingerprint."""
        fingerprint = self.trust(public_key_for(private_key))
        self._private[fingerprint] = private_key
        return fingerprint

    def public_key(self, fingerprint: str) -> str | None:
        return self._public.get(fingerprint)

    def private_key(self, fingerprint: str) -> str | None:
        return self._private.get(fingerprint)

    def fingerprints(self) -> list[str]:
        return sorted(self._public)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._public

    @classmethod
    def load(cls, directory: Path) -> Keyring:
        """Load every ``*.pub`` and ``*.key`` file under *directory*."""
        keyring = cls()
        if not directory.is_dir():
            logger.debug("Keyring directory %s does not exist; keyring is empty.", directory)
            return keyring
        for path in sorted(directory.iterdir()):
            if path.suffix == PUBLIC_KEY_SUFFIX:
                keyring.trust(path.read_text(encoding="utf-8").strip())
            elif path.suffix == PRIVATE_KEY_SUFFIX:
                keyring.add_private_key(path.read_text(encoding="utf-8").strip())
        logger.debug("Loaded %d keys from %s.", len(keyring._public), directory)
        return keyring

    @staticmethod
    def save_keypair(directory: Path, name: str, private_key: str, public_key: str) -> str:
        """Write ``<name>.key`` / ``<name>.pub``; returns the fingerprint."""
        directory.mkdir(parents=True, exist_ok=True)
        write_bytes_atomic(directory / f"{name}{PUBLIC_KEY_SUFFIX}", public_key.encode("ascii"))
        key_path = directory / f"{name}{PRIVATE_KEY_SUFFIX}"
        write_bytes_atomic(key_path, private_key.encode("ascii"))
        key_path.chmod(0o600)
        return key_fingerprint(public_key)


# ---------------------------------------------------------------------------
# Signing mechanism
# ---------------------------------------------------------------------------


class Ed25519SigningMechanism:
    """``SigningMechanism`` implementation over a ``Keyring``."""

    def __init__(self, keyring: Keyring) -> None:
        self._keyring = keyring

    @property
    def keyring(self) -> Keyring:
        return self._keyring

    def sign(self, payload: bytes, key_identity: str) -> bytes:
        private_key = self._keyring.private_key(key_identity)
        if private_key is None:
            raise SigningError(f"No private key for identity {key_identity!r}")
        return canonical_json_bytes({
            "keyid": key_identity,
            "payload": base64.b64encode(payload).decode("ascii"),
            "signature": sign_data(payload, private_key),
        })

    def verify(self, signature: bytes) -> tuple[bytes, str]:
        try:
            blob = json.loads(signature)
            key_identity = blob["keyid"]
            payload = base64.b64decode(blob["payload"], validate=True)
            sig_hex = blob["signature"]
        except (ValueError, KeyError, TypeError, binascii.Error, UnicodeDecodeError) as exc:
            raise SignatureInvalidError(f"Signature blob is unreadable: {exc}") from exc
        if not isinstance(key_identity, str) or not isinstance(sig_hex, str):
            raise SignatureInvalidError("Signature blob has non-string fields")

        public_key = self._keyring.public_key(key_identity)
        if public_key is None:
            raise SignatureInvalidError(f"Signer {key_identity!r} is not a trusted key")
        if not verify_data(payload, sig_hex, public_key):
            raise SignatureInvalidError(
                f"Signature by {key_identity!r} does not verify"
            )
        return payload, key_identity
