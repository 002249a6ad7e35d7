"""Detached manifest signatures: sign and verify.

A signature binds two facts, an image reference and the digest of the
exact manifest bytes, under a key held by a signing mechanism.  The
mechanism itself (key storage, the cryptographic primitive) is injected;
this module only builds, parses, and checks the signed payload.

Verification is fail-closed: it either returns a ``VerifiedSignature``
after every check passed, or raises.  There is no partially trusted result.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from ocitrust.core.docker_reference import parse_normalized_named
from ocitrust.core.hasher import canonical_json_bytes
from ocitrust.core.manifest import manifest_digest
from ocitrust.errors import (
    DigestMismatchError,
    ImageTrustError,
    InvalidReferenceError,
    InvalidReferenceSyntaxError,
    KeyMismatchError,
    ReferenceMismatchError,
    SignatureInvalidError,
    SigningError,
)
from ocitrust.models.signatures import (
    SIGNATURE_TYPE,
    SignaturePayload,
    SignedEnvelope,
    VerifiedSignature,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class SigningMechanism(Protocol):
    """Capability that signs payloads and authenticates signatures.

    ``sign`` raises ``SigningError`` when the key is unknown or signing
    fails.  ``verify`` returns ``(payload, signer_key_identity)`` or raises
    ``SignatureInvalidError``.
    """

    def sign(self, payload: bytes, key_identity: str) -> bytes: ...

    def verify(self, signature: bytes) -> tuple[bytes, str]: ...


def _check_signing_reference(reference: str) -> None:
    if not reference:
        raise InvalidReferenceError(reference, "reference is empty")
    try:
        named = parse_normalized_named(reference)
    except InvalidReferenceSyntaxError as exc:
        raise InvalidReferenceError(reference, exc.reason) from exc
    if named.is_name_only:
        raise InvalidReferenceError(
            reference, "reference must carry a tag or a digest"
        )


def sign_docker_manifest(
    manifest: bytes,
    reference: str,
    mechanism: SigningMechanism,
    key_identity: str,
) -> bytes:
    """Sign *manifest* as the image *reference* using *key_identity*.

    Raises
    ------
    ManifestDigestError
        If the manifest cannot be digested deterministically.
    InvalidReferenceError
        If *reference* is empty or does not name one concrete image.
    SigningError
        If the mechanism cannot sign with *key_identity*.
    """
    digest = manifest_digest(manifest)
    _check_signing_reference(reference)

    envelope = SignedEnvelope(docker_reference=reference, docker_manifest_digest=digest)
    payload = canonical_json_bytes(
        envelope.to_payload().model_dump(mode="json", by_alias=True, exclude_none=True)
    )
    try:
        signature = mechanism.sign(payload, key_identity)
    except SigningError:
        raise
    except ImageTrustError as exc:
        raise SigningError(f"Signing with key {key_identity!r} failed: {exc}") from exc
    logger.info("Signed %s (%s) with key %s.", reference, digest, key_identity)
    return signature


def _parse_envelope(payload: bytes) -> SignedEnvelope:
    try:
        parsed = SignaturePayload.model_validate_json(payload)
    except ValidationError as exc:
        raise SignatureInvalidError(f"Signed payload is malformed: {exc}") from exc
    if parsed.critical.type != SIGNATURE_TYPE:
        raise SignatureInvalidError(
            f"Unrecognized signature type {parsed.critical.type!r}"
        )
    return SignedEnvelope.from_payload(parsed)


def verify_docker_manifest_signature(
    signature: bytes,
    manifest: bytes,
    expected_reference: str,
    mechanism: SigningMechanism,
    expected_key_identity: str,
) -> VerifiedSignature:
    """Verify that *signature* vouches for *manifest* as *expected_reference*.

    Checks, in order: the manifest digests; the signature authenticates;
    the payload parses; the signer is ``expected_key_identity``; the signed
    reference is ``expected_reference``; the signed digest is the manifest's.

    Raises
    ------
    ManifestDigestError
        If the manifest itself cannot be digested.
    SignatureInvalidError
        If the signature does not authenticate or its payload is malformed.
    KeyMismatchError, ReferenceMismatchError, DigestMismatchError
        If a claim does not match what the caller expects.
    """
    digest = manifest_digest(manifest)

    try:
        payload, signer = mechanism.verify(signature)
    except SignatureInvalidError:
        raise
    except ImageTrustError as exc:
        raise SignatureInvalidError(f"Signature does not authenticate: {exc}") from exc

    envelope = _parse_envelope(payload)

    if signer != expected_key_identity:
        logger.warning("Signature key %s is not the expected %s.", signer, expected_key_identity)
        raise KeyMismatchError(expected_key_identity, signer)
    if envelope.docker_reference != expected_reference:
        logger.warning(
            "Signature reference %s is not the expected %s.",
            envelope.docker_reference, expected_reference,
        )
        raise ReferenceMismatchError(expected_reference, envelope.docker_reference)
    if envelope.docker_manifest_digest != digest:
        logger.warning(
            "Signed digest %s does not match manifest digest %s.",
            envelope.docker_manifest_digest, digest,
        )
        raise DigestMismatchError(envelope.docker_manifest_digest, digest)

    return VerifiedSignature(
        docker_reference=envelope.docker_reference,
        docker_manifest_digest=digest,
        signer_key_identity=signer,
    )
