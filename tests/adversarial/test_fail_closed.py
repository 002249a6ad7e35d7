"""Adversarial tests: verification and reads fail closed.

1. A mechanism that misbehaves never yields a VerifiedSignature
2. Unexpected mechanism errors surface as SignatureInvalidError
3. A corrupted store never serves bytes that do not match their digest
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ocitrust.core.hasher import canonical_json_bytes, compute_digest
from ocitrust.core.image_store import LocalImageStore
from ocitrust.core.manifest import manifest_digest
from ocitrust.core.signature import sign_docker_manifest, verify_docker_manifest_signature
from ocitrust.errors import (
    DigestMismatchError,
    ImageTrustError,
    ManifestDigestError,
    SignatureInvalidError,
    SigningError,
)
from ocitrust.models.signatures import SignedEnvelope
from ocitrust.transports.oci import new_reference

REFERENCE = "example.com/ns/app:v1"


class ErrorMechanism:
    """Raises a non-signature error from both operations."""

    def sign(self, payload: bytes, key_identity: str) -> bytes:
        raise ImageTrustError("backend unavailable")

    def verify(self, signature: bytes) -> tuple[bytes, str]:
        raise ImageTrustError("backend unavailable")


class RubberStampMechanism:
    """Vouches for whatever payload it is handed, as any key requested."""

    def __init__(self, payload: bytes, signer: str) -> None:
        self._payload = payload
        self._signer = signer

    def sign(self, payload: bytes, key_identity: str) -> bytes:
        return payload

    def verify(self, signature: bytes) -> tuple[bytes, str]:
        return self._payload, self._signer


class TestMechanismFailures:
    def test_sign_error_wrapped(self, v2s2_manifest):
        with pytest.raises(SigningError, match="backend unavailable"):
            sign_docker_manifest(v2s2_manifest, REFERENCE, ErrorMechanism(), "k")

    def test_verify_error_wrapped(self, v2s2_manifest):
        with pytest.raises(SignatureInvalidError, match="backend unavailable"):
            verify_docker_manifest_signature(b"sig", v2s2_manifest, REFERENCE, ErrorMechanism(), "k")

    def test_claims_still_checked_after_authentication(self, v2s2_manifest, oci_manifest):
        envelope = SignedEnvelope(
            docker_reference=REFERENCE,
            docker_manifest_digest=manifest_digest(oci_manifest),
        )
        payload = canonical_json_bytes(
            envelope.to_payload().model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        stamp = RubberStampMechanism(payload, "k")
        with pytest.raises(DigestMismatchError):
            verify_docker_manifest_signature(b"sig", v2s2_manifest, REFERENCE, stamp, "k")

    def test_manifest_checked_before_mechanism(self):
        broken = b'{"schemaVersion": 1, "signatures": [{"protected": 5}]}'
        with pytest.raises(ManifestDigestError):
            verify_docker_manifest_signature(b"sig", broken, REFERENCE, ErrorMechanism(), "k")


class TestCorruptedStores:
    def test_oci_blob_swapped(self, tmp_dir: Path, oci_manifest, v2s2_manifest):
        ref = new_reference(str(tmp_dir / "layout"), "v1")
        descriptor = ref.new_image_destination().put_manifest(oci_manifest)
        blob = ref.blob_store().blob_path(descriptor.digest)
        swapped = oci_manifest.replace(b'"schemaVersion": 2', b'"schemaVersion": 9')
        blob.write_bytes(swapped)
        with pytest.raises(DigestMismatchError):
            ref.new_image_source().get_manifest()

    def test_image_store_manifest_swapped(self, image_store: LocalImageStore, v2s2_manifest):
        image = image_store.create_image(["docker.io/library/busybox:latest"], v2s2_manifest)
        digest = image.digests[0]
        image_store.manifest_path(digest).write_bytes(b"{}")
        with pytest.raises(DigestMismatchError):
            image_store.manifest(digest)

    def test_digest_of_store_path_is_not_trusted(self, blob_store):
        info = blob_store.put_bytes(b"genuine")
        blob_store.blob_path(info.digest).write_bytes(b"forged!")
        assert blob_store.verify(info.digest) is False
        assert compute_digest(b"forged!") != info.digest
