"""Shared test fixtures for ocitrust."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from pathlib import Path

import pytest

from ocitrust.bridge.crypto_bridge import Ed25519SigningMechanism, Keyring, generate_keypair
from ocitrust.core.blob_store import ContentAddressedStore
from ocitrust.core.hasher import compute_digest
from ocitrust.core.image_store import LocalImageStore, StoreLocator
from ocitrust.core.manifest import (
    DOCKER_V2_CONFIG_MEDIA_TYPE,
    DOCKER_V2_LAYER_MEDIA_TYPE,
    DOCKER_V2_SCHEMA2_MEDIA_TYPE,
    OCI_CONFIG_MEDIA_TYPE,
    OCI_LAYER_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
)

CONFIG_BLOB = b'{"architecture":"amd64","os":"linux"}'
LAYER_BLOB = b"layer tarball bytes"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def blob_store(tmp_dir: Path) -> ContentAddressedStore:
    """Provide a fresh ContentAddressedStore in a temp directory."""
    return ContentAddressedStore(tmp_dir / "blobstore")


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@pytest.fixture
def keyring() -> Keyring:
    """A keyring holding one signing key."""
    ring = Keyring()
    private_key, _ = generate_keypair()
    ring.add_private_key(private_key)
    return ring


@pytest.fixture
def key_id(keyring: Keyring) -> str:
    return keyring.fingerprints()[0]


@pytest.fixture
def mechanism(keyring: Keyring) -> Ed25519SigningMechanism:
    return Ed25519SigningMechanism(keyring)


# ---------------------------------------------------------------------------
# Local content store
# ---------------------------------------------------------------------------


@pytest.fixture
def locator(tmp_dir: Path) -> StoreLocator:
    return StoreLocator(
        driver="vfs",
        graph_root=str((tmp_dir / "storage").resolve()),
        run_root=str((tmp_dir / "run").resolve()),
    )


@pytest.fixture
def image_store(locator: StoreLocator) -> LocalImageStore:
    return LocalImageStore(locator)


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------


def _descriptor(media_type: str, data: bytes) -> dict:
    return {"mediaType": media_type, "size": len(data), "digest": compute_digest(data)}


@pytest.fixture
def v2s2_manifest() -> bytes:
    """A docker v2 schema 2 manifest with one layer."""
    return json.dumps({
        "schemaVersion": 2,
        "mediaType": DOCKER_V2_SCHEMA2_MEDIA_TYPE,
        "config": _descriptor(DOCKER_V2_CONFIG_MEDIA_TYPE, CONFIG_BLOB),
        "layers": [_descriptor(DOCKER_V2_LAYER_MEDIA_TYPE, LAYER_BLOB)],
    }, indent=3).encode("utf-8")


@pytest.fixture
def oci_manifest() -> bytes:
    """An OCI image manifest with one layer."""
    return json.dumps({
        "schemaVersion": 2,
        "mediaType": OCI_MANIFEST_MEDIA_TYPE,
        "config": _descriptor(OCI_CONFIG_MEDIA_TYPE, CONFIG_BLOB),
        "layers": [_descriptor(OCI_LAYER_MEDIA_TYPE, LAYER_BLOB)],
    }).encode("utf-8")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@pytest.fixture
def make_signed_schema1() -> Callable[..., tuple[bytes, bytes]]:
    """Factory: build a pretty-JWS schema 1 manifest.

    Returns ``(manifest, payload)`` where *payload* is the document the
    JWS signatures cover (the manifest without its ``signatures`` section).
    """

    def _factory(name: str = "library/busybox", tag: str = "latest", signatures: int = 1):
        payload = json.dumps({
            "schemaVersion": 1,
            "name": name,
            "tag": tag,
            "architecture": "amd64",
            "fsLayers": [{"blobSum": compute_digest(LAYER_BLOB)}],
        }, indent=3).encode("utf-8")
        tail = b"\n}"
        assert payload.endswith(tail)
        format_length = len(payload) - len(tail)
        protected = _b64url(json.dumps({
            "formatLength": format_length,
            "formatTail": _b64url(tail),
            "time": "2016-01-01T00:00:00Z",
        }).encode("utf-8"))
        entries = [
            {"header": {"alg": "ES256"}, "signature": f"sig{i}", "protected": protected}
            for i in range(signatures)
        ]
        signed = (
            payload[:format_length]
            + b',\n   "signatures": '
            + json.dumps(entries).encode("utf-8")
            + tail
        )
        return signed, payload

    return _factory
