"""Manifest media types, classification, digesting, and OCI translation.

Only the handful of schema facts needed for content addressing live here:
how to recognise a manifest's media type from its bytes, how to digest it
(docker schema 1 signed manifests digest their JWS payload, not the raw
bytes), and the single lossless translation the OCI layout store accepts
(docker v2 schema 2 -> OCI image manifest).
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from pydantic import ValidationError

from ocitrust.core.hasher import DEFAULT_ALGORITHM, compute_digest
from ocitrust.errors import ManifestDigestError, UnsupportedConversionError
from ocitrust.models.descriptors import ImageManifest

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Media types
# ---------------------------------------------------------------------------

DOCKER_V2_SCHEMA1_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_V2_SCHEMA1_SIGNED_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v1+prettyjws"
DOCKER_V2_SCHEMA2_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_V2_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_V2_CONFIG_MEDIA_TYPE = "application/vnd.docker.container.image.v1+json"
DOCKER_V2_LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"
DOCKER_V2_FOREIGN_LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip"

OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
OCI_CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"
OCI_LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"
OCI_NONDISTRIBUTABLE_LAYER_MEDIA_TYPE = (
    "application/vnd.oci.image.layer.nondistributable.v1.tar+gzip"
)

_DECLARED_MEDIA_TYPES = frozenset({
    DOCKER_V2_SCHEMA1_MEDIA_TYPE,
    DOCKER_V2_SCHEMA1_SIGNED_MEDIA_TYPE,
    DOCKER_V2_SCHEMA2_MEDIA_TYPE,
    DOCKER_V2_LIST_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    OCI_INDEX_MEDIA_TYPE,
})

_OCI_LAYER_FOR_DOCKER_LAYER = {
    DOCKER_V2_LAYER_MEDIA_TYPE: OCI_LAYER_MEDIA_TYPE,
    DOCKER_V2_FOREIGN_LAYER_MEDIA_TYPE: OCI_NONDISTRIBUTABLE_LAYER_MEDIA_TYPE,
}


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _load_object(manifest: bytes) -> dict[str, Any] | None:
    try:
        doc = json.loads(manifest)
    except (ValueError, UnicodeDecodeError):
        return None
    return doc if isinstance(doc, dict) else None


def guess_mime_type(manifest: bytes) -> str:
    """Classify manifest bytes; returns ``""`` when the type is unknown."""
    doc = _load_object(manifest)
    if doc is None:
        return ""

    declared = doc.get("mediaType")
    if declared in _DECLARED_MEDIA_TYPES:
        return declared

    schema_version = doc.get("schemaVersion")
    if schema_version == 1:
        if "signatures" in doc:
            return DOCKER_V2_SCHEMA1_SIGNED_MEDIA_TYPE
        return DOCKER_V2_SCHEMA1_MEDIA_TYPE
    if schema_version == 2:
        # OCI documents may omit mediaType.
        if "manifests" in doc:
            return OCI_INDEX_MEDIA_TYPE
        if "config" in doc:
            return OCI_MANIFEST_MEDIA_TYPE
    return ""


# ---------------------------------------------------------------------------
# Digesting
# ---------------------------------------------------------------------------


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _jws_payload(manifest: bytes) -> bytes:
    """Recover the signed payload of a pretty-printed JWS schema 1 manifest.

    Each signature's protected header records ``formatLength`` (how many
    leading bytes of the document belong to the payload) and ``formatTail``
    (the bytes that replaced the ``signatures`` section).  All signatures
    must describe the same payload.
    """
    doc = _load_object(manifest)
    if doc is None:
        raise ManifestDigestError("Schema 1 manifest is not a JSON object")
    signatures = doc.get("signatures")
    if not isinstance(signatures, list) or not signatures:
        raise ManifestDigestError("Schema 1 manifest has no signatures")

    format_length: int | None = None
    format_tail: bytes | None = None
    for index, sig in enumerate(signatures):
        if not isinstance(sig, dict) or not isinstance(sig.get("protected"), str):
            raise ManifestDigestError(f"Signature {index} has no protected header")
        try:
            protected = json.loads(_b64url_decode(sig["protected"]))
            length = protected["formatLength"]
            tail = _b64url_decode(protected["formatTail"])
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise ManifestDigestError(
                f"Signature {index} has a malformed protected header: {exc}"
            ) from exc
        if not isinstance(length, int) or length < 0 or length > len(manifest):
            raise ManifestDigestError(
                f"Signature {index} has an invalid formatLength {length!r}"
            )
        if format_length is None:
            format_length, format_tail = length, tail
        elif (length, tail) != (format_length, format_tail):
            raise ManifestDigestError("Signatures disagree on the signed payload")

    assert format_length is not None and format_tail is not None
    return manifest[:format_length] + format_tail


def manifest_digest(manifest: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Digest a manifest the way a registry identifies it.

    Raises
    ------
    ManifestDigestError
        If a signed schema 1 manifest's payload cannot be reconstructed.
    """
    if guess_mime_type(manifest) == DOCKER_V2_SCHEMA1_SIGNED_MEDIA_TYPE:
        return compute_digest(_jws_payload(manifest), algorithm)
    return compute_digest(manifest, algorithm)


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def to_oci_manifest(manifest: bytes) -> tuple[bytes, str]:
    """Translate *manifest* into an OCI image manifest.

    Returns
    -------
    tuple[bytes, str]
        ``(oci_manifest_bytes, OCI_MANIFEST_MEDIA_TYPE)``.  OCI manifests
        are returned unchanged.

    Raises
    ------
    UnsupportedConversionError
        For schema 1 manifests, manifest lists, OCI indexes, and unknown
        documents.
    """
    media_type = guess_mime_type(manifest)
    if media_type == OCI_MANIFEST_MEDIA_TYPE:
        return manifest, OCI_MANIFEST_MEDIA_TYPE
    if media_type in (DOCKER_V2_SCHEMA1_MEDIA_TYPE, DOCKER_V2_SCHEMA1_SIGNED_MEDIA_TYPE):
        raise UnsupportedConversionError(
            media_type, "OCI layouts are only compatible with docker schema 2"
        )
    if media_type == DOCKER_V2_LIST_MEDIA_TYPE:
        raise UnsupportedConversionError(media_type, "manifest lists are not supported")
    if media_type == OCI_INDEX_MEDIA_TYPE:
        raise UnsupportedConversionError(media_type, "OCI indexes are not supported")
    if media_type != DOCKER_V2_SCHEMA2_MEDIA_TYPE:
        raise UnsupportedConversionError(media_type, "unrecognized manifest media type")

    try:
        parsed = ImageManifest.model_validate_json(manifest)
    except ValidationError as exc:
        raise UnsupportedConversionError(media_type, f"malformed manifest: {exc}") from exc

    layers = [
        layer.model_copy(update={
            "media_type": _OCI_LAYER_FOR_DOCKER_LAYER.get(
                layer.media_type, OCI_LAYER_MEDIA_TYPE
            ),
        })
        for layer in parsed.layers
    ]
    converted = parsed.model_copy(update={
        "media_type": OCI_MANIFEST_MEDIA_TYPE,
        "config": parsed.config.model_copy(update={"media_type": OCI_CONFIG_MEDIA_TYPE}),
        "layers": layers,
    })
    logger.debug("Translated docker schema 2 manifest to OCI (%d layers).", len(layers))
    return converted.to_json_bytes(), OCI_MANIFEST_MEDIA_TYPE
