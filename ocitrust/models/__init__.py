"""Frozen pydantic models shared across ocitrust."""

from ocitrust.models.descriptors import (
    BlobInfo,
    ImageManifest,
    LayerDescriptor,
    ManifestDescriptor,
    StoredImage,
)
from ocitrust.models.signatures import SignedEnvelope, VerifiedSignature

__all__ = [
    "BlobInfo",
    "ImageManifest",
    "LayerDescriptor",
    "ManifestDescriptor",
    "StoredImage",
    "SignedEnvelope",
    "VerifiedSignature",
]
