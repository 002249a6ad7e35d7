"""Descriptor and stored-image models.

Wire names follow the OCI image-spec (``mediaType``); Python code uses
snake_case through field aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BlobInfo(BaseModel):
    """Digest and exact byte count of a committed blob."""

    model_config = ConfigDict(frozen=True)

    digest: str  # "<alg>:<hex>"
    size: int


class ManifestDescriptor(BaseModel):
    """Pointer to a stored manifest, persisted per tag.

    ``size`` is the exact persisted length and ``digest`` the digest of the
    persisted bytes (after any translation).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    digest: str
    media_type: str = Field(alias="mediaType")
    size: int

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class LayerDescriptor(BaseModel):
    """A config or layer entry inside an image manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    media_type: str = Field(default="", alias="mediaType")
    size: int = 0
    digest: str = ""


class ImageManifest(BaseModel):
    """Single-platform image manifest (docker v2s2 or OCI v1).

    Unknown keys are preserved so that a translation does not drop data
    it does not understand.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    schema_version: int = Field(alias="schemaVersion")
    media_type: str = Field(default="", alias="mediaType")
    config: LayerDescriptor
    layers: list[LayerDescriptor] = []
    annotations: dict[str, str] | None = None

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


class StoredImage(BaseModel):
    """An image record in the local content store.

    ``names`` are fully expanded references (``docker.io/library/busybox:latest``),
    ``digests`` the manifest digests the image is known under.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    names: list[str] = []
    digests: list[str] = []
    metadata: dict[str, Any] = {}
