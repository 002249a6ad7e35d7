"""OCI image-layout transport: ``/path/to/layout[:tag]``.

Directory layout::

    {dir}/
        oci-layout             layout version marker
        blobs/{alg}-{hex}      manifests and layer blobs
        refs/{tag}             descriptor record for the tagged manifest

Manifests written here are translated to the OCI schema first, so the
stored bytes (and their digest) may differ from the input.  Signatures made
over the input therefore cannot be stored alongside; ``put_signatures``
rejects them.
"""

from __future__ import annotations

import io
import logging
import os
import posixpath
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, ValidationError

from ocitrust.core.blob_store import ContentAddressedStore
from ocitrust.core.blob_writer import write_bytes_atomic
from ocitrust.core.docker_reference import DEFAULT_TAG, TAG_RE, NamedReference
from ocitrust.core.hasher import InvalidDigestError, parse_digest
from ocitrust.core.manifest import (
    DOCKER_V2_SCHEMA2_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    manifest_digest,
    to_oci_manifest,
)
from ocitrust.errors import (
    DigestMismatchError,
    InvalidPolicyScopeError,
    InvalidReferenceSyntaxError,
    NoSuchImageError,
    SignaturesUnsupportedError,
    SizeMismatchError,
)
from ocitrust.models.descriptors import BlobInfo, ManifestDescriptor
from ocitrust.transports.base import ImageDestination, ImageReference, ImageSource, ImageTransport

logger = logging.getLogger(__name__)

LAYOUT_FILE = "oci-layout"
LAYOUT_VERSION = b'{"imageLayoutVersion": "1.0.0"}'
REFS_DIR = "refs"


def resolve_path_to_fully_explicit(path: str) -> str:
    """Absolute, symlink-free form of *path*.

    A path that does not exist yet is accepted as long as its parent does.
    """
    absolute = os.path.abspath(path)
    if os.path.lexists(absolute):
        return os.path.realpath(absolute)
    parent, base = os.path.split(absolute)
    if not os.path.lexists(parent):
        raise InvalidReferenceSyntaxError(path, f"parent directory {parent!r} does not exist")
    return os.path.join(os.path.realpath(parent), base)


class OCITransport(ImageTransport):
    name = "oci"

    def parse_reference(self, reference: str) -> OCIReference:
        return parse_reference(reference)

    def validate_policy_configuration_scope(self, scope: str) -> None:
        directory = scope
        sep = scope.rfind(":")
        if sep != -1:
            directory, tag = scope[:sep], scope[sep + 1:]
            if not TAG_RE.match(tag):
                raise InvalidPolicyScopeError(scope, f"invalid tag {tag!r}")
        if ":" in directory:
            raise InvalidPolicyScopeError(scope, "path contains a colon")
        if not directory.startswith("/"):
            raise InvalidPolicyScopeError(scope, "must be an absolute path")
        # "/" alone would shadow the empty (transport-wide) scope.
        if scope == "/":
            raise InvalidPolicyScopeError(scope, "use the empty string to apply to all paths")
        if posixpath.normpath(directory) != directory or directory.startswith("//"):
            raise InvalidPolicyScopeError(scope, "path is not canonical")


OCI_TRANSPORT = OCITransport()


class OCIReference(BaseModel, ImageReference):
    """An OCI layout directory plus a tag."""

    model_config = ConfigDict(frozen=True)

    dir: str
    resolved_dir: str
    tag: str

    def transport(self) -> OCITransport:
        return OCI_TRANSPORT

    def string_within_transport(self) -> str:
        return f"{self.dir}:{self.tag}"

    def docker_reference(self) -> NamedReference | None:
        return None

    def policy_configuration_identity(self) -> str:
        return f"{self.resolved_dir}:{self.tag}"

    def policy_configuration_namespaces(self) -> list[str]:
        namespaces: list[str] = []
        path = self.resolved_dir
        while True:
            last_slash = path.rfind("/")
            if last_slash == -1 or path == "/":
                break
            namespaces.append(path)
            path = path[:last_slash]
        return namespaces

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return Path(self.dir)

    def layout_path(self) -> Path:
        return self.root / LAYOUT_FILE

    def descriptor_path(self) -> Path:
        return self.root / REFS_DIR / self.tag

    def blob_store(self, chunk_size: int | None = None) -> ContentAddressedStore:
        if chunk_size is None:
            return ContentAddressedStore(self.root)
        return ContentAddressedStore(self.root, chunk_size=chunk_size)

    def new_image_source(self) -> OCIImageSource:
        return OCIImageSource(self)

    def new_image_destination(self, chunk_size: int | None = None) -> OCIImageDestination:
        return OCIImageDestination(self, chunk_size=chunk_size)


def new_reference(directory: str, tag: str = DEFAULT_TAG) -> OCIReference:
    """Build a reference for *directory* and *tag*.

    Raises
    ------
    InvalidReferenceSyntaxError
        If the directory contains a colon, its parent does not exist, or
        the tag is malformed.
    """
    if ":" in directory:
        raise InvalidReferenceSyntaxError(directory, "path contains a colon")
    if not TAG_RE.match(tag):
        raise InvalidReferenceSyntaxError(tag, "invalid tag format")
    resolved = resolve_path_to_fully_explicit(directory)
    return OCIReference(dir=directory, resolved_dir=resolved, tag=tag)


def parse_reference(reference: str) -> OCIReference:
    """Parse ``dir[:tag]``; the tag defaults to ``latest``."""
    sep = reference.rfind(":")
    if sep == -1:
        return new_reference(reference, DEFAULT_TAG)
    return new_reference(reference[:sep], reference[sep + 1:])


# ---------------------------------------------------------------------------
# Destination
# ---------------------------------------------------------------------------


class OCIImageDestination(ImageDestination):
    """Writes manifests and blobs into an OCI layout directory."""

    def __init__(self, ref: OCIReference, *, chunk_size: int | None = None) -> None:
        self._ref = ref
        self._blobs = ref.blob_store(chunk_size)

    def reference(self) -> OCIReference:
        return self._ref

    def supported_manifest_mime_types(self) -> list[str]:
        return [OCI_MANIFEST_MEDIA_TYPE, DOCKER_V2_SCHEMA2_MEDIA_TYPE]

    def put_blob(
        self,
        stream: BinaryIO,
        digest: str | None = None,
        size: int | None = None,
    ) -> BlobInfo:
        return self._blobs.put(stream, expected_digest=digest, expected_size=size)

    def put_manifest(self, manifest: bytes) -> ManifestDescriptor:
        """Translate, store, and tag a manifest.

        The manifest blob is durable before the layout marker and the
        descriptor that points at it are written.

        Raises
        ------
        UnsupportedConversionError
            If the manifest cannot be stored as an OCI image manifest.
        """
        oci_manifest, media_type = to_oci_manifest(manifest)
        digest = manifest_digest(oci_manifest)
        descriptor = ManifestDescriptor(
            digest=digest, media_type=media_type, size=len(oci_manifest)
        )

        self._blobs.put(
            io.BytesIO(oci_manifest),
            expected_digest=digest,
            expected_size=len(oci_manifest),
        )
        layout = self._ref.layout_path()
        if not layout.exists():
            write_bytes_atomic(layout, LAYOUT_VERSION)
        write_bytes_atomic(self._ref.descriptor_path(), descriptor.to_json_bytes())
        logger.info(
            "Committed manifest %s as %s.", digest, self._ref.string_within_transport()
        )
        return descriptor

    def put_signatures(self, signatures: list[bytes]) -> None:
        if signatures:
            raise SignaturesUnsupportedError(
                "Pushing signatures for OCI images is not supported"
            )


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class OCIImageSource(ImageSource):
    """Reads a tagged manifest and its blobs from an OCI layout directory."""

    def __init__(self, ref: OCIReference) -> None:
        self._ref = ref
        self._blobs = ref.blob_store()

    def reference(self) -> OCIReference:
        return self._ref

    def get_descriptor(self) -> ManifestDescriptor:
        path = self._ref.descriptor_path()
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise NoSuchImageError(self._ref.string_within_transport()) from exc
        try:
            descriptor = ManifestDescriptor.model_validate_json(raw)
            parse_digest(descriptor.digest)
        except (ValidationError, InvalidDigestError) as exc:
            raise NoSuchImageError(self._ref.string_within_transport()) from exc
        return descriptor

    def get_manifest(self) -> tuple[bytes, str]:
        descriptor = self.get_descriptor()
        manifest = self._blobs.blob_path(descriptor.digest).read_bytes()
        if len(manifest) != descriptor.size:
            raise SizeMismatchError(descriptor.size, len(manifest), digest=descriptor.digest)
        actual = manifest_digest(manifest)
        if actual != descriptor.digest:
            raise DigestMismatchError(descriptor.digest, actual)
        return manifest, descriptor.media_type

    def get_blob(self, digest: str) -> tuple[BinaryIO, int]:
        return self._blobs.open(digest)

    def get_signatures(self) -> list[bytes]:
        return []
