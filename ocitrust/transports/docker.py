"""Registry transport: ``//[domain/]name[:tag|@digest]``.

The registry protocol itself (HTTP, authentication, TLS) lives behind the
``RemoteTransfer`` capability, injected by the application.  This module
only handles naming, policy keys, and digest checks on what the remote
returns.
"""

from __future__ import annotations

import io
import logging
from typing import BinaryIO, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from ocitrust.core.docker_reference import (
    REFERENCE_RE,
    NamedReference,
    is_qualified_scope_name,
    parse_normalized_named,
)
from ocitrust.core.hasher import compute_digest, parse_digest
from ocitrust.core.manifest import guess_mime_type, manifest_digest
from ocitrust.errors import (
    DigestMismatchError,
    InvalidPolicyScopeError,
    InvalidReferenceSyntaxError,
    SignaturesUnsupportedError,
)
from ocitrust.models.descriptors import BlobInfo
from ocitrust.transports.base import ImageDestination, ImageReference, ImageSource, ImageTransport

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteTransfer(Protocol):
    """Registry client capability.

    ``manifest_exists`` asks without downloading.  ``fetch_manifest`` returns
    the manifest bytes and the digest the registry claims for them (``None``
    if it did not say).  Missing content raises ``NoSuchImageError``.
    """

    def manifest_exists(self, ref: NamedReference) -> bool: ...

    def fetch_manifest(self, ref: NamedReference) -> tuple[bytes, str | None]: ...

    def fetch_blob(self, digest: str) -> tuple[BinaryIO, int]: ...

    def put_manifest(self, ref: NamedReference, manifest: bytes) -> None: ...

    def put_blob(self, digest: str, stream: BinaryIO) -> None: ...


class DockerTransport(ImageTransport):
    name = "docker"

    def parse_reference(self, reference: str) -> DockerReference:
        return parse_reference(reference)

    def validate_policy_configuration_scope(self, scope: str) -> None:
        """Scopes are a repository (optionally tagged), a namespace, or a domain."""
        if not scope:
            raise InvalidPolicyScopeError(scope, "empty scope")
        if REFERENCE_RE.match(scope) is None:
            raise InvalidPolicyScopeError(scope, "not a valid image name")
        if not is_qualified_scope_name(scope):
            raise InvalidPolicyScopeError(scope, "name is not fully qualified")


DOCKER_TRANSPORT = DockerTransport()


class DockerReference(BaseModel, ImageReference):
    """A registry image name, always tagged or digested."""

    model_config = ConfigDict(frozen=True)

    named: NamedReference

    def transport(self) -> DockerTransport:
        return DOCKER_TRANSPORT

    def string_within_transport(self) -> str:
        return "//" + self.named.familiar_string()

    def docker_reference(self) -> NamedReference:
        return self.named

    def policy_configuration_identity(self) -> str:
        return self.named.string()

    def policy_configuration_namespaces(self) -> list[str]:
        namespaces: list[str] = []
        name = self.named.name
        while True:
            namespaces.append(name)
            last_slash = name.rfind("/")
            if last_slash == -1:
                break
            name = name[:last_slash]
        return namespaces

    def new_image_source(self, remote: RemoteTransfer) -> DockerImageSource:
        return DockerImageSource(self, remote)

    def new_image_destination(self, remote: RemoteTransfer) -> DockerImageDestination:
        return DockerImageDestination(self, remote)


def parse_reference(reference: str) -> DockerReference:
    """Parse ``//name[:tag][@digest]``; a bare name gets ``latest``."""
    if not reference.startswith("//"):
        raise InvalidReferenceSyntaxError(reference, "docker references must start with //")
    return DockerReference(named=parse_normalized_named(reference[2:]).tag_name_only())


class DockerImageSource(ImageSource):
    """Reads an image through a ``RemoteTransfer``.

    A digested reference, or a digest the registry reports, is checked
    against the manifest bytes before they are returned.
    """

    def __init__(self, ref: DockerReference, remote: RemoteTransfer) -> None:
        self._ref = ref
        self._remote = remote

    def reference(self) -> DockerReference:
        return self._ref

    def get_manifest(self) -> tuple[bytes, str]:
        manifest, claimed = self._remote.fetch_manifest(self._ref.named)
        for expected in (self._ref.named.digest, claimed):
            if expected is None:
                continue
            algorithm, _ = parse_digest(expected)
            actual = manifest_digest(manifest, algorithm)
            if actual != expected:
                raise DigestMismatchError(expected, actual)
        logger.debug("Fetched manifest for %s.", self._ref.named)
        return manifest, guess_mime_type(manifest)

    def get_blob(self, digest: str) -> tuple[BinaryIO, int]:
        logger.info("Downloading blob %s.", digest)
        return self._remote.fetch_blob(digest)

    def get_signatures(self) -> list[bytes]:
        return []


class DockerImageDestination(ImageDestination):
    """Writes an image through a ``RemoteTransfer``."""

    def __init__(self, ref: DockerReference, remote: RemoteTransfer) -> None:
        self._ref = ref
        self._remote = remote

    def reference(self) -> DockerReference:
        return self._ref

    def supported_manifest_mime_types(self) -> list[str]:
        return []

    def put_blob(
        self,
        stream: BinaryIO,
        digest: str | None = None,
        size: int | None = None,
    ) -> BlobInfo:
        if digest is None or size is None:
            # The registry needs the digest up front.
            data = stream.read()
            digest = digest or compute_digest(data)
            size = len(data)
            stream = io.BytesIO(data)
        self._remote.put_blob(digest, stream)
        return BlobInfo(digest=digest, size=size)

    def put_manifest(self, manifest: bytes) -> str:
        self._remote.put_manifest(self._ref.named, manifest)
        return manifest_digest(manifest)

    def put_signatures(self, signatures: list[bytes]) -> None:
        if signatures:
            raise SignaturesUnsupportedError(
                "Pushing signatures to a registry is not supported"
            )
