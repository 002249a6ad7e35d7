"""Transport, reference, source and destination interfaces.

A transport is a way users refer to image storage (an OCI layout
directory, a local content store, a registry).  A reference names one image
within a transport and knows how to present itself to a trust-policy
engine: one most-specific identity plus an ordered list of progressively
less specific namespaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO

from ocitrust.core.docker_reference import NamedReference


class ImageReference(ABC):
    """An image location, namespaced within a transport.

    Implementations are immutable; resolving store-local state produces a
    new reference.
    """

    @abstractmethod
    def transport(self) -> ImageTransport: ...

    @abstractmethod
    def string_within_transport(self) -> str:
        """String form such that ``transport().parse_reference(s)`` is equal to ``self``."""

    @abstractmethod
    def docker_reference(self) -> NamedReference | None:
        """The docker reference reflecting user intent, if any."""

    @abstractmethod
    def policy_configuration_identity(self) -> str:
        """Most specific policy lookup key for this image."""

    @abstractmethod
    def policy_configuration_namespaces(self) -> list[str]:
        """Less specific policy lookup keys, most specific first."""


class ImageTransport(ABC):
    """A top-level namespace for ways to store and load images."""

    name: str

    @abstractmethod
    def parse_reference(self, reference: str) -> ImageReference: ...

    @abstractmethod
    def validate_policy_configuration_scope(self, scope: str) -> None:
        """Raise ``InvalidPolicyScopeError`` if *scope* cannot be a policy key."""


class ImageSource(ABC):
    """Reads the components of a single image."""

    @abstractmethod
    def reference(self) -> ImageReference: ...

    @abstractmethod
    def get_manifest(self) -> tuple[bytes, str]:
        """Return ``(manifest_bytes, media_type)``; media type may be ``""``."""

    @abstractmethod
    def get_blob(self, digest: str) -> tuple[BinaryIO, int]:
        """Return ``(stream, size)`` for a blob; the caller closes the stream."""

    @abstractmethod
    def get_signatures(self) -> list[bytes]: ...


class ImageDestination(ABC):
    """Writes the components of a single image."""

    @abstractmethod
    def reference(self) -> ImageReference: ...

    @abstractmethod
    def supported_manifest_mime_types(self) -> list[str]:
        """Accepted manifest media types, most preferred first; empty means any."""

    @abstractmethod
    def put_blob(
        self,
        stream: BinaryIO,
        digest: str | None = None,
        size: int | None = None,
    ): ...

    @abstractmethod
    def put_manifest(self, manifest: bytes): ...

    @abstractmethod
    def put_signatures(self, signatures: list[bytes]) -> None: ...
