"""Image transports and the ``transport:reference`` entry point.

Modules
-------
oci
    OCI image-layout directories (``oci:/path[:tag]``).
storage
    The local content store (``containers-storage:[driver@root]name``).
docker
    Registries, over an injected ``RemoteTransfer`` (``docker://name``).
proxy
    Pull-through manifest and blob caches over a registry.
"""

from __future__ import annotations

from ocitrust.core.image_store import StoreLocator
from ocitrust.errors import InvalidReferenceSyntaxError
from ocitrust.transports.base import ImageReference, ImageTransport
from ocitrust.transports.docker import DOCKER_TRANSPORT
from ocitrust.transports.oci import OCI_TRANSPORT
from ocitrust.transports.storage import TRANSPORT_NAME as STORAGE_TRANSPORT_NAME
from ocitrust.transports.storage import StorageTransport


def get_transport(name: str, locator: StoreLocator) -> ImageTransport:
    """Return the transport called *name*; the storage transport binds *locator*."""
    if name == OCI_TRANSPORT.name:
        return OCI_TRANSPORT
    if name == DOCKER_TRANSPORT.name:
        return DOCKER_TRANSPORT
    if name == STORAGE_TRANSPORT_NAME:
        return StorageTransport(locator)
    raise InvalidReferenceSyntaxError(name, "unknown transport")


def parse_image_name(image_name: str, locator: StoreLocator) -> ImageReference:
    """Parse ``transport:reference`` (e.g. ``oci:/srv/layout:v1``)."""
    name, sep, within = image_name.partition(":")
    if not sep:
        raise InvalidReferenceSyntaxError(image_name, "expected transport:reference")
    return get_transport(name, locator).parse_reference(within)


__all__ = ["get_transport", "parse_image_name"]
