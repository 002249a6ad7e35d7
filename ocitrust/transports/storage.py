"""Local content store transport.

Reference syntax::

    [driver@/graph/root+/run/root:opt1,opt2]name[:tag][@digest][@id]
    [driver@/graph/root+/run/root]@id

The bracketed store spec is optional; parts left out default to the
locator the reference is parsed against.  A name-only reference gets the
``latest`` tag.

Policy keys use ``[driver@graphroot]`` (the run root and options do not
change which images a store holds) and fall back to ``[graphroot]`` so a
rule can cover a directory regardless of driver.
"""

from __future__ import annotations

import logging
import posixpath
import re

from pydantic import BaseModel, ConfigDict

from ocitrust.core.docker_reference import (
    REFERENCE_RE,
    NamedReference,
    is_qualified_scope_name,
    parse_normalized_named,
)
from ocitrust.core.image_store import LocalImageStore, StoreLocator
from ocitrust.errors import (
    InvalidPolicyScopeError,
    InvalidReferenceSyntaxError,
    NoSuchImageError,
)
from ocitrust.models.descriptors import StoredImage
from ocitrust.transports.base import ImageReference, ImageTransport

logger = logging.getLogger(__name__)

TRANSPORT_NAME = "containers-storage"

IMAGE_ID_RE = re.compile(r"^[a-f0-9]{64}$")


# ---------------------------------------------------------------------------
# Store spec parsing
# ---------------------------------------------------------------------------


def _require_absolute(raw: str, path: str) -> None:
    if path and not path.startswith("/"):
        raise InvalidReferenceSyntaxError(raw, f"store path {path!r} is not absolute")


def split_store_spec(raw: str, default: StoreLocator) -> tuple[StoreLocator, str]:
    """Peel a leading ``[...]`` store spec off *raw*.

    Returns
    -------
    tuple[StoreLocator, str]
        The locator (``default`` with any given parts replaced) and the
        remainder of the string.
    """
    if not raw.startswith("["):
        return default, raw
    close = raw.find("]")
    if close < 1:
        raise InvalidReferenceSyntaxError(raw, "unterminated store spec")
    spec, rest = raw[1:close], raw[close + 1:]

    driver = ""
    if "@" in spec:
        driver, spec = spec.split("@", 1)
        if not driver or not spec:
            raise InvalidReferenceSyntaxError(raw, "store spec has an empty driver or root")

    options: tuple[str, ...] | None = None
    if ":" in spec:
        spec, opts = spec.split(":", 1)
        options = tuple(o for o in opts.split(",") if o)

    run_root = ""
    if "+" in spec:
        spec, run_root = spec.split("+", 1)

    graph_root = spec
    _require_absolute(raw, graph_root)
    _require_absolute(raw, run_root)

    locator = StoreLocator(
        driver=driver or default.driver,
        graph_root=graph_root or default.graph_root,
        run_root=run_root or default.run_root,
        options=default.options if options is None else options,
    )
    return locator, rest


# ---------------------------------------------------------------------------
# Reference
# ---------------------------------------------------------------------------


class StorageReference(BaseModel, ImageReference):
    """An image in a local store, by name and/or store-local id.

    ``named`` is the complete reference as the caller wrote it (expanded,
    with ``latest`` added to a bare name).  ``id`` is empty until the
    reference is resolved; ``resolve`` returns a new reference with it set.
    """

    model_config = ConfigDict(frozen=True)

    locator: StoreLocator
    named: NamedReference | None = None
    id: str = ""

    @property
    def reference(self) -> str:
        """The expanded name string, ``""`` for id-only references."""
        return self.named.string() if self.named is not None else ""

    def transport(self) -> StorageTransport:
        return StorageTransport(self.locator)

    def docker_reference(self) -> NamedReference | None:
        return self.named

    def string_within_transport(self) -> str:
        spec = self.locator.spec()
        if not self.reference:
            return f"{spec}@{self.id}"
        if not self.id:
            return spec + self.reference
        return f"{spec}{self.reference}@{self.id}"

    def policy_configuration_identity(self) -> str:
        spec = self.locator.policy_spec()
        if self.named is None:
            return f"{spec}@{self.id}"
        if not self.id:
            return spec + self.reference
        return f"{spec}{self.reference}@{self.id}"

    def policy_configuration_namespaces(self) -> list[str]:
        """Policy keys from most to least specific.

        1. the name and tag without the id (only when an id is set);
        2. the repository name, then each shorter path prefix;
        3. the store;
        4. the store's graph root regardless of driver.
        """
        spec = self.locator.policy_spec()
        namespaces: list[str] = []
        if self.named is not None:
            if self.id:
                namespaces.append(spec + self.reference)
            components = self.named.name.split("/")
            while components:
                namespaces.append(spec + "/".join(components))
                components.pop()
        namespaces.append(spec)
        namespaces.append(self.locator.driverless_policy_spec())
        return namespaces

    def with_id(self, image_id: str) -> StorageReference:
        return self.model_copy(update={"id": image_id})

    def resolve(self, store: LocalImageStore) -> StorageReference:
        """Return a copy of this reference bound to the stored image's id."""
        if self.id:
            return self
        return self.with_id(resolve_image(self, store).id)


def parse_store_reference(raw: str, locator: StoreLocator) -> StorageReference:
    """Parse the part of a reference after the store spec.

    Raises
    ------
    InvalidReferenceSyntaxError
        On an empty reference, a nested store spec, or an invalid name.
    """
    if not raw:
        raise InvalidReferenceSyntaxError(raw, "empty reference")
    if raw.startswith("["):
        raise InvalidReferenceSyntaxError(raw, "unexpected store spec")

    name_part, image_id = raw, ""
    split = raw.rfind("@")
    if split != -1 and IMAGE_ID_RE.match(raw[split + 1:]):
        name_part, image_id = raw[:split], raw[split + 1:]

    named: NamedReference | None = None
    if name_part:
        named = parse_normalized_named(name_part).tag_name_only()
    elif not image_id:
        raise InvalidReferenceSyntaxError(raw, "reference has neither a name nor an id")

    return StorageReference(locator=locator, named=named, id=image_id)


def parse_reference(raw: str, locator: StoreLocator) -> StorageReference:
    """Parse ``[store-spec]name[:tag][@digest][@id]`` against *locator*."""
    bound, rest = split_store_spec(raw, locator)
    return parse_store_reference(rest, bound)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def image_matches_repo(image: StoredImage, named: NamedReference) -> bool:
    """True if one of the image's names is in the same repository as *named*."""
    for name in image.names:
        try:
            candidate = parse_normalized_named(name)
        except InvalidReferenceSyntaxError:
            continue
        if candidate.name == named.name:
            return True
    return False


def resolve_image(ref: StorageReference, store: LocalImageStore) -> StoredImage:
    """Find the stored image a reference denotes.

    Order: the reference's own id; an image holding the exact expanded name;
    an image recorded under the reference's digest *and* named in the same
    repository.  The found image must still carry a name in the reference's
    repository, so a stale id cannot resolve to an unrelated image.

    Raises
    ------
    NoSuchImageError
        If nothing matches.
    """
    image_id = ref.id
    if not image_id and ref.reference:
        by_name = store.image(ref.reference)
        if by_name is not None:
            image_id = by_name.id
    if not image_id and ref.named is not None and ref.named.digest is not None:
        for candidate in store.images_by_digest(ref.named.digest):
            if image_matches_repo(candidate, ref.named):
                image_id = candidate.id
                break
    if not image_id:
        logger.debug("Reference %s does not resolve to an image id.", ref.string_within_transport())
        raise NoSuchImageError(ref.string_within_transport())

    image = store.image(image_id)
    if image is None or image.id != image_id:
        raise NoSuchImageError(ref.string_within_transport())
    if ref.named is not None and not image_matches_repo(image, ref.named):
        logger.error("No image matching reference %s found.", ref.string_within_transport())
        raise NoSuchImageError(ref.string_within_transport())
    return image


def delete_image(ref: StorageReference, store: LocalImageStore) -> StoredImage:
    """Resolve *ref* and remove the image it denotes."""
    image = resolve_image(ref, store)
    return store.delete_image(image.id)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


def _validate_scope_name(scope: str, name: str) -> None:
    if REFERENCE_RE.match(name) is None:
        raise InvalidPolicyScopeError(scope, f"invalid image name {name!r}")
    if not is_qualified_scope_name(name):
        raise InvalidPolicyScopeError(scope, f"image name {name!r} is not fully qualified")


class StorageTransport(ImageTransport):
    """``containers-storage`` transport bound to a default store locator."""

    name = TRANSPORT_NAME

    def __init__(self, locator: StoreLocator) -> None:
        self._locator = locator

    @property
    def locator(self) -> StoreLocator:
        return self._locator

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StorageTransport) and other._locator == self._locator

    def __hash__(self) -> int:
        return hash((self.name, self._locator))

    def parse_reference(self, reference: str) -> StorageReference:
        return parse_reference(reference, self._locator)

    def validate_policy_configuration_scope(self, scope: str) -> None:
        """Accept only scopes of the forms this transport emits as policy keys.

        ``[graphroot]``, ``[driver@graphroot]``, optionally followed by a
        fully qualified name (with optional tag) and an optional ``@id``.
        """
        if not scope.startswith("["):
            raise InvalidPolicyScopeError(scope, "missing store location prefix")
        close = scope.find("]")
        if close < 1:
            raise InvalidPolicyScopeError(scope, "malformed store location prefix")
        spec, rest = scope[1:close], scope[close + 1:]

        driver, sep, root = spec.partition("@")
        if not sep:
            driver, root = "", spec
        elif not driver:
            raise InvalidPolicyScopeError(scope, "empty driver name")
        if not root.startswith("/"):
            raise InvalidPolicyScopeError(scope, "store path is not absolute")
        if posixpath.normpath(root) != root or root.startswith("//"):
            raise InvalidPolicyScopeError(scope, "store path is not canonical")

        if not rest:
            return
        name = rest
        split = rest.rfind("@")
        if split != -1 and IMAGE_ID_RE.match(rest[split + 1:]):
            name = rest[:split]
        if not name:
            raise InvalidPolicyScopeError(scope, "bare image ids are not policy scopes")
        _validate_scope_name(scope, name)
