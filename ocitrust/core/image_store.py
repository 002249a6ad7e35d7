"""Local content store: image records indexed by id, name and digest.

Layout under the graph root::

    {graph_root}/
        images.json              image records (id -> {names, digests})
        manifests/{alg}-{hex}    manifests, filed under their manifest digest

A manifest is filed under the digest recorded for its image.  For a signed
schema 1 manifest that is the digest of the JWS payload rather than of the
stored bytes, so manifests live apart from raw content-addressed blobs.

A name belongs to at most one image: tagging a new image with a name
removes it from whichever image held it before.  The index is rewritten
atomically on every change, and the in-memory view only changes once that
write has succeeded.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from ocitrust.core.blob_writer import write_bytes_atomic
from ocitrust.core.hasher import digest_filename, parse_digest
from ocitrust.core.manifest import manifest_digest
from ocitrust.errors import DigestMismatchError, ImageTrustError, NoSuchImageError
from ocitrust.models.descriptors import StoredImage

logger = logging.getLogger(__name__)

INDEX_FILE = "images.json"
MANIFESTS_DIR = "manifests"


class ImageStoreCorruptError(ImageTrustError):
    """Raised when the on-disk image index cannot be read."""


class StoreLocator(BaseModel):
    """Identity of a local store: driver, graph root, run root and options."""

    model_config = ConfigDict(frozen=True)

    driver: str
    graph_root: str
    run_root: str
    options: tuple[str, ...] = ()

    def spec(self) -> str:
        """Full store spec: ``[driver@graphroot+runroot:opt1,opt2]``."""
        options = ":" + ",".join(self.options) if self.options else ""
        return f"[{self.driver}@{self.graph_root}+{self.run_root}{options}]"

    def policy_spec(self) -> str:
        """Store spec used for policy keys: ``[driver@graphroot]``."""
        return f"[{self.driver}@{self.graph_root}]"

    def driverless_policy_spec(self) -> str:
        """Fallback policy key ignoring the driver: ``[graphroot]``."""
        return f"[{self.graph_root}]"


class LocalImageStore:
    """JSON-indexed image store rooted at a locator's graph root.

    Parameters
    ----------
    locator:
        The store identity; ``graph_root`` is where the index and manifests live.
    """

    def __init__(self, locator: StoreLocator) -> None:
        self._locator = locator
        self._root = Path(locator.graph_root)
        self._index_path = self._root / INDEX_FILE
        self._manifests_dir = self._root / MANIFESTS_DIR
        self._lock = threading.Lock()
        self._images: dict[str, StoredImage] = {}
        self.load()

    @property
    def locator(self) -> StoreLocator:
        return self._locator

    # -- Lookup -------------------------------------------------------------

    def image(self, id_or_name: str) -> StoredImage | None:
        """Return the image with this id or holding this name, if any."""
        with self._lock:
            found = self._images.get(id_or_name)
            if found is not None:
                return found
            for image in self._images.values():
                if id_or_name in image.names:
                    return image
        return None

    def images_by_digest(self, digest: str) -> list[StoredImage]:
        """Every image recorded under *digest*, in creation order."""
        with self._lock:
            return [image for image in self._images.values() if digest in image.digests]

    def list_images(self) -> list[StoredImage]:
        with self._lock:
            return list(self._images.values())

    def manifest_path(self, digest: str) -> Path:
        return self._manifests_dir / digest_filename(digest)

    def manifest(self, digest: str) -> bytes:
        """Read the manifest filed under *digest* and check it still matches.

        Raises ``FileNotFoundError`` if no manifest is filed under *digest*.
        """
        data = self.manifest_path(digest).read_bytes()
        algorithm, _ = parse_digest(digest)
        actual = manifest_digest(data, algorithm)
        if actual != digest:
            raise DigestMismatchError(digest, actual)
        return data

    # -- Mutation -----------------------------------------------------------

    def create_image(
        self,
        names: list[str],
        manifest: bytes | None = None,
        *,
        image_id: str | None = None,
    ) -> StoredImage:
        """Record a new image, optionally storing its manifest.

        Raises
        ------
        ValueError
            If *image_id* is already in use.
        ManifestDigestError
            If *manifest* is a signed schema 1 manifest whose payload cannot
            be reconstructed.
        """
        image_id = image_id or secrets.token_hex(32)
        digests: list[str] = []
        if manifest is not None:
            digest = manifest_digest(manifest)
            self._store_manifest(digest, manifest)
            digests.append(digest)
        with self._lock:
            if image_id in self._images:
                raise ValueError(f"Image id {image_id} is already in use")
            images = self._without_names(names)
            image = StoredImage(id=image_id, names=list(names), digests=digests)
            images[image_id] = image
            self._commit(images)
        logger.info("Created image %s with names %s.", image_id, names)
        return image

    def add_names(self, image_id: str, names: list[str]) -> StoredImage:
        with self._lock:
            image = self._require(image_id)
            images = self._without_names(names)
            merged = image.names + [n for n in names if n not in image.names]
            updated = image.model_copy(update={"names": merged})
            images[image_id] = updated
            self._commit(images)
        return updated

    def delete_image(self, image_id: str) -> StoredImage:
        """Remove an image record; manifests it shares with others are kept."""
        with self._lock:
            image = self._require(image_id)
            images = dict(self._images)
            del images[image_id]
            still_used = {d for other in images.values() for d in other.digests}
            self._commit(images)
        for digest in image.digests:
            if digest not in still_used:
                self._delete_manifest(digest)
        logger.info("Deleted image %s.", image_id)
        return image

    def _require(self, image_id: str) -> StoredImage:
        image = self._images.get(image_id)
        if image is None:
            raise NoSuchImageError(image_id)
        return image

    def _without_names(self, names: list[str]) -> dict[str, StoredImage]:
        """A copy of the index with *names* taken away from every image."""
        images = dict(self._images)
        for other_id, other in images.items():
            kept = [n for n in other.names if n not in names]
            if len(kept) != len(other.names):
                images[other_id] = other.model_copy(update={"names": kept})
        return images

    def _store_manifest(self, digest: str, manifest: bytes) -> None:
        path = self.manifest_path(digest)
        if path.exists():
            logger.debug("Manifest %s already stored.", digest)
            return
        write_bytes_atomic(path, manifest)

    def _delete_manifest(self, digest: str) -> None:
        try:
            self.manifest_path(digest).unlink()
        except FileNotFoundError:
            return
        logger.info("Deleted manifest %s from %s.", digest, self._root)

    # -- Persistence --------------------------------------------------------

    def _commit(self, images: dict[str, StoredImage]) -> None:
        self._write_index(images)
        self._images = images

    def persist(self) -> None:
        """Write the index atomically."""
        with self._lock:
            self._write_index(self._images)

    def _write_index(self, images: dict[str, StoredImage]) -> None:
        data = {
            image_id: json.loads(image.model_dump_json())
            for image_id, image in images.items()
        }
        write_bytes_atomic(
            self._index_path,
            json.dumps(data, indent=2).encode("utf-8"),
        )
        logger.debug("Persisted image index to %s.", self._index_path)

    def load(self) -> None:
        """Load the index from disk, if present."""
        if not self._index_path.exists():
            logger.debug("No image index at %s; starting fresh.", self._index_path)
            return
        try:
            raw = json.loads(self._index_path.read_text(encoding="utf-8"))
            images = {image_id: StoredImage(**entry) for image_id, entry in raw.items()}
        except (ValueError, TypeError, AttributeError, ValidationError) as exc:
            raise ImageStoreCorruptError(
                f"Cannot read image index {self._index_path}: {exc}"
            ) from exc
        with self._lock:
            self._images = images
        logger.debug("Loaded %d image(s) from %s.", len(images), self._index_path)
