"""Pull-through cache over a remote registry.

Manifests and blobs are served from the local store when present.  A miss
is fetched from the remote, checked against its digest, persisted locally,
and handed to the eviction scheduler so the cache does not grow without
bound.  The scheduler itself is an injected collaborator.

``ProxyMetrics`` counts what crossed the wire: a *pull* is content fetched
from the remote, a *push* is content written into the local cache.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import BinaryIO, Protocol, runtime_checkable

from ocitrust.config import config
from ocitrust.core.blob_store import ContentAddressedStore
from ocitrust.core.docker_reference import NamedReference
from ocitrust.core.hasher import compute_digest, parse_digest
from ocitrust.core.manifest import manifest_digest
from ocitrust.errors import DigestMismatchError, UnsupportedOperationError
from ocitrust.transports.docker import RemoteTransfer

logger = logging.getLogger(__name__)


def default_ttl() -> timedelta:
    """Cache lifetime from ``config.cache_ttl_seconds``."""
    return timedelta(seconds=config.cache_ttl_seconds)


@runtime_checkable
class EvictionScheduler(Protocol):
    """Removes a cached repository or blob once *ttl* has elapsed."""

    def schedule_removal(self, key: str, ttl: timedelta) -> None: ...


class ProxyMetrics:
    """Thread-safe pull and push counters for manifests and blobs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {
            "manifest_pulls": 0,
            "manifest_bytes_pulled": 0,
            "manifest_pushes": 0,
            "manifest_bytes_pushed": 0,
            "blob_pulls": 0,
            "blob_bytes_pulled": 0,
            "blob_pushes": 0,
            "blob_bytes_pushed": 0,
        }

    def _add(self, count_key: str, bytes_key: str, size: int) -> None:
        with self._lock:
            self._counts[count_key] += 1
            self._counts[bytes_key] += size

    def manifest_pull(self, size: int) -> None:
        self._add("manifest_pulls", "manifest_bytes_pulled", size)

    def manifest_push(self, size: int) -> None:
        self._add("manifest_pushes", "manifest_bytes_pushed", size)

    def blob_pull(self, size: int) -> None:
        self._add("blob_pulls", "blob_bytes_pulled", size)

    def blob_push(self, size: int) -> None:
        self._add("blob_pushes", "blob_bytes_pushed", size)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


class ProxyManifestStore:
    """Manifest lookups for one repository, local first.

    Parameters
    ----------
    local:
        Local blob store used as the cache.
    remote:
        Registry capability for cache misses.
    repository:
        The repository this store serves (tag and digest are ignored).
    scheduler:
        Receives ``schedule_removal`` for the repository and each manifest
        pulled from the remote.
    ttl:
        Cache lifetime handed to the scheduler; defaults to
        ``config.cache_ttl_seconds``.
    metrics:
        Counters to record into; a private set is created when omitted.
    """

    def __init__(
        self,
        local: ContentAddressedStore,
        remote: RemoteTransfer,
        repository: NamedReference,
        scheduler: EvictionScheduler,
        ttl: timedelta | None = None,
        metrics: ProxyMetrics | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._repository = repository.trim_to_name()
        self._scheduler = scheduler
        self._ttl = ttl if ttl is not None else default_ttl()
        self.metrics = metrics if metrics is not None else ProxyMetrics()

    def exists(self, digest: str) -> bool:
        """Whether the manifest is cached or the remote has it; fetches nothing."""
        if self._local.exists(digest):
            return True
        return self._remote.manifest_exists(self._repository.with_digest(digest))

    def get(self, digest: str) -> bytes:
        """Return the manifest with *digest*, pulling it into the cache on a miss."""
        if self._local.exists(digest):
            return self._local.read(digest)

        manifest = self._fetch_remote(digest)
        algorithm, _ = parse_digest(digest)
        if compute_digest(manifest, algorithm) == digest:
            self._local.put_bytes(manifest, expected_digest=digest)
            self.metrics.manifest_push(len(manifest))
        else:
            # Signed schema 1 manifests are identified by their payload digest,
            # which cannot address the raw bytes in a blob store.
            logger.debug("Not caching manifest %s: digest covers a JWS payload.", digest)

        self._scheduler.schedule_removal(self._repository.name, self._ttl)
        self._scheduler.schedule_removal(digest, self._ttl)
        logger.info("Cached manifest %s from %s.", digest, self._repository.name)
        return manifest

    def put(self, manifest: bytes) -> str:
        raise UnsupportedOperationError("Pushing manifests through a proxy is not supported")

    def delete(self, digest: str) -> None:
        raise UnsupportedOperationError("Deleting manifests through a proxy is not supported")

    def _fetch_remote(self, digest: str) -> bytes:
        manifest, _ = self._remote.fetch_manifest(self._repository.with_digest(digest))
        self.metrics.manifest_pull(len(manifest))
        algorithm, _ = parse_digest(digest)
        actual = manifest_digest(manifest, algorithm)
        if actual != digest:
            raise DigestMismatchError(digest, actual)
        return manifest


class ProxyBlobStore:
    """Blob lookups, local first, pulling misses through ``write_blob``."""

    def __init__(
        self,
        local: ContentAddressedStore,
        remote: RemoteTransfer,
        scheduler: EvictionScheduler,
        ttl: timedelta | None = None,
        metrics: ProxyMetrics | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._scheduler = scheduler
        self._ttl = ttl if ttl is not None else default_ttl()
        self.metrics = metrics if metrics is not None else ProxyMetrics()

    def open(self, digest: str) -> tuple[BinaryIO, int]:
        """Return ``(stream, size)`` for a cached or freshly pulled blob."""
        if not self._local.exists(digest):
            stream, size = self._remote.fetch_blob(digest)
            self.metrics.blob_pull(size)
            try:
                self._local.put(stream, expected_digest=digest, expected_size=size)
            finally:
                stream.close()
            self.metrics.blob_push(size)
            self._scheduler.schedule_removal(digest, self._ttl)
            logger.info("Cached blob %s (%d bytes).", digest, size)
        return self._local.open(digest)

    def put(self, stream: BinaryIO, digest: str) -> None:
        raise UnsupportedOperationError("Pushing blobs through a proxy is not supported")
