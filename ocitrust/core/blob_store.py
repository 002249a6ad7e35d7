"""Content-addressed blob directory.

Storage layout: ``{root}/blobs/{alg}-{hex}``.  Blobs are written through
``write_blob`` and are therefore never visible under their digest until
complete and verified.
"""

from __future__ import annotations

import io
import logging
import threading
from pathlib import Path
from typing import BinaryIO

from ocitrust.core.blob_writer import DEFAULT_CHUNK_SIZE, write_blob
from ocitrust.core.hasher import DEFAULT_ALGORITHM, compute_digest, digest_filename, parse_digest
from ocitrust.errors import DigestMismatchError
from ocitrust.models.descriptors import BlobInfo

logger = logging.getLogger(__name__)

BLOBS_DIR = "blobs"


class ContentAddressedStore:
    """Digest-keyed blob directory.

    Storing the same content twice leaves the published blob untouched.
    There is no update operation; deletion is left to cache eviction.

    Parameters
    ----------
    root:
        Store root; blobs live under ``{root}/blobs``.
    algorithm:
        Digest algorithm for blobs written without an expected digest.
    chunk_size:
        Bytes per read when streaming into the store.
    """

    def __init__(
        self,
        root: Path,
        *,
        algorithm: str = DEFAULT_ALGORITHM,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._root = Path(root)
        self._algorithm = algorithm
        self._chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self._root

    @property
    def blobs_dir(self) -> Path:
        return self._root / BLOBS_DIR

    def blob_path(self, digest: str) -> Path:
        """Compute the storage path for a digest."""
        return self.blobs_dir / digest_filename(digest)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def put(
        self,
        stream: BinaryIO,
        *,
        expected_digest: str | None = None,
        expected_size: int | None = None,
        cancel: threading.Event | None = None,
    ) -> BlobInfo:
        """Stream a blob into the store; see ``write_blob`` for guarantees."""
        info = write_blob(
            self.blobs_dir,
            stream,
            self.blob_path,
            expected_digest=expected_digest,
            expected_size=expected_size,
            algorithm=self._algorithm,
            chunk_size=self._chunk_size,
            cancel=cancel,
        )
        logger.info("Stored blob %s (%d bytes) in %s.", info.digest, info.size, self._root)
        return info

    def put_bytes(self, data: bytes, *, expected_digest: str | None = None) -> BlobInfo:
        return self.put(
            io.BytesIO(data), expected_digest=expected_digest, expected_size=len(data)
        )

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def open(self, digest: str) -> tuple[BinaryIO, int]:
        """Open a blob for reading; returns ``(stream, size)``.

        Raises ``FileNotFoundError`` if the blob is absent.
        """
        path = self.blob_path(digest)
        handle = path.open("rb")
        return handle, path.stat().st_size

    def read(self, digest: str) -> bytes:
        """Read a blob and check it still matches its digest."""
        data = self.blob_path(digest).read_bytes()
        algorithm, _ = parse_digest(digest)
        actual = compute_digest(data, algorithm)
        if actual != digest:
            raise DigestMismatchError(digest, actual)
        return data

    # ------------------------------------------------------------------
    # Check and verify
    # ------------------------------------------------------------------

    def exists(self, digest: str) -> bool:
        return self.blob_path(digest).is_file()

    def verify(self, digest: str) -> bool:
        """Re-hash stored data and compare against its digest."""
        try:
            self.read(digest)
        except (FileNotFoundError, DigestMismatchError):
            return False
        return True

    def delete(self, digest: str) -> bool:
        """Remove a blob; returns ``False`` if it was not present."""
        try:
            self.blob_path(digest).unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted blob %s from %s.", digest, self._root)
        return True
