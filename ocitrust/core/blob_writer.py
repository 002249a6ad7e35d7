"""Staged, verified, atomic blob writes.

A blob is streamed into a staging file inside the store's own directory,
counted and hashed on the way, fsynced, and only then renamed to its
digest-addressed path.  Readers therefore see either no file or the complete
file, never a partial one.  On any failure, including cancellation and
``KeyboardInterrupt``, the staging file is removed before the error
propagates.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from ocitrust.core.hasher import DEFAULT_ALGORITHM, new_hasher, parse_digest
from ocitrust.errors import DigestMismatchError, SizeMismatchError, WriteCancelledError
from ocitrust.models.descriptors import BlobInfo

logger = logging.getLogger(__name__)

BLOB_FILE_MODE = 0o644
DEFAULT_CHUNK_SIZE = 1024 * 1024
_STAGING_PREFIX = ".staging-"


def _stage(staging_dir: Path) -> tuple[BinaryIO, Path]:
    staging_dir.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(dir=staging_dir, prefix=_STAGING_PREFIX)
    return os.fdopen(fd, "wb"), Path(name)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _commit(staged: Path, final: Path) -> None:
    os.chmod(staged, BLOB_FILE_MODE)
    final.parent.mkdir(parents=True, exist_ok=True)
    os.replace(staged, final)
    _fsync_dir(final.parent)


def _fsync_dir(directory: Path) -> None:
    # Directory fsync makes the rename durable; not available on every platform.
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_blob(
    staging_dir: Path,
    stream: BinaryIO,
    final_path_for: Callable[[str], Path],
    *,
    expected_digest: str | None = None,
    expected_size: int | None = None,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel: threading.Event | None = None,
) -> BlobInfo:
    """Copy *stream* into the store and publish it under its digest.

    Parameters
    ----------
    staging_dir:
        Writable directory on the same filesystem as the final blob path.
    stream:
        Binary source; read until EOF.
    final_path_for:
        Maps the computed digest to its final path.
    expected_digest:
        If given, the computed digest must match and its algorithm is used.
    expected_size:
        If given, the number of bytes copied must match exactly.
    cancel:
        Checked between chunks; when set, the write is abandoned.

    Returns
    -------
    BlobInfo
        The digest and size of the committed blob.

    Raises
    ------
    SizeMismatchError
        If ``expected_size`` differs from the number of bytes read.
    DigestMismatchError
        If ``expected_digest`` differs from the computed digest.
    WriteCancelledError
        If ``cancel`` was set during the copy.
    """
    if expected_digest is not None:
        algorithm, _ = parse_digest(expected_digest)
    hasher = new_hasher(algorithm)

    handle, staged = _stage(staging_dir)
    try:
        size = 0
        with handle:
            while True:
                if cancel is not None and cancel.is_set():
                    raise WriteCancelledError(
                        f"Blob write cancelled after {size} bytes"
                    )
                chunk = stream.read(chunk_size)
                if not chunk:
                    break
                handle.write(chunk)
                hasher.update(chunk)
                size += len(chunk)
            handle.flush()
            os.fsync(handle.fileno())

        digest = f"{algorithm}:{hasher.hexdigest()}"
        if expected_size is not None and expected_size != size:
            raise SizeMismatchError(expected_size, size, digest=expected_digest or "")
        if expected_digest is not None and expected_digest != digest:
            raise DigestMismatchError(expected_digest, digest)

        final = final_path_for(digest)
        if final.exists():
            # Same digest means same bytes; keep the published file untouched.
            _discard(staged)
            logger.debug("Blob %s already present at %s.", digest, final)
        else:
            _commit(staged, final)
            logger.debug("Committed blob %s (%d bytes) to %s.", digest, size, final)
        return BlobInfo(digest=digest, size=size)
    except BaseException:
        _discard(staged)
        raise


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Replace *path* with *data* atomically, staging in the same directory."""
    handle, staged = _stage(path.parent)
    try:
        with handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        _commit(staged, path)
    except BaseException:
        _discard(staged)
        raise
