"""Canonical hashing helpers for content addressing.

Digests are written ``<algorithm>:<hex>``, the form used throughout OCI
image layouts and registries.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

from ocitrust.errors import ImageTrustError

# Supported algorithms and the hex length of their digests.
DIGEST_ALGORITHMS: dict[str, int] = {
    "sha256": 64,
    "sha384": 96,
    "sha512": 128,
}

DEFAULT_ALGORITHM = "sha256"

_HEX_RE = re.compile(r"^[a-f0-9]+$")


class InvalidDigestError(ImageTrustError):
    """Raised when a string is not a well-formed ``alg:hex`` digest."""


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact separators."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def new_hasher(algorithm: str = DEFAULT_ALGORITHM) -> "hashlib._Hash":
    """Return an incremental hasher for *algorithm*."""
    if algorithm not in DIGEST_ALGORITHMS:
        raise InvalidDigestError(f"Unsupported digest algorithm {algorithm!r}")
    return hashlib.new(algorithm)


def compute_digest(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Digest exact bytes and return ``"<algorithm>:<hex>"``."""
    hasher = new_hasher(algorithm)
    hasher.update(data)
    return f"{algorithm}:{hasher.hexdigest()}"


def parse_digest(digest: str) -> tuple[str, str]:
    """Split and validate a digest string.

    Returns
    -------
    tuple[str, str]
        ``(algorithm, hex)``

    Raises
    ------
    InvalidDigestError
        If the algorithm is unsupported or the hex part is malformed.
    """
    algorithm, sep, hex_part = digest.partition(":")
    if not sep:
        raise InvalidDigestError(f"Digest {digest!r} has no algorithm prefix")
    expected_len = DIGEST_ALGORITHMS.get(algorithm)
    if expected_len is None:
        raise InvalidDigestError(
            f"Digest {digest!r} uses unsupported algorithm {algorithm!r}"
        )
    if len(hex_part) != expected_len or not _HEX_RE.match(hex_part):
        raise InvalidDigestError(f"Digest {digest!r} has a malformed hex part")
    return algorithm, hex_part


def is_valid_digest(digest: str) -> bool:
    """Return ``True`` if *digest* is a well-formed, supported digest."""
    try:
        parse_digest(digest)
    except InvalidDigestError:
        return False
    return True


def digest_filename(digest: str) -> str:
    """Filesystem-safe name for a digest: ``sha256:ab..`` -> ``sha256-ab..``."""
    algorithm, hex_part = parse_digest(digest)
    return f"{algorithm}-{hex_part}"
