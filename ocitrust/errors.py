"""Error taxonomy shared by every ocitrust operation.

Every public operation raises one of these (or lets an ``OSError`` from the
filesystem propagate).  Verification failures are split into two families so
a caller can tell an *untrusted* image apart from a *malformed* one:

* ``UntrustedImageError``: SignatureInvalid, KeyMismatch,
  ReferenceMismatch, DigestMismatch.
* ``ManifestDigestError``: the manifest bytes cannot be digested
  deterministically.

Both must stop the caller from using the manifest; only the second warrants
a "this input is broken" diagnostic.
"""

from __future__ import annotations


class ImageTrustError(RuntimeError):
    """Base class for all ocitrust errors."""


# ---------------------------------------------------------------------------
# References and stores
# ---------------------------------------------------------------------------


class InvalidReferenceSyntaxError(ImageTrustError):
    """Raised when a reference string cannot be parsed for its transport."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Invalid reference {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason


class InvalidPolicyScopeError(ImageTrustError):
    """Raised when a policy configuration scope is not acceptable."""

    def __init__(self, scope: str, reason: str) -> None:
        super().__init__(f"Invalid policy scope {scope!r}: {reason}")
        self.scope = scope
        self.reason = reason


class NoSuchImageError(ImageTrustError):
    """Raised when a reference does not resolve to a stored image."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Reference {reference!r} does not resolve to an image")
        self.reference = reference


class UnsupportedOperationError(ImageTrustError):
    """Raised by stores that do not implement an operation (e.g. proxy put)."""


# ---------------------------------------------------------------------------
# Blob and manifest writes
# ---------------------------------------------------------------------------


class SizeMismatchError(ImageTrustError):
    """Raised when a written blob's length differs from the expected size."""

    def __init__(self, expected: int, actual: int, digest: str = "") -> None:
        detail = f" for {digest}" if digest else ""
        super().__init__(
            f"Size mismatch{detail}: expected {expected} bytes, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.digest = digest


class WriteCancelledError(ImageTrustError):
    """Raised when a blob write is cancelled by the caller."""


class UnsupportedConversionError(ImageTrustError):
    """Raised when a manifest cannot be translated to the store's schema."""

    def __init__(self, media_type: str, reason: str) -> None:
        super().__init__(
            f"Cannot convert manifest of type {media_type or '<unknown>'!r}: {reason}"
        )
        self.media_type = media_type
        self.reason = reason


class SignaturesUnsupportedError(ImageTrustError):
    """Raised when a destination cannot persist detached signatures."""


# ---------------------------------------------------------------------------
# Signing and verification
# ---------------------------------------------------------------------------


class ManifestDigestError(ImageTrustError):
    """Raised when manifest bytes cannot be digested deterministically."""


class InvalidReferenceError(ImageTrustError):
    """Raised when a signature would bind to an incomplete image identity."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Invalid signing reference {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason


class SigningError(ImageTrustError):
    """Raised when the signing mechanism fails to produce a signature."""


class UntrustedImageError(ImageTrustError):
    """Base class for verification outcomes that mean "do not trust"."""


class SignatureInvalidError(UntrustedImageError):
    """Raised when a signature does not authenticate or cannot be parsed."""


class KeyMismatchError(UntrustedImageError):
    """Raised when the signer's key is not the expected one."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Signature by key {actual!r} does not match expected key {expected!r}"
        )
        self.expected = expected
        self.actual = actual


class ReferenceMismatchError(UntrustedImageError):
    """Raised when the signed reference is not the expected one."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Signature is for reference {actual!r}, expected {expected!r}"
        )
        self.expected = expected
        self.actual = actual


class DigestMismatchError(UntrustedImageError):
    """Raised when content does not match the digest it was claimed to have."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Digest mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
