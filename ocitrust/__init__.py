"""ocitrust: content-addressed image storage and detached-signature trust.

  - Digest codec and staged, fsynced, atomic blob writes
  - OCI layout, local content store, and registry transports
  - Policy identities and namespaces for every reference
  - Sign/verify binding a docker reference to a manifest digest
"""

__version__ = "0.1.0"

from ocitrust.core.signature import sign_docker_manifest, verify_docker_manifest_signature
from ocitrust.errors import ImageTrustError, UntrustedImageError

__all__ = [
    "ImageTrustError",
    "UntrustedImageError",
    "sign_docker_manifest",
    "verify_docker_manifest_signature",
    "__version__",
]
