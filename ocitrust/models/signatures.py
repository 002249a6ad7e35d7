"""Signature payload models.

The signed payload is the "atomic container signature" JSON document.  Its
``critical`` section carries the two claims a verifier enforces: the docker
reference the signer vouched for and the digest of the manifest bytes.
Parsing is strict: unknown keys in the critical section are rejected so a
verifier never silently ignores a claim it does not understand.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

SIGNATURE_TYPE = "atomic container signature"


class _ImageClaim(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    docker_manifest_digest: str = Field(alias="docker-manifest-digest", min_length=1)


class _IdentityClaim(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    docker_reference: str = Field(alias="docker-reference", min_length=1)


class _CriticalSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    image: _ImageClaim
    identity: _IdentityClaim


class _OptionalSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    creator: str = ""
    timestamp: int | None = None


class SignaturePayload(BaseModel):
    """Wire form of a signed envelope."""

    model_config = ConfigDict(frozen=True)

    critical: _CriticalSection
    optional: _OptionalSection = _OptionalSection()


class SignedEnvelope(BaseModel):
    """The claims bound together by one signature.

    Constructed at sign time, reconstructed at verify time, and never
    cached beyond a single verification.
    """

    model_config = ConfigDict(frozen=True)

    docker_reference: str
    docker_manifest_digest: str

    def to_payload(self, creator: str = "ocitrust") -> SignaturePayload:
        return SignaturePayload(
            critical=_CriticalSection(
                type=SIGNATURE_TYPE,
                image=_ImageClaim(docker_manifest_digest=self.docker_manifest_digest),
                identity=_IdentityClaim(docker_reference=self.docker_reference),
            ),
            optional=_OptionalSection(
                creator=creator,
                timestamp=int(datetime.now(timezone.utc).timestamp()),
            ),
        )

    @classmethod
    def from_payload(cls, payload: SignaturePayload) -> SignedEnvelope:
        return cls(
            docker_reference=payload.critical.identity.docker_reference,
            docker_manifest_digest=payload.critical.image.docker_manifest_digest,
        )


class VerifiedSignature(BaseModel):
    """Outcome of a successful verification; only ever built when every check passed."""

    model_config = ConfigDict(frozen=True)

    docker_reference: str
    docker_manifest_digest: str
    signer_key_identity: str
