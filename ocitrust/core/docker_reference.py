"""Docker-style image names: ``[domain/]path[:tag][@digest]``.

Implements the distribution reference grammar and the normalisation rules
used by the docker CLI (``busybox`` -> ``docker.io/library/busybox``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from ocitrust.errors import InvalidReferenceSyntaxError

DEFAULT_DOMAIN = "docker.io"
LEGACY_DEFAULT_DOMAIN = "index.docker.io"
OFFICIAL_REPO_PREFIX = "library/"
DEFAULT_TAG = "latest"
NAME_TOTAL_LENGTH_MAX = 255

# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:[._]|__|[-]+)"
_PATH_COMPONENT = rf"{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*"
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"
_NAME = rf"(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"

REFERENCE_RE = re.compile(rf"^({_NAME})(?::({_TAG}))?(?:@({_DIGEST}))?$")
TAG_RE = re.compile(rf"^{_TAG}$")
DIGEST_RE = re.compile(rf"^{_DIGEST}$")
IDENTIFIER_RE = re.compile(r"^[a-f0-9]{64}$")
HOST_PORT_RE = re.compile(r"^[^:/]+:[0-9]+$")


class NamedReference(BaseModel):
    """A parsed, fully expanded image name with optional tag and digest."""

    model_config = ConfigDict(frozen=True)

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @property
    def name(self) -> str:
        """Repository name without tag or digest."""
        return f"{self.domain}/{self.path}" if self.domain else self.path

    @property
    def is_name_only(self) -> bool:
        return self.tag is None and self.digest is None

    def string(self) -> str:
        """Canonical string: ``name[:tag][@digest]``."""
        result = self.name
        if self.tag is not None:
            result += f":{self.tag}"
        if self.digest is not None:
            result += f"@{self.digest}"
        return result

    def familiar_name(self) -> str:
        """Name with the default domain and ``library/`` prefix removed."""
        if self.domain != DEFAULT_DOMAIN:
            return self.name
        return self.path.removeprefix(OFFICIAL_REPO_PREFIX) if self.path.count("/") == 1 else self.path

    def familiar_string(self) -> str:
        result = self.familiar_name()
        if self.tag is not None:
            result += f":{self.tag}"
        if self.digest is not None:
            result += f"@{self.digest}"
        return result

    def with_tag(self, tag: str) -> NamedReference:
        if not TAG_RE.match(tag):
            raise InvalidReferenceSyntaxError(tag, "invalid tag format")
        return self.model_copy(update={"tag": tag})

    def with_digest(self, digest: str) -> NamedReference:
        if not DIGEST_RE.match(digest):
            raise InvalidReferenceSyntaxError(digest, "invalid digest format")
        return self.model_copy(update={"digest": digest})

    def trim_to_name(self) -> NamedReference:
        return self.model_copy(update={"tag": None, "digest": None})

    def tag_name_only(self) -> NamedReference:
        """Add the default tag to a name-only reference."""
        if self.is_name_only:
            return self.model_copy(update={"tag": DEFAULT_TAG})
        return self

    def __str__(self) -> str:
        return self.string()


def _is_domain(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def is_qualified_scope_name(name: str) -> bool:
    """Whether *name* can equal a policy namespace derived from a reference.

    Namespaces are fully qualified: a multi-component name must start with a
    registry host, and a single component must itself be a host
    (``example.com``, ``localhost`` or ``host:port``).
    """
    first, sep, _ = name.partition("/")
    if sep:
        return _is_domain(first)
    host = name.split("@", 1)[0]
    return "." in host or host == "localhost" or HOST_PORT_RE.match(host) is not None


def _split_domain(name: str) -> tuple[str, str]:
    first, sep, rest = name.partition("/")
    if not sep or not _is_domain(first):
        domain, remainder = DEFAULT_DOMAIN, name
    else:
        domain, remainder = first, rest
    if domain == LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = OFFICIAL_REPO_PREFIX + remainder
    return domain, remainder


def _parse(raw: str) -> NamedReference:
    match = REFERENCE_RE.match(raw)
    if match is None:
        raise InvalidReferenceSyntaxError(raw, "invalid reference format")
    name, tag, digest = match.groups()
    if len(name) > NAME_TOTAL_LENGTH_MAX:
        raise InvalidReferenceSyntaxError(
            raw, f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters"
        )
    first, sep, rest = name.partition("/")
    if sep and _is_domain(first):
        return NamedReference(domain=first, path=rest, tag=tag, digest=digest)
    return NamedReference(domain="", path=name, tag=tag, digest=digest)


def parse_normalized_named(raw: str) -> NamedReference:
    """Parse a possibly-familiar name and expand it to its canonical form.

    Raises
    ------
    InvalidReferenceSyntaxError
        On grammar violations, upper-case repository paths, or a bare
        64-hex identifier (which would be ambiguous with an image id).
    """
    if IDENTIFIER_RE.match(raw):
        raise InvalidReferenceSyntaxError(
            raw, "cannot specify 64-byte hexadecimal strings as a repository name"
        )
    name_part, tag_digest = raw, ""
    at = raw.find("@")
    head = raw if at == -1 else raw[:at]
    colon = head.rfind(":")
    if colon != -1 and "/" not in head[colon:]:
        name_part, tag_digest = raw[:colon], raw[colon:]
    elif at != -1:
        name_part, tag_digest = raw[:at], raw[at:]
    domain, remainder = _split_domain(name_part)
    if remainder.lower() != remainder:
        raise InvalidReferenceSyntaxError(raw, "repository name must be lowercase")
    parsed = _parse(f"{domain}/{remainder}{tag_digest}")
    return NamedReference(
        domain=domain, path=remainder, tag=parsed.tag, digest=parsed.digest
    )


def parse_named(raw: str) -> NamedReference:
    """Parse a reference that must already be in canonical form."""
    named = parse_normalized_named(raw)
    if named.string() != raw:
        raise InvalidReferenceSyntaxError(raw, "repository name must be canonical")
    return named
