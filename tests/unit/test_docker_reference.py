"""Tests for docker-style reference parsing and normalisation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ocitrust.core.docker_reference import (
    DEFAULT_TAG,
    NamedReference,
    parse_named,
    parse_normalized_named,
)
from ocitrust.errors import InvalidReferenceSyntaxError

DIGEST = "sha256:" + "e" * 64


class TestParseNormalizedNamed:
    @pytest.mark.parametrize("raw, expected", [
        ("busybox", "docker.io/library/busybox"),
        ("busybox:1.36", "docker.io/library/busybox:1.36"),
        ("library/busybox", "docker.io/library/busybox"),
        ("index.docker.io/busybox", "docker.io/library/busybox"),
        ("myorg/app", "docker.io/myorg/app"),
        ("quay.io/org/app:v1", "quay.io/org/app:v1"),
        ("localhost/app", "localhost/app"),
        ("localhost:5000/org/app", "localhost:5000/org/app"),
        (f"busybox@{DIGEST}", f"docker.io/library/busybox@{DIGEST}"),
        (f"busybox:latest@{DIGEST}", f"docker.io/library/busybox:latest@{DIGEST}"),
    ])
    def test_expansion(self, raw, expected):
        assert parse_normalized_named(raw).string() == expected

    def test_parts(self):
        ref = parse_normalized_named(f"example.com/a/b:tag@{DIGEST}")
        assert ref.domain == "example.com"
        assert ref.path == "a/b"
        assert ref.name == "example.com/a/b"
        assert ref.tag == "tag"
        assert ref.digest == DIGEST

    @pytest.mark.parametrize("raw", [
        "",
        "Upper/case",
        "busybox:",
        "busybox:bad tag",
        "busybox@sha256:short",
        "a" * 64,
        "-leading-dash",
        "double//slash",
    ])
    def test_rejects(self, raw):
        with pytest.raises(InvalidReferenceSyntaxError):
            parse_normalized_named(raw)

    def test_name_too_long(self):
        with pytest.raises(InvalidReferenceSyntaxError):
            parse_normalized_named("example.com/" + "a" * 300)


class TestNamedReference:
    def test_familiar_forms(self):
        ref = parse_normalized_named("busybox:latest")
        assert ref.familiar_name() == "busybox"
        assert ref.familiar_string() == "busybox:latest"
        assert parse_normalized_named("myorg/app").familiar_name() == "myorg/app"
        assert parse_normalized_named("quay.io/org/app").familiar_name() == "quay.io/org/app"

    def test_tag_name_only(self):
        ref = parse_normalized_named("busybox")
        assert ref.is_name_only
        assert ref.tag_name_only().tag == DEFAULT_TAG
        digested = parse_normalized_named(f"busybox@{DIGEST}")
        assert digested.tag_name_only() == digested

    def test_with_and_trim(self):
        ref = parse_normalized_named("busybox")
        tagged = ref.with_tag("v2").with_digest(DIGEST)
        assert tagged.string() == f"docker.io/library/busybox:v2@{DIGEST}"
        assert tagged.trim_to_name() == ref
        with pytest.raises(InvalidReferenceSyntaxError):
            ref.with_tag("no spaces")
        with pytest.raises(InvalidReferenceSyntaxError):
            ref.with_digest("sha256:nothex")

    def test_frozen(self):
        ref = NamedReference(domain="docker.io", path="library/busybox")
        with pytest.raises(ValidationError):
            ref.tag = "x"  # type: ignore[misc]
        assert str(ref) == "docker.io/library/busybox"


class TestParseNamed:
    def test_accepts_canonical(self):
        assert parse_named("docker.io/library/busybox:latest").tag == "latest"

    def test_rejects_familiar(self):
        with pytest.raises(InvalidReferenceSyntaxError):
            parse_named("busybox:latest")
