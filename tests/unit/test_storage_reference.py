"""Tests for local content store references: parsing, policy keys, resolution."""

from __future__ import annotations

import pytest

from ocitrust.core.image_store import LocalImageStore, StoreLocator
from ocitrust.core.manifest import manifest_digest
from ocitrust.errors import (
    InvalidPolicyScopeError,
    InvalidReferenceSyntaxError,
    NoSuchImageError,
)
from ocitrust.transports.storage import (
    StorageReference,
    StorageTransport,
    delete_image,
    parse_reference,
    resolve_image,
)

IMAGE_ID = "1" * 64
OTHER_ID = "2" * 64
DIGEST = "sha256:" + "d" * 64

LOCATOR = StoreLocator(driver="vfs", graph_root="/var/lib/s", run_root="/run/s")
TRANSPORT = StorageTransport(LOCATOR)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseReference:
    def test_bare_name_gets_default_locator_and_tag(self):
        ref = parse_reference("busybox", LOCATOR)
        assert ref.locator == LOCATOR
        assert ref.reference == "docker.io/library/busybox:latest"
        assert ref.id == ""

    def test_full_store_spec(self):
        ref = parse_reference("[overlay@/g+/r:a=1,b=2]busybox:1", LOCATOR)
        assert ref.locator == StoreLocator(
            driver="overlay", graph_root="/g", run_root="/r", options=("a=1", "b=2")
        )
        assert ref.named is not None and ref.named.tag == "1"

    def test_partial_store_spec_keeps_defaults(self):
        ref = parse_reference("[/other]busybox", LOCATOR)
        assert ref.locator.driver == "vfs"
        assert ref.locator.graph_root == "/other"
        assert ref.locator.run_root == "/run/s"

    def test_id_only(self):
        ref = parse_reference(f"@{IMAGE_ID}", LOCATOR)
        assert ref.named is None
        assert ref.id == IMAGE_ID
        assert ref.docker_reference() is None

    def test_name_digest_and_id(self):
        ref = parse_reference(f"busybox@{DIGEST}@{IMAGE_ID}", LOCATOR)
        assert ref.id == IMAGE_ID
        assert ref.named is not None and ref.named.digest == DIGEST
        assert ref.named.tag is None

    @pytest.mark.parametrize("raw", [
        f"busybox@{DIGEST}",
        f"busybox:latest@{DIGEST}",
        f"busybox:latest@{IMAGE_ID}",
        f"@{IMAGE_ID}",
        "[overlay@/g+/r:opt]quay.io/org/app:v1",
        f"[overlay@/g+/r]localhost:5000/app@{DIGEST}@{IMAGE_ID}",
    ])
    def test_round_trip(self, raw):
        ref = TRANSPORT.parse_reference(raw)
        assert TRANSPORT.parse_reference(ref.string_within_transport()) == ref

    def test_string_within_transport(self):
        ref = parse_reference(f"busybox@{IMAGE_ID}", LOCATOR)
        assert ref.string_within_transport() == (
            f"[vfs@/var/lib/s+/run/s]docker.io/library/busybox:latest@{IMAGE_ID}"
        )

    @pytest.mark.parametrize("raw", [
        "",
        "[vfs@/g",
        "[vfs@relative]busybox",
        "[@/g]busybox",
        "[vfs@/g][vfs@/g]busybox",
        "UPPER",
        "a" * 64,
        "[vfs@/g]",
    ])
    def test_rejects(self, raw):
        with pytest.raises(InvalidReferenceSyntaxError):
            parse_reference(raw, LOCATOR)

    def test_transport(self):
        ref = parse_reference("busybox", LOCATOR)
        assert ref.transport() == TRANSPORT
        assert ref.transport().name == "containers-storage"


# ---------------------------------------------------------------------------
# Policy keys
# ---------------------------------------------------------------------------


class TestPolicyConfiguration:
    def test_identity(self):
        assert parse_reference("busybox", LOCATOR).policy_configuration_identity() == (
            "[vfs@/var/lib/s]docker.io/library/busybox:latest"
        )
        assert parse_reference(f"@{IMAGE_ID}", LOCATOR).policy_configuration_identity() == (
            f"[vfs@/var/lib/s]@{IMAGE_ID}"
        )
        assert parse_reference(
            f"busybox@{IMAGE_ID}", LOCATOR
        ).policy_configuration_identity() == (
            f"[vfs@/var/lib/s]docker.io/library/busybox:latest@{IMAGE_ID}"
        )

    def test_namespace_order_with_id(self):
        ref = parse_reference(f"example.com/a/b/c:tag@{IMAGE_ID}", LOCATOR)
        assert ref.policy_configuration_namespaces() == [
            "[vfs@/var/lib/s]example.com/a/b/c:tag",
            "[vfs@/var/lib/s]example.com/a/b/c",
            "[vfs@/var/lib/s]example.com/a/b",
            "[vfs@/var/lib/s]example.com/a",
            "[vfs@/var/lib/s]example.com",
            "[vfs@/var/lib/s]",
            "[/var/lib/s]",
        ]

    def test_namespace_order_without_id(self):
        ref = parse_reference("example.com/a/b/c:tag", LOCATOR)
        assert ref.policy_configuration_namespaces() == [
            "[vfs@/var/lib/s]example.com/a/b/c",
            "[vfs@/var/lib/s]example.com/a/b",
            "[vfs@/var/lib/s]example.com/a",
            "[vfs@/var/lib/s]example.com",
            "[vfs@/var/lib/s]",
            "[/var/lib/s]",
        ]

    def test_namespaces_for_id_only(self):
        ref = parse_reference(f"@{IMAGE_ID}", LOCATOR)
        assert ref.policy_configuration_namespaces() == ["[vfs@/var/lib/s]", "[/var/lib/s]"]

    def test_run_root_and_options_do_not_affect_policy(self):
        a = parse_reference("[vfs@/var/lib/s+/run/a:x]busybox", LOCATOR)
        b = parse_reference("[vfs@/var/lib/s+/run/b]busybox", LOCATOR)
        assert a.policy_configuration_identity() == b.policy_configuration_identity()
        assert a.policy_configuration_namespaces() == b.policy_configuration_namespaces()

    @pytest.mark.parametrize("raw", [
        "busybox",
        f"example.com/a/b/c:tag@{IMAGE_ID}",
        f"localhost:5000/app@{DIGEST}",
    ])
    def test_emitted_keys_validate(self, raw):
        ref = parse_reference(raw, LOCATOR)
        for scope in [ref.policy_configuration_identity(), *ref.policy_configuration_namespaces()]:
            TRANSPORT.validate_policy_configuration_scope(scope)


class TestValidatePolicyConfigurationScope:
    @pytest.mark.parametrize("scope", [
        "[/var/lib/s]",
        "[vfs@/var/lib/s]",
        "[vfs@/var/lib/s]docker.io",
        "[vfs@/var/lib/s]docker.io/library/busybox",
        "[vfs@/var/lib/s]docker.io/library/busybox:latest",
        f"[vfs@/var/lib/s]docker.io/library/busybox:latest@{IMAGE_ID}",
        f"[vfs@/var/lib/s]docker.io/library/busybox@{DIGEST}",
    ])
    def test_accepts(self, scope):
        TRANSPORT.validate_policy_configuration_scope(scope)

    @pytest.mark.parametrize("scope", [
        "",
        "busybox",
        "[vfs@/var/lib/s",
        "[relative]",
        "[vfs@relative]",
        "[@/var/lib/s]",
        "[vfs@/]var]",
        "[vfs@/var/lib/s/]",
        "[vfs@/var//lib/s]",
        "[vfs@/var/./lib]",
        "[vfs@/var/../lib]",
        f"[vfs@/var/lib/s]@{IMAGE_ID}",
        "[vfs@/var/lib/s]UPPER/case",
        "[vfs@/var/lib/s]library/busybox",
        "[vfs@/var/lib/s]docker.io/library/busybox:bad tag",
    ])
    def test_rejects(self, scope):
        with pytest.raises(InvalidPolicyScopeError):
            TRANSPORT.validate_policy_configuration_scope(scope)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestResolveImage:
    def test_by_name(self, image_store: LocalImageStore):
        image = image_store.create_image(["docker.io/library/busybox:latest"])
        ref = parse_reference("busybox", image_store.locator)
        assert resolve_image(ref, image_store).id == image.id

    def test_by_id(self, image_store: LocalImageStore):
        image_store.create_image(["docker.io/library/busybox:latest"], image_id=IMAGE_ID)
        ref = parse_reference(f"busybox@{IMAGE_ID}", image_store.locator)
        assert resolve_image(ref, image_store).id == IMAGE_ID
        id_only = parse_reference(f"@{IMAGE_ID}", image_store.locator)
        assert resolve_image(id_only, image_store).id == IMAGE_ID

    def test_by_digest_in_same_repository(self, image_store: LocalImageStore, v2s2_manifest):
        image = image_store.create_image(["docker.io/library/busybox:other"], v2s2_manifest)
        digest = manifest_digest(v2s2_manifest)
        ref = parse_reference(f"busybox@{digest}", image_store.locator)
        assert resolve_image(ref, image_store).id == image.id

    def test_digest_in_other_repository_does_not_match(
        self, image_store: LocalImageStore, v2s2_manifest
    ):
        image_store.create_image(["docker.io/library/alpine:3"], v2s2_manifest)
        digest = manifest_digest(v2s2_manifest)
        ref = parse_reference(f"busybox@{digest}", image_store.locator)
        with pytest.raises(NoSuchImageError):
            resolve_image(ref, image_store)

    def test_digest_tie_break_is_creation_order(
        self, image_store: LocalImageStore, v2s2_manifest
    ):
        first = image_store.create_image(["docker.io/library/busybox:a"], v2s2_manifest)
        image_store.create_image(["docker.io/library/busybox:b"], v2s2_manifest)
        digest = manifest_digest(v2s2_manifest)
        ref = parse_reference(f"busybox@{digest}", image_store.locator)
        assert resolve_image(ref, image_store).id == first.id

    def test_stale_id_is_rejected(self, image_store: LocalImageStore):
        image_store.create_image(["docker.io/library/alpine:latest"], image_id=IMAGE_ID)
        ref = parse_reference(f"busybox@{IMAGE_ID}", image_store.locator)
        with pytest.raises(NoSuchImageError):
            resolve_image(ref, image_store)

    def test_unknown(self, image_store: LocalImageStore):
        with pytest.raises(NoSuchImageError):
            resolve_image(parse_reference("busybox", image_store.locator), image_store)
        with pytest.raises(NoSuchImageError):
            resolve_image(parse_reference(f"@{OTHER_ID}", image_store.locator), image_store)

    def test_retagged_name_follows_new_image(self, image_store: LocalImageStore):
        image_store.create_image(["docker.io/library/busybox:latest"], image_id=IMAGE_ID)
        image_store.create_image(["docker.io/library/busybox:latest"], image_id=OTHER_ID)
        ref = parse_reference("busybox", image_store.locator)
        assert resolve_image(ref, image_store).id == OTHER_ID
        assert image_store.image(IMAGE_ID).names == []


class TestResolve:
    def test_returns_new_reference(self, image_store: LocalImageStore):
        image_store.create_image(["docker.io/library/busybox:latest"], image_id=IMAGE_ID)
        ref = parse_reference("busybox", image_store.locator)
        resolved = ref.resolve(image_store)
        assert isinstance(resolved, StorageReference)
        assert resolved.id == IMAGE_ID
        assert ref.id == ""
        assert resolved.resolve(image_store) is resolved

    def test_resolved_reference_gains_tag_namespace(self, image_store: LocalImageStore):
        image_store.create_image(["docker.io/library/busybox:latest"], image_id=IMAGE_ID)
        ref = parse_reference("busybox", image_store.locator).resolve(image_store)
        spec = image_store.locator.policy_spec()
        assert ref.policy_configuration_namespaces()[0] == spec + "docker.io/library/busybox:latest"


class TestDeleteImage:
    def test_delete(self, image_store: LocalImageStore, v2s2_manifest):
        image_store.create_image(["docker.io/library/busybox:latest"], v2s2_manifest)
        ref = parse_reference("busybox", image_store.locator)
        deleted = delete_image(ref, image_store)
        assert image_store.image(deleted.id) is None
        with pytest.raises(NoSuchImageError):
            resolve_image(ref, image_store)
