"""Tests for transport lookup by name."""

from __future__ import annotations

import pytest

from ocitrust.core.image_store import StoreLocator
from ocitrust.errors import InvalidReferenceSyntaxError
from ocitrust.transports import get_transport, parse_image_name
from ocitrust.transports.docker import DockerReference
from ocitrust.transports.oci import OCIReference
from ocitrust.transports.storage import StorageReference, StorageTransport

LOCATOR = StoreLocator(driver="vfs", graph_root="/var/lib/s", run_root="/run/s")


class TestTransportLookup:
    def test_known_transports(self):
        assert get_transport("oci", LOCATOR).name == "oci"
        assert get_transport("docker", LOCATOR).name == "docker"
        assert get_transport("containers-storage", LOCATOR) == StorageTransport(LOCATOR)

    def test_unknown_transport(self):
        with pytest.raises(InvalidReferenceSyntaxError):
            get_transport("dir", LOCATOR)

    def test_parse_image_name(self, tmp_dir):
        assert isinstance(parse_image_name(f"oci:{tmp_dir}/layout:v1", LOCATOR), OCIReference)
        assert isinstance(parse_image_name("docker://busybox", LOCATOR), DockerReference)
        ref = parse_image_name("containers-storage:busybox", LOCATOR)
        assert isinstance(ref, StorageReference)
        assert ref.locator == LOCATOR

    def test_missing_transport_prefix(self):
        with pytest.raises(InvalidReferenceSyntaxError):
            parse_image_name("busybox", LOCATOR)
