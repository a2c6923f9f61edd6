"""Tests for manifest parsing."""

import pytest

from fleet_build_client.core.auth import basic_authorization, parse_bearer_challenge
from fleet_build_client.core.manifests import (
    MANIFEST_LIST_V2,
    MANIFEST_V2,
    is_manifest_index,
    parse_layer_digests,
    select_platform_manifest,
)
from fleet_build_client.exceptions import ManifestNotFound, MalformedManifest

A = "sha256:" + "a" * 64
B = "sha256:" + "b" * 64
C = "sha256:" + "c" * 64


def test_schema2_layers_keep_order():
    """Schema 2 manifests list layers bottom first."""
    manifest = {
        "schemaVersion": 2,
        "mediaType": MANIFEST_V2,
        "layers": [{"digest": A}, {"digest": B}, {"digest": C}],
    }

    assert parse_layer_digests(manifest) == (A, B, C)


def test_schema1_layers_are_reversed():
    """Schema 1 manifests list layers top first."""
    manifest = {"schemaVersion": 1, "fsLayers": [{"blobSum": C}, {"blobSum": B}, {"blobSum": A}]}

    assert parse_layer_digests(manifest) == (A, B, C)


@pytest.mark.parametrize(
    "manifest",
    [
        [],
        {"schemaVersion": 2},
        {"schemaVersion": 2, "layers": []},
        {"schemaVersion": 2, "layers": {"digest": A}},
        {"schemaVersion": 2, "layers": [{"size": 3}]},
        {"schemaVersion": 2, "layers": [{"digest": "sha256:short"}]},
        {"schemaVersion": 1, "fsLayers": []},
    ],
)
def test_malformed_manifests(manifest):
    """Missing, empty or invalid layer lists are rejected."""
    with pytest.raises(MalformedManifest):
        parse_layer_digests(manifest)


class TestManifestLists:
    """Platform selection from manifest lists."""

    @pytest.fixture
    def manifest_list(self):
        return {
            "schemaVersion": 2,
            "mediaType": MANIFEST_LIST_V2,
            "manifests": [
                {"digest": A, "platform": {"os": "linux", "architecture": "amd64"}},
                {
                    "digest": B,
                    "platform": {"os": "linux", "architecture": "arm", "variant": "v7"},
                },
            ],
        }

    def test_detects_index(self, manifest_list):
        assert is_manifest_index(manifest_list, MANIFEST_LIST_V2)
        assert is_manifest_index({"manifests": []}, None)
        assert not is_manifest_index({"layers": []}, MANIFEST_V2)

    def test_first_entry_by_default(self, manifest_list):
        assert select_platform_manifest(manifest_list) == A

    def test_selects_platform(self, manifest_list):
        assert select_platform_manifest(manifest_list, "linux/arm/v7") == B
        assert select_platform_manifest(manifest_list, "linux/arm") == B

    def test_unknown_platform(self, manifest_list):
        with pytest.raises(ManifestNotFound):
            select_platform_manifest(manifest_list, "linux/riscv64")

    def test_empty_list(self):
        with pytest.raises(MalformedManifest):
            select_platform_manifest({"manifests": []})


class TestBearerChallenge:
    """WWW-Authenticate parsing."""

    def test_parses_parameters(self):
        header = 'Bearer realm="https://api.example.com/auth/v1/token",service="registry.example.com"'

        assert parse_bearer_challenge(header) == {
            "realm": "https://api.example.com/auth/v1/token",
            "service": "registry.example.com",
        }

    @pytest.mark.parametrize("header", [None, "", 'Basic realm="registry"'])
    def test_non_bearer(self, header):
        assert parse_bearer_challenge(header) is None


def test_basic_authorization_header():
    """Device credentials are sent as an RFC 7617 Basic header."""
    assert basic_authorization("d_abc123", "device-key") == "Basic ZF9hYmMxMjM6ZGV2aWNlLWtleQ=="
    assert basic_authorization("d_é", "") == "Basic ZF/DqTo="
