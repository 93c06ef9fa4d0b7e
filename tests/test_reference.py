from __future__ import annotations

import pytest

from image_mirror.errors import ConfigurationError
from image_mirror.reference import (
    ImageReference,
    has_explicit_registry,
    normalize_destination,
    normalize_reference,
    normalize_source,
)


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("rancher/rancher", "docker.io/rancher/rancher"),
        ("quay.io/coreos/etcd", "quay.io/coreos/etcd"),
        ("registry.k8s.io/sig-storage/csi/node-driver", "registry.k8s.io/sig-storage/csi/node-driver"),
        ("localhost/org/image", "localhost/org/image"),
        ("localhost:5000/org/image", "localhost:5000/org/image"),
        ("busybox", "docker.io/busybox"),
    ],
)
def test_normalize_inserts_default_registry_only_when_missing(spec: str, expected: str) -> None:
    assert str(normalize_reference(spec, default_registry="docker.io")) == expected


def test_normalize_uses_configured_default_registry(cfg) -> None:
    cfg.DEFAULT_REGISTRY = "mirror.example.com"
    assert str(normalize_source("rancher/rancher", cfg)) == "mirror.example.com/rancher/rancher"


def test_org_override_applies_to_destinations_only(cfg) -> None:
    cfg.DEST_ORG_OVERRIDE = "mirrored"
    assert str(normalize_destination("rancher/mirrored-etcd", cfg)) == "docker.io/mirrored/mirrored-etcd"
    assert str(normalize_destination("quay.io/coreos/etcd", cfg)) == "quay.io/mirrored/etcd"
    assert str(normalize_source("rancher/etcd", cfg)) == "docker.io/rancher/etcd"


def test_org_override_keeps_image_name_without_org_segment(cfg) -> None:
    cfg.DEST_ORG_OVERRIDE = "mirrored"
    assert str(normalize_destination("busybox", cfg)) == "docker.io/mirrored/busybox"


@pytest.mark.parametrize("spec", ["", "   ", "org//image", "/org/image", "org/ima ge", "org/image/"])
def test_malformed_specs_are_configuration_errors(spec: str) -> None:
    with pytest.raises(ConfigurationError):
        normalize_reference(spec, default_registry="docker.io")


def test_registry_only_spec_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        normalize_reference("quay.io", default_registry="docker.io")


def test_has_explicit_registry() -> None:
    assert has_explicit_registry("quay.io")
    assert has_explicit_registry("myhost:5000")
    assert has_explicit_registry("localhost")
    assert not has_explicit_registry("rancher")
    assert not has_explicit_registry("localhostish")


def test_reference_formatting() -> None:
    ref = ImageReference(registry="docker.io", repository="rancher/etcd")
    assert ref.with_tag("v1") == "docker.io/rancher/etcd:v1"
    assert ref.with_digest("sha256:abc") == "docker.io/rancher/etcd@sha256:abc"
