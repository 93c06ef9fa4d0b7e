from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest


def _ensure_root_on_path() -> None:
    root = str(Path(__file__).resolve().parents[1])
    if root not in sys.path:
        sys.path.insert(0, root)


_ensure_root_on_path()

from image_mirror.config import Config  # noqa: E402
from image_mirror.errors import TransportError  # noqa: E402
from image_mirror.manifest import DOCKER_MANIFEST_LIST, DOCKER_MANIFEST_V2, ManifestDescriptor  # noqa: E402
from image_mirror.transport import APPEND, CREATE  # noqa: E402
from image_mirror.validation import compute_sha256  # noqa: E402

CONFIG_VARS = (
    "LOG_LEVEL",
    "DEFAULT_REGISTRY",
    "DEST_ORG_OVERRIDE",
    "ARCH_LIST",
    "DOCKER_TOKEN",
    "DOCKER_HUB_API_URL",
    "DESCRIPTION_REGISTRY",
    "MIRROR_PROJECT_URL",
    "SKOPEO_BIN",
    "DOCKER_BIN",
    "COMMAND_TIMEOUT",
    "HTTP_TIMEOUT",
)


class FakeTransport:
    """In-memory registry keyed by fully qualified reference."""

    def __init__(self) -> None:
        self.manifests: dict[str, bytes] = {}
        self.configs: dict[str, bytes] = {}
        self.lists: dict[str, list[str]] = {}
        self.inspect_failures: set[str] = set()
        self.copy_failures: set[str] = set()
        self.publish_failures: set[str] = set()
        self.inspected: list[str] = []
        self.copies: list[tuple] = []
        self.publishes: list[tuple] = []

    def inspect_manifest(self, ref: str) -> bytes | None:
        self.inspected.append(ref)
        if ref in self.inspect_failures:
            raise TransportError(f"inspect failed: {ref}")
        return self.manifests.get(ref)

    def inspect_config(self, ref: str) -> bytes | None:
        return self.configs.get(ref)

    def copy_manifest(self, src: str, dest: str, arch: str, extra_flags=()) -> None:
        if src in self.copy_failures:
            raise TransportError(f"copy failed: {src}")
        body = self.manifests[src]
        if "--format=v2s2" in extra_flags:
            body = b'{"schemaVersion": 2, "converted": true}'
        self.manifests[dest] = body
        self.copies.append((src, dest, arch, tuple(extra_flags)))

    def publish_manifest_list(self, dest: str, source, mode: str = CREATE) -> None:
        key = source.digest if isinstance(source, ManifestDescriptor) else source
        if key in self.publish_failures:
            raise TransportError(f"publish failed: {key}")
        if mode == CREATE:
            self.lists[dest] = [key]
        else:
            assert mode == APPEND
            assert dest in self.lists, "append before create"
            self.lists[dest].append(key)
        self.publishes.append((dest, key, mode))


class FakePublisher:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def publish(self, source, dest) -> bool:
        self.calls.append((str(source), str(dest)))
        return True


def child_manifest(name: str) -> bytes:
    return json.dumps({"schemaVersion": 2, "mediaType": DOCKER_MANIFEST_V2, "name": name}).encode()


def manifest_list(entries: list[tuple[str, str | None, bytes]]) -> bytes:
    """Build a manifest list from (architecture, variant, child bytes) triples."""
    manifests = []
    for arch, variant, body in entries:
        platform = {"architecture": arch, "os": "linux"}
        if variant is not None:
            platform["variant"] = variant
        manifests.append({
            "mediaType": DOCKER_MANIFEST_V2,
            "digest": compute_sha256(body),
            "size": len(body),
            "platform": platform,
        })
    return json.dumps({"schemaVersion": 2, "mediaType": DOCKER_MANIFEST_LIST, "manifests": manifests}).encode()


@pytest.fixture
def cfg(monkeypatch) -> Config:
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    return Config()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()
