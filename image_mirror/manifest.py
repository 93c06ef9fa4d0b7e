"""
Manifest classification and architecture enumeration.

Parses raw manifests fetched from a registry, decides how an image has to be
mirrored, and groups the children of a manifest list by architecture with a
deterministic default variant per architecture.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from .errors import UnsupportedSchemaError

logger = logging.getLogger(__name__)

# Docker media types
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"

# OCI media types
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"

LIST_MEDIA_TYPES = (DOCKER_MANIFEST_LIST, OCI_INDEX)
SINGLE_MEDIA_TYPES = (DOCKER_MANIFEST_V2, OCI_MANIFEST)

# skopeo flag forcing schema 2 on copy; schema 1 cannot join a manifest list
UPCONVERT_FLAGS = ("--format=v2s2",)


class Strategy(Enum):
    """How a source manifest gets mirrored."""

    MANIFEST_LIST = "manifest.list.v2"
    MANIFEST_V2 = "manifest.v2"
    MANIFEST_V1 = "manifest.v1"


@dataclass(frozen=True)
class ManifestEnvelope:
    """A raw manifest plus the schema fields needed to classify it."""

    schema_version: int | None
    media_type: str | None
    raw: bytes
    body: dict = field(repr=False, compare=False)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ManifestEnvelope":
        """
        Parse raw manifest bytes.

        Raises:
            UnsupportedSchemaError: if the bytes are not a JSON object
        """
        try:
            body = json.loads(raw)
        except ValueError as e:
            raise UnsupportedSchemaError(f"Manifest is not valid JSON: {e}") from e
        if not isinstance(body, dict):
            raise UnsupportedSchemaError("Manifest is not a JSON object")

        media_type = body.get("mediaType")
        if media_type is None and body.get("schemaVersion") == 2:
            # mediaType is optional in OCI manifests; infer it from the shape
            if "manifests" in body:
                media_type = OCI_INDEX
            elif "config" in body:
                media_type = OCI_MANIFEST

        return cls(
            schema_version=body.get("schemaVersion"),
            media_type=media_type,
            raw=raw,
            body=body,
        )


def _string_field(value, name):
    if value is not None and not isinstance(value, str):
        raise UnsupportedSchemaError(f"{name} must be a string, not {type(value).__name__}")
    return value


def _clean_variant(variant):
    variant = _string_field(variant, "platform.variant")
    if not variant or variant == "null":
        return None
    return variant


@dataclass(frozen=True)
class ManifestDescriptor:
    """
    One child entry of a manifest list.

    The original JSON entry is kept in ``data`` so it can be republished
    without losing platform, variant, or annotation fields.
    """

    digest: str
    media_type: str | None
    size: int | None
    architecture: str | None
    variant: str | None = None
    os: str | None = None
    data: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, entry: dict) -> "ManifestDescriptor":
        """
        Build a descriptor from one "manifests" entry.

        Raises:
            UnsupportedSchemaError: if the entry or its platform has the wrong shape
        """
        if not isinstance(entry, dict):
            raise UnsupportedSchemaError(f"Manifest list entry is not an object: {entry!r}")
        platform = entry.get("platform") or {}
        if not isinstance(platform, dict):
            raise UnsupportedSchemaError(f"platform must be an object, not {type(platform).__name__}")
        return cls(
            digest=_string_field(entry.get("digest"), "digest"),
            media_type=_string_field(entry.get("mediaType"), "mediaType"),
            size=entry.get("size"),
            architecture=_string_field(platform.get("architecture"), "platform.architecture"),
            variant=_clean_variant(platform.get("variant")),
            os=_string_field(platform.get("os"), "platform.os"),
            data=entry,
        )

    def to_json(self) -> str:
        """Compact JSON of the full descriptor entry."""
        return json.dumps(self.data or self._minimal(), separators=(",", ":"))

    def _minimal(self) -> dict:
        platform = {"architecture": self.architecture}
        if self.os:
            platform["os"] = self.os
        if self.variant:
            platform["variant"] = self.variant
        return {"mediaType": self.media_type, "digest": self.digest, "size": self.size, "platform": platform}


@dataclass(frozen=True)
class VariantEntry:
    """A child manifest chosen for one architecture, with its position in the group."""

    architecture: str
    descriptor: ManifestDescriptor
    index: int

    @property
    def variant(self) -> str | None:
        return self.descriptor.variant

    @property
    def is_default(self) -> bool:
        """The first entry of each architecture is published without a variant suffix."""
        return self.index == 0

    def tag_suffix(self) -> str:
        if self.is_default or not self.variant:
            return self.architecture
        return f"{self.architecture}-{self.variant}"

    def dest_tag(self, tag: str) -> str:
        """
        Destination tag for this entry.

        >>> entry.dest_tag("v1")   # default arm entry
        'v1-arm'
        >>> entry.dest_tag("v1")   # second arm entry, variant v6
        'v1-arm-v6'
        """
        return f"{tag}-{self.tag_suffix()}"


def classify(envelope: ManifestEnvelope) -> Strategy:
    """
    Pick the mirroring strategy for a source manifest.

    Decision table:
        schemaVersion 2 + list media type    -> MANIFEST_LIST
        schemaVersion 2 + single media type  -> MANIFEST_V2
        schemaVersion 1                      -> MANIFEST_V1
        anything else                        -> UnsupportedSchemaError

    Raises:
        UnsupportedSchemaError: for unknown schema versions or media types
    """
    if envelope.schema_version == 2:
        if envelope.media_type in LIST_MEDIA_TYPES:
            return Strategy.MANIFEST_LIST
        if envelope.media_type in SINGLE_MEDIA_TYPES:
            return Strategy.MANIFEST_V2
        raise UnsupportedSchemaError(f"unknown mediaType {envelope.media_type}")
    if envelope.schema_version == 1:
        return Strategy.MANIFEST_V1
    raise UnsupportedSchemaError(f"unknown schemaVersion {envelope.schema_version}")


def list_descriptors(envelope: ManifestEnvelope) -> list[ManifestDescriptor]:
    """
    Return the child descriptors of a manifest list, skipping malformed entries.

    Raises:
        UnsupportedSchemaError: if "manifests" is not a list
    """
    manifests = envelope.body.get("manifests") or []
    if not isinstance(manifests, list):
        raise UnsupportedSchemaError(f"manifests must be a list, not {type(manifests).__name__}")

    descriptors = []
    for entry in manifests:
        if not isinstance(entry, dict) or not entry.get("digest"):
            logger.warning(f"Skipping manifest list entry without digest: {entry}")
            continue
        try:
            descriptors.append(ManifestDescriptor.from_dict(entry))
        except UnsupportedSchemaError as e:
            logger.warning(f"Skipping malformed manifest list entry: {e}")
    return descriptors


def order_variants(descriptors: list[ManifestDescriptor]) -> list[ManifestDescriptor]:
    """
    Order the descriptors of one architecture so the default comes first.

    The entry without a variant is the default when there is one; otherwise
    the lexicographically-last variant is. Remaining entries follow in
    descending variant order. The result only depends on the descriptors
    themselves, never on their order in the source list.
    """
    ordered = sorted(descriptors, key=lambda d: (d.variant or "", d.digest), reverse=True)
    return [d for d in ordered if not d.variant] + [d for d in ordered if d.variant]


def group_architectures(descriptors: list[ManifestDescriptor], arch_list) -> dict[str, list[VariantEntry]]:
    """
    Group descriptors by architecture for every architecture of interest.

    Args:
        descriptors: Children of a manifest list
        arch_list: Architectures to keep, in sweep order

    Returns:
        Mapping of architecture to its ordered VariantEntry list. Every
        architecture in arch_list is present; absent ones map to an empty list.
    """
    groups = {}
    for arch in arch_list:
        matching = [d for d in descriptors if d.architecture == arch]
        groups[arch] = [
            VariantEntry(architecture=arch, descriptor=descriptor, index=index)
            for index, descriptor in enumerate(order_variants(matching))
        ]
    return groups


def architecture_from_config(raw_config: bytes) -> str | None:
    """
    Extract the declared architecture from an image config blob.

    Raises:
        UnsupportedSchemaError: if the config is not a JSON object or the
            architecture is not a string
    """
    try:
        image_config = json.loads(raw_config)
    except ValueError as e:
        raise UnsupportedSchemaError(f"Image config is not valid JSON: {e}") from e
    if not isinstance(image_config, dict):
        raise UnsupportedSchemaError("Image config is not a JSON object")
    return _string_field(image_config.get("architecture"), "architecture")
