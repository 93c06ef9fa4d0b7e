"""
Reference normalization for the image mirror.

Turns bare "org/image" or "registry/org/image" specs into fully qualified
references so every later step works with an explicit registry.
"""

import logging
import re
from dataclasses import dataclass

from .config import config as default_config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r'^[a-zA-Z0-9._:-]+$')


@dataclass(frozen=True)
class ImageReference:
    """A fully qualified repository location: registry plus repository path."""

    registry: str
    repository: str

    def __str__(self):
        return f"{self.registry}/{self.repository}"

    def with_tag(self, tag: str) -> str:
        """Reference to a tag in this repository, e.g. docker.io/org/name:v1."""
        return f"{self}:{tag}"

    def with_digest(self, digest: str) -> str:
        """Reference to an exact manifest, e.g. docker.io/org/name@sha256:..."""
        return f"{self}@{digest}"


def has_explicit_registry(segment: str) -> bool:
    """
    Check whether the first path segment names a registry.

    A registry host contains a dot or a port separator, or is the literal
    "localhost". Anything else is a Docker Hub user or organization.
    """
    return "." in segment or ":" in segment or segment == "localhost"


def split_spec(spec: str) -> list[str]:
    """
    Split an image spec into path segments.

    Raises:
        ConfigurationError: if the spec is empty or has empty/invalid segments
    """
    if not spec or not spec.strip():
        raise ConfigurationError("Invalid image reference: empty spec")

    segments = spec.strip().split("/")
    for segment in segments:
        if not segment or not _SEGMENT_RE.match(segment):
            logger.warning(f"Invalid image reference: {spec}")
            raise ConfigurationError(f"Invalid image reference '{spec}'")
    return segments


def normalize_reference(spec: str, org_override: str | None = None, default_registry: str | None = None) -> ImageReference:
    """
    Normalize an image spec into an ImageReference with an explicit registry.

    Args:
        spec: "name", "org/name" or "registry/org/name[/...]"
        org_override: When set, replaces the organization/user segment
        default_registry: Registry to insert when the spec has none
            (defaults to config.DEFAULT_REGISTRY)

    Returns:
        ImageReference whose registry is always explicit.

    Raises:
        ConfigurationError: on an empty or malformed spec

    Note:
        A reference with no org segment (registry/name) gets the override
        inserted as a new segment rather than replacing the image name,
        so "busybox" with override "mirrored" becomes docker.io/mirrored/busybox.

    Examples:
        >>> str(normalize_reference("rancher/rancher"))
        'docker.io/rancher/rancher'
        >>> str(normalize_reference("quay.io/coreos/etcd", org_override="mirrored"))
        'quay.io/mirrored/etcd'
    """
    if default_registry is None:
        default_registry = default_config.DEFAULT_REGISTRY

    segments = split_spec(spec)
    if not has_explicit_registry(segments[0]):
        segments.insert(0, default_registry)

    if len(segments) < 2:
        raise ConfigurationError(f"Invalid image reference '{spec}': missing repository")

    if org_override:
        if len(segments) == 2:
            # registry/name has no org segment to replace
            segments.insert(1, org_override)
        else:
            segments[1] = org_override

    reference = ImageReference(registry=segments[0], repository="/".join(segments[1:]))
    logger.debug(f"Normalized {spec} => {reference}")
    return reference


def normalize_source(spec: str, cfg=None) -> ImageReference:
    """Normalize a source spec. Sources never get an org override."""
    cfg = cfg or default_config
    return normalize_reference(spec, default_registry=cfg.DEFAULT_REGISTRY)


def normalize_destination(spec: str, cfg=None) -> ImageReference:
    """Normalize a destination spec, applying DEST_ORG_OVERRIDE when configured."""
    cfg = cfg or default_config
    return normalize_reference(spec, org_override=cfg.DEST_ORG_OVERRIDE, default_registry=cfg.DEFAULT_REGISTRY)
