"""
Multi-architecture container image mirror.

Mirrors image tags between OCI/Docker registries while preserving their
multi-architecture structure. For every (source, destination, tag) job the
mirror checks whether the destination is already current and, if not, copies
each architecture-specific manifest and rebuilds the manifest list.

Features:
    - Manifest lists, schema 2 manifests, and legacy schema 1 manifests
    - Deterministic default variant per architecture
    - Content fingerprints so unchanged images are never re-copied
    - Per-architecture failure isolation with partial progress
    - Optional Docker Hub repository descriptions
    - Configurable via environment variables

Destination Tags:
    <tag>-<arch>             default variant of an architecture
    <tag>-<arch>-<variant>   every other variant
    <tag>                    manifest list of the default variants

Registry access goes through skopeo and docker buildx imagetools.
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .errors import (
    ConfigurationError,
    MirrorError,
    SourceNotFoundError,
    TransportError,
    UnsupportedSchemaError,
)
from .jobs import MirrorJob, parse_line, read_jobs, run_jobs
from .mirror import JobResult, copy_if_changed, mirror_image
from .reference import ImageReference, normalize_reference
from .transport import RegistryTransport

__all__ = [
    "Config",
    "ConfigurationError",
    "MirrorError",
    "SourceNotFoundError",
    "TransportError",
    "UnsupportedSchemaError",
    "MirrorJob",
    "parse_line",
    "read_jobs",
    "run_jobs",
    "JobResult",
    "copy_if_changed",
    "mirror_image",
    "ImageReference",
    "normalize_reference",
    "RegistryTransport",
]
