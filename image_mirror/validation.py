"""
Input validation and digest helpers for the image mirror.

Provides digest computation, manifest fingerprints, and tag/digest validation.
"""

import hashlib
import logging
import re

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Fingerprint of a manifest that does not exist
MISSING = "MISSING"

MAX_TAG_LENGTH = 128


def compute_sha256(data: bytes) -> str:
    """
    Compute SHA256 digest in OCI/Docker format.

    Args:
        data: Bytes to hash

    Returns:
        String in format "sha256:<64 hex chars>"

    Example:
        >>> compute_sha256(b"hello")
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    h = hashlib.sha256()
    h.update(data)
    return "sha256:" + h.hexdigest()


def fingerprint(raw: bytes | None) -> str:
    """
    Fingerprint a raw manifest body for equality comparison.

    Args:
        raw: Manifest bytes, or None/empty when the manifest does not exist

    Returns:
        compute_sha256(raw), or MISSING for an absent manifest.

    Note:
        This hashes the bytes as served by the registry. It is only used to
        compare two manifests and is not guaranteed to match the registry's
        own digest for the same object.
    """
    if not raw:
        return MISSING
    return compute_sha256(raw)


def validate_tag(tag: str) -> None:
    """
    Validate container image tag.

    Raises:
        ConfigurationError: if the tag is empty, too long, or has invalid characters

    Validation Rules:
        - Must be 1-128 characters
        - Must start with an alphanumeric character or underscore
        - Only alphanumeric characters, dots (.), hyphens (-), and underscores (_)
    """
    if not tag or len(tag) > MAX_TAG_LENGTH:
        logger.warning(f"Invalid tag length: {len(tag or '')}")
        raise ConfigurationError(f"Invalid tag: must be 1-{MAX_TAG_LENGTH} characters")

    if not re.match(r'^[a-zA-Z0-9_][a-zA-Z0-9._-]*$', tag):
        logger.warning(f"Invalid tag format: {tag}")
        raise ConfigurationError(f"Invalid tag '{tag}': only alphanumeric, dots, hyphens, and underscores allowed")


def validate_digest(digest: str) -> None:
    """
    Validate manifest digest format per OCI specification.

    Raises:
        ConfigurationError: if the digest is not sha256:<64 hex> or sha512:<128 hex>
    """
    if not digest or not re.match(r'^sha(256:[a-f0-9]{64}|512:[a-f0-9]{128})$', digest):
        logger.warning(f"Invalid digest format: {digest}")
        raise ConfigurationError(f"Invalid digest '{digest}': must be sha256:<64 hex characters> or sha512:<128 hex characters>")
