from __future__ import annotations

import pytest

from image_mirror.errors import ConfigurationError
from image_mirror.validation import MISSING, compute_sha256, fingerprint, validate_digest, validate_tag


def test_compute_sha256() -> None:
    assert compute_sha256(b"hello") == "sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


def test_missing_manifest_fingerprint_never_equals_present_one() -> None:
    assert fingerprint(None) == MISSING
    assert fingerprint(b"") == MISSING
    assert fingerprint(b"{}") != MISSING
    assert fingerprint(b"{}") == compute_sha256(b"{}")


@pytest.mark.parametrize("tag", ["latest", "v1.2.3", "1.36-glibc", "_private"])
def test_valid_tags(tag: str) -> None:
    validate_tag(tag)


@pytest.mark.parametrize("tag", ["", "-leading", "has space", "a" * 129, "semi;colon"])
def test_invalid_tags(tag: str) -> None:
    with pytest.raises(ConfigurationError):
        validate_tag(tag)


def test_validate_digest() -> None:
    validate_digest("sha256:" + "a" * 64)
    validate_digest("sha512:" + "b" * 128)
    for digest in ("", "sha256:abc", "md5:" + "a" * 32, "sha256:" + "A" * 64, "null"):
        with pytest.raises(ConfigurationError):
            validate_digest(digest)
