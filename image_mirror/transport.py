"""
Registry transport for the image mirror.

Wraps the skopeo and docker buildx command-line tools behind the four
registry operations the mirror needs: inspect a manifest, inspect an image
config, copy a manifest, and publish a manifest list entry.
"""

import logging
import os
import re
import subprocess

from .config import config as default_config
from .errors import TransportError
from .manifest import ManifestDescriptor

logger = logging.getLogger(__name__)

# Manifest list publishing modes
CREATE = "create"
APPEND = "append"

# skopeo stderr for a tag, digest or repository that does not exist
_NOT_FOUND_RE = re.compile(r"manifest unknown|name unknown|not found|404", re.IGNORECASE)


def run_command(cmd: list[str], timeout: int, env: dict | None = None) -> bytes:
    """
    Run an external command and return its stdout.

    Args:
        cmd: Command and arguments
        timeout: Seconds before the command is killed
        env: Extra environment variables for the command

    Returns:
        Raw stdout bytes

    Raises:
        TransportError: if the command fails, times out, or cannot be started
    """
    logger.debug(f"Running command: {' '.join(cmd)}")

    run_env = None
    if env:
        run_env = dict(os.environ)
        run_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            env=run_env,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"{cmd[0]} timed out after {timeout}s")
        raise TransportError(f"{cmd[0]} timed out after {timeout}s", command=cmd) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode(errors="replace").strip()
        logger.debug(f"{cmd[0]} failed with exit code {e.returncode}: {stderr}")
        raise TransportError(f"{cmd[0]} failed with exit code {e.returncode}: {stderr}", command=cmd, stderr=stderr) from e
    except OSError as e:
        logger.error(f"Unable to run {cmd[0]}: {e}")
        raise TransportError(f"Unable to run {cmd[0]}: {e}", command=cmd) from e

    return result.stdout


class RegistryTransport:
    """
    skopeo/docker backed registry operations.

    References passed to every method are fully qualified
    ("registry/org/name:tag" or "registry/org/name@digest").
    """

    def __init__(self, cfg=None, dry_run=False):
        self.config = cfg or default_config
        self.dry_run = dry_run

    def _skopeo(self, *args) -> bytes:
        return run_command([self.config.SKOPEO_BIN, *args], timeout=self.config.COMMAND_TIMEOUT)

    def _inspect(self, ref: str, *flags) -> bytes | None:
        try:
            raw = self._skopeo("inspect", *flags, "--raw", f"docker://{ref}")
        except TransportError as e:
            if e.stderr and _NOT_FOUND_RE.search(e.stderr):
                logger.debug(f"Not found: {ref}")
                return None
            raise
        return raw or None

    def inspect_manifest(self, ref: str) -> bytes | None:
        """
        Fetch the raw manifest or manifest list for a tag or digest reference.

        Returns:
            Raw manifest bytes, or None if the manifest does not exist

        Raises:
            TransportError: for any failure other than "not found"
        """
        return self._inspect(ref)

    def inspect_config(self, ref: str) -> bytes | None:
        """Fetch the raw image config blob of a schema 2 manifest, or None if missing."""
        return self._inspect(ref, "--config")

    def copy_manifest(self, src: str, dest: str, arch: str, extra_flags=()) -> None:
        """
        Copy one manifest and its blobs from src to dest.

        Args:
            src: Source reference
            dest: Destination reference
            arch: Architecture override for skopeo
            extra_flags: Additional skopeo copy flags (e.g. --format=v2s2)

        Raises:
            TransportError: if the copy fails
        """
        cmd = [
            self.config.SKOPEO_BIN,
            "copy",
            f"--override-arch={arch}",
            f"docker://{src}",
            f"docker://{dest}",
            *extra_flags,
        ]
        if self.dry_run:
            logger.info(f"[dry-run] {' '.join(cmd)}")
            return
        run_command(cmd, timeout=self.config.COMMAND_TIMEOUT)

    def publish_manifest_list(self, dest: str, source, mode: str = CREATE) -> None:
        """
        Add one platform entry to the manifest list at dest.

        Args:
            dest: Destination tag reference of the manifest list
            source: Reference string, or a ManifestDescriptor whose JSON is
                passed as-is so platform and variant are preserved
            mode: CREATE replaces any existing list, APPEND adds to it

        Raises:
            TransportError: if docker buildx fails
            ValueError: for an unknown mode
        """
        if mode not in (CREATE, APPEND):
            raise ValueError(f"Unknown manifest list mode: {mode}")

        if isinstance(source, ManifestDescriptor):
            source = source.to_json()

        cmd = [self.config.DOCKER_BIN, "buildx", "imagetools", "create"]
        if mode == APPEND:
            cmd.append("--append")
        cmd.extend(["--tag", dest, source])

        if self.dry_run:
            logger.info(f"[dry-run] {' '.join(cmd)}")
            return
        run_command(cmd, timeout=self.config.COMMAND_TIMEOUT, env={"DOCKER_CLI_EXPERIMENTAL": "enabled"})
