"""
Configuration module for the image mirror.

Loads all configuration from environment variables with sensible defaults.
"""

import os
import re


def parse_arch_list(value: str) -> tuple[str, ...]:
    """Split a whitespace or comma separated architecture list, dropping duplicates."""
    arches = []
    for arch in re.split(r"[\s,]+", value.strip()):
        if arch and arch not in arches:
            arches.append(arch)
    return tuple(arches)


class Config:
    """
    Mirror configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable.
    Values are read when the instance is created, not at use time.
    """

    def __init__(self):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            DEFAULT_REGISTRY: Registry assumed for bare references. Default: docker.io
            DEST_ORG_OVERRIDE: Replaces the destination org/user segment. Default: unset
            ARCH_LIST: Architectures to mirror. Default: "amd64 arm64 arm s390x"
            DOCKER_TOKEN: Docker Hub JWT used to publish descriptions. Default: unset
            DOCKER_HUB_API_URL: Docker Hub API base. Default: https://hub.docker.com/v2
            DESCRIPTION_REGISTRY: Registry whose repositories get descriptions. Default: docker.io
            MIRROR_PROJECT_URL: Link placed in descriptions. Default: https://github.com/rancher/image-mirror
            SKOPEO_BIN: skopeo executable. Default: skopeo
            DOCKER_BIN: docker executable. Default: docker
            COMMAND_TIMEOUT: Timeout for one skopeo/docker call in seconds. Default: 600
            HTTP_TIMEOUT: Timeout for the description request in seconds. Default: 20
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # References
        self.DEFAULT_REGISTRY = os.getenv("DEFAULT_REGISTRY", "docker.io")
        self.DEST_ORG_OVERRIDE = os.getenv("DEST_ORG_OVERRIDE") or None

        # Architectures of interest, in sweep order
        self.ARCH_LIST = parse_arch_list(os.getenv("ARCH_LIST", "amd64 arm64 arm s390x"))

        # Repository descriptions
        self.DOCKER_TOKEN = os.getenv("DOCKER_TOKEN") or None
        self.DOCKER_HUB_API_URL = os.getenv("DOCKER_HUB_API_URL", "https://hub.docker.com/v2").rstrip("/")
        self.DESCRIPTION_REGISTRY = os.getenv("DESCRIPTION_REGISTRY", "docker.io")
        self.MIRROR_PROJECT_URL = os.getenv("MIRROR_PROJECT_URL", "https://github.com/rancher/image-mirror")

        # External tools
        self.SKOPEO_BIN = os.getenv("SKOPEO_BIN", "skopeo")
        self.DOCKER_BIN = os.getenv("DOCKER_BIN", "docker")
        self.COMMAND_TIMEOUT = int(os.getenv("COMMAND_TIMEOUT", "600"))  # seconds
        self.HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "20"))  # seconds

    def __repr__(self):
        """String representation for logging. The token itself is never shown."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"DEFAULT_REGISTRY={self.DEFAULT_REGISTRY}, "
            f"DEST_ORG_OVERRIDE={self.DEST_ORG_OVERRIDE}, "
            f"ARCH_LIST={' '.join(self.ARCH_LIST)}, "
            f"DOCKER_TOKEN={'set' if self.DOCKER_TOKEN else 'unset'}, "
            f"SKOPEO_BIN={self.SKOPEO_BIN}, "
            f"DOCKER_BIN={self.DOCKER_BIN})"
        )


# Global config instance
config = Config()
