"""
Repository description publishing.

Sets the Docker Hub overview of a mirrored repository to a short note naming
the source it mirrors. Best-effort: failures are logged and never fail a job.
"""

import logging

import requests

from .config import config as default_config

logger = logging.getLogger(__name__)


def description_message(source: str, project_url: str) -> str:
    """Overview text for a mirrored repository."""
    return (
        f"This repository is an automated partial mirror of  `{source}`.\n"
        f"\n"
        f"For more information see <{project_url}>.\n"
    )


class DescriptionPublisher:
    """Publishes repository descriptions through the Docker Hub API."""

    def __init__(self, cfg=None, session=None, dry_run=False):
        self.config = cfg or default_config
        self.session = session or requests
        self.dry_run = dry_run

    def enabled_for(self, dest) -> bool:
        """Descriptions are only published for DESCRIPTION_REGISTRY and with a token."""
        return bool(self.config.DOCKER_TOKEN) and dest.registry == self.config.DESCRIPTION_REGISTRY

    def publish(self, source, dest) -> bool:
        """
        Set the description of dest to point at source.

        Args:
            source: Source ImageReference
            dest: Destination ImageReference

        Returns:
            True if the description was updated, False if skipped or failed
        """
        if not self.enabled_for(dest):
            logger.debug(f"Skipping description for {dest}")
            return False

        logger.info(f"Updating description for {dest}")
        if self.dry_run:
            logger.info(f"[dry-run] PATCH description for {dest}")
            return False

        url = f"{self.config.DOCKER_HUB_API_URL}/repositories/{dest.repository}/"
        payload = {
            "registry": "docker.io",
            "full_description": description_message(str(source), self.config.MIRROR_PROJECT_URL),
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"JWT {self.config.DOCKER_TOKEN}",
        }

        try:
            resp = self.session.patch(url, json=payload, headers=headers, timeout=self.config.HTTP_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to set description for {dest}: {e}")
            return False

        logger.debug(f"Description updated for {dest}")
        return True
