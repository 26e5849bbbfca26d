"""
Container image build and publish.
"""

import logging
import socket

from rollgate.config.provider import ImageConfig
from rollgate.modules.errors import ImageError
from rollgate.modules.executor import CommandExecutor

logger = logging.getLogger("rollgate.image")


class ImagePublisher:
    """Builds the service image and pushes it to the cluster-local registry."""

    def __init__(self, config: ImageConfig, docker: CommandExecutor, context_dir: str = "."):
        self.config = config
        self.docker = docker
        self.context_dir = context_dir

    def build(self) -> None:
        logger.info(f"Building {self.config.image}...")
        self._docker(
            [
                "build",
                "--rm",
                "--pull",
                "--tag",
                self.config.image,
                "--tag",
                self.config.local_tag,
                self.context_dir,
            ]
        )

    def registry_resolves(self) -> bool:
        try:
            socket.gethostbyname(self.config.local_registry_host)
            return True
        except OSError:
            return False

    def push(self) -> str:
        """
        Tag the local image for the cluster registry and push it.

        Returns:
            The pushed image reference
        """
        if not self.registry_resolves():
            logger.warning(
                f"{self.config.local_registry_host} does not resolve; add "
                f"'127.0.0.1 {self.config.local_registry_host}' to /etc/hosts so Docker "
                "can reach the local registry"
            )

        target = self.config.local_image
        logger.info(f"Pushing {self.config.local_tag} to {target}...")
        self._docker(["tag", self.config.local_tag, target])
        self._docker(["push", target])
        return target

    def _docker(self, args) -> None:
        output = self.docker.run(args, timeout=0)
        if not output.success:
            raise ImageError(
                f"docker {args[0]} failed (exit {output.returncode}): {output.stderr.strip()}"
            )
