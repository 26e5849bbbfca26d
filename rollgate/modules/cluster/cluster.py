"""
k3d cluster lifecycle.
"""

import json
import logging
from typing import List

from rollgate.config.provider import ClusterConfig, ImageConfig
from rollgate.modules.errors import ClusterError
from rollgate.modules.executor import CommandExecutor, KubectlExecutor

logger = logging.getLogger("rollgate.cluster")


class ClusterManager:
    """Creates, inspects and removes the local k3d cluster."""

    def __init__(
        self,
        config: ClusterConfig,
        image: ImageConfig,
        k3d: CommandExecutor,
        kubectl: KubectlExecutor,
    ):
        self.config = config
        self.image = image
        self.k3d = k3d
        self.kubectl = kubectl

    def list_clusters(self) -> List[str]:
        output = self.k3d.run(["cluster", "list", "-o", "json"])
        if not output.success:
            raise ClusterError(f"k3d cluster list failed: {output.stderr.strip()}")

        try:
            return [entry.get("name", "") for entry in json.loads(output.stdout or "[]")]
        except (json.JSONDecodeError, AttributeError):
            # Older k3d releases only print a table
            lines = output.stdout.splitlines()[1:]
            return [line.split()[0] for line in lines if line.strip()]

    def exists(self) -> bool:
        return self.config.name in self.list_clusters()

    def create(self) -> bool:
        """
        Create the cluster with a registry and load balancer, then wait for nodes.

        Creation and kubeconfig errors are logged and ignored; the node
        readiness wait decides whether the cluster is usable.

        Returns:
            False if the cluster already existed, True if it was created

        Raises:
            ClusterError: If the nodes do not become Ready
        """
        name = self.config.name
        if self.exists():
            logger.info(f"Cluster {name} already exists. Use 'rollgate cluster-rm' to remove it first.")
            return False

        logger.info(f"Creating Kubernetes cluster {name} with registry and {self.config.agents} agents...")
        output = self.k3d.run(
            [
                "cluster",
                "create",
                name,
                "--servers",
                str(self.config.servers),
                "--agents",
                str(self.config.agents),
                "--registry-create",
                f"{self.image.local_registry_host}:0.0.0.0:{self.image.local_registry_port}",
                "--port",
                self.config.lb_port_mapping,
                "--timeout",
                f"{self.config.create_timeout}s",
                "--no-rollback",
            ],
            timeout=self.config.create_timeout + 60,
        )
        if not output.success:
            logger.warning(f"k3d cluster create reported an error, continuing: {output.stderr.strip()}")

        logger.info("Writing kubeconfig...")
        merged = self.k3d.run(["kubeconfig", "merge", name, "--kubeconfig-switch-context"])
        if not merged.success:
            written = self.k3d.run(["kubeconfig", "write", name, "--kubeconfig-switch-context"])
            if not written.success:
                logger.warning(f"Could not update kubeconfig: {written.stderr.strip()}")

        self.wait_for_nodes()
        logger.info("Cluster ready.")
        return True

    def wait_for_nodes(self) -> None:
        timeout = self.config.node_ready_timeout
        output = self.kubectl.run(
            [
                "wait",
                "--context",
                self.config.context,
                "node",
                "--all",
                "--for=condition=Ready",
                f"--timeout={timeout}s",
            ],
            timeout=timeout + 30,
        )
        if not output.success:
            raise ClusterError(
                f"Nodes of cluster {self.config.name} not Ready: {output.stderr.strip()}"
            )

    def delete(self) -> None:
        logger.info(f"Removing Kubernetes cluster {self.config.name}...")
        output = self.k3d.run(["cluster", "delete", self.config.name])
        if not output.success:
            raise ClusterError(f"k3d cluster delete failed: {output.stderr.strip()}")

    def import_image(self) -> None:
        """Import the locally built image straight into the cluster nodes."""
        tag = self.image.local_tag
        logger.info(f"Importing {tag} to cluster {self.config.name}...")
        output = self.k3d.run(["images", "import", tag, "-c", self.config.name])
        if not output.success:
            raise ClusterError(f"k3d images import failed: {output.stderr.strip()}")
