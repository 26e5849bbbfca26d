"""
Ingress entry point lookup.
"""

import logging
from typing import Optional

from rollgate.modules.executor import KubectlExecutor
from rollgate.modules.models import EntryPoint

logger = logging.getLogger("rollgate.routing")

IP_JSONPATH = "{.items[0].status.loadBalancer.ingress[0].ip}"
HOST_JSONPATH = "{.items[0].spec.rules[0].host}"


class RouteResolver:
    """Finds where the ingress in a namespace can be reached."""

    def __init__(self, kubectl: KubectlExecutor):
        self.kubectl = kubectl

    def resolve(self, namespace: str) -> Optional[EntryPoint]:
        """
        Return the load balancer IP of the first ingress, falling back to its
        first rule's host. None when neither is available.
        """
        address = self._query(namespace, IP_JSONPATH)
        if address:
            return EntryPoint(address=address, source="ip")

        host = self._query(namespace, HOST_JSONPATH)
        if host:
            logger.info(f"No load balancer IP for ingress in {namespace}, using host rule")
            return EntryPoint(address=host, source="hostname")

        return None

    def _query(self, namespace: str, jsonpath: str) -> str:
        output = self.kubectl.run(["get", "ingress", "-n", namespace, "-o", f"jsonpath={jsonpath}"])
        if not output.success:
            logger.debug(f"Ingress query failed: {output.stderr.strip()}")
            return ""
        return output.stdout.strip()
