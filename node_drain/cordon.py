from kubernetes import client

from node_drain.client import ResourceClient
from node_drain.logger_config import setup_logger

logger = setup_logger(__name__)


class NodeCordoner:
    """Flips a node's schedulability with a targeted patch"""

    def __init__(self, resource_client: ResourceClient):
        self.client = resource_client

    def cordon(self, node_name: str, dry_run: bool = False) -> client.V1Node:
        """Mark the node unschedulable; safe to repeat"""
        return self._set_unschedulable(node_name, True, dry_run)

    def uncordon(self, node_name: str, dry_run: bool = False) -> client.V1Node:
        """Mark the node schedulable again"""
        return self._set_unschedulable(node_name, False, dry_run)

    def _set_unschedulable(self, node_name: str, unschedulable: bool, dry_run: bool) -> client.V1Node:
        action = "cordon" if unschedulable else "uncordon"
        if dry_run:
            node = self.client.get_node(node_name)
            logger.info(f"[DRY-RUN] Would {action} node: {node_name}")
            return node

        logger.info(f"{action.capitalize()}ing node: {node_name}")
        node = self.client.patch_node_unschedulable(node_name, unschedulable)
        logger.info(f"Node {node_name} {action}ed")
        return node
