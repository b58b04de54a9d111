from typing import Optional

from node_drain.client import DEFAULT_EVICTION_SHAPE, EvictionAPIShape, ResourceClient
from node_drain.errors import TransportError
from node_drain.logger_config import setup_logger
from node_drain.session import DrainSession

logger = setup_logger(__name__)

EVICTION_SUBRESOURCE = "pods/eviction"
EVICTION_KIND = "Eviction"
POLICY_GROUP = "policy"


class DiscoveryResolver:
    """Finds which group/version serves pod evictions, once per session"""

    def __init__(self, resource_client: ResourceClient):
        self.client = resource_client

    def resolve(self, session: DrainSession) -> Optional[EvictionAPIShape]:
        """
        Return the eviction API shape for this session, or None when the
        cluster has no eviction subresource and pods must be deleted directly.
        """
        if session.shape_resolved:
            return session.eviction_shape

        if session.config.skip_discovery:
            logger.info(f"Skipping discovery, assuming {DEFAULT_EVICTION_SHAPE.api_version}")
            shape = DEFAULT_EVICTION_SHAPE
        else:
            try:
                shape = self._discover()
            except TransportError as e:
                logger.warning(f"Discovery failed ({e}), assuming {DEFAULT_EVICTION_SHAPE.api_version}")
                shape = DEFAULT_EVICTION_SHAPE

        session.eviction_shape = shape
        session.shape_resolved = True
        return shape

    def _discover(self) -> Optional[EvictionAPIShape]:
        resources = self.client.get_core_api_resources()
        for resource in resources.resources or []:
            if resource.name != EVICTION_SUBRESOURCE or resource.kind != EVICTION_KIND:
                continue
            if resource.group and resource.version:
                shape = EvictionAPIShape(group=resource.group, version=resource.version)
                logger.info(f"Eviction served by {shape.api_version}")
                return shape
            # Older API servers omit group/version on subresources
            return self._policy_group_shape()

        logger.warning("Cluster does not support pod eviction, pods will be deleted")
        return None

    def _policy_group_shape(self) -> EvictionAPIShape:
        group = self.client.get_policy_group()
        if group is None or group.preferred_version is None:
            logger.warning(f"No policy group advertised, assuming {DEFAULT_EVICTION_SHAPE.api_version}")
            return DEFAULT_EVICTION_SHAPE
        shape = EvictionAPIShape(group=POLICY_GROUP, version=group.preferred_version.version)
        logger.info(f"Eviction served by {shape.api_version} (policy group preferred version)")
        return shape
