from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from kubernetes import client

from node_drain.client import ResourceClient
from node_drain.logger_config import setup_logger
from node_drain.session import SkipReason, pod_key
from node_drain.settings import DrainConfig

logger = setup_logger(__name__)

MIRROR_POD_ANNOTATION = "kubernetes.io/config.mirror"
TERMINAL_PHASES = ("Succeeded", "Failed")


class ControllerKind(Enum):
    DAEMON_SET = "DaemonSet"
    NODE = "Node"
    REPLICA_SET = "ReplicaSet"
    REPLICATION_CONTROLLER = "ReplicationController"
    STATEFUL_SET = "StatefulSet"
    JOB = "Job"
    OTHER = "Other"
    UNMANAGED = "Unmanaged"

    @property
    def node_local(self) -> bool:
        """Pods of these controllers belong to this node and cannot move elsewhere"""
        return self in (ControllerKind.DAEMON_SET, ControllerKind.NODE)


_KINDS_BY_NAME = {kind.value: kind for kind in ControllerKind
                  if kind not in (ControllerKind.OTHER, ControllerKind.UNMANAGED)}


class PodAction(Enum):
    EVICT = "evict"
    FORCE_DELETE = "force-delete"
    SKIP = "skip"


@dataclass
class ClassifiedPod:
    pod: client.V1Pod
    action: PodAction
    kind: ControllerKind
    skip_reason: Optional[SkipReason] = None

    @property
    def key(self) -> str:
        return pod_key(self.pod)


def controller_kind(pod: client.V1Pod) -> ControllerKind:
    """Kind of the controller owning a pod, preferring the controller=true reference"""
    metadata = pod.metadata
    annotations = (metadata.annotations if metadata else None) or {}
    if MIRROR_POD_ANNOTATION in annotations:
        return ControllerKind.NODE

    owners = (metadata.owner_references if metadata else None) or []
    if not owners:
        return ControllerKind.UNMANAGED
    owner = next((ref for ref in owners if ref.controller), owners[0])
    return _KINDS_BY_NAME.get(owner.kind, ControllerKind.OTHER)


def classify(pod: client.V1Pod, config: DrainConfig) -> ClassifiedPod:
    kind = controller_kind(pod)
    phase = pod.status.phase if pod.status else None

    if phase in TERMINAL_PHASES:
        return ClassifiedPod(pod, PodAction.SKIP, kind, SkipReason.TERMINAL)

    if kind.node_local:
        if config.ignore_local_workloads:
            return ClassifiedPod(pod, PodAction.FORCE_DELETE, kind)
        return ClassifiedPod(pod, PodAction.SKIP, kind, SkipReason.LOCAL_WORKLOAD)

    if kind is ControllerKind.UNMANAGED:
        if config.force:
            return ClassifiedPod(pod, PodAction.FORCE_DELETE, kind)
        return ClassifiedPod(pod, PodAction.SKIP, kind, SkipReason.UNMANAGED)

    return ClassifiedPod(pod, PodAction.EVICT, kind)


class PodFilter:
    """Lists the pods bound to a node and decides what to do with each"""

    def __init__(self, resource_client: ResourceClient):
        self.client = resource_client

    def list_drain_targets(self, node_name: str, config: DrainConfig) -> List[ClassifiedPod]:
        pods = self.client.list_pods(node_name, label_selector=config.pod_selector)
        if not pods:
            logger.info(f"No pods bound to node: {node_name}")
            return []

        targets = [classify(pod, config) for pod in pods]
        for target in targets:
            if target.action is PodAction.SKIP:
                logger.info(f"Skipping pod {target.key} ({target.skip_reason.value}, {target.kind.value})")
            else:
                logger.debug(f"Pod {target.key} -> {target.action.value} ({target.kind.value})")
        return targets
