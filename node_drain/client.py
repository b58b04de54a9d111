"""Typed access to the Kubernetes API for the drain session.

Everything above this module deals in ``V1Node``/``V1Pod`` objects, the
``EvictionOutcome`` enum and the exceptions in :mod:`node_drain.errors`.
Raw ``ApiException`` and urllib3 errors never leave this module.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from urllib3.exceptions import HTTPError

from node_drain.errors import Forbidden, NodeNotFound, TransportError
from node_drain.logger_config import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class EvictionAPIShape:
    """Group/version serving the pods/eviction subresource"""
    group: str
    version: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


DEFAULT_EVICTION_SHAPE = EvictionAPIShape(group="policy", version="v1")


class EvictionOutcome(Enum):
    ACCEPTED = "accepted"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    GONE = "gone"
    UNSUPPORTED = "unsupported"


def load_api_client(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> client.ApiClient:
    """Build an ApiClient from in-cluster config, falling back to kubeconfig"""
    if kubeconfig is None and context is None:
        try:
            config.load_incluster_config()
            return client.ApiClient()
        except config.ConfigException:
            pass
    config.load_kube_config(config_file=kubeconfig, context=context)
    return client.ApiClient()


def _status_details(e: ApiException) -> Dict[str, Any]:
    body = e.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        status = json.loads(body) if body else {}
    except ValueError:
        return {}
    if not isinstance(status, dict):
        return {}
    return status.get("details") or {}


def _translate(e: Exception, what: str) -> Exception:
    """Map a client exception onto the drain error taxonomy"""
    if isinstance(e, ApiException):
        if e.status in (401, 403):
            return Forbidden(f"{what}: {e.status} {e.reason}")
        return TransportError(f"{what}: {e.status} {e.reason}", status=e.status or 0)
    return TransportError(f"{what}: {e}")


class ResourceClient:
    """Thin wrapper over CoreV1Api/PolicyApi used by every drain component"""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.api_client = api_client or client.ApiClient()
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.policy = client.PolicyApi(self.api_client)

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def get_node(self, name: str) -> client.V1Node:
        try:
            return self.core_v1.read_node(name)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(name) from e
            raise _translate(e, f"get node {name}") from e
        except HTTPError as e:
            raise _translate(e, f"get node {name}") from e

    def patch_node_unschedulable(self, name: str, unschedulable: bool) -> client.V1Node:
        """Patch only spec.unschedulable, leaving every other node field alone"""
        body = {"spec": {"unschedulable": unschedulable}}
        try:
            return self.core_v1.patch_node(name, body)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(name) from e
            raise _translate(e, f"patch node {name}") from e
        except HTTPError as e:
            raise _translate(e, f"patch node {name}") from e

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def list_pods(self, node_name: str, label_selector: Optional[str] = None) -> List[client.V1Pod]:
        """List pods bound to a node using a server-side field selector"""
        kwargs = {"field_selector": f"spec.nodeName={node_name}"}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            return self.core_v1.list_pod_for_all_namespaces(**kwargs).items or []
        except (ApiException, HTTPError) as e:
            raise _translate(e, f"list pods on {node_name}") from e

    def get_core_api_resources(self) -> client.V1APIResourceList:
        try:
            return self.core_v1.get_api_resources()
        except (ApiException, HTTPError) as e:
            raise _translate(e, "discover core/v1 resources") from e

    def get_policy_group(self) -> Optional[client.V1APIGroup]:
        try:
            return self.policy.get_api_group()
        except ApiException as e:
            if e.status == 404:
                return None
            raise _translate(e, "discover policy group") from e
        except HTTPError as e:
            raise _translate(e, "discover policy group") from e

    def create_eviction(self, shape: EvictionAPIShape, namespace: str, name: str,
                        grace_period: Optional[int] = None) -> EvictionOutcome:
        body = client.V1Eviction(
            api_version=shape.api_version,
            kind="Eviction",
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        )
        if grace_period is not None:
            body.delete_options = client.V1DeleteOptions(grace_period_seconds=grace_period)
        try:
            self.core_v1.create_namespaced_pod_eviction(name=name, namespace=namespace, body=body)
            return EvictionOutcome.ACCEPTED
        except ApiException as e:
            if e.status == 429:
                logger.debug(f"Eviction of {namespace}/{name} refused by disruption budget: {e.reason}")
                return EvictionOutcome.CONFLICT
            if e.status == 404:
                # a missing pod is reported with its name; a missing subresource is not
                if _status_details(e).get("name") == name:
                    return EvictionOutcome.GONE
                return EvictionOutcome.UNSUPPORTED
            if e.status == 405:
                return EvictionOutcome.UNSUPPORTED
            if e.status in (401, 403):
                return EvictionOutcome.FORBIDDEN
            raise _translate(e, f"evict pod {namespace}/{name}") from e
        except HTTPError as e:
            raise _translate(e, f"evict pod {namespace}/{name}") from e

    def delete_pod(self, namespace: str, name: str, grace_period: Optional[int] = None) -> EvictionOutcome:
        try:
            self.core_v1.delete_namespaced_pod(name, namespace, grace_period_seconds=grace_period)
            return EvictionOutcome.ACCEPTED
        except ApiException as e:
            if e.status == 404:
                return EvictionOutcome.GONE
            if e.status in (401, 403):
                return EvictionOutcome.FORBIDDEN
            raise _translate(e, f"delete pod {namespace}/{name}") from e
        except HTTPError as e:
            raise _translate(e, f"delete pod {namespace}/{name}") from e

    def get_pod(self, namespace: str, name: str) -> Optional[client.V1Pod]:
        """Read a pod, returning None once it no longer exists"""
        try:
            return self.core_v1.read_namespaced_pod(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _translate(e, f"get pod {namespace}/{name}") from e
        except HTTPError as e:
            raise _translate(e, f"get pod {namespace}/{name}") from e
