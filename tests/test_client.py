import json
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import ProtocolError

from node_drain.client import EvictionAPIShape, EvictionOutcome, ResourceClient
from node_drain.errors import Forbidden, NodeNotFound, TransportError


def api_error(status: int, details=None) -> ApiException:
    e = ApiException(status=status, reason="error")
    e.body = json.dumps({"kind": "Status", "code": status, "details": details or {}})
    return e


@pytest.fixture
def resource_client():
    rc = ResourceClient(client.ApiClient(client.Configuration()))
    rc.core_v1 = MagicMock()
    rc.policy = MagicMock()
    return rc


def test_create_eviction_body(resource_client):
    shape = EvictionAPIShape("policy", "v1beta1")

    outcome = resource_client.create_eviction(shape, "shop", "web", grace_period=10)

    assert outcome is EvictionOutcome.ACCEPTED
    kwargs = resource_client.core_v1.create_namespaced_pod_eviction.call_args.kwargs
    assert kwargs["name"] == "web"
    assert kwargs["namespace"] == "shop"
    assert kwargs["body"].api_version == "policy/v1beta1"
    assert kwargs["body"].delete_options.grace_period_seconds == 10


def test_create_eviction_without_grace_period(resource_client):
    resource_client.create_eviction(EvictionAPIShape("policy", "v1"), "shop", "web")

    body = resource_client.core_v1.create_namespaced_pod_eviction.call_args.kwargs["body"]
    assert body.delete_options is None


@pytest.mark.parametrize("error, expected", [
    (api_error(429), EvictionOutcome.CONFLICT),
    (api_error(404, {"name": "web", "kind": "pods"}), EvictionOutcome.GONE),
    (api_error(404), EvictionOutcome.UNSUPPORTED),
    (api_error(405), EvictionOutcome.UNSUPPORTED),
    (api_error(403), EvictionOutcome.FORBIDDEN),
])
def test_create_eviction_outcomes(resource_client, error, expected):
    resource_client.core_v1.create_namespaced_pod_eviction.side_effect = error

    assert resource_client.create_eviction(EvictionAPIShape("policy", "v1"), "shop", "web") is expected


def test_unparseable_404_is_unsupported(resource_client):
    error = ApiException(status=404, reason="Not Found")
    error.body = b"404 page not found"
    resource_client.core_v1.create_namespaced_pod_eviction.side_effect = error

    outcome = resource_client.create_eviction(EvictionAPIShape("policy", "v1"), "shop", "web")

    assert outcome is EvictionOutcome.UNSUPPORTED


@pytest.mark.parametrize("error", [api_error(500), ProtocolError("connection aborted")])
def test_create_eviction_transport_errors(resource_client, error):
    resource_client.core_v1.create_namespaced_pod_eviction.side_effect = error

    with pytest.raises(TransportError):
        resource_client.create_eviction(EvictionAPIShape("policy", "v1"), "shop", "web")


def test_delete_pod(resource_client):
    assert resource_client.delete_pod("shop", "web", 0) is EvictionOutcome.ACCEPTED
    resource_client.core_v1.delete_namespaced_pod.assert_called_once_with("web", "shop", grace_period_seconds=0)

    resource_client.core_v1.delete_namespaced_pod.side_effect = api_error(404)
    assert resource_client.delete_pod("shop", "web") is EvictionOutcome.GONE


def test_get_pod_returns_none_when_missing(resource_client):
    resource_client.core_v1.read_namespaced_pod.side_effect = api_error(404)
    assert resource_client.get_pod("shop", "web") is None


def test_patch_node_body_and_errors(resource_client):
    resource_client.patch_node_unschedulable("node1", True)
    resource_client.core_v1.patch_node.assert_called_once_with("node1", {"spec": {"unschedulable": True}})

    resource_client.core_v1.patch_node.side_effect = api_error(404)
    with pytest.raises(NodeNotFound):
        resource_client.patch_node_unschedulable("node1", True)

    resource_client.core_v1.patch_node.side_effect = api_error(403)
    with pytest.raises(Forbidden):
        resource_client.patch_node_unschedulable("node1", True)


def test_list_pods_selectors(resource_client):
    resource_client.core_v1.list_pod_for_all_namespaces.return_value = client.V1PodList(items=[])

    assert resource_client.list_pods("node1", label_selector="app=web") == []
    resource_client.core_v1.list_pod_for_all_namespaces.assert_called_once_with(
        field_selector="spec.nodeName=node1", label_selector="app=web",
    )


def test_list_pods_forbidden_is_not_retried(resource_client):
    resource_client.core_v1.list_pod_for_all_namespaces.side_effect = api_error(403)

    with pytest.raises(Forbidden):
        resource_client.list_pods("node1")
    assert resource_client.core_v1.list_pod_for_all_namespaces.call_count == 1


def test_list_pods_retries_transport_errors(resource_client, monkeypatch):
    monkeypatch.setattr("time.sleep", lambda seconds: None)
    resource_client.core_v1.list_pod_for_all_namespaces.side_effect = [
        api_error(503), client.V1PodList(items=[]),
    ]

    assert resource_client.list_pods("node1") == []
    assert resource_client.core_v1.list_pod_for_all_namespaces.call_count == 2


def test_get_node_not_found(resource_client):
    resource_client.core_v1.read_node.side_effect = api_error(404)
    with pytest.raises(NodeNotFound):
        resource_client.get_node("ghost")
