"""Errors raised while draining a node"""


class DrainError(Exception):
    """Base class for every drain failure"""


class NodeNotFound(DrainError):
    """The target node does not exist"""

    def __init__(self, node_name: str):
        super().__init__(f"node {node_name} not found")
        self.node_name = node_name


class Forbidden(DrainError):
    """The API server refused the request (401/403)"""


class TransportError(DrainError):
    """Network failure or unexpected HTTP status from the API server"""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class DrainTimeout(DrainError):
    """The session deadline passed while a pod was still present"""
