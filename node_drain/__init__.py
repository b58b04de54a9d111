from node_drain.client import EvictionAPIShape, EvictionOutcome, ResourceClient
from node_drain.drain import DrainController
from node_drain.errors import DrainError, DrainTimeout, Forbidden, NodeNotFound, TransportError
from node_drain.session import DrainResult, FailureReason, OutcomeStatus, PodOutcome, SkipReason
from node_drain.settings import DrainConfig

__version__ = "0.1.0"
