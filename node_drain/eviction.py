from typing import Optional, Tuple

from kubernetes import client
from tenacity import Retrying, RetryCallState, retry_if_result, wait_exponential

from node_drain.client import EvictionAPIShape, EvictionOutcome, ResourceClient
from node_drain.errors import DrainTimeout, Forbidden, TransportError
from node_drain.filters import TERMINAL_PHASES
from node_drain.logger_config import setup_logger
from node_drain.session import (
    Deadline,
    DrainSession,
    FailureReason,
    OutcomeStatus,
    PodOutcome,
    pod_key,
)
from node_drain.settings import TERMINAL_PHASE_DELETE

logger = setup_logger(__name__)


def _stop_at(deadline: Deadline):
    def stop(retry_state: RetryCallState) -> bool:
        return deadline.expired()
    return stop


def _is_conflict(outcome: Optional[EvictionOutcome]) -> bool:
    return outcome is EvictionOutcome.CONFLICT


class EvictionDriver:
    """Removes a single pod and waits until it is really gone"""

    def __init__(self, resource_client: ResourceClient):
        self.client = resource_client

    def evict(self, pod: client.V1Pod, session: DrainSession) -> PodOutcome:
        """Evict a pod, retrying while a disruption budget blocks it"""
        key = pod_key(pod)
        shape = session.eviction_shape
        if session.config.disable_eviction or shape is None:
            return self._guarded(key, lambda: self._delete_and_wait(pod, session, attempts=0))
        return self._guarded(key, lambda: self._evict_and_wait(pod, shape, session))

    def force_delete(self, pod: client.V1Pod, session: DrainSession) -> PodOutcome:
        """
        Delete a pod immediately, bypassing disruption budgets. An explicit
        grace period still wins over the immediate (0s) default.
        """
        key = pod_key(pod)
        grace_period = session.config.grace_period
        if grace_period is None:
            grace_period = 0
        logger.warning(f"Force deleting pod {key} (grace period {grace_period}s)")
        return self._guarded(key, lambda: self._delete_and_wait(pod, session, attempts=0,
                                                                grace_period=grace_period))

    def _guarded(self, key: str, action) -> PodOutcome:
        try:
            return action()
        except DrainTimeout as e:
            logger.error(f"Timed out draining pod {key}: {e}")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.TIMEOUT, str(e))
        except Forbidden as e:
            logger.error(f"Not allowed to remove pod {key}: {e}")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.FORBIDDEN, str(e))
        except TransportError as e:
            logger.error(f"Failed to drain pod {key}: {e}")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.TRANSPORT, str(e))

    def _evict_and_wait(self, pod: client.V1Pod, shape: EvictionAPIShape,
                        session: DrainSession) -> PodOutcome:
        key = pod_key(pod)
        outcome, attempts = self._submit_eviction(pod, shape, session)

        if outcome is EvictionOutcome.ACCEPTED:
            logger.info(f"Eviction accepted for pod {key}")
            message = self._wait_for_removal(pod, session)
            return PodOutcome(key, OutcomeStatus.EVICTED, message=message, attempts=attempts)

        if outcome is EvictionOutcome.GONE:
            logger.info(f"Pod {key} already gone")
            return PodOutcome(key, OutcomeStatus.EVICTED, message="already gone", attempts=attempts)

        if outcome is EvictionOutcome.CONFLICT:
            message = f"disruption budget still blocking after {attempts} attempts"
            logger.error(f"Giving up on pod {key}: {message}")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.RETRY_EXHAUSTED, message, attempts)

        if outcome is EvictionOutcome.FORBIDDEN:
            logger.error(f"Eviction of pod {key} forbidden")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.FORBIDDEN,
                              "eviction forbidden", attempts)

        logger.warning(f"Eviction via {shape.api_version} unsupported, deleting pod {key} instead")
        return self._delete_and_wait(pod, session, attempts)

    def _submit_eviction(self, pod: client.V1Pod, shape: EvictionAPIShape,
                         session: DrainSession) -> Tuple[EvictionOutcome, int]:
        """
        Attempt -> wait -> retry until the eviction is no longer refused by a
        disruption budget or the session deadline passes. Returns the last
        outcome together with the number of attempts made.
        """
        key = pod_key(pod)
        namespace, name = pod.metadata.namespace, pod.metadata.name
        config = session.config
        deadline = session.deadline

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Eviction of pod {key} blocked by disruption budget, "
                f"retrying in {retry_state.next_action.sleep:.1f}s"
            )

        retrying = Retrying(
            retry=retry_if_result(_is_conflict),
            stop=_stop_at(deadline),
            wait=wait_exponential(multiplier=1, min=config.backoff_min, max=config.backoff_max),
            sleep=deadline.sleep,
            before_sleep=log_retry,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )

        outcome = None
        attempts = 0
        for attempt in retrying:
            with attempt:
                attempts += 1
                outcome = self.client.create_eviction(shape, namespace, name, config.grace_period)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(outcome)
        return outcome, attempts

    def _delete_and_wait(self, pod: client.V1Pod, session: DrainSession, attempts: int,
                         grace_period: Optional[int] = None) -> PodOutcome:
        key = pod_key(pod)
        if grace_period is None:
            grace_period = session.config.grace_period
        outcome = self.client.delete_pod(pod.metadata.namespace, pod.metadata.name, grace_period)
        if outcome is EvictionOutcome.FORBIDDEN:
            logger.error(f"Deletion of pod {key} forbidden")
            return PodOutcome(key, OutcomeStatus.FAILED, FailureReason.FORBIDDEN,
                              "delete forbidden", attempts)
        if outcome is EvictionOutcome.GONE:
            logger.info(f"Pod {key} already gone")
            return PodOutcome(key, OutcomeStatus.EVICTED, message="already gone", attempts=attempts)

        logger.info(f"Deleted pod {key}")
        message = self._wait_for_removal(pod, session)
        return PodOutcome(key, OutcomeStatus.EVICTED, message=message, attempts=attempts)

    def _wait_for_removal(self, pod: client.V1Pod, session: DrainSession) -> str:
        """Poll until the pod disappears; raises DrainTimeout at the deadline"""
        key = pod_key(pod)
        namespace, name = pod.metadata.namespace, pod.metadata.name
        uid = pod.metadata.uid
        deadline = session.deadline
        deleted_after_terminal = False

        while True:
            current = self.client.get_pod(namespace, name)
            if current is None:
                return "removed"
            if uid and current.metadata and current.metadata.uid != uid:
                # same name, new pod (e.g. a StatefulSet replacement)
                return "replaced"

            phase = current.status.phase if current.status else None
            if phase in TERMINAL_PHASES:
                if session.config.terminal_phase_policy != TERMINAL_PHASE_DELETE:
                    logger.info(f"Pod {key} reached phase {phase}")
                    return f"terminated ({phase})"
                if not deleted_after_terminal:
                    deleted_after_terminal = True
                    logger.info(f"Pod {key} reached phase {phase}, deleting it")
                    outcome = self.client.delete_pod(namespace, name, session.config.grace_period)
                    if outcome is EvictionOutcome.GONE:
                        return "removed"
                    if outcome is EvictionOutcome.FORBIDDEN:
                        raise Forbidden(f"delete of terminated pod {key} forbidden")

            if deadline.expired():
                raise DrainTimeout(f"pod {key} still present after {deadline.timeout:g}s")
            logger.debug(f"Waiting for pod {key} to be removed")
            deadline.sleep(session.config.poll_interval)
