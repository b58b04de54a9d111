"""
Drain orchestration.

Order of operations for one node:
1. Resolve which API serves evictions (skipped with --skip-discovery)
2. Cordon the node so nothing new lands on it
3. List and classify the pods bound to it
4. Evict or force delete each target pod on a bounded worker pool
5. Aggregate the per-pod outcomes

Only failures that make the drain impossible (missing node, no permission,
API unreachable while cordoning or listing) escape ``drain``; everything that
goes wrong with an individual pod ends up in the result instead.
"""
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from node_drain.client import ResourceClient
from node_drain.cordon import NodeCordoner
from node_drain.discovery import DiscoveryResolver
from node_drain.eviction import EvictionDriver
from node_drain.filters import ClassifiedPod, PodAction, PodFilter
from node_drain.logger_config import setup_logger
from node_drain.session import (
    Deadline,
    DrainResult,
    DrainSession,
    FailureReason,
    OutcomeStatus,
    PodOutcome,
    SkipReason,
)
from node_drain.settings import DrainConfig

logger = setup_logger(__name__)


class DrainController:
    """Main orchestrator for draining a single node"""

    def __init__(self, resource_client: ResourceClient,
                 clock: Callable[[], float] = time.monotonic,
                 sleeper: Callable[[float], None] = time.sleep):
        self.client = resource_client
        self.discovery = DiscoveryResolver(resource_client)
        self.cordoner = NodeCordoner(resource_client)
        self.pod_filter = PodFilter(resource_client)
        self.driver = EvictionDriver(resource_client)
        self._clock = clock
        self._sleeper = sleeper

    def new_session(self, node_name: str, config: DrainConfig) -> DrainSession:
        deadline = Deadline(config.timeout, clock=self._clock, sleeper=self._sleeper)
        return DrainSession(node_name=node_name, config=config, deadline=deadline)

    def drain(self, node_name: str, config: Optional[DrainConfig] = None) -> DrainResult:
        config = (config or DrainConfig()).validate()
        session = self.new_session(node_name, config)
        logger.info(f"Starting drain of node: {node_name}")

        if not config.disable_eviction:
            self.discovery.resolve(session)

        session.node = self.cordoner.cordon(node_name, dry_run=config.dry_run)

        targets = self.pod_filter.list_drain_targets(node_name, config)
        pending = []
        for target in targets:
            if target.action is PodAction.SKIP:
                session.outcomes.record(PodOutcome(target.key, OutcomeStatus.SKIPPED, target.skip_reason))
            elif config.dry_run:
                logger.info(f"[DRY-RUN] Would {target.action.value} pod {target.key}")
                session.outcomes.record(PodOutcome(target.key, OutcomeStatus.SKIPPED, SkipReason.DRY_RUN))
            else:
                pending.append(target)

        if pending:
            logger.info(f"Draining {len(pending)} pods from node: {node_name}")
            self._drain_pods(pending, session)

        result = DrainResult(node=session.node, outcomes=session.outcomes.snapshot())
        if result.ok:
            logger.info(
                f"Node {node_name} drained: {len(result.evicted)} evicted, {len(result.skipped)} skipped"
            )
        else:
            logger.error(
                f"Node {node_name} partially drained: {len(result.evicted)} evicted, "
                f"{len(result.skipped)} skipped, {len(result.failed)} failed"
            )
        return result

    def _drain_pod(self, target: ClassifiedPod, session: DrainSession) -> PodOutcome:
        if target.action is PodAction.FORCE_DELETE:
            return self.driver.force_delete(target.pod, session)
        return self.driver.evict(target.pod, session)

    def _drain_pods(self, targets: List[ClassifiedPod], session: DrainSession) -> None:
        workers = min(session.config.concurrency, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._drain_pod, target, session): target
                for target in targets
            }

            for future in as_completed(futures):
                target = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error(f"Exception draining pod {target.key}: {e}")
                    outcome = PodOutcome(target.key, OutcomeStatus.FAILED, FailureReason.ERROR, str(e))
                session.outcomes.record(outcome)
