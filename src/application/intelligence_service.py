import asyncio
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

import aiohttp

from src.application.change_applier import ChangeApplier, idempotency_key
from src.application.consolidation import ConsolidationSynthesizer
from src.application.fleet_orchestrator import FleetOrchestrator
from src.application.opportunities import select_opportunities
from src.application.repository_analyzer import DEFAULT_TASK_TIMEOUT
from src.domain.exceptions import AnalysisUnavailableException
from src.domain.models import (
    AnalysisResult,
    FleetAnalysis,
    FleetRegistry,
    Opportunity,
    PullRequestRecord,
    RemediationEntry,
    RemediationFailure,
    RemediationReport,
    RepositoryDescriptor,
)

logger = logging.getLogger(__name__)

# Limit concurrent connections so a fleet-wide fan-out stays polite to the APIs
CONNECTOR_LIMIT = 20
# Most recent idempotency keys remembered for duplicate suppression
APPLIED_KEY_CAPACITY = 1024

RepositoryOutcome = Tuple[List[RemediationEntry], List[RemediationEntry], List[RemediationFailure]]


def new_run_id() -> str:
    """UTC timestamp with microseconds plus a random suffix, e.g. 20260101120000123456-1a2b3c4d."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"{timestamp}-{uuid.uuid4().hex[:8]}"


class IntelligenceService:
    """
    Service responsible for the two pipeline entry points:

    - analyze: fan out over the fleet, synthesize a consolidation plan and
      persist the run in the background.
    - remediate: select opportunities from an analysis and apply them as
      pull requests, one repository per concurrent task.
    """

    def __init__(
            self,
            registry: FleetRegistry,
            orchestrator: FleetOrchestrator,
            synthesizer: ConsolidationSynthesizer,
            change_applier: ChangeApplier,
            result_store,
            task_timeout: float = DEFAULT_TASK_TIMEOUT,
            applied_capacity: int = APPLIED_KEY_CAPACITY,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.synthesizer = synthesizer
        self.change_applier = change_applier
        self.result_store = result_store
        self.task_timeout = task_timeout
        self.applied_capacity = applied_capacity
        self._applied: "OrderedDict[str, PullRequestRecord]" = OrderedDict()
        self._background_tasks: Set[asyncio.Task] = set()

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT))

    async def analyze(self) -> FleetAnalysis:
        async with self._session() as session:
            partition = await self.orchestrator.run(session)
            plan = await self.synthesizer.synthesize(session, partition.successful)

        if plan.degraded:
            logger.warning("Consolidation plan is degraded: synthesis failed, returning empty plan.")

        analysis = FleetAnalysis(
            total_repositories=len(self.registry),
            successful=partition.successful,
            failed=partition.failed,
            consolidation_plan=plan,
        )
        self._schedule_store(analysis)
        return analysis

    def _schedule_store(self, analysis: FleetAnalysis) -> None:
        task = asyncio.create_task(self._store(analysis))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _store(self, analysis: FleetAnalysis) -> None:
        try:
            await self.result_store.store(analysis)
            logger.info("Stored fleet analysis.")
        except Exception:
            # Persistence is best effort; the analysis has already been returned.
            logger.exception("Failed to store fleet analysis results.")

    async def drain(self) -> None:
        """Waits for pending background writes."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def remediate(
        self,
        analysis: Optional[FleetAnalysis] = None,
        run_id: Optional[str] = None,
    ) -> RemediationReport:
        """
        Applies up to two opportunities per analyzed registry repository.

        Raises:
            AnalysisUnavailableException: if no analysis is supplied or stored.
        """
        if analysis is None:
            analysis = await self.result_store.load_latest()
            if analysis is None:
                raise AnalysisUnavailableException()

        run_id = run_id or new_run_id()
        work: List[Tuple[RepositoryDescriptor, AnalysisResult, List[Opportunity]]] = []
        for descriptor in self.registry.descriptors():
            result = analysis.get(descriptor.name)
            if result is None:
                continue
            work.append((descriptor, result, select_opportunities(result)))

        logger.info(
            f"Remediation run {run_id}: {sum(len(opps) for _, _, opps in work)} "
            f"opportunities across {len(work)} repositories."
        )

        async with self._session() as session:
            outcomes = await asyncio.gather(
                *(self._remediate_repository(session, d, r, opps, run_id) for d, r, opps in work),
                return_exceptions=True,
            )

        created: List[RemediationEntry] = []
        suppressed: List[RemediationEntry] = []
        failed: List[RemediationFailure] = []
        for (descriptor, _, _), outcome in zip(work, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[{descriptor.name}] Remediation failed: {outcome}")
                failed.append(RemediationFailure(repository=descriptor.name, error=str(outcome)))
                continue
            created.extend(outcome[0])
            suppressed.extend(outcome[1])
            failed.extend(outcome[2])

        logger.info(
            f"Remediation run {run_id} finished: {len(created)} PRs, "
            f"{len(suppressed)} suppressed, {len(failed)} failed."
        )
        return RemediationReport(
            run_id=run_id,
            repositories_considered=len(work),
            opportunities_selected=sum(len(opps) for _, _, opps in work),
            pull_requests=created,
            suppressed=suppressed,
            failed=failed,
        )

    async def _remediate_repository(
        self,
        session: aiohttp.ClientSession,
        descriptor: RepositoryDescriptor,
        analysis: AnalysisResult,
        opportunities: List[Opportunity],
        run_id: str,
    ) -> RepositoryOutcome:
        """Applies a repository's opportunities one after another."""
        created: List[RemediationEntry] = []
        suppressed: List[RemediationEntry] = []
        failed: List[RemediationFailure] = []

        for opportunity in opportunities:
            key = idempotency_key(descriptor.name, opportunity.kind, run_id)
            if key in self._applied:
                logger.info(f"[{descriptor.name}] Skipping {key}: already applied.")
                suppressed.append(RemediationEntry(
                    repository=descriptor.name, idempotency_key=key, pull_request=self._applied[key],
                ))
                continue

            try:
                record = await asyncio.wait_for(
                    self.change_applier.apply(session, descriptor, opportunity, analysis, run_id),
                    timeout=self.task_timeout,
                )
            except asyncio.TimeoutError:
                message = f"Change application timed out after {self.task_timeout}s."
                logger.error(f"[{descriptor.name}] {opportunity.kind.value}: {message}")
                failed.append(RemediationFailure(
                    repository=descriptor.name, opportunity=opportunity.kind, error=message,
                ))
                continue
            except Exception as e:
                logger.error(f"[{descriptor.name}] Failed to apply {opportunity.kind.value}: {e}")
                failed.append(RemediationFailure(
                    repository=descriptor.name, opportunity=opportunity.kind, error=str(e),
                ))
                continue

            self._remember(key, record)
            created.append(RemediationEntry(
                repository=descriptor.name, idempotency_key=key, pull_request=record,
            ))

        return created, suppressed, failed

    def _remember(self, key: str, record: PullRequestRecord) -> None:
        self._applied[key] = record
        self._applied.move_to_end(key)
        while len(self._applied) > self.applied_capacity:
            self._applied.popitem(last=False)
