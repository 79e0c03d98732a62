import asyncio
import logging

import aiohttp

from src.application.repository_analyzer import DEFAULT_TASK_TIMEOUT, RepositoryAnalyzer
from src.domain.models import (
    AnalysisResult,
    FleetPartition,
    FleetRegistry,
    RepositoryDescriptor,
    RepositoryFailure,
)

logger = logging.getLogger(__name__)


class FleetOrchestrator:
    """
    Analyzes every repository of the registry concurrently.

    A repository that fails (or exceeds the per-repository timeout) is listed
    in the failure partition; it never cancels or delays its siblings.
    """

    def __init__(
        self,
        registry: FleetRegistry,
        analyzer: RepositoryAnalyzer,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
    ):
        self.registry = registry
        self.analyzer = analyzer
        self.task_timeout = task_timeout

    async def _analyze_one(
        self, session: aiohttp.ClientSession, descriptor: RepositoryDescriptor
    ) -> AnalysisResult:
        return await asyncio.wait_for(
            self.analyzer.analyze(session, descriptor), timeout=self.task_timeout
        )

    async def run(self, session: aiohttp.ClientSession) -> FleetPartition:
        descriptors = self.registry.descriptors()
        logger.info(f"Analyzing {len(descriptors)} repositories.")

        results = await asyncio.gather(
            *(self._analyze_one(session, descriptor) for descriptor in descriptors),
            return_exceptions=True,
        )

        successful = []
        failed = []
        # gather preserves input order, so results line up with descriptors.
        for descriptor, result in zip(descriptors, results):
            if isinstance(result, asyncio.TimeoutError):
                message = f"Analysis timed out after {self.task_timeout}s."
                logger.error(f"[{descriptor.name}] {message}")
                failed.append(RepositoryFailure(name=descriptor.name, error_message=message))
            elif isinstance(result, BaseException):
                logger.error(f"[{descriptor.name}] Analysis failed: {result}")
                failed.append(RepositoryFailure(name=descriptor.name, error_message=str(result) or type(result).__name__))
            else:
                successful.append(result)

        logger.info(f"Fleet analysis finished: {len(successful)} succeeded, {len(failed)} failed.")
        return FleetPartition(successful=successful, failed=failed)
