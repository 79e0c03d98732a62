import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

import aiohttp

from src.config import ANALYSIS_BACKEND, RESEARCH_BACKEND
from src.domain.models import (
    AnalysisResult,
    ArchitectureFinding,
    CommunityFinding,
    HostMetadata,
    RepositoryDescriptor,
    SecurityFinding,
)
from src.infrastructure.acl import BackendTranslator, GitHubTranslator
from src.infrastructure.backend_client import BackendServiceAdapter
from src.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TASK_TIMEOUT = 180.0

ARCHITECTURE_PROMPT = """Analyze this homelab repository architecture:

Repository: {name}
Language: {language}
Description: {description}
Size: {size}KB

Provide:
1. Architecture patterns used
2. Infrastructure-as-code approach
3. Integration opportunities
4. Optimization recommendations
5. Duplication risks with other homelab repos

Respond with a JSON object with the keys patterns, iac_approach, integrations,
optimizations and duplication_risk (one of low, medium, high)."""

SECURITY_PROMPT = """Security analysis for homelab repository:

Repository: {name}
Visibility: {visibility}
Has Issues: {has_issues}
Default Branch: {default_branch}

Analyze:
1. Secret management approach
2. Access control patterns
3. Vulnerability exposure
4. Compliance posture
5. Security recommendations

Respond with a JSON object with the keys secrets_management, access_control,
vulnerabilities, compliance_score (0-100) and recommendations."""

COMMUNITY_QUERY = (
    "Latest homelab trends for {name} infrastructure patterns ({kind}, {language}), "
    "awesome-homelab community discussions, Reddit r/homelab insights. "
    "Respond with a JSON object with the keys trends, discussions, similar_projects "
    "and recommendations."
)


class RepositoryAnalyzer:
    """
    Runs the architecture, security and community analyses for one repository.

    The host metadata fetch comes first and its failure propagates to the
    caller. The three sub-analyses then run concurrently; any of them that
    fails or times out contributes None instead of a finding.
    """

    def __init__(
        self,
        github_client: GitHubRestClient,
        backend_adapter: BackendServiceAdapter,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
    ):
        self.github_client = github_client
        self.backend_adapter = backend_adapter
        self.task_timeout = task_timeout

    async def analyze(
        self, session: aiohttp.ClientSession, descriptor: RepositoryDescriptor
    ) -> AnalysisResult:
        raw_repo = await self.github_client.get_repository(session, descriptor.name)
        metadata = GitHubTranslator.to_metadata(raw_repo)

        architecture, security, community = await asyncio.gather(
            self._settle(descriptor.name, "architecture", self._analyze_architecture(session, metadata)),
            self._settle(descriptor.name, "security", self._analyze_security(session, metadata)),
            self._settle(descriptor.name, "community", self._analyze_community(session, descriptor)),
        )

        return AnalysisResult(
            name=descriptor.name,
            host_metadata=metadata,
            architecture=architecture,
            security=security,
            community=community,
        )

    async def _settle(self, repo_name: str, kind: str, coro: Awaitable[T]) -> Optional[T]:
        try:
            return await asyncio.wait_for(coro, timeout=self.task_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{repo_name}] {kind} analysis timed out after {self.task_timeout}s.")
        except Exception as e:
            logger.warning(f"[{repo_name}] {kind} analysis failed: {e}")
        return None

    async def _analyze_architecture(
        self, session: aiohttp.ClientSession, metadata: HostMetadata
    ) -> ArchitectureFinding:
        prompt = ARCHITECTURE_PROMPT.format(
            name=metadata.name,
            language=metadata.language or "unknown",
            description=metadata.description or "n/a",
            size=metadata.size,
        )
        result = await self.backend_adapter.invoke(session, ANALYSIS_BACKEND, prompt)
        return BackendTranslator.to_architecture(result)

    async def _analyze_security(
        self, session: aiohttp.ClientSession, metadata: HostMetadata
    ) -> SecurityFinding:
        prompt = SECURITY_PROMPT.format(
            name=metadata.name,
            visibility="Private" if metadata.private else "Public",
            has_issues=metadata.has_issues,
            default_branch=metadata.default_branch,
        )
        result = await self.backend_adapter.invoke(session, ANALYSIS_BACKEND, prompt)
        return BackendTranslator.to_security(result)

    async def _analyze_community(
        self, session: aiohttp.ClientSession, descriptor: RepositoryDescriptor
    ) -> CommunityFinding:
        query = COMMUNITY_QUERY.format(
            name=descriptor.name, kind=descriptor.kind, language=descriptor.primary_language
        )
        result = await self.backend_adapter.invoke(session, RESEARCH_BACKEND, query)
        return BackendTranslator.to_community(result)
