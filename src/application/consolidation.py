import asyncio
import logging
from typing import List

import aiohttp

from src.config import ANALYSIS_BACKEND
from src.domain.models import AnalysisResult, ConsolidationPlan
from src.infrastructure.acl import BackendTranslator
from src.infrastructure.backend_client import BackendServiceAdapter

logger = logging.getLogger(__name__)

CONSOLIDATION_PROMPT = """Analyze these homelab repositories for consolidation opportunities:

{summaries}

Generate:
1. Duplicate functionality identification
2. Consolidation recommendations
3. Migration strategies
4. Risk assessment
5. Priority ranking

Respond with a JSON object whose keys duplications, consolidations, migrations,
risks, priorities and optimizations each hold a list of strings."""


def summarize(results: List[AnalysisResult]) -> str:
    return "\n".join(
        f"- {r.name}: {r.host_metadata.description or 'n/a'} ({r.host_metadata.language or 'unknown'})"
        for r in results
    )


class ConsolidationSynthesizer:
    """Turns the fleet's successful analyses into one consolidation plan."""

    def __init__(self, backend_adapter: BackendServiceAdapter, timeout: float = 180.0):
        self.backend_adapter = backend_adapter
        self.timeout = timeout

    async def synthesize(
        self, session: aiohttp.ClientSession, results: List[AnalysisResult]
    ) -> ConsolidationPlan:
        """
        Never raises: a failed synthesis yields an empty plan flagged as degraded.
        """
        if not results:
            logger.info("No successful analyses to consolidate.")
            return ConsolidationPlan()

        prompt = CONSOLIDATION_PROMPT.format(summaries=summarize(results))
        try:
            answer = await asyncio.wait_for(
                self.backend_adapter.invoke(session, ANALYSIS_BACKEND, prompt), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Consolidation planning timed out after {self.timeout}s.")
            return ConsolidationPlan(degraded=True)
        except Exception as e:
            logger.error(f"Consolidation planning failed: {e}")
            return ConsolidationPlan(degraded=True)

        return BackendTranslator.to_plan(answer)
