import logging
from typing import List

import aiohttp

from src.application.templates import generate_files, pr_body, pr_title
from src.domain.exceptions import ResourceNotFoundException
from src.domain.models import (
    AnalysisResult,
    GeneratedFile,
    Opportunity,
    OpportunityKind,
    PullRequestRecord,
    RepositoryDescriptor,
)
from src.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "intelligence/optimize"
BASE_LABELS = ["intelligence", "automation"]


def idempotency_key(repository: str, kind: OpportunityKind, run_id: str) -> str:
    return f"{repository}:{kind.value}:{run_id}"


def branch_name(kind: OpportunityKind, run_id: str) -> str:
    return f"{BRANCH_PREFIX}-{kind.value}-{run_id}"


def labels_for(opportunity: Opportunity) -> List[str]:
    return BASE_LABELS + [opportunity.kind.value, f"priority-{opportunity.priority.value}"]


class ChangeApplier:
    """
    Materializes one opportunity on one repository: branch, files, pull
    request and labels, strictly in that order. Any host failure propagates
    and aborts this opportunity only.
    """

    def __init__(self, github_client: GitHubRestClient, webhook_url: str):
        self.github_client = github_client
        self.webhook_url = webhook_url

    async def write_file(
        self, session: aiohttp.ClientSession, repo: str, branch: str, file: GeneratedFile
    ) -> str:
        """
        Creates the file, or updates it in place when it already exists on the branch.

        Returns:
            "created" or "updated".
        """
        try:
            existing = await self.github_client.get_file(session, repo, file.path, branch)
        except ResourceNotFoundException:
            await self.github_client.put_file(
                session, repo, file.path, file.content, branch,
                message=f"Create {file.path} via intelligence automation",
            )
            return "created"

        await self.github_client.put_file(
            session, repo, file.path, file.content, branch,
            message=f"Update {file.path} via intelligence automation",
            sha=existing.get("sha"),
        )
        return "updated"

    async def apply(
        self,
        session: aiohttp.ClientSession,
        descriptor: RepositoryDescriptor,
        opportunity: Opportunity,
        analysis: AnalysisResult,
        run_id: str,
    ) -> PullRequestRecord:
        repo = descriptor.name
        kind = opportunity.kind

        base_branch, tip_sha = await self.github_client.get_default_branch(session, repo)

        head_branch = branch_name(kind, run_id)
        await self.github_client.create_branch(session, repo, head_branch, tip_sha)
        logger.info(f"[{repo}] Created branch {head_branch} from {base_branch}@{tip_sha[:7]}.")

        for file in generate_files(opportunity, analysis, descriptor, self.webhook_url):
            outcome = await self.write_file(session, repo, head_branch, file)
            logger.info(f"[{repo}] {outcome.capitalize()} {file.path} on {head_branch}.")

        title = pr_title(opportunity)
        pr = await self.github_client.create_pull_request(
            session, repo,
            title=title,
            body=pr_body(opportunity, analysis, descriptor),
            head=head_branch,
            base=base_branch,
        )
        number = pr["number"]

        await self.github_client.add_labels(session, repo, number, labels_for(opportunity))
        logger.info(f"[{repo}] Opened PR #{number} for {kind.value}.")

        return PullRequestRecord(number=number, url=pr.get("html_url", ""), title=title, kind=kind)
