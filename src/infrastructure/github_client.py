import aiohttp
import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from src.domain.exceptions import (
    HostUnreachableException,
    RefAlreadyExistsException,
    ResourceNotFoundException,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)


class GitHubRestClient:
    """
    Client for the GitHub REST API operations the remediation pipeline needs:
    repository metadata, branches, file contents, pull requests and labels.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        api_url: str = "https://api.github.com",
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "fleet-intelligence/1.0",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.owner = owner
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout or REQUEST_TIMEOUT

    def _repo_path(self, repo: str) -> str:
        return f"/repos/{self.owner}/{repo}"

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        path: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.api_url}{path}"
        try:
            async with session.request(
                method, url, json=json, params=params, headers=self.headers, timeout=self.timeout
            ) as response:
                if 200 <= response.status < 300:
                    return await response.json(content_type=None)

                try:
                    data = await response.json(content_type=None)
                    message = data.get("message", "") if isinstance(data, dict) else ""
                except (ValueError, aiohttp.ClientError):
                    message = ""
                raise HostUnreachableException(operation, response.status, message)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise HostUnreachableException(operation, None, repr(e)) from e

    async def get_repository(self, session: aiohttp.ClientSession, repo: str) -> Dict[str, Any]:
        return await self._request(session, "GET", self._repo_path(repo), "get_repository")

    async def get_default_branch(self, session: aiohttp.ClientSession, repo: str) -> Tuple[str, str]:
        """
        Resolves the default branch and its tip commit.

        Returns:
            Tuple of (branch_name, commit_sha).
        """
        repository = await self.get_repository(session, repo)
        branch_name = repository.get("default_branch", "main")
        branch = await self._request(
            session, "GET", f"{self._repo_path(repo)}/branches/{quote(branch_name, safe='')}", "get_branch"
        )
        return branch_name, branch["commit"]["sha"]

    async def create_branch(
        self, session: aiohttp.ClientSession, repo: str, branch: str, sha: str
    ) -> Dict[str, Any]:
        ref = f"refs/heads/{branch}"
        try:
            return await self._request(
                session, "POST", f"{self._repo_path(repo)}/git/refs", "create_ref",
                json={"ref": ref, "sha": sha},
            )
        except HostUnreachableException as e:
            if e.status_code == 422:
                raise RefAlreadyExistsException(ref) from e
            raise

    async def get_file(
        self, session: aiohttp.ClientSession, repo: str, path: str, ref: str
    ) -> Dict[str, Any]:
        """
        Reads a file's metadata at a ref.

        Raises:
            ResourceNotFoundException: if no file exists at that path.
        """
        try:
            return await self._request(
                session, "GET", f"{self._repo_path(repo)}/contents/{quote(path)}", "get_content",
                params={"ref": ref},
            )
        except HostUnreachableException as e:
            if e.status_code == 404:
                raise ResourceNotFoundException(path, ref) from e
            raise

    async def put_file(
        self,
        session: aiohttp.ClientSession,
        repo: str,
        path: str,
        content: str,
        branch: str,
        message: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Creates a file, or updates it when the current blob sha is supplied."""
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        return await self._request(
            session, "PUT", f"{self._repo_path(repo)}/contents/{quote(path)}", "put_content",
            json=payload,
        )

    async def create_pull_request(
        self,
        session: aiohttp.ClientSession,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> Dict[str, Any]:
        return await self._request(
            session, "POST", f"{self._repo_path(repo)}/pulls", "create_pull_request",
            json={"title": title, "body": body, "head": head, "base": base, "draft": False},
        )

    async def add_labels(
        self, session: aiohttp.ClientSession, repo: str, number: int, labels: List[str]
    ) -> List[Dict[str, Any]]:
        return await self._request(
            session, "POST", f"{self._repo_path(repo)}/issues/{number}/labels", "add_labels",
            json={"labels": labels},
        )
