import base64
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from src.domain.exceptions import (
    HostUnreachableException,
    RefAlreadyExistsException,
    ResourceNotFoundException,
)
from src.infrastructure.github_client import GitHubRestClient


def _response(status: int, payload=None) -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload if payload is not None else {})
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


class TestGitHubRestClientHeaders(unittest.TestCase):
    def test_headers_are_dict(self) -> None:
        token = "test-token"
        client = GitHubRestClient(token=token, owner="edcet")

        self.assertIsInstance(client.headers, dict)
        self.assertEqual(client.headers["Authorization"], f"Bearer {token}")

    def test_headers_include_user_agent(self) -> None:
        client = GitHubRestClient(token="t", owner="edcet")
        self.assertIn("User-Agent", client.headers)
        self.assertIn("Accept", client.headers)


class TestGitHubRestClient(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = GitHubRestClient(token="t", owner="edcet", api_url="https://gh.example/")

    async def test_get_default_branch_resolves_tip_commit(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(side_effect=[
            _response(200, {"name": "homeops", "default_branch": "trunk"}),
            _response(200, {"name": "trunk", "commit": {"sha": "abc123"}}),
        ])

        branch, sha = await self.client.get_default_branch(session, "homeops")

        self.assertEqual((branch, sha), ("trunk", "abc123"))
        method, url = session.request.call_args_list[1].args
        self.assertEqual(method, "GET")
        self.assertEqual(url, "https://gh.example/repos/edcet/homeops/branches/trunk")

    async def test_get_file_not_found_raises_resource_not_found(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(return_value=_response(404, {"message": "Not Found"}))

        with self.assertRaises(ResourceNotFoundException) as ctx:
            await self.client.get_file(session, "homeops", ".github/workflows/ci.yml", "feature")

        self.assertEqual(ctx.exception.path, ".github/workflows/ci.yml")
        self.assertEqual(session.request.call_args.kwargs["params"], {"ref": "feature"})

    async def test_create_branch_collision_raises_ref_already_exists(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(return_value=_response(422, {"message": "Reference already exists"}))

        with self.assertRaises(RefAlreadyExistsException) as ctx:
            await self.client.create_branch(session, "homeops", "intelligence/x", "abc")

        self.assertEqual(ctx.exception.ref, "refs/heads/intelligence/x")

    async def test_put_file_encodes_content_and_passes_sha_for_updates(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(return_value=_response(200, {"content": {"sha": "new"}}))

        await self.client.put_file(
            session, "homeops", "a.txt", "hello", "feature", message="Update a.txt", sha="old",
        )

        payload = session.request.call_args.kwargs["json"]
        self.assertEqual(base64.b64decode(payload["content"]).decode(), "hello")
        self.assertEqual(payload["sha"], "old")
        self.assertEqual(payload["branch"], "feature")

    async def test_put_file_without_sha_omits_identity_token(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(return_value=_response(201, {"content": {"sha": "new"}}))

        await self.client.put_file(session, "homeops", "a.txt", "hello", "feature", message="Create a.txt")

        self.assertNotIn("sha", session.request.call_args.kwargs["json"])

    async def test_server_error_raises_host_unreachable(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(return_value=_response(502, {"message": "Bad gateway"}))

        with self.assertRaises(HostUnreachableException) as ctx:
            await self.client.get_repository(session, "homeops")

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.operation, "get_repository")

    async def test_transport_error_raises_host_unreachable(self) -> None:
        session = AsyncMock()
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with self.assertRaises(HostUnreachableException) as ctx:
            await self.client.create_pull_request(session, "homeops", "t", "b", "head", "main")

        self.assertIsNone(ctx.exception.status_code)
