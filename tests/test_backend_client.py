import json
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from src.config import BackendConfig
from src.domain.exceptions import (
    BackendAuthFailureException,
    BackendException,
    ServiceUnavailableException,
)
from src.domain.models import RawTextFallback, StructuredResult
from src.infrastructure.backend_client import BackendServiceAdapter, parse_backend_body


def _backend() -> BackendConfig:
    return BackendConfig(
        backend_id="analysis",
        url="https://llm.example/v1/chat/completions",
        api_key="secret",
        model="test-model",
        system_prompt="be terse",
    )


def _response(status: int, body: str = "") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=body)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _chat(content: str) -> str:
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


class TestParseBackendBody(unittest.TestCase):
    def test_chat_content_with_json_object_is_structured(self) -> None:
        result = parse_backend_body(_chat('{"patterns": ["gitops"]}'))

        self.assertIsInstance(result, StructuredResult)
        self.assertEqual(result.data, {"patterns": ["gitops"]})

    def test_fenced_json_is_unwrapped(self) -> None:
        result = parse_backend_body(_chat('```json\n{"trends": ["k3s"]}\n```'))

        self.assertIsInstance(result, StructuredResult)
        self.assertEqual(result.data["trends"], ["k3s"])

    def test_prose_content_falls_back_to_raw_text(self) -> None:
        result = parse_backend_body(_chat("The repository looks fine."))

        self.assertIsInstance(result, RawTextFallback)
        self.assertEqual(result.raw_text, "The repository looks fine.")

    def test_json_array_content_falls_back_to_raw_text(self) -> None:
        result = parse_backend_body(_chat('["a", "b"]'))

        self.assertIsInstance(result, RawTextFallback)

    def test_non_json_body_falls_back_to_raw_text(self) -> None:
        result = parse_backend_body("<html>gateway</html>")

        self.assertIsInstance(result, RawTextFallback)
        self.assertEqual(result.raw_text, "<html>gateway</html>")

    def test_plain_json_object_body_is_structured(self) -> None:
        result = parse_backend_body('{"risks": []}')

        self.assertIsInstance(result, StructuredResult)
        self.assertEqual(result.data, {"risks": []})


class TestBackendServiceAdapter(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.adapter = BackendServiceAdapter({"analysis": _backend()}, max_retries=2)

    async def test_invoke_sends_bearer_credential_and_prompt(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(return_value=_response(200, _chat('{"ok": true}')))

        result = await self.adapter.invoke(session, "analysis", "describe the repo")

        self.assertEqual(result, StructuredResult(data={"ok": True}))
        _, kwargs = session.post.call_args
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["json"]["model"], "test-model")
        self.assertEqual(kwargs["json"]["messages"][1], {"role": "user", "content": "describe the repo"})

    async def test_server_error_is_retried_then_succeeds(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(side_effect=[_response(503), _response(200, _chat('{"a": 1}'))])

        with patch("src.infrastructure.backend_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await self.adapter.invoke(session, "analysis", "p")

        self.assertEqual(result.data, {"a": 1})
        self.assertEqual(session.post.call_count, 2)
        mock_sleep.assert_awaited_once()

    async def test_persistent_server_error_raises_service_unavailable(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(side_effect=[_response(500), _response(500), _response(500)])

        with patch("src.infrastructure.backend_client.asyncio.sleep", new_callable=AsyncMock):
            with self.assertRaises(ServiceUnavailableException) as ctx:
                await self.adapter.invoke(session, "analysis", "p")

        self.assertEqual(ctx.exception.backend_id, "analysis")
        self.assertEqual(ctx.exception.status_code, 500)
        # One initial attempt plus two retries, never more.
        self.assertEqual(session.post.call_count, 3)

    async def test_auth_failure_is_not_retried(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(side_effect=[_response(401)])

        with self.assertRaises(BackendAuthFailureException) as ctx:
            await self.adapter.invoke(session, "analysis", "p")

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(session.post.call_count, 1)

    async def test_client_error_status_is_not_retried(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(side_effect=[_response(400)])

        with self.assertRaises(ServiceUnavailableException) as ctx:
            await self.adapter.invoke(session, "analysis", "p")

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(session.post.call_count, 1)

    async def test_transport_errors_exhaust_retry_budget(self) -> None:
        session = AsyncMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))

        with patch("src.infrastructure.backend_client.asyncio.sleep", new_callable=AsyncMock):
            with self.assertRaises(ServiceUnavailableException) as ctx:
                await self.adapter.invoke(session, "analysis", "p")

        self.assertIsNone(ctx.exception.status_code)
        self.assertEqual(session.post.call_count, 3)

    async def test_unknown_backend_raises(self) -> None:
        session = AsyncMock()

        with self.assertRaises(BackendException):
            await self.adapter.invoke(session, "nope", "p")
