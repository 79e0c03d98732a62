import aiohttp
import asyncio
import json
import logging
import random
import re
from typing import Dict, Optional

from src.config import BackendConfig
from src.domain.exceptions import (
    BackendAuthFailureException,
    BackendException,
    ServiceUnavailableException,
)
from src.domain.models import ParsedResult, RawTextFallback, StructuredResult

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
AUTH_FAILURE_STATUSES = {401, 403}
DEFAULT_MAX_RETRIES = 2
BACKOFF_BASE = 1.0

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def parse_content(content: str) -> ParsedResult:
    """Decodes model output into a JSON object, or keeps it as raw text."""
    try:
        decoded = json.loads(_strip_fences(content))
    except json.JSONDecodeError:
        return RawTextFallback(raw_text=content)
    if isinstance(decoded, dict):
        return StructuredResult(data=decoded)
    return RawTextFallback(raw_text=content)


def parse_backend_body(body: str) -> ParsedResult:
    """
    Normalizes a backend response body.

    Chat-completion envelopes are unwrapped to the first message's content;
    any other JSON object is taken as the structured result itself. Anything
    that does not decode into an object becomes a RawTextFallback.
    """
    try:
        envelope = json.loads(body)
    except json.JSONDecodeError:
        return RawTextFallback(raw_text=body)

    if isinstance(envelope, dict) and "choices" in envelope:
        try:
            content = envelope["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            return RawTextFallback(raw_text=body)
        return parse_content(content)

    if isinstance(envelope, dict):
        return StructuredResult(data=envelope)
    return RawTextFallback(raw_text=body)


class BackendServiceAdapter:
    """
    Uniform request -> parsed-result contract over every analysis/research backend.
    Transient failures (429, 5xx, transport errors) are retried a bounded number
    of times; everything else is surfaced as a typed exception.
    """

    def __init__(
        self,
        backends: Dict[str, BackendConfig],
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = 60,
    ):
        self.backends = backends
        self.max_retries = max_retries
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=min(10, timeout))

    def _headers(self, backend: BackendConfig) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {backend.api_key}",
            "Content-Type": "application/json",
            "User-Agent": "fleet-intelligence/1.0",
        }

    async def invoke(
        self,
        session: aiohttp.ClientSession,
        backend_id: str,
        prompt: str,
    ) -> ParsedResult:
        """
        Submits a prompt to a backend.

        Returns:
            StructuredResult when the answer decodes into a JSON object,
            RawTextFallback otherwise.

        Raises:
            BackendAuthFailureException: on 401/403.
            ServiceUnavailableException: on any other non-2xx status, or once
                the retry budget is exhausted.
        """
        backend = self.backends.get(backend_id)
        if backend is None:
            raise BackendException(backend_id, "Backend is not configured.")

        payload = {
            "model": backend.model,
            "messages": [
                {"role": "system", "content": backend.system_prompt},
                {"role": "user", "content": prompt},
            ],
        }
        attempts = self.max_retries + 1
        last_status: Optional[int] = None

        for attempt in range(attempts):
            try:
                async with session.post(
                    backend.url, json=payload, headers=self._headers(backend), timeout=self.timeout
                ) as response:
                    if response.status in AUTH_FAILURE_STATUSES:
                        raise BackendAuthFailureException(backend_id, response.status)

                    if response.status in RETRYABLE_STATUSES:
                        last_status = response.status
                        logger.warning(
                            f"Backend '{backend_id}' returned {response.status} "
                            f"(attempt {attempt + 1}/{attempts})."
                        )
                    elif not 200 <= response.status < 300:
                        raise ServiceUnavailableException(backend_id, response.status)
                    else:
                        body = await response.text()
                        return parse_backend_body(body)

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_status = None
                logger.warning(
                    f"Backend '{backend_id}' request failed (attempt {attempt + 1}/{attempts}): {e!r}"
                )

            if attempt + 1 < attempts:
                sleep_time = BACKOFF_BASE * (2 ** attempt) + random.uniform(0, 1)
                await asyncio.sleep(sleep_time)

        raise ServiceUnavailableException(backend_id, last_status)
