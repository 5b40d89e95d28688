from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import httpx

from app.application.services.version_metadata import VersionMetadata, parse_version_payload
from app.core.config import settings
from app.infrastructure.observability.metrics import record_probe_fallback

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "curl/8.5.0",
)
MINIMAL_USER_AGENT = "StatusPageProbe/1.0"

STAGE_PRIMARY = "primary"
STAGE_FALLBACK = "fallback"
STAGE_HEAD = "head"

_REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)
# httpx timeouts apply per phase; asyncio.timeout bounds the whole attempt.
_ATTEMPT_ERRORS = (*_REQUEST_ERRORS, TimeoutError)

ResponseCheck = Callable[[httpx.Response], bool]


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    status_code: int | None = None
    stage: str | None = None
    attempts: int = 0
    error: str | None = None


def _is_up(response: httpx.Response) -> bool:
    # 4xx answers still prove the endpoint is serving requests.
    return response.status_code < 500


def _is_success(response: httpx.Response) -> bool:
    return response.is_success


def _describe(exc: Exception) -> str:
    message = str(exc).strip()
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def _https_url(url: str) -> str:
    parsed = httpx.URL(url)
    if parsed.scheme == "https" and parsed.port in (None, 443):
        return str(parsed)
    return str(parsed.copy_with(scheme="https", port=None))


class ReachabilityProber:
    """Layered GET/HEAD probing that only reports a verdict, never raises.

    Order of attempts for one URL:
    1) up to ``max_attempts`` GETs on the primary transport, each with the next
       User-Agent from ``user_agents`` and ``backoff_seconds`` between tries
    2) one GET on a separate fallback transport against the HTTPS/443 form of the URL
    3) plain reachability only: one HEAD with a minimal identity header
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        timeout_seconds: float = 30.0,
        backoff_seconds: float = 2.0,
        head_timeout_seconds: float = 15.0,
        user_agents: Sequence[str] = DEFAULT_USER_AGENTS,
        primary_transport: httpx.AsyncBaseTransport | None = None,
        fallback_transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if not user_agents:
            raise ValueError("At least one user agent is required")
        self.max_attempts = max(1, int(max_attempts))
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds
        self.head_timeout_seconds = head_timeout_seconds
        self.user_agents = tuple(user_agents)
        self._primary_transport = primary_transport
        self._fallback_transport = fallback_transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, **overrides) -> ReachabilityProber:
        options = {
            "max_attempts": settings.probe_max_attempts,
            "timeout_seconds": settings.probe_timeout_seconds,
            "backoff_seconds": settings.probe_retry_backoff_seconds,
            "head_timeout_seconds": settings.probe_head_timeout_seconds,
        }
        options.update(overrides)
        return cls(**options)

    async def probe(self, url: str) -> ProbeResult:
        result, _ = await self._layered_get(url, accept=_is_up)
        if result.reachable:
            return result

        head_result = await self._head(url, attempts=result.attempts + 1)
        if head_result.reachable:
            return head_result
        logger.warning("probe_unreachable url=%s attempts=%s error=%s", url, head_result.attempts, head_result.error)
        return head_result

    async def fetch_metadata(self, url: str) -> VersionMetadata | None:
        result, response = await self._layered_get(url, accept=_is_success)
        if response is None:
            logger.warning("version_fetch_failed url=%s attempts=%s error=%s", url, result.attempts, result.error)
            return None

        metadata = parse_version_payload(response.content)
        if metadata is None:
            logger.warning("version_payload_unparseable url=%s status_code=%s", url, response.status_code)
        return metadata

    def _identity_headers(self, attempt: int) -> dict[str, str]:
        return {
            "User-Agent": self.user_agents[attempt % len(self.user_agents)],
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
        }

    def _client(self, *, timeout: float, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        options: dict = {"timeout": httpx.Timeout(timeout), "follow_redirects": True}
        if transport is not None:
            options["transport"] = transport
        return httpx.AsyncClient(**options)

    async def _layered_get(self, url: str, *, accept: ResponseCheck) -> tuple[ProbeResult, httpx.Response | None]:
        last_error: str | None = None
        last_status: int | None = None
        attempts = 0

        for attempt in range(self.max_attempts):
            attempts += 1
            try:
                async with asyncio.timeout(self.timeout_seconds):
                    async with self._client(timeout=self.timeout_seconds, transport=self._primary_transport) as client:
                        response = await client.get(url, headers=self._identity_headers(attempt))
            except _ATTEMPT_ERRORS as exc:
                last_error = _describe(exc)
                logger.info("probe_attempt_failed url=%s attempt=%s error=%s", url, attempts, last_error)
            else:
                last_status = response.status_code
                if accept(response):
                    return ProbeResult(True, response.status_code, STAGE_PRIMARY, attempts), response
                last_error = f"HTTP {response.status_code}"
                logger.info("probe_attempt_rejected url=%s attempt=%s status_code=%s", url, attempts, last_status)

            if attempt < self.max_attempts - 1:
                await self._sleep(self.backoff_seconds)

        attempts += 1
        record_probe_fallback(STAGE_FALLBACK)
        headers = {"User-Agent": self.user_agents[0], "Accept": "*/*", "Connection": "close"}
        transport = self._fallback_transport or httpx.AsyncHTTPTransport(retries=1, http1=True)
        try:
            fallback_url = _https_url(url)
            async with asyncio.timeout(self.timeout_seconds):
                async with self._client(timeout=self.timeout_seconds, transport=transport) as client:
                    response = await client.get(fallback_url, headers=headers)
        except _ATTEMPT_ERRORS as exc:
            last_error = _describe(exc)
            logger.info("probe_fallback_failed url=%s error=%s", url, last_error)
        else:
            last_status = response.status_code
            if accept(response):
                logger.info("probe_fallback_succeeded url=%s status_code=%s", url, response.status_code)
                return ProbeResult(True, response.status_code, STAGE_FALLBACK, attempts), response
            last_error = f"HTTP {response.status_code}"

        return ProbeResult(False, last_status, STAGE_FALLBACK, attempts, last_error), None

    async def _head(self, url: str, *, attempts: int) -> ProbeResult:
        record_probe_fallback(STAGE_HEAD)
        try:
            async with asyncio.timeout(self.head_timeout_seconds):
                async with self._client(timeout=self.head_timeout_seconds, transport=self._primary_transport) as client:
                    response = await client.head(url, headers={"User-Agent": MINIMAL_USER_AGENT})
        except _ATTEMPT_ERRORS as exc:
            return ProbeResult(False, None, STAGE_HEAD, attempts, _describe(exc))

        if _is_up(response):
            logger.info("probe_head_succeeded url=%s status_code=%s", url, response.status_code)
            return ProbeResult(True, response.status_code, STAGE_HEAD, attempts)
        return ProbeResult(False, response.status_code, STAGE_HEAD, attempts, f"HTTP {response.status_code}")
