import asyncio

import httpx

from app.application.services.reachability_prober import (
    DEFAULT_USER_AGENTS,
    MINIMAL_USER_AGENT,
    STAGE_FALLBACK,
    STAGE_HEAD,
    STAGE_PRIMARY,
    ReachabilityProber,
)

VERSION_URL = "http://service.test/version"


class RecordingHandler:
    def __init__(self, responder):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request, len(self.requests))


def _refuse(request: httpx.Request, _: int) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def _build_prober(primary, fallback, recording_sleep, **overrides) -> ReachabilityProber:
    options = {
        "max_attempts": 3,
        "timeout_seconds": 1.0,
        "backoff_seconds": 0.5,
        "head_timeout_seconds": 1.0,
        "primary_transport": httpx.MockTransport(primary),
        "fallback_transport": httpx.MockTransport(fallback),
        "sleep": recording_sleep,
    }
    options.update(overrides)
    return ReachabilityProber(**options)


def test_probe_succeeds_on_first_primary_attempt(recording_sleep):
    primary = RecordingHandler(lambda request, count: httpx.Response(200, text="ok"))
    fallback = RecordingHandler(_refuse)
    prober = _build_prober(primary, fallback, recording_sleep)

    result = asyncio.run(prober.probe(VERSION_URL))

    assert result.reachable is True
    assert result.stage == STAGE_PRIMARY
    assert result.attempts == 1
    assert result.status_code == 200
    assert fallback.requests == []
    assert recording_sleep.delays == []


def test_primary_attempts_rotate_user_agents_and_back_off(recording_sleep):
    primary = RecordingHandler(
        lambda request, count: httpx.Response(503) if count < 3 else httpx.Response(200, json={"version": "1.0"})
    )
    fallback = RecordingHandler(_refuse)
    prober = _build_prober(primary, fallback, recording_sleep)

    metadata = asyncio.run(prober.fetch_metadata(VERSION_URL))

    assert metadata is not None
    assert metadata.detected_version == "1.0"
    assert [request.headers["User-Agent"] for request in primary.requests] == list(DEFAULT_USER_AGENTS)
    assert recording_sleep.delays == [0.5, 0.5]
    assert fallback.requests == []


def test_fallback_get_targets_https_with_connection_close(recording_sleep):
    primary = RecordingHandler(_refuse)
    fallback = RecordingHandler(
        lambda request, count: httpx.Response(
            200,
            json={"namespace": "casino-blue", "staticImageTag": "25.1.0.3-abc"},
        )
    )
    prober = _build_prober(primary, fallback, recording_sleep)

    metadata = asyncio.run(prober.fetch_metadata(VERSION_URL))

    assert metadata is not None
    assert metadata.namespace == "blue"
    assert metadata.detected_version == "25.1.0.3"
    assert len(primary.requests) == 3
    assert len(fallback.requests) == 1
    fallback_request = fallback.requests[0]
    assert fallback_request.url.scheme == "https"
    assert fallback_request.url.host == "service.test"
    assert fallback_request.url.path == "/version"
    assert fallback_request.headers["Connection"] == "close"


def test_probe_falls_through_to_head_with_minimal_user_agent(recording_sleep):
    primary = RecordingHandler(
        lambda request, count: httpx.Response(200) if request.method == "HEAD" else httpx.Response(502)
    )
    fallback = RecordingHandler(lambda request, count: httpx.Response(503))
    prober = _build_prober(primary, fallback, recording_sleep)

    result = asyncio.run(prober.probe("http://site.test/"))

    assert result.reachable is True
    assert result.stage == STAGE_HEAD
    assert result.attempts == 5
    head_request = primary.requests[-1]
    assert head_request.method == "HEAD"
    assert head_request.headers["User-Agent"] == MINIMAL_USER_AGENT


def test_probe_treats_client_errors_as_reachable(recording_sleep):
    primary = RecordingHandler(lambda request, count: httpx.Response(404))
    fallback = RecordingHandler(_refuse)
    prober = _build_prober(primary, fallback, recording_sleep)

    result = asyncio.run(prober.probe("http://site.test/missing"))

    assert result.reachable is True
    assert result.status_code == 404


def test_fetch_metadata_requires_success_and_never_uses_head(recording_sleep):
    primary = RecordingHandler(lambda request, count: httpx.Response(404, json={"version": "9.9.9.9"}))
    fallback = RecordingHandler(lambda request, count: httpx.Response(404))
    prober = _build_prober(primary, fallback, recording_sleep)

    metadata = asyncio.run(prober.fetch_metadata(VERSION_URL))

    assert metadata is None
    assert all(request.method == "GET" for request in primary.requests)
    assert len(primary.requests) == 3
    assert len(fallback.requests) == 1


def test_unreachable_after_every_layer(recording_sleep):
    primary = RecordingHandler(_refuse)
    fallback = RecordingHandler(_refuse)
    prober = _build_prober(primary, fallback, recording_sleep, max_attempts=2)

    result = asyncio.run(prober.probe("http://down.test/"))

    assert result.reachable is False
    assert result.stage == STAGE_HEAD
    assert result.attempts == 4
    assert result.error.startswith("ConnectError")
    assert recording_sleep.delays == [0.5]


def test_fetch_metadata_rejects_unparseable_success_body(recording_sleep):
    primary = RecordingHandler(lambda request, count: httpx.Response(200, text="<html>welcome</html>"))
    fallback = RecordingHandler(_refuse)
    prober = _build_prober(primary, fallback, recording_sleep)

    assert asyncio.run(prober.fetch_metadata(VERSION_URL)) is None
    assert len(primary.requests) == 1


def test_fallback_stage_reported_when_primary_fails(recording_sleep):
    primary = RecordingHandler(_refuse)
    fallback = RecordingHandler(lambda request, count: httpx.Response(200, text="up"))
    prober = _build_prober(primary, fallback, recording_sleep, max_attempts=1)

    result = asyncio.run(prober.probe("http://site.test/"))

    assert result.reachable is True
    assert result.stage == STAGE_FALLBACK
    assert result.attempts == 2


async def _stall(request: httpx.Request) -> httpx.Response:
    await asyncio.sleep(1.0)
    return httpx.Response(200, text="late")


def test_stalled_primary_attempt_is_cut_off_by_total_deadline(recording_sleep):
    fallback = RecordingHandler(lambda request, count: httpx.Response(200, text="ok"))
    prober = _build_prober(_stall, fallback, recording_sleep, max_attempts=1, timeout_seconds=0.05)

    result = asyncio.run(prober.probe(VERSION_URL))

    assert result.reachable is True
    assert result.stage == STAGE_FALLBACK
    assert result.attempts == 2
    assert len(fallback.requests) == 1


def test_stalled_head_counts_as_failed_attempt(recording_sleep):
    prober = _build_prober(
        _stall,
        _stall,
        recording_sleep,
        max_attempts=1,
        timeout_seconds=0.05,
        head_timeout_seconds=0.05,
    )

    result = asyncio.run(prober.probe(VERSION_URL))

    assert result.reachable is False
    assert result.stage == STAGE_HEAD
    assert result.attempts == 3
    assert result.error == "TimeoutError"
