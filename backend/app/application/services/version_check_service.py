import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from time import perf_counter
from uuid import UUID

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.application.services.component_status_service import ChannelOutcome, apply_channel_outcome
from app.application.services.reachability_prober import ReachabilityProber
from app.application.services.status_errors import (
    ChannelNotConfiguredError,
    ComponentNotFoundError,
    ValidationFailedError,
    VersionCheckInProgressError,
)
from app.application.services.version_metadata import VersionMetadata
from app.core.config import settings
from app.domain.models.component import CHANNEL_COLUMNS, Component, ComponentStatus, ProbeChannel
from app.infrastructure.cache.redis_client import acquire_lock, get_redis_client, release_lock
from app.infrastructure.db.session import SessionLocal
from app.infrastructure.observability.metrics import (
    VERSION_CHECK_CYCLE_DURATION_SECONDS,
    VERSION_CHECK_CYCLES_TOTAL,
    VERSION_PROBE_FAILURES_TOTAL,
    record_probe,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelCheckResult:
    component_id: UUID
    component_name: str
    channel: str
    url: str
    reachable: bool
    status: str
    namespace: str | None
    detected_version: str | None
    checked_at: datetime
    persisted: bool = True

    def to_dict(self) -> dict:
        return {
            "component_id": str(self.component_id),
            "component_name": self.component_name,
            "channel": self.channel,
            "url": self.url,
            "reachable": self.reachable,
            "status": self.status,
            "namespace": self.namespace,
            "detected_version": self.detected_version,
            "checked_at": self.checked_at.isoformat(),
            "persisted": self.persisted,
        }


class VersionCheckService:
    """Runs probes for components and persists the per-channel results.

    Full cycles are single-flight: a process-local lock always, plus a Redis lock
    shared with the Celery worker when ``distributed_lock`` is enabled. Session
    and Redis calls run in the thread pool; only probes run on the event loop.
    """

    def __init__(
        self,
        prober: ReachabilityProber,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        request_delay_seconds: float = 0.2,
        distributed_lock: bool = False,
        lock_key: str = "lock:version_check:all",
        lock_ttl_seconds: int = 1800,
        redis_factory: Callable[[], Redis] = get_redis_client,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.prober = prober
        self.request_delay_seconds = request_delay_seconds
        self.distributed_lock = distributed_lock
        self.lock_key = lock_key
        self.lock_ttl_seconds = lock_ttl_seconds
        self._session_factory = session_factory
        self._redis_factory = redis_factory
        self._sleep = sleep
        self._cycle_lock = asyncio.Lock()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    async def check_all_versions(self, db: Session) -> list[ChannelCheckResult]:
        if self._cycle_lock.locked():
            raise VersionCheckInProgressError("A version check cycle is already running")

        async with self._cycle_lock:
            acquired, token = await run_in_threadpool(self._acquire_distributed_lock)
            if not acquired:
                raise VersionCheckInProgressError("A version check cycle is already running on another worker")
            try:
                return await self._run_cycle(db)
            finally:
                await run_in_threadpool(self._release_distributed_lock, token)

    async def run_scheduled_cycle(self) -> list[ChannelCheckResult] | None:
        db = self._session_factory()
        try:
            return await self.check_all_versions(db)
        except VersionCheckInProgressError:
            logger.info("version_check_cycle_skipped reason=in_progress")
            return None
        finally:
            await run_in_threadpool(db.close)

    async def check_single_component(
        self,
        db: Session,
        component_id: UUID,
        channel: ProbeChannel,
    ) -> tuple[Component, ChannelCheckResult]:
        component = await run_in_threadpool(_get_component, db, component_id)
        if component.channel_url(channel) is None:
            raise ChannelNotConfiguredError(f"Component has no {channel.value} URL configured")

        result = await self._check_channel(db, component, channel)
        await run_in_threadpool(db.refresh, component)
        return component, result

    async def rescan_potential_outages(self, db: Session, component_id: UUID) -> dict[str, ChannelCheckResult | None]:
        component = await run_in_threadpool(_get_component, db, component_id)
        pending = [
            channel
            for channel in ProbeChannel
            if component.channel_url(channel) is not None
            and component.channel_status(channel) == ComponentStatus.POTENTIAL_OUTAGE.value
        ]

        results: dict[str, ChannelCheckResult | None] = {channel.value: None for channel in ProbeChannel}
        for channel in pending:
            results[channel.value] = await self._check_channel(db, component, channel)
        logger.info(
            "component_rescan_completed component_id=%s channels=%s",
            component_id,
            ",".join(channel.value for channel in pending) or "none",
        )
        return results

    async def preview_version_url(self, url: str) -> VersionMetadata | None:
        target = (url or "").strip()
        if not target:
            raise ValidationFailedError("url is required")
        return await self.prober.fetch_metadata(target)

    async def _run_cycle(self, db: Session) -> list[ChannelCheckResult]:
        started_at = perf_counter()
        components, targets = await run_in_threadpool(_load_targets, db)
        logger.info("version_check_cycle_started components=%s channels=%s", len(components), len(targets))

        results: list[ChannelCheckResult] = []
        for index, (component, channel) in enumerate(targets):
            if index:
                await self._sleep(self.request_delay_seconds)
            results.append(await self._check_channel(db, component, channel))

        duration_seconds = perf_counter() - started_at
        VERSION_CHECK_CYCLE_DURATION_SECONDS.observe(duration_seconds)
        VERSION_CHECK_CYCLES_TOTAL.inc()

        summary = Counter((result.channel, result.reachable) for result in results)
        for channel in ProbeChannel:
            logger.info(
                "version_check_summary channel=%s reachable=%s unreachable=%s",
                channel.value,
                summary[(channel.value, True)],
                summary[(channel.value, False)],
            )
        logger.info(
            "version_check_cycle_completed checked=%s duration_seconds=%.2f",
            len(results),
            duration_seconds,
        )
        return results

    async def _check_channel(self, db: Session, component: Component, channel: ProbeChannel) -> ChannelCheckResult:
        component_id, component_name, url, previous_status = await run_in_threadpool(
            _snapshot_channel, component, channel
        )
        columns = CHANNEL_COLUMNS[channel]
        if columns.carries_metadata:
            metadata = await self.prober.fetch_metadata(url)
            outcome = ChannelOutcome(reachable=metadata is not None, metadata=metadata)
        else:
            probe = await self.prober.probe(url)
            outcome = ChannelOutcome(reachable=probe.reachable)

        record_probe(channel.value, outcome.reachable)
        if not outcome.reachable:
            VERSION_PROBE_FAILURES_TOTAL.inc()
            logger.warning(
                "component_channel_unreachable component_id=%s channel=%s url=%s",
                component_id,
                channel.value,
                url,
            )

        checked_at = datetime.now(UTC)
        updates, persisted = await run_in_threadpool(
            apply_channel_outcome, db, component, channel, outcome, now=checked_at
        )
        return ChannelCheckResult(
            component_id=component_id,
            component_name=component_name,
            channel=channel.value,
            url=url,
            reachable=outcome.reachable,
            status=updates.get(columns.status, previous_status),
            namespace=outcome.metadata.namespace if outcome.metadata else None,
            detected_version=outcome.metadata.detected_version if outcome.metadata else None,
            checked_at=checked_at,
            persisted=persisted,
        )

    def _acquire_distributed_lock(self) -> tuple[bool, str | None]:
        if not self.distributed_lock:
            return True, None
        try:
            token = acquire_lock(self._redis_factory(), key=self.lock_key, ttl_seconds=self.lock_ttl_seconds)
        except RedisError:
            logger.warning("version_check_lock_unavailable key=%s", self.lock_key)
            return True, None
        return token is not None, token

    def _release_distributed_lock(self, token: str | None) -> None:
        if token is None:
            return
        try:
            release_lock(self._redis_factory(), key=self.lock_key, token=token)
        except RedisError:
            logger.exception("version_check_lock_release_failed key=%s", self.lock_key)


def _get_component(db: Session, component_id: UUID) -> Component:
    component = db.execute(select(Component).where(Component.id == component_id)).scalar_one_or_none()
    if component is None:
        raise ComponentNotFoundError("Component not found")
    return component


def _load_targets(db: Session) -> tuple[list[Component], list[tuple[Component, ProbeChannel]]]:
    components = list(
        db.execute(
            select(Component).order_by(Component.sort_order.asc(), Component.name.asc())
        ).scalars().all()
    )
    targets = [(component, channel) for component in components for channel in component.configured_channels()]
    return components, targets


def _snapshot_channel(component: Component, channel: ProbeChannel) -> tuple[UUID, str, str, str]:
    # Attributes expire on commit, so reading them may hit the database.
    return component.id, component.name, component.channel_url(channel), component.channel_status(channel)


def build_version_check_service(**overrides) -> VersionCheckService:
    options = {
        "request_delay_seconds": settings.version_check_request_delay_seconds,
        "distributed_lock": settings.version_check_distributed_lock,
        "lock_key": settings.version_check_lock_key,
        "lock_ttl_seconds": settings.version_check_lock_ttl_seconds,
    }
    options.update(overrides)
    prober = options.pop("prober", None) or ReachabilityProber.from_settings()
    return VersionCheckService(prober, **options)


@lru_cache
def get_version_check_service() -> VersionCheckService:
    return build_version_check_service()
