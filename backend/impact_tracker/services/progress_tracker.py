"""Publish job progress snapshots to Redis for status endpoints and streams."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from impact_tracker.core.config import Settings
from impact_tracker.services.job_store import JobSnapshot, JobState
from impact_tracker.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "jobs:progress:"
PROGRESS_TTL = timedelta(hours=24)


def _key(job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{job_id}"


def describe(snapshot: JobSnapshot) -> str:
    if snapshot.error_message:
        return f"Import failed: {snapshot.error_message}"
    if snapshot.status is JobState.COMPLETED:
        return (
            f"Import complete: {snapshot.successful_rows} imported, "
            f"{snapshot.failed_rows} failed"
        )
    if snapshot.is_cancelled:
        return (
            f"Import cancelled after {snapshot.processed_rows}/{snapshot.total_rows} rows"
        )
    return f"Processed {snapshot.processed_rows}/{snapshot.total_rows} rows"


class ProgressTracker:
    """Best-effort progress cache; a missing client turns it into a no-op."""

    def __init__(self, client: Redis | None = None, ttl: timedelta = PROGRESS_TTL):
        self._client = client
        self._ttl = ttl

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def publish(self, snapshot: JobSnapshot, message: str | None = None) -> None:
        """Persist a progress snapshot so the UI can subscribe."""
        if self._client is None:
            return
        payload = {
            "job_id": snapshot.id,
            "progress": max(0.0, min(snapshot.progress, 1.0)),
            "message": message or describe(snapshot),
            "status": snapshot.status.value,
            "meta": {
                "processed": snapshot.processed_rows,
                "total": snapshot.total_rows,
                "successful": snapshot.successful_rows,
                "failed": snapshot.failed_rows,
            },
        }
        try:
            self._client.set(
                _key(snapshot.id),
                json.dumps(payload),
                ex=int(self._ttl.total_seconds()),
            )
        except RedisError as exc:
            # Redis availability should not break ingestion.
            logger.warning(f"Could not publish progress for job {snapshot.id}: {exc}")

    def fetch(self, job_id: str) -> dict[str, Any]:
        """Return the latest cached telemetry for a job, or an empty dict."""
        if self._client is None:
            return {}
        try:
            raw = self._client.get(_key(job_id))
        except RedisError as exc:
            logger.warning(f"Could not read progress for job {job_id}: {exc}")
            return {}
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed progress payload for job {job_id}")
            return {}


def build_progress_tracker(settings: Settings) -> ProgressTracker:
    if not settings.progress_cache_enabled:
        return ProgressTracker()
    client = create_redis_client(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    return ProgressTracker(client, ttl=timedelta(seconds=settings.progress_ttl_seconds))
