"""Publish worker - claims due jobs and drives posts through the publish state machine."""

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional

from src.config.constants import Platform, PostStatus
from src.config.settings import settings
from src.exceptions import ErrorKind, PlatformAPIError, ProfileInactiveError
from src.models.publish_job import PublishJob
from src.repositories.post_repository import PostRepository
from src.repositories.profile_repository import ProfileRepository
from src.repositories.queue_repository import QueueRepository
from src.services.base_service import BaseService
from src.services.integrations.platforms import (
    PlatformAdapter,
    PublishRequest,
    PublishResult,
    build_adapters,
)
from src.services.integrations.token_manager import TokenManager
from src.utils.logger import format_fields, logger

TOKEN_INVALID_MESSAGE = (
    "Profile inactive: access token expired and could not be refreshed. "
    "Please reconnect the social media profile."
)
INTERRUPTED_MESSAGE = "Publish attempt was interrupted before completing"


class OutcomeKind(str, Enum):
    PUBLISHED = "published"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    DISCARDED = "discarded"
    SUPERSEDED = "superseded"


@dataclass
class PublishOutcome:
    """What happened to one job. Returned by the worker instead of emitting events."""

    kind: OutcomeKind
    post_id: str
    job_id: Optional[str] = None
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    platform: Optional[str] = None
    platform_post_id: Optional[str] = None
    url: Optional[str] = None
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    retry_in_ms: Optional[int] = None
    metadata: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.PUBLISHED

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "post_id": self.post_id,
            "job_id": self.job_id,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "platform": self.platform,
            "platform_post_id": self.platform_post_id,
            "url": self.url,
            "message": self.message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "retry_in_ms": self.retry_in_ms,
        }


def log_outcome(outcome: PublishOutcome) -> str:
    """Write one structured log line for an outcome and return it."""
    attempt = f"{outcome.attempt}/{outcome.max_attempts}" if outcome.attempt else None
    fields = format_fields(
        post=outcome.post_id,
        job=outcome.job_id,
        attempt=attempt,
        platform=outcome.platform,
        platform_post_id=outcome.platform_post_id,
        error_kind=outcome.error_kind.value if outcome.error_kind else None,
        retry_in_ms=outcome.retry_in_ms,
    )
    line = f"[PublishWorker] {outcome.kind.value} {fields}"
    if outcome.message:
        line = f"{line} - {outcome.message}"

    if outcome.kind == OutcomeKind.FAILED:
        logger.error(line)
    elif outcome.kind == OutcomeKind.RETRY_SCHEDULED:
        logger.warning(line)
    else:
        logger.info(line)
    return line


class PublishWorker(BaseService):
    """
    Process publish jobs one at a time.

    Per claimed job:
    1. Post missing or not SCHEDULED: discard the job.
    2. SCHEDULED -> PUBLISHING (compare-and-set; losing it discards the job).
    3. Profile missing or inactive: FAILED, no retry, no attempt consumed.
    4. TokenManager.ensure_valid false: FAILED, no retry, no attempt consumed.
    5. Adapter publish. Success: PUBLISHED and the job completes.
    6. Failure: transient kinds retry with exponential backoff until
       max_attempts, everything else fails the post immediately.

    Several workers may share one queue; the claim in
    QueueRepository.dequeue_due is the only mutual exclusion.
    """

    def __init__(
        self,
        queue_repo: Optional[QueueRepository] = None,
        post_repo: Optional[PostRepository] = None,
        profile_repo: Optional[ProfileRepository] = None,
        token_manager: Optional[TokenManager] = None,
        adapters: Optional[Dict[Platform, PlatformAdapter]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        worker_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base_ms: Optional[int] = None,
    ):
        super().__init__()
        self.queue_repo = queue_repo or QueueRepository()
        self.post_repo = post_repo or PostRepository()
        self.profile_repo = profile_repo or ProfileRepository()
        self.adapters = adapters or build_adapters()
        self.clock = clock or datetime.utcnow
        self.token_manager = token_manager or TokenManager(
            profile_repo=self.profile_repo, adapters=self.adapters, clock=self.clock
        )
        self.worker_id = worker_id or f"worker-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        self.max_attempts = max_attempts or settings.PUBLISH_MAX_ATTEMPTS
        self.backoff_base_ms = backoff_base_ms or settings.PUBLISH_BACKOFF_BASE_MS

    def backoff_delay_ms(self, attempt: int) -> int:
        """Delay before retrying after the given (1-based) failed attempt: base * 2^(attempt-1)."""
        return int(self.backoff_base_ms * 2 ** (attempt - 1))

    async def process_next(self) -> Optional[PublishOutcome]:
        """Claim and process the oldest due job. Returns None when nothing is due."""
        job = self.queue_repo.dequeue_due(now=self.clock(), worker_id=self.worker_id)
        if job is None:
            return None
        return await self.process_job(job)

    async def process_job(self, job: PublishJob) -> PublishOutcome:
        """Run one claimed job through the state machine."""
        attempt = (job.attempt_count or 0) + 1
        common = {"job_id": job.id, "attempt": attempt, "max_attempts": self.max_attempts}

        post = self.post_repo.get_by_id(job.post_id)
        if post is None or post.status != PostStatus.SCHEDULED.value:
            reason = "Post not found" if post is None else f"Post is {post.status}, nothing to publish"
            self.queue_repo.discard(job.id, reason, now=self.clock())
            return self._finish(PublishOutcome(OutcomeKind.DISCARDED, post_id=job.post_id, message=reason, **common))

        if not self.post_repo.transition_status(post.id, PostStatus.SCHEDULED, PostStatus.PUBLISHING):
            reason = "Post left SCHEDULED before it could be claimed"
            self.queue_repo.discard(job.id, reason, now=self.clock())
            return self._finish(PublishOutcome(OutcomeKind.DISCARDED, post_id=post.id, message=reason, **common))

        platform = post.platform
        fields = format_fields(
            post=post.id, job=job.id, attempt=f"{attempt}/{self.max_attempts}", platform=platform
        )
        logger.info(f"[PublishWorker] publishing {fields}")

        profile = self.profile_repo.get_by_id(post.profile_id) if post.profile_id else None
        if profile is None or not profile.is_active:
            message = str(ProfileInactiveError(post.profile_id))
            return self._fail_permanently(post.id, job.id, message, attempt, platform, count_attempt=False)

        if not await self.token_manager.ensure_valid(profile):
            return self._fail_permanently(post.id, job.id, TOKEN_INVALID_MESSAGE, attempt, platform, count_attempt=False)

        # ensure_valid may have stored new tokens
        profile = self.profile_repo.get_by_id(profile.id)

        adapter = self.adapters[Platform(platform)]
        request = PublishRequest(
            post_id=post.id,
            content=post.content or "",
            media_urls=list(post.media_urls or []),
            post_format=post.post_format or "POST",
        )

        try:
            if settings.DRY_RUN_MODE:
                logger.info(f"[PublishWorker] DRY RUN: skipping {platform} API call for post {post.id}")
                result = PublishResult(platform_post_id=f"dry-run-{post.id}", metadata={"dry_run": True})
            else:
                credentials = self.token_manager.credentials_for(profile)
                result = await adapter.publish(request, credentials)
        except Exception as e:
            message = e.message if isinstance(e, PlatformAPIError) else str(e)
            return self._handle_failure(
                post.id,
                message,
                adapter.classify_error(e),
                attempt,
                job_id=job.id,
                platform=platform,
            )

        now = self.clock()
        metadata = dict(result.metadata or {})
        if result.url:
            metadata["url"] = result.url
        self.post_repo.mark_published(post.id, result.platform_post_id, metadata, published_at=now)
        self.queue_repo.complete(job.id, now=now)

        return self._finish(
            PublishOutcome(
                OutcomeKind.PUBLISHED,
                post_id=post.id,
                platform=platform,
                platform_post_id=result.platform_post_id,
                url=result.url,
                metadata=metadata,
                **common,
            )
        )

    def _handle_failure(
        self,
        post_id: str,
        message: str,
        kind: ErrorKind,
        attempt: int,
        job_id: Optional[str] = None,
        user_id: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> PublishOutcome:
        """
        Decide retry vs. fail for a failed attempt.

        With a job_id the active job is requeued; without one (recovery of
        a post whose job vanished) a fresh job carrying the attempt count
        is enqueued.
        """
        if kind == ErrorKind.INVALID_CREDENTIALS:
            text = message if "reconnect" in message.lower() else f"{message} Please reconnect the account."
            return self._fail_permanently(post_id, job_id, text, attempt, platform, error_kind=kind)

        if not kind.is_transient:
            return self._fail_permanently(post_id, job_id, message, attempt, platform, error_kind=kind)

        if attempt >= self.max_attempts:
            text = f"{message} (after {self.max_attempts} attempts)"
            return self._fail_permanently(post_id, job_id, text, attempt, platform, error_kind=kind)

        now = self.clock()
        delay_ms = self.backoff_delay_ms(attempt)
        text = f"{message} (attempt {attempt}/{self.max_attempts}, retrying)"

        if job_id:
            requeued = self.queue_repo.requeue(job_id, delay_ms, error=text, now=now)
        else:
            job_id = self.queue_repo.enqueue(
                post_id,
                user_id=user_id,
                not_before=now + timedelta(milliseconds=delay_ms),
                attempt_count=attempt,
                now=now,
            ).id
            requeued = True

        # A superseded post may already be SCHEDULED again; this is then a no-op
        self.post_repo.mark_retrying(post_id, text)

        return self._finish(
            PublishOutcome(
                OutcomeKind.RETRY_SCHEDULED if requeued else OutcomeKind.SUPERSEDED,
                post_id=post_id,
                job_id=job_id,
                attempt=attempt,
                max_attempts=self.max_attempts,
                platform=platform,
                message=text,
                error_kind=kind,
                retry_in_ms=delay_ms if requeued else None,
            )
        )

    def _fail_permanently(
        self,
        post_id: str,
        job_id: Optional[str],
        message: str,
        attempt: int,
        platform: Optional[str] = None,
        count_attempt: bool = True,
        error_kind: Optional[ErrorKind] = None,
    ) -> PublishOutcome:
        now = self.clock()
        self.post_repo.mark_failed(post_id, message, failed_at=now, count_attempt=count_attempt)
        if job_id:
            self.queue_repo.fail(job_id, message, now=now, count_attempt=count_attempt)

        return self._finish(
            PublishOutcome(
                OutcomeKind.FAILED,
                post_id=post_id,
                job_id=job_id,
                attempt=attempt,
                max_attempts=self.max_attempts,
                platform=platform,
                message=message,
                error_kind=error_kind,
            )
        )

    def recover_stalled_job(self, job: PublishJob) -> PublishOutcome:
        """
        Settle an active job whose worker stopped responding.

        The interrupted attempt counts as a transient failure.
        """
        post = self.post_repo.get_by_id(job.post_id)
        if post is None or post.status != PostStatus.PUBLISHING.value:
            if post is not None and post.status == PostStatus.PUBLISHED.value:
                self.queue_repo.complete(job.id, now=self.clock())
                reason = "Post already published"
            else:
                reason = "Post not found" if post is None else f"Post is {post.status}, nothing to recover"
                self.queue_repo.discard(job.id, reason, now=self.clock())
            return self._finish(PublishOutcome(OutcomeKind.DISCARDED, post_id=job.post_id, job_id=job.id, message=reason))

        return self._handle_failure(
            post.id,
            INTERRUPTED_MESSAGE,
            ErrorKind.NETWORK_ERROR,
            (job.attempt_count or 0) + 1,
            job_id=job.id,
            platform=post.platform,
        )

    def recover_stuck_post(self, post) -> PublishOutcome:
        """Settle a PUBLISHING post that has no live job (its job row was lost)."""
        latest = self.queue_repo.get_latest_job(post.id)
        attempt = (latest.attempt_count if latest else 0) + 1
        return self._handle_failure(
            post.id,
            INTERRUPTED_MESSAGE,
            ErrorKind.NETWORK_ERROR,
            attempt,
            user_id=post.user_id,
            platform=post.platform,
        )

    def _finish(self, outcome: PublishOutcome) -> PublishOutcome:
        log_outcome(outcome)
        return outcome
