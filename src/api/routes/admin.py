"""Admin endpoints - manual publish/retry, queue stats and token maintenance."""

from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from src.exceptions import (
    PostAlreadyPublishingError,
    PostNotFoundError,
    PostStateError,
    ProfileInactiveError,
    ProfileNotFoundError,
)
from src.services.core.admin import AdminService
from src.services.core.refresh_scheduler import TokenRefreshScheduler
from src.utils.logger import logger

router = APIRouter(tags=["admin"])

# One scheduler per process so concurrent refresh requests share its lock
_refresh_scheduler: Optional[TokenRefreshScheduler] = None


def get_refresh_scheduler() -> TokenRefreshScheduler:
    global _refresh_scheduler
    if _refresh_scheduler is None:
        _refresh_scheduler = TokenRefreshScheduler()
    return _refresh_scheduler


@contextmanager
def admin_error_handler():
    """Map publishing exceptions to HTTP responses."""
    try:
        yield
    except (PostNotFoundError, ProfileNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PostAlreadyPublishingError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (PostStateError, ProfileInactiveError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/posts/{post_id}/publish")
async def publish_post(post_id: str):
    """
    Publish a post now.

    Resets FAILED posts to SCHEDULED and enqueues the post for immediate
    processing. 404 unknown post, 400 already published or profile
    inactive, 409 publish in progress.
    """
    with AdminService() as service, admin_error_handler():
        return service.publish_post(post_id)


@router.get("/posts/{post_id}/publish")
async def get_publish_status(post_id: str):
    """Current publish status of a post (FAILED posts include can_retry)."""
    with AdminService() as service, admin_error_handler():
        return service.get_publish_status(post_id)


@router.post("/posts/{post_id}/retry")
async def retry_post(post_id: str):
    """Retry a FAILED post after re-checking its profile."""
    with AdminService() as service, admin_error_handler():
        return service.retry_post(post_id)


@router.get("/queue-stats")
async def queue_stats(limit: int = Query(default=10, ge=1, le=100)):
    """Job counts per state plus the most recent jobs in each."""
    with AdminService() as service:
        return service.queue_overview(recent_limit=limit)


@router.post("/tokens/refresh")
async def refresh_tokens():
    """Refresh every token expiring within the threshold now."""
    with AdminService(refresh_scheduler=get_refresh_scheduler()) as service:
        result = await service.refresh_tokens(triggered_by="admin")
    logger.info(
        f"[AdminAPI] Manual token refresh: {result.get('refreshed', 0)} refreshed, "
        f"{result.get('failed', 0)} failed"
    )
    return result


@router.get("/tokens/refresh")
async def tokens_needing_refresh(
    threshold_hours: Optional[int] = Query(default=None, ge=1, le=24 * 60),
):
    """Active profiles whose tokens expire within the threshold."""
    with AdminService(refresh_scheduler=get_refresh_scheduler()) as service:
        return service.tokens_needing_refresh(threshold_hours)


@router.post("/profiles/{profile_id}/refresh-token")
async def refresh_profile_token(profile_id: str):
    """Refresh one profile's token. A successful refresh reactivates the profile."""
    with AdminService(refresh_scheduler=get_refresh_scheduler()) as service, admin_error_handler():
        outcome = await service.refresh_profile_token(profile_id)

    if not outcome.success:
        raise HTTPException(status_code=400, detail=outcome.message)
    return outcome.to_dict()


@router.get("/profiles/{profile_id}/check-token")
async def check_profile_token(profile_id: str):
    """Token health of one profile without refreshing it."""
    with AdminService(refresh_scheduler=get_refresh_scheduler()) as service, admin_error_handler():
        return service.check_profile_token(profile_id)
