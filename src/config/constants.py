"""Shared application constants.

Enumerations used by models, services and the admin surface live here so
that every layer agrees on the closed sets of platforms and statuses.
"""

from enum import Enum


class Platform(str, Enum):
    """Supported publishing platforms."""

    FACEBOOK = "FACEBOOK"
    INSTAGRAM = "INSTAGRAM"
    TWITTER = "TWITTER"
    TIKTOK = "TIKTOK"


class PostStatus(str, Enum):
    """Post lifecycle: DRAFT -> SCHEDULED -> PUBLISHING -> PUBLISHED | FAILED."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PUBLISHING = "PUBLISHING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


class PostFormat(str, Enum):
    POST = "POST"
    REEL = "REEL"


class JobState(str, Enum):
    """Publish job states. PENDING covers both waiting and delayed jobs."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATES = (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)

# Meta long-lived tokens are valid for 60 days
META_TOKEN_DEFAULT_LIFETIME_SECONDS = 60 * 24 * 3600

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".m4v")
