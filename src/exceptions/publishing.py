"""Publishing workflow errors surfaced by the admin service."""

from typing import Optional

from src.exceptions.base import PublisherError


class PostNotFoundError(PublisherError):
    """Post does not exist."""

    def __init__(self, post_id: str):
        super().__init__(f"Post {post_id} not found")
        self.post_id = post_id


class PostStateError(PublisherError):
    """Post is in a status that does not allow the requested action."""

    def __init__(self, message: str, post_id: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message)
        self.post_id = post_id
        self.status = status


class PostAlreadyPublishedError(PostStateError):
    def __init__(self, post_id: str):
        super().__init__("Post is already published", post_id=post_id, status="PUBLISHED")


class PostAlreadyPublishingError(PostStateError):
    def __init__(self, post_id: str):
        super().__init__("Post is currently being published", post_id=post_id, status="PUBLISHING")


class PostNotRetryableError(PostStateError):
    """Only FAILED posts can be retried."""

    def __init__(self, post_id: str, status: str):
        super().__init__(
            f"Only failed posts can be retried (current status: {status})",
            post_id=post_id,
            status=status,
        )


class ProfileNotFoundError(PublisherError):
    def __init__(self, profile_id: str):
        super().__init__(f"Profile {profile_id} not found")
        self.profile_id = profile_id


class ProfileInactiveError(PublisherError):
    """Profile was deactivated; the user must reconnect it."""

    def __init__(
        self,
        profile_id: str,
        message: str = "Profile inactive. Please reconnect the social media profile.",
    ):
        super().__init__(message)
        self.profile_id = profile_id
