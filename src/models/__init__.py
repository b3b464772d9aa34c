"""SQLAlchemy models."""
from src.models.profile import Profile
from src.models.post import Post
from src.models.publish_job import PublishJob
from src.models.service_run import ServiceRun

__all__ = [
    "Profile",
    "Post",
    "PublishJob",
    "ServiceRun",
]
