"""Repository layer - database access."""

from src.repositories.base_repository import BaseRepository
from src.repositories.profile_repository import ProfileRepository
from src.repositories.post_repository import PostRepository
from src.repositories.queue_repository import QueueRepository
from src.repositories.service_run_repository import ServiceRunRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "PostRepository",
    "QueueRepository",
    "ServiceRunRepository",
]
