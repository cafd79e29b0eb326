from .base import BaseRepository
from .profile_repository import ProfileRepository
from .subscription_repository import SubscriptionRepository

__all__ = ["BaseRepository", "ProfileRepository", "SubscriptionRepository"]
