from xpduel.social.profiles import ProfileService
from xpduel.social.service import FriendsService

__all__ = ["FriendsService", "ProfileService"]
