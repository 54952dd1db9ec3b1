"""
Storage contract shared by every backend.

A backend subclasses :class:`Storage`, lists the driver exceptions it can
raise in ``backend_errors`` and decorates each public method with
:func:`backend_guard`. Reads then degrade to ``None``/``[]``/``False`` and
writes raise :class:`~xplay.exceptions.StorageError`, so nothing
driver-specific ever reaches callers.
"""

import functools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from passlib.context import CryptContext
from pydantic import BaseModel

from ..exceptions import DuplicateUserError, StorageError
from ..schemas import (
    Channel, ChannelCreate, ChannelUpdate,
    Comment, CommentCreate,
    LikedVideo, LikedVideoCreate,
    SiteSettings, SiteSettingsUpdate,
    Subscription, SubscriptionCreate,
    User, UserCreate, UserUpdate,
    Video, VideoCreate, VideoUpdate,
    VideoHistory, VideoHistoryCreate,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# fields no update may touch
PROTECTED_FIELDS = frozenset({"id", "created_at", "updated_at"})

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Changes = Union[BaseModel, Mapping[str, Any]]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # unrecognised or corrupt hash format
        logger.warning("Stored credential has an unrecognised hash format")
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def clean_changes(data: Changes, model: Type[BaseModel], extra: Iterable[str] = ()) -> Dict[str, Any]:
    """Reduce a partial payload to the writable fields of ``model``."""
    if isinstance(data, BaseModel):
        raw = data.model_dump(exclude_unset=True)
    else:
        raw = dict(data or {})
    allowed = (set(model.model_fields) | set(extra)) - PROTECTED_FIELDS
    return {key: value for key, value in raw.items() if key in allowed}


def ad_changes(
    video: Video,
    has_ads: bool,
    ad_url: Optional[str] = None,
    ad_start_time: Optional[int] = None,
    ad_skippable: Optional[bool] = None,
) -> Dict[str, Any]:
    """Field values for toggling ads; enabling keeps existing values for omitted arguments."""
    if not has_ads:
        return {"has_ads": False, "ad_url": None, "ad_start_time": None, "ad_skippable": True}
    return {
        "has_ads": True,
        "ad_url": ad_url or video.ad_url,
        "ad_start_time": ad_start_time if ad_start_time is not None else video.ad_start_time,
        "ad_skippable": ad_skippable if ad_skippable is not None else video.ad_skippable,
    }


def default_channel(user: User) -> ChannelCreate:
    return ChannelCreate(
        user_id=user.id,
        name=user.username,
        description=f"{user.username}'s channel",
        banner_image="",
    )


def newest_first(records: Iterable[Any], field: str = "created_at") -> List[Any]:
    return sorted(records, key=lambda r: (getattr(r, field) or EPOCH, r.id), reverse=True)


def most_viewed(records: Iterable[Video]) -> List[Video]:
    return sorted(records, key=lambda v: (v.views or 0, v.id), reverse=True)


def backend_guard(fallback: Any = None, raises: bool = False):
    """
    Map the backend's driver exceptions at a method boundary.

    Args:
        fallback: value (or zero-argument factory such as ``list``) returned
            when a read fails
        raises: convert the failure into StorageError instead of returning
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except self.backend_errors as e:
                logger.error(
                    f"{type(self).__name__}.{func.__name__} failed: {str(e)}",
                    exc_info=True,
                )
                if raises:
                    raise StorageError(f"{func.__name__} failed: {e}") from e
                return fallback() if callable(fallback) else fallback

        return wrapper

    return decorator


class Storage(ABC):
    """Backend-agnostic persistence contract for every xplay entity."""

    name = "abstract"
    backend_errors: Tuple[Type[BaseException], ...] = ()

    def initialize(self) -> None:
        """Create tables/indexes and the site-settings row. Idempotent."""

    def close(self) -> None:
        """Release connections held by the backend."""

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def get_all_users(self) -> List[User]: ...

    @abstractmethod
    def create_user(self, data: UserCreate) -> User:
        """Persist a user, hash the password and create the default channel."""

    @abstractmethod
    def update_user(self, user_id: int, data: Union[UserUpdate, Changes]) -> Optional[User]: ...

    # Channels
    @abstractmethod
    def get_channel(self, channel_id: int) -> Optional[Channel]: ...

    @abstractmethod
    def get_channels_by_user(self, user_id: int) -> List[Channel]: ...

    @abstractmethod
    def create_channel(self, data: ChannelCreate) -> Channel: ...

    @abstractmethod
    def update_channel(self, channel_id: int, data: Union[ChannelUpdate, Changes]) -> Optional[Channel]: ...

    # Videos
    @abstractmethod
    def get_video(self, video_id: int) -> Optional[Video]: ...

    @abstractmethod
    def get_videos(self, limit: int = 50, offset: int = 0) -> List[Video]: ...

    @abstractmethod
    def get_videos_by_user(self, user_id: int) -> List[Video]: ...

    @abstractmethod
    def get_recent_videos(self, limit: int = 8) -> List[Video]: ...

    @abstractmethod
    def get_trending_videos(self, limit: int = 8) -> List[Video]: ...

    @abstractmethod
    def get_quickies(self, limit: int = 12) -> List[Video]: ...

    @abstractmethod
    def create_video(self, data: VideoCreate) -> Video:
        """Persist a video with views, likes and dislikes zeroed."""

    @abstractmethod
    def update_video(self, video_id: int, data: Union[VideoUpdate, Changes]) -> Optional[Video]: ...

    @abstractmethod
    def delete_video(self, video_id: int) -> bool:
        """Delete a video and its comments, likes and history rows."""

    @abstractmethod
    def increment_video_views(self, video_id: int) -> Optional[Video]: ...

    @abstractmethod
    def toggle_video_ads(
        self,
        video_id: int,
        has_ads: bool,
        ad_url: Optional[str] = None,
        ad_start_time: Optional[int] = None,
        ad_skippable: Optional[bool] = None,
    ) -> Optional[Video]: ...

    # Comments
    @abstractmethod
    def get_comment(self, comment_id: int) -> Optional[Comment]: ...

    @abstractmethod
    def get_comments_by_video(self, video_id: int) -> List[Comment]:
        """Comments on a video, newest first."""

    @abstractmethod
    def create_comment(self, data: CommentCreate) -> Comment: ...

    # Subscriptions
    @abstractmethod
    def get_subscription(self, subscription_id: int) -> Optional[Subscription]: ...

    @abstractmethod
    def get_subscriptions_by_user(self, user_id: int) -> List[Subscription]: ...

    @abstractmethod
    def create_subscription(self, data: SubscriptionCreate) -> Subscription:
        """Store the subscription, then bump the channel owner's subscriber count."""

    # Likes
    @abstractmethod
    def get_liked_video(self, liked_video_id: int) -> Optional[LikedVideo]: ...

    @abstractmethod
    def get_liked_videos_by_user(self, user_id: int) -> List[LikedVideo]: ...

    @abstractmethod
    def create_liked_video(self, data: LikedVideoCreate) -> LikedVideo:
        """Store the like, then bump the video's like counter."""

    # Watch history
    @abstractmethod
    def get_video_history(self, history_id: int) -> Optional[VideoHistory]: ...

    @abstractmethod
    def get_video_history_by_user(self, user_id: int) -> List[VideoHistory]:
        """A user's history, most recently watched first."""

    @abstractmethod
    def create_video_history(self, data: VideoHistoryCreate) -> VideoHistory: ...

    @abstractmethod
    def delete_video_history(self, history_id: int) -> bool: ...

    @abstractmethod
    def clear_video_history_by_user(self, user_id: int) -> bool: ...

    # Site settings
    @abstractmethod
    def get_site_settings(self) -> Optional[SiteSettings]: ...

    @abstractmethod
    def update_site_settings(self, data: Union[SiteSettingsUpdate, Changes]) -> SiteSettings: ...

    def _check_unique(self, changes: Mapping[str, Any], user_id: Optional[int] = None) -> None:
        """Raise DuplicateUserError if another user already holds the username or email in ``changes``."""
        username = changes.get("username")
        if username:
            other = self.get_user_by_username(username)
            if other is not None and other.id != user_id:
                raise DuplicateUserError("username", username)
        email = changes.get("email")
        if email:
            other = self.get_user_by_email(email)
            if other is not None and other.id != user_id:
                raise DuplicateUserError("email", normalize_email(email))

    # Authentication
    @abstractmethod
    def _get_credentials(self, email: str) -> Optional[Tuple[User, str]]:
        """Return the user with that email and its stored password hash."""

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """
        Return the user when the password matches, otherwise None.

        Unknown email and wrong password look the same to the caller and
        cost one hash verification each.
        """
        try:
            found = self._get_credentials(normalize_email(email))
        except self.backend_errors as e:
            logger.error(f"Error authenticating user: {str(e)}", exc_info=True)
            found = None

        if found is None:
            pwd_context.dummy_verify()
            return None

        user, hashed = found
        if not verify_password(password, hashed):
            return None
        return user
