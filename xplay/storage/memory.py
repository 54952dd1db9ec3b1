import itertools
import logging
import threading
from typing import Dict, List, Optional, Tuple

from ..schemas import (
    Channel, ChannelCreate,
    Comment, CommentCreate,
    LikedVideo, LikedVideoCreate,
    SiteSettings,
    Subscription, SubscriptionCreate,
    User, UserCreate,
    Video, VideoCreate,
    VideoHistory, VideoHistoryCreate,
    utcnow,
)
from .base import (
    Storage, ad_changes, clean_changes, default_channel, hash_password,
    most_viewed, newest_first, normalize_email,
)

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """
    Dict-backed storage for development and tests.

    Ids come from per-entity counters. One re-entrant lock guards every
    table: writes hold it for the whole read-modify-write and reads hold it
    while copying rows out, so the storage can be shared between worker
    threads without lost updates or reads failing mid-insert.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._passwords: Dict[int, str] = {}
        self._channels: Dict[int, Channel] = {}
        self._videos: Dict[int, Video] = {}
        self._comments: Dict[int, Comment] = {}
        self._subscriptions: Dict[int, Subscription] = {}
        self._liked_videos: Dict[int, LikedVideo] = {}
        self._history: Dict[int, VideoHistory] = {}
        self._site_settings = SiteSettings(created_at=utcnow(), updated_at=utcnow())
        self._ids = {
            name: itertools.count(1)
            for name in ("users", "channels", "videos", "comments",
                         "subscriptions", "liked_videos", "history")
        }

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    @staticmethod
    def _copy(record):
        return record.model_copy(deep=True) if record is not None else None

    def _copies(self, records) -> list:
        return [self._copy(r) for r in records]

    def _rows(self, table: dict) -> list:
        with self._lock:
            return list(table.values())

    def _lookup(self, table: dict, row_id: int):
        with self._lock:
            return self._copy(table.get(row_id))

    # Users
    def get_user(self, user_id: int) -> Optional[User]:
        return self._lookup(self._users, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = (username or "").lower()
        for user in self._rows(self._users):
            if user.username.lower() == wanted:
                return self._copy(user)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = normalize_email(email)
        for user in self._rows(self._users):
            if user.email == wanted:
                return self._copy(user)
        return None

    def get_all_users(self) -> List[User]:
        return self._copies(sorted(self._rows(self._users), key=lambda u: u.id))

    def create_user(self, data: UserCreate) -> User:
        with self._lock:
            email = normalize_email(data.email)
            self._check_unique({"username": data.username, "email": email})

            now = utcnow()
            user = User(
                **data.model_dump(exclude={"password", "email"}),
                email=email,
                id=self._next_id("users"),
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            self._passwords[user.id] = hash_password(data.password)
            self.create_channel(default_channel(user))
            return self._copy(user)

    def update_user(self, user_id, data):
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            changes = clean_changes(data, User, extra=("password",))
            self._check_unique(changes, user_id)
            password = changes.pop("password", None)
            if password:
                self._passwords[user_id] = hash_password(password)
            if "email" in changes:
                changes["email"] = normalize_email(changes["email"])
            updated = user.model_copy(update={**changes, "updated_at": utcnow()})
            self._users[user_id] = updated
            return self._copy(updated)

    # Channels
    def get_channel(self, channel_id: int) -> Optional[Channel]:
        return self._lookup(self._channels, channel_id)

    def get_channels_by_user(self, user_id: int) -> List[Channel]:
        return self._copies(c for c in self._rows(self._channels) if c.user_id == user_id)

    def create_channel(self, data: ChannelCreate) -> Channel:
        with self._lock:
            now = utcnow()
            channel = Channel(**data.model_dump(), id=self._next_id("channels"),
                              created_at=now, updated_at=now)
            self._channels[channel.id] = channel
            return self._copy(channel)

    def update_channel(self, channel_id, data):
        with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None:
                return None
            changes = clean_changes(data, Channel)
            updated = channel.model_copy(update={**changes, "updated_at": utcnow()})
            self._channels[channel_id] = updated
            return self._copy(updated)

    # Videos
    def _published(self, quickie: Optional[bool] = None) -> List[Video]:
        return [
            v for v in self._rows(self._videos)
            if v.is_published and (quickie is None or v.is_quickie == quickie)
        ]

    def get_video(self, video_id: int) -> Optional[Video]:
        return self._lookup(self._videos, video_id)

    def get_videos(self, limit: int = 50, offset: int = 0) -> List[Video]:
        return self._copies(newest_first(self._published())[offset:offset + limit])

    def get_videos_by_user(self, user_id: int) -> List[Video]:
        return self._copies(newest_first(v for v in self._rows(self._videos) if v.user_id == user_id))

    def get_recent_videos(self, limit: int = 8) -> List[Video]:
        return self._copies(newest_first(self._published(quickie=False))[:limit])

    def get_trending_videos(self, limit: int = 8) -> List[Video]:
        return self._copies(most_viewed(self._published(quickie=False))[:limit])

    def get_quickies(self, limit: int = 12) -> List[Video]:
        return self._copies(newest_first(self._published(quickie=True))[:limit])

    def create_video(self, data: VideoCreate) -> Video:
        with self._lock:
            now = utcnow()
            video = Video(
                **data.model_dump(),
                id=self._next_id("videos"),
                views=0,
                likes=0,
                dislikes=0,
                created_at=now,
                updated_at=now,
            )
            self._videos[video.id] = video
            return self._copy(video)

    def _update_video(self, video_id: int, changes: dict) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            updated = video.model_copy(update={**changes, "updated_at": utcnow()})
            self._videos[video_id] = updated
            return self._copy(updated)

    def update_video(self, video_id, data):
        return self._update_video(video_id, clean_changes(data, Video))

    def delete_video(self, video_id: int) -> bool:
        with self._lock:
            if self._videos.pop(video_id, None) is None:
                return False
            for table in (self._comments, self._liked_videos, self._history):
                for row_id in [k for k, row in table.items() if row.video_id == video_id]:
                    del table[row_id]
            return True

    def increment_video_views(self, video_id: int) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            return self._update_video(video_id, {"views": video.views + 1})

    def toggle_video_ads(self, video_id, has_ads, ad_url=None, ad_start_time=None, ad_skippable=None):
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            return self._update_video(
                video_id, ad_changes(video, has_ads, ad_url, ad_start_time, ad_skippable))

    # Comments
    def get_comment(self, comment_id: int) -> Optional[Comment]:
        return self._lookup(self._comments, comment_id)

    def get_comments_by_video(self, video_id: int) -> List[Comment]:
        return self._copies(newest_first(c for c in self._rows(self._comments) if c.video_id == video_id))

    def create_comment(self, data: CommentCreate) -> Comment:
        with self._lock:
            now = utcnow()
            comment = Comment(**data.model_dump(), id=self._next_id("comments"),
                              likes=0, created_at=now, updated_at=now)
            self._comments[comment.id] = comment
            return self._copy(comment)

    # Subscriptions
    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        return self._lookup(self._subscriptions, subscription_id)

    def get_subscriptions_by_user(self, user_id: int) -> List[Subscription]:
        return self._copies(s for s in self._rows(self._subscriptions) if s.subscriber_id == user_id)

    def create_subscription(self, data: SubscriptionCreate) -> Subscription:
        with self._lock:
            subscription = Subscription(**data.model_dump(), id=self._next_id("subscriptions"),
                                        created_at=utcnow())
            self._subscriptions[subscription.id] = subscription

            channel = self._channels.get(data.channel_id)
            owner = self._users.get(channel.user_id) if channel else None
            if owner is not None:
                self._users[owner.id] = owner.model_copy(
                    update={"subscriber_count": owner.subscriber_count + 1, "updated_at": utcnow()})
            else:
                logger.warning(f"Subscription {subscription.id} references unknown channel {data.channel_id}")
            return self._copy(subscription)

    # Likes
    def get_liked_video(self, liked_video_id: int) -> Optional[LikedVideo]:
        return self._lookup(self._liked_videos, liked_video_id)

    def get_liked_videos_by_user(self, user_id: int) -> List[LikedVideo]:
        return self._copies(newest_first(
            like for like in self._rows(self._liked_videos) if like.user_id == user_id))

    def create_liked_video(self, data: LikedVideoCreate) -> LikedVideo:
        with self._lock:
            liked = LikedVideo(**data.model_dump(), id=self._next_id("liked_videos"), created_at=utcnow())
            self._liked_videos[liked.id] = liked
            video = self._videos.get(data.video_id)
            if video is not None:
                self._update_video(video.id, {"likes": video.likes + 1})
            return self._copy(liked)

    # Watch history
    def get_video_history(self, history_id: int) -> Optional[VideoHistory]:
        return self._lookup(self._history, history_id)

    def get_video_history_by_user(self, user_id: int) -> List[VideoHistory]:
        return self._copies(newest_first(
            (h for h in self._rows(self._history) if h.user_id == user_id), field="watched_at"))

    def create_video_history(self, data: VideoHistoryCreate) -> VideoHistory:
        with self._lock:
            entry = VideoHistory(**data.model_dump(), id=self._next_id("history"), watched_at=utcnow())
            self._history[entry.id] = entry
            return self._copy(entry)

    def delete_video_history(self, history_id: int) -> bool:
        with self._lock:
            return self._history.pop(history_id, None) is not None

    def clear_video_history_by_user(self, user_id: int) -> bool:
        with self._lock:
            for row_id in [k for k, h in self._history.items() if h.user_id == user_id]:
                del self._history[row_id]
            return True

    # Site settings
    def get_site_settings(self) -> Optional[SiteSettings]:
        with self._lock:
            return self._copy(self._site_settings)

    def update_site_settings(self, data) -> SiteSettings:
        with self._lock:
            changes = clean_changes(data, SiteSettings)
            self._site_settings = self._site_settings.model_copy(
                update={**changes, "updated_at": utcnow()})
            return self._copy(self._site_settings)

    def _get_credentials(self, email: str) -> Optional[Tuple[User, str]]:
        user = self.get_user_by_email(email)
        if user is None:
            return None
        return user, self._passwords[user.id]
