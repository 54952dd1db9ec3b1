from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite and some drivers hand back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]

ContentType = Literal["quickie", "standard"]
DurationCategory = Literal["minute", "short", "medium", "long", "unknown"]


# Users
class UserBase(BaseModel):
    username: str
    email: str
    display_name: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None


class UserCreate(UserBase):
    password: str


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    is_admin: Optional[bool] = None
    is_banned: Optional[bool] = None
    is_verified: Optional[bool] = None


class User(UserBase):
    """A user as seen by callers; the password hash never leaves the backend."""

    id: int
    is_admin: bool = False
    is_banned: bool = False
    is_verified: bool = False
    subscriber_count: int = 0
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Channels
class ChannelBase(BaseModel):
    name: str
    description: Optional[str] = None
    banner_image: Optional[str] = None


class ChannelCreate(ChannelBase):
    user_id: int


class ChannelUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    banner_image: Optional[str] = None


class Channel(ChannelBase):
    id: int
    user_id: int
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Videos
class VideoBase(BaseModel):
    title: str
    description: Optional[str] = None
    # opaque references: object-storage keys or local paths
    file_path: str
    thumbnail_path: Optional[str] = None
    duration: Optional[int] = None
    categories: List[str] = []
    tags: List[str] = []
    is_quickie: bool = False
    is_published: bool = True
    has_ads: bool = False
    ad_url: Optional[str] = None
    ad_start_time: Optional[int] = None
    ad_skippable: bool = True


class VideoCreate(VideoBase):
    user_id: int


class VideoUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    file_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    duration: Optional[int] = None
    categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    is_quickie: Optional[bool] = None
    is_published: Optional[bool] = None


class Video(VideoBase):
    id: int
    user_id: int
    views: int = 0
    likes: int = 0
    dislikes: int = 0
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Comments
class CommentCreate(BaseModel):
    video_id: int
    user_id: int
    content: str
    # accepted and stored, never interpreted as a thread
    parent_id: Optional[int] = None


class Comment(CommentCreate):
    id: int
    likes: int = 0
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Subscriptions
class SubscriptionCreate(BaseModel):
    subscriber_id: int
    channel_id: int


class Subscription(SubscriptionCreate):
    id: int
    created_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Likes
class LikedVideoCreate(BaseModel):
    user_id: int
    video_id: int


class LikedVideo(LikedVideoCreate):
    id: int
    created_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Watch history
class VideoHistoryCreate(BaseModel):
    user_id: int
    video_id: int
    watch_duration: Optional[int] = None


class VideoHistory(VideoHistoryCreate):
    id: int
    watched_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Site settings (singleton, id is always 1)
class SiteSettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    site_description: Optional[str] = None
    logo: Optional[str] = None
    theme: Optional[str] = None
    ads_enabled: Optional[bool] = None
    global_ad_url: Optional[str] = None
    site_ad_urls: Optional[List[str]] = None
    site_ad_positions: Optional[List[str]] = None
    intro_video_enabled: Optional[bool] = None
    intro_video_url: Optional[str] = None
    intro_video_duration: Optional[int] = None


class SiteSettings(BaseModel):
    id: int = 1
    site_name: str = "XPlayHD"
    site_description: Optional[str] = "Adult Video Streaming Platform"
    logo: Optional[str] = None
    theme: str = "dark"
    ads_enabled: bool = False
    global_ad_url: Optional[str] = None
    site_ad_urls: List[str] = []
    site_ad_positions: List[str] = []
    intro_video_enabled: bool = False
    intro_video_url: Optional[str] = None
    intro_video_duration: int = 0
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


# Service results
class TaggingResult(BaseModel):
    categories: List[str] = []
    tags: List[str] = []
    content_type: ContentType = "standard"
    duration_category: DurationCategory = "unknown"

    @property
    def is_quickie(self) -> bool:
        return self.content_type == "quickie"


class RecommendationResult(BaseModel):
    video_ids: List[int] = []
    # history/like entries that could not be resolved while profiling
    skipped: int = 0


class DashboardStats(BaseModel):
    total_videos: int = 0
    total_views: int = 0
    total_likes: int = 0
    subscriber_count: int = 0
