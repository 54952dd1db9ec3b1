import logging
from contextlib import contextmanager
from typing import Generator, List, Optional, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import schemas
from ..database import (
    Base,
    make_session_factory,
    User as ORMUser,
    Channel as ORMChannel,
    Video as ORMVideo,
    Comment as ORMComment,
    Subscription as ORMSubscription,
    LikedVideo as ORMLikedVideo,
    VideoHistory as ORMVideoHistory,
    SiteSettings as ORMSiteSettings,
)
from ..exceptions import DuplicateUserError
from ..schemas import utcnow
from .base import (
    Storage, ad_changes, backend_guard, clean_changes, default_channel,
    hash_password, normalize_email,
)

logger = logging.getLogger(__name__)

SITE_SETTINGS_ID = 1


class RelationalStorage(Storage):
    """
    SQLAlchemy-backed storage (PostgreSQL in production, SQLite in tests).

    Ids come from the database's own sequences and every counter is bumped
    with a single ``UPDATE ... SET x = x + 1`` so concurrent writers never
    lose increments.
    """

    name = "relational"
    backend_errors = (SQLAlchemyError,)

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = make_session_factory(engine)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @backend_guard(raises=True)
    def initialize(self) -> None:
        logger.info(f"Creating tables on {self.engine.url.render_as_string(hide_password=True)}")
        Base.metadata.create_all(self.engine)
        with self._session() as db:
            if db.get(ORMSiteSettings, SITE_SETTINGS_ID) is None:
                db.add(self._default_site_settings())
                logger.info("Created default site settings")

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _default_site_settings() -> ORMSiteSettings:
        defaults = schemas.SiteSettings().model_dump(exclude={"created_at", "updated_at"})
        now = utcnow()
        return ORMSiteSettings(**defaults, created_at=now, updated_at=now)

    def _add(self, db: Session, obj):
        db.add(obj)
        db.flush()
        db.refresh(obj)
        return obj

    def _apply(self, db: Session, orm_cls, row_id: int, changes: dict):
        obj = db.get(orm_cls, row_id)
        if obj is None:
            return None
        for key, value in changes.items():
            setattr(obj, key, value)
        obj.updated_at = utcnow()
        db.flush()
        return obj

    # Users
    @staticmethod
    def _user_by_email(db: Session, email: str) -> Optional[ORMUser]:
        return db.query(ORMUser).filter(ORMUser.email == normalize_email(email)).first()

    @staticmethod
    def _user_by_username(db: Session, username: str) -> Optional[ORMUser]:
        return db.query(ORMUser).filter(func.lower(ORMUser.username) == (username or "").lower()).first()

    @backend_guard()
    def get_user(self, user_id: int) -> Optional[schemas.User]:
        with self._session() as db:
            obj = db.get(ORMUser, user_id)
            return schemas.User.model_validate(obj) if obj else None

    @backend_guard()
    def get_user_by_username(self, username: str) -> Optional[schemas.User]:
        with self._session() as db:
            obj = self._user_by_username(db, username)
            return schemas.User.model_validate(obj) if obj else None

    @backend_guard()
    def get_user_by_email(self, email: str) -> Optional[schemas.User]:
        with self._session() as db:
            obj = self._user_by_email(db, email)
            return schemas.User.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_all_users(self) -> List[schemas.User]:
        with self._session() as db:
            return [schemas.User.model_validate(u) for u in db.query(ORMUser).order_by(ORMUser.id).all()]

    @backend_guard(raises=True)
    def create_user(self, data: schemas.UserCreate) -> schemas.User:
        email = normalize_email(data.email)
        with self._session() as db:
            if self._user_by_username(db, data.username):
                raise DuplicateUserError("username", data.username)
            if self._user_by_email(db, email):
                raise DuplicateUserError("email", email)

            now = utcnow()
            obj = self._add(db, ORMUser(
                **data.model_dump(exclude={"password", "email"}),
                email=email,
                password=hash_password(data.password),
                is_admin=False,
                is_banned=False,
                is_verified=False,
                subscriber_count=0,
                created_at=now,
                updated_at=now,
            ))
            user = schemas.User.model_validate(obj)
            channel = default_channel(user)
            self._add(db, ORMChannel(**channel.model_dump(), created_at=now, updated_at=now))
            return user

    @backend_guard()
    def update_user(self, user_id, data):
        changes = clean_changes(data, schemas.User, extra=("password",))
        if changes.get("password"):
            changes["password"] = hash_password(changes["password"])
        else:
            changes.pop("password", None)
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        with self._session() as db:
            if db.get(ORMUser, user_id) is None:
                return None
            if changes.get("username"):
                other = self._user_by_username(db, changes["username"])
                if other is not None and other.id != user_id:
                    raise DuplicateUserError("username", changes["username"])
            if changes.get("email"):
                other = self._user_by_email(db, changes["email"])
                if other is not None and other.id != user_id:
                    raise DuplicateUserError("email", changes["email"])
            obj = self._apply(db, ORMUser, user_id, changes)
            return schemas.User.model_validate(obj) if obj else None

    # Channels
    @backend_guard()
    def get_channel(self, channel_id: int) -> Optional[schemas.Channel]:
        with self._session() as db:
            obj = db.get(ORMChannel, channel_id)
            return schemas.Channel.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_channels_by_user(self, user_id: int) -> List[schemas.Channel]:
        with self._session() as db:
            rows = db.query(ORMChannel).filter(ORMChannel.user_id == user_id).order_by(ORMChannel.id).all()
            return [schemas.Channel.model_validate(c) for c in rows]

    @backend_guard(raises=True)
    def create_channel(self, data: schemas.ChannelCreate) -> schemas.Channel:
        now = utcnow()
        with self._session() as db:
            obj = self._add(db, ORMChannel(**data.model_dump(), created_at=now, updated_at=now))
            return schemas.Channel.model_validate(obj)

    @backend_guard()
    def update_channel(self, channel_id, data):
        with self._session() as db:
            obj = self._apply(db, ORMChannel, channel_id, clean_changes(data, schemas.Channel))
            return schemas.Channel.model_validate(obj) if obj else None

    # Videos
    @staticmethod
    def _published(db: Session, quickie: Optional[bool] = None):
        query = db.query(ORMVideo).filter(ORMVideo.is_published.is_(True))
        if quickie is not None:
            query = query.filter(ORMVideo.is_quickie.is_(quickie))
        return query

    @staticmethod
    def _videos(rows) -> List[schemas.Video]:
        return [schemas.Video.model_validate(v) for v in rows]

    @backend_guard()
    def get_video(self, video_id: int) -> Optional[schemas.Video]:
        with self._session() as db:
            obj = db.get(ORMVideo, video_id)
            return schemas.Video.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_videos(self, limit: int = 50, offset: int = 0) -> List[schemas.Video]:
        with self._session() as db:
            rows = (
                self._published(db)
                .order_by(ORMVideo.created_at.desc(), ORMVideo.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return self._videos(rows)

    @backend_guard(list)
    def get_videos_by_user(self, user_id: int) -> List[schemas.Video]:
        with self._session() as db:
            rows = (
                db.query(ORMVideo)
                .filter(ORMVideo.user_id == user_id)
                .order_by(ORMVideo.created_at.desc(), ORMVideo.id.desc())
                .all()
            )
            return self._videos(rows)

    @backend_guard(list)
    def get_recent_videos(self, limit: int = 8) -> List[schemas.Video]:
        with self._session() as db:
            rows = (
                self._published(db, quickie=False)
                .order_by(ORMVideo.created_at.desc(), ORMVideo.id.desc())
                .limit(limit)
                .all()
            )
            return self._videos(rows)

    @backend_guard(list)
    def get_trending_videos(self, limit: int = 8) -> List[schemas.Video]:
        with self._session() as db:
            rows = (
                self._published(db, quickie=False)
                .order_by(ORMVideo.views.desc(), ORMVideo.id.desc())
                .limit(limit)
                .all()
            )
            return self._videos(rows)

    @backend_guard(list)
    def get_quickies(self, limit: int = 12) -> List[schemas.Video]:
        with self._session() as db:
            rows = (
                self._published(db, quickie=True)
                .order_by(ORMVideo.created_at.desc(), ORMVideo.id.desc())
                .limit(limit)
                .all()
            )
            return self._videos(rows)

    @backend_guard(raises=True)
    def create_video(self, data: schemas.VideoCreate) -> schemas.Video:
        now = utcnow()
        with self._session() as db:
            obj = self._add(db, ORMVideo(
                **data.model_dump(),
                views=0,
                likes=0,
                dislikes=0,
                created_at=now,
                updated_at=now,
            ))
            return schemas.Video.model_validate(obj)

    @backend_guard()
    def update_video(self, video_id, data):
        with self._session() as db:
            obj = self._apply(db, ORMVideo, video_id, clean_changes(data, schemas.Video))
            return schemas.Video.model_validate(obj) if obj else None

    @backend_guard(False)
    def delete_video(self, video_id: int) -> bool:
        with self._session() as db:
            if db.get(ORMVideo, video_id) is None:
                return False
            for orm_cls in (ORMVideoHistory, ORMLikedVideo, ORMComment):
                db.execute(delete(orm_cls).where(orm_cls.video_id == video_id))
            result = db.execute(delete(ORMVideo).where(ORMVideo.id == video_id))
            return result.rowcount > 0

    def _bump(self, db: Session, orm_cls, row_id: int, column: str):
        counter = getattr(orm_cls, column)
        return db.execute(
            update(orm_cls)
            .where(orm_cls.id == row_id)
            .values({column: counter + 1, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )

    @backend_guard()
    def increment_video_views(self, video_id: int) -> Optional[schemas.Video]:
        with self._session() as db:
            result = self._bump(db, ORMVideo, video_id, "views")
            if result.rowcount == 0:
                return None
            return schemas.Video.model_validate(db.get(ORMVideo, video_id))

    @backend_guard()
    def toggle_video_ads(self, video_id, has_ads, ad_url=None, ad_start_time=None, ad_skippable=None):
        with self._session() as db:
            obj = db.get(ORMVideo, video_id)
            if obj is None:
                return None
            current = schemas.Video.model_validate(obj)
            obj = self._apply(db, ORMVideo, video_id,
                              ad_changes(current, has_ads, ad_url, ad_start_time, ad_skippable))
            return schemas.Video.model_validate(obj)

    # Comments
    @backend_guard()
    def get_comment(self, comment_id: int) -> Optional[schemas.Comment]:
        with self._session() as db:
            obj = db.get(ORMComment, comment_id)
            return schemas.Comment.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_comments_by_video(self, video_id: int) -> List[schemas.Comment]:
        with self._session() as db:
            rows = (
                db.query(ORMComment)
                .filter(ORMComment.video_id == video_id)
                .order_by(ORMComment.created_at.desc(), ORMComment.id.desc())
                .all()
            )
            return [schemas.Comment.model_validate(c) for c in rows]

    @backend_guard(raises=True)
    def create_comment(self, data: schemas.CommentCreate) -> schemas.Comment:
        now = utcnow()
        with self._session() as db:
            obj = self._add(db, ORMComment(**data.model_dump(), likes=0, created_at=now, updated_at=now))
            return schemas.Comment.model_validate(obj)

    # Subscriptions
    @backend_guard()
    def get_subscription(self, subscription_id: int) -> Optional[schemas.Subscription]:
        with self._session() as db:
            obj = db.get(ORMSubscription, subscription_id)
            return schemas.Subscription.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_subscriptions_by_user(self, user_id: int) -> List[schemas.Subscription]:
        with self._session() as db:
            rows = (
                db.query(ORMSubscription)
                .filter(ORMSubscription.subscriber_id == user_id)
                .order_by(ORMSubscription.id)
                .all()
            )
            return [schemas.Subscription.model_validate(s) for s in rows]

    @backend_guard(raises=True)
    def create_subscription(self, data: schemas.SubscriptionCreate) -> schemas.Subscription:
        with self._session() as db:
            obj = self._add(db, ORMSubscription(**data.model_dump(), created_at=utcnow()))
            subscription = schemas.Subscription.model_validate(obj)

        # counter bump is a second write, not part of the join-row transaction
        with self._session() as db:
            channel = db.get(ORMChannel, data.channel_id)
            if channel is None:
                logger.warning(f"Subscription {subscription.id} references unknown channel {data.channel_id}")
            else:
                db.execute(
                    update(ORMUser)
                    .where(ORMUser.id == channel.user_id)
                    .values(subscriber_count=ORMUser.subscriber_count + 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
        return subscription

    # Likes
    @backend_guard()
    def get_liked_video(self, liked_video_id: int) -> Optional[schemas.LikedVideo]:
        with self._session() as db:
            obj = db.get(ORMLikedVideo, liked_video_id)
            return schemas.LikedVideo.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_liked_videos_by_user(self, user_id: int) -> List[schemas.LikedVideo]:
        with self._session() as db:
            rows = (
                db.query(ORMLikedVideo)
                .filter(ORMLikedVideo.user_id == user_id)
                .order_by(ORMLikedVideo.created_at.desc(), ORMLikedVideo.id.desc())
                .all()
            )
            return [schemas.LikedVideo.model_validate(row) for row in rows]

    @backend_guard(raises=True)
    def create_liked_video(self, data: schemas.LikedVideoCreate) -> schemas.LikedVideo:
        with self._session() as db:
            obj = self._add(db, ORMLikedVideo(**data.model_dump(), created_at=utcnow()))
            self._bump(db, ORMVideo, data.video_id, "likes")
            return schemas.LikedVideo.model_validate(obj)

    # Watch history
    @backend_guard()
    def get_video_history(self, history_id: int) -> Optional[schemas.VideoHistory]:
        with self._session() as db:
            obj = db.get(ORMVideoHistory, history_id)
            return schemas.VideoHistory.model_validate(obj) if obj else None

    @backend_guard(list)
    def get_video_history_by_user(self, user_id: int) -> List[schemas.VideoHistory]:
        with self._session() as db:
            rows = (
                db.query(ORMVideoHistory)
                .filter(ORMVideoHistory.user_id == user_id)
                .order_by(ORMVideoHistory.watched_at.desc(), ORMVideoHistory.id.desc())
                .all()
            )
            return [schemas.VideoHistory.model_validate(h) for h in rows]

    @backend_guard(raises=True)
    def create_video_history(self, data: schemas.VideoHistoryCreate) -> schemas.VideoHistory:
        with self._session() as db:
            obj = self._add(db, ORMVideoHistory(**data.model_dump(), watched_at=utcnow()))
            return schemas.VideoHistory.model_validate(obj)

    @backend_guard(False)
    def delete_video_history(self, history_id: int) -> bool:
        with self._session() as db:
            result = db.execute(delete(ORMVideoHistory).where(ORMVideoHistory.id == history_id))
            return result.rowcount > 0

    @backend_guard(False)
    def clear_video_history_by_user(self, user_id: int) -> bool:
        with self._session() as db:
            db.execute(delete(ORMVideoHistory).where(ORMVideoHistory.user_id == user_id))
            return True

    # Site settings
    @backend_guard()
    def get_site_settings(self) -> Optional[schemas.SiteSettings]:
        with self._session() as db:
            obj = db.get(ORMSiteSettings, SITE_SETTINGS_ID)
            return schemas.SiteSettings.model_validate(obj) if obj else None

    @backend_guard(raises=True)
    def update_site_settings(self, data) -> schemas.SiteSettings:
        changes = clean_changes(data, schemas.SiteSettings)
        with self._session() as db:
            if db.get(ORMSiteSettings, SITE_SETTINGS_ID) is None:
                self._add(db, self._default_site_settings())
            obj = self._apply(db, ORMSiteSettings, SITE_SETTINGS_ID, changes)
            return schemas.SiteSettings.model_validate(obj)

    def _get_credentials(self, email: str) -> Optional[Tuple[schemas.User, str]]:
        with self._session() as db:
            obj = self._user_by_email(db, email)
            if obj is None:
                return None
            return schemas.User.model_validate(obj), obj.password
