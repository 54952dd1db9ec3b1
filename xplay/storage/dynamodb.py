"""
DynamoDB storage backend.

One table per entity (``<prefix>Users``, ``<prefix>Videos``...), keyed by a
numeric ``id`` with global secondary indexes for the foreign-key lookups.
Ids are drawn from an atomic counter item in ``<prefix>Counters`` and
written with ``attribute_not_exists(id)``, retrying on collision, so two
concurrent creates can never end up with the same id.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .. import schemas
from ..exceptions import DuplicateUserError, StorageError
from ..schemas import utcnow
from .base import (
    Storage, ad_changes, backend_guard, clean_changes, default_channel,
    hash_password, most_viewed, newest_first, normalize_email,
)

logger = logging.getLogger(__name__)

SITE_SETTINGS_ID = 1
MAX_ID_ATTEMPTS = 5

# table suffix -> (name, key attribute, key type) of each global secondary index
TABLES: Dict[str, List[Tuple[str, str, str]]] = {
    "Users": [("EmailIndex", "email", "S"), ("UsernameIndex", "username_lower", "S")],
    "Channels": [("UserIdIndex", "user_id", "N")],
    "Videos": [("UserIdIndex", "user_id", "N")],
    "Comments": [("VideoIdIndex", "video_id", "N")],
    "Subscriptions": [("UserIdIndex", "subscriber_id", "N")],
    "LikedVideos": [("UserIdIndex", "user_id", "N"), ("VideoIdIndex", "video_id", "N")],
    "VideoHistory": [("UserIdIndex", "user_id", "N"), ("VideoIdIndex", "video_id", "N")],
    "SiteSettings": [],
}
COUNTERS_TABLE = "Counters"


def _serialize(value: Any) -> Any:
    """Convert python values into types the boto3 serializer accepts."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(v) for v in value]
    return value


def _deserialize(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _deserialize(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_deserialize(v) for v in value]
    return value


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def table_definition(full_name: str, indexes: List[Tuple[str, str, str]], hash_key: str = "id",
                     hash_type: str = "N") -> Dict[str, Any]:
    attributes = {hash_key: hash_type}
    for _, attr, attr_type in indexes:
        attributes[attr] = attr_type
    params: Dict[str, Any] = {
        "TableName": full_name,
        "BillingMode": "PAY_PER_REQUEST",
        "KeySchema": [{"AttributeName": hash_key, "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_type} for name, attr_type in attributes.items()
        ],
    }
    if indexes:
        params["GlobalSecondaryIndexes"] = [
            {
                "IndexName": index_name,
                "KeySchema": [{"AttributeName": attr, "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
            for index_name, attr, _ in indexes
        ]
    return params


class DynamoDBStorage(Storage):
    name = "dynamodb"
    backend_errors = (ClientError, BotoCoreError)

    def __init__(
        self,
        region: str = "us-east-1",
        table_prefix: str = "XPlayHD_",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        init_timeout: float = 5.0,
    ):
        session = boto3.session.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region,
        )
        self.table_prefix = table_prefix
        self.init_timeout = init_timeout
        self._resource = session.resource("dynamodb", endpoint_url=endpoint_url)
        # setup calls must not hang startup
        self._init_client = session.client(
            "dynamodb",
            endpoint_url=endpoint_url,
            config=Config(
                connect_timeout=init_timeout,
                read_timeout=init_timeout,
                retries={"max_attempts": 1},
            ),
        )
        self._tables: Dict[str, Any] = {}

    def _table(self, suffix: str):
        if suffix not in self._tables:
            self._tables[suffix] = self._resource.Table(f"{self.table_prefix}{suffix}")
        return self._tables[suffix]

    # Setup
    def initialize(self) -> None:
        """
        Create missing tables and the site-settings item.

        A slow or unreachable endpoint is logged and skipped so the process
        still starts; the first real request will surface the failure.
        """
        try:
            existing = set()
            for page in self._init_client.get_paginator("list_tables").paginate():
                existing.update(page.get("TableNames", []))
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                f"Could not list DynamoDB tables within {self.init_timeout}s, "
                f"continuing without confirming: {str(e)}"
            )
            return

        wanted = [(suffix, table_definition(f"{self.table_prefix}{suffix}", indexes))
                  for suffix, indexes in TABLES.items()]
        wanted.append((COUNTERS_TABLE, table_definition(
            f"{self.table_prefix}{COUNTERS_TABLE}", [], hash_key="name", hash_type="S")))

        for suffix, params in wanted:
            if params["TableName"] in existing:
                continue
            self._create_table(params)

        try:
            self._table("SiteSettings").put_item(
                Item=self._to_item(self._default_site_settings()),
                ConditionExpression="attribute_not_exists(#pk)",
                ExpressionAttributeNames={"#pk": "id"},
            )
            logger.info("Created default site settings")
        except ClientError as e:
            if _error_code(e) != "ConditionalCheckFailedException":
                logger.warning(f"Could not seed site settings: {str(e)}")
        except BotoCoreError as e:
            logger.warning(f"Could not seed site settings: {str(e)}")

        logger.info("DynamoDB storage initialized")

    def _create_table(self, params: Dict[str, Any]) -> None:
        name = params["TableName"]
        try:
            self._init_client.create_table(**params)
            logger.info(f"Table {name} created")
        except ClientError as e:
            if _error_code(e) == "ResourceInUseException":
                logger.info(f"Table {name} already exists")
                return
            logger.error(f"Failed to create table {name}: {str(e)}")
            return
        except BotoCoreError as e:
            logger.warning(f"Create table {name} did not complete within {self.init_timeout}s: {str(e)}")
            return

        try:
            self._init_client.get_waiter("table_exists").wait(
                TableName=name,
                WaiterConfig={"Delay": 1, "MaxAttempts": max(1, int(self.init_timeout))},
            )
        except BotoCoreError as e:
            logger.warning(f"Table {name} not active yet, continuing: {str(e)}")

    # Item helpers
    @staticmethod
    def _to_item(model) -> Dict[str, Any]:
        return _serialize(model.model_dump())

    @staticmethod
    def _from_item(item: Optional[Dict[str, Any]], model):
        if not item:
            return None
        return model.model_validate(_deserialize(item))

    @staticmethod
    def _default_site_settings() -> schemas.SiteSettings:
        now = utcnow()
        return schemas.SiteSettings(created_at=now, updated_at=now)

    def _get(self, suffix: str, row_id: int) -> Optional[Dict[str, Any]]:
        return self._table(suffix).get_item(Key={"id": row_id}).get("Item")

    def _query_all(self, suffix: str, index: str, attr: str, value: Any) -> List[Dict[str, Any]]:
        table = self._table(suffix)
        kwargs = {"IndexName": index, "KeyConditionExpression": Key(attr).eq(value)}
        items = []
        while True:
            response = table.query(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                return items
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def _scan_all(self, suffix: str, condition=None) -> List[Dict[str, Any]]:
        table = self._table(suffix)
        kwargs = {"FilterExpression": condition} if condition is not None else {}
        items = []
        while True:
            response = table.scan(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                return items
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def _next_id(self, suffix: str) -> int:
        response = self._table(COUNTERS_TABLE).update_item(
            Key={"name": suffix},
            UpdateExpression="ADD #seq :one",
            ExpressionAttributeNames={"#seq": "seq"},
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(response["Attributes"]["seq"])

    def _put_new(self, suffix: str, build: Callable[[int], Dict[str, Any]]) -> Dict[str, Any]:
        """Insert under a fresh counter id, skipping ids already present (e.g. from imported data)."""
        for _ in range(MAX_ID_ATTEMPTS):
            item = build(self._next_id(suffix))
            try:
                self._table(suffix).put_item(
                    Item=item,
                    ConditionExpression="attribute_not_exists(#pk)",
                    ExpressionAttributeNames={"#pk": "id"},
                )
                return item
            except ClientError as e:
                if _error_code(e) != "ConditionalCheckFailedException":
                    raise
                logger.warning(f"Id {item['id']} already taken in {suffix}, retrying")
        raise StorageError(f"Could not allocate an id in {suffix} after {MAX_ID_ATTEMPTS} attempts")

    def _update(self, suffix: str, row_id: int, changes: Dict[str, Any],
                add: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
        changes = {**changes, "updated_at": utcnow()}
        names: Dict[str, str] = {"#pk": "id"}
        values: Dict[str, Any] = {}
        sets = []
        for i, (field, value) in enumerate(changes.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = _serialize(value)
            sets.append(f"#f{i} = :v{i}")
        expression = "SET " + ", ".join(sets)
        if add:
            adds = []
            for i, (field, amount) in enumerate(add.items()):
                names[f"#a{i}"] = field
                values[f":a{i}"] = amount
                adds.append(f"#a{i} :a{i}")
            expression += " ADD " + ", ".join(adds)
        try:
            response = self._table(suffix).update_item(
                Key={"id": row_id},
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(#pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        return response.get("Attributes")

    def _delete_many(self, suffix: str, items: List[Dict[str, Any]]) -> None:
        with self._table(suffix).batch_writer() as batch:
            for item in items:
                batch.delete_item(Key={"id": item["id"]})

    # Users
    @backend_guard()
    def get_user(self, user_id: int) -> Optional[schemas.User]:
        return self._from_item(self._get("Users", user_id), schemas.User)

    @backend_guard()
    def get_user_by_username(self, username: str) -> Optional[schemas.User]:
        items = self._query_all("Users", "UsernameIndex", "username_lower", (username or "").lower())
        return self._from_item(items[0], schemas.User) if items else None

    @backend_guard()
    def get_user_by_email(self, email: str) -> Optional[schemas.User]:
        items = self._query_all("Users", "EmailIndex", "email", normalize_email(email))
        return self._from_item(items[0], schemas.User) if items else None

    @backend_guard(list)
    def get_all_users(self) -> List[schemas.User]:
        users = [self._from_item(i, schemas.User) for i in self._scan_all("Users")]
        return sorted(users, key=lambda u: u.id)

    @backend_guard(raises=True)
    def create_user(self, data: schemas.UserCreate) -> schemas.User:
        email = normalize_email(data.email)
        # index lookups are not transactional with the put below
        if self._query_all("Users", "UsernameIndex", "username_lower", data.username.lower()):
            raise DuplicateUserError("username", data.username)
        if self._query_all("Users", "EmailIndex", "email", email):
            raise DuplicateUserError("email", email)

        now = utcnow()

        def build(new_id: int) -> Dict[str, Any]:
            user = schemas.User(
                **data.model_dump(exclude={"password", "email"}),
                email=email,
                id=new_id,
                created_at=now,
                updated_at=now,
            )
            return {
                **self._to_item(user),
                "username_lower": data.username.lower(),
                "password": hash_password(data.password),
            }

        user = self._from_item(self._put_new("Users", build), schemas.User)
        self.create_channel(default_channel(user))
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
        # best-effort, like the check in create_user
        self._check_unique(changes, user_id)
        if "username" in changes:
            changes["username_lower"] = changes["username"].lower()
        return self._from_item(self._update("Users", user_id, changes), schemas.User)

    # Channels
    @backend_guard()
    def get_channel(self, channel_id: int) -> Optional[schemas.Channel]:
        return self._from_item(self._get("Channels", channel_id), schemas.Channel)

    @backend_guard(list)
    def get_channels_by_user(self, user_id: int) -> List[schemas.Channel]:
        items = self._query_all("Channels", "UserIdIndex", "user_id", user_id)
        return sorted((self._from_item(i, schemas.Channel) for i in items), key=lambda c: c.id)

    @backend_guard(raises=True)
    def create_channel(self, data: schemas.ChannelCreate) -> schemas.Channel:
        now = utcnow()
        item = self._put_new("Channels", lambda new_id: self._to_item(
            schemas.Channel(**data.model_dump(), id=new_id, created_at=now, updated_at=now)))
        return self._from_item(item, schemas.Channel)

    @backend_guard()
    def update_channel(self, channel_id, data):
        changes = clean_changes(data, schemas.Channel)
        return self._from_item(self._update("Channels", channel_id, changes), schemas.Channel)

    # Videos
    def _published(self, quickie: Optional[bool] = None) -> List[schemas.Video]:
        condition = Attr("is_published").eq(True)
        if quickie is not None:
            condition = condition & Attr("is_quickie").eq(quickie)
        return [self._from_item(i, schemas.Video) for i in self._scan_all("Videos", condition)]

    @backend_guard()
    def get_video(self, video_id: int) -> Optional[schemas.Video]:
        return self._from_item(self._get("Videos", video_id), schemas.Video)

    @backend_guard(list)
    def get_videos(self, limit: int = 50, offset: int = 0) -> List[schemas.Video]:
        return newest_first(self._published())[offset:offset + limit]

    @backend_guard(list)
    def get_videos_by_user(self, user_id: int) -> List[schemas.Video]:
        items = self._query_all("Videos", "UserIdIndex", "user_id", user_id)
        return newest_first(self._from_item(i, schemas.Video) for i in items)

    @backend_guard(list)
    def get_recent_videos(self, limit: int = 8) -> List[schemas.Video]:
        return newest_first(self._published(quickie=False))[:limit]

    @backend_guard(list)
    def get_trending_videos(self, limit: int = 8) -> List[schemas.Video]:
        return most_viewed(self._published(quickie=False))[:limit]

    @backend_guard(list)
    def get_quickies(self, limit: int = 12) -> List[schemas.Video]:
        return newest_first(self._published(quickie=True))[:limit]

    @backend_guard(raises=True)
    def create_video(self, data: schemas.VideoCreate) -> schemas.Video:
        now = utcnow()
        item = self._put_new("Videos", lambda new_id: self._to_item(schemas.Video(
            **data.model_dump(),
            id=new_id,
            views=0,
            likes=0,
            dislikes=0,
            created_at=now,
            updated_at=now,
        )))
        return self._from_item(item, schemas.Video)

    @backend_guard()
    def update_video(self, video_id, data):
        changes = clean_changes(data, schemas.Video)
        return self._from_item(self._update("Videos", video_id, changes), schemas.Video)

    @backend_guard(False)
    def delete_video(self, video_id: int) -> bool:
        if self._get("Videos", video_id) is None:
            return False
        for suffix in ("Comments", "LikedVideos", "VideoHistory"):
            self._delete_many(suffix, self._query_all(suffix, "VideoIdIndex", "video_id", video_id))
        response = self._table("Videos").delete_item(Key={"id": video_id}, ReturnValues="ALL_OLD")
        return "Attributes" in response

    @backend_guard()
    def increment_video_views(self, video_id: int) -> Optional[schemas.Video]:
        item = self._update("Videos", video_id, {}, add={"views": 1})
        return self._from_item(item, schemas.Video)

    @backend_guard()
    def toggle_video_ads(self, video_id, has_ads, ad_url=None, ad_start_time=None, ad_skippable=None):
        video = self._from_item(self._get("Videos", video_id), schemas.Video)
        if video is None:
            return None
        changes = ad_changes(video, has_ads, ad_url, ad_start_time, ad_skippable)
        return self._from_item(self._update("Videos", video_id, changes), schemas.Video)

    # Comments
    @backend_guard()
    def get_comment(self, comment_id: int) -> Optional[schemas.Comment]:
        return self._from_item(self._get("Comments", comment_id), schemas.Comment)

    @backend_guard(list)
    def get_comments_by_video(self, video_id: int) -> List[schemas.Comment]:
        items = self._query_all("Comments", "VideoIdIndex", "video_id", video_id)
        return newest_first(self._from_item(i, schemas.Comment) for i in items)

    @backend_guard(raises=True)
    def create_comment(self, data: schemas.CommentCreate) -> schemas.Comment:
        now = utcnow()
        item = self._put_new("Comments", lambda new_id: self._to_item(
            schemas.Comment(**data.model_dump(), id=new_id, likes=0, created_at=now, updated_at=now)))
        return self._from_item(item, schemas.Comment)

    # Subscriptions
    @backend_guard()
    def get_subscription(self, subscription_id: int) -> Optional[schemas.Subscription]:
        return self._from_item(self._get("Subscriptions", subscription_id), schemas.Subscription)

    @backend_guard(list)
    def get_subscriptions_by_user(self, user_id: int) -> List[schemas.Subscription]:
        items = self._query_all("Subscriptions", "UserIdIndex", "subscriber_id", user_id)
        return sorted((self._from_item(i, schemas.Subscription) for i in items), key=lambda s: s.id)

    @backend_guard(raises=True)
    def create_subscription(self, data: schemas.SubscriptionCreate) -> schemas.Subscription:
        item = self._put_new("Subscriptions", lambda new_id: self._to_item(
            schemas.Subscription(**data.model_dump(), id=new_id, created_at=utcnow())))
        subscription = self._from_item(item, schemas.Subscription)

        channel = self._get("Channels", data.channel_id)
        if channel is None:
            logger.warning(f"Subscription {subscription.id} references unknown channel {data.channel_id}")
        else:
            self._update("Users", int(channel["user_id"]), {}, add={"subscriber_count": 1})
        return subscription

    # Likes
    @backend_guard()
    def get_liked_video(self, liked_video_id: int) -> Optional[schemas.LikedVideo]:
        return self._from_item(self._get("LikedVideos", liked_video_id), schemas.LikedVideo)

    @backend_guard(list)
    def get_liked_videos_by_user(self, user_id: int) -> List[schemas.LikedVideo]:
        items = self._query_all("LikedVideos", "UserIdIndex", "user_id", user_id)
        return newest_first(self._from_item(i, schemas.LikedVideo) for i in items)

    @backend_guard(raises=True)
    def create_liked_video(self, data: schemas.LikedVideoCreate) -> schemas.LikedVideo:
        item = self._put_new("LikedVideos", lambda new_id: self._to_item(
            schemas.LikedVideo(**data.model_dump(), id=new_id, created_at=utcnow())))
        self._update("Videos", data.video_id, {}, add={"likes": 1})
        return self._from_item(item, schemas.LikedVideo)

    # Watch history
    @backend_guard()
    def get_video_history(self, history_id: int) -> Optional[schemas.VideoHistory]:
        return self._from_item(self._get("VideoHistory", history_id), schemas.VideoHistory)

    @backend_guard(list)
    def get_video_history_by_user(self, user_id: int) -> List[schemas.VideoHistory]:
        items = self._query_all("VideoHistory", "UserIdIndex", "user_id", user_id)
        return newest_first((self._from_item(i, schemas.VideoHistory) for i in items), field="watched_at")

    @backend_guard(raises=True)
    def create_video_history(self, data: schemas.VideoHistoryCreate) -> schemas.VideoHistory:
        item = self._put_new("VideoHistory", lambda new_id: self._to_item(
            schemas.VideoHistory(**data.model_dump(), id=new_id, watched_at=utcnow())))
        return self._from_item(item, schemas.VideoHistory)

    @backend_guard(False)
    def delete_video_history(self, history_id: int) -> bool:
        response = self._table("VideoHistory").delete_item(Key={"id": history_id}, ReturnValues="ALL_OLD")
        return "Attributes" in response

    @backend_guard(False)
    def clear_video_history_by_user(self, user_id: int) -> bool:
        self._delete_many("VideoHistory", self._query_all("VideoHistory", "UserIdIndex", "user_id", user_id))
        return True

    # Site settings
    @backend_guard()
    def get_site_settings(self) -> Optional[schemas.SiteSettings]:
        return self._from_item(self._get("SiteSettings", SITE_SETTINGS_ID), schemas.SiteSettings)

    @backend_guard(raises=True)
    def update_site_settings(self, data) -> schemas.SiteSettings:
        changes = clean_changes(data, schemas.SiteSettings)
        current = self._from_item(self._get("SiteSettings", SITE_SETTINGS_ID), schemas.SiteSettings)
        if current is None:
            current = self._default_site_settings()
        updated = current.model_copy(update={**changes, "id": SITE_SETTINGS_ID, "updated_at": utcnow()})
        self._table("SiteSettings").put_item(Item=self._to_item(updated))
        return updated

    def _get_credentials(self, email: str) -> Optional[Tuple[schemas.User, str]]:
        items = self._query_all("Users", "EmailIndex", "email", normalize_email(email))
        if not items:
            return None
        return self._from_item(items[0], schemas.User), items[0].get("password")
