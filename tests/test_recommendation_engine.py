from datetime import datetime, timedelta, timezone

import pytest

from xplay.recommendation_engine import RecommendationEngine
from xplay.schemas import (
    LikedVideo, LikedVideoCreate, UserCreate, Video, VideoCreate, VideoHistory, VideoHistoryCreate,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make(video_id, owner=1, categories=(), tags=(), views=0, age_days=60.0):
    return Video(
        id=video_id,
        user_id=owner,
        title=f"Video {video_id}",
        file_path=f"videos/{video_id}.mp4",
        categories=list(categories),
        tags=list(tags),
        views=views,
        created_at=NOW - timedelta(days=age_days),
    )


class StubStorage:
    """Just the reads the engine needs, over fixed data."""

    def __init__(self, videos, pool=None, history=(), likes=(), broken_ids=()):
        self.videos = {v.id: v for v in videos}
        self.pool = list(videos if pool is None else pool)
        self.history = list(history)
        self.likes = list(likes)
        self.broken_ids = set(broken_ids)

    def get_video(self, video_id):
        if video_id in self.broken_ids:
            raise RuntimeError("backend timeout")
        return self.videos.get(video_id)

    def get_videos(self, limit=50, offset=0):
        return self.pool[offset:offset + limit]

    def get_video_history_by_user(self, user_id):
        return [h for h in self.history if h.user_id == user_id]

    def get_liked_videos_by_user(self, user_id):
        return [like for like in self.likes if like.user_id == user_id]


class FailingStorage:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ConnectionError("storage unreachable")

        return fail


def watched(*video_ids, user_id=7):
    return [VideoHistory(id=i, user_id=user_id, video_id=v) for i, v in enumerate(video_ids, 1)]


def liked(*video_ids, user_id=7):
    return [LikedVideo(id=i, user_id=user_id, video_id=v) for i, v in enumerate(video_ids, 1)]


@pytest.fixture
def clock():
    return lambda: NOW


# Personalized

def test_scores_follow_interest_popularity_and_recency(clock):
    seen = make(1, categories=["amateur"], tags=["beach"], age_days=0)
    match = make(2, categories=["amateur"], tags=["beach"], age_days=30)    # 0.1 + 3 + 0.5 + 1 = 4.6
    popular = make(3, views=5000, age_days=0)                               # 0.1 + 2 + 2 = 4.1
    stale = make(4, age_days=60)                                            # 0.1
    storage = StubStorage([seen, match, popular, stale], history=watched(1))

    result = RecommendationEngine(storage, clock=clock).get_recommendations(7)

    assert result.video_ids == [2, 3, 4]
    assert result.skipped == 0


def test_likes_weigh_double(clock):
    history_video = make(1, categories=["amateur"])
    liked_video = make(2, categories=["solo"])
    amateur = make(3, categories=["amateur"])    # 0.1 + 3 + 0.5
    solo = make(4, categories=["solo"])          # 0.1 + 3 + 1.0
    storage = StubStorage([history_video, liked_video, amateur, solo], pool=[amateur, solo],
                          history=watched(1), likes=liked(2))

    result = RecommendationEngine(storage, clock=clock).get_recommendations(7)

    assert result.video_ids == [4, 3]


def test_limit_and_ties_keep_pool_order(clock):
    storage = StubStorage([make(i) for i in range(1, 6)])

    result = RecommendationEngine(storage, clock=clock).get_recommendations(7, limit=3)

    assert result.video_ids == [1, 2, 3]


def test_unresolved_items_are_skipped_not_fatal(clock):
    good = make(1, categories=["teen"])
    candidate = make(2, categories=["teen"])
    storage = StubStorage([good, candidate], pool=[good, candidate],
                          history=watched(1, 99, 50), likes=liked(50), broken_ids={50})

    result = RecommendationEngine(storage, clock=clock).get_recommendations(7)

    assert result.video_ids == [2]
    assert result.skipped == 3


def test_total_failure_returns_empty_result():
    result = RecommendationEngine(FailingStorage()).get_recommendations(7)

    assert result.video_ids == []
    assert result.skipped == 0


def test_recommendations_never_include_watched_videos(memory_storage):
    user = memory_storage.create_user(UserCreate(username="viewer", email="viewer@example.com", password="pw"))
    videos = [
        memory_storage.create_video(VideoCreate(user_id=user.id, title=f"Clip {i}", file_path=f"{i}.mp4",
                                                categories=["amateur"]))
        for i in range(6)
    ]
    for video in videos[:3]:
        memory_storage.create_video_history(VideoHistoryCreate(user_id=user.id, video_id=video.id))
    memory_storage.create_liked_video(LikedVideoCreate(user_id=user.id, video_id=videos[3].id))

    result = RecommendationEngine(memory_storage).get_recommendations(user.id)

    watched_ids = {v.id for v in videos[:3]}
    assert result.video_ids
    assert not watched_ids & set(result.video_ids)
    assert set(result.video_ids) == {v.id for v in videos[3:]}


# Similar videos

def test_same_owner_outranks_extra_shared_category(clock):
    source = make(1, owner=1, categories=["amateur", "couples"])
    same_owner = make(2, owner=1, categories=["amateur"])                 # 4.0 + 2.5 = 6.5
    other_owner = make(3, owner=2, categories=["amateur", "couples"])     # 2 * 2.5 = 5.0
    storage = StubStorage([source, other_owner, same_owner])

    result = RecommendationEngine(storage, clock=clock).get_similar_videos(1)

    assert result.video_ids == [2, 3]


def test_similar_excludes_source_and_viewer_history(clock):
    source = make(1, categories=["solo"])
    seen = make(2, categories=["solo"])
    fresh = make(3, categories=["solo"])
    storage = StubStorage([source, seen, fresh], history=watched(2))

    engine = RecommendationEngine(storage, clock=clock)

    assert engine.get_similar_videos(1, user_id=7).video_ids == [3]
    assert engine.get_similar_videos(1).video_ids == [2, 3]


def test_similar_drops_zero_scores_and_respects_limit(clock):
    source = make(1, owner=1, categories=["solo"])
    unrelated = make(2, owner=2, age_days=90)
    related = [make(i, owner=1) for i in range(3, 10)]
    storage = StubStorage([source, unrelated, *related])

    result = RecommendationEngine(storage, clock=clock).get_similar_videos(1)

    assert result.video_ids == [3, 4, 5, 6, 7]


def test_similar_for_missing_source_is_empty(clock):
    storage = StubStorage([make(1)])

    assert RecommendationEngine(storage, clock=clock).get_similar_videos(42).video_ids == []
    assert RecommendationEngine(FailingStorage()).get_similar_videos(1).video_ids == []


# Category trending

def test_category_recommendations_blend_views_and_recency(clock):
    older_popular = make(1, categories=["asian"], views=100, age_days=1)
    newer = make(2, categories=["asian"], views=0, age_days=0)
    same_age_more_views = make(3, categories=["asian"], views=50, age_days=0)
    other = make(4, categories=["ebony"], views=10_000, age_days=0)
    storage = StubStorage([older_popular, newer, same_age_more_views, other])

    engine = RecommendationEngine(storage, clock=clock)

    assert [v.id for v in engine.get_category_recommendations("asian")] == [3, 2, 1]
    assert [v.id for v in engine.get_category_recommendations("asian", limit=1)] == [3]
    assert engine.get_category_recommendations("lesbian") == []


def test_category_recommendations_failure_is_empty():
    assert RecommendationEngine(FailingStorage()).get_category_recommendations("asian") == []
