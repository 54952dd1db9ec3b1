from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set
import logging

import numpy as np

from .schemas import RecommendationResult, Video, utcnow
from .storage.base import EPOCH, Storage

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24

# candidate pool sizes
CANDIDATE_POOL = 50
CATEGORY_POOL = 100

# personalized scoring
BASE_SCORE = 0.1
CATEGORY_MATCH = 3.0
FREQUENCY_WEIGHT = 0.5
TAG_MATCH = 1.0
VIEWS_CAP = 2.0
RECENCY_MAX = 2.0
RECENCY_DAYS = 15.0
VIEW_WEIGHT = 1
LIKE_WEIGHT = 2

# similar-video scoring
SAME_OWNER = 4.0
SHARED_CATEGORY = 2.5
SHARED_TAG = 1.0
SIMILAR_VIEWS_CAP = 1.5
SIMILAR_RECENCY_MAX = 1.0
SIMILAR_RECENCY_DAYS = 30.0

# category trending blend
TRENDING_VIEWS_WEIGHT = 0.7
TRENDING_RECENCY_WEIGHT = 0.3


@dataclass
class UserInterests:
    """What a user's history and likes say about their taste."""

    categories: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)
    viewed_video_ids: Set[int] = field(default_factory=set)
    liked_video_ids: Set[int] = field(default_factory=set)
    # category -> weighted count, likes weigh double
    frequency: Counter = field(default_factory=Counter)
    skipped: int = 0

    def absorb(self, video: Video, weight: int) -> None:
        for category in video.categories or []:
            self.categories.add(category)
            self.frequency[category] += weight
        self.tags.update(video.tags or [])


class RecommendationEngine:
    """
    Rule-based recommendations over whatever a Storage backend holds.

    The engine is stateless between calls: every request re-reads history,
    likes and a bounded candidate pool from storage. Failures never
    propagate; unresolved history/like items are counted in
    ``RecommendationResult.skipped`` and a storage outage yields an empty
    result.
    """

    def __init__(self, storage: Storage, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.clock = clock or utcnow

    def _age_days(self, videos: List[Video]) -> np.ndarray:
        now = self.clock()
        return np.array(
            [(now - (v.created_at or EPOCH)).total_seconds() / SECONDS_PER_DAY for v in videos],
            dtype=float,
        )

    @staticmethod
    def _views(videos: List[Video]) -> np.ndarray:
        return np.array([v.views or 0 for v in videos], dtype=float)

    @staticmethod
    def _top(videos: List[Video], scores: np.ndarray, limit: int) -> List[int]:
        """Ids of the best positive-scoring videos; equal scores keep pool order."""
        order = np.argsort(-scores, kind="stable")
        return [videos[i].id for i in order if scores[i] > 0][:limit]

    def _resolve(self, video_id: int, source: str) -> Optional[Video]:
        try:
            video = self.storage.get_video(video_id)
        except Exception as e:
            logger.warning(f"Skipping {source} item for video {video_id}: {str(e)}")
            return None
        if video is None:
            logger.warning(f"Skipping {source} item for missing video {video_id}")
        return video

    def get_user_interests(self, user_id: int) -> UserInterests:
        """Build the interest profile from watch history and likes."""
        interests = UserInterests()

        try:
            history = self.storage.get_video_history_by_user(user_id)
        except Exception as e:
            logger.error(f"Error fetching history for user {user_id}: {str(e)}", exc_info=True)
            return interests

        for item in history:
            interests.viewed_video_ids.add(item.video_id)
            video = self._resolve(item.video_id, "history")
            if video is None:
                interests.skipped += 1
                continue
            interests.absorb(video, VIEW_WEIGHT)

        try:
            liked = self.storage.get_liked_videos_by_user(user_id)
        except Exception as e:
            logger.error(f"Error fetching liked videos for user {user_id}: {str(e)}", exc_info=True)
            return interests

        for item in liked:
            interests.liked_video_ids.add(item.video_id)
            video = self._resolve(item.video_id, "like")
            if video is None:
                interests.skipped += 1
                continue
            interests.absorb(video, LIKE_WEIGHT)

        return interests

    def get_candidate_videos(self, exclude_ids: Iterable[int]) -> List[Video]:
        """Recent published videos the user has not watched yet."""
        excluded = set(exclude_ids)
        try:
            videos = self.storage.get_videos(CANDIDATE_POOL)
        except Exception as e:
            logger.error(f"Error getting candidate videos: {str(e)}", exc_info=True)
            return []
        return [v for v in videos if v.id not in excluded]

    def score_videos(self, candidates: List[Video], interests: UserInterests) -> np.ndarray:
        if not candidates:
            return np.zeros(0)

        matches = np.zeros(len(candidates))
        for i, video in enumerate(candidates):
            for category in video.categories or []:
                if category in interests.categories:
                    matches[i] += CATEGORY_MATCH + interests.frequency[category] * FREQUENCY_WEIGHT
            matches[i] += TAG_MATCH * sum(1 for tag in video.tags or [] if tag in interests.tags)

        popularity = np.minimum(self._views(candidates) / 1000, VIEWS_CAP)
        recency = np.maximum(0.0, RECENCY_MAX - self._age_days(candidates) / RECENCY_DAYS)
        return BASE_SCORE + matches + popularity + recency

    def similarity_scores(self, source: Video, candidates: List[Video]) -> np.ndarray:
        if not candidates:
            return np.zeros(0)

        source_categories = set(source.categories or [])
        source_tags = set(source.tags or [])
        overlap = np.zeros(len(candidates))
        for i, video in enumerate(candidates):
            if video.user_id == source.user_id:
                overlap[i] += SAME_OWNER
            overlap[i] += SHARED_CATEGORY * len(set(video.categories or []) & source_categories)
            overlap[i] += SHARED_TAG * len(set(video.tags or []) & source_tags)

        popularity = np.minimum(self._views(candidates) / 1000, SIMILAR_VIEWS_CAP)
        recency = np.maximum(
            0.0, SIMILAR_RECENCY_MAX - self._age_days(candidates) / SIMILAR_RECENCY_DAYS)
        return overlap + popularity + recency

    def get_recommendations(self, user_id: int, limit: int = 10) -> RecommendationResult:
        """Personalized "for you" ids, never including anything in the user's history."""
        try:
            interests = self.get_user_interests(user_id)
            candidates = self.get_candidate_videos(interests.viewed_video_ids)
            scores = self.score_videos(candidates, interests)
            video_ids = self._top(candidates, scores, limit)
            logger.info(
                f"Recommended {len(video_ids)} of {len(candidates)} candidates for user {user_id} "
                f"({interests.skipped} skipped)"
            )
            return RecommendationResult(video_ids=video_ids, skipped=interests.skipped)
        except Exception as e:
            logger.error(f"Error getting recommendations for user {user_id}: {str(e)}", exc_info=True)
            return RecommendationResult()

    def get_similar_videos(
        self, video_id: int, user_id: Optional[int] = None, limit: int = 5
    ) -> RecommendationResult:
        """Ids to play next after a video, excluding it and anything the viewer has watched."""
        try:
            source = self.storage.get_video(video_id)
            if source is None:
                return RecommendationResult()

            skipped = 0
            exclude = {video_id}
            if user_id is not None:
                try:
                    exclude.update(h.video_id for h in self.storage.get_video_history_by_user(user_id))
                except Exception as e:
                    # carry on as if the viewer had no history
                    logger.error(f"Error getting history for user {user_id}: {str(e)}", exc_info=True)
                    skipped += 1

            candidates = self.get_candidate_videos(exclude)
            scores = self.similarity_scores(source, candidates)
            return RecommendationResult(video_ids=self._top(candidates, scores, limit), skipped=skipped)
        except Exception as e:
            logger.error(f"Error getting similar videos for video {video_id}: {str(e)}", exc_info=True)
            return RecommendationResult()

    def get_category_recommendations(self, category: str, limit: int = 10) -> List[Video]:
        """Trending videos in a category, blending view count and recency."""
        try:
            videos = [v for v in self.storage.get_videos(CATEGORY_POOL) if category in (v.categories or [])]
            if not videos:
                return []
            created_ms = np.array(
                [(v.created_at or EPOCH).timestamp() * 1000 for v in videos], dtype=float)
            keys = TRENDING_VIEWS_WEIGHT * self._views(videos) + TRENDING_RECENCY_WEIGHT * created_ms
            order = np.argsort(-keys, kind="stable")
            return [videos[i] for i in order[:limit]]
        except Exception as e:
            logger.error(f"Error getting recommendations for category {category}: {str(e)}", exc_info=True)
            return []
