import logging

from .schemas import DashboardStats
from .storage.base import Storage

logger = logging.getLogger(__name__)


def get_dashboard_stats(storage: Storage, user_id: int) -> DashboardStats:
    """Totals for a creator's dashboard, summed over all of their videos."""
    videos = storage.get_videos_by_user(user_id)
    user = storage.get_user(user_id)
    stats = DashboardStats(
        total_videos=len(videos),
        total_views=sum(v.views or 0 for v in videos),
        total_likes=sum(v.likes or 0 for v in videos),
        subscriber_count=user.subscriber_count if user else 0,
    )
    logger.info(f"Dashboard stats for user {user_id}: {stats.model_dump()}")
    return stats
