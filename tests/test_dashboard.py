from xplay.dashboard import get_dashboard_stats
from xplay.schemas import LikedVideoCreate, SubscriptionCreate


def test_dashboard_totals(storage, make_user, make_video):
    creator = make_user(username="creator")
    fan = make_user(username="fan")
    first = make_video(creator.id, title="First")
    make_video(creator.id, title="Draft", is_published=False)
    make_video(fan.id, title="Not mine")
    for _ in range(4):
        storage.increment_video_views(first.id)
    storage.create_liked_video(LikedVideoCreate(user_id=fan.id, video_id=first.id))
    channel = storage.get_channels_by_user(creator.id)[0]
    storage.create_subscription(SubscriptionCreate(subscriber_id=fan.id, channel_id=channel.id))

    stats = get_dashboard_stats(storage, creator.id)

    assert stats.total_videos == 2
    assert stats.total_views == 4
    assert stats.total_likes == 1
    assert stats.subscriber_count == 1


def test_dashboard_for_unknown_user(memory_storage):
    stats = get_dashboard_stats(memory_storage, 404)

    assert stats.model_dump() == {
        "total_videos": 0, "total_views": 0, "total_likes": 0, "subscriber_count": 0,
    }
