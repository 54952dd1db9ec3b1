from types import SimpleNamespace

import pytest

from xplay import schemas


@pytest.mark.parametrize(
    "model",
    [schemas.User, schemas.Channel, schemas.Video, schemas.Comment, schemas.Subscription,
     schemas.LikedVideo, schemas.VideoHistory, schemas.SiteSettings],
)
def test_entities_read_from_attributes_without_legacy_config(model):
    assert model.model_config.get("from_attributes") is True
    assert "Config" not in vars(model)


def test_user_validates_from_orm_like_object():
    row = SimpleNamespace(
        id=3, username="zoe", email="zoe@example.com", display_name=None, profile_image=None, bio=None,
        is_admin=False, is_banned=False, is_verified=True, subscriber_count=4,
        created_at=None, updated_at=None, password="hash",
    )

    user = schemas.User.model_validate(row)

    assert (user.id, user.username, user.subscriber_count) == (3, "zoe", 4)
    assert "password" not in user.model_dump()
