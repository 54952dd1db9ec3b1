import logging

import pytest
from moto import mock_aws

from xplay.database import make_engine
from xplay.exceptions import StorageError
from xplay.schemas import UserCreate, VideoCreate, VideoUpdate
from xplay.storage import DynamoDBStorage, RelationalStorage


@pytest.fixture
def broken_relational(tmp_path):
    # parent directory does not exist, so every connection attempt fails
    return RelationalStorage(make_engine(f"sqlite:///{tmp_path}/missing/dir/xplay.db"))


@pytest.fixture
def tableless_dynamodb(aws_credentials):
    with mock_aws():
        yield DynamoDBStorage(region="us-east-1", table_prefix="Missing_")


@pytest.fixture(params=["broken_relational", "tableless_dynamodb"])
def broken_storage(request):
    return request.getfixturevalue(request.param)


def test_reads_degrade_to_empty_results(broken_storage, caplog):
    with caplog.at_level(logging.ERROR):
        assert broken_storage.get_video(1) is None
        assert broken_storage.get_user_by_email("a@example.com") is None
        assert broken_storage.get_videos() == []
        assert broken_storage.get_comments_by_video(1) == []
        assert broken_storage.update_video(1, VideoUpdate(title="x")) is None
        assert broken_storage.delete_video(1) is False

    assert any("get_video failed" in r.getMessage() for r in caplog.records)


def test_writes_raise_storage_error(broken_storage):
    with pytest.raises(StorageError):
        broken_storage.create_video(VideoCreate(user_id=1, title="x", file_path="x.mp4"))
    with pytest.raises(StorageError):
        broken_storage.create_user(UserCreate(username="x", email="x@example.com", password="pw"))


def test_authenticate_never_raises(broken_storage):
    assert broken_storage.authenticate_user("a@example.com", "pw") is None


def test_relational_initialize_failure_is_a_storage_error(broken_relational):
    with pytest.raises(StorageError):
        broken_relational.initialize()


def test_dynamodb_initialize_gives_up_on_unreachable_endpoint(aws_credentials, caplog):
    storage = DynamoDBStorage(region="us-east-1", endpoint_url="http://127.0.0.1:9", init_timeout=1)

    with caplog.at_level(logging.WARNING):
        storage.initialize()

    assert any("continuing without confirming" in r.getMessage() for r in caplog.records)
