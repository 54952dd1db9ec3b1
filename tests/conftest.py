import pytest
from moto import mock_aws

from xplay.database import make_engine
from xplay.schemas import UserCreate, VideoCreate
from xplay.storage import DynamoDBStorage, MemoryStorage, RelationalStorage


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def memory_storage():
    storage = MemoryStorage()
    storage.initialize()
    return storage


@pytest.fixture
def sqlite_storage():
    storage = RelationalStorage(make_engine("sqlite://"))
    storage.initialize()
    yield storage
    storage.close()


@pytest.fixture
def dynamodb_storage(aws_credentials):
    with mock_aws():
        storage = DynamoDBStorage(region="us-east-1", table_prefix="Test_", init_timeout=2)
        storage.initialize()
        yield storage


@pytest.fixture(params=["memory", "sqlite", "dynamodb"])
def storage(request):
    """Every contract test runs once per backend."""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture
def make_user(storage):
    counter = {"n": 0}

    def _make(username=None, email=None, password="hunter22", **extra):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        email = email or f"{username}@example.com"
        return storage.create_user(UserCreate(username=username, email=email, password=password, **extra))

    return _make


@pytest.fixture
def make_video(storage):
    def _make(user_id, title="Sample video", **extra):
        extra.setdefault("file_path", f"videos/{title.lower().replace(' ', '-')}.mp4")
        return storage.create_video(VideoCreate(user_id=user_id, title=title, **extra))

    return _make
