import pytest
from moto import mock_aws

from xplay.config import RelationalSettings, Settings, load_settings
from xplay.exceptions import ConfigurationError
from xplay.storage import DynamoDBStorage, MemoryStorage, RelationalStorage, create_storage, ensure_admin


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "XPLAY_STORAGE_BACKEND", "DATABASE_URL", "DYNAMODB_ENDPOINT_URL", "DYNAMODB_TABLE_PREFIX",
        "XPLAY_ADMIN_EMAIL", "XPLAY_ADMIN_USERNAME", "XPLAY_ADMIN_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.parametrize(
    "value, expected",
    [
        ("memory", "memory"),
        ("DynamoDB", "dynamodb"),
        ("postgres", "relational"),
        ("postgresql", "relational"),
        ("relational", "relational"),
        ("sql", "relational"),
        ("in-memory", "memory"),
    ],
)
def test_backend_aliases(clean_env, value, expected):
    clean_env.setenv("XPLAY_STORAGE_BACKEND", value)

    assert load_settings().backend_name == expected


def test_unknown_backend_is_rejected(clean_env):
    clean_env.setenv("XPLAY_STORAGE_BACKEND", "mongo")

    with pytest.raises(ConfigurationError):
        create_storage(load_settings())


def test_defaults(clean_env):
    settings = load_settings()

    assert settings.backend_name == "memory"
    assert settings.relational.url == "sqlite:///./xplay.db"
    assert settings.dynamodb.table_prefix == "XPlayHD_"
    assert settings.dynamodb.endpoint_url is None
    assert not settings.admin.enabled


def test_heroku_style_postgres_url_is_normalised():
    settings = RelationalSettings(database_url="postgres://u:p@db:5432/xplay")

    assert settings.url == "postgresql://u:p@db:5432/xplay"


def test_create_storage_builds_selected_backend(clean_env):
    clean_env.setenv("XPLAY_STORAGE_BACKEND", "memory")
    assert isinstance(create_storage(load_settings()), MemoryStorage)

    clean_env.setenv("XPLAY_STORAGE_BACKEND", "sql")
    clean_env.setenv("DATABASE_URL", "sqlite://")
    storage = create_storage(load_settings())
    assert isinstance(storage, RelationalStorage)
    assert storage.get_site_settings().site_name == "XPlayHD"
    storage.close()


def test_create_storage_dynamodb(clean_env, aws_credentials):
    clean_env.setenv("XPLAY_STORAGE_BACKEND", "dynamodb")
    clean_env.setenv("DYNAMODB_TABLE_PREFIX", "Factory_")
    with mock_aws():
        storage = create_storage(load_settings())

        assert isinstance(storage, DynamoDBStorage)
        assert storage.get_site_settings().theme == "dark"


def test_admin_bootstrap_is_idempotent(clean_env):
    clean_env.setenv("XPLAY_ADMIN_EMAIL", "Root@Example.com")
    clean_env.setenv("XPLAY_ADMIN_USERNAME", "root")
    clean_env.setenv("XPLAY_ADMIN_PASSWORD", "changeme")
    settings = Settings()

    storage = create_storage(settings)
    admin = storage.authenticate_user("root@example.com", "changeme")
    assert admin is not None
    assert admin.is_admin

    ensure_admin(storage, settings)
    assert len(storage.get_all_users()) == 1
