class XPlayError(Exception):
    """Base class for errors raised by the xplay package."""


class ConfigurationError(XPlayError):
    """Raised when the runtime configuration cannot be honoured."""


class StorageError(XPlayError):
    """A storage backend failed to complete a write."""


class DuplicateUserError(StorageError):
    """Username or email is already taken."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} already registered: {value}")
