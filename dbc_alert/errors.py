"""Exception hierarchy for the DBC alert bot."""


class AlertBotError(Exception):
    """Base class for all bot errors."""


class ConfigError(AlertBotError):
    """Required settings are missing or invalid. Fatal at startup."""


class StreamError(AlertBotError):
    """Subscription-level failure reported by, or while talking to, Bitquery."""


class StorageError(AlertBotError):
    """Base class for event store failures."""


class StorageUnavailable(StorageError):
    """The database could not be opened or its schema created."""


class WriteFailure(StorageError):
    """A single insert into the audit log failed."""


class NotificationError(AlertBotError):
    """Telegram delivery failed."""
