from __future__ import annotations

# used when neither the entity nor the repository config gives a ttl
DEFAULT_TTL_SECONDS = 3600

# separates the keyspace from the rest of a key
KEYSPACE_SEP = '.'

# separates the type tags from the encoded args
TAGS_SEP = ':'

# joins individual type tags and individual encoded args
ARG_SEP = ','


class CacheError(Exception):
    """Base class for all errors raised by repocache itself."""


class ConfigurationError(CacheError):
    """A repository or registry was set up wrong. Never retried."""


class DriverNotRegistered(ConfigurationError, KeyError):
    """Exception raised when a driver name is not in the registry."""
    def __init__(self, name: str):
        super().__init__(f"No driver registered under '{name}'")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class DriverError(CacheError):
    """A driver could not load or interpret its underlying storage."""
