from .constants import (
    DEFAULT_TTL_SECONDS,
    CacheError,
    ConfigurationError,
    DriverError,
    DriverNotRegistered,
)
from .drivers import Driver, MemoryDriver, NullDriver, JsonFileDriver, SQLDriver
from .entities import Entity, Hit, FetchedEntity
from .formatters import CacheFormatter, JsonFormatter, GeneralJSONEncoder
from .keyers import Keyer, TypeTagKeyer, HashedKeyer
from .registry import DriverHandle, DriverRegistry
from .repository import CacheRepository, Fetcher, FunctionFetcher, RepositoryConfig, cached_repository

__all__ = [
    'DEFAULT_TTL_SECONDS',
    'CacheError',
    'ConfigurationError',
    'DriverError',
    'DriverNotRegistered',
    'Driver',
    'MemoryDriver',
    'NullDriver',
    'JsonFileDriver',
    'SQLDriver',
    'Entity',
    'Hit',
    'FetchedEntity',
    'CacheFormatter',
    'JsonFormatter',
    'GeneralJSONEncoder',
    'Keyer',
    'TypeTagKeyer',
    'HashedKeyer',
    'DriverHandle',
    'DriverRegistry',
    'CacheRepository',
    'Fetcher',
    'FunctionFetcher',
    'RepositoryConfig',
    'cached_repository',
]
