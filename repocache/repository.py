"""Cache repositories: memoized access to some fetch logic, backed by a driver.

A repository combines three things:
- a fetcher, which knows how to get a fresh value (`fetch(*args)`), and optionally every value it
  can produce (`fetch_all(keyspace)`)
- a `RepositoryConfig`, saying which driver to store values in and how long to keep them by default
- a keyer, which turns call args into keys under the repository's keyspace

Many repositories can share one driver; each only ever sees and clears the keys under its own
keyspace prefix.

    class UserFetcher:
        def fetch(self, user_id):
            row = db.get_user(user_id)
            return Entity(row, ttl_seconds=300, fingerprint=row['etag'])

    users = CacheRepository(UserFetcher(), RepositoryConfig(driver=registry.handle('in_memory')))
    users.get(42)    # fetches and caches
    users.get(42)    # served from the cache
    users.prime(42)  # always re-fetches
"""

from __future__ import annotations

import logging
import threading

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Protocol

from repocache.constants import DEFAULT_TTL_SECONDS, ConfigurationError
from repocache.drivers import Driver
from repocache.entities import Entity, FetchedEntity, Hit
from repocache.keyers import Keyer, TypeTagKeyer, validate_keyspace
from repocache.registry import DriverHandle

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """What a repository needs from its collaborator.

    `fetch` may return an `Entity` or a bare value. Fetchers that support bulk priming also define
    `fetch_all(keyspace) -> Iterable[FetchedEntity | {'args': [...], 'entity': ...}]`.
    """
    def fetch(self, *args: Any) -> Entity|Any:
        ...


@dataclass(frozen=True)
class RepositoryConfig:
    """Immutable repository settings.

    - driver: a handle from a `DriverRegistry` (or a driver instance directly)
    - default_ttl: seconds to keep entities that don't specify their own ttl
    - keyspace: prefix for all keys of this repository. Defaults to the fetcher's `keyspace`
      attribute if it has one, else the fetcher's class name.
    """
    driver: DriverHandle|Driver
    default_ttl: int = DEFAULT_TTL_SECONDS
    keyspace: str|None = None

    def __post_init__(self):
        if not isinstance(self.driver, (DriverHandle, Driver)):
            raise ConfigurationError(f'Repository driver must be a DriverHandle or Driver, not {self.driver!r}')
        ttl = self.default_ttl
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
            raise ConfigurationError(f'default_ttl must be a positive number of seconds, not {ttl!r}')
        if self.keyspace is not None:
            validate_keyspace(self.keyspace)


class CacheRepository:
    """Memoizes a fetcher's results in a driver, under this repository's keyspace.

    The driver is resolved on first use and then fixed for the life of the repository.
    """
    def __init__(self, fetcher: Fetcher, config: RepositoryConfig, *, keyer: Keyer|None = None):
        self.fetcher = fetcher
        self.config = config
        self.keyer = keyer or TypeTagKeyer()
        keyspace = config.keyspace or getattr(fetcher, 'keyspace', None) or type(fetcher).__name__
        self.keyspace = validate_keyspace(keyspace)
        self._driver: Driver|None = None
        self._driver_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.stats: dict[str, int] = {
            'hits': 0,
            'misses': 0,
            'fetches': 0,
        }

    def __repr__(self) -> str:
        return f'<{type(self).__name__} keyspace={self.keyspace!r}>'

    @property
    def driver(self) -> Driver:
        """Our driver, resolved from the config the first time it's needed."""
        if self._driver is None:
            with self._driver_lock:
                if self._driver is None:
                    driver = self.config.driver
                    if isinstance(driver, DriverHandle):
                        driver = driver.resolve()
                    self._driver = driver
                    logger.debug(f'{self!r} using driver {type(driver).__name__}')
        return self._driver

    @property
    def prefix(self) -> str:
        """The prefix shared by every key this repository can produce."""
        return self.keyer.prefix(self.keyspace)

    def key_for(self, *args: Any) -> str:
        """Returns the cache key for the given call args. Doesn't touch storage."""
        return self.keyer.make_key(self.keyspace, args)

    def get_stats(self) -> dict[str, int]:
        """Get repository statistics (cache hits and misses, and calls to the fetcher)."""
        with self._stats_lock:
            return self.stats.copy()

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self.stats[name] += 1

    def get(self, *args: Any) -> Any:
        """Returns the cached value for `args`, fetching and caching it if missing or expired."""
        hit = self.get_from_cache(*args)
        if hit is not None:
            self._count('hits')
            return hit.value
        self._count('misses')
        return self.prime(*args)

    __call__ = get

    def get_from_cache(self, *args: Any) -> Hit|None:
        """Returns the raw cached record for `args` (value, fingerprint and expiry), or None.

        Never fetches.
        """
        return self.driver.get(self.key_for(*args))

    def prime(self, *args: Any) -> Any:
        """Fetches the value for `args`, stores it (overwriting anything cached), and returns it.

        If the fetcher raises, the error propagates and nothing is stored.
        """
        key = self.key_for(*args)
        driver = self.driver
        entity = Entity.wrap(self.fetcher.fetch(*args))
        self._count('fetches')
        self._store(driver, key, entity)
        return entity.value

    def prime_all(self) -> list:
        """Fetches every entity the fetcher knows about for our keyspace, and stores them all.

        Returns the values in the order `fetch_all` produced them. All entities are fetched before
        any are stored, so a failing `fetch_all` stores nothing.
        """
        fetch_all: Callable[[str], Iterable[FetchedEntity|Mapping[str, Any]]]|None
        fetch_all = getattr(self.fetcher, 'fetch_all', None)
        if fetch_all is None:
            raise NotImplementedError(f'{type(self.fetcher).__name__} does not implement fetch_all')
        driver = self.driver
        items = [FetchedEntity.coerce(item) for item in fetch_all(self.keyspace)]
        self._count('fetches')
        values = []
        for item in items:
            self._store(driver, self.key_for(*item.args), item.entity)
            values.append(item.entity.value)
        logger.debug(f'{self!r} primed {len(values)} entities')
        return values

    def all(self) -> list:
        """Returns the values of all unexpired records in our keyspace, oldest first.

        This only reflects what has already been cached; it never fetches.
        """
        return [hit.value for _, hit in self.driver.iter_prefix(self.prefix)]

    def delete(self, *args: Any) -> None:
        """Removes the cached record for `args`, if any."""
        key = self.key_for(*args)
        self.driver.delete(key)
        logger.debug(f'{self!r} deleted {key!r}')

    def clear(self) -> None:
        """Removes every record in our keyspace, leaving other repositories' records alone."""
        driver = self.driver
        keys = [key for key, _ in driver.iter_prefix(self.prefix, include_expired=True)]
        for key in keys:
            driver.delete(key)
        logger.debug(f'{self!r} cleared {len(keys)} records')

    def _store(self, driver: Driver, key: str, entity: Entity) -> None:
        """Writes `entity` at `key`, expiring after its own ttl or our default one."""
        ttl = entity.ttl_seconds if entity.ttl_seconds is not None else self.config.default_ttl
        expires_at = driver.now() + ttl
        driver.set(key, entity.value, expires_at, entity.fingerprint)
        logger.debug(f'{self!r} stored {key!r} until {expires_at}')


class FunctionFetcher:
    """Adapts a plain function into a fetcher. The function may return an Entity or a bare value."""
    def __init__(self, fn: Callable[..., Any]):
        self.fn = fn
        self.keyspace = fn.__name__

    def fetch(self, *args: Any) -> Any:
        return self.fn(*args)


def cached_repository(driver: DriverHandle|Driver,
                      *,
                      default_ttl: int = DEFAULT_TTL_SECONDS,
                      keyspace: str|None = None,
                      keyer: Keyer|None = None) -> Callable[[Callable[..., Any]], CacheRepository]:
    """Returns a decorator that turns a function into a `CacheRepository` fetching via that function.

    The keyspace defaults to the function's name. Calling the result is the same as `get()`:

        @cached_repository(registry.handle('in_memory'), default_ttl=60)
        def exchange_rate(currency):
            return fetch_rate(currency)

        exchange_rate('EUR')        # cached for 60s
        exchange_rate.prime('EUR')  # forced refresh
    """
    def decorator(fn: Callable[..., Any]) -> CacheRepository:
        config = RepositoryConfig(driver=driver, default_ttl=default_ttl, keyspace=keyspace or fn.__name__)
        return CacheRepository(FunctionFetcher(fn), config, keyer=keyer)
    return decorator
