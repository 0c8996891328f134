"""Named drivers, so repositories can be configured with a driver before it's wired up.

Typical setup, once at startup:

    registry = DriverRegistry.with_defaults()
    sql = registry.register('sql', SQLDriver('sqlite:///cache.sqlite'))
    users = CacheRepository(UserFetcher(), RepositoryConfig(driver=sql, default_ttl=300))

Configs hold a `DriverHandle` (not a bare name), which resolves through the registry it came from.
"""

from __future__ import annotations

import logging
import threading

from dataclasses import dataclass, field

from repocache.constants import ConfigurationError, DriverNotRegistered
from repocache.drivers import Driver, MemoryDriver

logger = logging.getLogger(__name__)

IN_MEMORY = 'in_memory'


@dataclass(frozen=True)
class DriverHandle:
    """A reference to a driver registered under `name` in `registry`."""
    name: str
    registry: DriverRegistry = field(repr=False, compare=False)

    def resolve(self) -> Driver:
        """Returns the driver this handle refers to. Raises DriverNotRegistered if it's gone."""
        return self.registry.resolve(self.name)


class DriverRegistry:
    """A name -> Driver lookup table. Populated at startup, read many times after."""
    def __init__(self):
        self._drivers: dict[str, Driver] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_defaults(cls) -> DriverRegistry:
        """Returns a new registry with a MemoryDriver registered as 'in_memory'."""
        registry = cls()
        registry.register(IN_MEMORY, MemoryDriver())
        return registry

    def register(self, name: str, driver: Driver, *, replace: bool = False) -> DriverHandle:
        """Registers `driver` under `name`, returning a handle to it.

        Raises ConfigurationError if `name` is already taken, unless `replace` is True.
        """
        if not isinstance(driver, Driver):
            raise ConfigurationError(f'Cannot register {driver!r} as {name!r}: not a Driver')
        with self._lock:
            if name in self._drivers and not replace:
                raise ConfigurationError(f'A driver is already registered as {name!r}')
            self._drivers[name] = driver
        logger.info(f'Registered driver {name!r}: {type(driver).__name__}')
        return DriverHandle(name, self)

    def resolve(self, name: str|DriverHandle) -> Driver:
        """Returns the driver registered under `name` (or the name of a handle)."""
        if isinstance(name, DriverHandle):
            name = name.name
        try:
            return self._drivers[name]
        except KeyError:
            raise DriverNotRegistered(name) from None

    def handle(self, name: str) -> DriverHandle:
        """Returns a handle for an already-registered driver name."""
        if name not in self._drivers:
            raise DriverNotRegistered(name)
        return DriverHandle(name, self)

    def names(self) -> list[str]:
        """Names of all registered drivers, in registration order."""
        return list(self._drivers)

    def __contains__(self, name: object) -> bool:
        return name in self._drivers
