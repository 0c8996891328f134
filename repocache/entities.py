"""Value objects passed between fetchers, repositories and drivers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Entity:
    """What a fetcher hands back: the value to cache plus how long to keep it.

    If `ttl_seconds` is None, the repository's default ttl is used. The `fingerprint` is an opaque
    token identifying this version of the value, stored alongside it.
    """
    value: Any
    ttl_seconds: int|None = None
    fingerprint: str|None = None

    @classmethod
    def wrap(cls, obj: Any) -> Entity:
        """Returns `obj` if it's already an Entity, else an Entity with no ttl or fingerprint."""
        if isinstance(obj, Entity):
            return obj
        return cls(obj)


@dataclass(frozen=True)
class Hit:
    """A successful driver lookup. `expires_at` is an absolute timestamp."""
    value: Any
    fingerprint: str|None
    expires_at: float


@dataclass(frozen=True)
class FetchedEntity:
    """One item of a bulk fetch: the args it would be fetched with, and its entity."""
    args: tuple
    entity: Entity

    @classmethod
    def coerce(cls, item: FetchedEntity|Mapping[str, Any]) -> FetchedEntity:
        """Converts a `{'args': [...], 'entity': ...}` mapping (or a FetchedEntity) to a FetchedEntity.

        The entity may be a bare value, in which case it's wrapped. The args should be a list or
        tuple; anything else (including a string) is treated as a single arg.
        """
        if isinstance(item, FetchedEntity):
            args, entity = item.args, item.entity
        else:
            args, entity = item['args'], item['entity']
        if not isinstance(args, (list, tuple)):
            args = (args,)
        return cls(tuple(args), Entity.wrap(entity))
