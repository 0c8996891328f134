"""Turning repository call arguments into cache keys.

Every key starts with the prefix `<keyspace>.`, which is what bulk operations (listing and clearing a
single repository) match on. What comes after the prefix is up to the keyer, but it must be a pure
function of the args, and must differ whenever the args differ in value or in type.
"""

from __future__ import annotations

import builtins
import hashlib
import json

from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Mapping

from repocache.constants import ARG_SEP, KEYSPACE_SEP, TAGS_SEP, ConfigurationError


def validate_keyspace(keyspace: str) -> str:
    """Checks that `keyspace` can be used as a key prefix, returning it unchanged.

    Keyspaces can't be empty or contain the keyspace or tag separators, otherwise one repository's
    prefix could be a prefix of another's (e.g. 'users' and 'users.v2').
    """
    if not isinstance(keyspace, str) or not keyspace:
        raise ConfigurationError(f'Keyspace must be a non-empty string, not {keyspace!r}')
    for sep in (KEYSPACE_SEP, TAGS_SEP):
        if sep in keyspace:
            raise ConfigurationError(f'Keyspace {keyspace!r} must not contain {sep!r}')
    return keyspace


class Keyer(ABC):
    """Base class for converting repository call arguments into cache keys."""
    def prefix(self, keyspace: str) -> str:
        """Returns the prefix shared by all keys this keyer makes for `keyspace`."""
        return keyspace + KEYSPACE_SEP

    def make_key(self, keyspace: str, args: tuple) -> str:
        """Convert call arguments into a cache key under `keyspace`.

        Args:
            keyspace: Identity of the repository the key belongs to
            args: Tuple of positional arguments

        Returns:
            A string key starting with `self.prefix(keyspace)`
        """
        return self.prefix(keyspace) + self.make_suffix(args)

    @abstractmethod
    def make_suffix(self, args: tuple) -> str:
        """Returns the part of the key after the prefix."""
        pass


class TypeTagKeyer(Keyer):
    """Makes keys of the form `<keyspace>.<type tags>:<encoded args>`.

    - type tags: comma-joined type names of each arg (bare names for builtins, `module.qualname`
      otherwise). The first tag is the first arg's type.
    - encoded args: comma-joined canonical JSON of each arg. Strings are quoted, so commas inside an
      arg can't be confused with the separator, and `'1'` and `1` encode differently.

    Type information is kept all the way down: exact str/int/float/bool/None and lists are plain
    JSON, and every other value becomes a single-key object `{"<type tag>": <payload>}`. Dicts are
    encoded as sorted `[key, value]` pairs, so dict keys keep their types too. Values we don't know
    how to take apart are encoded via their `repr()`.

    >>> TypeTagKeyer().make_key('users', ('some_token',))
    'users.str:"some_token"'
    >>> TypeTagKeyer().make_key('ks', ({1: 'a'},))
    'ks.dict:{"dict":[[1,"a"]]}'
    """
    PLAIN_TYPES = (str, int, float, bool, type(None))

    def make_suffix(self, args: tuple) -> str:
        tags = ARG_SEP.join(self.type_tag(arg) for arg in args)
        encoded = ARG_SEP.join(self.encode(arg) for arg in args)
        return tags + TAGS_SEP + encoded

    @staticmethod
    def type_tag(obj: Any) -> str:
        """Returns the type name used to tag `obj` in keys."""
        t = type(obj)
        if getattr(builtins, t.__name__, None) is t:
            return t.__name__
        return f'{t.__module__}.{t.__qualname__}'

    @classmethod
    def encode(cls, obj: Any) -> str:
        """Canonical string form of a single argument."""
        return cls._dumps(cls.canonical(obj))

    @staticmethod
    def _dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(',', ':'), ensure_ascii=False)

    @classmethod
    def canonical(cls, obj: Any) -> Any:
        """Converts `obj` into plain JSON data that still records the type of every nested value."""
        if type(obj) in cls.PLAIN_TYPES:
            return obj
        if type(obj) is list:
            return [cls.canonical(x) for x in obj]
        if isinstance(obj, Mapping):
            pairs = [[cls.canonical(k), cls.canonical(v)] for k, v in obj.items()]
            payload = sorted(pairs, key=lambda pair: cls._dumps(pair[0]))
        elif isinstance(obj, (set, frozenset)):
            payload = sorted((cls.canonical(x) for x in obj), key=cls._dumps)
        elif isinstance(obj, (tuple, list)):
            payload = [cls.canonical(x) for x in obj]
        elif isinstance(obj, Enum):
            payload = obj.name
        elif isinstance(obj, (datetime, date, time)):
            payload = obj.isoformat()
        elif isinstance(obj, (bytes, bytearray)):
            payload = obj.hex()
        elif is_dataclass(obj) and not isinstance(obj, type):
            payload = cls.canonical({f.name: getattr(obj, f.name) for f in fields(obj)})
        else:
            payload = repr(obj)
        return {cls.type_tag(obj): payload}


class HashedKeyer(Keyer):
    """Keyer that hashes the suffix of another keyer, keeping the prefix readable.

    Useful for backends with limits on key length (e.g. long args in a SQL index). The input
    `hash_func` should be either:

    - A string naming a `hashlib` algorithm (e.g. 'sha256', 'md5')
    - A callable that takes a string and returns a string

    Defaults to 'sha256' over a `TypeTagKeyer`.
    """
    def __init__(self, hash_func: str|Callable[[str], str] = 'sha256', inner: Keyer|None = None):
        self.inner = inner or TypeTagKeyer()
        if isinstance(hash_func, str):
            if not hasattr(hashlib, hash_func):
                raise ValueError(f"Hash algorithm '{hash_func}' not found in hashlib")
            self._hash_func = lambda s: getattr(hashlib, hash_func)(s.encode('utf-8')).hexdigest()
        else:
            self._hash_func = hash_func

    def make_suffix(self, args: tuple) -> str:
        return str(self._hash_func(self.inner.make_suffix(args)))
