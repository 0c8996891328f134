from __future__ import annotations

import json

from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any


class GeneralJSONEncoder(json.JSONEncoder):
    """A JSON encoder that can handle common non-json-able types.

    Currently:
    - datetime/date: isoformat()
    - dataclasses: converts to dict using `asdict()`
    - defaultdict, Counter: converts to a regular dict
    - set, frozenset: converts to a sorted list
    - Enum: converts to its value
    """
    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        elif isinstance(obj, (defaultdict, Counter)):
            return dict(obj)
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj, key=repr)
        elif isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class CacheFormatter(ABC):
    """Base class for serialization formats."""
    @abstractmethod
    def dumps(self, obj: Any) -> bytes:
        """Serialize object to bytes."""
        pass

    @abstractmethod
    def loads(self, data: bytes) -> Any:
        """Deserialize bytes to object."""
        pass


class JsonFormatter(CacheFormatter):
    """JSON serialization format."""

    def __init__(self, EncoderCls=GeneralJSONEncoder, DecoderCls=json.JSONDecoder, indent=None):
        self.EncoderCls = EncoderCls
        self.DecoderCls = DecoderCls
        self.indent = indent

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, cls=self.EncoderCls, ensure_ascii=False, indent=self.indent).encode('utf-8')

    def loads(self, data: bytes|str) -> Any:
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return json.loads(data, cls=self.DecoderCls)
