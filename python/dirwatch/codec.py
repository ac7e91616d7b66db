"""
Codecs - Turn cached values into index record bytes and back.

JSON is the default. Dataclass values are stored as their field dict and
rebuilt with the `decode` hook (e.g. `FileSummary.from_dict`).
"""

import dataclasses
import json
from typing import Any, Callable, Optional, Protocol


class Codec(Protocol):
    """Serialization strategy used by the IndexStore."""

    def encode(self, value: Any) -> bytes:
        ...

    def decode(self, data: bytes) -> Any:
        ...


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


class JsonCodec:
    """
    UTF-8 JSON codec.

    Args:
        decode: Builds a value from the parsed JSON object (default: identity)
        encode: Converts a value to a JSON-compatible object
                (default: dataclasses become dicts, anything else as-is)
    """

    def __init__(
        self,
        decode: Optional[Callable[[Any], Any]] = None,
        encode: Optional[Callable[[Any], Any]] = None,
    ):
        self._from_json = decode
        self._to_json = encode or _to_jsonable

    def encode(self, value: Any) -> bytes:
        return json.dumps(self._to_json(value), ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes) -> Any:
        obj = json.loads(data.decode("utf-8"))
        if self._from_json is not None:
            return self._from_json(obj)
        return obj
