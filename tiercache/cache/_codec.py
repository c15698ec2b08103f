"""
Serialization adapters — typed values to/from cached bytes.

    C.RawCodec()                 # bytes pass through (images, API payloads)
    C.JsonCodec()                # dict/list/str/number via json
    C.ModelCodec(MovieDetails)   # pydantic model via model_dump_json
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from pydantic import BaseModel


# ═══════════════════════════════════════════════════════════════════════════════
# Codec Protocol — Users Implement This
# ═══════════════════════════════════════════════════════════════════════════════


class Codec[T](Protocol):
    """
    Encode/decode pair for typed cache values.

    decode() raises ValueError (or a subclass) on malformed input; the cache
    turns that into DecodeFailed and evicts the entry.
    """

    def encode(self, value: T) -> bytes: ...

    def decode(self, payload: bytes) -> T: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Implementations
# ═══════════════════════════════════════════════════════════════════════════════


class RawCodec:
    """Identity codec."""

    def encode(self, value: bytes) -> bytes:
        return bytes(value)

    def decode(self, payload: bytes) -> bytes:
        return payload


class JsonCodec:
    """JSON-compatible structures, UTF-8 encoded."""

    def __init__(self, *, sort_keys: bool = False) -> None:
        self._sort_keys = sort_keys

    def encode(self, value: Any) -> bytes:
        return json.dumps(value, sort_keys=self._sort_keys, separators=(",", ":")).encode("utf-8")

    def decode(self, payload: bytes) -> Any:
        # JSONDecodeError and UnicodeDecodeError are both ValueError
        return json.loads(payload.decode("utf-8"))


class ModelCodec[M: BaseModel]:
    """
    Pydantic model codec.

    Example:
        codec = C.ModelCodec(MovieDetails)
        details = await cache.get_value("movie_42", codec)
    """

    def __init__(self, model: type[M]) -> None:
        self._model = model

    def encode(self, value: M) -> bytes:
        return value.model_dump_json().encode("utf-8")

    def decode(self, payload: bytes) -> M:
        # ValidationError subclasses ValueError
        return self._model.model_validate_json(payload)


__all__ = ("Codec", "RawCodec", "JsonCodec", "ModelCodec")
