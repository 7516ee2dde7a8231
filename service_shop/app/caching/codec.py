"""
Encoding of cached values.

Values are stored as JSON text. A key that the source confirmed absent holds
``ABSENT_SENTINEL`` (the empty string), which no JSON document encodes to.
Logically expiring entries are wrapped in ``{"data": ..., "expireAt": ...}``
with ``expireAt`` an ISO-8601 UTC timestamp.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel

from shared.errors import CacheDecodeError

T = TypeVar("T")

ABSENT_SENTINEL = ""

Decoder = Callable[[Any], T]


def is_absent_marker(raw: Optional[str]) -> bool:
    return raw is not None and raw == ABSENT_SENTINEL


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass(frozen=True)
class LogicalExpiryEnvelope(Generic[T]):
    """A value plus the instant after which it counts as stale."""

    data: Optional[T]
    expire_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expire_at <= now


class JsonCodec:
    """Encodes values to JSON text and decodes them with a caller-supplied decoder."""

    def encode(self, value: Any) -> str:
        return json.dumps(value, default=_to_jsonable, separators=(",", ":"))

    def decode(self, raw: str, decoder: Decoder[T]) -> T:
        if is_absent_marker(raw):
            raise CacheDecodeError("Absent marker is not a value")
        try:
            return decoder(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            raise CacheDecodeError(str(e)) from e

    def encode_envelope(self, value: Any, expire_at: datetime) -> str:
        return self.encode({"data": value, "expireAt": _as_utc(expire_at).isoformat()})

    def decode_envelope(self, raw: str, decoder: Decoder[T]) -> LogicalExpiryEnvelope[T]:
        if is_absent_marker(raw):
            raise CacheDecodeError("Absent marker is not an envelope")
        try:
            payload = json.loads(raw)
            expire_at = _as_utc(datetime.fromisoformat(payload["expireAt"]))
            data = payload.get("data")
            return LogicalExpiryEnvelope(
                data=decoder(data) if data is not None else None,
                expire_at=expire_at,
            )
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise CacheDecodeError(str(e)) from e


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
