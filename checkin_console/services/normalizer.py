"""
Check-in normalizer.

Turns a raw stored event (``RawCheckInEvent``) into the canonical
``CheckInRecord`` the report pipeline works with.  The check-in collection
has accumulated several historical field layouts, so every tolerant decode
lives here:

  timestamp : native datetime / object with a date-conversion method,
              epoch milliseconds, ISO-like string, {"seconds": ...} mapping
  location  : nested {"latitude", "longitude", "accuracy"} or the same keys
              flattened onto the event, or nothing at all
  photoUrl  : kept only when it is an absolute http(s) URL

An event whose timestamp cannot be decoded is discarded (``None``); that is
a data-quality gate, not an error.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from checkin_console.core.config import settings
from checkin_console.services.event_store import RawCheckInEvent

logger = logging.getLogger(__name__)

UNIDENTIFIED_USER = "Usuário não identificado"
UNKNOWN_DEVICE = "Dispositivo não informado"
ADDRESS_PLACEHOLDER = "Carregando endereço..."
ADDRESS_UNAVAILABLE = "Endereço não disponível"

_NATIVE_CONVERTERS = ("to_datetime", "ToDatetime", "toDate")


def report_timezone() -> tzinfo:
    return ZoneInfo(settings.REPORT_TIMEZONE)


@dataclass
class Location:
    latitude: float = 0.0
    longitude: float = 0.0
    accuracy: float = 0.0

    @property
    def has_coordinates(self) -> bool:
        return not (self.latitude == 0 and self.longitude == 0)


@dataclass
class CheckInRecord:
    id: str
    user_id: str
    username: str
    timestamp: datetime
    location: Location = field(default_factory=Location)
    photo_url: str | None = None
    address: str = ADDRESS_PLACEHOLDER
    device_info: str = UNKNOWN_DEVICE


# ---------------------------------------------------------------------------
# Timestamp decoding
# ---------------------------------------------------------------------------


class RawTimestampShape(str, Enum):
    NATIVE = "native"
    EPOCH = "epoch"
    ISO = "iso"
    SECONDS_FIELD = "seconds_field"
    UNKNOWN = "unknown"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def classify_timestamp(value: Any) -> RawTimestampShape:
    """Pick the first shape that matches, in decoding priority order."""
    if value is None:
        return RawTimestampShape.UNKNOWN
    if isinstance(value, datetime) or any(
        callable(getattr(value, name, None)) for name in _NATIVE_CONVERTERS
    ):
        return RawTimestampShape.NATIVE
    if _is_number(value):
        return RawTimestampShape.EPOCH
    if isinstance(value, str):
        return RawTimestampShape.ISO
    if isinstance(value, Mapping) and (
        _is_number(value.get("seconds")) or _is_number(value.get("_seconds"))
    ):
        return RawTimestampShape.SECONDS_FIELD
    return RawTimestampShape.UNKNOWN


def _decode_native(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    for name in _NATIVE_CONVERTERS:
        converter = getattr(value, name, None)
        if callable(converter):
            converted = converter()
            return converted if isinstance(converted, datetime) else None
    return None


def _from_epoch_ms(millis: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _decode_epoch(value: Any) -> datetime | None:
    return _from_epoch_ms(value)


def _decode_iso(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _decode_seconds_field(value: Mapping) -> datetime | None:
    seconds = value.get("seconds", value.get("_seconds"))
    nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
    if not _is_number(nanos):
        nanos = 0
    return _from_epoch_ms(seconds * 1000 + nanos / 1_000_000)


_DECODERS: dict[RawTimestampShape, Callable[[Any], datetime | None]] = {
    RawTimestampShape.NATIVE: _decode_native,
    RawTimestampShape.EPOCH: _decode_epoch,
    RawTimestampShape.ISO: _decode_iso,
    RawTimestampShape.SECONDS_FIELD: _decode_seconds_field,
}


def decode_timestamp(value: Any, tz: tzinfo | None = None) -> datetime | None:
    """
    Decode any known timestamp shape into a timezone-aware datetime.

    Naive results (e.g. ISO strings without offset) are taken to be in ``tz``,
    the report timezone by default.  Returns None for unknown shapes and for
    values that match a shape but do not decode.
    """
    shape = classify_timestamp(value)
    decoder = _DECODERS.get(shape)
    if decoder is None:
        return None
    try:
        decoded = decoder(value)
    except (TypeError, ValueError, OverflowError):
        decoded = None
    if decoded is None:
        return None
    if decoded.tzinfo is None:
        decoded = decoded.replace(tzinfo=tz or report_timezone())
    return decoded


# ---------------------------------------------------------------------------
# Field normalization
# ---------------------------------------------------------------------------


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_location(data: Mapping[str, Any]) -> Location:
    location = data.get("location")
    if isinstance(location, Mapping):
        return Location(
            latitude=_coerce_float(location.get("latitude")),
            longitude=_coerce_float(location.get("longitude")),
            accuracy=_coerce_float(location.get("accuracy")),
        )
    if data.get("latitude") is not None and data.get("longitude") is not None:
        return Location(
            latitude=_coerce_float(data.get("latitude")),
            longitude=_coerce_float(data.get("longitude")),
            accuracy=_coerce_float(data.get("accuracy")),
        )
    return Location()


def normalize_photo_url(value: Any) -> str | None:
    if isinstance(value, str) and value.startswith("http"):
        return value
    return None


def resolve_username(data: Mapping[str, Any], profile: Any | None) -> str:
    username = data.get("username")
    if isinstance(username, str) and username.strip():
        return username
    if profile is not None:
        return getattr(profile, "username", None) or getattr(profile, "email", None) or UNIDENTIFIED_USER
    return UNIDENTIFIED_USER


def normalize(
    raw: RawCheckInEvent,
    profiles: Mapping[str, Any] | None = None,
    tz: tzinfo | None = None,
) -> CheckInRecord | None:
    """Build a ``CheckInRecord`` from ``raw`` or return None to discard it."""
    data = raw.data
    timestamp = decode_timestamp(data.get("timestamp"), tz)
    if timestamp is None:
        logger.debug(
            "Check-in %s descartado: timestamp não decodificável (%s)",
            raw.id, classify_timestamp(data.get("timestamp")).value,
        )
        return None

    user_id = data.get("userId")
    user_id = str(user_id) if user_id else ""
    profile = (profiles or {}).get(user_id) if user_id else None

    device_info = data.get("deviceInfo") or data.get("device")

    return CheckInRecord(
        id=raw.id,
        user_id=user_id,
        username=resolve_username(data, profile),
        timestamp=timestamp,
        location=normalize_location(data),
        photo_url=normalize_photo_url(data.get("photoUrl")),
        device_info=str(device_info) if device_info else UNKNOWN_DEVICE,
    )
