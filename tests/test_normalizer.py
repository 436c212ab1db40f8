"""
Check-in normalizer tests.

Tests:
  - every timestamp shape decodes to the same instant
  - undecodable timestamps discard the event
  - location falls back nested → flat → zeros
  - photo URL and username fallbacks
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from checkin_console.services.event_store import RawCheckInEvent
from checkin_console.services.normalizer import (
    ADDRESS_PLACEHOLDER,
    UNIDENTIFIED_USER,
    UNKNOWN_DEVICE,
    RawTimestampShape,
    classify_timestamp,
    decode_timestamp,
    normalize,
    normalize_location,
    normalize_photo_url,
)

SP = ZoneInfo("America/Sao_Paulo")
INSTANT = datetime(2024, 3, 10, 14, 30, 0, tzinfo=timezone.utc)
EPOCH_MS = int(INSTANT.timestamp() * 1000)


class _FirestoreLike:
    """Object exposing a date-conversion method instead of being a datetime."""

    def __init__(self, value: datetime) -> None:
        self._value = value

    def toDate(self) -> datetime:
        return self._value


class TestDecodeTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            INSTANT,
            _FirestoreLike(INSTANT),
            EPOCH_MS,
            float(EPOCH_MS),
            "2024-03-10T14:30:00Z",
            "2024-03-10T11:30:00-03:00",
            {"seconds": EPOCH_MS // 1000},
            {"_seconds": EPOCH_MS // 1000, "_nanoseconds": 0},
        ],
    )
    def test_all_shapes_decode_to_same_instant(self, value) -> None:
        decoded = decode_timestamp(value, SP)
        assert decoded is not None
        assert decoded == INSTANT
        assert decoded.tzinfo is not None

    def test_epoch_is_milliseconds(self) -> None:
        assert decode_timestamp(1_000, SP) == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    def test_seconds_field_adds_nanoseconds(self) -> None:
        decoded = decode_timestamp({"seconds": EPOCH_MS // 1000, "nanoseconds": 250_000_000}, SP)
        assert decoded == INSTANT + timedelta(milliseconds=250)

    def test_naive_iso_is_report_local(self) -> None:
        decoded = decode_timestamp("2024-03-10T11:30:00", SP)
        assert decoded == INSTANT

    @pytest.mark.parametrize(
        "value",
        [None, "", "not-a-date", {"foo": 1}, [], True, {"seconds": "abc"}],
    )
    def test_undecodable_values(self, value) -> None:
        assert decode_timestamp(value, SP) is None

    def test_classification_order(self) -> None:
        assert classify_timestamp(INSTANT) is RawTimestampShape.NATIVE
        assert classify_timestamp(EPOCH_MS) is RawTimestampShape.EPOCH
        assert classify_timestamp("2024-03-10") is RawTimestampShape.ISO
        assert classify_timestamp({"seconds": 1}) is RawTimestampShape.SECONDS_FIELD
        assert classify_timestamp(True) is RawTimestampShape.UNKNOWN


class TestNormalizeLocation:
    def test_nested_location_wins(self) -> None:
        loc = normalize_location(
            {"location": {"latitude": -23.5, "longitude": -46.6, "accuracy": 12}, "latitude": 1, "longitude": 2}
        )
        assert (loc.latitude, loc.longitude, loc.accuracy) == (-23.5, -46.6, 12.0)

    def test_flat_pair(self) -> None:
        loc = normalize_location({"latitude": "-23.5", "longitude": -46.6})
        assert (loc.latitude, loc.longitude, loc.accuracy) == (-23.5, -46.6, 0.0)

    def test_missing_location_defaults_to_zero(self) -> None:
        loc = normalize_location({})
        assert (loc.latitude, loc.longitude, loc.accuracy) == (0.0, 0.0, 0.0)
        assert loc.has_coordinates is False

    def test_non_finite_coordinates_become_zero(self) -> None:
        loc = normalize_location({"location": {"latitude": float("nan"), "longitude": float("inf")}})
        assert (loc.latitude, loc.longitude) == (0.0, 0.0)


class TestNormalize:
    def test_full_event(self) -> None:
        raw = RawCheckInEvent(
            id="ev1",
            data={
                "userId": "u1",
                "username": "Maria",
                "timestamp": EPOCH_MS,
                "location": {"latitude": -23.5, "longitude": -46.6, "accuracy": 5},
                "photoUrl": "https://cdn.test/p.jpg",
                "deviceInfo": "Android 14",
            },
        )
        record = normalize(raw, tz=SP)
        assert record is not None
        assert record.id == "ev1"
        assert record.user_id == "u1"
        assert record.username == "Maria"
        assert record.timestamp == INSTANT
        assert record.photo_url == "https://cdn.test/p.jpg"
        assert record.device_info == "Android 14"
        assert record.address == ADDRESS_PLACEHOLDER

    def test_undecodable_timestamp_discards(self) -> None:
        raw = RawCheckInEvent(id="bad", data={"userId": "u1", "timestamp": "ontem"})
        assert normalize(raw, tz=SP) is None

    def test_username_from_profile_then_sentinel(self) -> None:
        profile = SimpleNamespace(username="Perfil", email="perfil@test")
        raw = RawCheckInEvent(id="e", data={"userId": "u1", "timestamp": EPOCH_MS})
        assert normalize(raw, {"u1": profile}, SP).username == "Perfil"
        assert normalize(raw, {}, SP).username == UNIDENTIFIED_USER

    def test_defaults_for_missing_fields(self) -> None:
        raw = RawCheckInEvent(id="e", data={"timestamp": EPOCH_MS})
        record = normalize(raw, tz=SP)
        assert record.user_id == ""
        assert record.device_info == UNKNOWN_DEVICE
        assert record.photo_url is None

    def test_legacy_device_key(self) -> None:
        raw = RawCheckInEvent(id="e", data={"timestamp": EPOCH_MS, "device": "iPhone"})
        assert normalize(raw, tz=SP).device_info == "iPhone"


class TestPhotoUrl:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://cdn.test/a.jpg", "https://cdn.test/a.jpg"),
            ("http://cdn.test/a.jpg", "http://cdn.test/a.jpg"),
            ("gs://bucket/a.jpg", None),
            ("", None),
            (None, None),
            (123, None),
        ],
    )
    def test_only_http_urls_kept(self, value, expected) -> None:
        assert normalize_photo_url(value) == expected
