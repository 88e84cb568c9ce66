import json
import math

import pytest

from keepsake import CacheEntryMetadata, RequestOptions, SerializationError, ValidationError
from keepsake._headers import Headers

NOW = 1_700_000_000.0


def make_meta(**kwargs) -> CacheEntryMetadata:
    defaults = dict(url="https://example.com", created_at=NOW, payload_length=4, expires_at=NOW + 3600)
    defaults.update(kwargs)
    return CacheEntryMetadata(**defaults)


def test_freshness_boundary():
    meta = make_meta()
    assert not meta.is_stale(NOW + 3599)
    assert meta.is_stale(NOW + 3600)
    assert meta.is_stale(NOW + 3601)


def test_max_age_zero_is_immediately_stale():
    assert make_meta(expires_at=NOW).is_stale(NOW)


def test_entry_without_expiry_is_never_stale():
    meta = make_meta(expires_at=None)
    assert not meta.is_stale(NOW + 10**9)
    assert meta.remaining_freshness(NOW) == math.inf
    assert not meta.is_expired(NOW + 10**9)


def test_age_and_remaining_freshness():
    meta = make_meta()
    assert meta.age(NOW + 100) == 100
    assert meta.remaining_freshness(NOW + 100) == 3500
    assert meta.staleness(NOW + 100) == 0
    assert meta.staleness(NOW + 3700) == 100


def test_is_older_than():
    meta = make_meta()
    assert meta.is_older_than(0, NOW)
    assert not meta.is_older_than(60, NOW + 60)
    assert meta.is_older_than(60, NOW + 61)


def test_has_minimum_freshness():
    meta = make_meta()
    assert meta.has_minimum_freshness(600, NOW + 3000)
    assert not meta.has_minimum_freshness(601, NOW + 3000)


def test_is_within_stale_period():
    meta = make_meta()
    assert not meta.is_within_stale_period(60, NOW)
    assert meta.is_within_stale_period(60, NOW + 3660)
    assert not meta.is_within_stale_period(60, NOW + 3661)


def test_stale_while_revalidate_window():
    meta = make_meta(stale_while_revalidate=30)
    assert not meta.can_serve_stale(NOW)
    assert meta.can_serve_stale(NOW + 3630)
    assert not meta.can_serve_stale(NOW + 3631)


def test_stale_if_error_window():
    meta = make_meta(stale_if_error=60)
    assert meta.can_serve_stale_on_error(NOW + 3660)
    assert not meta.can_serve_stale_on_error(NOW + 3661)


def test_must_revalidate_disables_stale_serving():
    meta = make_meta(stale_while_revalidate=30, stale_if_error=60, must_revalidate=True)
    assert not meta.can_serve_stale(NOW + 3601)
    assert not meta.can_serve_stale_on_error(NOW + 3601)
    assert meta.grace_period() == 0


def test_is_expired_respects_the_grace_period():
    meta = make_meta(stale_while_revalidate=30, stale_if_error=60)
    assert meta.grace_period() == 60
    assert not meta.is_expired(NOW + 3660)
    assert meta.is_expired(NOW + 3661)


def test_json_round_trip_keeps_every_field():
    meta = make_meta(
        etag='"v1"',
        last_modified="Tue, 14 Nov 2023 22:13:20 GMT",
        content_type="image/png",
        requires_revalidation=True,
        stale_while_revalidate=10,
        stale_if_error=20,
        vary_header_names=("Accept", "Accept-Language"),
    )
    assert CacheEntryMetadata.from_json(meta.to_json()) == meta


def test_missing_optional_fields_take_defaults():
    meta = CacheEntryMetadata.from_json(json.dumps({"url": "https://example.com", "created_at": NOW, "payload_length": 1}))
    assert meta.expires_at is None
    assert meta.requires_revalidation is False
    assert meta.must_revalidate is False
    assert meta.vary_header_names is None
    assert meta.version == 1


def test_unknown_fields_are_ignored():
    data = make_meta().to_dict()
    data["brand_new_field"] = [1, 2, 3]
    assert CacheEntryMetadata.from_dict(data) == make_meta()


@pytest.mark.parametrize("missing", ["url", "created_at", "payload_length"])
def test_missing_required_field(missing):
    data = make_meta().to_dict()
    del data[missing]
    with pytest.raises(SerializationError, match=missing):
        CacheEntryMetadata.from_dict(data)


def test_wrong_types():
    data = make_meta().to_dict()
    data["created_at"] = "yesterday"
    with pytest.raises(SerializationError):
        CacheEntryMetadata.from_dict(data)

    data = make_meta().to_dict()
    data["stale_if_error"] = "60"
    with pytest.raises(SerializationError):
        CacheEntryMetadata.from_dict(data)


def test_invalid_json():
    with pytest.raises(SerializationError):
        CacheEntryMetadata.from_json(b"{not json")
    with pytest.raises(SerializationError):
        CacheEntryMetadata.from_json("[1, 2]")


@pytest.mark.parametrize("field", ["max_age", "max_stale", "min_fresh"])
def test_request_options_reject_negative_values(field):
    with pytest.raises(ValidationError) as exc_info:
        RequestOptions(**{field: -1})
    assert exc_info.value.field == field
    assert exc_info.value.value == -1


def test_request_options_wrap_headers():
    options = RequestOptions(request_headers={"Accept": "text/html"})
    assert isinstance(options.request_headers, Headers)
    assert options.request_headers["accept"] == "text/html"
