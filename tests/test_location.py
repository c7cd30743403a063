from __future__ import annotations

import pytest
import requests

from nameback import location
from nameback.location import (
    GeocodeClient,
    GpsPoint,
    extract_gps,
    format_address,
    format_coordinates,
    location_label,
    parse_gps_coordinate,
)

URL = "http://geocode.test/reverse"


class FakeResponse:
    def __init__(self, payload, status_error: Exception | None = None) -> None:
        self._payload = payload
        self._status_error = status_error

    def raise_for_status(self) -> None:
        if self._status_error is not None:
            raise self._status_error

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.response


def test_parse_gps_coordinate_formats() -> None:
    assert parse_gps_coordinate("37.7749") == pytest.approx(37.7749)
    assert parse_gps_coordinate("37 46.44") == pytest.approx(37.774)
    assert parse_gps_coordinate("37 deg 46' 26.40\" N") == pytest.approx(37.774, abs=1e-4)
    assert parse_gps_coordinate("north") is None
    assert parse_gps_coordinate(None) is None


def test_extract_gps_applies_hemisphere() -> None:
    point = extract_gps(
        {
            "GPSLatitude": "33 deg 52' 4.00\" S",
            "GPSLatitudeRef": "South",
            "GPSLongitude": "151 deg 12' 36.00\" E",
            "GPSLongitudeRef": "East",
        }
    )
    assert point is not None
    assert point.latitude < 0 < point.longitude
    assert format_coordinates(point) == "33.87S_151.21E"


def test_extract_gps_missing_fields() -> None:
    assert extract_gps({"GPSLatitude": "37.7"}) is None


def test_format_address_abbreviates_us_states() -> None:
    address = {"city": "San Francisco", "state": "California", "country_code": "us"}
    assert format_address(address) == "San_Francisco_CA"
    assert format_address({"town": "Hallstatt", "state": "Upper Austria", "country_code": "at"}) == "Hallstatt_Upper_Austria"
    assert format_address({"country": "Iceland"}) == "Iceland"
    assert format_address({}) == ""


def test_reverse_geocode_success_and_cache(monkeypatch) -> None:
    session = FakeSession(FakeResponse({"address": {"city": "Paris", "state": "Ile-de-France"}}))
    monkeypatch.setitem(location._geocode_sessions, URL, session)
    client = GeocodeClient(base_url=URL)
    point = GpsPoint(48.8566, 2.3522)

    assert client.reverse(point) == "Paris_Ile_de_France"
    assert client.reverse(point) == "Paris_Ile_de_France"
    assert len(session.calls) == 1
    assert session.calls[0]["format"] == "json"


def test_reverse_geocode_waits_out_rate_limit(monkeypatch) -> None:
    session = FakeSession(FakeResponse({"address": {"city": "Oslo"}}))
    monkeypatch.setitem(location._geocode_sessions, URL, session)
    sleeps: list[float] = []
    monkeypatch.setattr(location.time, "sleep", sleeps.append)
    client = GeocodeClient(base_url=URL)

    assert client.reverse(GpsPoint(59.91, 10.75)) == "Oslo"
    assert client.reverse(GpsPoint(60.39, 5.32)) == "Oslo"
    assert len(session.calls) == 2
    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= location.MIN_REQUEST_INTERVAL_S


def test_back_to_back_lookups_give_same_answer(monkeypatch) -> None:
    monkeypatch.setattr(location.time, "sleep", lambda s: None)
    monkeypatch.setattr(GeocodeClient, "_request", lambda self, point: "City_Region")
    client = GeocodeClient(base_url=URL)

    first = client.reverse(GpsPoint(10.0, 20.0))
    second = client.reverse(GpsPoint(11.0, 21.0))
    assert first == second == "City_Region"


def test_reverse_geocode_network_error(monkeypatch) -> None:
    session = FakeSession(error=requests.ConnectionError("offline"))
    monkeypatch.setitem(location._geocode_sessions, URL, session)
    assert GeocodeClient(base_url=URL).reverse(GpsPoint(1.0, 2.0)) is None


def test_reverse_geocode_http_error(monkeypatch) -> None:
    session = FakeSession(FakeResponse({}, status_error=requests.HTTPError("429")))
    monkeypatch.setitem(location._geocode_sessions, URL, session)
    assert GeocodeClient(base_url=URL).reverse(GpsPoint(1.0, 2.0)) is None


def test_client_from_env(monkeypatch) -> None:
    monkeypatch.setenv("NAMEBACK_GEOCODE_URL", URL)
    assert GeocodeClient.from_env().base_url == URL
    monkeypatch.delenv("NAMEBACK_GEOCODE_URL")
    assert GeocodeClient.from_env().base_url == location.DEFAULT_GEOCODE_URL


def test_location_label_falls_back_to_coordinates() -> None:
    meta = {"GPSLatitude": "37.7749", "GPSLatitudeRef": "N", "GPSLongitude": "122.4194", "GPSLongitudeRef": "W"}
    assert location_label(meta, geocode=True, geocoder=lambda point: None) == "37.77N_122.42W"
    assert location_label(meta, geocode=True, geocoder=lambda point: "San_Francisco_CA") == "San_Francisco_CA"
    assert location_label({}, geocode=True, geocoder=lambda point: "x") is None
