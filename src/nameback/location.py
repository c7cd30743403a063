from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

DEFAULT_GEOCODE_URL = "https://nominatim.openstreetmap.org/reverse"
USER_AGENT = "nameback/0.3 (file renaming tool)"

# Nominatim usage policy: at most one request per second.
MIN_REQUEST_INTERVAL_S = 1.0
CACHE_TTL_S = 3600.0

# Session per base_url for connection reuse across lookups.
_geocode_sessions: dict[str, requests.Session] = {}

_US_STATES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "florida": "FL", "georgia": "GA",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV", "new hampshire": "NH",
    "new jersey": "NJ", "new mexico": "NM", "new york": "NY", "north carolina": "NC",
    "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA",
    "rhode island": "RI", "south carolina": "SC", "south dakota": "SD", "tennessee": "TN",
    "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}  # fmt: skip

_DIRECTION_RE = re.compile(r"^[NSEW]$", re.IGNORECASE)


@dataclass(frozen=True)
class GpsPoint:
    latitude: float
    longitude: float


def parse_gps_coordinate(value: str | float | int | None) -> float | None:
    """
    Parse an exiftool coordinate: decimal ("37.7749"), degrees and decimal
    minutes ("37 46.44") or DMS ("37 deg 46' 26.40\\" N"). Sign is not applied.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return abs(float(value))
    cleaned = str(value).replace("deg", " ").replace("'", " ").replace('"', " ")
    parts = [p for p in cleaned.split() if not _DIRECTION_RE.match(p)]
    try:
        numbers = [float(p) for p in parts]
    except ValueError:
        return None
    if len(numbers) == 1:
        return abs(numbers[0])
    if len(numbers) == 2:
        return numbers[0] + numbers[1] / 60.0
    if len(numbers) == 3:
        return numbers[0] + numbers[1] / 60.0 + numbers[2] / 3600.0
    return None


def _hemisphere_sign(ref: str | None, raw: object, negative: tuple[str, ...]) -> float:
    if ref and str(ref).strip().lower() in negative:
        return -1.0
    text = str(raw).strip() if raw is not None else ""
    if text[-1:].upper() in {n[:1].upper() for n in negative}:
        return -1.0
    if text.startswith("-"):
        return -1.0
    return 1.0


def extract_gps(metadata: dict) -> GpsPoint | None:
    """GPS position from exiftool fields GPSLatitude/GPSLatitudeRef/GPSLongitude/GPSLongitudeRef."""
    lat_raw = metadata.get("GPSLatitude")
    lon_raw = metadata.get("GPSLongitude")
    lat = parse_gps_coordinate(lat_raw)
    lon = parse_gps_coordinate(lon_raw)
    if lat is None or lon is None:
        return None
    lat *= _hemisphere_sign(metadata.get("GPSLatitudeRef"), lat_raw, ("s", "south"))
    lon *= _hemisphere_sign(metadata.get("GPSLongitudeRef"), lon_raw, ("w", "west"))
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return GpsPoint(lat, lon)


def format_coordinates(point: GpsPoint) -> str:
    """37.7749, -122.4194 -> '37.77N_122.42W'."""
    lat_dir = "N" if point.latitude >= 0 else "S"
    lon_dir = "E" if point.longitude >= 0 else "W"
    return f"{abs(point.latitude):.2f}{lat_dir}_{abs(point.longitude):.2f}{lon_dir}"


def clean_place_name(value: str) -> str:
    parts = re.split(r"[^\w]+", value, flags=re.UNICODE)
    return "_".join(p for p in parts if p)


def format_address(address: dict) -> str:
    """City_Region from a Nominatim address block; US states abbreviated."""
    city = next(
        (address.get(k) for k in ("city", "town", "village", "hamlet", "suburb") if address.get(k)),
        None,
    )
    region = address.get("state") or address.get("country")
    if city and region:
        region_clean = clean_place_name(region)
        if (address.get("country_code") or "").lower() == "us":
            region_clean = _US_STATES.get(region.strip().lower(), region_clean)
        return f"{clean_place_name(city)}_{region_clean}"
    if city:
        return clean_place_name(city)
    if region:
        return clean_place_name(region)
    return ""


@dataclass
class _GeocodeCache:
    entries: dict[str, tuple[str, float]] = field(default_factory=dict)
    last_request: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Held for the whole wait + request so lookups reach the service one at a time.
    request_lock: threading.Lock = field(default_factory=threading.Lock)

    def lookup(self, key: str) -> str | None:
        with self.lock:
            hit = self.entries.get(key)
        if hit is not None and time.monotonic() - hit[1] < CACHE_TTL_S:
            return hit[0]
        return None

    def store(self, key: str, location: str) -> None:
        with self.lock:
            self.entries[key] = (location, time.monotonic())

    def wait_time(self) -> float:
        if self.last_request is None:
            return 0.0
        return max(0.0, MIN_REQUEST_INTERVAL_S - (time.monotonic() - self.last_request))


_cache = _GeocodeCache()


def _cache_key(point: GpsPoint) -> str:
    return f"{point.latitude:.4f},{point.longitude:.4f}"


def clear_geocode_cache() -> None:
    with _cache.lock:
        _cache.entries.clear()
        _cache.last_request = None


@dataclass(frozen=True)
class GeocodeClient:
    base_url: str = DEFAULT_GEOCODE_URL
    timeout_s: float = 5.0
    user_agent: str = USER_AGENT

    @classmethod
    def from_env(cls) -> GeocodeClient:
        url = (os.environ.get("NAMEBACK_GEOCODE_URL") or "").strip()
        return cls(base_url=url or DEFAULT_GEOCODE_URL)

    def reverse(self, point: GpsPoint) -> str | None:
        """
        Reverse-geocode a point to 'City_Region'. Cached for an hour per
        4-decimal position. Requests are serialized and spaced at least one
        second apart; a caller inside that window sleeps until it has passed.
        Network and parse errors return None.
        """
        key = _cache_key(point)
        location = _cache.lookup(key)
        if location is not None:
            logger.debug("Geocode cache hit for %s", key)
            return location
        with _cache.request_lock:
            location = _cache.lookup(key)
            if location is not None:
                return location
            wait = _cache.wait_time()
            if wait > 0:
                logger.debug("Waiting %.2fs before geocoding %s", wait, key)
                time.sleep(wait)
            _cache.last_request = time.monotonic()
            location = self._request(point)
            if location:
                _cache.store(key, location)
        return location

    def _request(self, point: GpsPoint) -> str | None:
        params = {"lat": point.latitude, "lon": point.longitude, "format": "json", "zoom": 10}
        try:
            session = _geocode_sessions.get(self.base_url)
            if session is None:
                session = requests.Session()
                session.headers["User-Agent"] = self.user_agent
                _geocode_sessions[self.base_url] = session
            resp = session.get(self.base_url, params=params, timeout=self.timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except requests.HTTPError as exc:
            logger.warning(
                "Geocoding HTTP error: %s (status=%s)", exc, getattr(exc.response, "status_code", None)
            )
            return None
        except requests.RequestException as exc:
            logger.warning("Geocoding service unreachable (%s); using coordinates.", exc)
            return None
        except (json.JSONDecodeError, ValueError) as exc:
            logger.warning("Geocoding response not valid JSON: %s", exc)
            return None
        address = data.get("address") if isinstance(data, dict) else None
        if not isinstance(address, dict):
            logger.debug("No address in geocoding response for %s", _cache_key(point))
            return None
        return format_address(address) or None


def reverse_geocode(point: GpsPoint) -> str | None:
    return GeocodeClient.from_env().reverse(point)


def location_label(metadata: dict, *, geocode: bool, geocoder=reverse_geocode) -> str | None:
    """Location fragment for a filename: place name when geocoding succeeds, else coordinates."""
    point = extract_gps(metadata)
    if point is None:
        return None
    if geocode:
        place = geocoder(point)
        if place:
            return place
    return format_coordinates(point)
