"""Google Places (v1) client: batched stop lookups and city recommendations."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import json
import logging
import math
import time
from typing import Any, Callable, Iterable, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from outingplanner.cache import Clock, MemoryCache, RateLimiter, place_key
from outingplanner.contracts import (
    GeoCenter,
    PlaceQuery,
    PlaceResult,
    Recommendation,
    RecommendationSet,
)
from outingplanner.telemetry import start_span


log = logging.getLogger(__name__)

Fetcher = Callable[[Request], dict[str, Any]]

BASE_URL = "https://places.googleapis.com/v1"

# UI tab -> Places includedType
TYPE_ALIASES = {
    "food": "restaurant",
    "stay": "lodging",
    "do": "tourist_attraction",
}
DEFAULT_RECOMMENDATION_TYPES = ("restaurant", "lodging", "tourist_attraction")

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

_LOOKUP_FAILURES = (HTTPError, URLError, TimeoutError, ValueError)


class PlacesToolError(RuntimeError):
    """Raised when the Places API cannot be called safely."""


class PlaceSearchClient(Protocol):
    """Collaborator that geocodes many `{name, address}` queries in one call."""

    def batch_resolve(self, queries: list[PlaceQuery]) -> list[PlaceResult | dict[str, Any]]:
        ...


def _default_fetcher(request: Request, *, timeout: float = 15.0) -> dict[str, Any]:
    with urlopen(request, timeout=timeout) as response:  # nosec B310 - fixed trusted Places endpoint
        payload = json.loads(response.read().decode("utf-8"))
    if not isinstance(payload, dict):
        raise PlacesToolError("Unexpected Places response shape.")
    return payload


class PlacesClient:
    """Places API wrapper with caching and token-bucket throttling.

    `batch_resolve` runs its lookups on up to `max_workers` threads. With
    `batch_timeout_seconds` set, lookups that would start after the batch
    deadline are skipped and in-flight requests get only the remaining time,
    so a caller that stops waiting does not leave requests running long after.
    """

    def __init__(
        self,
        api_key: str | None,
        fetcher: Fetcher | None = None,
        cache: MemoryCache | None = None,
        rate_limiter: RateLimiter | None = None,
        *,
        ttl_seconds: int = 24 * 60 * 60,
        timeout_seconds: float = 15.0,
        batch_timeout_seconds: float | None = None,
        max_workers: int = 8,
        base_url: str = BASE_URL,
        clock: Clock | None = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._api_key = api_key or ""
        self._fetcher = fetcher
        self._cache = cache or MemoryCache(max_size=512)
        self._rate_limiter = rate_limiter or RateLimiter(rate_per_second=10.0, capacity=50.0)
        self._ttl_seconds = ttl_seconds
        self._timeout_seconds = timeout_seconds
        self._batch_timeout_seconds = batch_timeout_seconds
        self._max_workers = max_workers
        self._base_url = base_url.rstrip("/")
        self._clock = clock or time.monotonic

    def batch_resolve(self, queries: list[PlaceQuery]) -> list[PlaceResult]:
        """Geocode each query; queries without a hit are left out of the result."""
        if not queries:
            return []
        deadline = None
        if self._batch_timeout_seconds is not None:
            deadline = self._clock() + self._batch_timeout_seconds

        with start_span("places.batch_resolve") as span:
            workers = min(self._max_workers, len(queries))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="places-lookup") as pool:
                found = list(pool.map(lambda query: self._resolve_one(query, deadline), queries))
            results = [result for result in found if result is not None]
            if span is not None:
                span.set_attribute("places.queries", len(queries))
                span.set_attribute("places.hits", len(results))
            return results

    def recommend(
        self,
        city: str,
        types: Iterable[str] | None = None,
        *,
        limit: int = 10,
    ) -> RecommendationSet:
        """Nearby restaurants, lodging and attractions around a city center."""
        text_query = city.strip()
        if not text_query:
            raise PlacesToolError("A city is required for recommendations.")
        capped_limit = max(1, min(50, limit))
        place_types = [TYPE_ALIASES.get(t, t) for t in (types or DEFAULT_RECOMMENDATION_TYPES) if t]

        with start_span("places.recommend") as span:
            located = self._post(
                "places:searchText",
                {"textQuery": text_query, "languageCode": "en", "includedType": "locality"},
                field_mask="places.location",
            )
            places = _places(located)
            center = _location(places[0]) if places else None
            if center is None:
                return RecommendationSet(center=None, items=[])

            items: list[Recommendation] = []
            for place_type in place_types:
                items.extend(self._nearby(center, place_type, capped_limit))
            if span is not None:
                span.set_attribute("places.type_count", len(place_types))
                span.set_attribute("places.hits", len(items))
            return RecommendationSet(center=center, items=items)

    def photo_url(self, photo_name: str | None, *, max_width: int = 900, max_height: int = 400) -> str | None:
        if not photo_name:
            return None
        return (
            f"{self._base_url}/{quote(photo_name, safe='/')}/media"
            f"?maxHeightPx={max_height}&maxWidthPx={max_width}&key={self._api_key}"
        )

    def _resolve_one(self, query: PlaceQuery, deadline: float | None) -> PlaceResult | None:
        text_query = ", ".join(part for part in (query.name.strip(), query.address.strip()) if part)
        if not text_query:
            return None
        cache_key = place_key(query.name, query.address)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return PlaceResult.model_validate(cached)

        try:
            payload = self._post(
                "places:searchText",
                {"textQuery": text_query, "languageCode": "en"},
                field_mask="places.formattedAddress,places.location,places.photos.name",
                deadline=deadline,
            )
        except _LOOKUP_FAILURES as exc:
            log.info("place lookup failed for %r: %s", text_query, exc)
            return None

        places = _places(payload)
        if not places:
            return None
        first = places[0]
        location = _location(first)
        if location is None:
            return None

        address = first.get("formattedAddress")
        result = PlaceResult(
            query=query,
            lat=location.lat,
            lng=location.lng,
            address=address if isinstance(address, str) and address else None,
            photo=self.photo_url(_first_photo_name(first)),
        )
        self._cache.set(cache_key, result.model_dump(mode="json", by_alias=True), ttl_seconds=self._ttl_seconds)
        return result

    def _nearby(self, center: GeoCenter, place_type: str, limit: int) -> list[Recommendation]:
        try:
            payload = self._post(
                "places:searchNearby",
                {
                    "includedTypes": [place_type],
                    "maxResultCount": limit,
                    "locationRestriction": {
                        "circle": {
                            "center": {"latitude": center.lat, "longitude": center.lng},
                            "radius": 2000,
                        }
                    },
                    "languageCode": "en",
                },
                field_mask=(
                    "places.id,places.displayName,places.formattedAddress,places.location,"
                    "places.rating,places.userRatingCount,places.priceLevel,places.photos.name"
                ),
            )
        except _LOOKUP_FAILURES as exc:
            log.warning("nearby search failed for type %s: %s", place_type, exc)
            return []

        items: list[Recommendation] = []
        for place in _places(payload):
            location = _location(place)
            if location is None:
                continue
            display_name = place.get("displayName")
            price_level = PRICE_LEVELS.get(_text(place.get("priceLevel")))
            items.append(
                Recommendation(
                    place_id=_text(place.get("id")),
                    type=place_type,
                    name=_text(display_name.get("text")) if isinstance(display_name, dict) else "",
                    rating=_to_float(place.get("rating")),
                    ratings_total=_to_count(place.get("userRatingCount")),
                    price_level=price_level,
                    price_text=price_text_for_level(price_level),
                    address=_text(place.get("formattedAddress")),
                    lat=location.lat,
                    lng=location.lng,
                    photo=self.photo_url(_first_photo_name(place)),
                )
            )
        return items

    def _post(
        self,
        method: str,
        body: dict[str, Any],
        *,
        field_mask: str,
        deadline: float | None = None,
    ) -> dict[str, Any]:
        if not self._api_key:
            raise PlacesToolError("GOOGLE_PLACES_KEY is not configured.")
        timeout = self._timeout_seconds
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise TimeoutError("batch deadline passed before the request started")
            timeout = min(timeout, remaining)
        wait_seconds = self._rate_limiter.acquire()
        if wait_seconds > 0:
            raise PlacesToolError(f"Places API throttled. Retry after {wait_seconds:.2f} seconds.")
        request = Request(  # noqa: S310
            f"{self._base_url}/{method}",
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Content-Type": "application/json; charset=utf-8",
                "X-Goog-Api-Key": self._api_key,
                "X-Goog-FieldMask": field_mask,
            },
            method="POST",
        )
        if self._fetcher is not None:
            return self._fetcher(request)
        return _default_fetcher(request, timeout=timeout)


def price_text_for_level(level: int | None) -> str | None:
    if level is None:
        return None
    if level == 0:
        return "Free"
    return "$" * level


def _places(payload: Any) -> list[dict[str, Any]]:
    places = payload.get("places") if isinstance(payload, dict) else None
    if not isinstance(places, list):
        return []
    return [place for place in places if isinstance(place, dict)]


def _location(place: dict[str, Any]) -> GeoCenter | None:
    location = place.get("location")
    if not isinstance(location, dict):
        return None
    lat = _to_float(location.get("latitude"))
    lng = _to_float(location.get("longitude"))
    if lat is None or lng is None:
        return None
    return GeoCenter(lat=lat, lng=lng)


def _first_photo_name(place: dict[str, Any]) -> str | None:
    photos = place.get("photos")
    if isinstance(photos, list) and photos and isinstance(photos[0], dict):
        name = photos[0].get("name")
        return name if isinstance(name, str) and name else None
    return None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _to_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value
