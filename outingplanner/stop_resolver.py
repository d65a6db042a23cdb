"""Resolve the stops of a normalized plan into geocoded map pins."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
import logging
from typing import Any

from pydantic import ValidationError

from outingplanner.contracts import GeneratedPlan, PlaceQuery, PlaceResult, ResolvedPin
from outingplanner.places_tool import PlaceSearchClient
from outingplanner.telemetry import mark_span_failed, start_span


log = logging.getLogger(__name__)

MAX_STOPS_PER_RESOLVE = 40
DEFAULT_TIMEOUT_SECONDS = 10.0


class StopResolutionTimeout(TimeoutError):
    """Raised internally when the place search exceeds its time budget."""


def lookup_key(name: str, address: str) -> str:
    """Correlation key between a stop and a place-search record."""
    return f"{name.lower().strip()}|{address.lower().strip()}"


def pin_id(date: str, time: str, name: str) -> str:
    return f"{date}|{time}|{name}"


class StopResolver:
    """Best-effort geocoding of plan stops through one batched lookup.

    Failures of any kind degrade to an empty pin list; the itinerary text stays
    usable without coordinates.
    """

    def __init__(
        self,
        place_search: PlaceSearchClient,
        *,
        max_stops: int = MAX_STOPS_PER_RESOLVE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if max_stops <= 0:
            raise ValueError("max_stops must be > 0")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._place_search = place_search
        self._max_stops = min(max_stops, MAX_STOPS_PER_RESOLVE)
        self._timeout_seconds = timeout_seconds

    def resolve(self, plan: GeneratedPlan) -> list[ResolvedPin]:
        pairs = plan.stops()[: self._max_stops]
        if not pairs:
            return []

        with start_span("stops.resolve") as span:
            if span is not None:
                span.set_attribute("stops.total", len(plan.stops()))
                span.set_attribute("stops.submitted", len(pairs))

            queries = [PlaceQuery(name=stop.name, address=stop.address) for _, stop in pairs]
            try:
                records = self._search(queries)
            except Exception as exc:
                log.warning("stop resolution failed for plan %r: %s", plan.title, exc)
                mark_span_failed(span, exc)
                return []

            by_key = _index_records(records)
            pins: list[ResolvedPin] = []
            for day, stop in pairs:
                hit = by_key.get(lookup_key(stop.name, stop.address))
                if hit is None:
                    continue
                pins.append(
                    ResolvedPin(
                        id=pin_id(day.date, stop.time, stop.name),
                        name=stop.name,
                        address=hit.address or stop.address,
                        lat=hit.lat,
                        lng=hit.lng,
                    )
                )
            if span is not None:
                span.set_attribute("pins.count", len(pins))
            return pins

    def _search(self, queries: list[PlaceQuery]) -> list[Any]:
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stop-resolver")
        try:
            future = pool.submit(self._place_search.batch_resolve, queries)
            try:
                response = future.result(timeout=self._timeout_seconds)
            except FutureTimeoutError as exc:
                raise StopResolutionTimeout(
                    f"Place search did not answer within {self._timeout_seconds:g} seconds."
                ) from exc
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        if not isinstance(response, list):
            raise ValueError(f"Unexpected place search response type: {type(response).__name__}.")
        return response


def resolve_plan_stops(
    plan: GeneratedPlan,
    place_search: PlaceSearchClient,
    **kwargs: Any,
) -> list[ResolvedPin]:
    return StopResolver(place_search, **kwargs).resolve(plan)


def _index_records(records: list[Any]) -> dict[str, PlaceResult]:
    """Map lookup keys to the first record carrying both coordinates."""
    by_key: dict[str, PlaceResult] = {}
    for record in records:
        result = _as_place_result(record)
        if result is None or result.lat is None or result.lng is None:
            continue
        by_key.setdefault(lookup_key(result.query.name, result.query.address), result)
    return by_key


def _as_place_result(record: Any) -> PlaceResult | None:
    if isinstance(record, PlaceResult):
        return record
    if not isinstance(record, dict):
        return None
    try:
        return PlaceResult.model_validate(record)
    except ValidationError:
        return None
