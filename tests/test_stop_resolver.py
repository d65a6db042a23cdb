"""Tests for batched stop resolution into map pins."""

from __future__ import annotations

import threading

import pytest

from outingplanner.contracts import GeneratedPlan, PlaceQuery, PlaceResult
from outingplanner.plan_normalizer import normalize
from outingplanner.stop_resolver import StopResolver, lookup_key, resolve_plan_stops


class FakePlaceSearch:
    """Answers every query except the ones listed in `misses`."""

    def __init__(self, misses: set[str] | None = None) -> None:
        self.calls: list[list[PlaceQuery]] = []
        self._misses = misses or set()

    def batch_resolve(self, queries: list[PlaceQuery]) -> list[dict]:
        self.calls.append(list(queries))
        rows = []
        for index, query in enumerate(queries):
            if query.name in self._misses:
                continue
            rows.append(
                {
                    "query": {"name": query.name.upper(), "address": f"  {query.address} "},
                    "lat": 41.0 + index / 100,
                    "lng": -87.0 - index / 100,
                    "address": f"{query.address}, Chicago, IL 60601, USA",
                    "photo": None,
                }
            )
        # Resolver output order must not depend on response order.
        rows.reverse()
        return rows


def _plan(stops_per_day: list[int]) -> GeneratedPlan:
    days = []
    counter = 0
    for day_index, count in enumerate(stops_per_day, start=1):
        timeline = []
        for _ in range(count):
            counter += 1
            timeline.append(
                {"time": f"{counter:02d}:00", "name": f"Stop {counter}", "address": f"{counter} Main St"}
            )
        days.append({"date": f"2024-06-0{day_index}", "timeline": timeline})
    payload = normalize({"city": "Chicago", "plans": [{"title": "T", "itinerary": days}]})
    return payload.plans[0]


def test_lookup_key_is_case_and_whitespace_insensitive() -> None:
    assert lookup_key("  Millennium Park ", "201 E RANDOLPH ST") == "millennium park|201 e randolph st"


def test_plan_without_stops_makes_no_call() -> None:
    plan = GeneratedPlan.model_construct(title="Empty", itinerary=[])
    search = FakePlaceSearch()

    assert StopResolver(search).resolve(plan) == []
    assert search.calls == []


def test_resolves_pins_in_itinerary_order_with_composite_ids() -> None:
    search = FakePlaceSearch()
    plan = _plan([2, 1])

    pins = StopResolver(search).resolve(plan)

    assert len(search.calls) == 1
    assert [pin.id for pin in pins] == [
        "2024-06-01|01:00|Stop 1",
        "2024-06-01|02:00|Stop 2",
        "2024-06-02|03:00|Stop 3",
    ]
    assert pins[0].address == "1 Main St, Chicago, IL 60601, USA"
    assert pins[0].lat == pytest.approx(41.0)
    assert pins[2].lng == pytest.approx(-87.02)


def test_caps_submitted_stops_at_forty() -> None:
    search = FakePlaceSearch()
    plan = _plan([20, 25])

    pins = StopResolver(search).resolve(plan)

    assert len(search.calls) == 1
    assert len(search.calls[0]) == 40
    assert len(pins) == 40
    assert pins[-1].name == "Stop 40"


def test_partial_response_still_produces_matched_pins() -> None:
    search = FakePlaceSearch(misses={"Stop 2"})

    pins = StopResolver(search).resolve(_plan([3]))

    assert [pin.name for pin in pins] == ["Stop 1", "Stop 3"]


def test_records_without_coordinates_or_malformed_are_ignored() -> None:
    class SparseSearch:
        def batch_resolve(self, queries):  # type: ignore[no-untyped-def]
            return [
                {"query": {"name": "Stop 1", "address": "1 Main St"}, "lat": None, "lng": -87.0},
                "garbage",
                {"lat": 1.0, "lng": 2.0},
                PlaceResult(
                    query=PlaceQuery(name="Stop 2", address="2 Main St"),
                    lat=41.5,
                    lng=-87.5,
                    address="",
                ),
            ]

    pins = StopResolver(SparseSearch()).resolve(_plan([2]))

    assert [pin.name for pin in pins] == ["Stop 2"]
    assert pins[0].address == "2 Main St"


@pytest.mark.parametrize(
    "failure",
    [RuntimeError("boom"), ConnectionError("refused"), ValueError("bad json")],
)
def test_failures_degrade_to_empty_pins(failure: Exception, caplog) -> None:
    class FailingSearch:
        def batch_resolve(self, queries):  # type: ignore[no-untyped-def]
            raise failure

    with caplog.at_level("WARNING", logger="outingplanner.stop_resolver"):
        pins = StopResolver(FailingSearch()).resolve(_plan([2]))

    assert pins == []
    assert "stop resolution failed" in caplog.text


def test_non_list_response_degrades_to_empty_pins() -> None:
    class DictSearch:
        def batch_resolve(self, queries):  # type: ignore[no-untyped-def]
            return {"error": "quota"}

    assert StopResolver(DictSearch()).resolve(_plan([1])) == []


def test_slow_search_times_out_to_empty_pins() -> None:
    release = threading.Event()

    class SlowSearch:
        def batch_resolve(self, queries):  # type: ignore[no-untyped-def]
            release.wait(timeout=5)
            return []

    try:
        pins = StopResolver(SlowSearch(), timeout_seconds=0.05).resolve(_plan([1]))
    finally:
        release.set()

    assert pins == []


def test_resolve_plan_stops_passes_options() -> None:
    search = FakePlaceSearch()

    pins = resolve_plan_stops(_plan([3]), search, max_stops=2)

    assert len(search.calls[0]) == 2
    assert len(pins) == 2


def test_invalid_resolver_options_are_rejected() -> None:
    with pytest.raises(ValueError):
        StopResolver(FakePlaceSearch(), max_stops=0)
    with pytest.raises(ValueError):
        StopResolver(FakePlaceSearch(), timeout_seconds=0)


def test_larger_max_stops_cannot_lift_the_per_resolve_cap() -> None:
    search = FakePlaceSearch()

    pins = StopResolver(search, max_stops=100).resolve(_plan([45]))

    assert len(search.calls[0]) == 40
    assert len(pins) == 40
