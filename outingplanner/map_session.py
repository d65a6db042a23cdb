"""Per-outing map state: plan selection, plan pins and recommendation markers."""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Iterable, Literal

from outingplanner.contracts import (
    GeneratedPlan,
    MapMarker,
    PlansPayload,
    Recommendation,
    ResolvedPin,
)
from outingplanner.stop_resolver import StopResolver


SessionState = Literal["no_plan", "plans_loaded", "plan_active"]

REC_PREFIX = "rec:"
PLAN_PREFIX = "plan:"


@dataclass(frozen=True)
class PlanSelection:
    """Ticket for one plan-selection event; stale tickets cannot commit pins."""

    index: int
    generation: int


class OutingMapSession:
    """Holds the plans of one outing view and the markers drawn on its map.

    Recommendation markers and plan pins arrive independently. Plan pins are
    accepted only for the most recent selection (last write wins by selection,
    not by completion order).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._city = ""
        self._plans: list[GeneratedPlan] = []
        self._active_index: int | None = None
        self._generation = 0
        self._rec_markers: dict[str, MapMarker] = {}
        self._plan_markers: dict[str, MapMarker] = {}
        self._committed = False

    @property
    def state(self) -> SessionState:
        with self._lock:
            if not self._plans:
                return "no_plan"
            if self._active_index is None:
                return "plans_loaded"
            return "plan_active"

    @property
    def city(self) -> str:
        return self._city

    @property
    def plans(self) -> list[GeneratedPlan]:
        with self._lock:
            return list(self._plans)

    @property
    def active_plan(self) -> GeneratedPlan | None:
        with self._lock:
            if self._active_index is None:
                return None
            return self._plans[self._active_index]

    @property
    def plot_failed(self) -> bool:
        """True when the active plan's pins came back empty although it has stops."""
        with self._lock:
            return self._active_index is not None and self._committed and not self._plan_markers

    def load_plans(self, payload: PlansPayload) -> None:
        with self._lock:
            self._city = payload.city
            self._plans = list(payload.plans)
            self._active_index = None
            self._generation += 1
            self._plan_markers = {}
            self._committed = False

    def select_plan(self, index: int) -> PlanSelection:
        with self._lock:
            if not 0 <= index < len(self._plans):
                raise IndexError(f"Plan index {index} out of range ({len(self._plans)} plan(s)).")
            self._generation += 1
            self._active_index = index
            self._plan_markers = {}
            self._committed = False
            return PlanSelection(index=index, generation=self._generation)

    def commit_pins(self, selection: PlanSelection, pins: Iterable[ResolvedPin]) -> bool:
        """Store pins for `selection`; returns False when a newer selection exists."""
        with self._lock:
            if selection.generation != self._generation or selection.index != self._active_index:
                return False
            self._plan_markers = {
                f"{PLAN_PREFIX}{pin.id}": MapMarker(
                    key=f"{PLAN_PREFIX}{pin.id}",
                    source="plan",
                    name=pin.name,
                    address=pin.address,
                    lat=pin.lat,
                    lng=pin.lng,
                )
                for pin in pins
            }
            self._committed = True
            return True

    def resolve_selection(self, index: int, resolver: StopResolver) -> bool:
        selection = self.select_plan(index)
        plan = self.active_plan
        if plan is None:
            return False
        return self.commit_pins(selection, resolver.resolve(plan))

    def set_recommendations(self, items: Iterable[Recommendation]) -> None:
        markers: dict[str, MapMarker] = {}
        for position, item in enumerate(items):
            key = f"{REC_PREFIX}{item.place_id or position}"
            markers[key] = MapMarker(
                key=key,
                source="rec",
                name=item.name,
                address=item.address,
                lat=item.lat,
                lng=item.lng,
            )
        with self._lock:
            self._rec_markers = markers

    def markers(self) -> list[MapMarker]:
        with self._lock:
            return [*self._rec_markers.values(), *self._plan_markers.values()]
