"""Structured data contracts for outing plans, place lookups and map markers."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


PriceRange = Literal["Free", "$", "$$", "$$$", "$$$$"]
PRICE_RANGES: tuple[str, ...] = ("Free", "$", "$$", "$$$", "$$$$")


class _WireModel(BaseModel):
    """Base for models that travel as camelCase JSON."""

    model_config = ConfigDict(populate_by_name=True)


class PlanStop(_WireModel):
    time: str = ""
    name: str = ""
    address: str = ""
    categories: list[str] = Field(default_factory=list)
    matches: list[str] = Field(default_factory=list)
    price_range: PriceRange | None = Field(default=None, alias="priceRange")
    description: str = ""
    notes: str | None = None


class PlanDay(_WireModel):
    date: str = ""
    timeline: list[PlanStop] = Field(min_length=1)


class PlanSummary(_WireModel):
    duration_hours: float | None = Field(default=None, alias="durationHours")
    total_distance_km: float | None = Field(default=None, alias="totalDistanceKm")
    satisfaction: dict[str, float] = Field(default_factory=dict)
    # 0-1 scale in generator output; the plan-level index is 0-100.
    avg_fairness_index: float | None = Field(default=None, alias="avgFairnessIndex")


class GeneratedPlan(_WireModel):
    plan_id: str | None = Field(default=None, alias="planId")
    title: str = Field(min_length=1)
    badge: list[str] = Field(default_factory=list)
    overview: str = ""
    itinerary: list[PlanDay] = Field(min_length=1)
    total_budget_estimate: str | None = Field(default=None, alias="totalBudgetEstimate")
    fairness_scores: dict[str, float] = Field(default_factory=dict, alias="fairnessScores")
    avg_fairness_index: float | None = Field(default=None, alias="avgFairnessIndex")
    summary: PlanSummary | None = None
    tips: str = ""

    def stops(self) -> list[tuple[PlanDay, PlanStop]]:
        """All (day, stop) pairs in itinerary order."""
        return [(day, stop) for day in self.itinerary for stop in day.timeline]


class PlansPayload(_WireModel):
    city: str = ""
    plans: list[GeneratedPlan] = Field(default_factory=list)


class PlaceQuery(_WireModel):
    name: str = ""
    address: str = ""


class PlaceResult(_WireModel):
    query: PlaceQuery
    lat: float | None = None
    lng: float | None = None
    address: str | None = None
    photo: str | None = None


class ResolvedPin(_WireModel):
    id: str
    name: str
    address: str
    lat: float
    lng: float


class GeoCenter(_WireModel):
    lat: float
    lng: float


class Recommendation(_WireModel):
    place_id: str = Field(default="", alias="placeId")
    type: str
    name: str
    rating: float | None = None
    ratings_total: int = Field(default=0, alias="ratingsTotal")
    price_level: int | None = Field(default=None, alias="priceLevel", ge=0, le=4)
    price_text: PriceRange | None = Field(default=None, alias="priceText")
    address: str = ""
    lat: float
    lng: float
    photo: str | None = None


class RecommendationSet(_WireModel):
    center: GeoCenter | None = None
    items: list[Recommendation] = Field(default_factory=list)


class MapMarker(_WireModel):
    key: str
    source: Literal["rec", "plan"]
    name: str
    address: str = ""
    lat: float
    lng: float


class RequestIdentity(BaseModel):
    """Caller identity scoped to a single request."""

    email: str

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        email = value.strip().lower()
        if not _EMAIL_PATTERN.match(email):
            raise ValueError("Valid email is required.")
        return email


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
