"""Defensive coercion of generator plan payloads into validated contracts.

The itinerary generator is LLM-driven and its output schema is not guaranteed.
Nothing here raises on bad input: a malformed field is defaulted, and an
element that ends up without identity (stop), without stops (day) or without
days (plan) is dropped.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from outingplanner.contracts import (
    PRICE_RANGES,
    GeneratedPlan,
    PlanDay,
    PlanStop,
    PlanSummary,
    PlansPayload,
)
from outingplanner.telemetry import start_span


FALLBACK_TITLE = "Plan"

_DOLLAR_RUN = re.compile(r"\$+")


def normalize(raw: Any) -> PlansPayload:
    """Coerce an untrusted plan payload into a `PlansPayload`."""
    with start_span("plans.normalize") as span:
        payload = _normalize_payload(raw)
        if span is not None:
            span.set_attribute("plans.count", len(payload.plans))
        return payload


def normalize_json(text: str | bytes | None) -> PlansPayload:
    """Parse a JSON document and normalize it; unparsable input yields no plans."""
    if text is None:
        return PlansPayload()
    try:
        raw = json.loads(text)
    except (TypeError, ValueError):
        return PlansPayload()
    return normalize(raw)


def _normalize_payload(raw: Any) -> PlansPayload:
    if not isinstance(raw, dict):
        return PlansPayload()

    city = raw.get("city")
    raw_plans = raw.get("plans")
    plans: list[GeneratedPlan] = []
    if isinstance(raw_plans, list):
        for item in raw_plans:
            plan = _normalize_plan(item)
            if plan is not None:
                plans.append(plan)
    return PlansPayload(city=city if isinstance(city, str) else "", plans=plans)


def _normalize_plan(raw: Any) -> GeneratedPlan | None:
    if not isinstance(raw, dict):
        return None

    itinerary: list[PlanDay] = []
    raw_days = raw.get("itinerary")
    if isinstance(raw_days, list):
        for item in raw_days:
            day = _normalize_day(item)
            if day is not None:
                itinerary.append(day)
    if not itinerary:
        return None

    plan_id = _as_identifier(_pick(raw, "planId", "plan_id"))
    title = _as_text(raw.get("title")) or _as_text(raw.get("name")) or plan_id or FALLBACK_TITLE
    return GeneratedPlan(
        plan_id=plan_id,
        title=title,
        badge=_as_text_list(raw.get("badge")),
        overview=_as_text(raw.get("overview")),
        itinerary=itinerary,
        total_budget_estimate=_as_optional_text(
            _pick(raw, "totalBudgetEstimate", "total_budget_estimate")
        ),
        fairness_scores=_as_score_map(_pick(raw, "fairnessScores", "fairness_scores")),
        avg_fairness_index=_as_number(_pick(raw, "avgFairnessIndex", "avg_fairness_index")),
        summary=_normalize_summary(raw.get("summary")),
        tips=_as_text(raw.get("tips")),
    )


def _normalize_day(raw: Any) -> PlanDay | None:
    if not isinstance(raw, dict):
        return None
    timeline: list[PlanStop] = []
    raw_stops = raw.get("timeline")
    if isinstance(raw_stops, list):
        for item in raw_stops:
            stop = _normalize_stop(item)
            if stop is not None:
                timeline.append(stop)
    if not timeline:
        return None
    return PlanDay(date=_as_text(raw.get("date")), timeline=timeline)


def _normalize_stop(raw: Any) -> PlanStop | None:
    if not isinstance(raw, dict):
        return None
    name = _as_text(raw.get("name"))
    address = _as_text(raw.get("address"))
    if not name and not address:
        return None
    return PlanStop(
        time=_as_text(raw.get("time")),
        name=name,
        address=address,
        categories=_as_text_list(raw.get("categories")),
        matches=_as_text_list(raw.get("matches")),
        price_range=resolve_price_range(
            _pick(raw, "priceRange", "price_range"),
            raw.get("cost_estimate"),
        ),
        description=_as_text(raw.get("description")),
        notes=_as_optional_text(raw.get("notes")),
    )


def _normalize_summary(raw: Any) -> PlanSummary | None:
    if not isinstance(raw, dict):
        return None
    return PlanSummary(
        duration_hours=_as_number(_pick(raw, "durationHours", "duration_hours")),
        total_distance_km=_as_number(_pick(raw, "totalDistanceKm", "total_distance_km")),
        satisfaction=_as_score_map(raw.get("satisfaction")),
        avg_fairness_index=_as_number(_pick(raw, "avgFairnessIndex", "avg_fairness_index")),
    )


def resolve_price_range(price_range: Any, cost_estimate: Any) -> str | None:
    """Pick a price token from `priceRange`, falling back to a `cost_estimate` text.

    >>> resolve_price_range(None, "$$ per person")
    '$$'
    >>> resolve_price_range(None, "Free entry")
    'Free'
    """
    if isinstance(price_range, str) and price_range.strip() in PRICE_RANGES:
        return price_range.strip()
    if not isinstance(cost_estimate, str) or not cost_estimate.strip():
        return None
    match = _DOLLAR_RUN.search(cost_estimate)
    if match is None:
        return "Free"
    return "$" * min(len(match.group(0)), 4)


def _pick(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_optional_text(value: Any) -> str | None:
    return _as_text(value) or None


def _as_identifier(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return _as_optional_text(value)


def _as_text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items = (_as_text(item) for item in value)
    return list(dict.fromkeys(item for item in items if item))


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _as_score_map(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    scores: dict[str, float] = {}
    for key, raw_score in value.items():
        score = _as_number(raw_score)
        if score is not None:
            scores[str(key)] = score
    return scores
