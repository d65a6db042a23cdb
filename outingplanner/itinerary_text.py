"""Plain-text rendering of normalized plans."""

from __future__ import annotations

import dateparser

from outingplanner.contracts import GeneratedPlan, PlanStop, PlansPayload


_DATE_SETTINGS = {
    "STRICT_PARSING": True,
    "PREFER_DAY_OF_MONTH": "first",
    "RETURN_AS_TIMEZONE_AWARE": False,
}


def day_label(raw_date: str) -> str:
    """Humanize an ISO-ish day date; unparsable text is returned as given."""
    text = raw_date.strip()
    if not text:
        return ""
    parsed = dateparser.parse(text, settings=_DATE_SETTINGS)
    if parsed is None:
        return text
    return parsed.strftime("%a %d %b %Y")


def render_plan_text(plan: GeneratedPlan) -> str:
    lines: list[str] = [plan.title]
    if plan.overview:
        lines.append(plan.overview)
    for day_index, day in enumerate(plan.itinerary, start=1):
        label = day_label(day.date)
        lines.append(f"Day {day_index} ({label})" if label else f"Day {day_index}")
        for stop in day.timeline:
            lines.append(f"  - {_stop_line(stop)}")
    if plan.tips:
        lines.append(f"Tips: {plan.tips}")
    return "\n".join(lines)


def render_payload_text(payload: PlansPayload) -> str:
    return "\n\n".join(render_plan_text(plan) for plan in payload.plans)


def _stop_line(stop: PlanStop) -> str:
    label = stop.name or stop.address
    if stop.name and stop.address:
        label = f"{stop.name} ({stop.address})"
    if stop.time:
        label = f"{stop.time}: {label}"
    if stop.price_range:
        label = f"{label} [{stop.price_range}]"
    return label
