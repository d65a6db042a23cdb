"""HTTP client for the plan-generation producer."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from outingplanner.contracts import PlansPayload, RequestIdentity
from outingplanner.plan_normalizer import normalize
from outingplanner.telemetry import start_span


log = logging.getLogger(__name__)

Fetcher = Callable[[Request], Any]


class PlanSourceError(RuntimeError):
    """Raised when a plan request cannot be built."""


def _default_fetcher(request: Request, *, timeout: float = 15.0) -> Any:
    with urlopen(request, timeout=timeout) as response:  # nosec B310 - configured producer endpoint
        return json.loads(response.read().decode("utf-8"))


class PlanSourceClient:
    """Fetches the generated plans of an outing on behalf of one caller."""

    def __init__(
        self,
        base_url: str,
        fetcher: Fetcher | None = None,
        *,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._fetcher = fetcher or (lambda request: _default_fetcher(request, timeout=timeout_seconds))

    def fetch_raw(self, outing_id: int, identity: RequestIdentity) -> Any | None:
        """Raw producer payload, or None when no plan has been generated yet."""
        if isinstance(outing_id, bool) or not isinstance(outing_id, int) or outing_id <= 0:
            raise PlanSourceError(f"Invalid outing id: {outing_id!r}.")
        query = urlencode({"email": identity.email})
        request = Request(  # noqa: S310
            f"{self._base_url}/api/outings/{outing_id}/plans?{query}",
            headers={"Accept": "application/json"},
        )
        with start_span("plans.fetch") as span:
            if span is not None:
                span.set_attribute("outing.id", outing_id)
            try:
                return self._fetcher(request)
            except HTTPError as exc:
                log.info("no plans for outing %s (HTTP %s)", outing_id, exc.code)
            except (URLError, TimeoutError, ValueError) as exc:
                log.warning("plan fetch failed for outing %s: %s", outing_id, exc)
            return None

    def load_plans(self, outing_id: int, identity: RequestIdentity) -> PlansPayload:
        return normalize(self.fetch_raw(outing_id, identity))
