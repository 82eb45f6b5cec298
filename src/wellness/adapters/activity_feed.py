"""HTTP activity-feed client.

Pages a REST endpoint that lists an athlete's activities newest-first::

    GET {base_url}/athletes/{athlete_id}/activities?page=1&per_page=200
    Authorization: Bearer <token>

Token acquisition and refresh belong to the caller; this client only sends
the bearer token it is given.
"""

from __future__ import annotations

import logging

import httpx

from src.wellness.base import (
    ActivityFeed,
    ActivitySummary,
    FetchError,
    LinkageRequiredError,
    SourceId,
    parse_iso_datetime,
    safe_float,
    safe_int,
)

logger = logging.getLogger("wellness.adapters.activity_feed")


def parse_activity(raw: dict) -> ActivitySummary | None:
    """Convert one feed item into an ActivitySummary.

    Returns None (with a warning) if the item has no id or start time.
    """
    activity_id = raw.get("id")
    start = parse_iso_datetime(raw.get("start_date"))
    if activity_id is None or start is None:
        logger.warning("Skipping activity without id/start_date: %r", raw.get("id"))
        return None

    return ActivitySummary(
        id=str(activity_id),
        type=str(raw.get("sport_type") or raw.get("type") or "Workout"),
        start=start,
        moving_time_s=safe_int(raw.get("moving_time")) or 0,
        elapsed_time_s=safe_int(raw.get("elapsed_time")) or 0,
        distance_m=safe_float(raw.get("distance")) or 0.0,
        average_watts=safe_float(raw.get("average_watts")),
        weighted_average_watts=safe_float(raw.get("weighted_average_watts")),
        suffer_score=safe_float(raw.get("suffer_score")),
        average_heartrate=safe_float(raw.get("average_heartrate")),
        max_heartrate=safe_float(raw.get("max_heartrate")),
        kilojoules=safe_float(raw.get("kilojoules")),
        name=str(raw.get("name") or ""),
    )


class HttpActivityFeed(ActivityFeed):
    """Activity feed backed by an HTTP API."""

    SOURCE = SourceId.ACTIVITY_API

    def __init__(
        self,
        base_url: str,
        access_token: str | None,
        athlete_id: str | None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the feed client.

        Args:
            base_url:     API root, e.g. ``https://api.example.com/v1``.
            access_token: Bearer token for the athlete.
            athlete_id:   Linked athlete identifier; None means not linked.
            http_client:  Optional pre-configured httpx client (for testing).
            timeout:      Request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._athlete_id = athlete_id
        self._http_client = http_client
        self._timeout = timeout

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
        }

    async def fetch_activities(self, page: int, per_page: int) -> list[ActivitySummary]:
        """Fetch one page (1-based) of activities.

        Raises:
            LinkageRequiredError: No athlete is linked, or the API rejects the token.
            FetchError:           Any other HTTP or payload failure.
        """
        if not self._athlete_id or not self._access_token:
            raise LinkageRequiredError(self.SOURCE, "No athlete account linked")

        url = f"{self._base_url}/athletes/{self._athlete_id}/activities"
        params = {"page": page, "per_page": per_page}
        try:
            if self._http_client:
                response = await self._http_client.get(
                    url, params=params, headers=self._build_headers()
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=self._build_headers())
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise LinkageRequiredError(
                    self.SOURCE, f"Activity API rejected credentials (HTTP {status})"
                ) from exc
            raise FetchError(self.SOURCE, f"Activity API returned HTTP {status}") from exc
        except httpx.RequestError as exc:
            raise FetchError(self.SOURCE, f"Activity API request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(self.SOURCE, f"Activity API returned invalid JSON: {exc}") from exc

        if not isinstance(payload, list):
            raise FetchError(self.SOURCE, "Activity API response is not a list")

        activities = [a for a in (parse_activity(item) for item in payload) if a is not None]
        logger.debug("Activity feed page %d: %d items", page, len(activities))
        return activities
