"""Per-client target minutes for a run."""

import logging
import math
from datetime import date
from typing import Optional

from supsched.domain.intervals import total_minutes
from supsched.domain.models import (
    DEFAULT_MIN_SESSION,
    DEFAULT_SUP_PERCENT,
    Client,
    DayKey,
    ScheduleRequest,
    date_range,
)

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def default_target_minutes(
    client: Client,
    start_date: date,
    end_date: date,
    sup_percent: Optional[float] = None,
) -> int:
    """Percentage of the client's authorized minutes across a date range.

    Authorized windows measure attendance capacity, so supervisor
    availability plays no part here.

    Args:
        client: The client.
        start_date: First date of the range.
        end_date: Last date of the range (inclusive).
        sup_percent: Percentage to apply; defaults to the client's own,
            with a missing value counting as zero.

    Returns:
        Rounded target minutes, never negative.
    """
    attended = 0
    for d in date_range(start_date, end_date):
        attended += total_minutes(client.windows_on(DayKey.from_date(d)))

    pct = sup_percent if sup_percent is not None else (client.sup_percent or 0)
    return max(0, _round_half_up(attended * pct / 100))


class TargetResolver:
    """Resolves how many minutes each client should receive in a run.

    An explicit override replaces the computed default. When the resolved
    value is zero the client still gets one minimum-length session's worth,
    so every client with a window is sessionable.
    """

    def resolve_client(
        self,
        client: Client,
        request: ScheduleRequest,
        overrides: Optional[dict[str, int]] = None,
    ) -> int:
        """Target minutes for a single client."""
        override = (overrides or {}).get(client.id)
        pct = client.sup_percent if client.sup_percent is not None else DEFAULT_SUP_PERCENT

        if override is not None:
            base = override
        else:
            base = default_target_minutes(
                client, request.start_date, request.end_date, sup_percent=pct
            )

        one_session = max(0, client.min_session_mins or DEFAULT_MIN_SESSION)
        return max(0, _round_half_up(base or one_session))

    def resolve(
        self,
        request: ScheduleRequest,
        overrides: Optional[dict[str, int]] = None,
    ) -> dict[str, int]:
        """Target minutes for every client in the request."""
        targets = {c.id: self.resolve_client(c, request, overrides) for c in request.clients}
        logger.debug("Resolved targets: %s", targets)
        return targets
