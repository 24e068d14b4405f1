import logging
from typing import Iterable, List

from . import config
from .domain import AttemptState, CandidateScore, ScribeRequest, Urgency
from .schedule import is_available
from .scoring import score_candidate

log = logging.getLogger(__name__)


class CandidateRanker:
    """
    Orders the volunteers around a request, best first.

    Order: score desc, then distance asc, then volunteer id, so two calls
    against the same pool always agree. No radius escalation happens here;
    an empty pool is returned as an empty list.
    """

    def __init__(
        self,
        geo_index,
        attempts,
        default_radius_km: float = config.DEFAULT_RADIUS_KM,
        critical_radius_km: float = config.CRITICAL_RADIUS_KM,
    ):
        self.geo_index = geo_index
        self.attempts = attempts
        self.default_radius_km = default_radius_km
        self.critical_radius_km = critical_radius_km

    def radius_for(self, urgency: Urgency) -> float:
        if Urgency.parse(urgency) is Urgency.CRITICAL:
            return self.critical_radius_km
        return self.default_radius_km

    async def _blocked_volunteers(self, request_id: str) -> set:
        # pending on this request, or already said no to it
        history = await self.attempts.list_for_request(request_id)
        return {
            a.volunteer_id
            for a in history
            if a.state in (AttemptState.PROPOSED, AttemptState.DECLINED)
        }

    async def rank(self, request: ScribeRequest, exclude: Iterable[str] = ()) -> List[CandidateScore]:
        request.validate()
        radius = self.radius_for(request.urgency)

        skip = set(exclude) | await self._blocked_volunteers(request.id)
        nearby = await self.geo_index.find_within_radius(request.location, radius)

        scored = []
        for volunteer, distance in nearby:
            if volunteer.id in skip:
                continue
            if not is_available(volunteer.availability, request.scheduled_at):
                continue
            scored.append(score_candidate(request, volunteer, distance))

        scored.sort(key=lambda c: (-c.total, c.distance_km, c.volunteer_id))

        log.debug(
            "ranked %d candidates for request %s within %.0f km",
            len(scored), request.id, radius,
        )
        return scored
