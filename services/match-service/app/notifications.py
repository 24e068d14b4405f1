"""
Outbound side of the engine. Both classes only publish domain events; the
notification-service decides how (push, SMS, email) a volunteer is alerted,
and analytics consumers build the match history from `match.attempt_closed`.
"""

from .domain import MatchAttempt, ScribeRequest, Volunteer
from .events import (
    MATCH_ACCEPTED,
    MATCH_ATTEMPT_CLOSED,
    MATCH_PROPOSED,
    MATCH_SEARCHING,
    build_event,
    to_json,
)


def attempt_payload(attempt: MatchAttempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "request_id": attempt.request_id,
        "volunteer_id": attempt.volunteer_id,
        "state": attempt.state.value,
        "score": attempt.score,
        "distance_km": attempt.distance_km,
        "proposed_at": attempt.proposed_at.isoformat(),
        "expires_at": attempt.expires_at.isoformat(),
        "responded_at": attempt.responded_at.isoformat() if attempt.responded_at else None,
    }


class EventNotificationDispatcher:
    def __init__(self, publisher):
        self.publisher = publisher

    async def notify_proposal(self, volunteer: Volunteer, request: ScribeRequest, attempt: MatchAttempt):
        data = attempt_payload(attempt)
        data.update(
            {
                "volunteer_name": volunteer.name if volunteer else None,
                "urgency": request.urgency.value,
                "scheduled_at": request.scheduled_at.isoformat(),
                "duration_minutes": request.duration_minutes,
                "address": request.address,
            }
        )
        event = build_event(MATCH_PROPOSED, data)
        await self.publisher.publish(MATCH_PROPOSED, to_json(event))

    async def notify_still_searching(self, request: ScribeRequest):
        event = build_event(
            MATCH_SEARCHING,
            {"request_id": request.id, "requester_id": request.requester_id},
        )
        await self.publisher.publish(MATCH_SEARCHING, to_json(event))

    async def notify_matched(self, request: ScribeRequest, attempt: MatchAttempt):
        data = attempt_payload(attempt)
        data["requester_id"] = request.requester_id if request else None
        event = build_event(MATCH_ACCEPTED, data)
        await self.publisher.publish(MATCH_ACCEPTED, to_json(event))


class EventHistorySink:
    def __init__(self, publisher):
        self.publisher = publisher

    async def record(self, attempt: MatchAttempt):
        event = build_event(MATCH_ATTEMPT_CLOSED, attempt_payload(attempt))
        await self.publisher.publish(MATCH_ATTEMPT_CLOSED, to_json(event))
