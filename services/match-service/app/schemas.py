from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from .domain import CandidateScore, MatchAttempt, MatchOutcome


class RespondRequest(BaseModel):
    decision: Literal["accept", "decline"]


class AttemptResponse(BaseModel):
    attempt_id: str
    request_id: str
    volunteer_id: str
    state: str
    score: float
    distance_km: float
    proposed_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None

    @classmethod
    def from_attempt(cls, a: MatchAttempt) -> "AttemptResponse":
        return cls(
            attempt_id=a.id,
            request_id=a.request_id,
            volunteer_id=a.volunteer_id,
            state=a.state.value,
            score=a.score,
            distance_km=a.distance_km,
            proposed_at=a.proposed_at,
            expires_at=a.expires_at,
            responded_at=a.responded_at,
        )


class CandidateResponse(BaseModel):
    volunteer_id: str
    volunteer_name: Optional[str] = None
    distance_km: float
    language_match_count: int
    distance_component: float
    language_component: float
    reliability_component: float
    urgency_adjustment: float
    score: float

    @classmethod
    def from_candidate(cls, c: CandidateScore) -> "CandidateResponse":
        return cls(
            volunteer_id=c.volunteer_id,
            volunteer_name=c.volunteer.name if c.volunteer else None,
            distance_km=round(c.distance_km, 2),
            language_match_count=c.language_match_count,
            distance_component=c.distance_component,
            language_component=c.language_component,
            reliability_component=c.reliability_component,
            urgency_adjustment=c.urgency_adjustment,
            score=c.total,
        )


class MatchOutcomeResponse(BaseModel):
    request_id: str
    status: str  # pending / matched / exhausted / closed
    matched: bool
    attempt: Optional[AttemptResponse] = None
    proposed_volunteer: Optional[CandidateResponse] = None
    backup_volunteers: List[CandidateResponse] = []

    @classmethod
    def from_outcome(cls, o: MatchOutcome) -> "MatchOutcomeResponse":
        return cls(
            request_id=o.request_id,
            status=o.status,
            matched=o.matched,
            attempt=AttemptResponse.from_attempt(o.attempt) if o.attempt else None,
            proposed_volunteer=CandidateResponse.from_candidate(o.proposed) if o.proposed else None,
            backup_volunteers=[CandidateResponse.from_candidate(c) for c in o.backups],
        )


class VolunteerStatsResponse(BaseModel):
    volunteer_id: str
    volunteer_name: Optional[str] = None
    total_proposals: int
    accepted: int
    declined: int
    expired: int
    superseded: int
    pending: int
    acceptance_rate: Optional[float] = None
    avg_response_minutes: Optional[float] = None
