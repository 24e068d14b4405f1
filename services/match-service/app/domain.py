from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import InvalidInputError


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value) -> "Urgency":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise InvalidInputError(f"Unknown urgency tier: {value!r}")


class RequestStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttemptState(str, Enum):
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"

    @property
    def terminal(self) -> bool:
        return self is not AttemptState.PROPOSED


class Decision(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def validate(self) -> "GeoPoint":
        if self.lat is None or self.lng is None:
            raise InvalidInputError("Coordinates are required")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidInputError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise InvalidInputError(f"Longitude out of range: {self.lng}")
        return self


@dataclass
class Volunteer:
    id: str
    location: Optional[GeoPoint]
    languages: Tuple[str, ...] = ()
    reliability: float = 3.0
    active: bool = True
    name: Optional[str] = None
    # weekday -> "9am-5pm" / "09:00-17:00"; None means no restriction
    availability: Optional[Dict[str, str]] = None


@dataclass
class ScribeRequest:
    id: str
    requester_id: str
    location: GeoPoint
    scheduled_at: datetime
    duration_minutes: int
    urgency: Urgency = Urgency.NORMAL
    required_languages: Tuple[str, ...] = ()
    status: RequestStatus = RequestStatus.PENDING
    address: Optional[str] = None

    def validate(self) -> "ScribeRequest":
        if not self.id or not self.requester_id:
            raise InvalidInputError("Request id and requester id are required")
        if self.location is None:
            raise InvalidInputError(f"Request {self.id} has no location")
        self.location.validate()
        self.urgency = Urgency.parse(self.urgency)
        if self.duration_minutes is None or self.duration_minutes <= 0:
            raise InvalidInputError(f"Request {self.id} needs a positive duration")
        return self

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class MatchAttempt:
    id: str
    request_id: str
    volunteer_id: str
    score: float
    distance_km: float
    state: AttemptState
    proposed_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None

    def is_overdue(self, now: datetime) -> bool:
        return self.state is AttemptState.PROPOSED and now > self.expires_at

    def resolved(self, state: AttemptState, at: datetime) -> "MatchAttempt":
        return replace(self, state=state, responded_at=at)


@dataclass(frozen=True)
class CandidateScore:
    request_id: str
    volunteer_id: str
    distance_km: float
    language_match_count: int
    distance_component: float
    language_component: float
    reliability_component: float
    urgency_adjustment: float
    total: float
    volunteer: Optional[Volunteer] = field(default=None, compare=False, repr=False)


@dataclass
class MatchOutcome:
    request_id: str
    status: str  # pending | matched | exhausted | closed
    attempt: Optional[MatchAttempt] = None
    proposed: Optional[CandidateScore] = None
    backups: List[CandidateScore] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.status == "matched"
