import logging
import uuid
from datetime import datetime, timedelta, timezone

from . import config
from .domain import AttemptState, CandidateScore, MatchAttempt, ScribeRequest, Urgency
from .errors import InvalidStateError, NotFoundError

log = logging.getLogger(__name__)

# most urgent first; windows must never grow as urgency rises
_URGENCY_ORDER = (Urgency.CRITICAL, Urgency.HIGH, Urgency.NORMAL, Urgency.LOW)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_expiry_windows(expiry_minutes: dict) -> dict:
    windows = {Urgency.parse(k): int(v) for k, v in expiry_minutes.items()}
    missing = [u.value for u in _URGENCY_ORDER if u not in windows]
    if missing:
        raise ValueError(f"Missing expiry window for: {missing}")

    previous = 0
    for u in _URGENCY_ORDER:
        if windows[u] <= 0:
            raise ValueError(f"Expiry window for {u.value} must be positive")
        if windows[u] < previous:
            raise ValueError("Expiry windows must not shrink as urgency drops")
        previous = windows[u]
    return windows


class MatchStateMachine:
    """
    Lifecycle of a single proposal.

        proposed -> accepted | declined | expired | superseded

    All four outcomes are terminal. Every transition is a compare-and-set
    against the attempt store, so of two racing calls exactly one wins and
    the other gets InvalidStateError. Deadlines are re-checked on every
    response: an overdue proposal is expired first, whatever a sweeper did
    or did not do.
    """

    def __init__(self, attempts, history=None, clock=utcnow, expiry_minutes=None):
        self.attempts = attempts
        self.history = history
        self.clock = clock
        self.windows = validate_expiry_windows(expiry_minutes or config.EXPIRY_MINUTES)

    def window_for(self, urgency) -> timedelta:
        return timedelta(minutes=self.windows[Urgency.parse(urgency)])

    async def propose(self, request: ScribeRequest, candidate: CandidateScore) -> MatchAttempt:
        now = self.clock()
        attempt = MatchAttempt(
            id=str(uuid.uuid4()),
            request_id=request.id,
            volunteer_id=candidate.volunteer_id,
            score=candidate.total,
            distance_km=round(candidate.distance_km, 2),
            state=AttemptState.PROPOSED,
            proposed_at=now,
            expires_at=now + self.window_for(request.urgency),
        )
        # raises ConflictError when the request already has a live proposal
        await self.attempts.insert_proposed(attempt)
        log.info(
            "proposed volunteer %s for request %s (attempt %s, score %.2f, expires %s)",
            attempt.volunteer_id, attempt.request_id, attempt.id, attempt.score,
            attempt.expires_at.isoformat(),
        )
        return attempt

    async def accept(self, attempt_id: str) -> MatchAttempt:
        return await self._respond(attempt_id, AttemptState.ACCEPTED)

    async def decline(self, attempt_id: str) -> MatchAttempt:
        return await self._respond(attempt_id, AttemptState.DECLINED)

    async def expire(self, attempt_id: str) -> MatchAttempt:
        attempt = await self._load(attempt_id)
        now = self.clock()
        if attempt.state is not AttemptState.PROPOSED:
            raise InvalidStateError("attempt", attempt_id, attempt.state.value)
        if not attempt.is_overdue(now):
            raise InvalidStateError("attempt", attempt_id, "proposed (not yet due)")
        return await self._transition(attempt_id, AttemptState.EXPIRED, now)

    async def supersede(self, attempt_id: str) -> MatchAttempt:
        attempt = await self._load(attempt_id)
        if attempt.state is not AttemptState.PROPOSED:
            raise InvalidStateError("attempt", attempt_id, attempt.state.value)
        return await self._transition(attempt_id, AttemptState.SUPERSEDED, self.clock())

    async def _load(self, attempt_id: str) -> MatchAttempt:
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt", attempt_id)
        return attempt

    async def _respond(self, attempt_id: str, target: AttemptState) -> MatchAttempt:
        attempt = await self._load(attempt_id)
        now = self.clock()

        if attempt.is_overdue(now):
            expired = await self.attempts.transition(attempt_id, AttemptState.PROPOSED, AttemptState.EXPIRED, now)
            if expired is not None:
                log.info("attempt %s expired before %s arrived", attempt_id, target.value)
                await self._record(expired)
                raise InvalidStateError("attempt", attempt_id, AttemptState.EXPIRED.value, just_expired=True)
            attempt = await self._load(attempt_id)

        if attempt.state is not AttemptState.PROPOSED:
            raise InvalidStateError("attempt", attempt_id, attempt.state.value)

        return await self._transition(attempt_id, target, now)

    async def _transition(self, attempt_id: str, target: AttemptState, now: datetime) -> MatchAttempt:
        updated = await self.attempts.transition(attempt_id, AttemptState.PROPOSED, target, now)
        if updated is None:
            current = await self._load(attempt_id)
            log.info("lost race on attempt %s: wanted %s, found %s", attempt_id, target.value, current.state.value)
            raise InvalidStateError("attempt", attempt_id, current.state.value)

        log.info("attempt %s -> %s", attempt_id, target.value)
        await self._record(updated)
        return updated

    async def _record(self, attempt: MatchAttempt) -> None:
        # the transition is already committed; a sink outage must not surface as its failure
        if self.history is None:
            return
        try:
            await self.history.record(attempt)
        except Exception as e:
            log.warning("history record for attempt %s (%s) failed: %s", attempt.id, attempt.state.value, e)
