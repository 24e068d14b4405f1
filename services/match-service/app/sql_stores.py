"""
SQLAlchemy-backed stores. Same contract as stores.py, but safe across
processes: the live-proposal invariant is a partial unique index and every
state change is a conditional UPDATE whose rowcount tells who won.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from .domain import (
    AttemptState,
    GeoPoint,
    MatchAttempt,
    RequestStatus,
    ScribeRequest,
    Urgency,
)
from .errors import ConflictError
from .models import MatchAttemptRecord, ScribeRequestRecord


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; everything we store is UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _attempt_from_row(row: MatchAttemptRecord) -> MatchAttempt:
    return MatchAttempt(
        id=row.id,
        request_id=row.request_id,
        volunteer_id=row.volunteer_id,
        score=row.score,
        distance_km=row.distance_km,
        state=AttemptState(row.state),
        proposed_at=_utc(row.proposed_at),
        expires_at=_utc(row.expires_at),
        responded_at=_utc(row.responded_at),
    )


def _request_from_row(row: ScribeRequestRecord) -> ScribeRequest:
    return ScribeRequest(
        id=row.id,
        requester_id=row.requester_id,
        location=GeoPoint(row.latitude, row.longitude),
        address=row.address,
        scheduled_at=_utc(row.scheduled_at),
        duration_minutes=row.duration_minutes,
        urgency=Urgency.parse(row.urgency),
        required_languages=tuple(row.required_languages or ()),
        status=RequestStatus(row.status),
    )


class SqlAttemptStore:
    def __init__(self, session_factory):
        self.SessionLocal = session_factory

    async def insert_proposed(self, attempt: MatchAttempt) -> MatchAttempt:
        async with self.SessionLocal() as db:
            declined = await db.execute(
                select(MatchAttemptRecord.id)
                .where(MatchAttemptRecord.request_id == attempt.request_id)
                .where(MatchAttemptRecord.volunteer_id == attempt.volunteer_id)
                .where(MatchAttemptRecord.state == AttemptState.DECLINED.value)
                .limit(1)
            )
            if declined.first() is not None:
                raise ConflictError(
                    f"Volunteer {attempt.volunteer_id} already declined request {attempt.request_id}"
                )

            db.add(
                MatchAttemptRecord(
                    id=attempt.id,
                    request_id=attempt.request_id,
                    volunteer_id=attempt.volunteer_id,
                    score=attempt.score,
                    distance_km=attempt.distance_km,
                    state=attempt.state.value,
                    proposed_at=_utc(attempt.proposed_at),
                    expires_at=_utc(attempt.expires_at),
                    responded_at=_utc(attempt.responded_at),
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError(f"Request {attempt.request_id} already has an active proposal")
        return attempt

    async def transition(
        self,
        attempt_id: str,
        expected: AttemptState,
        new: AttemptState,
        at: datetime,
    ) -> Optional[MatchAttempt]:
        async with self.SessionLocal() as db:
            result = await db.execute(
                update(MatchAttemptRecord)
                .where(MatchAttemptRecord.id == attempt_id)
                .where(MatchAttemptRecord.state == expected.value)
                .values(state=new.value, responded_at=_utc(at))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if result.rowcount != 1:
                return None

            row = await db.get(MatchAttemptRecord, attempt_id)
            return _attempt_from_row(row)

    async def get(self, attempt_id: str) -> Optional[MatchAttempt]:
        async with self.SessionLocal() as db:
            row = await db.get(MatchAttemptRecord, attempt_id)
            return _attempt_from_row(row) if row else None

    async def active_for_request(self, request_id: str) -> Optional[MatchAttempt]:
        async with self.SessionLocal() as db:
            res = await db.execute(
                select(MatchAttemptRecord)
                .where(MatchAttemptRecord.request_id == request_id)
                .where(MatchAttemptRecord.state == AttemptState.PROPOSED.value)
            )
            row = res.scalar_one_or_none()
            return _attempt_from_row(row) if row else None

    async def list_for_request(self, request_id: str) -> List[MatchAttempt]:
        async with self.SessionLocal() as db:
            res = await db.execute(
                select(MatchAttemptRecord)
                .where(MatchAttemptRecord.request_id == request_id)
                .order_by(MatchAttemptRecord.proposed_at)
            )
            return [_attempt_from_row(r) for r in res.scalars().all()]

    async def list_for_volunteer(self, volunteer_id: str) -> List[MatchAttempt]:
        async with self.SessionLocal() as db:
            res = await db.execute(
                select(MatchAttemptRecord)
                .where(MatchAttemptRecord.volunteer_id == volunteer_id)
                .order_by(MatchAttemptRecord.proposed_at)
            )
            return [_attempt_from_row(r) for r in res.scalars().all()]

    async def list_due(self, now: datetime, limit: int = 50) -> List[MatchAttempt]:
        async with self.SessionLocal() as db:
            res = await db.execute(
                select(MatchAttemptRecord)
                .where(MatchAttemptRecord.state == AttemptState.PROPOSED.value)
                .where(MatchAttemptRecord.expires_at < _utc(now))
                .order_by(MatchAttemptRecord.expires_at)
                .limit(limit)
            )
            return [_attempt_from_row(r) for r in res.scalars().all()]


class SqlRequestStore:
    def __init__(self, session_factory):
        self.SessionLocal = session_factory

    async def add(self, request: ScribeRequest) -> ScribeRequest:
        request.validate()
        async with self.SessionLocal() as db:
            await db.merge(
                ScribeRequestRecord(
                    id=request.id,
                    requester_id=request.requester_id,
                    latitude=request.location.lat,
                    longitude=request.location.lng,
                    address=request.address,
                    scheduled_at=_utc(request.scheduled_at),
                    duration_minutes=request.duration_minutes,
                    urgency=request.urgency.value,
                    required_languages=list(request.required_languages),
                    status=RequestStatus(request.status).value,
                )
            )
            await db.commit()
        return request

    async def get(self, request_id: str) -> Optional[ScribeRequest]:
        async with self.SessionLocal() as db:
            row = await db.get(ScribeRequestRecord, request_id)
            return _request_from_row(row) if row else None

    async def transition_status(
        self,
        request_id: str,
        expected: Iterable[RequestStatus],
        new: RequestStatus,
    ) -> bool:
        allowed = [RequestStatus(s).value for s in expected]
        async with self.SessionLocal() as db:
            result = await db.execute(
                update(ScribeRequestRecord)
                .where(ScribeRequestRecord.id == request_id)
                .where(ScribeRequestRecord.status.in_(allowed))
                .values(status=new.value)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1
