"""
In-process stores for match attempts and scribe requests.

Both stores expose the same contract as their SQLAlchemy counterparts in
sql_stores.py:

  attempts.insert_proposed(attempt)          -> attempt   (ConflictError if one is live)
  attempts.transition(id, expected, new, at) -> attempt | None  (compare-and-set)
  attempts.get / active_for_request / list_for_request / list_for_volunteer / list_due

  requests.add(request)
  requests.get(id)                            -> request | None
  requests.transition_status(id, expected, new) -> bool (compare-and-set)

A single asyncio.Lock serialises every check-then-write, which is enough for
one process. Multi-process deployments use the SQL stores.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .domain import AttemptState, MatchAttempt, RequestStatus, ScribeRequest
from .errors import ConflictError


class InMemoryAttemptStore:
    def __init__(self):
        self._attempts: Dict[str, MatchAttempt] = {}
        self._lock = asyncio.Lock()

    async def insert_proposed(self, attempt: MatchAttempt) -> MatchAttempt:
        async with self._lock:
            for a in self._attempts.values():
                if a.request_id != attempt.request_id:
                    continue
                if a.state is AttemptState.PROPOSED:
                    raise ConflictError(f"Request {attempt.request_id} already has an active proposal ({a.id})")
                if a.state is AttemptState.DECLINED and a.volunteer_id == attempt.volunteer_id:
                    raise ConflictError(
                        f"Volunteer {attempt.volunteer_id} already declined request {attempt.request_id}"
                    )
            self._attempts[attempt.id] = attempt
            return attempt

    async def transition(
        self,
        attempt_id: str,
        expected: AttemptState,
        new: AttemptState,
        at: datetime,
    ) -> Optional[MatchAttempt]:
        async with self._lock:
            current = self._attempts.get(attempt_id)
            if current is None or current.state is not expected:
                return None
            updated = current.resolved(new, at)
            self._attempts[attempt_id] = updated
            return updated

    async def get(self, attempt_id: str) -> Optional[MatchAttempt]:
        return self._attempts.get(attempt_id)

    async def active_for_request(self, request_id: str) -> Optional[MatchAttempt]:
        for a in self._attempts.values():
            if a.request_id == request_id and a.state is AttemptState.PROPOSED:
                return a
        return None

    async def list_for_request(self, request_id: str) -> List[MatchAttempt]:
        found = [a for a in self._attempts.values() if a.request_id == request_id]
        return sorted(found, key=lambda a: a.proposed_at)

    async def list_for_volunteer(self, volunteer_id: str) -> List[MatchAttempt]:
        found = [a for a in self._attempts.values() if a.volunteer_id == volunteer_id]
        return sorted(found, key=lambda a: a.proposed_at)

    async def list_due(self, now: datetime, limit: int = 50) -> List[MatchAttempt]:
        due = [
            a for a in self._attempts.values()
            if a.state is AttemptState.PROPOSED and a.expires_at < now
        ]
        due.sort(key=lambda a: a.expires_at)
        return due[:limit]


class InMemoryRequestStore:
    def __init__(self, requests: Iterable[ScribeRequest] = ()):
        self._requests: Dict[str, ScribeRequest] = {}
        self._lock = asyncio.Lock()
        for r in requests:
            self._requests[r.id] = r

    async def add(self, request: ScribeRequest) -> ScribeRequest:
        async with self._lock:
            self._requests[request.id] = request
            return request

    async def get(self, request_id: str) -> Optional[ScribeRequest]:
        r = self._requests.get(request_id)
        # hand out copies so callers never mutate stored state behind our back
        return replace(r) if r is not None else None

    async def transition_status(
        self,
        request_id: str,
        expected: Iterable[RequestStatus],
        new: RequestStatus,
    ) -> bool:
        allowed = set(expected)
        async with self._lock:
            r = self._requests.get(request_id)
            if r is None or r.status not in allowed:
                return False
            self._requests[request_id] = replace(r, status=new)
            return True
