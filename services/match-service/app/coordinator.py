import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List

from . import config
from .domain import (
    CandidateScore,
    Decision,
    MatchAttempt,
    MatchOutcome,
    RequestStatus,
    ScribeRequest,
)
from .errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from .stats import volunteer_stats

log = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                self._locks.pop(key, None)


class MatchCoordinator:
    """
    Drives a request from "needs a volunteer" to "matched" or "exhausted".

    Each step ranks afresh (the volunteer pool may have changed since the
    last step), proposes to the best untried candidate and returns without
    waiting for the volunteer. Responses, expiries, cancellations and
    reassignments come back in through the public methods below. Steps for
    the same request are serialised in-process; the stores keep the
    single-live-proposal invariant across processes.
    """

    def __init__(
        self,
        requests,
        attempts,
        ranker,
        state_machine,
        notifier=None,
        backup_count: int = config.BACKUP_COUNT,
        directory=None,
    ):
        self.requests = requests
        self.attempts = attempts
        self.ranker = ranker
        self.state_machine = state_machine
        self.notifier = notifier
        self.backup_count = backup_count
        self.directory = directory
        self._locks = KeyedLocks()

    @property
    def clock(self):
        return self.state_machine.clock

    # ---- entry points ----

    async def start_matching(self, request_id: str) -> MatchOutcome:
        async with self._locks.hold(request_id):
            request = await self._load_request(request_id)
            if request.status is not RequestStatus.PENDING:
                raise InvalidStateError("request", request_id, request.status.value)

            active = await self.attempts.active_for_request(request_id)
            if active is not None:
                if not active.is_overdue(self.clock()):
                    raise ConflictError(f"Request {request_id} already has an active proposal ({active.id})")
                await self._expire_if_due(active)

            # decliners and the live proposal are excluded by the ranker itself
            return await self._propose_next(request, exclude=())

    async def respond(self, attempt_id: str, decision) -> MatchOutcome:
        try:
            decision = Decision(decision)
        except ValueError:
            raise InvalidInputError(f"Unknown decision: {decision!r}")

        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt", attempt_id)
        request_id = attempt.request_id

        async with self._locks.hold(request_id):
            try:
                if decision is Decision.ACCEPT:
                    resolved = await self.state_machine.accept(attempt_id)
                else:
                    resolved = await self.state_machine.decline(attempt_id)
            except InvalidStateError as e:
                if e.just_expired:
                    # this call noticed the deadline; keep the request moving
                    await self._advance(request_id)
                raise

            if decision is Decision.ACCEPT:
                return await self._finalize(resolved)

            log.info("volunteer %s declined request %s", resolved.volunteer_id, request_id)
            return await self._advance(request_id)

    async def on_attempt_expired(self, attempt_id: str) -> MatchOutcome:
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt", attempt_id)

        async with self._locks.hold(attempt.request_id):
            await self.state_machine.expire(attempt_id)
            return await self._advance(attempt.request_id)

    async def cancel_matching(self, request_id: str) -> MatchOutcome:
        async with self._locks.hold(request_id):
            request = await self._load_request(request_id, validate=False)
            if request.status is RequestStatus.CANCELLED:
                return MatchOutcome(request_id=request_id, status="closed")

            ok = await self.requests.transition_status(
                request_id,
                (RequestStatus.PENDING, RequestStatus.MATCHED),
                RequestStatus.CANCELLED,
            )
            if not ok:
                current = await self._load_request(request_id, validate=False)
                raise InvalidStateError("request", request_id, current.status.value)

            superseded = await self._supersede_active(request_id)
            log.info("request %s cancelled", request_id)
            return MatchOutcome(request_id=request_id, status="closed", attempt=superseded)

    async def reassign(self, request_id: str) -> MatchOutcome:
        async with self._locks.hold(request_id):
            request = await self._load_request(request_id)

            if request.status is RequestStatus.MATCHED:
                ok = await self.requests.transition_status(
                    request_id, (RequestStatus.MATCHED,), RequestStatus.PENDING
                )
                if not ok:
                    current = await self._load_request(request_id, validate=False)
                    raise InvalidStateError("request", request_id, current.status.value)
            elif request.status is not RequestStatus.PENDING:
                raise InvalidStateError("request", request_id, request.status.value)

            await self._supersede_active(request_id)
            log.info("reassigning request %s", request_id)
            return await self._advance(request_id)

    async def candidates(self, request_id: str) -> List[CandidateScore]:
        request = await self._load_request(request_id)
        return await self.ranker.rank(request)

    async def history(self, request_id: str) -> List[MatchAttempt]:
        await self._load_request(request_id, validate=False)
        return await self.attempts.list_for_request(request_id)

    async def stats_for(self, volunteer_id: str) -> dict:
        volunteer = None
        if self.directory is not None:
            volunteer = await self.directory.get_volunteer(volunteer_id)
        attempts = await self.attempts.list_for_volunteer(volunteer_id)
        if volunteer is None and not attempts:
            raise NotFoundError("volunteer", volunteer_id)

        stats = volunteer_stats(volunteer_id, attempts)
        stats["volunteer_name"] = volunteer.name if volunteer else None
        return stats

    # ---- workflow steps (caller holds the request lock) ----

    async def _load_request(self, request_id: str, validate: bool = True) -> ScribeRequest:
        request = await self.requests.get(request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        return request.validate() if validate else request

    async def _expire_if_due(self, attempt: MatchAttempt) -> None:
        try:
            await self.state_machine.expire(attempt.id)
        except InvalidStateError as e:
            log.info("attempt %s already resolved as %s", attempt.id, e.state)

    async def _still_pending(self, request_id: str) -> bool:
        request = await self.requests.get(request_id)
        return request is not None and request.status is RequestStatus.PENDING

    async def _withdraw(self, attempt: MatchAttempt) -> MatchAttempt:
        # status changed between ranking and insert; the cancelling worker may supersede first
        log.info("request %s no longer pending; withdrawing attempt %s", attempt.request_id, attempt.id)
        try:
            return await self.state_machine.supersede(attempt.id)
        except InvalidStateError:
            return await self.attempts.get(attempt.id)

    async def _supersede_active(self, request_id: str):
        active = await self.attempts.active_for_request(request_id)
        if active is None:
            return None
        try:
            return await self.state_machine.supersede(active.id)
        except InvalidStateError as e:
            log.info("attempt %s resolved as %s before it could be superseded", active.id, e.state)
            return None

    async def _advance(self, request_id: str) -> MatchOutcome:
        request = await self.requests.get(request_id)
        if request is None or request.status is not RequestStatus.PENDING:
            return MatchOutcome(request_id=request_id, status="closed")

        active = await self.attempts.active_for_request(request_id)
        if active is not None:
            return MatchOutcome(request_id=request_id, status="pending", attempt=active)

        tried = {a.volunteer_id for a in await self.attempts.list_for_request(request_id)}
        try:
            return await self._propose_next(request.validate(), exclude=tried)
        except ConflictError:
            # another worker proposed first
            active = await self.attempts.active_for_request(request_id)
            return MatchOutcome(request_id=request_id, status="pending", attempt=active)

    async def _propose_next(self, request: ScribeRequest, exclude: Iterable[str]) -> MatchOutcome:
        ranked = await self.ranker.rank(request, exclude=exclude)
        if not ranked:
            log.info("no volunteers left for request %s; still searching", request.id)
            await self._notify("notify_still_searching", request)
            return MatchOutcome(request_id=request.id, status="exhausted")

        top = ranked[0]
        backups = ranked[1:1 + self.backup_count]

        attempt = await self.state_machine.propose(request, top)
        if not await self._still_pending(request.id):
            withdrawn = await self._withdraw(attempt)
            return MatchOutcome(request_id=request.id, status="closed", attempt=withdrawn)

        await self._notify("notify_proposal", top.volunteer, request, attempt)

        return MatchOutcome(
            request_id=request.id,
            status="pending",
            attempt=attempt,
            proposed=top,
            backups=backups,
        )

    async def _finalize(self, attempt: MatchAttempt) -> MatchOutcome:
        ok = await self.requests.transition_status(
            attempt.request_id, (RequestStatus.PENDING,), RequestStatus.MATCHED
        )
        if not ok:
            log.warning(
                "attempt %s accepted but request %s was no longer pending",
                attempt.id, attempt.request_id,
            )
            return MatchOutcome(request_id=attempt.request_id, status="closed", attempt=attempt)

        log.info("request %s matched with volunteer %s", attempt.request_id, attempt.volunteer_id)
        request = await self.requests.get(attempt.request_id)
        await self._notify("notify_matched", request, attempt)
        return MatchOutcome(request_id=attempt.request_id, status="matched", attempt=attempt)

    async def _notify(self, method: str, *args) -> None:
        # delivery is fire-and-forget; a broken channel must not undo a match
        if self.notifier is None:
            return
        try:
            await getattr(self.notifier, method)(*args)
        except Exception as e:
            log.warning("notification %s failed: %s", method, e)
