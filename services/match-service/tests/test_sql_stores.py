import asyncio
from datetime import timedelta

import pytest

from app.db import Base, get_engine, get_session
from app.directory import InMemoryVolunteerDirectory
from app.domain import AttemptState, MatchAttempt, RequestStatus
from app.errors import ConflictError
from app.sql_stores import SqlAttemptStore, SqlRequestStore
from app.wiring import build_coordinator

from helpers import START, FakeClock, RecordingHistory, RecordingNotifier, make_request, make_volunteer

pytestmark = pytest.mark.anyio


@pytest.fixture
async def session_factory(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'match.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session(engine)
    await engine.dispose()


def _attempt(aid, volunteer_id="v1", request_id="req-1", minutes=60):
    return MatchAttempt(
        id=aid,
        request_id=request_id,
        volunteer_id=volunteer_id,
        score=72.5,
        distance_km=4.2,
        state=AttemptState.PROPOSED,
        proposed_at=START,
        expires_at=START + timedelta(minutes=minutes),
    )


async def test_request_roundtrip(session_factory):
    store = SqlRequestStore(session_factory)
    await store.add(make_request(languages=("English", "Welsh"), address="1 High St"))

    loaded = await store.get("req-1")

    assert loaded.required_languages == ("English", "Welsh")
    assert loaded.address == "1 High St"
    assert loaded.scheduled_at == make_request().scheduled_at
    assert loaded.status is RequestStatus.PENDING
    assert await store.get("missing") is None


async def test_request_status_compare_and_set(session_factory):
    store = SqlRequestStore(session_factory)
    await store.add(make_request())

    assert await store.transition_status("req-1", [RequestStatus.PENDING], RequestStatus.MATCHED)
    assert not await store.transition_status("req-1", [RequestStatus.PENDING], RequestStatus.CANCELLED)
    assert (await store.get("req-1")).status is RequestStatus.MATCHED


async def test_one_live_proposal_per_request(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1"))

    with pytest.raises(ConflictError):
        await store.insert_proposed(_attempt("a2", volunteer_id="v2"))

    # other requests are unaffected
    await store.insert_proposed(_attempt("a3", request_id="req-2"))


async def test_closed_attempt_frees_the_slot(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1"))
    await store.transition("a1", AttemptState.PROPOSED, AttemptState.EXPIRED, START + timedelta(hours=2))

    await store.insert_proposed(_attempt("a2", volunteer_id="v2"))

    assert (await store.active_for_request("req-1")).id == "a2"


async def test_decliner_cannot_be_proposed_again(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1"))
    await store.transition("a1", AttemptState.PROPOSED, AttemptState.DECLINED, START)

    with pytest.raises(ConflictError):
        await store.insert_proposed(_attempt("a2"))


async def test_transition_is_compare_and_set(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1"))
    at = START + timedelta(minutes=3)

    won = await store.transition("a1", AttemptState.PROPOSED, AttemptState.ACCEPTED, at)
    lost = await store.transition("a1", AttemptState.PROPOSED, AttemptState.DECLINED, at)

    assert won.state is AttemptState.ACCEPTED
    assert won.responded_at == at
    assert lost is None
    assert (await store.get("a1")).state is AttemptState.ACCEPTED


async def test_concurrent_accepts_have_one_winner(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1"))
    at = START + timedelta(minutes=3)

    results = await asyncio.gather(
        store.transition("a1", AttemptState.PROPOSED, AttemptState.ACCEPTED, at),
        store.transition("a1", AttemptState.PROPOSED, AttemptState.ACCEPTED, at),
    )

    assert sum(1 for r in results if r is not None) == 1
    assert (await store.get("a1")).state is AttemptState.ACCEPTED


async def test_concurrent_proposals_have_one_winner(session_factory):
    store = SqlAttemptStore(session_factory)

    results = await asyncio.gather(
        store.insert_proposed(_attempt("a1", volunteer_id="v1")),
        store.insert_proposed(_attempt("a2", volunteer_id="v2")),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, ConflictError)) == 1
    assert sum(1 for r in results if isinstance(r, MatchAttempt)) == 1
    live = await store.active_for_request("req-1")
    assert live.id in ("a1", "a2")


async def test_listing_queries(session_factory):
    store = SqlAttemptStore(session_factory)
    await store.insert_proposed(_attempt("a1", minutes=5))
    await store.insert_proposed(_attempt("a2", request_id="req-2", minutes=60))
    await store.insert_proposed(_attempt("a3", volunteer_id="v2", request_id="req-3", minutes=15))

    due = await store.list_due(START + timedelta(minutes=20))

    assert [a.id for a in due] == ["a1", "a3"]
    assert sorted(a.id for a in await store.list_for_volunteer("v1")) == ["a1", "a2"]
    assert [a.id for a in await store.list_for_request("req-3")] == ["a3"]


async def test_coordinator_on_sql_stores(session_factory):
    requests = SqlRequestStore(session_factory)
    attempts = SqlAttemptStore(session_factory)
    directory = InMemoryVolunteerDirectory([make_volunteer("v1", 5), make_volunteer("v2", 9)])
    clock = FakeClock()
    coordinator = build_coordinator(
        directory=directory,
        requests=requests,
        attempts=attempts,
        notifier=RecordingNotifier(),
        history=RecordingHistory(),
        clock=clock,
    )
    await requests.add(make_request())

    first = await coordinator.start_matching("req-1")
    clock.advance(minutes=1)
    second = await coordinator.respond(first.attempt.id, "decline")
    done = await coordinator.respond(second.attempt.id, "accept")

    assert done.matched
    assert done.attempt.volunteer_id == "v2"
    assert (await requests.get("req-1")).status is RequestStatus.MATCHED
    states = [a.state for a in await attempts.list_for_request("req-1")]
    assert states == [AttemptState.DECLINED, AttemptState.ACCEPTED]


async def test_cancel_by_another_worker_on_sql_stores(session_factory):
    requests = SqlRequestStore(session_factory)
    attempts = SqlAttemptStore(session_factory)
    directory = InMemoryVolunteerDirectory([make_volunteer("v1", 5)])
    workers = [
        build_coordinator(
            directory=directory,
            requests=requests,
            attempts=attempts,
            notifier=RecordingNotifier(),
            history=RecordingHistory(),
            clock=FakeClock(),
        )
        for _ in range(2)
    ]
    first, second = workers
    await requests.add(make_request())

    rank = first.ranker.rank

    async def rank_then_cancel_elsewhere(req, exclude=()):
        ranked = await rank(req, exclude=exclude)
        await second.cancel_matching(req.id)
        return ranked

    first.ranker.rank = rank_then_cancel_elsewhere

    outcome = await first.start_matching("req-1")

    assert outcome.status == "closed"
    assert await attempts.active_for_request("req-1") is None
    assert (await requests.get("req-1")).status is RequestStatus.CANCELLED
