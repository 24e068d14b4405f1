from . import config
from .coordinator import MatchCoordinator
from .db import get_engine, get_session
from .directory import HttpVolunteerDirectory, InMemoryVolunteerDirectory
from .geo import GeoIndex
from .notifications import EventHistorySink, EventNotificationDispatcher
from .rabbitmq import RabbitPublisher
from .ranking import CandidateRanker
from .sql_stores import SqlAttemptStore, SqlRequestStore
from .state_machine import MatchStateMachine, utcnow
from .stores import InMemoryAttemptStore, InMemoryRequestStore


def build_stores(database_url: str | None = config.MATCH_DATABASE_URL):
    if database_url:
        SessionLocal = get_session(get_engine(database_url))
        return SqlRequestStore(SessionLocal), SqlAttemptStore(SessionLocal)
    return InMemoryRequestStore(), InMemoryAttemptStore()


def build_directory(user_service_url: str | None = config.USER_SERVICE_URL):
    if user_service_url:
        return HttpVolunteerDirectory(user_service_url)
    return InMemoryVolunteerDirectory()


def build_coordinator(
    *,
    directory=None,
    requests=None,
    attempts=None,
    publisher=None,
    notifier=None,
    history=None,
    clock=utcnow,
    expiry_minutes=None,
    backup_count: int = config.BACKUP_COUNT,
) -> MatchCoordinator:
    """
    Compose the engine once per process. Anything not passed in is built
    from config; tests pass in-memory collaborators and a fake clock.
    """
    if requests is None or attempts is None:
        default_requests, default_attempts = build_stores()
        if requests is None:
            requests = default_requests
        if attempts is None:
            attempts = default_attempts
    if directory is None:
        directory = build_directory()
    if publisher is None:
        publisher = RabbitPublisher()
    if notifier is None:
        notifier = EventNotificationDispatcher(publisher)
    if history is None:
        history = EventHistorySink(publisher)

    ranker = CandidateRanker(GeoIndex(directory), attempts)
    state_machine = MatchStateMachine(attempts, history=history, clock=clock, expiry_minutes=expiry_minutes)

    return MatchCoordinator(
        requests=requests,
        attempts=attempts,
        ranker=ranker,
        state_machine=state_machine,
        notifier=notifier,
        backup_count=backup_count,
        directory=directory,
    )
