import asyncio
import math
from datetime import datetime, timedelta, timezone

from app.domain import GeoPoint, ScribeRequest, Urgency, Volunteer

CENTER = GeoPoint(51.5, -0.12)

# haversine of a pure north/south move is exactly R * d_lat
KM_PER_DEG_LAT = 6371.0 * math.pi / 180

# a Monday
SCHEDULED_AT = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def point_north(km: float, origin: GeoPoint = CENTER) -> GeoPoint:
    return GeoPoint(origin.lat + km / KM_PER_DEG_LAT, origin.lng)


def make_volunteer(vid, km, languages=("English",), reliability=4.0, **kwargs) -> Volunteer:
    return Volunteer(
        id=vid,
        name=kwargs.pop("name", f"Volunteer {vid}"),
        location=point_north(km),
        languages=tuple(languages),
        reliability=reliability,
        **kwargs,
    )


def make_request(rid="req-1", urgency=Urgency.NORMAL, languages=("English",), **kwargs) -> ScribeRequest:
    return ScribeRequest(
        id=rid,
        requester_id=kwargs.pop("requester_id", "user-1"),
        location=kwargs.pop("location", CENTER),
        scheduled_at=kwargs.pop("scheduled_at", SCHEDULED_AT),
        duration_minutes=kwargs.pop("duration_minutes", 90),
        urgency=urgency,
        required_languages=tuple(languages),
        **kwargs,
    )


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.proposals = []
        self.searching = []
        self.matched = []

    async def notify_proposal(self, volunteer, request, attempt):
        self.proposals.append((volunteer.id, request.id, attempt.id))

    async def notify_still_searching(self, request):
        self.searching.append(request.id)

    async def notify_matched(self, request, attempt):
        self.matched.append((request.id, attempt.volunteer_id))


class RecordingHistory:
    def __init__(self):
        self.closed = []

    async def record(self, attempt):
        self.closed.append((attempt.volunteer_id, attempt.state.value))


class FakeRedis:
    def __init__(self):
        self.data = {}

    async def set(self, key, value, ex=None, nx=False):
        # yield first so concurrent callers interleave like real round trips
        await asyncio.sleep(0)
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True


class BrokenHistory:
    async def record(self, attempt):
        raise RuntimeError("audit log down")
