import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import httpx

from . import config
from .domain import GeoPoint, Volunteer

log = logging.getLogger(__name__)


class InMemoryVolunteerDirectory:
    """Volunteer directory held in process; used in development and tests."""

    def __init__(self, volunteers: Iterable[Volunteer] = ()):
        self._volunteers: Dict[str, Volunteer] = {}
        for v in volunteers:
            self.upsert(v)

    def upsert(self, volunteer: Volunteer) -> None:
        self._volunteers[volunteer.id] = volunteer

    def set_active(self, volunteer_id: str, active: bool) -> None:
        v = self._volunteers.get(volunteer_id)
        if v is not None:
            self._volunteers[volunteer_id] = replace(v, active=active)

    def remove(self, volunteer_id: str) -> None:
        self._volunteers.pop(volunteer_id, None)

    async def get_active_volunteers(self) -> List[Volunteer]:
        return [v for v in self._volunteers.values() if v.active]

    async def get_volunteer(self, volunteer_id: str) -> Optional[Volunteer]:
        return self._volunteers.get(volunteer_id)


def volunteer_from_payload(data: dict) -> Optional[Volunteer]:
    """
    user-service payload -> Volunteer. Accepts {"latitude", "longitude"} or a
    nested {"location": {"lat", "lng"}} shape.
    """
    volunteer_id = data.get("id") or data.get("email")
    if not volunteer_id:
        return None

    loc = data.get("location") or {}
    lat = data.get("latitude", loc.get("lat"))
    lng = data.get("longitude", loc.get("lng"))
    location = GeoPoint(float(lat), float(lng)) if lat is not None and lng is not None else None

    reliability = data.get("reliability_score")
    return Volunteer(
        id=str(volunteer_id),
        name=data.get("name") or data.get("full_name"),
        location=location,
        languages=tuple(data.get("languages") or ()),
        reliability=float(reliability) if reliability is not None else 3.0,
        active=bool(data.get("is_active", True)),
        availability=data.get("availability"),
    )


class HttpVolunteerDirectory:
    """Reads volunteers from the user-service on every call."""

    def __init__(self, base_url: str, timeout: float = config.HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_active_volunteers(self) -> List[Volunteer]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/volunteers",
                params={"active": "true"},
            )
            response.raise_for_status()
            payload = response.json()

        volunteers = []
        for item in payload:
            v = volunteer_from_payload(item)
            if v is not None and v.active:
                volunteers.append(v)
        return volunteers

    async def get_volunteer(self, volunteer_id: str) -> Optional[Volunteer]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(f"{self.base_url}/volunteers/{volunteer_id}")
                if r.status_code != 200:
                    return None
                return volunteer_from_payload(r.json())
        except httpx.HTTPError as e:
            log.warning("volunteer lookup failed for %s: %s", volunteer_id, e)
            return None
