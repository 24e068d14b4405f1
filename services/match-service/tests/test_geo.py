import pytest

from app.directory import InMemoryVolunteerDirectory
from app.domain import GeoPoint, Volunteer
from app.errors import InvalidInputError
from app.geo import GeoIndex, haversine

from helpers import CENTER, make_volunteer

pytestmark = pytest.mark.anyio


async def test_haversine_london_paris():
    d = haversine(51.5074, -0.1278, 48.8566, 2.3522)
    assert 340 < d < 347


async def test_finds_active_volunteers_within_radius():
    directory = InMemoryVolunteerDirectory(
        [
            make_volunteer("near", 5),
            make_volunteer("edge", 49.9),
            make_volunteer("far", 60),
            make_volunteer("inactive", 3, active=False),
            Volunteer(id="nowhere", location=None),
        ]
    )
    found = await GeoIndex(directory).find_within_radius(CENTER, 50)

    by_id = {v.id: d for v, d in found}
    assert set(by_id) == {"near", "edge"}
    assert by_id["near"] == pytest.approx(5.0, rel=1e-6)


async def test_empty_pool_is_not_an_error():
    found = await GeoIndex(InMemoryVolunteerDirectory()).find_within_radius(CENTER, 50)
    assert found == []


@pytest.mark.parametrize("radius", [0, -1])
async def test_radius_must_be_positive(radius):
    with pytest.raises(InvalidInputError):
        await GeoIndex(InMemoryVolunteerDirectory()).find_within_radius(CENTER, radius)


@pytest.mark.parametrize("lat, lng", [(91, 0), (-90.5, 0), (0, 180.1), (0, -181)])
async def test_center_must_be_valid(lat, lng):
    with pytest.raises(InvalidInputError):
        await GeoIndex(InMemoryVolunteerDirectory()).find_within_radius(GeoPoint(lat, lng), 10)


async def test_reads_current_availability_on_each_query():
    directory = InMemoryVolunteerDirectory([make_volunteer("v1", 5)])
    index = GeoIndex(directory)

    assert len(await index.find_within_radius(CENTER, 50)) == 1
    directory.set_active("v1", False)
    assert await index.find_within_radius(CENTER, 50) == []
    directory.set_active("v1", True)
    assert len(await index.find_within_radius(CENTER, 50)) == 1


async def test_search_across_the_antimeridian():
    directory = InMemoryVolunteerDirectory(
        [Volunteer(id="fiji", location=GeoPoint(-17.0, -179.95))]
    )
    found = await GeoIndex(directory).find_within_radius(GeoPoint(-17.0, 179.95), 50)

    assert [v.id for v, _ in found] == ["fiji"]
    assert found[0][1] < 15
