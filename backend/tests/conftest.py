"""
Shared fixtures.

Every test gets its own file-backed SQLite database (BEGIN IMMEDIATE needs a
real file so concurrent transactions serialize), an in-memory cache and a
MusicBrainz client served by httpx.MockTransport.
"""

import itertools
from typing import List

import httpx
import pytest
import pytest_asyncio

from core.auth import current_active_user
from core.cache import MemoryCacheBackend
from core.config import settings
from core.musicbrainz import MusicBrainzClient
from db.database import create_db_and_tables, make_engine, make_session_maker
from main import create_app
from schemas.records import RecordCreate
from services.container import build_services

RELEASE_MBID = "b1392450-e666-3926-a536-22c65f834433"
UNAVAILABLE_MBID = "00000000-0000-0000-0000-000000000503"

RELEASE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<metadata xmlns="http://musicbrainz.org/ns/mmd-2.0#">
  <release id="b1392450-e666-3926-a536-22c65f834433">
    <title>OK Computer</title>
    <status>Official</status>
    <date>1997-05-21</date>
    <country>GB</country>
    <medium-list count="2">
      <medium>
        <position>1</position>
        <track-list count="2" offset="0">
          <track id="t-1">
            <position>1</position>
            <number>1</number>
            <length>284000</length>
            <recording id="r-1"><title>Airbag</title><length>284000</length></recording>
          </track>
          <track id="t-2">
            <position>2</position>
            <number>2</number>
            <length>383000</length>
            <recording id="r-2"><title>Paranoid Android</title><length>383000</length></recording>
          </track>
        </track-list>
      </medium>
      <medium>
        <position>2</position>
        <track-list count="1" offset="0">
          <track id="t-3">
            <position>1</position>
            <recording id="r-3"><title>Bonus</title></recording>
          </track>
        </track-list>
      </medium>
    </medium-list>
  </release>
</metadata>
"""


class FakeUser:
    def __init__(self, roles: List[str]):
        self.roles = roles

    def has_role(self, *roles: str) -> bool:
        return any(r in self.roles for r in roles)


@pytest.fixture
def mb_calls() -> List[str]:
    return []


@pytest.fixture
def mb_transport(mb_calls) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        mbid = request.url.path.rsplit("/", 1)[-1]
        mb_calls.append(mbid)
        if mbid == RELEASE_MBID:
            return httpx.Response(200, text=RELEASE_XML, headers={"Content-Type": "application/xml"})
        if mbid == UNAVAILABLE_MBID:
            return httpx.Response(503)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def services(session_maker, mb_transport):
    metadata = MusicBrainzClient("https://musicbrainz.test", transport=mb_transport)
    services = build_services(settings, session_maker, cache_backend=MemoryCacheBackend(), metadata=metadata)
    yield services
    await services.close()


@pytest.fixture
def make_record(services):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        data = {
            "artist": "Test Artist",
            "album": f"Album {n}",
            "price": 19.99,
            "quantity": 10,
            "format": "Vinyl",
            "category": "Rock",
        }
        data.update(overrides)
        return await services.records.create(RecordCreate(**data))

    return _make


@pytest.fixture
def user() -> FakeUser:
    return FakeUser(roles=["creator", "customer"])


@pytest_asyncio.fixture
async def client(services, user):
    app = create_app(services)
    app.dependency_overrides[current_active_user] = lambda: user
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
