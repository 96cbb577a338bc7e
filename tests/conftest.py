import pytest
import pytest_asyncio
from freezegun import freeze_time
from httpx import ASGITransport, AsyncClient

from app.api import create_app
from app.database import InMemoryKeyValueDatabase
from app.models import Employer, Worker
from tests.helpers import TUESDAY, make_gig, put_gig


@pytest.fixture
def frozen_clock():
    # 08:00 on 2025-07-01 in Taipei
    with freeze_time("2025-07-01 00:00:00", real_asyncio=True) as frozen:
        yield frozen


@pytest_asyncio.fixture
async def client(frozen_clock):
    app = create_app()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest.fixture
def db(client: AsyncClient) -> InMemoryKeyValueDatabase:
    return client._transport.app.state.database


@pytest.fixture
def setup_test_data(db: InMemoryKeyValueDatabase) -> None:
    db.put(
        "worker:alice-id",
        Worker(id="alice-id", first_name="Alice", last_name="Ongwele"),
    )
    db.put("worker:wei-id", Worker(id="wei-id", first_name="Wei", last_name="Yan"))
    db.put("employer:cafe-id", Employer(id="cafe-id", name="Morning Cafe"))
    db.put("employer:dock-id", Employer(id="dock-id", name="Harbor Logistics"))

    # Monday 09-17 at the cafe; the rest belong to the dock
    put_gig(db, make_gig("g1"))
    put_gig(db, make_gig("g2", employer_id="dock-id", start="12:00", end="20:00"))
    put_gig(db, make_gig("g3", employer_id="dock-id", day=TUESDAY))
    put_gig(db, make_gig("g4", employer_id="dock-id", start="16:00", end="18:00"))
    put_gig(db, make_gig("g5", employer_id="dock-id", start="17:00", end="21:00"))
