from datetime import UTC, date, datetime

from httpx import AsyncClient

from app.database import InMemoryKeyValueDatabase
from app.models import Application, ApplicationStatus, Gig

MONDAY = date(2025, 7, 7)
TUESDAY = date(2025, 7, 8)
PUBLISHED = datetime(2025, 6, 1, tzinfo=UTC)


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


def _banner(name: str) -> None:
    _p("\n" + "=" * 88)
    _p(f"test: {name}")
    _p("=" * 88)


def worker(worker_id: str = "alice-id") -> dict[str, str]:
    return {"X-Actor-Id": worker_id, "X-Actor-Role": "worker"}


def employer(employer_id: str = "cafe-id") -> dict[str, str]:
    return {"X-Actor-Id": employer_id, "X-Actor-Role": "employer"}


def make_gig(
    gig_id: str,
    *,
    employer_id: str = "cafe-id",
    day: date = MONDAY,
    start: str = "09:00",
    end: str = "17:00",
    **overrides,
) -> Gig:
    fields = {
        "id": gig_id,
        "employer_id": employer_id,
        "title": f"Gig {gig_id}",
        "date_start": day,
        "date_end": day,
        "time_start": start,
        "time_end": end,
        "published_at": PUBLISHED,
    }
    fields.update(overrides)
    return Gig(**fields)


def put_gig(db: InMemoryKeyValueDatabase, gig: Gig) -> Gig:
    db.put(f"gig:{gig.id}", gig)
    return gig


def put_application(
    db: InMemoryKeyValueDatabase,
    application_id: str,
    gig_id: str,
    status: ApplicationStatus,
    worker_id: str = "alice-id",
) -> Application:
    now = datetime(2025, 7, 1, tzinfo=UTC)
    application = Application(
        id=application_id,
        worker_id=worker_id,
        gig_id=gig_id,
        status=status,
        created_at=now,
        updated_at=now,
    )
    db.put(f"application:{application_id}", application)
    return application


def status_of(db: InMemoryKeyValueDatabase, application_id: str) -> ApplicationStatus:
    application = db.get(f"application:{application_id}")
    assert isinstance(application, Application)
    return application.status


def dump_applications(db: InMemoryKeyValueDatabase) -> None:
    _p("db applications:")
    apps = [a for a in db.all() if isinstance(a, Application)]
    for a in sorted(apps, key=lambda x: (x.worker_id, x.gig_id)):
        _p(f"  - {a.id} | worker={a.worker_id} gig={a.gig_id} status={a.status}")


async def apply(client: AsyncClient, gig_id: str, worker_id: str = "alice-id") -> str:
    resp = await client.post(f"/applications/apply/{gig_id}", headers=worker(worker_id))
    assert resp.status_code == 201, resp.json()
    return resp.json()["application_id"]


async def approved(
    client: AsyncClient,
    gig_id: str,
    *,
    employer_id: str = "cafe-id",
    worker_id: str = "alice-id",
) -> str:
    """Apply and get approved; returns the application id."""
    application_id = await apply(client, gig_id, worker_id)
    resp = await client.put(
        f"/applications/{application_id}/review",
        json={"decision": "approve"},
        headers=employer(employer_id),
    )
    assert resp.status_code == 200, resp.json()
    return application_id


async def confirm(
    client: AsyncClient,
    application_id: str,
    decision: str = "accept",
    worker_id: str = "alice-id",
):
    return await client.put(
        f"/applications/{application_id}/confirm",
        json={"decision": decision},
        headers=worker(worker_id),
    )
