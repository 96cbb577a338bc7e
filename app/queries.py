"""
Read-side queries over the store. Every function accepts either the
database itself or an open transaction.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from typing import TypeVar

from app.database import Reader
from app.models import Application, ApplicationStatus, Employer, Gig, Worker

Record = Gig | Application | Worker | Employer
T = TypeVar("T")


def gig_key(gig_id: str) -> str:
    return f"gig:{gig_id}"


def application_key(application_id: str) -> str:
    return f"application:{application_id}"


def worker_key(worker_id: str) -> str:
    return f"worker:{worker_id}"


def employer_key(employer_id: str) -> str:
    return f"employer:{employer_id}"


async def get_gig(db: Reader[str, Record], gig_id: str) -> Gig | None:
    gig = db.get(gig_key(gig_id))
    return gig if isinstance(gig, Gig) else None


async def get_application(
    db: Reader[str, Record], application_id: str
) -> Application | None:
    application = db.get(application_key(application_id))
    return application if isinstance(application, Application) else None


async def get_worker_name(db: Reader[str, Record], worker_id: str) -> str:
    worker = db.get(worker_key(worker_id))
    return worker.full_name if isinstance(worker, Worker) else worker_id


async def get_employer_name(db: Reader[str, Record], employer_id: str) -> str:
    employer = db.get(employer_key(employer_id))
    return employer.name if isinstance(employer, Employer) else employer_id


async def find_application(
    db: Reader[str, Record],
    worker_id: str,
    gig_id: str,
    statuses: Iterable[ApplicationStatus],
) -> Application | None:
    statuses = set(statuses)
    return next(
        (
            a
            for a in db.all()
            if isinstance(a, Application)
            and a.worker_id == worker_id
            and a.gig_id == gig_id
            and a.status in statuses
        ),
        None,
    )


async def find_worker_commitments(
    db: Reader[str, Record],
    worker_id: str,
    statuses: Iterable[ApplicationStatus],
    *,
    exclude_gig_id: str | None = None,
) -> list[tuple[Application, Gig]]:
    """
    The worker's applications in ``statuses`` joined with their gig.
    Applications whose gig is missing or inactive are left out.
    """
    statuses = set(statuses)
    rows = []
    for a in db.all():
        if (
            not isinstance(a, Application)
            or a.worker_id != worker_id
            or a.status not in statuses
            or a.gig_id == exclude_gig_id
        ):
            continue
        gig = await get_gig(db, a.gig_id)
        if gig is None or not gig.is_active:
            continue
        rows.append((a, gig))
    return rows


def _newest_first(applications: Iterable[Application]) -> list[Application]:
    return sorted(applications, key=lambda a: (a.created_at, a.id), reverse=True)


def paginate(rows: Sequence[T], limit: int, offset: int) -> tuple[list[T], bool]:
    """Slice one page out of ``rows``; the flag says whether more follow."""
    page = list(rows[offset : offset + limit + 1])
    return page[:limit], len(page) > limit


async def list_worker_applications(
    db: Reader[str, Record],
    worker_id: str,
    *,
    status: ApplicationStatus | None = None,
) -> list[tuple[Application, Gig]]:
    """The worker's own applications with their gig, newest first."""
    rows = []
    for a in _newest_first(
        a
        for a in db.all()
        if isinstance(a, Application)
        and a.worker_id == worker_id
        and (status is None or a.status == status)
    ):
        gig = await get_gig(db, a.gig_id)
        if gig is not None:
            rows.append((a, gig))
    return rows


async def find_worker_calendar(
    db: Reader[str, Record],
    worker_id: str,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Gig]:
    """
    Gigs the worker is confirmed for whose dates touch
    [date_from, date_to], ordered by start. Either bound may be open.
    """
    commitments = await find_worker_commitments(
        db, worker_id, {ApplicationStatus.WORKER_CONFIRMED}
    )
    gigs = [
        gig
        for _, gig in commitments
        if (date_to is None or gig.date_start <= date_to)
        and (date_from is None or gig.date_end >= date_from)
    ]
    return sorted(gigs, key=lambda g: (g.date_start, g.time_start, g.id))


async def list_gig_applications(
    db: Reader[str, Record],
    gig_id: str,
    *,
    status: ApplicationStatus | None = None,
) -> list[Application]:
    return _newest_first(
        a
        for a in db.all()
        if isinstance(a, Application)
        and a.gig_id == gig_id
        and (status is None or a.status == status)
    )


async def list_employer_applications(
    db: Reader[str, Record],
    employer_id: str,
    *,
    status: ApplicationStatus | None = None,
) -> list[tuple[Application, Gig]]:
    """Applications across every gig the employer owns, newest first."""
    owned = {
        g.id: g for g in db.all() if isinstance(g, Gig) and g.employer_id == employer_id
    }
    return [
        (a, owned[a.gig_id])
        for a in _newest_first(
            a
            for a in db.all()
            if isinstance(a, Application)
            and a.gig_id in owned
            and (status is None or a.status == status)
        )
    ]
