from collections.abc import Iterable

import structlog

from app.database import Reader
from app.models import ApplicationStatus, ConflictingGig
from app.queries import Record, find_worker_commitments, get_gig
from app.schedule import ScheduleWindow

logger = structlog.get_logger(__name__)

CONFIRMED_WORK = frozenset({ApplicationStatus.WORKER_CONFIRMED})
PENDING_HOLDS = frozenset({ApplicationStatus.PENDING_WORKER_CONFIRMATION})


async def find_conflicts(
    db: Reader[str, Record],
    worker_id: str,
    gig_id: str,
    against: Iterable[ApplicationStatus],
) -> list[ConflictingGig]:
    """
    Return the worker's other commitments, limited to applications in
    ``against``, whose schedule overlaps the given gig.

    The gig itself is never reported. An unknown gig has no conflicts.
    """
    against = frozenset(against)
    target = await get_gig(db, gig_id)
    if target is None:
        return []

    window = ScheduleWindow.from_gig(target)
    commitments = await find_worker_commitments(
        db, worker_id, against, exclude_gig_id=gig_id
    )

    conflicts = []
    for application, gig in commitments:
        other = ScheduleWindow.from_gig(gig)
        if not window.conflicts_with(other):
            continue
        conflicts.append(
            ConflictingGig(
                application_id=application.id,
                gig_id=gig.id,
                employer_id=gig.employer_id,
                title=gig.title,
                date_start=gig.date_start,
                date_end=gig.date_end,
                time_start=gig.time_start,
                time_end=gig.time_end,
                date_range=other.date_range,
                time_range=other.time_range,
            )
        )

    conflicts.sort(key=lambda c: (c.date_start, c.time_start, c.gig_id))
    if conflicts:
        logger.debug(
            "schedule_conflicts_found",
            worker_id=worker_id,
            gig_id=gig_id,
            against=sorted(str(s) for s in against),
            conflicting_gig_ids=[c.gig_id for c in conflicts],
        )
    return conflicts
