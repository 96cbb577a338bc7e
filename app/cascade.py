from datetime import datetime

import structlog

from app.conflicts import PENDING_HOLDS, find_conflicts
from app.database import Transaction
from app.models import Application, ApplicationStatus
from app.notifier import Outbox
from app.queries import application_key, get_worker_name

logger = structlog.get_logger(__name__)


async def cascade_on_confirm(
    tx: Transaction,
    outbox: Outbox,
    worker_id: str,
    confirmed_gig_id: str,
    *,
    now: datetime,
) -> list[Application]:
    """
    Cancel the worker's other pending-confirmation holds that overlap the
    gig they just confirmed, and queue notices for both sides.

    Runs inside the confirming transaction so the confirmation and the
    cancellations commit together. Only pending holds are touched;
    cancelling one never cascades further.
    """
    conflicts = await find_conflicts(tx, worker_id, confirmed_gig_id, PENDING_HOLDS)
    if not conflicts:
        return []

    cancelled = tx.set_status_many(
        (application_key(c.application_id) for c in conflicts),
        PENDING_HOLDS,
        ApplicationStatus.SYSTEM_CANCELLED,
        now,
    )

    by_application = {c.application_id: c for c in conflicts}
    worker_name = await get_worker_name(tx, worker_id)
    for application in cancelled:
        gig = by_application[application.id]
        outbox.system_cancelled_for_worker(worker_id, gig.title, application.id)
        outbox.system_cancelled_for_employer(
            gig.employer_id, worker_name, gig.title, application.id
        )
        logger.info(
            "application_cascade_cancelled",
            application_id=application.id,
            worker_id=worker_id,
            gig_id=gig.gig_id,
            confirmed_gig_id=confirmed_gig_id,
        )

    return cancelled
