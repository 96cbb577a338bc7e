"""
Application lifecycle.

    pending_employer_review --approve--> pending_worker_confirmation
    pending_employer_review --reject---> employer_rejected
    pending_employer_review --cancel---> worker_cancelled
    pending_worker_confirmation --accept--> worker_confirmed | system_cancelled
    pending_worker_confirmation --decline-> worker_declined
    pending_worker_confirmation --cascade-> system_cancelled

Every action runs in a store transaction scoped to the application's
worker, so a worker's confirmations are checked and written one at a
time, and a confirmation commits together with its cascade.
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import assert_never

import structlog

from app.actors import Actor, require_role
from app.cascade import cascade_on_confirm
from app.conflicts import CONFIRMED_WORK, find_conflicts
from app.database import InMemoryKeyValueDatabase, Transaction
from app.errors import Conflict, Forbidden, GigUnavailable, InvalidState, NotFound
from app.models import (
    ACTIVE_STATUSES,
    Application,
    ApplicationStatus,
    ConfirmDecision,
    ConfirmOutcome,
    ConflictingGig,
    Gig,
    ReviewDecision,
    Role,
)
from app.notifier import NotificationDispatcher, Outbox
from app.queries import (
    application_key,
    find_application,
    get_application,
    get_employer_name,
    get_gig,
    get_worker_name,
)
from app.schedule import is_expired, is_listed

logger = structlog.get_logger(__name__)


TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING_EMPLOYER_REVIEW: frozenset(
        {
            ApplicationStatus.PENDING_WORKER_CONFIRMATION,
            ApplicationStatus.EMPLOYER_REJECTED,
            ApplicationStatus.WORKER_CANCELLED,
        }
    ),
    ApplicationStatus.PENDING_WORKER_CONFIRMATION: frozenset(
        {
            ApplicationStatus.WORKER_CONFIRMED,
            ApplicationStatus.WORKER_DECLINED,
            ApplicationStatus.SYSTEM_CANCELLED,
        }
    ),
    ApplicationStatus.WORKER_CONFIRMED: frozenset(),
    ApplicationStatus.EMPLOYER_REJECTED: frozenset(),
    ApplicationStatus.WORKER_DECLINED: frozenset(),
    ApplicationStatus.WORKER_CANCELLED: frozenset(),
    ApplicationStatus.SYSTEM_CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in TRANSITIONS[current]


def review_target(decision: ReviewDecision) -> ApplicationStatus:
    match decision:
        case ReviewDecision.APPROVE:
            return ApplicationStatus.PENDING_WORKER_CONFIRMATION
        case ReviewDecision.REJECT:
            return ApplicationStatus.EMPLOYER_REJECTED
        case _:
            assert_never(decision)


def decide_confirmation(conflicts: Sequence[ConflictingGig]) -> ApplicationStatus:
    """
    Outcome of an accept, given the worker's confirmed work that overlaps
    the gig. Any overlap cancels the accepting application itself.
    """
    if conflicts:
        return ApplicationStatus.SYSTEM_CANCELLED
    return ApplicationStatus.WORKER_CONFIRMED


def _scope(worker_id: str) -> str:
    return f"worker:{worker_id}"


class ApplicationStateMachine:
    def __init__(
        self,
        db: InMemoryKeyValueDatabase,
        dispatcher: NotificationDispatcher,
        now_fn: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.now_fn = now_fn

    async def apply(self, actor: Actor, gig_id: str) -> Application:
        require_role(actor, Role.WORKER)
        now = self.now_fn()
        outbox = Outbox()

        async with self.db.transaction(_scope(actor.id)) as tx:
            gig = await get_gig(tx, gig_id)
            if (
                gig is None
                or not gig.is_active
                or is_expired(gig, now)
                or not is_listed(gig, now)
            ):
                raise NotFound(
                    "Gig does not exist, has expired or is no longer listed",
                    gig_id=gig_id,
                )

            existing = await find_application(tx, actor.id, gig_id, ACTIVE_STATUSES)
            if existing is not None:
                raise Conflict(
                    "You already have an active application for this gig",
                    application_id=existing.id,
                    application_status=existing.status,
                )

            application = Application(
                id=uuid.uuid4().hex,
                worker_id=actor.id,
                gig_id=gig_id,
                created_at=now,
                updated_at=now,
            )
            tx.put(application_key(application.id), application)

            worker_name = await get_worker_name(tx, actor.id)
            outbox.application_received(
                gig.employer_id, worker_name, gig.title, application.id
            )

        logger.info(
            "application_submitted",
            application_id=application.id,
            worker_id=actor.id,
            gig_id=gig_id,
        )
        await outbox.flush(self.dispatcher)
        return application

    async def employer_review(
        self,
        actor: Actor,
        application_id: str,
        decision: ReviewDecision,
        reason: str | None = None,
    ) -> Application:
        require_role(actor, Role.EMPLOYER)
        now = self.now_fn()
        outbox = Outbox()

        current = await get_application(self.db, application_id)
        if current is None:
            raise NotFound("Application not found", application_id=application_id)

        async with self.db.transaction(_scope(current.worker_id)) as tx:
            application = await get_application(tx, application_id)
            gig = await get_gig(tx, application.gig_id)
            if gig is None:
                raise NotFound("Gig not found", gig_id=application.gig_id)
            if gig.employer_id != actor.id:
                raise Forbidden("You are not allowed to review this application")
            self._check_gig_usable(gig, now)
            self._require_status(
                application,
                ApplicationStatus.PENDING_EMPLOYER_REVIEW,
                "This application has already been reviewed",
            )

            target = review_target(decision)
            updated = self._transition(tx, application, target, now)

            employer_name = await get_employer_name(tx, actor.id)
            if target == ApplicationStatus.PENDING_WORKER_CONFIRMATION:
                outbox.application_approved(
                    application.worker_id, gig.title, employer_name, application.id
                )
            else:
                outbox.application_rejected(
                    application.worker_id,
                    gig.title,
                    employer_name,
                    application.id,
                    reason,
                )

        logger.info(
            "application_reviewed",
            application_id=application_id,
            employer_id=actor.id,
            decision=decision.value,
            status=updated.status.value,
        )
        await outbox.flush(self.dispatcher)
        return updated

    async def worker_cancel(self, actor: Actor, application_id: str) -> Application:
        require_role(actor, Role.WORKER)
        now = self.now_fn()

        async with self.db.transaction(_scope(actor.id)) as tx:
            application = await self._load_own_application(tx, actor, application_id)
            self._require_status(
                application,
                ApplicationStatus.PENDING_EMPLOYER_REVIEW,
                "Only applications still awaiting review can be cancelled",
            )
            updated = self._transition(tx, application, ApplicationStatus.WORKER_CANCELLED, now)

        logger.info(
            "application_withdrawn",
            application_id=application_id,
            worker_id=actor.id,
        )
        return updated

    async def worker_confirm(
        self, actor: Actor, application_id: str, decision: ConfirmDecision
    ) -> ConfirmOutcome:
        require_role(actor, Role.WORKER)
        now = self.now_fn()
        outbox = Outbox()

        async with self.db.transaction(_scope(actor.id)) as tx:
            application = await self._load_own_application(tx, actor, application_id)
            self._require_status(
                application,
                ApplicationStatus.PENDING_WORKER_CONFIRMATION,
                "This application is not awaiting your confirmation",
            )
            gig = await get_gig(tx, application.gig_id)
            if gig is None:
                raise NotFound("Gig not found", gig_id=application.gig_id)
            self._check_gig_usable(gig, now)
            worker_name = await get_worker_name(tx, actor.id)

            match decision:
                case ConfirmDecision.DECLINE:
                    updated = self._transition(
                        tx, application, ApplicationStatus.WORKER_DECLINED, now
                    )
                    outbox.worker_declined(
                        gig.employer_id, worker_name, gig.title, application.id
                    )
                    outcome = ConfirmOutcome(application=updated)

                case ConfirmDecision.ACCEPT:
                    conflicts = await find_conflicts(
                        tx, actor.id, gig.id, CONFIRMED_WORK
                    )
                    target = decide_confirmation(conflicts)
                    updated = self._transition(tx, application, target, now)

                    if target == ApplicationStatus.SYSTEM_CANCELLED:
                        outbox.system_cancelled_for_worker(
                            actor.id,
                            gig.title,
                            application.id,
                            [c.title for c in conflicts],
                        )
                        outbox.system_cancelled_for_employer(
                            gig.employer_id, worker_name, gig.title, application.id
                        )
                        outcome = ConfirmOutcome(application=updated, conflicts=conflicts)
                    else:
                        outbox.worker_confirmed(
                            gig.employer_id, worker_name, gig.title, application.id
                        )
                        cascaded = await cascade_on_confirm(
                            tx, outbox, actor.id, gig.id, now=now
                        )
                        outcome = ConfirmOutcome(application=updated, cascaded=cascaded)

                case _:
                    assert_never(decision)

        if outcome.application.status == ApplicationStatus.SYSTEM_CANCELLED:
            logger.warning(
                "application_self_cancelled",
                application_id=application_id,
                worker_id=actor.id,
                conflicting_gig_ids=[c.gig_id for c in outcome.conflicts],
            )
        else:
            logger.info(
                "application_confirmation_resolved",
                application_id=application_id,
                worker_id=actor.id,
                status=outcome.application.status.value,
                cascaded=len(outcome.cascaded),
            )
        await outbox.flush(self.dispatcher)
        return outcome

    async def _load_own_application(
        self, tx: Transaction, actor: Actor, application_id: str
    ) -> Application:
        application = await get_application(tx, application_id)
        if application is None or application.worker_id != actor.id:
            raise NotFound("Application not found", application_id=application_id)
        return application

    @staticmethod
    def _require_status(
        application: Application, expected: ApplicationStatus, message: str
    ) -> None:
        if application.status != expected:
            raise InvalidState(
                message,
                application_id=application.id,
                current_status=application.status,
            )

    @staticmethod
    def _check_gig_usable(gig: Gig, now: datetime) -> None:
        if not gig.is_active:
            raise GigUnavailable(
                "This gig has been deactivated", reason="inactive", gig_id=gig.id
            )
        if is_expired(gig, now):
            raise GigUnavailable(
                "This gig has already ended", reason="expired", gig_id=gig.id
            )

    @staticmethod
    def _transition(
        tx: Transaction,
        application: Application,
        target: ApplicationStatus,
        now: datetime,
    ) -> Application:
        if not can_transition(application.status, target):
            raise InvalidState(
                f"Cannot move an application from {application.status} to {target}",
                application_id=application.id,
                current_status=application.status,
            )
        updated = tx.set_status_if(
            application_key(application.id), {application.status}, target, now
        )
        if updated is None:
            raise InvalidState(
                "Application changed while it was being updated",
                application_id=application.id,
            )
        return updated
