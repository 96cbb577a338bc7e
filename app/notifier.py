"""
Notification side channel for application lifecycle events.

Lifecycle code never notifies directly. It records messages in an
``Outbox`` while its transaction is open and flushes the outbox after
commit, so a rolled back transition sends nothing and a failed delivery
never undoes a transition.
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import structlog

from app.config import settings
from app.database import InMemoryKeyValueDatabase
from app.models import Notification, Role

logger = structlog.get_logger(__name__)


class NotificationDispatcher(Protocol):
    async def notify(
        self,
        receiver_id: str,
        role: Role,
        title: str,
        message: str,
        type: str,
        resource_id: str | None = None,
    ) -> None: ...


class StoreNotificationDispatcher:
    """Persists notifications next to the rest of the data."""

    def __init__(
        self,
        db: InMemoryKeyValueDatabase,
        now_fn: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.db = db
        self.now_fn = now_fn

    async def notify(
        self,
        receiver_id: str,
        role: Role,
        title: str,
        message: str,
        type: str,
        resource_id: str | None = None,
    ) -> None:
        notification = Notification(
            id=uuid.uuid4().hex,
            receiver_id=receiver_id,
            receiver_role=role,
            title=title,
            message=message,
            type=type,
            resource_id=resource_id,
            created_at=self.now_fn(),
        )
        self.db.put(f"notification:{notification.id}", notification)


@dataclass(frozen=True)
class PendingNotification:
    receiver_id: str
    role: Role
    title: str
    message: str
    type: str
    resource_id: str | None = None


@dataclass
class Outbox:
    messages: list[PendingNotification] = field(default_factory=list)

    def add(self, *args, **kwargs) -> None:
        self.messages.append(PendingNotification(*args, **kwargs))

    async def flush(self, dispatcher: NotificationDispatcher) -> int:
        """
        Deliver queued messages. Returns how many were delivered.
        """
        messages, self.messages = self.messages, []
        if not settings.notifications_enabled:
            logger.info("notifications_disabled", dropped=len(messages))
            return 0

        results = await asyncio.gather(
            *(
                dispatcher.notify(
                    m.receiver_id, m.role, m.title, m.message, m.type, m.resource_id
                )
                for m in messages
            ),
            return_exceptions=True,
        )

        delivered = 0
        for m, result in zip(messages, results):
            if isinstance(result, BaseException):
                logger.error(
                    "notification_failed",
                    receiver_id=m.receiver_id,
                    type=m.type,
                    resource_id=m.resource_id,
                    error=repr(result),
                )
                continue
            delivered += 1
        return delivered

    # templates

    def application_received(
        self, employer_id: str, worker_name: str, gig_title: str, application_id: str
    ) -> None:
        self.add(
            employer_id,
            Role.EMPLOYER,
            "New application received",
            f"{worker_name} applied for your gig \"{gig_title}\". Please review it soon.",
            "application_received",
            application_id,
        )

    def application_approved(
        self, worker_id: str, gig_title: str, employer_name: str, application_id: str
    ) -> None:
        self.add(
            worker_id,
            Role.WORKER,
            "Application approved",
            f"Your application for \"{gig_title}\" was approved by {employer_name}. "
            "Please confirm whether you will take the gig.",
            "application_approved",
            application_id,
        )

    def application_rejected(
        self,
        worker_id: str,
        gig_title: str,
        employer_name: str,
        application_id: str,
        reason: str | None = None,
    ) -> None:
        message = f"Your application for \"{gig_title}\" was declined by {employer_name}."
        if reason:
            message = f"{message} Reason: {reason}"
        self.add(
            worker_id,
            Role.WORKER,
            "Application not approved",
            message,
            "application_rejected",
            application_id,
        )

    def worker_confirmed(
        self, employer_id: str, worker_name: str, gig_title: str, application_id: str
    ) -> None:
        self.add(
            employer_id,
            Role.EMPLOYER,
            "Worker confirmed",
            f"{worker_name} confirmed they will work \"{gig_title}\".",
            "worker_confirmed",
            application_id,
        )

    def worker_declined(
        self, employer_id: str, worker_name: str, gig_title: str, application_id: str
    ) -> None:
        self.add(
            employer_id,
            Role.EMPLOYER,
            "Worker declined",
            f"{worker_name} declined the gig \"{gig_title}\".",
            "worker_declined",
            application_id,
        )

    def system_cancelled_for_worker(
        self,
        worker_id: str,
        gig_title: str,
        application_id: str,
        conflicting_titles: list[str] | None = None,
    ) -> None:
        message = (
            f"Your application for \"{gig_title}\" was cancelled by the system "
            "because it conflicts with your schedule."
        )
        if conflicting_titles:
            joined = ", ".join(f"\"{t}\"" for t in conflicting_titles)
            message = f"{message} Conflicting work: {joined}."
        self.add(
            worker_id,
            Role.WORKER,
            "Application cancelled by system",
            message,
            "application_system_cancelled",
            application_id,
        )

    def system_cancelled_for_employer(
        self, employer_id: str, worker_name: str, gig_title: str, application_id: str
    ) -> None:
        self.add(
            employer_id,
            Role.EMPLOYER,
            "Application cancelled by system",
            f"The application from {worker_name} for \"{gig_title}\" was cancelled. "
            "Reason: worker's other work time conflict.",
            "application_system_cancelled",
            application_id,
        )
