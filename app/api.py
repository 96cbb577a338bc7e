import calendar
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import TypeVar

import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.actors import Actor, require_role
from app.config import settings
from app.database import InMemoryKeyValueDatabase
from app.errors import LifecycleError, NotFound, StoreUnavailable
from app.lifecycle import ApplicationStateMachine
from app.logging import RequestIdMiddleware, setup_logging
from app.models import (
    Application,
    ApplicationStatus,
    ConfirmDecision,
    ConflictingGig,
    Gig,
    ReviewDecision,
    Role,
)
from app.notifier import StoreNotificationDispatcher
from app.queries import (
    find_worker_calendar,
    get_employer_name,
    get_gig,
    get_worker_name,
    list_employer_applications,
    list_gig_applications,
    list_worker_applications,
    paginate,
)
from app.schedule import format_date_range, format_time_range

router = APIRouter()
applications = APIRouter(prefix="/applications", tags=["applications"])

logger = structlog.get_logger(__name__)

NowFn = Callable[[], datetime]
T = TypeVar("T")


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    reason: str | None = Field(default=None, max_length=500)


class ConfirmRequest(BaseModel):
    decision: ConfirmDecision


class ConflictView(BaseModel):
    gig_id: str
    title: str
    date_start: date
    date_end: date
    time_start: time
    time_end: time
    date_range: str
    time_range: str

    @classmethod
    def of(cls, conflict: ConflictingGig) -> "ConflictView":
        return cls.model_validate(conflict.model_dump())


class ApplicationResponse(BaseModel):
    application_id: str
    gig_id: str
    status: ApplicationStatus
    updated_at: datetime

    @classmethod
    def of(cls, application: Application) -> "ApplicationResponse":
        return cls(
            application_id=application.id,
            gig_id=application.gig_id,
            status=application.status,
            updated_at=application.updated_at,
        )


class ConfirmResponse(ApplicationResponse):
    conflicts: list[ConflictView] = Field(default_factory=list)
    cascaded_cancellations: int = 0


class Pagination(BaseModel):
    limit: int
    offset: int
    has_more: bool
    returned: int


class WorkerApplicationView(BaseModel):
    application_id: str
    gig_id: str
    gig_title: str
    employer_name: str
    date_range: str
    time_range: str
    status: ApplicationStatus
    applied_at: datetime


class WorkerApplicationsResponse(BaseModel):
    applications: list[WorkerApplicationView]
    pagination: Pagination


class CalendarGigView(BaseModel):
    gig_id: str
    title: str
    date_start: date
    date_end: date
    time_start: time
    time_end: time
    employer_id: str
    employer_name: str


class CalendarResponse(BaseModel):
    gigs: list[CalendarGigView]
    count: int
    date_from: date | None
    date_to: date | None


class ApplicantView(BaseModel):
    application_id: str
    worker_id: str
    worker_name: str
    status: ApplicationStatus
    applied_at: datetime


class GigApplicationsResponse(BaseModel):
    gig_id: str
    gig_title: str
    applications: list[ApplicantView]
    pagination: Pagination


class ApplicationSummary(BaseModel):
    application_id: str
    status: ApplicationStatus
    applied_at: datetime


class GigApplicationGroup(BaseModel):
    gig_id: str
    gig_title: str
    application_count: int
    applications: list[ApplicationSummary]


class EmployerApplicationsResponse(BaseModel):
    gigs: list[GigApplicationGroup]
    pagination: Pagination


@dataclass(frozen=True)
class PageParams:
    limit: int
    offset: int

    def pagination(self, returned: int, has_more: bool) -> Pagination:
        return Pagination(
            limit=self.limit, offset=self.offset, has_more=has_more, returned=returned
        )


def page_params(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageParams:
    return PageParams(limit=limit, offset=offset)


async def current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    # identity is established by the upstream authenticator
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        role = Role(x_actor_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown actor role") from None
    return Actor(id=x_actor_id, role=role)


def require(role: Role) -> Callable[..., Awaitable[Actor]]:
    async def guard(actor: Actor = Depends(current_actor)) -> Actor:
        require_role(actor, role)
        return actor

    return guard


def get_lifecycle(request: Request) -> ApplicationStateMachine:
    return request.app.state.lifecycle


def get_database(request: Request) -> InMemoryKeyValueDatabase:
    return request.app.state.database


async def _guard_store(call: Awaitable[T]) -> T:
    try:
        return await call
    except (ConnectionError, TimeoutError) as exc:
        logger.error("store_unavailable", error=repr(exc))
        raise StoreUnavailable("Storage is temporarily unavailable") from exc


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@applications.post("/apply/{gig_id}", status_code=201)
async def apply_for_gig(
    gig_id: str,
    actor: Actor = Depends(require(Role.WORKER)),
    lifecycle: ApplicationStateMachine = Depends(get_lifecycle),
) -> ApplicationResponse:
    application = await _guard_store(lifecycle.apply(actor, gig_id))
    return ApplicationResponse.of(application)


@applications.get("/mine")
async def my_applications(
    status: ApplicationStatus | None = None,
    page: PageParams = Depends(page_params),
    actor: Actor = Depends(require(Role.WORKER)),
    db: InMemoryKeyValueDatabase = Depends(get_database),
) -> WorkerApplicationsResponse:
    rows = await _guard_store(list_worker_applications(db, actor.id, status=status))
    rows, has_more = paginate(rows, page.limit, page.offset)

    views = []
    for application, gig in rows:
        views.append(
            WorkerApplicationView(
                application_id=application.id,
                gig_id=gig.id,
                gig_title=gig.title,
                employer_name=await get_employer_name(db, gig.employer_id),
                date_range=format_date_range(gig.date_start, gig.date_end),
                time_range=format_time_range(gig.time_start, gig.time_end),
                status=application.status,
                applied_at=application.created_at,
            )
        )
    return WorkerApplicationsResponse(
        applications=views, pagination=page.pagination(len(views), has_more)
    )


@applications.get("/calendar")
async def worker_calendar(
    year: int | None = Query(default=None, ge=2020, le=2050),
    month: int | None = Query(default=None, ge=1, le=12),
    date_start: date | None = None,
    date_end: date | None = None,
    actor: Actor = Depends(require(Role.WORKER)),
    db: InMemoryKeyValueDatabase = Depends(get_database),
) -> CalendarResponse:
    if year is not None and month is not None:
        date_from = date(year, month, 1)
        date_to = date(year, month, calendar.monthrange(year, month)[1])
    elif date_start is not None or date_end is not None:
        date_from, date_to = date_start, date_end
    else:
        raise HTTPException(
            status_code=400,
            detail="Provide year and month, or date_start and/or date_end",
        )

    gigs: list[Gig] = await _guard_store(
        find_worker_calendar(db, actor.id, date_from=date_from, date_to=date_to)
    )
    views = [
        CalendarGigView(
            gig_id=gig.id,
            title=gig.title,
            date_start=gig.date_start,
            date_end=gig.date_end,
            time_start=gig.time_start,
            time_end=gig.time_end,
            employer_id=gig.employer_id,
            employer_name=await get_employer_name(db, gig.employer_id),
        )
        for gig in gigs
    ]
    return CalendarResponse(
        gigs=views, count=len(views), date_from=date_from, date_to=date_to
    )


@applications.get("/gig/all")
async def employer_applications(
    status: ApplicationStatus | None = None,
    page: PageParams = Depends(page_params),
    actor: Actor = Depends(require(Role.EMPLOYER)),
    db: InMemoryKeyValueDatabase = Depends(get_database),
) -> EmployerApplicationsResponse:
    rows = await _guard_store(list_employer_applications(db, actor.id, status=status))
    rows, has_more = paginate(rows, page.limit, page.offset)

    groups: dict[str, GigApplicationGroup] = {}
    for application, gig in rows:
        group = groups.setdefault(
            gig.id,
            GigApplicationGroup(
                gig_id=gig.id, gig_title=gig.title, application_count=0, applications=[]
            ),
        )
        group.application_count += 1
        group.applications.append(
            ApplicationSummary(
                application_id=application.id,
                status=application.status,
                applied_at=application.created_at,
            )
        )
    return EmployerApplicationsResponse(
        gigs=list(groups.values()), pagination=page.pagination(len(rows), has_more)
    )


@applications.get("/gig/{gig_id}")
async def gig_applications(
    gig_id: str,
    status: ApplicationStatus | None = None,
    page: PageParams = Depends(page_params),
    actor: Actor = Depends(require(Role.EMPLOYER)),
    db: InMemoryKeyValueDatabase = Depends(get_database),
) -> GigApplicationsResponse:
    gig = await get_gig(db, gig_id)
    # another employer's gig looks the same as a missing one
    if gig is None or gig.employer_id != actor.id:
        raise NotFound("Gig not found")

    rows = await _guard_store(list_gig_applications(db, gig_id, status=status))
    rows, has_more = paginate(rows, page.limit, page.offset)
    views = [
        ApplicantView(
            application_id=application.id,
            worker_id=application.worker_id,
            worker_name=await get_worker_name(db, application.worker_id),
            status=application.status,
            applied_at=application.created_at,
        )
        for application in rows
    ]
    return GigApplicationsResponse(
        gig_id=gig.id,
        gig_title=gig.title,
        applications=views,
        pagination=page.pagination(len(views), has_more),
    )


@applications.put("/{application_id}/review")
async def review_application(
    application_id: str,
    body: ReviewRequest,
    actor: Actor = Depends(require(Role.EMPLOYER)),
    lifecycle: ApplicationStateMachine = Depends(get_lifecycle),
) -> ApplicationResponse:
    application = await _guard_store(
        lifecycle.employer_review(actor, application_id, body.decision, body.reason)
    )
    return ApplicationResponse.of(application)


@applications.post("/{application_id}/cancel")
async def cancel_application(
    application_id: str,
    actor: Actor = Depends(require(Role.WORKER)),
    lifecycle: ApplicationStateMachine = Depends(get_lifecycle),
) -> ApplicationResponse:
    application = await _guard_store(lifecycle.worker_cancel(actor, application_id))
    return ApplicationResponse.of(application)


@applications.put("/{application_id}/confirm", response_model=ConfirmResponse)
async def confirm_application(
    application_id: str,
    body: ConfirmRequest,
    actor: Actor = Depends(require(Role.WORKER)),
    lifecycle: ApplicationStateMachine = Depends(get_lifecycle),
):
    outcome = await _guard_store(
        lifecycle.worker_confirm(actor, application_id, body.decision)
    )
    response = ConfirmResponse(
        **ApplicationResponse.of(outcome.application).model_dump(),
        conflicts=[ConflictView.of(c) for c in outcome.conflicts],
        cascaded_cancellations=len(outcome.cascaded),
    )

    if outcome.application.status == ApplicationStatus.SYSTEM_CANCELLED:
        # committed, but the worker has to learn which work blocked it
        return JSONResponse(
            status_code=409,
            content={
                "detail": "Schedule conflicts with confirmed work; "
                "the application was cancelled",
                "error": "schedule_conflict",
                **response.model_dump(mode="json"),
            },
        )
    return response


async def handle_lifecycle_error(_request: Request, exc: LifecycleError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    db: InMemoryKeyValueDatabase = InMemoryKeyValueDatabase()
    app.state.database = db

    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.dispatcher = StoreNotificationDispatcher(
        db, now_fn=lambda: app.state.now_fn()
    )
    app.state.lifecycle = ApplicationStateMachine(
        db,
        dispatcher=app.state.dispatcher,
        now_fn=lambda: app.state.now_fn(),
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(LifecycleError, handle_lifecycle_error)
    app.include_router(router)
    app.include_router(applications)
    return app
