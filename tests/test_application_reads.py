from datetime import date

import pytest
from httpx import AsyncClient

from app.database import InMemoryKeyValueDatabase
from app.models import ApplicationStatus
from app.queries import find_worker_calendar, paginate
from tests.helpers import (
    _banner,
    _p,
    apply,
    employer,
    make_gig,
    put_application,
    put_gig,
    worker,
)

AUGUST = date(2025, 8, 4)


# --- worker: own applications ----------------------------------------------


@pytest.mark.asyncio
async def test_worker_lists_own_applications_newest_first(
    client: AsyncClient, frozen_clock, setup_test_data
) -> None:
    _banner("a worker sees their own applications, newest first")
    first = await apply(client, "g1")
    frozen_clock.tick()
    second = await apply(client, "g3")
    await apply(client, "g2", worker_id="wei-id")

    resp = await client.get("/applications/mine", headers=worker())
    _p(f"mine -> {resp.json()}")

    assert resp.status_code == 200
    body = resp.json()
    assert [a["application_id"] for a in body["applications"]] == [second, first]
    assert body["applications"][0] == {
        "application_id": second,
        "gig_id": "g3",
        "gig_title": "Gig g3",
        "employer_name": "Harbor Logistics",
        "date_range": "2025-07-08 ~ 2025-07-08",
        "time_range": "09:00 ~ 17:00",
        "status": "pending_employer_review",
        "applied_at": body["applications"][0]["applied_at"],
    }
    assert body["pagination"] == {
        "limit": 10,
        "offset": 0,
        "has_more": False,
        "returned": 2,
    }


@pytest.mark.asyncio
async def test_worker_applications_filter_and_paginate(
    client: AsyncClient, db, setup_test_data
) -> None:
    put_application(db, "a1", "g1", ApplicationStatus.WORKER_CONFIRMED)
    put_application(db, "a2", "g3", ApplicationStatus.PENDING_EMPLOYER_REVIEW)
    put_application(db, "a3", "g4", ApplicationStatus.PENDING_EMPLOYER_REVIEW)

    resp = await client.get("/applications/mine?limit=2", headers=worker())
    body = resp.json()
    assert [a["application_id"] for a in body["applications"]] == ["a3", "a2"]
    assert body["pagination"]["has_more"] is True

    resp = await client.get("/applications/mine?limit=2&offset=2", headers=worker())
    body = resp.json()
    assert [a["application_id"] for a in body["applications"]] == ["a1"]
    assert body["pagination"]["has_more"] is False

    resp = await client.get(
        "/applications/mine?status=worker_confirmed", headers=worker()
    )
    assert [a["application_id"] for a in resp.json()["applications"]] == ["a1"]


@pytest.mark.asyncio
async def test_worker_application_list_rejects_bad_query(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.get("/applications/mine?status=approved", headers=worker())
    assert resp.status_code == 422

    resp = await client.get("/applications/mine?limit=0", headers=worker())
    assert resp.status_code == 422

    resp = await client.get("/applications/mine", headers=employer())
    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


# --- worker: calendar -------------------------------------------------------


@pytest.fixture
def confirmed_work(db: InMemoryKeyValueDatabase, setup_test_data) -> None:
    put_gig(db, make_gig("g-aug", employer_id="dock-id", day=AUGUST))
    put_gig(db, make_gig("g-off", is_active=False))
    put_application(db, "a-mon", "g1", ApplicationStatus.WORKER_CONFIRMED)
    put_application(db, "a-tue", "g3", ApplicationStatus.WORKER_CONFIRMED)
    put_application(db, "a-aug", "g-aug", ApplicationStatus.WORKER_CONFIRMED)
    put_application(db, "a-off", "g-off", ApplicationStatus.WORKER_CONFIRMED)
    put_application(db, "a-hold", "g4", ApplicationStatus.PENDING_WORKER_CONFIRMATION)
    put_application(
        db, "a-wei", "g2", ApplicationStatus.WORKER_CONFIRMED, worker_id="wei-id"
    )


@pytest.mark.asyncio
async def test_calendar_for_a_month_lists_confirmed_work_in_order(
    client: AsyncClient, confirmed_work
) -> None:
    _banner("the calendar shows only confirmed work on active gigs")
    resp = await client.get(
        "/applications/calendar?year=2025&month=7", headers=worker()
    )
    _p(f"calendar -> {resp.json()}")

    assert resp.status_code == 200
    body = resp.json()
    assert [g["gig_id"] for g in body["gigs"]] == ["g1", "g3"]
    assert body["count"] == 2
    assert body["date_from"] == "2025-07-01"
    assert body["date_to"] == "2025-07-31"
    assert body["gigs"][0]["employer_name"] == "Morning Cafe"
    assert body["gigs"][1]["employer_name"] == "Harbor Logistics"
    assert body["gigs"][0]["time_start"] == "09:00:00"


@pytest.mark.asyncio
async def test_calendar_date_range_may_be_open_ended(
    client: AsyncClient, confirmed_work
) -> None:
    resp = await client.get(
        "/applications/calendar?date_start=2025-07-08", headers=worker()
    )
    assert [g["gig_id"] for g in resp.json()["gigs"]] == ["g3", "g-aug"]

    resp = await client.get(
        "/applications/calendar?date_end=2025-07-07", headers=worker()
    )
    assert [g["gig_id"] for g in resp.json()["gigs"]] == ["g1"]


@pytest.mark.asyncio
async def test_calendar_requires_a_window(client: AsyncClient, confirmed_work) -> None:
    resp = await client.get("/applications/calendar", headers=worker())
    assert resp.status_code == 400

    resp = await client.get("/applications/calendar?year=2025", headers=worker())
    assert resp.status_code == 400

    resp = await client.get(
        "/applications/calendar?year=2025&month=13", headers=worker()
    )
    assert resp.status_code == 422

    resp = await client.get(
        "/applications/calendar?year=2025&month=7", headers=employer()
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_calendar_window_includes_gigs_spanning_its_edges(
    db: InMemoryKeyValueDatabase,
) -> None:
    put_gig(
        db,
        make_gig("span", day=date(2025, 6, 28), date_end=date(2025, 7, 2)),
    )
    put_application(db, "a-span", "span", ApplicationStatus.WORKER_CONFIRMED)

    gigs = await find_worker_calendar(
        db, "alice-id", date_from=date(2025, 7, 1), date_to=date(2025, 7, 31)
    )
    assert [g.id for g in gigs] == ["span"]

    gigs = await find_worker_calendar(
        db, "alice-id", date_from=date(2025, 7, 3), date_to=date(2025, 7, 31)
    )
    assert gigs == []


# --- employer: applications per gig -----------------------------------------


@pytest.mark.asyncio
async def test_employer_lists_applicants_and_reviews_from_the_list(
    client: AsyncClient, frozen_clock, setup_test_data
) -> None:
    _banner("an employer finds application ids through the gig's list")
    await apply(client, "g2")
    frozen_clock.tick()
    await apply(client, "g2", worker_id="wei-id")

    resp = await client.get("/applications/gig/g2", headers=employer("dock-id"))
    _p(f"gig g2 applicants -> {resp.json()}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["gig_id"] == "g2"
    assert body["gig_title"] == "Gig g2"
    assert [a["worker_name"] for a in body["applications"]] == [
        "Wei Yan",
        "Alice Ongwele",
    ]
    assert body["pagination"]["returned"] == 2

    application_id = body["applications"][0]["application_id"]
    resp = await client.put(
        f"/applications/{application_id}/review",
        json={"decision": "approve"},
        headers=employer("dock-id"),
    )
    assert resp.status_code == 200

    resp = await client.get(
        "/applications/gig/g2?status=pending_worker_confirmation",
        headers=employer("dock-id"),
    )
    assert [a["worker_id"] for a in resp.json()["applications"]] == ["wei-id"]


@pytest.mark.asyncio
async def test_employer_cannot_list_another_employers_gig(
    client: AsyncClient, setup_test_data
) -> None:
    await apply(client, "g2")

    resp = await client.get("/applications/gig/g2", headers=employer("cafe-id"))
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"

    resp = await client.get("/applications/gig/missing", headers=employer("dock-id"))
    assert resp.status_code == 404

    resp = await client.get("/applications/gig/g2", headers=worker())
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_employer_lists_applications_across_gigs(
    client: AsyncClient, db, setup_test_data
) -> None:
    put_application(db, "a1", "g2", ApplicationStatus.PENDING_EMPLOYER_REVIEW)
    put_application(db, "a2", "g3", ApplicationStatus.EMPLOYER_REJECTED)
    put_application(
        db, "a3", "g2", ApplicationStatus.PENDING_EMPLOYER_REVIEW, worker_id="wei-id"
    )
    # the cafe's gig stays out of the dock's list
    put_application(db, "a4", "g1", ApplicationStatus.PENDING_EMPLOYER_REVIEW)

    resp = await client.get("/applications/gig/all", headers=employer("dock-id"))

    assert resp.status_code == 200
    body = resp.json()
    assert [g["gig_id"] for g in body["gigs"]] == ["g2", "g3"]
    g2 = body["gigs"][0]
    assert g2["application_count"] == 2
    assert [a["application_id"] for a in g2["applications"]] == ["a3", "a1"]
    assert body["pagination"]["returned"] == 3

    resp = await client.get(
        "/applications/gig/all?status=employer_rejected", headers=employer("dock-id")
    )
    assert [g["gig_id"] for g in resp.json()["gigs"]] == ["g3"]

    resp = await client.get("/applications/gig/all", headers=employer("nobody-id"))
    assert resp.json()["gigs"] == []


def test_paginate_reports_whether_more_rows_follow() -> None:
    assert paginate([1, 2, 3], limit=2, offset=0) == ([1, 2], True)
    assert paginate([1, 2, 3], limit=2, offset=2) == ([3], False)
    assert paginate([1, 2], limit=2, offset=0) == ([1, 2], False)
    assert paginate([], limit=5, offset=10) == ([], False)
