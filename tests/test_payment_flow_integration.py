"""Integration tests for the series, payment and status-change endpoint sequence."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from datetime import date, timedelta
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

API_BASE_URL = os.getenv("INTEGRATION_BASE_URL", "http://localhost:8000/api/v1").rstrip("/")
HEALTHCHECK_URL = os.getenv("INTEGRATION_HEALTH_URL", "http://localhost:8000/health")
ADMIN_TOKEN = os.getenv("INTEGRATION_ADMIN_TOKEN", "")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("INTEGRATION_TIMEOUT_SECONDS", "15"))

_INTEGRATION_STACK_HEALTHY: bool | None = None
_INTEGRATION_STACK_ERROR: str | None = None


def _assert_status(response: httpx.Response, expected_status: int) -> None:
    assert response.status_code == expected_status, (
        f"{response.request.method} {response.request.url} -> "
        f"{response.status_code}, body={response.text}"
    )


def _next_monday(today: date) -> date:
    return today + timedelta(days=7 - today.weekday())


@pytest_asyncio.fixture()
async def api_client() -> AsyncIterator[httpx.AsyncClient]:
    global _INTEGRATION_STACK_HEALTHY, _INTEGRATION_STACK_ERROR  # noqa: PLW0603

    if not ADMIN_TOKEN:
        pytest.skip("INTEGRATION_ADMIN_TOKEN is not set (run scripts/seed_demo_data.py)")

    if _INTEGRATION_STACK_HEALTHY is None:
        probe_timeout_seconds = min(REQUEST_TIMEOUT_SECONDS, 3.0)
        async with httpx.AsyncClient(timeout=probe_timeout_seconds) as probe:
            try:
                health_response = await probe.get(HEALTHCHECK_URL)
            except httpx.HTTPError as exc:
                _INTEGRATION_STACK_HEALTHY = False
                _INTEGRATION_STACK_ERROR = (
                    f"Integration stack unavailable at {HEALTHCHECK_URL}: {exc}"
                )
            else:
                _INTEGRATION_STACK_HEALTHY = health_response.status_code == 200
                _INTEGRATION_STACK_ERROR = (
                    None
                    if _INTEGRATION_STACK_HEALTHY
                    else f"Integration stack returned {health_response.status_code} for {HEALTHCHECK_URL}"
                )

    if not _INTEGRATION_STACK_HEALTHY:
        pytest.skip(_INTEGRATION_STACK_ERROR or "Integration stack is unavailable")
        return

    async with httpx.AsyncClient(
        base_url=API_BASE_URL,
        timeout=REQUEST_TIMEOUT_SECONDS,
        headers={"Authorization": f"Bearer {ADMIN_TOKEN}"},
    ) as client:
        yield client


@pytest.mark.asyncio
async def test_cancel_and_revert_moves_payment_forward_and_back(api_client: httpx.AsyncClient) -> None:
    period_start = _next_monday(date.today())
    series_response = await api_client.post(
        "/series",
        json={
            "owner_type": "individual",
            "owner_id": str(uuid4()),
            "title": "Integration series",
            "schedule_days": ["Пн", "Ср"],
            "start_time": "18:00",
            "end_time": "19:00",
            "period_start": period_start.isoformat(),
            "period_end": (period_start + timedelta(days=27)).isoformat(),
        },
    )
    _assert_status(series_response, 201)
    series_id = series_response.json()["id"]

    payment_response = await api_client.post(
        "/billing/payments",
        json={
            "series_id": series_id,
            "amount": "3000.00",
            "payment_date": period_start.isoformat(),
            "lessons_count": 2,
            "method": "cash",
        },
    )
    _assert_status(payment_response, 201)
    allocation = payment_response.json()
    first_paid, second_paid = allocation["attributed_dates"]
    assert allocation["warnings"] == []

    cancel_response = await api_client.put(
        f"/series/{series_id}/sessions/{first_paid}/status",
        json={"status": "cancelled"},
    )
    _assert_status(cancel_response, 200)
    outcome = cancel_response.json()
    assert outcome["changed"] is True
    assert outcome["transfer"]["direction"] == "forward"
    moved_to = outcome["transfer"]["target_date"]
    assert moved_to > second_paid

    timeline_response = await api_client.get(f"/series/{series_id}/timeline")
    _assert_status(timeline_response, 200)
    entries = {entry["lesson_date"]: entry for entry in timeline_response.json()["entries"]}
    assert entries[first_paid]["payment_id"] is None
    assert entries[moved_to]["payment_id"] == allocation["payment"]["id"]

    revert_response = await api_client.put(
        f"/series/{series_id}/sessions/{first_paid}/status",
        json={"status": "scheduled"},
    )
    _assert_status(revert_response, 200)
    assert revert_response.json()["transfer"]["direction"] == "backward"

    payments_response = await api_client.get(
        f"/billing/series/{series_id}/payments",
        params={"limit": 20, "offset": 0},
    )
    _assert_status(payments_response, 200)
    assert payments_response.json()["total"] == 1
