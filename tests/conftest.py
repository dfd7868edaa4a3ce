from __future__ import annotations

import asyncio
import contextlib
import json
import os
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from hr_workflow.auth.principal import Principal
from hr_workflow.domain.records import Record
from hr_workflow.notifications import CollectingNotifier
from hr_workflow.service.client import RecordServiceClient
from hr_workflow.workflow.loader import load_workflow_config
from hr_workflow.workflow.models import RecordKindConfig, WorkflowConfig
from hr_workflow.workflow.table import StatusTransitionTable

Handler = Callable[[httpx.Request], "httpx.Response | Awaitable[httpx.Response]"]


def pytest_sessionstart(session: pytest.Session) -> None:
    # load_dotenv never overrides set variables; keeps a developer .env from
    # starting interval refreshes in tests.
    os.environ.setdefault("HR_AUTO_REFRESH", "false")


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


class FakeRecordService:
    """Records requests and answers them from per-route handlers."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler | httpx.Response) -> None:
        if isinstance(handler, httpx.Response):
            response = handler
            self._routes[(method, path)] = lambda _request: response
        else:
            self._routes[(method, path)] = handler

    def json_route(self, method: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.route(method, path, lambda _request: httpx.Response(status_code, json=payload))

    def bodies(self) -> list[Any]:
        return [json.loads(request.content) if request.content else None for request in self.requests]

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def _handle(self, request: httpx.Request) -> httpx.Response | Awaitable[httpx.Response]:
        self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"No route for {request.url.path}"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


@pytest.fixture(scope="session")
def workflow_config() -> WorkflowConfig:
    return load_workflow_config()


@pytest.fixture(scope="session")
def table(workflow_config: WorkflowConfig) -> StatusTransitionTable:
    return StatusTransitionTable(workflow_config)


@pytest.fixture
def leaves(workflow_config: WorkflowConfig) -> RecordKindConfig:
    return workflow_config.kind("leaves")


@pytest.fixture
def travel_orders(workflow_config: WorkflowConfig) -> RecordKindConfig:
    return workflow_config.kind("travel_orders")


@pytest.fixture
def meetings(workflow_config: WorkflowConfig) -> RecordKindConfig:
    return workflow_config.kind("meetings")


@pytest.fixture
def hrd() -> Principal:
    return Principal(user_id=2, is_hrd_manager=True)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id=1, is_super_admin=True)


@pytest.fixture
def dept_manager() -> Principal:
    return Principal(user_id=3, is_department_manager=True, managed_departments=frozenset({"IT"}))


@pytest.fixture
def employee() -> Principal:
    return Principal(user_id=5)


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def service() -> FakeRecordService:
    return FakeRecordService()


@pytest_asyncio.fixture
async def client(service: FakeRecordService) -> RecordServiceClient:
    async with RecordServiceClient("http://hr.test", transport=service.transport) as client:
        yield client


def leave_payload(record_id: int, status: str = "pending", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": record_id,
        "status": status,
        "start_date": "2024-06-10",
        "end_date": "2024-06-12",
        "type": "Vacation",
        "reason": "Family trip",
        "remarks": None,
        "created_by": 5,
        "employee": {"Fname": "Ana", "Lname": "Cruz", "idno": f"E-{record_id}", "Department": "IT"},
    }
    payload.update(overrides)
    return payload


def meeting_payload(record_id: int, status: str = "Scheduled", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": record_id,
        "status": status,
        "title": "Quarterly review",
        "location": "Room 4",
        "organizer": "Bea",
        "department": "Finance",
        "start_time": "2024-06-10T09:00:00",
        "end_time": "2024-06-10T10:00:00",
        "created_by": 5,
        "participants": [{"id": 11, "pivot": {"attendance_status": "Confirmed"}}, {"id": 12}],
    }
    payload.update(overrides)
    return payload


def make_leave(kind: RecordKindConfig, record_id: int, status: str = "pending", **overrides: Any) -> Record:
    return Record.from_payload(leave_payload(record_id, status, **overrides), kind)


def make_meeting(kind: RecordKindConfig, record_id: int, status: str = "Scheduled", **overrides: Any) -> Record:
    return Record.from_payload(meeting_payload(record_id, status, **overrides), kind)
