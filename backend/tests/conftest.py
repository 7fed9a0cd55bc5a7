"""
conftest.py — shared fixtures for the worksite tests.

Strategy:
- The hosted directory service is emulated in memory by ``FakeDirectory`` and
  plugged into the real ``DirectoryClient`` through ``httpx.MockTransport``,
  so every test exercises the actual request/response handling.
- Snapshots go to a fresh on-disk SQLite database (aiosqlite) per test.
- API tests talk to the FastAPI app through ``httpx.ASGITransport``; the
  services normally created by the lifespan are put on ``app.state`` here.
"""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worksite.db.models import Base
from worksite.main import app
from worksite.services.directory import DirectoryClient
from worksite.services.ledger import LedgerBook
from worksite.services.report_generator import ReportGenerator
from worksite.services.snapshot_store import SnapshotStore

DIRECTORY_URL = "http://directory.test"
REPORT_DAY = date(2026, 1, 13)
USER_TOKEN = "engineer-token"
USER_ID = "5f0c4a52-9d1e-4a51-9b8e-2c7a3f1d0e11"


# ---------------------------------------------------------------------------
# In-memory directory service
# ---------------------------------------------------------------------------


class FakeDirectory:
    """Serves the auth / rest / storage endpoints the client talks to."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {USER_TOKEN: {"id": USER_ID, "email": "site@example.com"}}
        self.profiles: dict[str, dict] = {USER_ID: {"id": USER_ID, "name": "Ravi Kumar", "role": "engineer"}}
        self.workers: list[dict] = []
        self.objects: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

        self.fail_upload = False
        self.fail_profile = False
        self.fail_workers = False
        self.fail_delete = False
        # Served as-is for profile lookups when set
        self.profile_response: httpx.Response | None = None

    def add_worker(self, name: str, phone: str, worker_id: str | None = None) -> dict:
        row = {"id": worker_id or str(uuid.uuid4()), "name": name, "phone_number": phone}
        self.workers.append(row)
        return row

    def calls(self, method: str, path_prefix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)

        if path == "/auth/v1/user":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ").strip()
            user = self.users.get(token)
            if user is None:
                return httpx.Response(401, json={"message": "invalid JWT"})
            return httpx.Response(200, json=user)

        if path == "/rest/v1/user_profiles":
            if self.profile_response is not None:
                return self.profile_response
            if self.fail_profile:
                return httpx.Response(500, json={"message": "profiles unavailable"})
            user_id = request.url.params.get("id", "").removeprefix("eq.")
            profile = self.profiles.get(user_id)
            return httpx.Response(200, json=[profile] if profile else [])

        if path == "/rest/v1/workers":
            return self._workers(request)

        if path.startswith("/storage/v1/object/list/"):
            body = json.loads(request.content)
            prefix = body["prefix"].rstrip("/") + "/"
            names = sorted(
                (key.split("/", 1)[1][len(prefix):] for key in self.objects
                 if key.split("/", 1)[1].startswith(prefix)),
                reverse=True,
            )
            return httpx.Response(200, json=[{"name": n, "id": str(uuid.uuid4())} for n in names])

        if path.startswith("/storage/v1/object/") and request.method == "POST":
            if self.fail_upload:
                return httpx.Response(400, json={"message": "Bucket not found"})
            key = path.removeprefix("/storage/v1/object/")
            if key in self.objects and request.headers.get("x-upsert") != "true":
                return httpx.Response(409, json={"message": "The resource already exists"})
            self.objects[key] = {
                "content": request.content,
                "content_type": request.headers.get("Content-Type"),
                "upsert": request.headers.get("x-upsert"),
            }
            return httpx.Response(200, json={"Key": key})

        return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})

    def _workers(self, request: httpx.Request) -> httpx.Response:
        if self.fail_workers:
            return httpx.Response(503, json={"message": "workers table unavailable"})

        if request.method == "GET":
            return httpx.Response(200, json=self.workers)

        if request.method == "POST":
            created = [self.add_worker(row["name"], row["phone_number"]) for row in json.loads(request.content)]
            return httpx.Response(201, json=created)

        if request.method == "DELETE":
            if self.fail_delete:
                return httpx.Response(500, json={"message": "delete failed"})
            worker_id = request.url.params.get("id", "").removeprefix("eq.")
            self.workers = [w for w in self.workers if w["id"] != worker_id]
            return httpx.Response(204)

        return httpx.Response(405)


class StepClock:
    """Returns a time one second later on every call."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory()


@pytest_asyncio.fixture
async def directory(fake_directory: FakeDirectory) -> DirectoryClient:
    client = DirectoryClient(
        DIRECTORY_URL,
        "service-key",
        transport=httpx.MockTransport(fake_directory.handler),
    )
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'snapshots.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> SnapshotStore:
    return SnapshotStore(session_factory, delete_when_empty=False)


@pytest.fixture
def book(store: SnapshotStore) -> LedgerBook:
    return LedgerBook(store)


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2026, 1, 13, 18, 30, tzinfo=timezone.utc))


@pytest.fixture
def generator(directory: DirectoryClient, book: LedgerBook, clock: StepClock, tmp_path: Path) -> ReportGenerator:
    return ReportGenerator(directory, book, clock=clock, local_dir=tmp_path / "downloads")


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(directory: DirectoryClient, book: LedgerBook, generator: ReportGenerator) -> AsyncClient:
    app.state.directory = directory
    app.state.book = book
    app.state.reports = generator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {USER_TOKEN}"}
