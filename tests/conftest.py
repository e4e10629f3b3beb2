"""Shared fixtures for the field sync tests."""

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional, Set
from unittest.mock import AsyncMock, Mock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# No log file during tests
os.environ.setdefault("LOG_FILE_PATH", "")

from fieldsync.config.settings import AppSettings, LoggingSettings, RemoteSettings, StorageSettings
from fieldsync.core import FieldSyncEngine
from fieldsync.remote import ConnectivityProber, DocumentPusher
from fieldsync.storage import DatabaseManager, LocalStore
from fieldsync.utils.logging import setup_logging


USERNAME = "collector"
PASSWORD = "s3cret"


class FakeCouchDB:
    """In-process stand-in for the remote document store."""

    def __init__(self):
        self.databases: Dict[str, Dict[str, Dict[str, Any]]] = {
            "omvs_distributions": {},
            "omvs_gps_photos": {},
        }
        self.requests: List[Dict[str, Any]] = []
        self.available = True
        self.fail_local_ids: Set[str] = set()
        self.probe_delay = 0.0
        self.push_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter = 0
        self.expected_auth: Optional[str] = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/_all_dbs", self.all_dbs)
        app.router.add_post("/{db}", self.create)
        app.router.add_put("/{db}/{doc_id}", self.put)
        return app

    def _authorized(self, request: web.Request) -> bool:
        return self.expected_auth is None or request.headers.get("Authorization") == self.expected_auth

    async def all_dbs(self, request: web.Request) -> web.Response:
        self.requests.append({"method": "GET", "path": request.path, "auth": request.headers.get("Authorization")})
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if not self._authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        if not self.available:
            return web.json_response({"error": "unavailable"}, status=503)
        return web.json_response(sorted(self.databases))

    async def _store(self, request: web.Request, doc_id: Optional[str]) -> web.Response:
        body = await request.json()
        db = request.match_info["db"]
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "body": body,
            "auth": request.headers.get("Authorization")
        })

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.push_delay:
                await asyncio.sleep(self.push_delay)
        finally:
            self.in_flight -= 1

        if not self._authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        if db not in self.databases:
            return web.json_response({"error": "not_found"}, status=404)
        if body.get("local_id") in self.fail_local_ids:
            return web.json_response({"error": "internal"}, status=500)

        if doc_id is None:
            self._counter += 1
            doc_id = f"remote-{self._counter}"
        elif doc_id in self.databases[db]:
            return web.json_response({"error": "conflict"}, status=409)

        self.databases[db][doc_id] = body
        return web.json_response({"ok": True, "id": doc_id, "rev": "1-abc"}, status=201)

    async def create(self, request: web.Request) -> web.Response:
        return await self._store(request, None)

    async def put(self, request: web.Request) -> web.Response:
        return await self._store(request, request.match_info["doc_id"])


@pytest.fixture(autouse=True, scope="session")
def _logging():
    setup_logging(log_level="DEBUG", log_format="console", log_file=None)


@pytest.fixture
def fake_couch():
    return FakeCouchDB()


@pytest.fixture
async def remote_server(fake_couch):
    """Start the fake remote store; yields its base URL."""
    server = TestServer(fake_couch.app())
    await server.start_server()
    yield str(server.make_url("")).rstrip("/")
    await server.close()


def make_settings(base_url: str = "http://127.0.0.1:9", **remote_overrides) -> AppSettings:
    remote = RemoteSettings(
        base_url=base_url,
        username=USERNAME,
        password=PASSWORD,
        probe_timeout_seconds=2.0,
        push_timeout_seconds=2.0,
        **remote_overrides
    )
    return AppSettings(
        storage=StorageSettings(url="sqlite:///:memory:"),
        remote=remote,
        logging=LoggingSettings(file_path=None)
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite:///:memory:")
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def store(db_manager):
    return LocalStore(db_manager)


def make_prober(online: bool = True, probe_result: Optional[bool] = None) -> Mock:
    """Prober double; ``probe`` sets ``is_online`` to its result."""
    prober = Mock(spec=ConnectivityProber)
    prober.is_online = online
    result = online if probe_result is None else probe_result

    async def probe():
        prober.is_online = result
        return result

    prober.probe = AsyncMock(side_effect=probe)
    return prober


def make_pusher(fail_ids: Optional[Set[str]] = None) -> Mock:
    """Pusher double that succeeds except for the given ids."""
    fail_ids = fail_ids if fail_ids is not None else set()
    pusher = Mock(spec=DocumentPusher)

    async def push(document, remote_collection):
        if document.id in fail_ids:
            return False
        document.synced = True
        return True

    pusher.push = AsyncMock(side_effect=push)
    return pusher


@pytest.fixture
def prober():
    return make_prober(online=True)


@pytest.fixture
def pusher():
    return make_pusher()


@pytest.fixture
async def engine(settings, db_manager, prober, pusher):
    """Engine wired to in-memory storage and remote doubles."""
    field_engine = FieldSyncEngine(
        settings=settings,
        db_manager=db_manager,
        prober=prober,
        pusher=pusher
    )
    await field_engine.start(probe=False)
    yield field_engine
    await field_engine.remote.close()


def milda_payload(household_head: str = "Aminata Diallo", net_count: int = 3) -> Dict[str, Any]:
    return {
        "household_head": household_head,
        "national_id": "1234567890",
        "contact": "+222 22 33 44 55",
        "net_count": net_count,
        "distribution_center": "Rosso Centre",
        "distributor": "M. Ba",
        "distribution_date": "12/03/2025",
        "gps_photo": {
            "location": {"latitude": 16.5123, "longitude": -15.8034},
            "administrative_location": {
                "country": "Mauritanie",
                "region": "Trarza",
                "department": "Rosso",
                "commune": "Rosso"
            },
            "photo": "file:///photos/house_1.jpg"
        }
    }


def medicine_payload(household_head: str = "Oumar Sy") -> Dict[str, Any]:
    return {
        "household_head": household_head,
        "medicine_type": "ACT",
        "quantity": 2,
        "distribution_center": "Aleg",
        "distributor": "F. Kane"
    }


def gps_photo_payload(latitude: float = 16.2, longitude: float = -15.3) -> Dict[str, Any]:
    return {
        "location": {"latitude": latitude, "longitude": longitude},
        "administrative_location": {"country": "Sénégal", "region": "Saint-Louis"},
        "photo": "file:///photos/site.jpg",
        "extensions": {"altitude_m": 7}
    }
