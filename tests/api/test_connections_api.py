"""HTTP tests for the /api/v1/connections endpoints."""

import json
from typing import Callable

import httpx
import pytest
from sqlalchemy.exc import OperationalError

import careernet.main
from careernet.core.config import settings
from careernet.core.database import get_db
from careernet.core.logging import configure_logging
from careernet.core.security import create_access_token
from careernet.main import app

BASE = "/api/v1/connections"


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            yield http
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth() -> Callable[[int], dict]:
    def _headers(user_id: int, role: str = "employee") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}

    return _headers


class TestAuthentication:
    async def test_missing_token(self, client) -> None:
        response = await client.get(f"{BASE}/suggestions")
        assert response.status_code == 401

    async def test_garbage_token(self, client) -> None:
        response = await client.get(f"{BASE}/suggestions", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestRequestFlow:
    async def test_send_accept_remove(self, client, auth, users) -> None:
        alice, bob = users[0], users[1]

        response = await client.post(f"{BASE}/requests", json={"to_user_id": bob, "message": "Hi"}, headers=auth(alice))
        assert response.status_code == 200
        request_id = response.json()["request_id"]

        pending = (await client.get(f"{BASE}/requests/pending", headers=auth(bob))).json()
        assert [r["id"] for r in pending["requests"]] == [request_id]
        assert pending["requests"][0]["counterpart"]["id"] == alice

        sent = (await client.get(f"{BASE}/requests/sent", headers=auth(alice))).json()
        assert sent["total_count"] == 1

        response = await client.post(f"{BASE}/requests/{request_id}/accept", headers=auth(bob, "employer"))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Connection accepted"}

        status = (await client.get(f"{BASE}/status/{bob}", headers=auth(alice))).json()
        assert status["is_connected"] is True

        page = (await client.get(f"{BASE}/", headers=auth(bob))).json()
        assert page["total_count"] == 1
        assert page["connections"][0]["id"] == alice
        assert page["limit"] == 50

        response = await client.delete(f"{BASE}/{alice}", headers=auth(bob))
        assert response.status_code == 200

        response = await client.delete(f"{BASE}/{alice}", headers=auth(bob))
        assert response.status_code == 404
        assert response.json() == {"detail": "Connection not found"}

    async def test_self_request_is_400(self, client, auth, users) -> None:
        response = await client.post(f"{BASE}/requests", json={"to_user_id": users[0]}, headers=auth(users[0]))
        assert response.status_code == 400

    async def test_missing_recipient_is_400(self, client, auth, users) -> None:
        response = await client.post(f"{BASE}/requests", json={}, headers=auth(users[0]))
        assert response.status_code == 400
        assert response.json()["detail"] == "Recipient user ID is required"

    async def test_duplicate_is_409(self, client, auth, users) -> None:
        body = {"to_user_id": users[1]}
        await client.post(f"{BASE}/requests", json=body, headers=auth(users[0]))
        response = await client.post(f"{BASE}/requests", json=body, headers=auth(users[0]))
        assert response.status_code == 409

    async def test_foreign_request_looks_missing(self, client, auth, users) -> None:
        response = await client.post(f"{BASE}/requests", json={"to_user_id": users[1]}, headers=auth(users[0]))
        request_id = response.json()["request_id"]

        for action in ("accept", "reject"):
            response = await client.post(f"{BASE}/requests/{request_id}/{action}", headers=auth(users[2]))
            assert response.status_code == 404
            assert response.json() == {"detail": "Connection request not found"}

        missing = await client.post(f"{BASE}/requests/999/accept", headers=auth(users[1]))
        assert missing.json() == response.json()

    async def test_withdraw_then_reject_is_404(self, client, auth, users) -> None:
        response = await client.post(f"{BASE}/requests", json={"to_user_id": users[1]}, headers=auth(users[0]))
        request_id = response.json()["request_id"]

        response = await client.post(f"{BASE}/requests/{request_id}/withdraw", headers=auth(users[0]))
        assert response.status_code == 200
        response = await client.post(f"{BASE}/requests/{request_id}/reject", headers=auth(users[1]))
        assert response.status_code == 404

    async def test_crossed_accept_is_409(self, client, auth, users) -> None:
        a, b = users[0], users[1]
        a_to_b = (await client.post(f"{BASE}/requests", json={"to_user_id": b}, headers=auth(a))).json()["request_id"]
        b_to_a = (await client.post(f"{BASE}/requests", json={"to_user_id": a}, headers=auth(b))).json()["request_id"]

        assert (await client.post(f"{BASE}/requests/{a_to_b}/accept", headers=auth(b))).status_code == 200
        response = await client.post(f"{BASE}/requests/{b_to_a}/accept", headers=auth(a))
        assert response.status_code == 409


class TestReads:
    async def test_suggestions_respect_limit(self, client, auth, users) -> None:
        response = await client.get(f"{BASE}/suggestions", params={"limit": 3}, headers=auth(users[0]))
        assert response.status_code == 200
        ids = [s["id"] for s in response.json()["suggestions"]]
        assert len(ids) == 3
        assert users[0] not in ids

    async def test_paging_bounds(self, client, auth, users) -> None:
        response = await client.get(f"{BASE}/", params={"limit": 0}, headers=auth(users[0]))
        assert response.status_code == 422

    async def test_reconcile_counter(self, client, auth, network, users) -> None:
        await network.connect(users[0], users[1])
        await network.set_count(users[0], 9)

        response = await client.post(f"{BASE}/counters/reconcile", headers=auth(users[0]))
        assert response.json() == {"connections_count": 1, "corrected": 1}


class TestStoreFailures:
    @pytest.fixture
    def broken_db(self):
        async def failing_get_db():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
            yield  # pragma: no cover

        app.dependency_overrides[get_db] = failing_get_db

    async def test_read_is_retryable(self, client, broken_db, auth, users) -> None:
        response = await client.get(f"{BASE}/suggestions", headers=auth(users[0]))
        assert response.status_code == 503
        assert response.json()["retryable"] is True

    async def test_write_is_not_retryable(self, client, broken_db, auth, users) -> None:
        response = await client.post(f"{BASE}/requests", json={"to_user_id": users[1]}, headers=auth(users[0]))
        assert response.status_code == 503
        assert response.json()["retryable"] is False


class TestRequestContext:
    async def test_request_id_echoed(self, client, auth, users) -> None:
        response = await client.get(f"{BASE}/suggestions", headers={**auth(users[0]), "X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    async def test_request_id_generated(self, client, auth, users) -> None:
        response = await client.get(f"{BASE}/suggestions", headers=auth(users[0]))
        assert len(response.headers["X-Request-ID"]) == 32

    async def test_error_log_carries_request_context(self, client, auth, users, restore_logging, capfd) -> None:
        configure_logging(level="INFO", log_json=True, service="CareerNetAPI")

        await client.delete(f"{BASE}/{users[1]}", headers={**auth(users[0]), "X-Request-ID": "req-7"})

        events = [json.loads(line) for line in capfd.readouterr().err.splitlines() if line.startswith("{")]
        [failure] = [event for event in events if event["event"] == "request_failed"]
        assert failure["request_id"] == "req-7"
        assert failure["method"] == "DELETE"
        assert failure["path"] == f"{BASE}/{users[1]}"
        assert failure["error"] == "NotFoundError"


class TestRun:
    def test_serves_app_with_configured_address(self, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr(careernet.main.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))

        careernet.main.run()

        [(args, kwargs)] = calls
        assert args == ("careernet.main:app",)
        assert kwargs["host"] == settings.HOST
        assert kwargs["port"] == settings.PORT
