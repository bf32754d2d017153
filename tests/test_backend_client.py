"""Tests for the disaster backend REST client using ``httpx.MockTransport``."""

from __future__ import annotations

import json

import httpx
import pytest

from src.models.conversation import MediaPayload
from src.services.backend_client import ApiResult, BackendClient


def make_client(handler, *, max_attempts: int = 2) -> BackendClient:
    return BackendClient("http://backend.test/", max_attempts=max_attempts, transport=httpx.MockTransport(handler))


class TestApiResult:
    def test_unauthorized(self) -> None:
        assert ApiResult(success=False, status=401).unauthorized is True
        assert ApiResult(success=False, status=403).unauthorized is False

    @pytest.mark.parametrize(
        ("result", "expected"),
        [
            (ApiResult(success=False, status=None), True),
            (ApiResult(success=False, status=503), True),
            (ApiResult(success=False, status=404), False),
            (ApiResult(success=True, status=200), False),
        ],
    )
    def test_transient(self, result: ApiResult, expected: bool) -> None:
        assert result.transient is expected


class TestLogin:
    async def test_posts_credentials_and_location(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "abc", "user_info": {"name": "Dana"}})

        client = make_client(handler)
        result = await client.login("a@b.org", "pw", 34.0522, -118.2437)
        await client.close()

        assert result.success and result.data["access_token"] == "abc"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/auth/login"
        assert json.loads(seen[0].content) == {
            "email": "a@b.org",
            "password": "pw",
            "latitude": 34.0522,
            "longitude": -118.2437,
        }

    async def test_error_detail_is_surfaced(self) -> None:
        client = make_client(lambda request: httpx.Response(401, json={"detail": "Invalid credentials"}))
        result = await client.login("a@b.org", "bad", 0.0, 0.0)
        await client.close()

        assert result.success is False
        assert result.status == 401
        assert result.error == "Invalid credentials"

    async def test_error_without_detail_uses_generic_message(self) -> None:
        client = make_client(lambda request: httpx.Response(500, json={"unexpected": True}))
        result = await client.login("a@b.org", "pw", 0.0, 0.0)
        await client.close()
        assert result.error == "An unknown error occurred while contacting the server."

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(
                502,
                text="<html><head><title>502 Bad Gateway</title></head><body>nginx upstream 10.0.3.7:8000</body></html>",
                headers={"Content-Type": "text/html"},
            ),
            httpx.Response(500, text="Traceback (most recent call last): ..."),
            httpx.Response(422, json={"detail": [{"type": "missing", "loc": ["body", "emergencyType"]}]}),
            httpx.Response(400, json=["bad", "request"]),
        ],
        ids=["html-page", "plain-text", "validation-list", "json-list"],
    )
    async def test_raw_error_bodies_are_not_surfaced(self, response: httpx.Response) -> None:
        client = make_client(lambda request: response)
        result = await client.login("a@b.org", "pw", 0.0, 0.0)
        await client.close()

        assert result.success is False
        assert result.error == "An unknown error occurred while contacting the server.", (
            "only plain string messages from the backend may reach the user"
        )

    async def test_message_field_is_surfaced(self) -> None:
        client = make_client(lambda request: httpx.Response(400, json={"message": " Email already registered "}))
        result = await client.login("a@b.org", "pw", 0.0, 0.0)
        await client.close()
        assert result.error == "Email already registered"

    async def test_post_is_not_retried(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler, max_attempts=3)
        result = await client.login("a@b.org", "pw", 0.0, 0.0)
        await client.close()

        assert attempts == 1, "non-idempotent requests must be sent once"
        assert result.status is None and result.transient


class TestAuthenticatedCalls:
    async def test_bearer_token_sent(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"activeDisasters": []})

        client = make_client(handler)
        await client.dashboard("tok-1")
        await client.close()

        assert seen[0].url.path == "/user/dashboard"
        assert seen[0].headers["Authorization"] == "Bearer tok-1"

    async def test_profile_falls_back_on_401(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/private/profile":
                return httpx.Response(401, json={"detail": "nope"})
            return httpx.Response(200, json={"name": "Dana"})

        client = make_client(handler)
        result = await client.profile("tok")
        await client.close()

        assert paths == ["/private/profile", "/auth/profile"]
        assert result.success and result.data == {"name": "Dana"}


class TestReportEmergency:
    FIELDS = {"emergencyType": "fire", "urgencyLevel": "high", "latitude": "1.0", "longitude": "2.0"}

    async def test_without_image_sends_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"$id": "r1"})

        client = make_client(handler)
        result = await client.report_emergency("tok", self.FIELDS)
        await client.close()

        assert result.success
        assert seen[0].url.path == "/user/emergency/report"
        assert seen[0].headers["content-type"] == "application/json"
        assert json.loads(seen[0].content) == self.FIELDS

    async def test_with_image_sends_multipart(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"$id": "r1"})

        client = make_client(handler)
        image = MediaPayload(data=b"JPEGDATA", mime_type="image/jpeg", filename="emergency_image.jpeg")
        await client.report_emergency("tok", self.FIELDS, image)
        await client.close()

        request = seen[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.content
        assert b'name="image"; filename="emergency_image.jpeg"' in body
        assert b"JPEGDATA" in body
        assert b'name="emergencyType"' in body and b"fire" in body


class TestNearbyDisasters:
    async def test_query_params_and_list_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"$id": "d1", "emergencyType": "flood", "status": "active"}])

        client = make_client(handler)
        result, reports = await client.nearby_disasters(34.5, -118.25)
        await client.close()

        assert result.success
        assert seen[0].url.params["latitude"] == "34.5"
        assert seen[0].url.params["longitude"] == "-118.25"
        assert [(r.id, r.emergency_type) for r in reports] == [("d1", "flood")]

    async def test_wrapped_shape(self) -> None:
        client = make_client(
            lambda request: httpx.Response(200, json={"disasters": [{"id": "d2", "status": "archived"}]}),
        )
        _, reports = await client.nearby_disasters(0.0, 0.0)
        await client.close()
        assert [r.id for r in reports] == ["d2"]

    async def test_get_retries_transport_errors(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=[])

        client = make_client(handler, max_attempts=2)
        result, reports = await client.nearby_disasters(0.0, 0.0)
        await client.close()

        assert attempts == 2, "idempotent GETs should be retried"
        assert result.success and reports == []

    async def test_exhausted_retries_return_transient_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler, max_attempts=2)
        result, reports = await client.nearby_disasters(0.0, 0.0)
        await client.close()

        assert result.success is False
        assert result.transient is True
        assert reports == []
