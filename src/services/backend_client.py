"""Client for the disaster management REST backend.

The bot only consumes this API.  Every call returns an :class:`ApiResult`
instead of raising, so conversation flows can branch on success, session
expiry (401) and transient failures without try/except scaffolding.

Idempotent GETs retry transient transport errors with exponential
backoff; POSTs are sent exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.models.conversation import MediaPayload
from src.models.disaster import DisasterReport, parse_disaster_list

logger = structlog.get_logger(__name__)

_GENERIC_ERROR: Final[str] = "An unknown error occurred while contacting the server."
_UNREACHABLE_ERROR: Final[str] = "The disaster management service is unreachable right now."

LOGIN_PATH: Final[str] = "/auth/login"
PROFILE_PATHS: Final[tuple[str, ...]] = ("/private/profile", "/auth/profile")
DASHBOARD_PATH: Final[str] = "/user/dashboard"
REPORT_PATH: Final[str] = "/user/emergency/report"
NEARBY_PATH: Final[str] = "/public/nearby"


@dataclass(frozen=True, slots=True)
class ApiResult:
    """Outcome of one backend call.

    ``status`` is ``None`` when no HTTP response was received at all.
    """

    success: bool
    data: Any = None
    error: str | None = None
    status: int | None = None

    @property
    def unauthorized(self) -> bool:
        return self.status == 401

    @property
    def transient(self) -> bool:
        """True when the failure may go away on retry (no response, or 5xx)."""
        if self.success:
            return False
        return self.status is None or self.status >= 500


def _error_message(response: httpx.Response) -> str:
    """Pull a user-facing message out of an error response.

    Only a plain string ``detail``, ``message`` or ``error`` field is
    passed through. HTML pages, plain text and structured validation
    errors map to the generic message.
    """
    try:
        body = response.json()
    except ValueError:
        return _GENERIC_ERROR

    if not isinstance(body, dict):
        return _GENERIC_ERROR
    for field in ("detail", "message", "error"):
        value = body.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()[:300]
    return _GENERIC_ERROR


class BackendClient:
    """Async client for the ``/auth``, ``/user``, ``/private`` and ``/public`` endpoints.

    Parameters
    ----------
    base_url:
        Root URL of the backend, e.g. ``http://localhost:8000``.
    timeout:
        Per-request timeout in seconds.
    max_attempts:
        Attempts for idempotent GET requests on transport errors.
    transport:
        Optional custom ``httpx`` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": "ReliefLine-Bot/1.0"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        data: dict[str, str] | None = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
        params: dict[str, Any] | None = None,
    ) -> ApiResult:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        log = logger.bind(method=method, path=path)
        try:
            response = await self._send(
                method, path, headers=headers, json=json, data=data, files=files, params=params,
            )
        except httpx.HTTPError as exc:
            log.warning("backend.request_failed", error_type=type(exc).__name__)
            return ApiResult(success=False, error=_UNREACHABLE_ERROR, status=None)

        if response.is_success:
            try:
                body = response.json() if response.content else None
            except ValueError:
                body = response.text
            log.debug("backend.request_ok", status=response.status_code)
            return ApiResult(success=True, data=body, status=response.status_code)

        error = _error_message(response)
        log.warning("backend.request_rejected", status=response.status_code)
        return ApiResult(success=False, error=error, status=response.status_code)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if method.upper() != "GET":
            return await self._client.request(method, path, **kwargs)

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        ):
            with attempt:
                return await self._client.request(method, path, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str, latitude: float, longitude: float) -> ApiResult:
        return await self.request(
            "POST",
            LOGIN_PATH,
            json={
                "email": email,
                "password": password,
                "latitude": latitude,
                "longitude": longitude,
            },
        )

    async def profile(self, token: str) -> ApiResult:
        """Fetch the caller's profile, falling back to the auth profile on 401."""
        result = await self.request("GET", PROFILE_PATHS[0], token=token)
        if result.unauthorized:
            result = await self.request("GET", PROFILE_PATHS[1], token=token)
        return result

    async def dashboard(self, token: str) -> ApiResult:
        return await self.request("GET", DASHBOARD_PATH, token=token)

    async def report_emergency(
        self,
        token: str,
        fields: dict[str, str],
        image: MediaPayload | None = None,
    ) -> ApiResult:
        """Submit an emergency report, as multipart when an image is attached."""
        if image is None:
            return await self.request("POST", REPORT_PATH, token=token, json=fields)
        return await self.request(
            "POST",
            REPORT_PATH,
            token=token,
            data=fields,
            files={"image": (image.filename, image.data, image.mime_type)},
        )

    async def nearby_disasters(self, latitude: float, longitude: float) -> tuple[ApiResult, list[DisasterReport]]:
        """Query reports near a coordinate; the list is empty unless the call succeeded."""
        result = await self.request(
            "GET", NEARBY_PATH, params={"latitude": latitude, "longitude": longitude},
        )
        if not result.success:
            return result, []
        return result, parse_disaster_list(result.data)
