"""Backend API Client

Thin ``requests`` wrapper around the inventory backend's JSON API.

Every response is expected in the envelope ``{"success", "message", "data"}``.
Non-2xx answers raise :class:`ApiError` carrying the HTTP status; transport
failures raise ``ApiError(0, "Network error occurred")``; bodies that are not
the expected envelope raise :class:`MalformedResponseError`.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

import requests

from purchase_flow.services.config_service import ConfigService

logger = logging.getLogger(__name__)

HTTP_ERROR_MESSAGES: Dict[int, str] = {
    400: "Invalid request data. Please check your inputs and try again.",
    401: "Your session has expired. Please log in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "Conflict detected. The data may have been changed by another user.",
    422: "Validation failed. Please check your data and try again.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "Server error. Please try again in a few moments.",
    502: "Service temporarily unavailable. Please try again.",
    503: "Service under maintenance. Please try again later.",
    504: "Request timeout. Please check your connection and try again.",
}

NETWORK_ERROR_MESSAGE = "Network error occurred"


class ApiError(Exception):
    """Backend call failed. ``status`` is 0 when the server was not reached."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    @property
    def friendly_message(self) -> str:
        if self.status == 0:
            return NETWORK_ERROR_MESSAGE
        return HTTP_ERROR_MESSAGES.get(self.status, self.message or "Request failed")


class MalformedResponseError(ApiError):
    """The backend answered, but not with the documented envelope."""

    def __init__(self, status: int, message: str = "Unexpected response from server"):
        super().__init__(status, message)


class ApiClient:
    """Session-backed JSON client for the inventory backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        config_service: Optional[ConfigService] = None,
    ):
        config = config_service or ConfigService()
        self.base_url = (base_url or config.get_api_base_url()).rstrip("/")
        self.token = token if token is not None else config.get_api_token()
        self.timeout = timeout if timeout is not None else config.get_timeout()
        self.session = session or requests.Session()

    def get(self, endpoint: str, **kwargs: Any) -> Any:
        return self.request("GET", endpoint, **kwargs)

    def post(self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Any:
        return self.request("POST", endpoint, json=data, **kwargs)

    def delete(self, endpoint: str, **kwargs: Any) -> Any:
        return self.request("DELETE", endpoint, **kwargs)

    def request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Issue one request and return the envelope's ``data`` member
        (or the whole body when the server answers without an envelope).

        Raises:
            ApiError: non-2xx status or transport failure
            MalformedResponseError: body is not a JSON envelope
        """
        request_id = uuid.uuid4().hex[:8]
        url = f"{self.base_url}{endpoint}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        headers.update(kwargs.pop("headers", {}) or {})

        logger.debug("[ApiClient:%s] %s %s", request_id, method, url)
        started = time.monotonic()
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            logger.warning("[ApiClient:%s] %s %s failed: %s", request_id, method, url, exc)
            raise ApiError(0, NETWORK_ERROR_MESSAGE) from exc

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "[ApiClient:%s] %s %s -> %s (%dms)",
            request_id, method, url, response.status_code, elapsed_ms,
        )

        try:
            body = response.json() if response.content else {}
        except ValueError as exc:
            if not response.ok:
                raise ApiError(response.status_code, response.reason or "Request failed") from exc
            raise MalformedResponseError(response.status_code) from exc

        if not isinstance(body, dict):
            if not response.ok:
                raise ApiError(response.status_code, response.reason or "Request failed")
            raise MalformedResponseError(response.status_code)

        if not response.ok:
            message = body.get("message") or body.get("error") or "Request failed"
            raise ApiError(response.status_code, message)

        if body.get("success") is False:
            raise ApiError(response.status_code, body.get("message") or "Request failed")

        # Some handlers answer with the bare resource instead of the envelope.
        return body["data"] if "data" in body else body
