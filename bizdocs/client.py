"""
HTTP client for the business-management API.

The backend is a single PHP endpoint that dispatches on an ``?action=``
query parameter, with an optional ``table`` and ``where`` clause, JSON
bodies and a bearer token.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional
import requests
from loguru import logger
from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception_type

from .config import BizDocsConfig
from .session import SessionStore

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": "bizdocs/1.0",
}

# Actions that never change server state and are safe to repeat
READ_ONLY_ACTIONS = frozenset({"read", "check_auth", "health"})


class ApiConnectionError(Exception):
    """Raised when the API cannot be reached or does not answer in time."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class ApiResponseError(Exception):
    """Raised when the API answers with an error or an unusable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        invalid_json: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
        self.invalid_json = invalid_json


@dataclass
class ApiResponse:
    status_code: int
    payload: Any
    data: Any = None
    id: Optional[str] = None


def format_where(filter: dict) -> str:
    """
    Render a filter dict as the backend's WHERE clause.

    Strings are single-quoted with embedded quotes doubled; other values
    are written as-is. ``{"id": "a'b", "n": 3}`` -> ``id='a''b' AND n=3``
    """
    parts = []
    for key, value in filter.items():
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            parts.append(f"{key}='{escaped}'")
        elif value is None:
            parts.append(f"{key} IS NULL")
        else:
            parts.append(f"{key}={value}")
    return " AND ".join(parts)


def _payload_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("message", "error", "details"):
            value = payload.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
    return None


def _is_error_payload(payload: Any) -> bool:
    # Endpoints disagree: some answer {"status": "error"}, others {"success": false}
    if not isinstance(payload, dict):
        return False
    if str(payload.get("status", "")).lower() == "error":
        return True
    return payload.get("success") is False


class ApiClient:
    """
    HTTP client for the ``?action=`` API.

    Features:
    - Connection pooling via requests.Session
    - Bearer token from config or the persisted session
    - Retry with exponential backoff for read-only actions
    - Normalised responses across the backend's inconsistent shapes
    """

    def __init__(
        self,
        config: Optional[BizDocsConfig] = None,
        session_store: Optional[SessionStore] = None,
    ):
        self.config = config or BizDocsConfig.from_env()
        self.base_url = self.config.api_url
        self.session_store = session_store or SessionStore(self.config.session_file)
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    def _auth_headers(self) -> dict:
        token = self.config.api_token or self.session_store.token
        if not token:
            logger.debug("No API token available, request will be unauthenticated")
            return {}
        if len(token.split(".")) != 3:
            logger.warning(
                f"API token has unexpected format ({len(token.split('.'))} parts, expected 3)"
            )
        return {"Authorization": f"Bearer {token}"}

    def call(
        self,
        action: str,
        table: Optional[str] = None,
        data: Any = None,
        where: Optional[dict] = None,
        method: str = "POST",
        timeout: Optional[int] = None,
    ) -> ApiResponse:
        """
        Perform one API action.

        Args:
            action: Value of the ``action`` query parameter
            table: Target table for CRUD actions
            data: JSON body
            where: Filter rendered into the ``where`` query parameter
            method: HTTP method
            timeout: Request timeout in seconds (uses config default if not specified)

        Raises:
            ApiConnectionError: If the API cannot be reached
            ApiResponseError: If the API answers with an error
        """
        if action in READ_ONLY_ACTIONS:
            return self._send_with_retry(action, table, data, where, method, timeout)
        return self._send(action, table, data, where, method, timeout)

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=30),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(ApiConnectionError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying API request (attempt {retry_state.attempt_number})..."
        ),
    )
    def _send_with_retry(self, action, table, data, where, method, timeout) -> ApiResponse:
        return self._send(action, table, data, where, method, timeout)

    def _send(self, action, table, data, where, method, timeout) -> ApiResponse:
        timeout = timeout or self.config.request_timeout
        params = {"action": action}
        if table:
            params["table"] = table
        if where:
            params["where"] = format_where(where)

        label = f"{action}{f' on {table}' if table else ''}"
        logger.debug(f"[{method}] {label}")

        try:
            r = self.session.request(
                method,
                self.base_url,
                params=params,
                json=data,
                headers=self._auth_headers(),
                timeout=timeout,
            )
        except requests.Timeout as e:
            logger.error(f"API request {label} timed out after {timeout}s")
            raise ApiConnectionError(f"Request timeout: {e}", timed_out=True) from e
        except requests.ConnectionError as e:
            logger.error(f"Failed to connect to API at {self.base_url}: {e}")
            raise ApiConnectionError(f"Cannot connect to API: {e}") from e
        except requests.RequestException as e:
            logger.error(f"API request {label} failed: {e}")
            raise ApiConnectionError(f"Request failed: {e}") from e

        return self._parse_response(r, label)

    def _parse_response(self, r: requests.Response, label: str) -> ApiResponse:
        try:
            payload = r.json()
        except ValueError:
            body = (r.text or "")[:300]
            if not r.ok:
                raise ApiResponseError(
                    f"Server error (HTTP {r.status_code}): {body or 'no response body'}",
                    status_code=r.status_code,
                    payload=body,
                    invalid_json=True,
                )
            raise ApiResponseError(
                f"Invalid response from server: expected JSON but received: {body}",
                status_code=r.status_code,
                payload=body,
                invalid_json=True,
            )

        if not r.ok:
            if r.status_code == 401:
                logger.warning("API rejected the token, clearing session")
                self.session_store.clear()
            message = _payload_message(payload) or f"HTTP {r.status_code}"
            logger.warning(f"{label} - HTTP {r.status_code}: {message}")
            raise ApiResponseError(message, status_code=r.status_code, payload=payload)

        if _is_error_payload(payload):
            message = _payload_message(payload) or "API reported an error"
            logger.warning(f"{label} - API error: {message}")
            raise ApiResponseError(message, status_code=r.status_code, payload=payload)

        data = payload.get("data", payload) if isinstance(payload, dict) else payload
        record_id = None
        if isinstance(payload, dict) and payload.get("id") is not None:
            record_id = str(payload["id"])
        elif isinstance(data, dict) and data.get("id") is not None:
            record_id = str(data["id"])

        logger.debug(f"{label} - OK ({r.status_code})")
        return ApiResponse(status_code=r.status_code, payload=payload, data=data, id=record_id)

    def test_connection(self) -> dict:
        """
        Test connection to the API.

        Returns:
            Dict with connection status
        """
        try:
            response = self.call("health", method="GET", timeout=10)
            return {
                "status": "connected",
                "url": self.base_url,
                "http_status": response.status_code,
            }
        except (ApiConnectionError, ApiResponseError) as e:
            return {
                "status": "failed",
                "url": self.base_url,
                "error": str(e),
            }

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
