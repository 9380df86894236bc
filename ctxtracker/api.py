import logging
from typing import Callable, List, Optional, Tuple

import requests

from ctxtracker.config import resolve_api_base, resolve_timeout
from ctxtracker.errors import ApiError
from ctxtracker.models import RemoteContext, Session, SessionEvent, SessionSummary

logger = logging.getLogger(__name__)


class ApiClient:
    """Client for the local session tracking service"""

    def __init__(self, base_url: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or resolve_api_base()).rstrip("/")
        self.timeout = timeout or resolve_timeout()
        self.http = session or requests.Session()
        self.http.headers.update({"Content-Type": "application/json"})

    def _request(self, method: str, endpoint: str, payload: dict = None):
        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s", method, url)
        try:
            response = self.http.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise ApiError(f"API Error: {exc}") from exc

        if not response.ok:
            raise ApiError(f"API Error: {response.reason}", status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"API Error: invalid JSON from {endpoint}", status_code=response.status_code) from exc

    def _parse(self, endpoint: str, data, convert: Callable):
        """Convert a response body, treating any shape mismatch as an API error"""
        try:
            return convert(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Unexpected response from %s: %r", endpoint, data)
            raise ApiError(f"API Error: unexpected response from {endpoint}") from exc

    def create_context(self, name: str, description: Optional[str] = None) -> RemoteContext:
        data = self._request("POST", "/context", {"name": name, "description": description})
        return self._parse("/context", data, RemoteContext.from_dict)

    def start_session(self, context_id: str) -> Session:
        data = self._request("POST", "/session", {"context_id": context_id})
        return self._parse("/session", data, Session.from_dict)

    def end_session(self, session_id: int):
        self._request("POST", f"/session/{session_id}/end")

    def get_session_events(self, session_id: int) -> List[SessionEvent]:
        endpoint = f"/session/{session_id}/events"
        data = self._request("GET", endpoint) or []
        return self._parse(endpoint, data, lambda rows: [SessionEvent.from_dict(item) for item in rows])

    def generate_summary(self, session_id: int) -> SessionSummary:
        endpoint = f"/session/{session_id}/summary"
        data = self._request("GET", endpoint) or {}
        return self._parse(endpoint, data, SessionSummary.from_dict)

    def get_active_sessions(self) -> Tuple[List[Session], int]:
        """Return the active sessions and the count reported by the service"""
        data = self._request("GET", "/sessions/active") or {}

        def convert(body):
            sessions = [Session.from_dict(item) for item in body.get("active_sessions", [])]
            return sessions, int(body.get("count", len(sessions)))

        return self._parse("/sessions/active", data, convert)

    def get_contexts(self) -> List[RemoteContext]:
        data = self._request("GET", "/context/list") or []
        return self._parse("/context/list", data, lambda rows: [RemoteContext.from_dict(item) for item in rows])

    def __repr__(self):
        return f"<ApiClient base_url={self.base_url}>"
