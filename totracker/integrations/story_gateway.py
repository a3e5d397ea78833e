"""
Story API Gateway: client side of /api/v1/stories.

Every outbound HTTP call made by the board views goes through this class;
views never touch ``requests`` directly.

  - Bearer token injection (token passed at construction or set later)
  - Timeout: 15 s (configurable per gateway)
  - No retries: a failed call raises StoryGatewayError and the caller
    decides (drag moves roll back, inline edits keep the local value)

Testability: pass a mock ``session`` to StoryGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 15


class StoryGatewayError(Exception):
    """Raised when a call fails at the network level or returns non-2xx.

    Attributes:
        status_code: HTTP status (None for network-level failures).
        body:        Parsed JSON error body when the server sent one.
    """

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StoryGateway:
    """Thin client for the story endpoints.

    Usage:
        gateway = StoryGateway("https://tracker.example.com", token=token)
        stories = gateway.list_stories()
        story = gateway.patch_story(story_id, {"status": "DONE"})
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, *, json_body: dict | None = None) -> dict:
        """Execute one request and return the parsed JSON body.

        Raises:
            StoryGatewayError: network failure, timeout, or non-2xx status.
        """
        url = self._url(path)
        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout as exc:
            logger.warning("Story API timed out method=%s url=%s", method, url)
            raise StoryGatewayError(f"Request timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            logger.warning("Story API network error method=%s url=%s error=%s", method, url, exc)
            raise StoryGatewayError(str(exc)[:500]) from exc
        duration_ms = int((time.perf_counter() - t0) * 1000)

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = None

        if not resp.ok:
            message = body.get("error") if isinstance(body, dict) else None
            logger.warning(
                "Story API request failed method=%s url=%s status=%d (%dms)",
                method, url, resp.status_code, duration_ms,
            )
            raise StoryGatewayError(
                message or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )

        logger.debug("Story API %s %s → %d (%dms)", method, url, resp.status_code, duration_ms)
        return body if isinstance(body, dict) else {}

    # ── Story operations ─────────────────────────────────────────────────────

    def list_stories(self) -> list[dict]:
        return self.request("GET", "/stories").get("stories", [])

    def get_story(self, story_id: str) -> dict:
        return self.request("GET", f"/stories/{story_id}")["story"]

    def create_story(self, fields: dict) -> dict:
        return self.request("POST", "/stories", json_body=fields)["story"]

    def patch_story(self, story_id: str, patch: dict) -> dict:
        return self.request("PATCH", f"/stories/{story_id}", json_body=patch)["story"]

    def delete_story(self, story_id: str) -> None:
        self.request("DELETE", f"/stories/{story_id}")

    def list_users(self) -> list[dict]:
        return self.request("GET", "/users").get("users", [])
