from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

import requests

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class ApiClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff: float | None = None,
        token: str | None = None,
        refresh_auth: Callable[[], str | None] | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (
            base_url or os.getenv("HOLONET_API_URL") or "http://localhost:5000"
        ).rstrip("/")
        if timeout is None:
            timeout = float(os.getenv("HOLONET_API_TIMEOUT", "10"))
        self.timeout = timeout
        if max_retries is None:
            max_retries = int(os.getenv("HOLONET_API_RETRIES", "3"))
        self.max_retries = max_retries
        if backoff is None:
            backoff = float(os.getenv("HOLONET_API_BACKOFF", "0.5"))
        self.backoff = backoff
        self.token = token
        self.refresh_auth = refresh_auth
        self.session = session or requests.Session()
        self.sleep = sleep

    def list_characters(self) -> list[dict]:
        return self._request("GET", "/api/characters")

    def get_character(self, character_id: str) -> dict:
        return self._request("GET", f"/api/characters/{character_id}")

    def create_character(self, payload: dict) -> dict:
        return self._request("POST", "/api/characters", json=payload)

    def update_character(self, character_id: str, payload: dict) -> dict:
        return self._request("PUT", f"/api/characters/{character_id}", json=payload)

    def delete_character(self, character_id: str) -> None:
        self._request("DELETE", f"/api/characters/{character_id}")

    def list_campaigns(self) -> list[dict]:
        return self._request("GET", "/api/campaigns")

    def get_campaign(self, campaign_id: str) -> dict:
        return self._request("GET", f"/api/campaigns/{campaign_id}")

    def create_campaign(self, payload: dict) -> dict:
        return self._request("POST", "/api/campaigns", json=payload)

    def update_campaign(self, campaign_id: str, payload: dict) -> dict:
        return self._request("PUT", f"/api/campaigns/{campaign_id}", json=payload)

    def delete_campaign(self, campaign_id: str) -> None:
        self._request("DELETE", f"/api/campaigns/{campaign_id}")

    def create_debrief(self, campaign_id: str, session_id: str, content: dict) -> dict:
        return self._request(
            "POST",
            "/api/debriefs",
            json={"campaignId": campaign_id, "sessionId": session_id, "content": content},
        )

    def record_debrief_response(self, debrief_id: str, response: Any) -> dict:
        return self._request(
            "PUT",
            f"/api/debriefs/{debrief_id}/response",
            json={"response": response},
        )

    def get_debrief(self, debrief_id: str) -> dict:
        return self._request("GET", f"/api/debriefs/{debrief_id}")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        attempt = 0
        refreshed = False
        while True:
            try:
                response = self.session.request(
                    method,
                    url,
                    json=json,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                error = ApiError(f"{method} {path} failed: {exc}")
            else:
                if response.status_code == 401 and self.refresh_auth and not refreshed:
                    refreshed = True
                    self.token = self.refresh_auth()
                    continue
                if response.status_code < 400:
                    if response.status_code == 204 or not response.content:
                        return None
                    return response.json()
                error = ApiError(
                    f"{method} {path} returned {response.status_code}: {_detail(response)}",
                    status_code=response.status_code,
                )

            if not error.retryable or attempt >= self.max_retries:
                raise error
            delay = self.backoff * (2**attempt)
            attempt += 1
            logger.warning(
                "Retrying %s %s in %.2fs (attempt %d/%d): %s",
                method,
                path,
                delay,
                attempt,
                self.max_retries,
                error,
            )
            self.sleep(delay)


def _detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("message") or payload)
    return str(payload)
