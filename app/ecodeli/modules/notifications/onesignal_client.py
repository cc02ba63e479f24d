from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any


class OneSignalError(RuntimeError):
    pass


@dataclass(frozen=True)
class OneSignalClient:
    app_id: str
    api_key: str
    base_url: str = "https://onesignal.com/api/v1"
    timeout_seconds: int = 15

    def is_configured(self) -> bool:
        return bool(self.app_id and self.api_key)

    def request_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        body = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(url, data=body, method="POST")
        req.add_header("Authorization", f"Basic {self.api_key}")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                err_body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                err_body = ""
            raise OneSignalError(f"HTTP {e.code} from OneSignal: {err_body[:300]}") from e
        except (urllib.error.URLError, OSError) as e:
            raise OneSignalError(f"OneSignal request failed: {e}") from e
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise OneSignalError(f"Invalid JSON from OneSignal ({path})") from e

    def send_to_users(self, user_ids: list[str], *, title: str, message: str, data: dict[str, Any] | None = None, url: str | None = None) -> str | None:
        """Push to users registered under their external user id. Returns the OneSignal notification id."""
        if not self.is_configured():
            raise OneSignalError("OneSignal is not configured")
        payload: dict[str, Any] = {
            "app_id": self.app_id,
            "include_external_user_ids": [str(u) for u in user_ids],
            "headings": {"en": title},
            "contents": {"en": message},
            "data": data or {},
        }
        if url:
            payload["web_url"] = url
        j = self.request_json("/notifications", payload)
        return j.get("id") if isinstance(j, dict) else None
