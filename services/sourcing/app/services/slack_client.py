from __future__ import annotations

from typing import Any

import httpx

from ..core.config import get_settings
from ..core.logging import get_logger


class SlackClient:
    """Incoming-webhook poster used to mirror admin SLA alerts into Slack."""

    def __init__(self, webhook_url: str | None = None) -> None:
        self._webhook_url = webhook_url or get_settings().slack_webhook_url
        self._logger = get_logger(__name__)

    def _with_retry(self, func):
        try:
            return func()
        except httpx.HTTPError:
            return func()

    def post_text(self, text: str) -> dict[str, Any]:
        if not self._webhook_url:
            self._logger.info("slack.post.dry_run", text=text)
            return {"ok": False, "dry_run": True, "text": text}

        def _call():
            with httpx.Client(timeout=10) as client:
                resp = client.post(self._webhook_url, json={"text": text})
                return {"ok": resp.status_code < 300, "status_code": resp.status_code}

        return self._with_retry(_call)
