"""
Slack incoming-webhook client.

An unset webhook URL skips delivery so development setups work without Slack.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SlackMessage(BaseModel):
    text: str
    blocks: list[dict[str, Any]] = Field(default_factory=list)


class SlackClient:
    def __init__(
        self,
        webhook_url: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, message: SlackMessage) -> bool:
        """Post ``message``; True when delivered or skipped, False on a failed delivery."""
        if not self.webhook_url:
            logger.debug("SLACK_WEBHOOK_URL not set, skipping message: %s", message.text)
            return True

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=message.model_dump(exclude_defaults=True))
        except httpx.HTTPError as exc:
            logger.error("[Slack] webhook request failed: %s", exc)
            return False

        if response.is_error:
            logger.error("[Slack] webhook returned %s %s", response.status_code, response.reason_phrase)
            return False
        return True
