"""Slack service: operational notifications via chat.postMessage."""

import logging
from datetime import datetime, timezone
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from zona_fiscal.config import Settings, settings

logger = logging.getLogger(__name__)

NotificationType = Literal[
    "new_user", "new_payment", "upgrade", "cancellation", "failed_payment", "custom"
]

EMOJI_BY_TYPE = {
    "new_user": ":tada:",
    "new_payment": ":moneybag:",
    "upgrade": ":arrow_up:",
    "cancellation": ":cry:",
    "failed_payment": ":warning:",
}
DEFAULT_EMOJI = ":bell:"
MAX_DATA_FIELDS = 10

REQUEST_TIMEOUT_SECONDS = 10.0


class SlackNotification(BaseModel):
    type: NotificationType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=1000)
    data: dict[str, Any] | None = None
    color: str | None = None


def build_blocks(notification: SlackNotification, now: datetime | None = None) -> list[dict]:
    now = now or datetime.now(timezone.utc)
    blocks: list[dict] = [
        {"type": "header", "text": {"type": "plain_text", "text": notification.title, "emoji": True}},
        {"type": "section", "text": {"type": "mrkdwn", "text": notification.message}},
    ]

    if notification.data:
        fields = [
            {"type": "mrkdwn", "text": f"*{key}:* {value}"}
            for key, value in notification.data.items()
        ]
        blocks.append({"type": "section", "fields": fields[:MAX_DATA_FIELDS]})

    blocks.append({"type": "divider"})
    fallback = now.strftime("%d/%m/%Y %H:%M:%S")
    blocks.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"<!date^{int(now.timestamp())}^{{date_short_pretty}} às {{time}}|{fallback}>",
                }
            ],
        }
    )
    return blocks


class SlackService:
    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or settings
        self._transport = transport

    async def send(self, notification: SlackNotification) -> bool:
        """Post one notification. Returns False on any failure, never raises."""
        if not self.config.slack_enabled:
            logger.info("Slack notifications disabled; skipping %s", notification.type)
            return True

        if not self.config.slack_bot_token:
            logger.warning("SLACK_BOT_TOKEN not configured; %s not sent", notification.type)
            return False

        emoji = EMOJI_BY_TYPE.get(notification.type, DEFAULT_EMOJI)
        payload = {
            "channel": self.config.slack_channel_id,
            "text": f"{emoji} {notification.title}: {notification.message}",
            "unfurl_links": False,
            "unfurl_media": False,
        }
        blocks = build_blocks(notification)
        if notification.color:
            # The color bar only exists on attachments
            payload["attachments"] = [{"color": notification.color, "blocks": blocks}]
        else:
            payload["blocks"] = blocks

        try:
            async with httpx.AsyncClient(
                base_url=self.config.slack_api_url,
                transport=self._transport,
                timeout=REQUEST_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post(
                    "/chat.postMessage",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.slack_bot_token}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Slack notification %s failed: %s", notification.type, exc)
            return False

        try:
            ok = response.json().get("ok", False)
        except ValueError:
            ok = False

        # Slack reports most errors with HTTP 200 and ok=false
        if response.status_code >= 400 or not ok:
            logger.warning(
                "Slack rejected notification %s: status=%d body=%s",
                notification.type,
                response.status_code,
                response.text[:500],
            )
            return False
        return True

    async def notify_new_user(self, user_name: str, user_email: str, utm_source: str | None = None) -> bool:
        return await self.send(
            SlackNotification(
                type="new_user",
                title="🎉 Novo Usuário Cadastrado",
                message=f"*{user_name}* ({user_email}) acabou de se cadastrar!",
                data={"email": user_email, "source": utm_source or "direct"},
                color="good",
            )
        )
