"""Notification transport for Print Guardian - Discord webhook embeds."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from .http import build_client
from .logging import get_logger

LOGGER = get_logger(__name__)

FOOTER_TEXT = "Print Guardian"


@dataclass
class Notification:
    """A single outbound message.

    ``color`` is the embed sidebar color as an RGB integer (``0xFF0000``).
    ``image`` is optional JPEG data attached to the embed as ``filename``.
    """

    title: str
    description: str
    color: int
    emoji: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    image: Optional[bytes] = None
    filename: Optional[str] = None

    def embed(self) -> Dict[str, Any]:
        embed: Dict[str, Any] = {
            "title": f"{self.emoji} {self.title}",
            "description": self.description,
            "color": self.color,
            "timestamp": self.timestamp.isoformat(),
            "footer": {"text": FOOTER_TEXT},
        }
        if self.image is not None:
            embed["image"] = {"url": f"attachment://{self.attachment_name}"}
        return embed

    @property
    def attachment_name(self) -> str:
        return self.filename or f"image_{int(self.timestamp.timestamp())}.jpg"


class NotificationService:
    """Send notifications to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        """Initialize notification service.

        Args:
            webhook_url: Discord webhook URL
            client: Optional preconfigured HTTP client (tests inject a mock transport)
            timeout: Request timeout in seconds when no client is given

        Raises:
            ValueError: If the webhook URL is not an http(s) URL
        """
        parsed = urlparse(webhook_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid webhook URL: {webhook_url!r}")

        self.webhook_url = webhook_url
        self._client = client or build_client(timeout=timeout)

    def notify(self, notification: Notification) -> bool:
        """Deliver a notification.

        Returns:
            True if the webhook accepted the message
        """
        payload = {"embeds": [notification.embed()]}
        try:
            if notification.image is None:
                response = self._client.post(self.webhook_url, json=payload)
            else:
                response = self._client.post(
                    self.webhook_url,
                    data={"payload_json": json.dumps(payload)},
                    files={
                        "files[0]": (
                            notification.attachment_name,
                            notification.image,
                            "image/jpeg",
                        )
                    },
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            LOGGER.error(
                "Webhook rejected notification",
                title=notification.title,
                status=exc.response.status_code,
            )
            return False
        except httpx.HTTPError as exc:
            LOGGER.error(
                "Failed to send notification",
                title=notification.title,
                error=str(exc),
            )
            return False

        LOGGER.debug("Sent notification", title=notification.title)
        return True

    def close(self) -> None:
        self._client.close()


__all__ = ["FOOTER_TEXT", "Notification", "NotificationService"]
