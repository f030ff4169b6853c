"""Operator alerts: formatting and best-effort dispatch.

This module handles the wording, colors and attachments of every alert the
monitor sends. It keeps no episode state of its own; the fetcher's offline
flag and the monitor's recorded printer state decide *whether* an alert is
due, and every method here simply reports whether delivery succeeded.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

import httpx

from common.logging import get_logger
from common.notifications import Notification, NotificationService

from .detection import Detection
from .errors import AlertError
from .fetcher import FetchEvent
from .printer import PrinterObservation

LOGGER = get_logger(__name__)

RED = 0xFF0000
GREEN = 0x00FF00
ORANGE = 0xFFA500
BLUE = 0x0099FF


class Notifier(Protocol):
    def notify(self, notification: Notification) -> bool:
        ...


def format_duration(seconds: float) -> str:
    """Render seconds as ``"{h}h {m}m {s}s"``."""
    total = int(max(seconds, 0.0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes}m {secs}s"


def _stamp(prefix: str) -> str:
    return f"{prefix}_{int(datetime.now(timezone.utc).timestamp())}.jpg"


class AlertService:
    """Send print monitoring alerts through a notifier."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    @classmethod
    def from_webhook(
        cls, webhook_url: str, client: Optional[httpx.Client] = None, timeout: float = 10.0
    ) -> "AlertService":
        try:
            service = NotificationService(webhook_url, client=client, timeout=timeout)
        except ValueError as exc:
            raise AlertError(str(exc)) from exc
        return cls(service)

    def _send(self, notification: Notification) -> bool:
        delivered = self.notifier.notify(notification)
        if delivered:
            LOGGER.info("Sent alert", title=notification.title)
        else:
            LOGGER.error("Failed to send alert", title=notification.title)
        return delivered

    # ========================================================================
    # Connectivity
    # ========================================================================

    def source_offline(self, sources: Sequence[str], max_retries: int) -> bool:
        description = (
            f"Failed to fetch image from {', '.join(sources)} after {max_retries} attempts. "
            "Print monitoring is offline!"
        )
        return self._send(
            Notification(
                title="CRITICAL: Print Monitoring Offline",
                description=description,
                color=RED,
                emoji="🚨",
            )
        )

    def source_recovered(self) -> bool:
        return self._send(
            Notification(
                title="RECOVERY: Print Monitoring Back Online",
                description="Image fetch successful after connection issues.",
                color=GREEN,
                emoji="✅",
            )
        )

    def fetch_event(self, event: FetchEvent, sources: Sequence[str], max_retries: int) -> bool:
        if event is FetchEvent.SOURCE_OFFLINE:
            return self.source_offline(sources, max_retries)
        return self.source_recovered()

    # ========================================================================
    # Detections and actuation
    # ========================================================================

    def print_failure(self, detection: Detection, annotated_image: Optional[bytes] = None) -> bool:
        bbox = detection.bbox
        description = (
            f"Detected **{detection.label}** print failure with "
            f"**{detection.confidence_percent:.2f}%** confidence\n\n"
            "**Location:**\n"
            f"• X: {bbox.center_x:.3f}\n"
            f"• Y: {bbox.center_y:.3f}\n"
            f"• Width: {bbox.width:.3f}\n"
            f"• Height: {bbox.height:.3f}"
        )
        return self._send(
            Notification(
                title="Print Failure Detected",
                description=description,
                color=ORANGE,
                emoji="⚠️",
                image=annotated_image,
                filename=_stamp("failure_detection") if annotated_image else None,
            )
        )

    def print_paused(self, failure_count: int, annotated_image: Optional[bytes] = None) -> bool:
        description = (
            f"Print has been paused after detecting {failure_count} print failures. "
            "Please check the printer."
        )
        return self._send(
            Notification(
                title="Print Paused Due to Multiple Failures",
                description=description,
                color=RED,
                emoji="🚨",
                image=annotated_image,
                filename=_stamp("print_pause") if annotated_image else None,
            )
        )

    # ========================================================================
    # Printer status
    # ========================================================================

    def printer_status(
        self, observation: PrinterObservation, image: Optional[bytes] = None
    ) -> bool:
        description = (
            f"Current file: **{observation.filename or 'Unknown'}**\n"
            f"Current printer state: **{observation.state}**\n"
            "**Print Stats:**\n"
            f"• Filament Used: {observation.filament_used / 1000.0:.2f}m\n"
            f"• Print Duration: {format_duration(observation.print_duration)}"
        )
        return self._send(
            Notification(
                title=observation.state_message or "Printer Status Update",
                description=description,
                color=BLUE,
                emoji="ℹ️",
                image=image,
                filename=_stamp("printer_status") if image else None,
            )
        )


__all__ = ["AlertService", "Notifier", "format_duration"]
