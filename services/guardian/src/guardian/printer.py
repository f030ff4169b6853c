"""Moonraker API client and printer state polling.

Moonraker is the REST API server for Klipper firmware. The monitor only needs
two things from it: the current print state and a way to pause the print.

API Documentation: https://moonraker.readthedocs.io/en/latest/web_api/
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from common.http import build_client
from common.logging import get_logger

from .errors import (
    InvalidPrinterStateError,
    PrinterApiError,
    PrinterConnectionError,
    PrinterError,
)

LOGGER = get_logger(__name__)

PRINTING = "printing"
UNKNOWN_STATE = ""

STATUS_ENDPOINT = "/printer/objects/query?webhooks&print_stats"


@dataclass(frozen=True)
class PrinterObservation:
    """One poll of the printer's print state."""

    state: str
    state_message: str = ""
    filename: Optional[str] = None
    filament_used: float = 0.0  # millimeters
    print_duration: float = 0.0  # seconds

    @property
    def is_printing(self) -> bool:
        return self.state == PRINTING

    @classmethod
    def from_query(cls, payload: Dict[str, Any]) -> "PrinterObservation":
        status = payload["result"]["status"]
        stats = status.get("print_stats", {}) or {}
        webhooks = status.get("webhooks", {}) or {}
        return cls(
            state=str(stats.get("state") or "unknown"),
            state_message=str(webhooks.get("state_message") or ""),
            filename=stats.get("filename") or None,
            filament_used=float(stats.get("filament_used") or 0.0),
            print_duration=float(stats.get("print_duration") or 0.0),
        )


class MoonrakerClient:
    """Blocking Moonraker client.

    Configuration:
    {
        "api_url": "http://printer.local:7125",
        "api_key": "optional_api_key",  # If authentication enabled
        "timeout": 10,  # Request timeout in seconds
    }
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.client = client or build_client(
            base_url=self.api_url, api_key=api_key, timeout=timeout
        )

    def _request(self, method: str, endpoint: str) -> httpx.Response:
        url = f"{self.api_url}{endpoint}"
        try:
            response = self.client.request(method, url)
        except httpx.HTTPError as exc:
            raise PrinterConnectionError(self.api_url, str(exc)) from exc

        if not response.is_success:
            message = _error_message(response)
            if response.status_code == 400 and method == "POST":
                raise InvalidPrinterStateError(endpoint, response.status_code, message)
            raise PrinterApiError(endpoint, response.status_code, message)
        return response

    def query_status(self) -> PrinterObservation:
        """Get the current print state.

        Raises:
            PrinterConnectionError: If Moonraker is unreachable
            PrinterApiError: If Moonraker returns an error or malformed payload
        """
        response = self._request("GET", STATUS_ENDPOINT)
        try:
            return PrinterObservation.from_query(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise PrinterApiError(
                STATUS_ENDPOINT, response.status_code, f"malformed status payload: {exc}"
            ) from exc

    def pause_print(self) -> None:
        """Pause current print."""
        self._request("POST", "/printer/print/pause")
        LOGGER.info("Paused print", api_url=self.api_url)

    def resume_print(self) -> None:
        """Resume paused print."""
        self._request("POST", "/printer/print/resume")
        LOGGER.info("Resumed print", api_url=self.api_url)

    def cancel_print(self) -> None:
        """Cancel current print."""
        self._request("POST", "/printer/print/cancel")
        LOGGER.info("Cancelled print", api_url=self.api_url)

    def close(self) -> None:
        self.client.close()


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if not isinstance(body, dict):
        return response.text or None
    error = body.get("error", {})
    if isinstance(error, dict):
        return error.get("message")
    return str(error) if error else None


class PrinterMonitor:
    """Poll printer state and actuate pauses for the monitor loop."""

    def __init__(self, client: MoonrakerClient):
        self.client = client

    def observe(self) -> PrinterObservation:
        """Poll the printer once; connectivity errors propagate to the caller."""
        observation = self.client.query_status()
        LOGGER.debug(
            "Observed printer state",
            state=observation.state,
            state_message=observation.state_message,
        )
        return observation

    @staticmethod
    def is_transition(previous_state: str, observation: PrinterObservation) -> bool:
        return observation.state != previous_state

    def pause(self) -> bool:
        """Pause the active print; failures are logged and reported as ``False``."""
        try:
            self.client.pause_print()
        except PrinterError as exc:
            LOGGER.error("Failed to pause print", error=str(exc))
            return False
        return True


__all__ = [
    "MoonrakerClient",
    "PRINTING",
    "PrinterMonitor",
    "PrinterObservation",
    "UNKNOWN_STATE",
]
