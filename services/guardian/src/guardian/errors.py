"""Exception hierarchy for the print monitoring service.

Configuration and model provisioning errors are fatal at startup. Everything
else is raised by an adapter, caught by the monitor loop, logged, and followed
by a fixed retry delay.
"""

from __future__ import annotations

from typing import Optional


class GuardianError(Exception):
    """Base exception for print monitoring errors."""

    pass


class ConfigError(GuardianError):
    """Missing or invalid configuration."""

    pass


class ImageFetchError(GuardianError):
    """A single image acquisition attempt failed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch image from {url}: {reason}")
        self.url = url
        self.reason = reason


class ImageProcessingError(GuardianError):
    """Image bytes could not be decoded, transformed or encoded."""

    pass


class DetectionError(GuardianError):
    """Inference failed for a frame."""

    pass


class ModelLoadError(DetectionError):
    """Model config, weights or labels could not be provisioned."""

    pass


class PrinterError(GuardianError):
    """Base class for machine-control failures."""

    pass


class PrinterConnectionError(PrinterError):
    """The control API could not be reached."""

    def __init__(self, api_url: str, reason: str):
        super().__init__(f"Failed to connect to printer API at {api_url}: {reason}")
        self.api_url = api_url
        self.reason = reason


class PrinterApiError(PrinterError):
    """The control API answered with a non-success status."""

    def __init__(self, endpoint: str, status_code: int, message: Optional[str] = None):
        detail = f": {message}" if message else ""
        super().__init__(f"Printer API error on {endpoint}: HTTP {status_code}{detail}")
        self.endpoint = endpoint
        self.status_code = status_code
        self.message = message


class InvalidPrinterStateError(PrinterApiError):
    """The requested action is not valid in the printer's current state."""

    pass


class AlertError(GuardianError):
    """The notification destination is unusable."""

    pass


__all__ = [
    "AlertError",
    "ConfigError",
    "DetectionError",
    "GuardianError",
    "ImageFetchError",
    "ImageProcessingError",
    "InvalidPrinterStateError",
    "ModelLoadError",
    "PrinterApiError",
    "PrinterConnectionError",
    "PrinterError",
]
