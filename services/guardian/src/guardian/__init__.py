# noqa: D401
"""Print Guardian - camera based print failure detection for Klipper printers."""

from .accumulator import FailureAccumulator
from .alerts import AlertService
from .detection import BoundingBox, Candidate, Detection, DetectionPipeline
from .errors import GuardianError
from .fetcher import FetchEvent, FetchResult, ImageFetcher
from .monitor import IterationOutcome, MonitorPolicy, MonitorState, PrintGuardian
from .printer import MoonrakerClient, PrinterMonitor, PrinterObservation
from .sources import SourceRotator

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Detection
    "BoundingBox",
    "Candidate",
    "Detection",
    "DetectionPipeline",
    # Acquisition
    "FetchEvent",
    "FetchResult",
    "ImageFetcher",
    "SourceRotator",
    # Printer
    "MoonrakerClient",
    "PrinterMonitor",
    "PrinterObservation",
    # Loop
    "AlertService",
    "FailureAccumulator",
    "IterationOutcome",
    "MonitorPolicy",
    "MonitorState",
    "PrintGuardian",
    # Errors
    "GuardianError",
]
