"""The print monitoring control loop.

Each iteration runs strictly in order:

1. poll the printer state (a state change resets failure evidence and sends
   a status alert),
2. stop early unless the printer is printing,
3. fetch a frame (retry, rotation, offline/recovery alerts),
4. run detection,
5. escalate significant detections, accumulate them and pause the print
   once the failure threshold is exceeded.

All mutable loop state lives in :class:`MonitorState`; nothing is kept in
module globals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from common.config import Settings
from common.logging import get_logger

from .accumulator import FailureAccumulator
from .alerts import AlertService
from .detection import Detection, DetectionPipeline, max_confidence, significant
from .errors import DetectionError, GuardianError, ImageProcessingError, PrinterError
from .fetcher import ImageFetcher
from .imaging import annotate, transform
from .printer import UNKNOWN_STATE, PrinterMonitor, PrinterObservation

LOGGER = get_logger(__name__)


class IterationOutcome(str, Enum):
    """How a single loop iteration ended."""

    PRINTER_UNREACHABLE = "printer_unreachable"
    STATUS_ALERT_RETRY = "status_alert_retry"
    NOT_PRINTING = "not_printing"
    FETCH_FAILED = "fetch_failed"
    DETECTION_FAILED = "detection_failed"
    MONITORED = "monitored"
    PAUSED = "paused"
    PAUSE_FAILED = "pause_failed"


_FRAME_OUTCOMES = (
    IterationOutcome.MONITORED,
    IterationOutcome.PAUSED,
    IterationOutcome.PAUSE_FAILED,
)


@dataclass
class MonitorPolicy:
    """Thresholds and pacing for the loop."""

    alert_threshold: float = 0.5
    pause_threshold: int = 3
    retry_delay: float = 15.0
    poll_interval: float = 0.0
    flip_image: bool = False
    status_camera_index: Optional[int] = None
    output_dir: Optional[Path] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorPolicy":
        return cls(
            alert_threshold=settings.alert_probability_threshold,
            pause_threshold=settings.print_failure_threshold,
            retry_delay=settings.retry_delay_seconds,
            poll_interval=settings.poll_interval_seconds,
            flip_image=settings.flip_image,
            status_camera_index=settings.status_camera_index,
            output_dir=settings.output_dir,
        )


@dataclass
class MonitorState:
    """Everything the loop carries from one iteration to the next."""

    failures: FailureAccumulator = field(default_factory=FailureAccumulator)
    last_printer_state: str = UNKNOWN_STATE
    state_recorded: bool = False


class PrintGuardian:
    """Sequence printer polling, acquisition, detection and actuation."""

    def __init__(
        self,
        printer: PrinterMonitor,
        fetcher: ImageFetcher,
        pipeline: DetectionPipeline,
        alerts: AlertService,
        policy: Optional[MonitorPolicy] = None,
        state: Optional[MonitorState] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.printer = printer
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.alerts = alerts
        self.policy = policy or MonitorPolicy()
        self.state = state or MonitorState()
        self._sleep = sleep

    # ========================================================================
    # Loop
    # ========================================================================

    def run(self, iterations: Optional[int] = None) -> None:
        """Run the loop; forever unless ``iterations`` is given."""
        LOGGER.info(
            "Starting print monitoring",
            sources=len(self.fetcher.rotator),
            alert_threshold=self.policy.alert_threshold,
            pause_threshold=self.policy.pause_threshold,
        )
        completed = 0
        while iterations is None or completed < iterations:
            completed += 1
            try:
                outcome = self.run_iteration()
            except GuardianError as exc:
                LOGGER.error("Monitoring iteration failed", error=str(exc), exc_info=True)
                self._sleep(self.policy.retry_delay)
                continue
            except Exception as exc:
                LOGGER.error(
                    "Unexpected error in monitoring iteration", error=str(exc), exc_info=True
                )
                self._sleep(self.policy.retry_delay)
                continue

            if outcome in _FRAME_OUTCOMES and self.policy.poll_interval > 0:
                self._sleep(self.policy.poll_interval)

    def run_iteration(self) -> IterationOutcome:
        try:
            observation = self.printer.observe()
        except PrinterError as exc:
            LOGGER.error("Failed to get printer status", error=str(exc))
            self._sleep(self.policy.retry_delay)
            return IterationOutcome.PRINTER_UNREACHABLE

        if self.printer.is_transition(self.state.last_printer_state, observation):
            if not self._handle_transition(observation):
                self._sleep(self.policy.retry_delay)
                return IterationOutcome.STATUS_ALERT_RETRY

        if not observation.is_printing:
            LOGGER.debug("Printer not printing, skipping detection", state=observation.state)
            self._sleep(self.policy.retry_delay)
            return IterationOutcome.NOT_PRINTING

        result = self.fetcher.fetch_with_retry()
        if result.event is not None:
            self.alerts.fetch_event(
                result.event, self.fetcher.rotator.sources, self.fetcher.max_retries
            )
        if not result.success:
            LOGGER.error("Image acquisition failed", error=result.error, attempts=result.attempts)
            self._sleep(self.policy.retry_delay)
            return IterationOutcome.FETCH_FAILED

        try:
            frame = transform(result.image, self.policy.flip_image)
            detections = self.pipeline.run(frame)
        except (ImageProcessingError, DetectionError) as exc:
            LOGGER.error("Detection failed", error=str(exc), source_url=result.source_url)
            self._sleep(self.policy.retry_delay)
            return IterationOutcome.DETECTION_FAILED

        return self._process_detections(frame, detections)

    # ========================================================================
    # Printer state
    # ========================================================================

    def _handle_transition(self, observation: PrinterObservation) -> bool:
        """Reset evidence and announce a state change.

        Returns False only when the very first status alert could not be
        delivered; the state is then left unrecorded so the next iteration
        retries. Later delivery failures still advance the recorded state.
        """
        LOGGER.info(
            "Printer state changed",
            previous=self.state.last_printer_state or None,
            current=observation.state,
        )
        self.state.failures.reset()

        delivered = self.alerts.printer_status(observation, self._status_snapshot())
        if not delivered and not self.state.state_recorded:
            LOGGER.warning("Initial printer status alert failed, retrying", state=observation.state)
            return False

        self.state.last_printer_state = observation.state
        self.state.state_recorded = True
        return True

    def _status_snapshot(self) -> Optional[bytes]:
        image = self.fetcher.snapshot(self.policy.status_camera_index)
        if image is None:
            return None
        try:
            return transform(image, self.policy.flip_image)
        except ImageProcessingError as exc:
            LOGGER.warning("Failed to transform status snapshot", error=str(exc))
            return None

    # ========================================================================
    # Detections and actuation
    # ========================================================================

    def _process_detections(self, frame: bytes, detections: List[Detection]) -> IterationOutcome:
        LOGGER.info(
            "Max detection probability",
            confidence=round(max_confidence(detections), 4),
            detections=len(detections),
        )

        escalated = significant(detections, self.policy.alert_threshold)
        annotated: Optional[bytes] = None
        if escalated:
            for detection in escalated:
                self.state.failures.record()
                LOGGER.warning(
                    "Detected print failure",
                    label=detection.label,
                    confidence=round(detection.confidence, 4),
                    failure_count=self.state.failures.count,
                )
                self.alerts.print_failure(detection, self._annotate(frame, [detection]))
            annotated = self._annotate(frame, escalated)
            self._save_frame(annotated)
        else:
            LOGGER.debug("No significant print failure detected")

        if self.state.failures.exceeds(self.policy.pause_threshold):
            return self._actuate_pause(annotated)
        return IterationOutcome.MONITORED

    def _actuate_pause(self, annotated: Optional[bytes]) -> IterationOutcome:
        count = self.state.failures.count
        LOGGER.warning(
            "Failure threshold exceeded, pausing print",
            failure_count=count,
            threshold=self.policy.pause_threshold,
        )
        if not self.printer.pause():
            LOGGER.error("Pause failed, will retry on next frame", failure_count=count)
            return IterationOutcome.PAUSE_FAILED

        self.alerts.print_paused(count, annotated)
        self.state.failures.reset()
        return IterationOutcome.PAUSED

    def _annotate(self, frame: bytes, detections: List[Detection]) -> Optional[bytes]:
        try:
            return annotate(frame, detections)
        except ImageProcessingError as exc:
            LOGGER.warning("Failed to annotate frame", error=str(exc))
            return None

    def _save_frame(self, image: Optional[bytes]) -> None:
        if image is None or self.policy.output_dir is None:
            return
        path = self.policy.output_dir / f"failure_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.jpg"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image)
        except OSError as exc:
            LOGGER.warning("Failed to save annotated frame", path=str(path), error=str(exc))
            return
        LOGGER.debug("Saved annotated frame", path=str(path))


__all__ = ["IterationOutcome", "MonitorPolicy", "MonitorState", "PrintGuardian"]
