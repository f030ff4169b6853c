"""Camera image acquisition with retry, rotation and offline tracking.

The fetcher owns the connectivity bookkeeping for the monitor loop: how many
attempts have failed in a row, and whether the operator has already been
told that monitoring is offline. Instead of sending alerts itself it returns
the transition (offline / recovered) inside the :class:`FetchResult` and the
caller decides how to dispatch it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

import httpx

from common.http import build_client
from common.logging import get_logger

from .errors import ImageFetchError
from .sources import SourceRotator

LOGGER = get_logger(__name__)


class FetchEvent(str, Enum):
    """Connectivity transitions reported to the caller."""

    SOURCE_OFFLINE = "source_offline"
    SOURCE_RECOVERED = "source_recovered"


@dataclass
class FetchState:
    """Failure streak bookkeeping."""

    consecutive_failures: int = 0
    offline_alert_sent: bool = False


@dataclass
class FetchResult:
    """Outcome of ``fetch_with_retry``."""

    success: bool
    image: Optional[bytes] = None
    event: Optional[FetchEvent] = None
    error: Optional[str] = None
    attempts: int = 0
    source_url: Optional[str] = None


class ImageFetcher:
    """Fetch frames from one or more HTTP camera endpoints."""

    def __init__(
        self,
        sources: Sequence[str],
        max_retries: int = 15,
        retry_delay: float = 15.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize image fetcher.

        Args:
            sources: Camera URLs, rotated round-robin per attempt
            max_retries: Consecutive failures before the source is declared offline
            retry_delay: Seconds to wait between failed attempts
            client: Optional HTTP client (tests inject a mock transport)
            sleep: Sleep function, replaceable in tests
        """
        self.rotator = SourceRotator(sources)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = client or build_client()
        self.sleep = sleep
        self.state = FetchState()

    # ========================================================================
    # Retry loop
    # ========================================================================

    def fetch_with_retry(self) -> FetchResult:
        """Fetch one frame, retrying with a fixed delay.

        Failures keep accumulating across calls until a success resets them,
        so once the maximum has been reached each further call makes a single
        attempt and returns immediately; the caller owns the outer backoff.
        """
        attempts = 0
        while True:
            attempts += 1
            index, url = self.rotator.next()
            try:
                image = self._attempt(url)
            except ImageFetchError as exc:
                self.state.consecutive_failures += 1
                LOGGER.warning(
                    "Failed to fetch image",
                    url=url,
                    source_index=index,
                    attempt=self.state.consecutive_failures,
                    error=exc.reason,
                )

                if self.state.consecutive_failures >= self.max_retries:
                    event = None
                    if not self.state.offline_alert_sent:
                        self.state.offline_alert_sent = True
                        event = FetchEvent.SOURCE_OFFLINE
                    return FetchResult(
                        success=False,
                        event=event,
                        error=f"Failed to fetch image after {self.max_retries} retries",
                        attempts=attempts,
                        source_url=url,
                    )

                LOGGER.info("Retrying image fetch", delay_seconds=self.retry_delay)
                self.sleep(self.retry_delay)
                continue

            event = None
            if self.state.offline_alert_sent:
                self.state.offline_alert_sent = False
                event = FetchEvent.SOURCE_RECOVERED
            self.state.consecutive_failures = 0
            return FetchResult(
                success=True,
                image=image,
                event=event,
                attempts=attempts,
                source_url=url,
            )

    # ========================================================================
    # Single attempts
    # ========================================================================

    def fetch_once(self, index: Optional[int] = None) -> bytes:
        """Make one acquisition attempt without retry bookkeeping.

        An explicit ``index`` reads that camera without moving the rotation
        cursor; otherwise the next source in rotation is used.

        Raises:
            ImageFetchError: If the attempt fails
        """
        if index is None:
            _, url = self.rotator.next()
        else:
            url = self.rotator.get(index)
        return self._attempt(url)

    def snapshot(self, index: Optional[int] = None) -> Optional[bytes]:
        """Best-effort frame for status messages; ``None`` on failure."""
        try:
            return self.fetch_once(0 if index is None else index)
        except ImageFetchError as exc:
            LOGGER.warning("Status snapshot unavailable", url=exc.url, error=exc.reason)
            return None

    def _attempt(self, url: str) -> bytes:
        try:
            response = self.client.get(url)
        except httpx.HTTPError as exc:
            raise ImageFetchError(url, f"network error: {exc}") from exc

        if not response.is_success:
            raise ImageFetchError(url, f"HTTP status {response.status_code}")

        data = response.content
        if not data:
            raise ImageFetchError(url, "empty response body")

        LOGGER.debug("Fetched image", url=url, size_bytes=len(data))
        return data

    # ========================================================================
    # State
    # ========================================================================

    @property
    def consecutive_failures(self) -> int:
        return self.state.consecutive_failures

    @property
    def is_offline(self) -> bool:
        return self.state.offline_alert_sent

    def reset_state(self) -> None:
        """Clear failure streak, offline flag and rotation cursor."""
        self.state = FetchState()
        self.rotator.reset()


__all__ = ["FetchEvent", "FetchResult", "FetchState", "ImageFetcher"]
