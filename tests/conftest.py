"""Shared pytest fixtures for Print Guardian tests."""

from __future__ import annotations

from io import BytesIO
from typing import Callable, List, Union

import httpx
import pytest
from PIL import Image

REQUIRED_ENV = {
    "IMAGE_URL": "http://camera.local/frame.jpg",
    "DISCORD_WEBHOOK": "https://discord.com/api/webhooks/123/token",
    "MOONRAKER_API_URL": "http://printer.local:7125",
}

CONFIG_ENV_VARS = [
    "LABEL_FILE",
    "MODEL_CFG",
    "WEIGHTS_FILE",
    "MODEL_WEIGHTS_URL",
    "OUTPUT_DIR",
    "OBJECTNESS_THRESHOLD",
    "CLASS_PROB_THRESHOLD",
    "ALERT_PROBABILITY_THRESHOLD",
    "MAX_RETRIES",
    "RETRY_DELAY_SECONDS",
    "PRINT_FAILURE_THRESHOLD",
    "POLL_INTERVAL_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "IMAGE_URL",
    "STATUS_CAMERA_INDEX",
    "FLIP_IMAGE",
    "DISCORD_WEBHOOK",
    "MOONRAKER_API_URL",
    "READY_FILE",
]


def _gradient(width: int, height: int) -> Image.Image:
    image = Image.new("RGB", (width, height))
    image.putdata(
        [
            ((x * 40) % 256, (y * 40) % 256, ((x + y) * 20) % 256)
            for y in range(height)
            for x in range(width)
        ]
    )
    return image


@pytest.fixture
def png_bytes() -> bytes:
    """Small lossless test frame whose rows all differ."""
    buffer = BytesIO()
    _gradient(8, 6).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """Camera-like JPEG frame."""
    buffer = BytesIO()
    _gradient(64, 48).save(buffer, format="JPEG")
    return buffer.getvalue()


Outcome = Union[int, bytes, Exception]


class ScriptedEndpoint:
    """httpx MockTransport handler replaying a list of outcomes.

    ``int`` answers with that status code, ``bytes`` answers 200 with the
    bytes as body, an exception instance is raised as a transport error. The
    last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes: List[Outcome]):
        self.outcomes = list(outcomes)
        self.requests: List[httpx.Request] = []

    @property
    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, bytes):
            return httpx.Response(200, content=outcome)
        return httpx.Response(outcome)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def scripted_endpoint() -> Callable[[List[Outcome]], ScriptedEndpoint]:
    return ScriptedEndpoint


@pytest.fixture
def guardian_env(monkeypatch, tmp_path):
    """Minimal valid environment, isolated from any local .env file."""
    monkeypatch.chdir(tmp_path)
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    return dict(REQUIRED_ENV)
