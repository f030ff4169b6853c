"""Application-wide configuration management using Pydantic settings."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MODEL_WEIGHTS_URL = (
    "https://tsd-pub-static.s3.amazonaws.com/ml-models/model-weights-8be06cde4e.darknet"
)


class Settings(BaseSettings):
    """Print Guardian configuration.

    Every field maps to the upper-cased environment variable of the same name
    (``OBJECTNESS_THRESHOLD``, ``DISCORD_WEBHOOK``...), and a local ``.env``
    file is read as well so the compose setup and local runs share one format.
    """

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    service_name: str = "print-guardian"

    # Model provisioning
    label_file: Path = Path("./labels.txt")
    model_cfg: Path = Path("./model.cfg")
    weights_file: Path = Path("./model/model-weights.darknet")
    model_weights_url: str = MODEL_WEIGHTS_URL
    output_dir: Optional[Path] = None

    # Detection thresholds
    objectness_threshold: float = Field(0.5, ge=0.0, le=1.0)
    class_prob_threshold: float = Field(0.5, ge=0.0, le=1.0)
    alert_probability_threshold: float = Field(0.5, ge=0.0, le=1.0)

    # Acquisition / loop pacing
    max_retries: int = Field(15, ge=1)
    retry_delay_seconds: float = Field(15.0, ge=0.0)
    print_failure_threshold: int = Field(3, ge=0)
    poll_interval_seconds: float = Field(0.0, ge=0.0)
    http_timeout_seconds: float = Field(10.0, gt=0.0)

    # Cameras (comma-separated for multi-camera round robin)
    image_url: str
    status_camera_index: Optional[int] = Field(None, ge=0)
    flip_image: bool = False

    # Outbound integrations
    discord_webhook: str
    moonraker_api_url: str

    # Runtime
    ready_file: Path = Path(".ready")
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def image_urls(self) -> List[str]:
        return [url.strip() for url in self.image_url.split(",") if url.strip()]

    @model_validator(mode="after")
    def _check_camera_sources(self) -> "Settings":
        urls = self.image_urls
        if not urls:
            raise ValueError("IMAGE_URL must contain at least one camera URL")
        if self.status_camera_index is not None and self.status_camera_index >= len(urls):
            raise ValueError(
                f"STATUS_CAMERA_INDEX {self.status_camera_index} is out of range "
                f"for {len(urls)} camera(s)"
            )
        return self


__all__ = ["MODEL_WEIGHTS_URL", "Settings"]
