"""Print failure detection on camera frames.

The neural network is an :class:`InferenceEngine`: anything that turns image
bytes into raw candidates carrying an objectness score and a per-class
probability vector. :class:`DarknetEngine` runs the YOLO/Darknet model through
OpenCV's DNN module; :class:`DetectionPipeline` applies the objectness and
class-probability thresholds on top of whichever engine it is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import cv2
import httpx
import numpy as np

from common.http import build_client
from common.logging import get_logger

from .errors import DetectionError, ModelLoadError

LOGGER = get_logger(__name__)

# Darknet predict() defaults: pre-NMS score floor and IoU for suppression
DEFAULT_SCORE_THRESHOLD = 0.25
DEFAULT_NMS_THRESHOLD = 0.45
DEFAULT_INPUT_SIZE = (416, 416)


@dataclass(frozen=True)
class BoundingBox:
    """Box center and size, normalized to the image dimensions."""

    center_x: float
    center_y: float
    width: float
    height: float


@dataclass(frozen=True)
class Detection:
    """A print failure accepted by the pipeline."""

    label: str
    confidence: float
    bbox: BoundingBox

    @property
    def confidence_percent(self) -> float:
        return self.confidence * 100.0

    def exceeds(self, threshold: float) -> bool:
        return self.confidence > threshold


@dataclass(frozen=True)
class Candidate:
    """Raw network output for one region."""

    objectness: float
    class_probs: Sequence[float]
    bbox: BoundingBox

    def best_class(self) -> Tuple[int, float]:
        if len(self.class_probs) == 0:
            return -1, 0.0
        index = int(np.argmax(self.class_probs))
        return index, float(self.class_probs[index])


class InferenceEngine(Protocol):
    def infer(self, image: bytes) -> List[Candidate]:
        ...


# ============================================================================
# Model provisioning
# ============================================================================


def load_labels(path: Path) -> List[str]:
    """Read one class label per line."""
    try:
        labels = [line.strip() for line in Path(path).read_text().splitlines()]
    except OSError as exc:
        raise ModelLoadError(f"Failed to read labels from {path}: {exc}") from exc
    labels = [label for label in labels if label]
    if not labels:
        raise ModelLoadError(f"Labels file {path} is empty")
    return labels


def ensure_weights(
    weights_path: Path, download_url: str, client: Optional[httpx.Client] = None
) -> Path:
    """Download model weights if they don't exist locally.

    Args:
        weights_path: Local path where weights should be stored
        download_url: URL to download weights from

    Returns:
        The weights path

    Raises:
        ModelLoadError: If the download fails
    """
    weights_path = Path(weights_path)
    if weights_path.exists():
        return weights_path

    LOGGER.info("Downloading model weights", url=download_url, path=str(weights_path))
    partial_path = weights_path.with_name(weights_path.name + ".part")
    owns_client = client is None
    client = client or build_client(timeout=300.0)
    try:
        response = client.get(download_url, follow_redirects=True)
        response.raise_for_status()
        weights_path.parent.mkdir(parents=True, exist_ok=True)
        partial_path.write_bytes(response.content)
        partial_path.replace(weights_path)
    except httpx.HTTPError as exc:
        raise ModelLoadError(
            f"Failed to download model weights from {download_url}: {exc}"
        ) from exc
    except OSError as exc:
        partial_path.unlink(missing_ok=True)
        raise ModelLoadError(f"Failed to save model weights to {weights_path}: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    LOGGER.info("Downloaded model weights", size_bytes=weights_path.stat().st_size)
    return weights_path


def read_input_size(model_cfg: Path) -> Tuple[int, int]:
    """Network input ``(width, height)`` from the ``[net]`` section of a Darknet cfg."""
    width, height = DEFAULT_INPUT_SIZE
    try:
        lines = Path(model_cfg).read_text().splitlines()
    except OSError as exc:
        raise ModelLoadError(f"Failed to read model config {model_cfg}: {exc}") from exc

    for raw in lines:
        line = raw.split("#", 1)[0].strip()
        if line.startswith("[") and line != "[net]":
            break
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key == "width":
            width = int(value.strip())
        elif key == "height":
            height = int(value.strip())
    return width, height


# ============================================================================
# Darknet engine
# ============================================================================


class DarknetEngine:
    """YOLO/Darknet network executed with OpenCV DNN."""

    def __init__(
        self,
        model_cfg: Path,
        weights_path: Path,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        nms_threshold: float = DEFAULT_NMS_THRESHOLD,
    ):
        """Load the network.

        Raises:
            ModelLoadError: If the config or weights cannot be loaded
        """
        self.input_size = read_input_size(model_cfg)
        self.score_threshold = score_threshold
        self.nms_threshold = nms_threshold
        try:
            self.network = cv2.dnn.readNetFromDarknet(str(model_cfg), str(weights_path))
        except cv2.error as exc:
            raise ModelLoadError(f"Failed to load Darknet model {model_cfg}: {exc}") from exc
        self.output_names = self.network.getUnconnectedOutLayersNames()

        LOGGER.info(
            "Loaded Darknet model",
            model_cfg=str(model_cfg),
            weights=str(weights_path),
            input_size=self.input_size,
        )

    def infer(self, image: bytes) -> List[Candidate]:
        frame = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            raise DetectionError("Failed to decode frame for inference")
        frame_h, frame_w = frame.shape[:2]

        try:
            blob = cv2.dnn.blobFromImage(
                frame, 1 / 255.0, self.input_size, swapRB=True, crop=False
            )
            self.network.setInput(blob)
            outputs = self.network.forward(self.output_names)
        except cv2.error as exc:
            raise DetectionError(f"Inference failed: {exc}") from exc

        arrays = [np.asarray(out) for out in outputs]
        rows = np.vstack([arr.reshape(-1, arr.shape[-1]) for arr in arrays])
        if rows.size == 0 or rows.shape[1] <= 5:
            return []

        scores = rows[:, 5:].max(axis=1)
        rows = rows[scores > self.score_threshold]
        scores = scores[scores > self.score_threshold]
        if len(rows) == 0:
            return []

        pixel_boxes = [
            [
                int((cx - w / 2) * frame_w),
                int((cy - h / 2) * frame_h),
                int(w * frame_w),
                int(h * frame_h),
            ]
            for cx, cy, w, h in rows[:, :4]
        ]
        keep = cv2.dnn.NMSBoxes(
            pixel_boxes, scores.tolist(), self.score_threshold, self.nms_threshold
        )

        candidates = []
        for index in np.array(keep).flatten():
            row = rows[int(index)]
            candidates.append(
                Candidate(
                    objectness=float(row[4]),
                    class_probs=[float(p) for p in row[5:]],
                    bbox=BoundingBox(
                        center_x=float(row[0]),
                        center_y=float(row[1]),
                        width=float(row[2]),
                        height=float(row[3]),
                    ),
                )
            )
        return candidates


# ============================================================================
# Threshold pipeline
# ============================================================================


class DetectionPipeline:
    """Turn raw candidates into accepted detections.

    A candidate is accepted only when its objectness is strictly above
    ``objectness_threshold`` and its best class probability is strictly above
    ``class_prob_threshold``. Anything else is dropped without error.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        labels: Sequence[str],
        objectness_threshold: float = 0.5,
        class_prob_threshold: float = 0.5,
    ):
        self.engine = engine
        self.labels = list(labels)
        self.objectness_threshold = objectness_threshold
        self.class_prob_threshold = class_prob_threshold

    def run(self, image: bytes) -> List[Detection]:
        detections = []
        for candidate in self.engine.infer(image):
            detection = self.accept(candidate)
            if detection is not None:
                detections.append(detection)
        return detections

    def accept(self, candidate: Candidate) -> Optional[Detection]:
        if candidate.objectness <= self.objectness_threshold:
            return None
        class_index, prob = candidate.best_class()
        if class_index < 0 or prob <= self.class_prob_threshold:
            return None
        return Detection(label=self.label_for(class_index), confidence=prob, bbox=candidate.bbox)

    def label_for(self, class_index: int) -> str:
        if 0 <= class_index < len(self.labels):
            return self.labels[class_index]
        return f"class_{class_index}"


def significant(detections: Iterable[Detection], alert_threshold: float) -> List[Detection]:
    """Detections confident enough to escalate (strictly above the threshold)."""
    return [detection for detection in detections if detection.exceeds(alert_threshold)]


def max_confidence(detections: Iterable[Detection]) -> float:
    return max((detection.confidence for detection in detections), default=0.0)


__all__ = [
    "BoundingBox",
    "Candidate",
    "DarknetEngine",
    "Detection",
    "DetectionPipeline",
    "InferenceEngine",
    "ensure_weights",
    "load_labels",
    "max_confidence",
    "read_input_size",
    "significant",
]
