"""
Utility functions and data classes for Schedule OCR.

Contains shared data structures, pixel-buffer helpers, file I/O and logging
configuration.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Optional, Tuple, Any, Set

import cv2
import numpy as np

from .errors import ImageDecodeError


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class BoundingBox:
    """Top-left anchored box of a recognised word."""
    x: int
    y: int
    width: int = 0
    height: int = 0


@dataclass
class OCRWord:
    """A single word reported by the recognition engine."""
    text: str
    confidence: float  # 0-100
    bbox: BoundingBox


@dataclass
class RecognitionResult:
    """Output of one recognition pass."""
    text: str
    words: List[OCRWord] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class QualityReport:
    """Sharpness, exposure and motion-blur metrics of a captured image."""
    sharpness_score: float
    is_sharp: bool
    brightness_score: float
    contrast_score: float
    is_good: bool
    blur_score: float
    is_not_blurred: bool
    issues: List[str] = field(default_factory=list)

    @property
    def is_acceptable(self) -> bool:
        return self.is_sharp and self.is_good and self.is_not_blurred


@dataclass
class EnhancedImage:
    """Fused binary image plus the intermediate variants it was voted from."""
    image: np.ndarray
    variants: List[Tuple[str, np.ndarray]] = field(default_factory=list)
    degraded: bool = False

    @property
    def variant_names(self) -> List[str]:
        return [name for name, _ in self.variants]


@dataclass
class WordCluster:
    """Same physical word observed in one or more recognition passes."""
    canonical_text: str
    occurrences: int = 0
    confidences: List[float] = field(default_factory=list)
    positions: List[Tuple[int, int]] = field(default_factory=list)
    text_variants: Set[str] = field(default_factory=set)
    variant_counts: Counter = field(default_factory=Counter)
    pass_ids: Set[int] = field(default_factory=set)
    corrected_text: Optional[str] = None  # set when the cluster is emitted

    @classmethod
    def from_word(cls, word: OCRWord, pass_id: int = 0) -> 'WordCluster':
        cluster = cls(canonical_text=word.text)
        cluster.add(word, pass_id)
        return cluster

    def add(self, word: OCRWord, pass_id: int = 0) -> None:
        """Record another observation of this word."""
        self.occurrences += 1
        self.pass_ids.add(pass_id)
        self.confidences.append(word.confidence)
        self.positions.append((word.bbox.x, word.bbox.y))
        self.text_variants.add(word.text)
        self.variant_counts[word.text] += 1

    @property
    def mean_confidence(self) -> float:
        return float(np.mean(self.confidences)) if self.confidences else 0.0

    @property
    def mean_x(self) -> float:
        return float(np.mean([p[0] for p in self.positions])) if self.positions else 0.0

    @property
    def mean_y(self) -> float:
        return float(np.mean([p[1] for p in self.positions])) if self.positions else 0.0

    @property
    def first_y(self) -> int:
        return self.positions[0][1] if self.positions else 0

    @property
    def text(self) -> str:
        """Emitted text: the dictionary-corrected form once available."""
        return self.corrected_text if self.corrected_text is not None else self.canonical_text

    @property
    def most_frequent_variant(self) -> str:
        if not self.variant_counts:
            return self.canonical_text
        # Counter preserves first-seen order, so ties go to the earliest variant
        return max(self.variant_counts.items(), key=lambda item: item[1])[0]


@dataclass
class Appointment:
    """A single calendar appointment extracted from a schedule line."""
    start: datetime
    end: datetime
    description: str
    location: Optional[str] = None
    organizers: List[str] = field(default_factory=list)
    raw_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "description": self.description,
            "location": self.location,
            "organizers": list(self.organizers),
            "raw_text": self.raw_text,
        }


@dataclass
class ScheduleResult:
    """Final result of running the pipeline over one capture."""
    appointments: List[Appointment] = field(default_factory=list)
    quality_reports: List[QualityReport] = field(default_factory=list)
    rejected_issues: List[str] = field(default_factory=list)
    text: str = ""
    images_processed: int = 0
    images_used: int = 0
    degraded_enhancement: bool = False

    @property
    def rejected(self) -> bool:
        return self.images_used == 0 and bool(self.rejected_issues)


# =============================================================================
# Pixel Buffer Helpers
# =============================================================================

MIN_IMAGE_SIDE = 3


def as_pixel_buffer(image: Any) -> np.ndarray:
    """
    Validate an image and return it as an (H, W, 4) uint8 RGBA array.

    Grayscale and RGB arrays are expanded. Anything that is not a usable
    decoded bitmap raises ImageDecodeError.
    """
    if image is None:
        raise ImageDecodeError("No image data")
    if not isinstance(image, np.ndarray):
        raise ImageDecodeError(f"Expected a numpy array, got {type(image).__name__}")
    if image.dtype != np.uint8:
        raise ImageDecodeError(f"Expected uint8 pixels, got {image.dtype}")

    if image.ndim == 2:
        image = np.dstack([image, image, image, np.full_like(image, 255)])
    elif image.ndim == 3 and image.shape[2] == 3:
        alpha = np.full(image.shape[:2], 255, dtype=np.uint8)
        image = np.dstack([image, alpha])
    elif not (image.ndim == 3 and image.shape[2] == 4):
        raise ImageDecodeError(f"Unsupported image shape {image.shape}")

    h, w = image.shape[:2]
    if h < MIN_IMAGE_SIDE or w < MIN_IMAGE_SIDE:
        raise ImageDecodeError(f"Image too small ({w}x{h})")

    return image


def luminance(image: np.ndarray) -> np.ndarray:
    """Per-pixel luminance (0.299R + 0.587G + 0.114B) as float64."""
    rgb = image[..., :3].astype(np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


# =============================================================================
# File I/O Utilities
# =============================================================================

def load_image(path: str) -> np.ndarray:
    """
    Decode an image file into an RGBA pixel buffer.

    Raises:
        ImageDecodeError: If the file is missing or cannot be decoded
    """
    image_path = Path(path)
    if not image_path.is_file():
        raise ImageDecodeError(f"Image not found: {image_path}")

    image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError(f"Could not decode image: {image_path}")

    return as_pixel_buffer(cv2.cvtColor(image, cv2.COLOR_BGR2RGBA))


def save_appointments(appointments: List[Appointment], out_path: Path) -> None:
    """Save appointments to a JSON file."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(
            [appointment.to_dict() for appointment in appointments],
            f, ensure_ascii=False, indent=2
        )


def save_variants(enhanced: EnhancedImage, out_dir: Path, stem: str = "capture") -> List[Path]:
    """Write every enhancement variant and the fused result as PNG files."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name, variant in enhanced.variants:
        path = out_dir / f"{stem}_{name}.png"
        cv2.imwrite(str(path), variant)
        written.append(path)

    fused = enhanced.image
    if fused.ndim == 3 and fused.shape[2] == 4:
        fused = cv2.cvtColor(fused, cv2.COLOR_RGBA2BGRA)
    path = out_dir / f"{stem}_final.png"
    cv2.imwrite(str(path), fused)
    written.append(path)

    return written


# =============================================================================
# Logging
# =============================================================================

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("schedule_ocr")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
