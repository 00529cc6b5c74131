"""
Image enhancement for Schedule OCR.

Renders several binarised variants of a photographed schedule, each tuned for
a different lighting situation, and fuses them by per-pixel majority vote.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .utils import EnhancedImage, as_pixel_buffer, luminance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantSpec:
    """Named parameter set for one enhancement variant."""
    name: str
    contrast: float
    brightness: float
    sharpen_amount: float
    threshold: int
    gamma: Optional[float] = None
    vignette_strength: Optional[float] = None


PRESETS: Tuple[VariantSpec, ...] = (
    VariantSpec("standard", contrast=1.3, brightness=1.05, sharpen_amount=0.5, threshold=128),
    VariantSpec("lowLight", contrast=1.5, brightness=1.35, sharpen_amount=0.6, threshold=115, gamma=0.8),
    VariantSpec("highLight", contrast=1.4, brightness=0.85, sharpen_amount=0.5, threshold=140, gamma=1.25),
    VariantSpec("shadow", contrast=1.4, brightness=1.15, sharpen_amount=0.4, threshold=122, vignette_strength=0.4),
    VariantSpec("text", contrast=1.8, brightness=1.0, sharpen_amount=1.0, threshold=128),
    VariantSpec("flashCorrection", contrast=1.2, brightness=0.9, sharpen_amount=0.3, threshold=135, vignette_strength=0.3),
)


class ImageEnhancer:
    """Multi-variant binarisation with majority-vote fusion."""

    def __init__(
        self,
        presets: Tuple[VariantSpec, ...] = PRESETS,
        low_light_cutoff: float = 0.6,
        high_light_cutoff: float = 0.4,
        sharpen_step: int = 1
    ):
        """
        Args:
            presets: Candidate variants, in output order
            low_light_cutoff: Drop `lowLight` when brightness is above this
            high_light_cutoff: Drop `highLight` when brightness is below this
            sharpen_step: Sharpen only every n-th pixel in both directions
        """
        self.presets = presets
        self.low_light_cutoff = low_light_cutoff
        self.high_light_cutoff = high_light_cutoff
        self.sharpen_step = max(1, int(sharpen_step))

    def select_variants(self, brightness_score: float, flash_used: bool) -> List[VariantSpec]:
        """Drop presets that do not suit the measured exposure."""
        selected = []
        for spec in self.presets:
            if spec.name == "lowLight" and brightness_score > self.low_light_cutoff:
                continue
            if spec.name == "highLight" and brightness_score < self.high_light_cutoff:
                continue
            if spec.name == "flashCorrection" and not flash_used:
                continue
            selected.append(spec)
        return selected

    def enhance(
        self,
        image: np.ndarray,
        brightness_score: float,
        flash_used: bool = False
    ) -> EnhancedImage:
        """
        Full enhancement pipeline.

        Any failure degrades to returning the untouched source image so that
        recognition can still make a best-effort pass.

        Args:
            image: Decoded pixel buffer
            brightness_score: QualityReport.brightness_score of the capture
            flash_used: Whether the capture was taken with the torch on

        Returns:
            EnhancedImage with fused binary image and named variants
        """
        try:
            source = as_pixel_buffer(image)
            specs = self.select_variants(brightness_score, flash_used)
            if not specs:
                raise ValueError("No enhancement variants selected")

            gray = luminance(source)
            variants = [(spec.name, self.render_variant(gray, spec)) for spec in specs]
            fused = self.majority_vote([v for _, v in variants])

            logger.info(
                "Enhanced image with %d variants: %s",
                len(variants), ", ".join(name for name, _ in variants)
            )
            return EnhancedImage(image=fused, variants=variants)

        except Exception:
            logger.warning("Image enhancement failed, using source image", exc_info=True)
            return EnhancedImage(image=image, variants=[], degraded=True)

    def render_variant(self, gray: np.ndarray, spec: VariantSpec) -> np.ndarray:
        """Render one binary variant from a luminance plane."""
        out = self._adjust_intensity(gray, spec.contrast, spec.brightness)

        if spec.vignette_strength:
            out = self._compensate_vignette(out, spec.vignette_strength)

        if spec.sharpen_amount:
            out = self._sharpen(out, spec.sharpen_amount)

        if spec.gamma:
            out = self._apply_gamma(out, spec.gamma)

        return self.binarize(out, spec.threshold)

    @staticmethod
    def majority_vote(variants: List[np.ndarray]) -> np.ndarray:
        """White where strictly more than half the variants are white."""
        if not variants:
            raise ValueError("Nothing to fuse")

        white_votes = np.zeros(variants[0].shape, dtype=np.int32)
        for variant in variants:
            white_votes += variant > 127

        fused = white_votes * 2 > len(variants)
        return np.where(fused, 255, 0).astype(np.uint8)

    @staticmethod
    def binarize(gray: np.ndarray, threshold: float) -> np.ndarray:
        return np.where(gray > threshold, 255, 0).astype(np.uint8)

    def _adjust_intensity(self, gray: np.ndarray, contrast: float, brightness: float) -> np.ndarray:
        """Scale brightness, then stretch contrast around mid-grey."""
        out = (gray * brightness - 128.0) * contrast + 128.0
        return np.clip(out, 0, 255)

    def _compensate_vignette(self, gray: np.ndarray, strength: float) -> np.ndarray:
        """Brighten pixels progressively with distance from the image centre."""
        h, w = gray.shape
        ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
        cy, cx = (h - 1) / 2, (w - 1) / 2
        dist = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
        max_dist = np.sqrt(cx ** 2 + cy ** 2) or 1.0

        gain = 1.0 + strength * (dist / max_dist) ** 2
        return np.clip(gray * gain, 0, 255)

    def _sharpen(self, gray: np.ndarray, amount: float) -> np.ndarray:
        """Unsharp-style 4-neighbour sharpening."""
        kernel = np.array([
            [0, -amount, 0],
            [-amount, 1 + 4 * amount, -amount],
            [0, -amount, 0],
        ], dtype=np.float64)
        sharpened = cv2.filter2D(gray, cv2.CV_64F, kernel, borderType=cv2.BORDER_REPLICATE)

        if self.sharpen_step > 1:
            # Coarse grid: only every n-th pixel is sharpened
            out = gray.copy()
            step = self.sharpen_step
            out[::step, ::step] = sharpened[::step, ::step]
            sharpened = out

        return np.clip(sharpened, 0, 255)

    def _apply_gamma(self, gray: np.ndarray, gamma: float) -> np.ndarray:
        return 255.0 * np.power(gray / 255.0, gamma)
