"""
Image quality assessment for Schedule OCR.

Gates a captured photograph before enhancement: Sobel sharpness, percentile
brightness/contrast and directional motion blur.
"""

from typing import Tuple

import cv2
import numpy as np

from .utils import QualityReport, as_pixel_buffer, luminance


class QualityAssessor:
    """Assesses capture quality for the OCR gate."""

    def __init__(
        self,
        sharpness_threshold: float = 20.0,
        contrast_min: float = 0.35,
        brightness_min: float = 0.25,
        brightness_max: float = 0.75,
        blur_threshold: float = 15.0
    ):
        self.sharpness_threshold = sharpness_threshold
        self.contrast_min = contrast_min
        self.brightness_min = brightness_min
        self.brightness_max = brightness_max
        self.blur_threshold = blur_threshold

    def assess(self, image: np.ndarray) -> QualityReport:
        """
        Run all quality checks.

        Raises:
            ImageDecodeError: If the image is not a usable pixel buffer
        """
        image = as_pixel_buffer(image)

        sharpness_score, is_sharp = self.is_sharp(image)
        brightness_score, contrast_score, is_good = self.is_brightness_good(image)
        blur_score, is_not_blurred = self.is_motion_blur_low(image)

        issues = []
        if not is_sharp:
            issues.append("Image is unsharp")
        if not is_good:
            if brightness_score <= self.brightness_min:
                issues.append("Image is too dark")
            elif brightness_score >= self.brightness_max:
                issues.append("Image is too bright")
            else:
                issues.append("Image has low contrast")
        if not is_not_blurred:
            issues.append("Image has motion blur")

        return QualityReport(
            sharpness_score=sharpness_score,
            is_sharp=is_sharp,
            brightness_score=brightness_score,
            contrast_score=contrast_score,
            is_good=is_good,
            blur_score=blur_score,
            is_not_blurred=is_not_blurred,
            issues=issues
        )

    def is_sharp(self, image: np.ndarray) -> Tuple[float, bool]:
        """
        Mean Sobel gradient magnitude over the whole frame.

        Only interior pixels contribute, the sum is still divided by the full
        pixel count.

        Returns:
            (sharpness_score, is_sharp)
        """
        image = as_pixel_buffer(image)
        h, w = image.shape[:2]
        gray = luminance(image)

        gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)[1:-1, 1:-1]
        gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)[1:-1, 1:-1]
        total_magnitude = float(np.sqrt(gx * gx + gy * gy).sum())

        sharpness_score = total_magnitude / (w * h)
        return sharpness_score, sharpness_score > self.sharpness_threshold

    def is_brightness_good(self, image: np.ndarray) -> Tuple[float, float, bool]:
        """
        Percentile brightness and contrast from the luminance histogram.

        Returns:
            (brightness_score, contrast_score, is_good)
        """
        image = as_pixel_buffer(image)
        lum = np.clip(np.rint(luminance(image)), 0, 255).astype(np.int64)

        histogram = np.bincount(lum.ravel(), minlength=256)
        cumulative = np.cumsum(histogram)
        pixel_count = cumulative[-1]

        p5 = int(np.searchsorted(cumulative, pixel_count * 0.05, side="left"))
        p95 = int(np.searchsorted(cumulative, pixel_count * 0.95, side="left"))

        brightness_score = (p95 + p5) / 2 / 255
        contrast_score = max((p95 - p5) / 255, 0.01)

        is_good = (
            contrast_score > self.contrast_min
            and self.brightness_min < brightness_score < self.brightness_max
        )
        return brightness_score, contrast_score, is_good

    def is_motion_blur_low(self, image: np.ndarray) -> Tuple[float, bool]:
        """
        Directional blur estimate from neighbour colour differences.

        For every interior pixel the signed R, G and B differences to the
        right (resp. lower) neighbour are summed and the absolute value is
        accumulated. The weaker direction decides.

        Returns:
            (blur_score, is_not_blurred)
        """
        image = as_pixel_buffer(image)
        h, w = image.shape[:2]
        rgb = image[..., :3].astype(np.int64)

        center = rgb[1:-1, 1:-1]
        right = rgb[1:-1, 2:]
        below = rgb[2:, 1:-1]

        horizontal = np.abs((center - right).sum(axis=2)).sum()
        vertical = np.abs((center - below).sum(axis=2)).sum()

        interior = (w - 2) * (h - 2)
        blur_score = float(min(horizontal, vertical)) / interior
        return blur_score, blur_score < self.blur_threshold
