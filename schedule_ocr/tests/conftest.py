"""
Pytest configuration and shared fixtures for Schedule OCR tests.

This module provides:
- Synthetic pixel buffers with known quality metrics
- Loaded dictionaries and matcher/parser/normalizer fixtures
- A fake recognition engine so no Tesseract binary is needed

Usage:
    pytest schedule_ocr/tests/ -v
    pytest schedule_ocr/tests/test_parser.py -v
"""

from typing import List, Optional

import numpy as np
import pytest

from schedule_ocr.core.dictionaries import DictionaryMatcher, load_dictionaries
from schedule_ocr.core.normalization import SectionMarkers, TextNormalizer
from schedule_ocr.core.parser import AppointmentParser
from schedule_ocr.core.utils import BoundingBox, OCRWord, RecognitionResult


SCHEDULE_TEXT = "Mo. 01.01.2024\n08:00 09:00 C. Jordi GR Matterhorn Termin"


# =============================================================================
# Image Fixtures
# =============================================================================

def make_rgba(gray: np.ndarray) -> np.ndarray:
    """Expand a uint8 grayscale plane to an opaque RGBA buffer."""
    gray = gray.astype(np.uint8)
    return np.dstack([gray, gray, gray, np.full_like(gray, 255)])


@pytest.fixture
def uniform_image() -> np.ndarray:
    """Flat mid-grey 20x20 image: no edges, no contrast."""
    return make_rgba(np.full((20, 20), 128))


@pytest.fixture
def split_image() -> np.ndarray:
    """20x20 image, left half black, right half white: passes every check."""
    gray = np.zeros((20, 20), dtype=np.uint8)
    gray[:, 10:] = 255
    return make_rgba(gray)


@pytest.fixture
def checkerboard_image() -> np.ndarray:
    """Single-pixel checkerboard: every neighbour differs in both directions."""
    ys, xs = np.mgrid[0:20, 0:20]
    return make_rgba(np.where((xs + ys) % 2 == 0, 0, 255))


@pytest.fixture
def text_image() -> np.ndarray:
    """White page with a few black bars standing in for text lines."""
    gray = np.full((40, 60), 255, dtype=np.uint8)
    gray[8:12, 5:50] = 0
    gray[20:24, 5:35] = 0
    gray[30:34, 10:55] = 0
    return make_rgba(gray)


# =============================================================================
# Dictionary / Text Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def dictionary_config():
    return load_dictionaries()


@pytest.fixture(scope="session")
def matcher(dictionary_config) -> DictionaryMatcher:
    return DictionaryMatcher(dictionary_config.dictionaries)


@pytest.fixture(scope="session")
def section_markers(dictionary_config) -> SectionMarkers:
    return SectionMarkers(dictionary_config.section_end_markers)


@pytest.fixture
def normalizer(section_markers) -> TextNormalizer:
    return TextNormalizer(section_markers=section_markers)


@pytest.fixture
def parser(matcher, section_markers) -> AppointmentParser:
    return AppointmentParser(matcher, section_markers=section_markers)


def word(text: str, x: int, y: int, confidence: float = 90.0) -> OCRWord:
    return OCRWord(text=text, confidence=confidence, bbox=BoundingBox(x=x, y=y, width=40, height=12))


# =============================================================================
# Fake Recognition Engine
# =============================================================================

class FakeEngine:
    """Context-managed stand-in for OCREngine returning canned results."""

    def __init__(self, results: List[RecognitionResult], error: Optional[Exception] = None):
        self.results = list(results)
        self.error = error
        self.opened = False
        self.closed = False
        self.recognized: List[np.ndarray] = []

    def __enter__(self) -> 'FakeEngine':
        self.opened = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    def recognize(self, image: np.ndarray) -> RecognitionResult:
        self.recognized.append(image)
        if self.error is not None:
            raise self.error
        return self.results[(len(self.recognized) - 1) % len(self.results)]


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine([RecognitionResult(text=SCHEDULE_TEXT, confidence=90.0)])


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "pipeline: end-to-end tests running every stage with a fake engine"
    )
