"""
Core module for Schedule OCR.

This package contains modular components for schedule processing:
- utils: Data classes, pixel-buffer helpers, file I/O and logging
- errors: Error taxonomy
- quality: Sharpness, exposure and motion-blur gate
- preprocessing: Multi-variant enhancement with majority-vote fusion
- recognition: Scoped Tesseract engine wrapper
- postprocessing: Multi-pass word reconciliation
- dictionaries: Vocabularies and fuzzy dictionary correction
- normalization: Ordered text normalisation rules
- parser: Appointment line scanner
- pipeline: End-to-end orchestration
"""

# Data classes
from .utils import (
    BoundingBox,
    OCRWord,
    RecognitionResult,
    QualityReport,
    EnhancedImage,
    WordCluster,
    Appointment,
    ScheduleResult,
)

# Helpers
from .utils import (
    as_pixel_buffer,
    load_image,
    save_appointments,
    save_variants,
    configure_logging,
)

# Errors
from .errors import (
    ScheduleOCRError,
    ImageDecodeError,
    RecognitionFailure,
    DictionaryConfigError,
    QualityRejected,
    ParseSkip,
)

# Components
from .quality import QualityAssessor
from .preprocessing import ImageEnhancer, VariantSpec, PRESETS
from .recognition import OCREngine
from .postprocessing import WordClusterer
from .dictionaries import (
    Dictionary,
    DictionaryConfig,
    DictionaryMatch,
    DictionaryMatcher,
    load_dictionaries,
)
from .normalization import NormalizationRule, SectionMarkers, TextNormalizer
from .parser import AppointmentBuilder, AppointmentParser

# Main pipeline
from .pipeline import SchedulePipeline


__all__ = [
    # Data classes
    "BoundingBox",
    "OCRWord",
    "RecognitionResult",
    "QualityReport",
    "EnhancedImage",
    "WordCluster",
    "Appointment",
    "ScheduleResult",
    # Helpers
    "as_pixel_buffer",
    "load_image",
    "save_appointments",
    "save_variants",
    "configure_logging",
    # Errors
    "ScheduleOCRError",
    "ImageDecodeError",
    "RecognitionFailure",
    "DictionaryConfigError",
    "QualityRejected",
    "ParseSkip",
    # Components
    "QualityAssessor",
    "ImageEnhancer",
    "VariantSpec",
    "PRESETS",
    "OCREngine",
    "WordClusterer",
    "Dictionary",
    "DictionaryConfig",
    "DictionaryMatch",
    "DictionaryMatcher",
    "load_dictionaries",
    "NormalizationRule",
    "SectionMarkers",
    "TextNormalizer",
    "AppointmentBuilder",
    "AppointmentParser",
    # Pipeline
    "SchedulePipeline",
]
