"""
Main pipeline for Schedule OCR.

quality gate -> enhancement -> recognition -> normalisation -> parsing

One recognition engine is opened per call and released when the call ends.
Several captures of the same page are reconciled word by word before
parsing.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from .dictionaries import DictionaryMatcher, load_dictionaries
from .errors import QualityRejected
from .normalization import SectionMarkers, TextNormalizer
from .parser import AppointmentParser
from .postprocessing import WordClusterer
from .preprocessing import ImageEnhancer
from .quality import QualityAssessor
from .recognition import OCREngine
from .utils import RecognitionResult, ScheduleResult, as_pixel_buffer, save_variants

logger = logging.getLogger(__name__)


class SchedulePipeline:
    """Turns photographs of a printed weekly schedule into appointments."""

    def __init__(
        self,
        engine_factory: Callable[[], OCREngine] = OCREngine,
        assessor: Optional[QualityAssessor] = None,
        enhancer: Optional[ImageEnhancer] = None,
        normalizer: Optional[TextNormalizer] = None,
        parser: Optional[AppointmentParser] = None,
        matcher: Optional[DictionaryMatcher] = None,
        dictionary_path: Optional[str] = None,
        debug_dir: Optional[str] = None,
        show_progress: bool = False
    ):
        config = load_dictionaries(dictionary_path)
        markers = SectionMarkers(config.section_end_markers)

        self.engine_factory = engine_factory
        self.matcher = matcher or DictionaryMatcher(config.dictionaries)
        self.assessor = assessor or QualityAssessor()
        self.enhancer = enhancer or ImageEnhancer()
        self.normalizer = normalizer or TextNormalizer(section_markers=markers, matcher=self.matcher)
        self.parser = parser or AppointmentParser(self.matcher, section_markers=markers)
        self.debug_dir = Path(debug_dir) if debug_dir else None
        self.show_progress = show_progress

    def process(
        self,
        images: Sequence[np.ndarray],
        flash_used: bool = False,
        force: bool = False,
        strict: bool = False
    ) -> ScheduleResult:
        """
        Process one or more captures of the same schedule page.

        Args:
            images: Decoded pixel buffers
            flash_used: Whether the captures were taken with the torch on
            force: Enhance and recognise images that failed the quality gate
            strict: Raise QualityRejected instead of returning a rejected result

        Returns:
            ScheduleResult with appointments sorted by start time

        Raises:
            ImageDecodeError: If an image is not a usable pixel buffer
            RecognitionFailure: If the recognition engine fails
            QualityRejected: In strict mode, when no image passed the gate
        """
        result = ScheduleResult(images_processed=len(images))

        accepted = []
        for index, image in enumerate(images):
            image = as_pixel_buffer(image)
            report = self.assessor.assess(image)
            result.quality_reports.append(report)

            logger.info(
                "Image %d: sharpness=%.1f brightness=%.2f contrast=%.2f blur=%.1f",
                index, report.sharpness_score, report.brightness_score,
                report.contrast_score, report.blur_score
            )

            if report.is_acceptable or force:
                accepted.append((index, image, report))
            else:
                logger.info("Image %d rejected: %s", index, ", ".join(report.issues))
                for issue in report.issues:
                    if issue not in result.rejected_issues:
                        result.rejected_issues.append(issue)

        if not accepted:
            if strict:
                raise QualityRejected(result.rejected_issues)
            return result

        passes: List[RecognitionResult] = []
        with self.engine_factory() as engine:
            iterator = tqdm(accepted, desc="Recognizing", disable=not self.show_progress)
            for index, image, report in iterator:
                enhanced = self.enhancer.enhance(image, report.brightness_score, flash_used)
                result.degraded_enhancement |= enhanced.degraded

                if self.debug_dir is not None:
                    save_variants(enhanced, self.debug_dir, stem=f"capture_{index:02d}")

                passes.append(engine.recognize(enhanced.image))

        result.images_used = len(passes)
        raw_text = self._combine(passes)
        result.text = self.normalizer.schedule_text(raw_text)
        result.appointments = self.parser.parse(result.text)

        logger.info(
            "Extracted %d appointments from %d image(s) (%d lines skipped)",
            len(result.appointments), result.images_used, len(self.parser.skipped_lines)
        )
        return result

    def _combine(self, passes: List[RecognitionResult]) -> str:
        """Single pass: its own text. Several: reconciled word clusters."""
        if len(passes) == 1:
            return passes[0].text

        clusterer = WordClusterer(self.matcher)
        for recognition in passes:
            clusterer.add_pass(recognition)
        return clusterer.to_text()
