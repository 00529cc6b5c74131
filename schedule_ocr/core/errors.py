"""
Error taxonomy for Schedule OCR.

Fatal errors derive from ScheduleOCRError. QualityRejected and ParseSkip are
signals rather than failures: the first carries the reasons an image was
refused, the second tells the parser to drop a single line.
"""

from typing import List, Optional


class ScheduleOCRError(Exception):
    """Base class for all Schedule OCR errors."""


class ImageDecodeError(ScheduleOCRError):
    """The image could not be decoded or is not a usable pixel buffer."""


class RecognitionFailure(ScheduleOCRError):
    """The recognition engine failed, timed out or is unavailable."""


class DictionaryConfigError(ScheduleOCRError):
    """The dictionary configuration is missing or malformed."""


class QualityRejected(Exception):
    """Raised by strict pipelines when every image failed the quality gate."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("Image quality issues: " + ", ".join(self.issues))


class ParseSkip(Exception):
    """A single line could not be parsed and is dropped."""

    def __init__(self, line: str, reason: Optional[str] = None):
        self.line = line
        self.reason = reason or "unparsable"
        super().__init__(f"{self.reason}: {line!r}")
