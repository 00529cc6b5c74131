"""
Recognition engine wrapper for Schedule OCR.

Wraps Tesseract (through pytesseract) as an explicitly owned resource: the
engine is acquired when a `with` block is entered and released when it is
left, whether or not the block failed.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np
import pytesseract
from PIL import Image

from .errors import RecognitionFailure
from .utils import BoundingBox, OCRWord, RecognitionResult

logger = logging.getLogger(__name__)

DEFAULT_LANG = "deu"
DEFAULT_WHITELIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyzäöüÄÖÜß"
    ".-_0123456789:()' "
)


class OCREngine:
    """Scoped Tesseract handle."""

    def __init__(
        self,
        lang: str = DEFAULT_LANG,
        char_whitelist: Optional[str] = DEFAULT_WHITELIST,
        timeout: Optional[float] = None,
        psm: int = 6
    ):
        """
        Args:
            lang: Tesseract language model
            char_whitelist: Restrict recognised characters (None: no restriction)
            timeout: Seconds before a recognition call is aborted (None: wait forever)
            psm: Tesseract page segmentation mode
        """
        self.lang = lang
        self.char_whitelist = char_whitelist
        self.timeout = timeout
        self.psm = psm
        self.engine = None

    def __enter__(self) -> 'OCREngine':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> None:
        """Acquire the engine and check the binary and language are present."""
        if self.engine is not None:
            return

        try:
            version = pytesseract.get_tesseract_version()
            languages = pytesseract.get_languages(config="")
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionFailure("Tesseract is not installed or not on PATH") from e
        except (pytesseract.TesseractError, OSError) as e:
            raise RecognitionFailure(f"Tesseract could not be started: {e}") from e

        if self.lang not in languages:
            raise RecognitionFailure(
                f"Tesseract language '{self.lang}' not installed (have: {', '.join(languages)})"
            )

        self.engine = pytesseract
        logger.info("Initialized Tesseract %s (lang=%s)", version, self.lang)

    def close(self) -> None:
        if self.engine is not None:
            logger.debug("Released Tesseract handle")
        self.engine = None

    def _config(self) -> str:
        config = f"--psm {self.psm}"
        if self.char_whitelist:
            config += f' -c tessedit_char_whitelist="{self.char_whitelist}"'
        return config

    def recognize(self, image: np.ndarray) -> RecognitionResult:
        """
        Recognise an image.

        Args:
            image: Binary (H, W) or RGBA/RGB pixel buffer

        Returns:
            RecognitionResult with line-structured text and per-word metadata

        Raises:
            RecognitionFailure: If the engine is not open, fails or times out
        """
        if self.engine is None:
            raise RecognitionFailure("Recognition engine used outside its scope")

        try:
            data = self.engine.image_to_data(
                Image.fromarray(image),
                lang=self.lang,
                config=self._config(),
                output_type=self.engine.Output.DICT,
                timeout=self.timeout or 0
            )
        except pytesseract.TesseractError as e:
            raise RecognitionFailure(f"Tesseract error: {e}") from e
        except RuntimeError as e:
            # pytesseract signals timeouts with a bare RuntimeError
            raise RecognitionFailure(f"Tesseract timed out: {e}") from e

        return self.parse_data(data)

    @staticmethod
    def parse_data(data: Dict[str, List]) -> RecognitionResult:
        """Build a RecognitionResult from pytesseract's image_to_data dict."""
        words = []
        lines: "OrderedDict[tuple, List[str]]" = OrderedDict()

        for i, text in enumerate(data.get("text", [])):
            text = (text or "").strip()
            conf = float(data["conf"][i])
            if not text or conf < 0:
                continue

            words.append(OCRWord(
                text=text,
                confidence=conf,
                bbox=BoundingBox(
                    x=int(data["left"][i]),
                    y=int(data["top"][i]),
                    width=int(data["width"][i]),
                    height=int(data["height"][i])
                )
            ))

            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(text)

        full_text = "\n".join(" ".join(tokens) for tokens in lines.values())
        confidence = float(np.mean([w.confidence for w in words])) if words else 0.0

        return RecognitionResult(text=full_text, words=words, confidence=confidence)
