"""
Command line interface for Schedule OCR.

Usage:
    schedule-ocr photo.jpg
    schedule-ocr shot1.jpg shot2.jpg shot3.jpg --flash --output appointments.json
    python -m schedule_ocr photo.jpg --debug-dir debug --ocr-timeout 60 -v
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .core.errors import ImageDecodeError, RecognitionFailure, DictionaryConfigError
from .core.pipeline import SchedulePipeline
from .core.recognition import DEFAULT_LANG, OCREngine
from .core.utils import configure_logging, load_image, save_appointments

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schedule-ocr",
        description="Extract appointments from photographs of a printed weekly schedule",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single photograph
  schedule-ocr photo.jpg

  # Several shots of the same page, taken with flash, exported as JSON
  schedule-ocr a.jpg b.jpg c.jpg --flash --output appointments.json

  # Keep the enhancement variants for inspection
  schedule-ocr photo.jpg --debug-dir debug
        """
    )

    parser.add_argument(
        "images", nargs="+",
        help="Image file(s) of the same schedule page"
    )
    parser.add_argument(
        "--flash", action="store_true",
        help="The photographs were taken with flash/torch"
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Process images even if they fail the quality check"
    )
    parser.add_argument(
        "--lang", "-l", default=DEFAULT_LANG,
        help=f"Tesseract language model (default: {DEFAULT_LANG})"
    )
    parser.add_argument(
        "--dictionaries", default=None,
        help="Path to a dictionaries YAML file (default: bundled)"
    )
    parser.add_argument(
        "--ocr-timeout", type=float, default=None,
        help="Seconds before a recognition call is aborted (default: no limit)"
    )
    parser.add_argument(
        "--debug-dir", default=None,
        help="Write enhancement variants and the fused image to this directory"
    )
    parser.add_argument(
        "--output", "-o", default=None,
        help="Write appointments as JSON to this file"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose output"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        images = [load_image(path) for path in args.images]

        pipeline = SchedulePipeline(
            engine_factory=lambda: OCREngine(lang=args.lang, timeout=args.ocr_timeout),
            dictionary_path=args.dictionaries,
            debug_dir=args.debug_dir,
            show_progress=len(images) > 1
        )
        result = pipeline.process(images, flash_used=args.flash, force=args.force)

    except ImageDecodeError as e:
        logger.error("%s", e)
        print(f"Error: {e}. Please provide a new image.")
        return EXIT_ERROR
    except DictionaryConfigError as e:
        logger.error("Dictionary configuration: %s", e)
        print(f"Error: {e}. Please check the dictionaries file (--dictionaries).")
        return EXIT_ERROR
    except RecognitionFailure as e:
        logger.error("Recognition failed: %s", e)
        print(f"Error: {e}. Please try again.")
        return EXIT_ERROR

    if result.rejected:
        print("Please try again. " + ", ".join(result.rejected_issues))
        return EXIT_REJECTED

    print("=" * 60)
    print("DETECTED APPOINTMENTS")
    print("=" * 60)
    print(f"Images used: {result.images_used}/{result.images_processed}")
    if result.degraded_enhancement:
        print("Warning: enhancement failed, the unprocessed image was recognised")
    print("-" * 60)

    for appointment in result.appointments:
        line = (
            f"{appointment.start:%a %d.%m.%Y %H:%M}-{appointment.end:%H:%M}  "
            f"{appointment.description}"
        )
        if appointment.location:
            line += f"  @ {appointment.location}"
        if appointment.organizers:
            line += f"  ({', '.join(appointment.organizers)})"
        print(line)

    if not result.appointments:
        print("No appointments detected.")
    print("=" * 60)

    if args.output:
        save_appointments(result.appointments, Path(args.output))
        print(f"Saved {len(result.appointments)} appointments to {args.output}")

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
