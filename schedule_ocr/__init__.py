"""
Schedule OCR
Turns a photographed printed weekly schedule into calendar appointments.
"""

__version__ = '0.1.0'

from schedule_ocr.core import *  # noqa: F401,F403
from schedule_ocr.core import __all__
