"""
Appointment parsing for Schedule OCR.

A line scanner with three states turns normalised schedule text into
appointments:

    SCANNING_HEADER -> IN_DAILY_SCHEDULE <-> IN_GENERAL_INFO

Date lines anchor the following appointments, time-led lines open a new
appointment and plain lines continue the open one. Location and organizer
tokens are pulled out of the description with fixed patterns and the
dictionaries.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from .dictionaries import (
    DictionaryMatcher, EXPECTED_WORDS, LOCATIONS, ORGANIZERS,
)
from .errors import ParseSkip
from .normalization import SectionMarkers, match_date_line
from .utils import Appointment

logger = logging.getLogger(__name__)


class ParserState(Enum):
    SCANNING_HEADER = "scanning_header"
    IN_DAILY_SCHEDULE = "in_daily_schedule"
    IN_GENERAL_INFO = "in_general_info"


# =============================================================================
# Patterns
# =============================================================================

TIME_PATTERN = re.compile(r'^\s*(\d{1,2}:\d{2})(?:\s*[-–]?\s*(\d{1,2}:\d{2}))?(?![\d:])')
END_TIME_PATTERN = re.compile(
    r'(?:^|\s)(?:bis\s*|[-–]\s*)?(\d{1,2}:\d{2})(?=\s|$)'
    r'|(?:^|\s)(?:bis\s*|[-–]\s*)(\d{2})(\d{2})(?=\s|$)',
    re.IGNORECASE
)
DURATION_PATTERN = re.compile(r"(?:^|\s)(\d{1,3})\s*(?:['’´`]|min\b\.?)", re.IGNORECASE)

LOCATION_PATTERNS = [
    re.compile(r'GR\s*Matterhorn', re.IGNORECASE),
    re.compile(r'Arztzimmer', re.IGNORECASE),
    re.compile(r'Schulungsraum', re.IGNORECASE),
    re.compile(r'Station\s*\d+', re.IGNORECASE),
    re.compile(r'Eingangshalle(?:\s+Hauptgebäude)?', re.IGNORECASE),
    re.compile(r'Auditorium(?:_|\s*)Go', re.IGNORECASE),
    re.compile(r'Sitzungszimmer\s+Venus', re.IGNORECASE),
    re.compile(r'Soz\.-Dienstzimmer\s*(?:\(Fr\.\s*Widmer\))?', re.IGNORECASE),
    re.compile(r'Ergotherapieraum', re.IGNORECASE),
    re.compile(
        r'TZ\s*\d+\s*(?:\(Treffpunkt\s+Eingangshalle(?:\s+Hauptgebäude)?\))?',
        re.IGNORECASE
    ),
]

ORGANIZER_PATTERN = re.compile(
    r'(?:Dr\.\s*(?:med\.\s*)?)?[A-ZÄÖÜ]\.\s*([A-ZÄÖÜ][a-zäöüß]+(?:-[A-ZÄÖÜ][a-zäöüß]+)?)'
)

DEFAULT_DURATION = timedelta(minutes=30)


# =============================================================================
# Builder
# =============================================================================

@dataclass
class AppointmentBuilder:
    """Appointment under construction; required fields are set on creation."""
    start: datetime
    end: datetime
    raw_text: str
    description_parts: List[str] = field(default_factory=list)
    location: Optional[str] = None
    organizers: List[str] = field(default_factory=list)

    def append_text(self, text: str) -> None:
        text = text.strip()
        if text:
            self.description_parts.append(text)

    def build(self) -> Appointment:
        description = re.sub(r'\s+', ' ', " ".join(self.description_parts)).strip()
        return Appointment(
            start=self.start,
            end=self.end,
            description=description,
            location=self.location,
            organizers=list(self.organizers),
            raw_text=self.raw_text
        )


# =============================================================================
# Helpers
# =============================================================================

def parse_clock(value: str) -> time:
    """Parse 'h:mm' / 'hh:mm' into a time, rejecting impossible values."""
    hours, minutes = value.split(":")
    try:
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ParseSkip(value, f"invalid time ({e})") from e


def clean_description(text: str) -> str:
    """Strip separators, empty parentheses and stray punctuation."""
    text = re.sub(r'\(\s*\)', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    text = re.sub(r'^[\s\-–—;:,.]+', '', text)
    text = re.sub(r'\s+[\-–—;:,]+\s+', ' ', text)
    # Trailing dots are kept when they end an abbreviation ("Psychoed.")
    text = re.sub(r'(?:\s+[.;]+|[\s\-–—;:,]+)$', '', text)
    return text.strip()


def _remove_span(text: str, span: Tuple[int, int]) -> str:
    return f"{text[:span[0]]} {text[span[1]:]}"


# =============================================================================
# Parser
# =============================================================================

class AppointmentParser:
    """Stateful line scanner producing appointments."""

    def __init__(
        self,
        matcher: Optional[DictionaryMatcher] = None,
        section_markers: Optional[SectionMarkers] = None,
        default_duration: timedelta = DEFAULT_DURATION
    ):
        self.matcher = matcher or DictionaryMatcher()
        self.section_markers = section_markers or SectionMarkers()
        self.default_duration = default_duration
        self.skipped_lines: List[str] = []

    def parse(self, text: str) -> List[Appointment]:
        """
        Parse normalised text into appointments sorted by start time.

        Args:
            text: Normalised text, one schedule entry per line

        Returns:
            Appointments in ascending start order (stable)
        """
        self.skipped_lines = []
        appointments: List[Appointment] = []
        state = ParserState.SCANNING_HEADER
        current_date: Optional[date] = None
        pending: Optional[AppointmentBuilder] = None

        def flush():
            nonlocal pending
            if pending is not None:
                appointments.append(pending.build())
                pending = None

        for line in (l.strip() for l in text.split("\n")):
            if not line:
                continue

            try:
                parsed_date = self._parse_date_line(line)
            except ParseSkip as skip:
                # Lines up to the next valid date have no day to anchor to
                self._skip(line, skip)
                flush()
                current_date = None
                state = ParserState.SCANNING_HEADER
                continue

            if parsed_date is not None:
                flush()
                current_date = parsed_date
                state = ParserState.IN_DAILY_SCHEDULE
                continue

            if self.section_markers.matches(line):
                flush()
                if state != ParserState.SCANNING_HEADER:
                    state = ParserState.IN_GENERAL_INFO
                continue

            if state != ParserState.IN_DAILY_SCHEDULE:
                continue

            if TIME_PATTERN.match(line):
                flush()
                try:
                    pending = self._open_appointment(line, current_date)
                except ParseSkip as skip:
                    self._skip(line, skip)
                continue

            if pending is not None:
                pending.append_text(self._correct_words(clean_description(line)))

        flush()

        # sorted() is stable, equal start times keep source order
        return sorted(appointments, key=lambda a: a.start)

    def _skip(self, line: str, skip: ParseSkip) -> None:
        logger.debug("Skipping line: %s", skip)
        self.skipped_lines.append(line)

    # -------------------------------------------------------------------------
    # Line handlers
    # -------------------------------------------------------------------------

    def _parse_date_line(self, line: str) -> Optional[date]:
        """Date of a date line, None for any other line."""
        match = match_date_line(line, self.matcher)
        if not match:
            return None

        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError as e:
            raise ParseSkip(line, f"invalid date ({e})") from e

    def _open_appointment(self, line: str, current_date: date) -> AppointmentBuilder:
        match = TIME_PATTERN.match(line)
        start = datetime.combine(current_date, parse_clock(match.group(1)))
        remaining = line[match.end():]

        end = None
        if match.group(2):
            end = self._end_after(start, parse_clock(match.group(2)))

        if end is None:
            end, remaining = self._explicit_end_time(start, remaining)

        if end is None:
            end, remaining = self._duration_end_time(start, remaining)

        if end is None:
            end = start + self.default_duration

        builder = AppointmentBuilder(start=start, end=end, raw_text=line)

        description = clean_description(remaining)
        builder.location, description = self._extract_location(description)
        builder.organizers, description = self._extract_organizers(description)
        builder.append_text(self._correct_words(clean_description(description)))

        return builder

    # -------------------------------------------------------------------------
    # End time resolution
    # -------------------------------------------------------------------------

    @staticmethod
    def _end_after(start: datetime, end_clock: time) -> Optional[datetime]:
        end = datetime.combine(start.date(), end_clock)
        return end if end > start else None

    def _explicit_end_time(self, start: datetime, text: str) -> Tuple[Optional[datetime], str]:
        for match in END_TIME_PATTERN.finditer(text):
            if match.group(1):
                value = match.group(1)
            else:
                value = f"{match.group(2)}:{match.group(3)}"

            try:
                end = self._end_after(start, parse_clock(value))
            except ParseSkip:
                continue
            if end is not None:
                return end, _remove_span(text, match.span())

        return None, text

    def _duration_end_time(self, start: datetime, text: str) -> Tuple[Optional[datetime], str]:
        match = DURATION_PATTERN.search(text)
        if not match:
            return None, text

        minutes = int(match.group(1))
        if minutes <= 0:
            return None, text
        return start + timedelta(minutes=minutes), _remove_span(text, match.span())

    # -------------------------------------------------------------------------
    # Field extraction
    # -------------------------------------------------------------------------

    def _extract_location(self, text: str) -> Tuple[Optional[str], str]:
        for pattern in LOCATION_PATTERNS:
            match = pattern.search(text)
            if match:
                location = re.sub(r'\s+', ' ', match.group(0)).strip()
                return location, _remove_span(text, match.span())

        for token in re.finditer(r'\S+', text):
            word = token.group(0).strip(",;:")
            found = self.matcher.match(word)
            if found and found.category == LOCATIONS:
                return found.text, _remove_span(text, token.span())

        return None, text

    def _extract_organizers(self, text: str) -> Tuple[List[str], str]:
        organizers = []
        spans = []

        for match in ORGANIZER_PATTERN.finditer(text):
            title_and_initial = match.group(0)[:match.start(1) - match.start(0)]
            surname = self.matcher.find_best_match(match.group(1), [ORGANIZERS])
            organizers.append(title_and_initial + surname)
            spans.append(match.span())

        # Bare surnames only count when the organizers dictionary wins outright
        for token in re.finditer(r'\S+', text):
            if any(start <= token.start() < end for start, end in spans):
                continue
            word = token.group(0).strip(",;:")
            if len(word) < 4 or not word[0].isupper():
                continue
            found = self.matcher.match(word)
            if found and found.category == ORGANIZERS and found.text not in organizers:
                organizers.append(found.text)
                spans.append(token.span())

        # Remove right to left so earlier spans stay valid
        for span in sorted(spans, reverse=True):
            text = _remove_span(text, span)

        return organizers, text

    def _correct_words(self, text: str) -> str:
        if not text:
            return text
        return self.matcher.correct_words(text, [EXPECTED_WORDS])
