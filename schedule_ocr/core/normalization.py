"""
Text normalisation for Schedule OCR.

Raw recognised text is cleaned by an ordered list of named rules. Each rule
is a small callable that can be tested and replaced on its own. The
normaliser also splits the document into the daily schedule and the trailing
general information block.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .dictionaries import (
    Dictionary, DictionaryMatcher, WEEKDAYS, load_dictionaries, similarity,
)

logger = logging.getLogger(__name__)

WEEKDAY_TOKEN = re.compile(r'^\s*(\S{1,4})\s*(?=\d{2}\.\d{2}\.\d{4})')
DATE_LINE_PATTERN = re.compile(
    r'^\s*(?:Mo|Di|Mi|Do|Fr|Sa|So)\.?\s*(\d{2})\.(\d{2})\.(\d{4})', re.IGNORECASE
)


@dataclass(frozen=True)
class NormalizationRule:
    """A named text -> text transformation."""
    name: str
    apply: Callable[[str], str]

    def __call__(self, text: str) -> str:
        return self.apply(text)


# =============================================================================
# Rules
# =============================================================================

NOISE_LINE_PATTERNS = [
    re.compile(r'^\d{2}\.\d{2}\.\d{4}\s*/\s*-'),          # "28.02.2025 / -" print stamp
    re.compile(r'^CIM\s*$'),
    re.compile(r"^\s*:\s*['`]\s*\d{2}\.\d{2}\.\d{4}"),   # ": '28.02.2025" timestamp
    re.compile(r'^Seite\s+\d+\s+von\s+\d+\s*$', re.IGNORECASE),
]

BOILERPLATE_PREFIX = re.compile(r'^(?:RE|EZEE|Ba)\s+')

MAX_PARENTHESIS_JOIN = 3


def strip_ocr_artifacts(text: str) -> str:
    text = re.sub(r'[\[\]\\|]+', '', text)
    return re.sub(r'_{2,}', '', text)


def collapse_whitespace(text: str) -> str:
    lines = (re.sub(r'[ \t\f\v]+', ' ', line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def remove_noise_lines(text: str) -> str:
    return "\n".join(
        line for line in text.split("\n")
        if not any(p.search(line) for p in NOISE_LINE_PATTERNS)
    )


def join_split_parentheses(text: str) -> str:
    """Join a line with an unclosed '(' to the following lines."""
    lines = text.split("\n")
    joined = []
    i = 0

    while i < len(lines):
        line = lines[i]
        consumed = 0
        while (
            line.count("(") > line.count(")")
            and consumed < MAX_PARENTHESIS_JOIN
            and i + 1 < len(lines)
            and not DATE_LINE_PATTERN.match(lines[i + 1])
        ):
            i += 1
            consumed += 1
            line = f"{line} {lines[i]}"
        joined.append(line)
        i += 1

    return "\n".join(joined)


def standardize_date_separators(text: str) -> str:
    """'01:02.2024', '01,02.2024' and '01.02,2024' become '01.02.2024'."""
    return re.sub(r'\b(\d{2})[.:,](\d{2})[.,](\d{4})\b', r'\1.\2.\3', text)


def _pad_time(match: re.Match) -> str:
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return match.group(0)
    return f"{hours:02d}:{minutes:02d}"


def standardize_times(text: str) -> str:
    """'8.30', '8:30' and '08.30' become '08:30'; dates are left alone."""
    return re.sub(
        r'(?<![\d.:,])(\d{1,2})[.:](\d{2})(?![\d]|[.:,]\d)',
        _pad_time,
        text
    )


def drop_stray_letters(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        tokens = [t for t in line.split(" ") if not re.fullmatch(r'[^\W\d_]', t)]
        lines.append(" ".join(tokens))
    return "\n".join(line for line in lines if line)


def drop_boilerplate_prefixes(text: str) -> str:
    return "\n".join(BOILERPLATE_PREFIX.sub('', line) for line in text.split("\n"))


DEFAULT_RULES: Tuple[NormalizationRule, ...] = (
    NormalizationRule("strip_ocr_artifacts", strip_ocr_artifacts),
    NormalizationRule("collapse_whitespace", collapse_whitespace),
    NormalizationRule("remove_noise_lines", remove_noise_lines),
    NormalizationRule("join_split_parentheses", join_split_parentheses),
    NormalizationRule("standardize_date_separators", standardize_date_separators),
    NormalizationRule("standardize_times", standardize_times),
    NormalizationRule("drop_stray_letters", drop_stray_letters),
    NormalizationRule("drop_boilerplate_prefixes", drop_boilerplate_prefixes),
)


# =============================================================================
# Section Markers
# =============================================================================

class SectionMarkers:
    """Detects phrases that close the daily schedule."""

    def __init__(self, markers: Optional[Dictionary] = None):
        self.markers = markers or load_dictionaries().section_end_markers

    def matches(self, line: str) -> bool:
        lowered = line.lower()
        for marker in self.markers.entries:
            if marker.lower() in lowered:
                return True

        for token in re.findall(r'[\w.-]+', line):
            for marker in self.markers.entries:
                if similarity(token.strip(".:"), marker) > self.markers.threshold:
                    return True
        return False


def correct_weekday(line: str, matcher: DictionaryMatcher) -> str:
    """Line with a leading weekday token corrected against the weekdays dictionary."""
    weekday = WEEKDAY_TOKEN.match(line)
    if not weekday:
        return line
    corrected = matcher.find_best_match(weekday.group(1), [WEEKDAYS])
    return corrected + " " + line[weekday.end():]


def match_date_line(line: str, matcher: Optional[DictionaryMatcher] = None) -> Optional[re.Match]:
    """
    Date-line match for a line, or None.

    With a matcher, a misread weekday ("Di..") is corrected first, so every
    component agrees on where a day starts.
    """
    if matcher is not None:
        line = correct_weekday(line, matcher)
    return DATE_LINE_PATTERN.match(line)


def is_date_line(line: str, matcher: Optional[DictionaryMatcher] = None) -> bool:
    return match_date_line(line, matcher) is not None


# =============================================================================
# Normalizer
# =============================================================================

class TextNormalizer:
    """Applies the ordered normalisation rules to recognised text."""

    def __init__(
        self,
        rules: Sequence[NormalizationRule] = DEFAULT_RULES,
        section_markers: Optional[SectionMarkers] = None,
        matcher: Optional[DictionaryMatcher] = None
    ):
        self.rules = tuple(rules)
        self.section_markers = section_markers or SectionMarkers()
        self.matcher = matcher or DictionaryMatcher()

    def normalize(self, text: str) -> str:
        """Run every rule in order."""
        if not text:
            return ""

        for rule in self.rules:
            result = rule(text)
            if result != text:
                logger.debug("Normalization rule '%s' changed the text", rule.name)
            text = result

        return text

    def segment(self, text: str) -> Iterator[Tuple[str, bool]]:
        """
        Yield (line, in_schedule) pairs for normalised text.

        Lines from a section-end marker up to the next date line are flagged
        as general information.
        """
        in_schedule = True
        for line in text.split("\n"):
            if is_date_line(line, self.matcher):
                in_schedule = True
            elif self.section_markers.matches(line):
                in_schedule = False
            yield line, in_schedule

    def schedule_lines(self, text: str) -> List[str]:
        """Normalise and keep only daily-schedule lines."""
        normalized = self.normalize(text)
        return [line for line, in_schedule in self.segment(normalized) if in_schedule]

    def schedule_text(self, text: str) -> str:
        return "\n".join(self.schedule_lines(text))
