"""
Tests for text normalisation rules and schedule segmentation.

Run with: pytest schedule_ocr/tests/test_normalization.py -v
"""

import pytest

from schedule_ocr.core.normalization import (
    NormalizationRule,
    TextNormalizer,
    collapse_whitespace,
    drop_boilerplate_prefixes,
    drop_stray_letters,
    join_split_parentheses,
    remove_noise_lines,
    standardize_date_separators,
    standardize_times,
    strip_ocr_artifacts,
)


class TestRules:
    """Tests for individual normalisation rules."""

    def test_collapse_whitespace(self):
        text = "  Mo.   01.01.2024  \n\n  08:00\tTermin "
        assert collapse_whitespace(text) == "Mo. 01.01.2024\n08:00 Termin"

    def test_strip_ocr_artifacts(self):
        assert strip_ocr_artifacts("08:00 | Termin [GR] ____") == "08:00  Termin GR "

    def test_remove_noise_lines(self):
        text = "28.02.2025 / - Seite\nCIM\n08:00 Termin\nSeite 1 von 2"
        assert remove_noise_lines(text) == "08:00 Termin"

    def test_join_split_parentheses(self):
        text = "10:00 Treffen (Treffpunkt\nEingangshalle)\n11:00 Forum"
        assert join_split_parentheses(text) == (
            "10:00 Treffen (Treffpunkt Eingangshalle)\n11:00 Forum"
        )

    def test_parentheses_never_swallow_date_line(self):
        text = "10:00 Treffen (Treffpunkt\nDi. 02.01.2024"
        assert join_split_parentheses(text) == text

    @pytest.mark.parametrize("raw", ["01:01.2024", "01,01.2024", "01.01,2024"])
    def test_standardize_date_separators(self, raw):
        assert standardize_date_separators(f"Mo. {raw}") == "Mo. 01.01.2024"

    @pytest.mark.parametrize("raw,expected", [
        ("8.30 Termin", "08:30 Termin"),
        ("8:30 Termin", "08:30 Termin"),
        ("08.30 Termin", "08:30 Termin"),
        ("9:05-10:15 Forum", "09:05-10:15 Forum"),
        ("25.30 Termin", "25.30 Termin"),
        ("Mo. 01.01.2024", "Mo. 01.01.2024"),
    ])
    def test_standardize_times(self, raw, expected):
        assert standardize_times(raw) == expected

    def test_drop_stray_letters(self):
        assert drop_stray_letters("Z 08:00 Termin a\nx") == "08:00 Termin"

    def test_stray_letters_keep_initials(self):
        assert drop_stray_letters("08:00 C. Jordi") == "08:00 C. Jordi"

    def test_drop_boilerplate_prefixes(self):
        assert drop_boilerplate_prefixes("RE 08:00 Termin\nEZEE Forum") == "08:00 Termin\nForum"


class TestTextNormalizer:
    """Tests for the rule chain and segmentation."""

    def test_empty_text(self, normalizer):
        assert normalizer.normalize("") == ""

    def test_full_chain(self, normalizer):
        raw = "CIM\nMo. 01:01.2024\n| 8.30  Termin [GR]\nZ 9:00 Forum"
        assert normalizer.normalize(raw) == "Mo. 01.01.2024\n08:30 Termin GR\n09:00 Forum"

    def test_custom_rules(self, section_markers):
        normalizer = TextNormalizer(
            rules=[NormalizationRule("upper", str.upper)], section_markers=section_markers
        )
        assert normalizer.normalize("abc") == "ABC"

    def test_general_information_is_excluded(self, normalizer):
        text = (
            "Mo. 01.01.2024\n08:00 Termin\nEssenszeiten\n12:00 Mittagessen\n"
            "Di. 02.01.2024\n09:00 Forum"
        )
        assert normalizer.schedule_lines(text) == [
            "Mo. 01.01.2024", "08:00 Termin", "Di. 02.01.2024", "09:00 Forum"
        ]

    def test_misread_weekday_reopens_schedule(self, normalizer):
        text = (
            "Mo. 01.01.2024\n08:00 Termin\nEssenszeiten\n12:00 Mittagessen\n"
            "Di.. 02.01.2024\n09:00 Forum"
        )
        assert normalizer.schedule_lines(text) == [
            "Mo. 01.01.2024", "08:00 Termin", "Di.. 02.01.2024", "09:00 Forum"
        ]

    def test_segment_flags(self, normalizer):
        flags = [flag for _, flag in normalizer.segment("08:00 Termin\nPausen\n12:00 Essen")]
        assert flags == [True, False, False]

    def test_fuzzy_marker(self, section_markers):
        assert section_markers.matches("Medikamentenabgabo")
        assert not section_markers.matches("08:00 Gruppentherapie")
