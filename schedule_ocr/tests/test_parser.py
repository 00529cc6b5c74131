"""
Tests for the appointment line scanner.

Run with: pytest schedule_ocr/tests/test_parser.py -v
"""

from datetime import datetime, timedelta

import pytest

from schedule_ocr.core.errors import ParseSkip
from schedule_ocr.core.parser import AppointmentParser, clean_description, parse_clock

from .conftest import SCHEDULE_TEXT


def at(day, hour, minute=0):
    return datetime(2024, 1, day, hour, minute)


class TestSingleAppointment:
    """Field extraction from one time-led line."""

    def test_full_line(self, parser):
        appointments = parser.parse(SCHEDULE_TEXT)
        assert len(appointments) == 1

        appointment = appointments[0]
        assert appointment.start == at(1, 8)
        assert appointment.end == at(1, 9)
        assert appointment.location == "GR Matterhorn"
        assert appointment.organizers == ["C. Jordi"]
        assert appointment.description == "Termin"
        assert appointment.raw_text == "08:00 09:00 C. Jordi GR Matterhorn Termin"

    def test_default_duration(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 Gruppentherapie")[0]
        assert appointment.end == at(1, 10, 30)
        assert appointment.description == "Gruppentherapie"
        assert appointment.location is None
        assert appointment.organizers == []

    @pytest.mark.parametrize("suffix,minutes", [("45'", 45), ("45 min", 45), ("90min.", 90)])
    def test_duration(self, parser, suffix, minutes):
        appointment = parser.parse(f"Mo. 01.01.2024\n10:00 Forum {suffix}")[0]
        assert appointment.end == at(1, 10) + timedelta(minutes=minutes)
        assert appointment.description == "Forum"

    def test_explicit_end_in_text(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 Forum bis 11:15")[0]
        assert appointment.end == at(1, 11, 15)
        assert appointment.description == "Forum"

    def test_dash_range(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00-11:15 Forum")[0]
        assert appointment.end == at(1, 11, 15)

    def test_end_before_start_falls_back(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 09:00 Forum")[0]
        assert appointment.end == at(1, 10, 30)

    def test_end_always_after_start_near_midnight(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n23:45 Nachtruhe")[0]
        assert appointment.end == at(2, 0, 15)

    def test_organizer_with_title(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n09:00 Visite Dr. med. S. Berend")[0]
        assert appointment.organizers == ["Dr. med. S. Berend"]
        assert appointment.description == "Visite"

    def test_organizer_surname_is_corrected(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n09:00 Forum C. Jorndi")[0]
        assert appointment.organizers == ["C. Jordi"]

    def test_bare_surname_from_dictionary(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 Einzeltherapie Jordl")[0]
        assert appointment.organizers == ["Jordi"]
        assert appointment.description == "Einzeltherapie"

    def test_location_from_dictionary(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 Sporttherapie Fitnessraum")[0]
        assert appointment.location == "Fitnessraum"
        assert appointment.description == "Sporttherapie"

    def test_expected_words_are_corrected(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n10:00 Gruppentherapey")[0]
        assert appointment.description == "Gruppentherapie"


class TestDocument:
    """Tests for the state machine over whole documents."""

    def test_sorted_by_start(self, parser):
        appointments = parser.parse("Mo. 01.01.2024\n14:00 Forum\n08:00 Termin")
        assert [a.start for a in appointments] == [at(1, 8), at(1, 14)]

    def test_equal_starts_keep_source_order(self, parser):
        appointments = parser.parse("Mo. 01.01.2024\n08:00 Termin\n08:00 Forum")
        assert [a.description for a in appointments] == ["Termin", "Forum"]

    def test_continuation_lines(self, parser):
        appointment = parser.parse("Mo. 01.01.2024\n08:00 Termin\nmit der Pflege")[0]
        assert appointment.description == "Termin mit der Pflege"

    def test_lines_before_first_date_are_ignored(self, parser):
        appointments = parser.parse("Wochenplan\n08:00 Termin\nMo. 01.01.2024\n09:00 Forum")
        assert [a.start for a in appointments] == [at(1, 9)]

    def test_general_information_excluded(self, parser):
        text = (
            "Mo. 01.01.2024\n08:00 Termin\nEssenszeiten\n12:00 Mittagessen\n"
            "18:00 Abendessen\nDi. 02.01.2024\n09:00 Forum"
        )
        appointments = parser.parse(text)
        assert [a.start for a in appointments] == [at(1, 8), at(2, 9)]

    def test_date_switches_day(self, parser):
        appointments = parser.parse("Mo. 01.01.2024\n08:00 Termin\nDi. 02.01.2024\n08:00 Forum")
        assert [a.start.day for a in appointments] == [1, 2]

    def test_misread_weekday_is_corrected(self, parser):
        appointments = parser.parse("Mo.. 01.01.2024\n08:00 Termin")
        assert len(appointments) == 1

    def test_invalid_date_is_skipped(self, parser):
        assert parser.parse("Mo. 32.01.2024\n08:00 Termin") == []
        assert parser.skipped_lines == ["Mo. 32.01.2024"]

    def test_invalid_date_ends_the_previous_day(self, parser):
        text = (
            "Mo. 01.01.2024\n08:00 Termin\nDi. 32.01.2024\n09:00 Forum\nmit der Pflege\n"
            "Mi. 03.01.2024\n10:00 Visite"
        )
        appointments = parser.parse(text)
        assert [(a.start, a.description) for a in appointments] == [
            (at(1, 8), "Termin"),
            (at(3, 10), "Visite"),
        ]
        assert parser.skipped_lines == ["Di. 32.01.2024"]

    def test_invalid_time_is_skipped(self, parser):
        appointments = parser.parse("Mo. 01.01.2024\n25:00 Termin\n09:00 Forum")
        assert [a.description for a in appointments] == ["Forum"]
        assert parser.skipped_lines == ["25:00 Termin"]

    def test_empty_text(self, parser):
        assert parser.parse("") == []


class TestHelpers:
    """Tests for module-level helpers."""

    def test_parse_clock(self):
        assert parse_clock("8:05").hour == 8

    def test_parse_clock_rejects_impossible_values(self):
        with pytest.raises(ParseSkip):
            parse_clock("12:75")

    @pytest.mark.parametrize("raw,expected", [
        (" - Termin", "Termin"),
        ("Termin ()", "Termin"),
        ("Termin ;", "Termin"),
        ("Termin - Forum", "Termin Forum"),
        ("Psychoed.", "Psychoed."),
        ("Forum .", "Forum"),
    ])
    def test_clean_description(self, raw, expected):
        assert clean_description(raw) == expected

    def test_parser_builds_default_dependencies(self):
        assert AppointmentParser().parse(SCHEDULE_TEXT)[0].organizers == ["C. Jordi"]
