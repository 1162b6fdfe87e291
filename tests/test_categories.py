"""Tests for free-text category mapping."""

import pytest

from epg_guide.utils.categories import DEFAULT_CATEGORY, ProgramCategory, categorize, map_category


class TestMapCategory:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Sport", ProgramCategory.SPORT),
            ("Football - Sports mécaniques", ProgramCategory.SPORT),
            ("Film", ProgramCategory.CINEMA),
            ("Movie / Drama", ProgramCategory.CINEMA),
            ("CINÉMA", ProgramCategory.CINEMA),
            ("Série policière", ProgramCategory.SERIES),
            ("TV Series", ProgramCategory.SERIES),
            ("News", ProgramCategory.NEWS),
            ("Information", ProgramCategory.NEWS),
            ("actualité locale", ProgramCategory.NEWS),
            ("Jeunesse", ProgramCategory.KIDS),
            ("Programme pour enfants", ProgramCategory.KIDS),
            ("Kids", ProgramCategory.KIDS),
            ("Documentaire animalier", ProgramCategory.DOCUMENTARY),
            ("Documentary", ProgramCategory.DOCUMENTARY),
            ("Jeu", ProgramCategory.ENTERTAINMENT),
        ],
    )
    def test_keywords(self, text, expected):
        assert map_category(text) is expected

    def test_first_match_wins(self):
        # "sport" is tested before "film"
        assert map_category("Film de sport") is ProgramCategory.SPORT
        assert map_category("Série documentaire") is ProgramCategory.SERIES

    @pytest.mark.parametrize("text", ["", None, "   ", "日本語のテキスト", "🎬🎭", "\x00\x01", 42])
    def test_total(self, text):
        assert map_category(text) is DEFAULT_CATEGORY

    def test_always_member_of_enum(self):
        samples = ["", "sport", "φιλμ", "émission", "x" * 10_000, "SÉRIE", "kids & family"]
        for text in samples:
            assert map_category(text) in set(ProgramCategory)

    def test_default_is_entertainment(self):
        assert DEFAULT_CATEGORY is ProgramCategory.ENTERTAINMENT
        assert DEFAULT_CATEGORY.value == "Divertissement"


class TestCategorize:
    def test_first_specific_text_wins(self):
        assert categorize("Magazine", "Un documentaire sur la mer") is ProgramCategory.DOCUMENTARY

    def test_category_text_preferred(self):
        assert categorize("Sport", "actualité locale") is ProgramCategory.SPORT

    def test_falls_back_to_default(self):
        assert categorize("", None, "Variétés") is ProgramCategory.ENTERTAINMENT

    def test_no_texts(self):
        assert categorize() is ProgramCategory.ENTERTAINMENT
