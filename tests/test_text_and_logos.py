"""Tests for text node extraction and logo resolution."""

import pytest

from epg_guide.utils.logos import LOGO_BASE_URL, resolve_logo, slugify
from epg_guide.utils.text import LocalizedText, extract_text, first_text


class TestExtractText:
    @pytest.mark.parametrize(
        "node, expected",
        [
            ("plain", "plain"),
            ("", ""),
            (LocalizedText("Le Journal", "fr"), "Le Journal"),
            ({"#text": "mapped"}, "mapped"),
            ({"#text": 42}, "42"),
            ({"#text": None}, ""),
            ({"other": "x"}, ""),
            (None, ""),
            (12, ""),
            (["a"], ""),
            ({"#text": True}, ""),
        ],
    )
    def test_shapes(self, node, expected):
        assert extract_text(node) == expected

    @pytest.mark.parametrize("node", ["abc", LocalizedText("déjà vu"), {"#text": "x"}, None, 3.5])
    def test_idempotent(self, node):
        once = extract_text(node)
        assert extract_text(once) == once


class TestFirstText:
    def test_skips_empty(self):
        assert first_text(["", None, LocalizedText("second")]) == "second"

    def test_preferred_language(self):
        nodes = [LocalizedText("Evening news", "en"), LocalizedText("Le journal", "fr")]
        assert first_text(nodes, preferred_lang="fr") == "Le journal"
        assert first_text(nodes) == "Evening news"

    def test_empty(self):
        assert first_text([]) == ""


class TestSlugify:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("TF1", "tf1"),
            ("France 2", "france-2"),
            ("Canal+ Sport", "canal-sport"),
            ("M6 (HD)", "m6-hd"),
            ("Arte & Co", "arte-and-co"),
            ("RMC  Story", "rmc-story"),
            ("L'Équipe", "lquipe"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_slugs(self, name, expected):
        assert slugify(name) == expected


class TestResolveLogo:
    def test_default_country(self):
        assert resolve_logo("France 2") == f"{LOGO_BASE_URL}/france/france-2-fr.png"

    def test_exception_table(self):
        assert resolve_logo("2M Maroc") == f"{LOGO_BASE_URL}/morocco/2m-maroc-ma.png"

    def test_empty_name(self):
        assert resolve_logo("") is None
        assert resolve_logo(None) is None
