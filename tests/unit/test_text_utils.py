"""
Unit tests for header text utilities.
"""

import pytest

from utils.text_utils import strip_accents, normalize_header, tokenize


class TestStripAccents:

    @pytest.mark.parametrize("text,expected", [
        ("Captação", "Captacao"),
        ("Atualização", "Atualizacao"),
        ("Código", "Codigo"),
        ("plain", "plain"),
    ])
    def test_removes_diacritics(self, text, expected):
        assert strip_accents(text) == expected


class TestNormalizeHeader:

    def test_drops_spaces_and_case(self):
        assert normalize_header("Data Captação") == "datacaptacao"

    def test_drops_underscores(self):
        assert normalize_header("cod_cliente") == "codcliente"

    def test_drops_punctuation(self):
        assert normalize_header(" Cód. Cliente ") == "codcliente"

    def test_empty_and_none(self):
        assert normalize_header("") == ""
        assert normalize_header(None) == ""

    def test_punctuation_only_is_empty(self):
        assert normalize_header("---") == ""


class TestTokenize:

    def test_splits_on_non_alphanumeric(self):
        assert tokenize("Cód. Cliente") == ["cod", "cliente"]

    def test_splits_snake_case(self):
        assert tokenize("valor_captacao") == ["valor", "captacao"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize(None) == []
