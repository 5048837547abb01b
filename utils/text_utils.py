"""
Text utilities for handling Portuguese headers with accents.

Used to compare spreadsheet headers against target field keys and labels.
"""

import re
import unicodedata
from typing import Optional

_NON_ALNUM = re.compile(r"[\W_]+")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def strip_accents(text: str) -> str:
    """
    Remove diacritics, keeping the base characters.

    - "Captação" → "Captacao"
    - "Atualização" → "Atualizacao"
    """
    # NFD separates base chars from accents (Unicode category 'Mn')
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_header(text: Optional[str]) -> str:
    """
    Collapse a header or field name into a comparable key.

    Strips accents, drops every non-alphanumeric run (spaces included)
    and lowercases:
    - "Data Captação" → "datacaptacao"
    - "cod_cliente" → "codcliente"
    """
    if not text:
        return ""
    return _NON_ALNUM.sub("", strip_accents(str(text))).lower()


def tokenize(text: Optional[str]) -> list[str]:
    """
    Split text into lowercase ASCII alphanumeric tokens.

    - "Cód. Cliente" → ["cod", "cliente"]
    - "valor_captacao" → ["valor", "captacao"]
    """
    if not text:
        return []
    lowered = strip_accents(str(text)).lower()
    return [t for t in _TOKEN_SPLIT.split(lowered) if t]
