"""Name, Address and Phone Normalization.

Free-text values from a scanned purchase order rarely match Sage 100 records
character for character. These functions bring both sides to a canonical
form before comparison:

Examples:
    normalize_name("Acme Corp.")                   → "ACME"
    normalize_name("UNITED REFRIGERATION INC (NC)") → "UNITED REFRIGERATION"
    normalize_address("100 North Main Street")     → "100 N MAIN ST"
    normalize_phone("(555) 123-4567")              → "5551234567"

Normalization is token based, so it is idempotent and never rewrites the
inside of a word ("COSTCO" keeps its CO, "EASTLAND" keeps its EAST).
"""

import re
from typing import List, Optional


# Corporate tokens dropped from customer names
CORPORATE_TOKENS = {
    "INC", "LLC", "CORP", "CORPORATION", "COMPANY", "CO",
}

# Street suffix and directional abbreviations
ADDRESS_ABBREVIATIONS = {
    "STREET": "ST",
    "AVENUE": "AVE",
    "BOULEVARD": "BLVD",
    "DRIVE": "DR",
    "ROAD": "RD",
    "LANE": "LN",
    "COURT": "CT",
    "NORTH": "N",
    "SOUTH": "S",
    "EAST": "E",
    "WEST": "W",
}

# Parenthetical state suffix, e.g. "(NC)"
_STATE_SUFFIX = re.compile(r"\(\s*[A-Za-z]{2}\s*\)")
_PUNCTUATION = re.compile(r"[.,]")
_NON_DIGITS = re.compile(r"\D")


def _tokens(text: str) -> List[str]:
    return text.split()


def normalize_name(name: Optional[str]) -> str:
    """Normalize a customer name for matching.

    1. Uppercase
    2. Strip periods and commas
    3. Remove parenthetical state suffixes like "(NC)"
    4. Drop corporate tokens (INC, LLC, CORP, CORPORATION, COMPANY, CO)
    5. Collapse whitespace

    Examples:
        >>> normalize_name("Harbor Foods, Inc.")
        'HARBOR FOODS'
        >>> normalize_name("ACME CORPORATION")
        'ACME'
    """
    if not name:
        return ""
    text = _PUNCTUATION.sub("", name.upper())
    text = _STATE_SUFFIX.sub(" ", text)
    return " ".join(t for t in _tokens(text) if t not in CORPORATE_TOKENS)


def normalize_address(address: Optional[str]) -> str:
    """Normalize an address line: uppercase, no periods/commas, abbreviated suffixes.

    Examples:
        >>> normalize_address("77 Wharf Street")
        '77 WHARF ST'
    """
    if not address:
        return ""
    text = _PUNCTUATION.sub("", address.upper())
    return " ".join(ADDRESS_ABBREVIATIONS.get(t, t) for t in _tokens(text))


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only; "" when the input has none."""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)


def extract_search_name(full_name: Optional[str]) -> str:
    """Name to search Sage with: the free text minus state suffixes."""
    if not full_name:
        return ""
    return " ".join(_tokens(_STATE_SUFFIX.sub(" ", full_name)))


def combine_address_lines(*lines: Optional[str]) -> str:
    """Join non-blank address lines, skipping a bare "ATTN:" line."""
    return " ".join(
        line.strip() for line in lines
        if line and line.strip() and line.strip().upper() != "ATTN:"
    )


def zip_prefix(zip_code: Optional[str]) -> str:
    """ZIP without the +4 extension ("62701-1234" → "62701")."""
    if not zip_code:
        return ""
    return zip_code.split("-")[0].strip()


def significant_tokens(text: str, min_length: int = 3) -> List[str]:
    """Tokens longer than two characters."""
    return [t for t in _tokens(text) if len(t) >= min_length]

