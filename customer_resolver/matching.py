"""Field and Address Matching.

Scores single field pairs and combines address components. All scores are
in [0, 1].

Name scoring:
    1.0  equal after normalization
    0.9  one normalized name contains the other
    0.8 × (query tokens found in the candidate / query tokens) otherwise

Address scoring weights only the components the query supplies:
    state 2, city 1, ZIP prefix 1, combined address lines 1
"""

from typing import List, Optional, Tuple

from customer_resolver.models import AddressInfo
from customer_resolver.normalize import (
    combine_address_lines,
    normalize_address,
    normalize_name,
    normalize_phone,
    significant_tokens,
    zip_prefix,
)

STATE_WEIGHT = 2
CITY_WEIGHT = 1
ZIP_WEIGHT = 1
ADDRESS_WEIGHT = 1


# =============================================================================
# Single fields
# =============================================================================

def exact_match(query: Optional[str], candidate: Optional[str]) -> bool:
    """Case-insensitive, trimmed equality. False when the query is empty."""
    if not query or not query.strip():
        return False
    return query.strip().upper() == (candidate or "").strip().upper()


def zip_match(query: Optional[str], candidate: Optional[str]) -> bool:
    """Compare ZIP codes ignoring any +4 extension."""
    q = zip_prefix(query)
    return bool(q) and q == zip_prefix(candidate)


def score_name(query: Optional[str], candidate: Optional[str]) -> float:
    """Score a customer name against a Sage customer name."""
    norm_query = normalize_name(query)
    norm_candidate = normalize_name(candidate)
    if not norm_query or not norm_candidate:
        return 0.0

    if norm_query == norm_candidate:
        return 1.0
    if norm_query in norm_candidate or norm_candidate in norm_query:
        return 0.9

    query_tokens = norm_query.split()
    candidate_tokens = norm_candidate.split()
    matched = sum(
        1 for q in query_tokens
        if any(c in q or q in c for c in candidate_tokens)
    )
    return matched / len(query_tokens) * 0.8


def fuzzy_name_match(query: Optional[str], candidate: Optional[str]) -> bool:
    """Search predicate: does ``candidate`` plausibly name the ``query`` customer?

    True when either normalized name contains the other, or when at least
    half of the query's significant tokens (longer than two characters)
    appear in the candidate.
    """
    norm_query = normalize_name(query)
    norm_candidate = normalize_name(candidate)
    if not norm_query or not norm_candidate:
        return False

    if norm_query in norm_candidate or norm_candidate in norm_query:
        return True

    tokens = significant_tokens(norm_query)
    if not tokens:
        return False
    matched = sum(1 for t in tokens if t in norm_candidate)
    return matched / len(tokens) >= 0.5


def fuzzy_address_match(query: Optional[str], candidate: Optional[str]) -> bool:
    """Normalized address equality or containment either way. Empty never matches."""
    norm_query = normalize_address(query)
    norm_candidate = normalize_address(candidate)
    if not norm_query or not norm_candidate:
        return False
    return (
        norm_query == norm_candidate
        or norm_query in norm_candidate
        or norm_candidate in norm_query
    )


def score_phone(query: Optional[str], candidate: Optional[str]) -> float:
    """1.0 on equal digits, 0.8 when one contains the other, else 0."""
    q = normalize_phone(query)
    c = normalize_phone(candidate)
    if not q or not c:
        return 0.0
    if q == c:
        return 1.0
    if q in c or c in q:
        return 0.8
    return 0.0


# =============================================================================
# Addresses
# =============================================================================

def score_address(
    query: Optional[AddressInfo],
    address1: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip_code: Optional[str] = None,
    address2: Optional[str] = None,
) -> float:
    """Weighted address score: matched weight / applicable weight.

    A component is applicable only when the query supplies it, so missing
    PO fields are never penalized. Returns 0 when nothing is applicable.
    """
    if query is None:
        return 0.0

    matched = 0
    total = 0

    if query.state and query.state.strip():
        total += STATE_WEIGHT
        if exact_match(query.state, state):
            matched += STATE_WEIGHT

    if query.city and query.city.strip():
        total += CITY_WEIGHT
        if exact_match(query.city, city):
            matched += CITY_WEIGHT

    if zip_prefix(query.zip_code):
        total += ZIP_WEIGHT
        if zip_match(query.zip_code, zip_code):
            matched += ZIP_WEIGHT

    query_lines = combine_address_lines(query.address1, query.address2)
    if query_lines:
        total += ADDRESS_WEIGHT
        if fuzzy_address_match(query_lines, combine_address_lines(address1, address2)):
            matched += ADDRESS_WEIGHT

    return matched / total if total else 0.0


def compare_address(
    query_name: Optional[str],
    query_address1: Optional[str],
    query_city: Optional[str],
    query_state: Optional[str],
    query_zip: Optional[str],
    name: Optional[str],
    address1: Optional[str],
    city: Optional[str],
    state: Optional[str],
    zip_code: Optional[str],
) -> Tuple[float, List[str]]:
    """Unweighted field-by-field comparison for ship-to validation.

    Returns:
        (fraction of supplied fields that match, human-readable differences)
    """
    differences: List[str] = []
    matched = 0
    total = 0

    checks = (
        ("Name", query_name, name, fuzzy_address_match),
        ("Address", query_address1, address1, fuzzy_address_match),
        ("City", query_city, city, exact_match),
        ("State", query_state, state, exact_match),
        ("ZipCode", query_zip, zip_code, zip_match),
    )
    for label, wanted, actual, matcher in checks:
        if not wanted or not wanted.strip():
            continue
        total += 1
        if matcher(wanted, actual):
            matched += 1
        else:
            differences.append(f"{label} mismatch: '{wanted}' vs '{actual or ''}'")

    return (matched / total if total else 0.0), differences
