"""
Matching Tests

Normalization, field matching, address scoring and candidate ranking.
"""

from itertools import combinations

import pytest

from customer_resolver import AddressInfo, CandidateRanker, ResolutionConfig, ResolutionRequest
from customer_resolver.matching import (
    compare_address,
    exact_match,
    fuzzy_address_match,
    fuzzy_name_match,
    score_address,
    score_name,
    score_phone,
    zip_match,
)
from customer_resolver.normalize import (
    combine_address_lines,
    extract_search_name,
    normalize_address,
    normalize_name,
    normalize_phone,
    zip_prefix,
)
from models.customers import CustomerRecord, ShipToRecord


def make_customer(number: str, name: str, **kwargs) -> CustomerRecord:
    division, customer_no = number.split("-", 1)
    return CustomerRecord(
        customer_number=number,
        ar_division_no=division,
        customer_no=customer_no,
        customer_name=name,
        **kwargs,
    )


def make_ship_to(code: str, **kwargs) -> ShipToRecord:
    return ShipToRecord(ship_to_code=code, **kwargs)


SPRINGFIELD = dict(address1="100 MAIN ST", city="Springfield", state="IL", zip_code="62701-1234")

# Per component: a value matching SPRINGFIELD and one that does not
ADDRESS_COMPONENTS = {
    "state": ("IL", "TX"),
    "city": ("Springfield", "Peoria"),
    "zip_code": ("62701", "61602"),
    "address1": ("100 Main Street", "9 Elm Rd"),
}

# (components already on the query, component being added)
ADDED_COMPONENT_CASES = [
    (base, added)
    for size in range(len(ADDRESS_COMPONENTS))
    for base in combinations(sorted(ADDRESS_COMPONENTS), size)
    for added in sorted(ADDRESS_COMPONENTS)
    if added not in base
]

NAME_CORPUS = [
    "Acme Corp.",
    "Harbor Foods, Inc.",
    "UNITED REFRIGERATION INC (NC)",
    "Smith & Sons Company LLC",
    "COSTCO WHOLESALE",
    "Blue Co Logistics Corp. (TX)",
    "Inc Corp Co",
    "Acme, Inc. (IL) Corporation",
    "  Acme    Corp  ",
    "Zenith Labs (va)",
    "CO-OP Supply Co.",
    "",
]


def address_query(base, added=None, correct=True) -> AddressInfo:
    values = {name: ADDRESS_COMPONENTS[name][0] for name in base}
    if added is not None:
        values[added] = ADDRESS_COMPONENTS[added][0 if correct else 1]
    return AddressInfo(**values)


# =============================================================================
# Normalization
# =============================================================================

class TestNormalization:

    @pytest.mark.parametrize("raw,expected", [
        ("Acme Corp.", "ACME"),
        ("Harbor Foods, Inc.", "HARBOR FOODS"),
        ("UNITED REFRIGERATION INC (NC)", "UNITED REFRIGERATION"),
        ("Smith & Sons Company LLC", "SMITH & SONS"),
        ("COSTCO WHOLESALE", "COSTCO WHOLESALE"),
        ("  Acme    Corp  ", "ACME"),
        (None, ""),
    ])
    def test_normalize_name(self, raw, expected):
        assert normalize_name(raw) == expected

    @pytest.mark.parametrize("raw", NAME_CORPUS)
    def test_normalize_name_is_idempotent(self, raw):
        once = normalize_name(raw)
        assert normalize_name(once) == once

    def test_normalize_name_drops_suffix_tokens_only(self):
        assert normalize_name("Blue Co Logistics Corp. (TX)") == "BLUE LOGISTICS"

    @pytest.mark.parametrize("raw,expected", [
        ("100 North Main Street", "100 N MAIN ST"),
        ("77 Wharf Street", "77 WHARF ST"),
        ("9 Depot Road, Suite 4.", "9 DEPOT RD SUITE 4"),
        ("12 Eastland Ave", "12 EASTLAND AVE"),
        ("", ""),
    ])
    def test_normalize_address(self, raw, expected):
        assert normalize_address(raw) == expected

    def test_normalize_phone(self):
        assert normalize_phone("(555) 123-4567") == "5551234567"
        assert normalize_phone("757.555.0142") == "7575550142"
        assert normalize_phone("N/A") == ""
        assert normalize_phone(None) == ""

    def test_extract_search_name_strips_state_suffix(self):
        assert extract_search_name("UNITED REFRIGERATION INC (NC)") == "UNITED REFRIGERATION INC"
        assert extract_search_name("  Acme Corp ") == "Acme Corp"

    def test_combine_address_lines(self):
        assert combine_address_lines("ATTN:", "100 Main St") == "100 Main St"
        assert combine_address_lines("100 Main", None, " Suite 5 ") == "100 Main Suite 5"
        assert combine_address_lines(None, "") == ""

    def test_zip_prefix(self):
        assert zip_prefix("62701-1234") == "62701"
        assert zip_prefix(" 62701 ") == "62701"
        assert zip_prefix(None) == ""


# =============================================================================
# Field matching
# =============================================================================

class TestFieldMatching:

    def test_exact_match(self):
        assert exact_match(" il ", "IL")
        assert not exact_match("IL", "IN")
        assert not exact_match("", "")
        assert not exact_match(None, "IL")

    def test_zip_match_ignores_plus_four(self):
        assert zip_match("62701", "62701-1234")
        assert not zip_match("62701", "62702")
        assert not zip_match("", "62701")

    @pytest.mark.parametrize("query,candidate,expected", [
        ("Acme Corp", "ACME CORPORATION", 1.0),
        ("Acme", "ACME SUPPLY CO", 0.9),
        ("Acme Supply Company", "ACME", 0.9),
        ("Acme Widgets", "Acme Industrial Products", 0.4),
        ("Zenith Labs", "ACME CORPORATION", 0.0),
        ("", "ACME", 0.0),
        ("Acme", None, 0.0),
    ])
    def test_score_name(self, query, candidate, expected):
        assert score_name(query, candidate) == pytest.approx(expected)

    def test_fuzzy_name_match(self):
        assert fuzzy_name_match("Acme Corp", "ACME SUPPLY CO")
        assert fuzzy_name_match("Blue Ridge Farms", "BLUE RIDGE ORCHARDS")
        assert not fuzzy_name_match("Blue Ridge Farms", "RIDGE LINE")
        assert not fuzzy_name_match("Zenith", "ACME CORPORATION")
        assert not fuzzy_name_match("", "ACME")

    def test_fuzzy_address_match(self):
        assert fuzzy_address_match("100 Main Street", "100 MAIN ST")
        assert fuzzy_address_match("100 Main Street", "100 MAIN ST SUITE 5")
        assert not fuzzy_address_match("100 Main Street", "45 Harbor Blvd")

    def test_empty_address_never_matches(self):
        assert not fuzzy_address_match("100 Main St", "")
        assert not fuzzy_address_match("", "100 Main St")
        assert not fuzzy_address_match(None, None)

    def test_score_phone(self):
        assert score_phone("217-555-0100", "(217) 555-0100") == 1.0
        assert score_phone("555-0100", "217-555-0100") == 0.8
        assert score_phone("217-555-0100", "309-555-0199") == 0.0
        assert score_phone("", "217-555-0100") == 0.0


# =============================================================================
# Address scoring
# =============================================================================

class TestAddressScoring:

    @pytest.mark.parametrize("base,added", ADDED_COMPONENT_CASES)
    def test_adding_correct_component_never_lowers_score(self, base, added):
        before = score_address(address_query(base), **SPRINGFIELD)
        after = score_address(address_query(base, added, correct=True), **SPRINGFIELD)
        assert after >= before

    @pytest.mark.parametrize("base,added", ADDED_COMPONENT_CASES)
    def test_adding_wrong_component_never_raises_score(self, base, added):
        before = score_address(address_query(base), **SPRINGFIELD)
        after = score_address(address_query(base, added, correct=False), **SPRINGFIELD)
        assert after <= before

    def test_full_match(self):
        query = AddressInfo(address1="100 Main Street", city="springfield", state="IL", zip_code="62701")
        assert score_address(query, **SPRINGFIELD) == 1.0

    def test_only_supplied_components_count(self):
        assert score_address(AddressInfo(state="il"), state="IL") == 1.0
        query = AddressInfo(city="Springfield", state="IL")
        assert score_address(query, city="Chicago", state="IL") == pytest.approx(2 / 3)

    def test_state_carries_double_weight(self):
        query = AddressInfo(address1="100 Main Street", city="Springfield", state="IL", zip_code="62701")
        # state only: 2 of 5
        assert score_address(query, address1="9 Depot Rd", city="Peoria", state="IL", zip_code="61602") == pytest.approx(0.4)
        # everything but state: 3 of 5
        assert score_address(query, address1="100 Main St", city="Springfield", state="MO", zip_code="62701") == pytest.approx(0.6)

    def test_address_lines_are_combined(self):
        query = AddressInfo(address1="ATTN:", address2="100 Main Street")
        assert score_address(query, address1="100 MAIN ST") == 1.0

    def test_nothing_applicable_scores_zero(self):
        assert score_address(AddressInfo(), **SPRINGFIELD) == 0.0
        assert score_address(None, **SPRINGFIELD) == 0.0

    def test_compare_address_match(self):
        score, differences = compare_address(
            "ACME", "100 Main St", "Springfield", "IL", "62701",
            "ACME CORPORATION", "100 MAIN ST", "Springfield", "IL", "62701-1234",
        )
        assert score == 1.0
        assert differences == []

    def test_compare_address_reports_differences(self):
        score, differences = compare_address(
            None, "100 Main St", "Chicago", "IL", None,
            "ACME", "100 MAIN ST", "Springfield", "IL", "62701",
        )
        assert score == pytest.approx(2 / 3)
        assert differences == ["City mismatch: 'Chicago' vs 'Springfield'"]


# =============================================================================
# Candidate ranking
# =============================================================================

class TestCandidateRanker:

    def test_shortlist_filters_sorts_and_caps(self):
        ranker = CandidateRanker(ResolutionConfig(shortlist_size=2))
        customers = [
            make_customer("01-Z", "Zenith Labs"),
            make_customer("01-SUP", "ACME SUPPLY CO"),
            make_customer("01-WID", "ACME WIDGET WORKS"),
            make_customer("01-ACME", "ACME CORPORATION"),
        ]
        shortlist = ranker.shortlist("Acme Corp", customers)
        assert [(c.customer_number, s) for c, s in shortlist] == [("01-ACME", 1.0), ("01-SUP", 0.9)]

    def test_best_ship_to_tie_keeps_first(self):
        first = make_ship_to("A", **SPRINGFIELD)
        second = make_ship_to("B", is_default=True, **SPRINGFIELD)
        best, score, is_default = CandidateRanker.best_ship_to(AddressInfo(state="IL"), [first, second])
        assert best is first
        assert score == 1.0
        assert is_default is False

    def test_best_ship_to_averages_in_name(self):
        east = make_ship_to("002", name="ACME EAST DC", state="NJ")
        best, score, _ = CandidateRanker.best_ship_to(AddressInfo(name="Acme East", state="NJ"), [east])
        assert best is east
        assert score == pytest.approx(0.95)

    def test_best_ship_to_none_when_nothing_matches(self):
        best, score, is_default = CandidateRanker.best_ship_to(
            AddressInfo(state="TX"), [make_ship_to("001", **SPRINGFIELD)]
        )
        assert best is None
        assert score == 0.0
        assert not is_default

    def test_exact_name_and_default_ship_to(self):
        customer = make_customer("01-ACME01", "ACME CORPORATION", default_ship_to_code="001")
        customer.attach_ship_tos([
            make_ship_to("001", warehouse_code="000", ship_via="UPS GROUND", **SPRINGFIELD),
            make_ship_to("002", address1="45 Harbor Blvd", city="Newark", state="NJ", zip_code="07105"),
        ])
        request = ResolutionRequest(
            customer_name="Acme Corp",
            ship_to_address=AddressInfo(address1="100 Main Street", city="Springfield", state="IL", zip_code="62701"),
        )
        match = CandidateRanker().score_candidate(request, customer)

        assert match.score == 0.8
        assert match.matched_ship_to_code == "001"
        assert match.is_default_ship_to
        assert match.warehouse_code == "000"
        assert match.ship_via == "UPS GROUND"
        breakdown = match.score_breakdown
        assert breakdown.name_score == 1.0
        assert breakdown.ship_to_score == 1.0
        assert breakdown.default_ship_to_bonus == 0.1
        assert breakdown.details[0] == "Name match: 100% ('Acme Corp' vs 'ACME CORPORATION')"
        assert "Ship-to match: 100% (matched code: 001, isDefault: True)" in breakdown.details
        assert "Default ship-to bonus: +10%" in breakdown.details
        assert breakdown.details[-1] == "Total weighted score: 80%"

    def test_no_bonus_below_ship_to_threshold(self):
        customer = make_customer("01-ACME01", "ACME CORPORATION", default_ship_to_code="001")
        customer.attach_ship_tos([make_ship_to("001", **SPRINGFIELD)])
        request = ResolutionRequest(
            customer_name="Acme Corp",
            ship_to_address=AddressInfo(address1="1 Elm St", city="Springfield", state="IL", zip_code="60000"),
        )
        match = CandidateRanker().score_candidate(request, customer)
        assert match.score_breakdown.ship_to_score == pytest.approx(0.6)
        assert match.score_breakdown.default_ship_to_bonus == 0.0
        assert match.score == pytest.approx(0.2 + 0.5 * 0.6)

    def test_score_is_clamped(self):
        customer = make_customer(
            "01-ACME01", "ACME CORPORATION", default_ship_to_code="001",
            address1="1 Industrial Pkwy", city="Springfield", state="IL", zip_code="62702",
            phone="(217) 555-0100",
        )
        customer.attach_ship_tos([make_ship_to("001", **SPRINGFIELD)])
        request = ResolutionRequest(
            customer_name="Acme Corp",
            ship_to_address=AddressInfo(address1="100 Main St", city="Springfield", state="IL", zip_code="62701"),
            billing_address=AddressInfo(address1="1 Industrial Pkwy", city="Springfield", state="IL", zip_code="62702"),
            phone="217-555-0100",
        )
        match = CandidateRanker().score_candidate(request, customer)
        assert match.score == 1.0
        assert "Billing address match: 100%" in match.score_breakdown.details
        assert "Phone match: 100%" in match.score_breakdown.details

    def test_missing_ship_to_data_noted(self):
        customer = make_customer("01-ACME01", "ACME CORPORATION")
        request = ResolutionRequest(customer_name="Acme Corp", ship_to_address=AddressInfo(state="IL"))
        match = CandidateRanker().score_candidate(request, customer)
        assert "Ship-to match: N/A (no ship-to data)" in match.score_breakdown.details
        assert match.score == pytest.approx(0.2)
        assert match.matched_ship_to_code is None
