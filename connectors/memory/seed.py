"""Sample data for the in-memory driver (development server and scripts)."""

from connectors.memory.driver import MemoryDatabase


def sample_database() -> MemoryDatabase:
    """A small company with multi-branch customers and a few items."""
    db = MemoryDatabase(users={"admin": "secret"}, companies=["ABC"])

    db.add_customer(
        "01", "ACME01",
        name="ACME CORPORATION",
        address1="1 Industrial Pkwy", city="Springfield", state="IL", zip_code="62702",
        phone="(217) 555-0100", terms_code="30", default_ship_to_code="001",
    )
    db.add_ship_to(
        "01", "ACME01", "001",
        name="ACME CORPORATION", address1="100 MAIN ST", city="Springfield", state="IL",
        zip_code="62701-1234", warehouse_code="000", ship_via="UPS GROUND",
    )
    db.add_ship_to(
        "01", "ACME01", "002",
        name="ACME EAST DC", address1="45 Harbor Blvd", city="Newark", state="NJ",
        zip_code="07105", warehouse_code="EST", ship_via="FEDEX",
    )

    db.add_customer(
        "01", "ACMESUP",
        name="ACME SUPPLY CO",
        address1="9 Depot Rd", city="Peoria", state="IL", zip_code="61602",
        phone="309-555-0199", default_ship_to_code="MAIN",
    )
    db.add_ship_to(
        "01", "ACMESUP", "MAIN",
        name="ACME SUPPLY", address1="9 Depot Road", city="Peoria", state="IL",
        zip_code="61602", warehouse_code="000", ship_via="",
    )

    db.add_customer(
        "02", "HARBOR",
        name="Harbor Foods, Inc.",
        address1="77 Wharf Street", city="Norfolk", state="VA", zip_code="23510",
        phone="757.555.0142", default_ship_to_code="001",
    )
    db.add_ship_to(
        "02", "HARBOR", "001",
        name="Harbor Foods", address1="77 Wharf St", city="Norfolk", state="VA",
        zip_code="23510", warehouse_code="000", ship_via="OUR TRUCK",
    )

    for code, description in (
        ("WIDGET-100", "Widget, 100 count"),
        ("WIDGET-500", "Widget, 500 count"),
        ("GASKET-2IN", "Gasket 2 inch"),
    ):
        db.add_item(code, description)

    return db
