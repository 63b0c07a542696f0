"""Resolve a PO customer from the command line.

Runs the same resolution the API does, against the configured driver
(SAGE_DRIVER) or the in-memory sample data.

Usage:
    python scripts/resolve_customer.py "Acme Corp" --ship-city Springfield --ship-state IL
    python scripts/resolve_customer.py "Acme Corp" --memory --json

Options:
    --memory    Use the in-memory sample database instead of Sage 100
    --json      Print the full result as JSON
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from api.server import build_pool
from core.config import load_config
from core.observability.logging import configure_logging
from customer_resolver import AddressInfo, ResolutionFailure, ResolutionRequest
from services import CustomerService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve a PO customer to a Sage 100 customer")
    parser.add_argument("name", help="Customer name as printed on the PO")
    parser.add_argument("--ship-name")
    parser.add_argument("--ship-address1")
    parser.add_argument("--ship-city")
    parser.add_argument("--ship-state")
    parser.add_argument("--ship-zip")
    parser.add_argument("--bill-address1")
    parser.add_argument("--bill-city")
    parser.add_argument("--bill-state")
    parser.add_argument("--bill-zip")
    parser.add_argument("--phone")
    parser.add_argument("--min-confidence", type=float, default=0.8)
    parser.add_argument("--memory", action="store_true", help="Use the in-memory sample database")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> ResolutionRequest:
    ship_to = AddressInfo(
        name=args.ship_name,
        address1=args.ship_address1,
        city=args.ship_city,
        state=args.ship_state,
        zip_code=args.ship_zip,
    )
    billing = AddressInfo(
        address1=args.bill_address1,
        city=args.bill_city,
        state=args.bill_state,
        zip_code=args.bill_zip,
    )
    return ResolutionRequest(
        customer_name=args.name,
        ship_to_address=ship_to if any(ship_to.model_dump().values()) else None,
        billing_address=billing if any(billing.model_dump().values()) else None,
        phone=args.phone,
        min_confidence=args.min_confidence,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    sage_config, api_config = load_config()
    if args.memory:
        sage_config.driver = "memory"
    configure_logging(level=api_config.log_level, json_format=api_config.log_json)

    pool = build_pool(sage_config)
    try:
        result = CustomerService(pool, sage_config).resolve(build_request(args))
    except ResolutionFailure as e:
        print(f"Resolution failed: {e}", file=sys.stderr)
        return 2
    finally:
        pool.shutdown()

    if args.json:
        print(result.model_dump_json(indent=2))
        return 0

    print("=" * 60)
    print(f"Recommendation: {result.recommendation.value}")
    print(f"Confidence:     {result.confidence:.0%}")
    print(f"Message:        {result.message}")
    print("=" * 60)
    for detail in result.scoring_details:
        print(f"  {detail}")
    if result.candidates:
        print("\nCandidates:")
        for candidate in result.candidates:
            print(
                f"  {candidate.score:>5.0%}  {candidate.customer_number:<14} {candidate.customer_name}"
                f"  (ship-to: {candidate.matched_ship_to_code or '-'})"
            )
    return 0


if __name__ == "__main__":
    sys.exit(main())
