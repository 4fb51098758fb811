"""Pricing management CLI.

Provides commands to create and drop the pricing database schema, and to
price a cart described in a JSON document without touching the database.

Usage:
    python src/manage.py setup-db            # Create all tables
    python src/manage.py drop-db             # Drop all tables
    python src/manage.py quote cart.json     # Print the cart's totals as JSON
"""

import argparse
import json
import sys


def setup_databases():
    """Create the pricing database schema."""
    from pricing.domain import pricing
    from pricing.utils.db import setup_db

    print("Initializing pricing domain...")
    pricing.init()
    print("Creating pricing database schema...")
    setup_db(pricing)
    print("Done.")


def drop_databases():
    """Drop the pricing database schema."""
    from pricing.domain import pricing
    from pricing.utils.db import drop_db

    print("Initializing pricing domain...")
    pricing.init()
    print("Dropping pricing database schema...")
    drop_db(pricing)
    print("Done.")


def quote_cart(stream) -> dict:
    """Price the cart document read from ``stream`` and return the totals payload."""
    from pricing.cart.quote import quote
    from pricing.domain import pricing

    document = json.load(stream)
    pricing.init()
    with pricing.domain_context():
        return quote(document).to_payload()


def main():
    parser = argparse.ArgumentParser(description="Pricing management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    quote_parser = subparsers.add_parser("quote", help="Price a cart described in a JSON document")
    quote_parser.add_argument(
        "document",
        type=argparse.FileType("r"),
        help="Path to the cart and configuration document ('-' reads stdin)",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "quote":
        print(json.dumps(quote_cart(args.document), indent=2))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
